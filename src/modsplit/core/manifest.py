"""
Consumer Manifest Editing.

Consumer packages carry a ``pyproject.toml`` derived from their module
package's manifest. It is created once and afterwards only edited: dependency
entries are added and removed in place through ``tomlkit``, so comments,
formatting and any content added by hand survive every regeneration.

Dependencies the generator adds are tracked in
``[tool.modsplit] managed-dependencies``. Only those are ever pruned
automatically; entries a user added stay until removed explicitly.
"""

from pathlib import Path
from typing import Iterable, List, Set

import tomlkit
from tomlkit.exceptions import TOMLKitError
from tomlkit.items import Array, Table
from tomlkit.toml_document import TOMLDocument

from modsplit.analysis.dependencies import normalize_name, requirement_name
from modsplit.config import CONFIG_TABLE
from modsplit.errors import FileAccessError, WorkspaceError
from modsplit.models import DependencyChange, ModulePackage
from modsplit.utils.io import atomic_write_text

GENERATED_FROM_KEY = "generated-from"
MANAGED_KEY = "managed-dependencies"


def _key(requirement: str) -> str:
  return normalize_name(requirement_name(requirement) or requirement)


def build_manifest(package: ModulePackage) -> TOMLDocument:
  """
  Builds the initial manifest of a consumer package.

  Args:
      package: The module package the consumer is generated from.

  Returns:
      TOMLDocument: A new manifest with an empty dependency list.
  """
  consumer = package.consumer
  doc = tomlkit.document()
  doc.add(tomlkit.comment(f"This manifest was automatically generated by modsplit from {package.name}."))
  doc.add(tomlkit.comment("Dependencies listed in [tool.modsplit] managed-dependencies are maintained by modsplit;"))
  doc.add(tomlkit.comment("other entries and edits are preserved."))
  doc.add(tomlkit.nl())

  build = tomlkit.table()
  build.add("requires", ["setuptools>=68"])
  build.add("build-backend", "setuptools.build_meta")
  doc.add("build-system", build)

  project = tomlkit.table()
  project.add("name", consumer.name)
  project.add("version", package.version)
  project.add("description", f"Interfaces exported by {package.name} (generated).")
  if package.requires_python:
    project.add("requires-python", package.requires_python)
  dependencies = tomlkit.array()
  dependencies.multiline(True)
  project.add("dependencies", dependencies)
  doc.add("project", project)

  tool = tomlkit.table(is_super_table=True)
  setuptools = tomlkit.table()
  setuptools.add("packages", [consumer.import_name])
  setuptools.add("package-data", {consumer.import_name: ["py.typed"]})
  tool.add("setuptools", setuptools)
  modsplit = tomlkit.table()
  modsplit.add(GENERATED_FROM_KEY, package.name)
  modsplit.add(MANAGED_KEY, tomlkit.array())
  tool.add(CONFIG_TABLE, modsplit)
  doc.add("tool", tool)
  return doc


def read_manifest(path: Path) -> TOMLDocument:
  """
  Parses a consumer manifest for editing.

  Args:
      path: Manifest path.

  Returns:
      TOMLDocument: The editable document.

  Raises:
      FileAccessError: If the file cannot be read.
      WorkspaceError: If the file is not valid TOML.
  """
  try:
    text = path.read_text(encoding="utf-8")
  except OSError as e:
    raise FileAccessError.from_os_error(e) from e
  try:
    return tomlkit.parse(text)
  except TOMLKitError as e:
    raise WorkspaceError(f"Invalid TOML: {e}", file=path) from e


def write_manifest(path: Path, doc: TOMLDocument) -> None:
  atomic_write_text(path, tomlkit.dumps(doc))


def _dependencies(doc: TOMLDocument) -> Array:
  project = doc.get("project")
  if project is None:
    project = tomlkit.table()
    doc.add("project", project)
  if "dependencies" not in project:
    deps = tomlkit.array()
    deps.multiline(True)
    project.add("dependencies", deps)
  return project["dependencies"]


def _tool_table(doc: TOMLDocument) -> Table:
  if "tool" not in doc:
    doc.add("tool", tomlkit.table(is_super_table=True))
  tool = doc["tool"]
  if CONFIG_TABLE not in tool:
    tool.add(CONFIG_TABLE, tomlkit.table())
  return tool[CONFIG_TABLE]


def _managed(doc: TOMLDocument) -> Array:
  table = _tool_table(doc)
  if MANAGED_KEY not in table:
    table.add(MANAGED_KEY, tomlkit.array())
  return table[MANAGED_KEY]


def _remove_keys(array: Array, keys: Set[str]) -> List[str]:
  removed = []
  for index in reversed(range(len(array))):
    entry = str(array[index])
    if _key(entry) in keys:
      removed.append(entry)
      del array[index]
  return sorted(removed)


def managed_dependencies(doc: TOMLDocument) -> List[str]:
  """Requirement names currently maintained by the generator."""
  table = doc.get("tool", {}).get(CONFIG_TABLE, {})
  return [str(x) for x in table.get(MANAGED_KEY, [])]


def declared_dependencies(doc: TOMLDocument) -> List[str]:
  return [str(x) for x in doc.get("project", {}).get("dependencies", [])]


def sync_dependencies(doc: TOMLDocument, desired: Iterable[str]) -> DependencyChange:
  """
  Aligns generator-managed dependencies with the current requirement set.

  Desired requirements missing from the manifest are added and recorded as
  managed. Managed requirements no longer desired are removed. Entries the
  user added are left alone, including when they satisfy a desired requirement.

  Args:
      doc: Consumer manifest, edited in place.
      desired: Requirements referenced by the generated declarations.

  Returns:
      DependencyChange: What was added and removed.
  """
  deps = _dependencies(doc)
  managed = _managed(doc)
  wanted = {_key(r): r for r in desired}
  present = {_key(str(d)) for d in deps}
  managed_keys = {_key(str(m)) for m in managed}

  stale = managed_keys - set(wanted)
  removed = _remove_keys(deps, stale)
  _remove_keys(managed, stale)

  added = []
  for key in sorted(wanted):
    if key in present:
      continue
    deps.append(wanted[key])
    managed.append(requirement_name(wanted[key]) or wanted[key])
    added.append(wanted[key])
  return DependencyChange(added=added, removed=removed)


def add_dependencies(doc: TOMLDocument, requirements: Iterable[str]) -> DependencyChange:
  """
  Adds user requirements to a consumer manifest.

  Args:
      doc: Consumer manifest, edited in place.
      requirements: Requirement strings (``"attrs>=23"``).

  Returns:
      DependencyChange: Entries actually added.
  """
  deps = _dependencies(doc)
  present = {_key(str(d)) for d in deps}
  added = []
  for requirement in requirements:
    key = _key(requirement)
    if key in present:
      continue
    deps.append(requirement)
    present.add(key)
    added.append(requirement)
  return DependencyChange(added=added)


def remove_dependencies(doc: TOMLDocument, requirements: Iterable[str]) -> DependencyChange:
  """
  Removes requirements from a consumer manifest, by distribution name.

  Args:
      doc: Consumer manifest, edited in place.
      requirements: Requirement strings or bare names.

  Returns:
      DependencyChange: Entries actually removed.
  """
  keys = {_key(r) for r in requirements}
  removed = _remove_keys(_dependencies(doc), keys)
  _remove_keys(_managed(doc), keys)
  return DependencyChange(removed=removed)
