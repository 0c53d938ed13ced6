"""
Workspace Scanner.

Discovers module packages under the workspace root and captures an immutable
snapshot of each one (sources, import names, declared requirements and
timestamps), together with the state of its consumer package.

A directory is a module package when its ``pyproject.toml`` declares a project
name starting with the module prefix (``[project].name``, or
``[tool.poetry].name``). The walk never descends into a module package it has
found, nor into hidden, build-output or virtualenv directories.
"""

import os
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from modsplit.config import MANIFEST_NAME, RunConfig, read_toml
from modsplit.errors import (
  DuplicatePackageError,
  FileAccessError,
  NoPackagesFoundError,
  PackageNotFoundError,
  WorkspaceError,
)
from modsplit.models import ConsumerPackage, ModulePackage
from modsplit.utils.console import log_debug
from modsplit.utils.io import latest_mtime_ns

_TEST_DIRS = frozenset({"tests", "test", "testing"})
_NON_SOURCE_FILES = frozenset({"conftest.py", "setup.py", "noxfile.py"})


def import_name_for(distribution: str) -> str:
  """
  Import name of a generated distribution (``consumer-alpha`` to ``consumer_alpha``).

  Args:
      distribution: Project name.

  Returns:
      str: A valid identifier.
  """
  return distribution.replace("-", "_").replace(".", "_").lower()


def consumer_name_for(module_name: str, config: RunConfig) -> str:
  """
  Derives the consumer package name by prefix substitution.

  Args:
      module_name: Module package name, e.g. ``mod-alpha``.
      config: Run configuration holding both prefixes.

  Returns:
      str: e.g. ``consumer-alpha``.
  """
  return config.consumer_prefix + module_name[len(config.module_prefix) :]


def _project_table(manifest: Dict[str, Any]) -> Dict[str, Any]:
  project = manifest.get("project")
  if isinstance(project, dict) and project.get("name"):
    return project
  poetry = manifest.get("tool", {}).get("poetry")
  if isinstance(poetry, dict) and poetry.get("name"):
    return poetry
  return {}


def _raise_walk_error(err: OSError) -> None:
  raise FileAccessError.from_os_error(err)


class WorkspaceScanner:
  """
  Discovers module packages for one run.

  Attributes:
      config (RunConfig): Root, prefixes, filter and excluded directories.
  """

  def __init__(self, config: RunConfig) -> None:
    self.config = config

  def _is_excluded(self, name: str) -> bool:
    return name.startswith(".") or name in self.config.exclude_dirs or name.endswith(".egg-info")

  def scan(self) -> List[ModulePackage]:
    """
    Discovers module packages, honouring the configured filter.

    Returns:
        List[ModulePackage]: Alphabetically ordered snapshots. Exactly one
        entry when a filter is set.

    Raises:
        PackageNotFoundError: If the filter matches no module package.
        NoPackagesFoundError: If the workspace holds no module package.
        DuplicatePackageError: If two module packages map to one consumer name.
        WorkspaceError: If the root or a manifest cannot be read.
        FileAccessError: If a directory cannot be listed.
    """
    packages = self.discover()
    if self.config.module_filter:
      return [find_package(packages, self.config.module_filter, self.config)]
    if not packages:
      raise NoPackagesFoundError(self.config.root, self.config.module_prefix)
    return packages

  def discover(self) -> List[ModulePackage]:
    """
    Walks the workspace and snapshots every module package found.

    Returns:
        List[ModulePackage]: Sorted by name, possibly empty.
    """
    root = self.config.root
    if not root.is_dir():
      raise WorkspaceError(f"Workspace root is not a readable directory: {root}")

    packages: List[ModulePackage] = []
    for dirpath, dirnames, filenames in os.walk(root, onerror=_raise_walk_error):
      dirnames[:] = sorted(d for d in dirnames if not self._is_excluded(d))
      if MANIFEST_NAME not in filenames:
        continue
      manifest_path = Path(dirpath) / MANIFEST_NAME
      project = _project_table(read_toml(manifest_path))
      name = str(project.get("name", ""))
      if not name.startswith(self.config.module_prefix) or name == self.config.module_prefix:
        continue
      log_debug(f"Found module package [pkg]{name}[/pkg] at {dirpath}")
      packages.append(self._snapshot(Path(dirpath), manifest_path, name, project))
      # Module packages are leaves of the search.
      dirnames[:] = []

    packages.sort(key=lambda p: p.name)
    self._check_unique_consumers(packages)
    return packages

  def _check_unique_consumers(self, packages: List[ModulePackage]) -> None:
    seen: Dict[str, ModulePackage] = {}
    for package in packages:
      key = package.consumer.name.lower()
      if key in seen:
        other = seen[key]
        raise DuplicatePackageError(
          f"Module packages at {other.path} and {package.path} both map to consumer package '{package.consumer.name}'",
          package=package.name,
          file=package.manifest_path,
        )
      seen[key] = package

  def _snapshot(self, path: Path, manifest_path: Path, name: str, project: Dict[str, Any]) -> ModulePackage:
    source_root = path / "src" if (path / "src").is_dir() else path
    source_files = sorted(self._iter_sources(source_root), key=lambda p: p.as_posix())
    dependencies = project.get("dependencies", [])
    requirements = tuple(str(d) for d in dependencies) if isinstance(dependencies, list) else ()

    consumer_name = consumer_name_for(name, self.config)
    consumer = self._consumer_snapshot(path.parent / consumer_name, consumer_name)
    module_mtime = latest_mtime_ns([*source_files, manifest_path]) or 0
    record_mtime = latest_mtime_ns([path / self.config.record_name])

    return ModulePackage(
      name=name,
      short_name=name[len(self.config.module_prefix) :],
      path=path,
      manifest_path=manifest_path,
      source_root=source_root,
      source_files=tuple(source_files),
      import_names=self._import_names(source_root),
      version=str(project.get("version", "0.0.0")),
      requires_python=project.get("requires-python"),
      requirements=requirements,
      latest_mtime_ns=module_mtime,
      record_mtime_ns=record_mtime,
      consumer=consumer,
    )

  def _iter_sources(self, source_root: Path) -> Iterator[Path]:
    for dirpath, dirnames, filenames in os.walk(source_root, onerror=_raise_walk_error):
      current = Path(dirpath)
      kept = []
      for d in sorted(dirnames):
        if self._is_excluded(d) or d in _TEST_DIRS:
          continue
        if (current / d / MANIFEST_NAME).exists():
          # Nested project with its own manifest.
          continue
        kept.append(d)
      dirnames[:] = kept
      for filename in sorted(filenames):
        if not filename.endswith(".py") or filename in _NON_SOURCE_FILES:
          continue
        if filename.startswith("test_") or filename.endswith("_test.py"):
          continue
        yield current / filename

  def _import_names(self, source_root: Path) -> Tuple[str, ...]:
    names = []
    for entry in sorted(source_root.iterdir(), key=lambda p: p.name):
      if self._is_excluded(entry.name) or entry.name in _TEST_DIRS:
        continue
      if entry.is_dir() and (entry / "__init__.py").is_file() and entry.name.isidentifier():
        names.append(entry.name)
      elif entry.is_file() and entry.suffix == ".py" and entry.name not in _NON_SOURCE_FILES:
        if entry.stem.isidentifier():
          names.append(entry.stem)
    return tuple(names)

  def _consumer_snapshot(self, path: Path, name: str) -> ConsumerPackage:
    import_name = import_name_for(name)
    generated_init = path / import_name / "__init__.py"
    exists = generated_init.is_file()
    mtime: Optional[int] = None
    if exists:
      files = []
      for dirpath, dirnames, filenames in os.walk(path):
        dirnames[:] = [d for d in dirnames if not self._is_excluded(d)]
        files.extend(Path(dirpath) / f for f in filenames if not f.startswith("."))
      mtime = latest_mtime_ns(files)
    return ConsumerPackage(name=name, import_name=import_name, path=path, exists=exists, latest_mtime_ns=mtime)


def find_package(packages: List[ModulePackage], name: str, config: RunConfig) -> ModulePackage:
  """
  Looks up a module package by full or short name.

  Args:
      packages: Discovered packages.
      name: ``alpha`` or ``mod-alpha``.
      config: Run configuration (for the module prefix).

  Returns:
      ModulePackage: The match.

  Raises:
      PackageNotFoundError: If nothing matches.
  """
  wanted = name if name.startswith(config.module_prefix) else config.module_prefix + name
  for package in packages:
    if package.name == wanted:
      return package
  raise PackageNotFoundError(name, [p.name for p in packages])
