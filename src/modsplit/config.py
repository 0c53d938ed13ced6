"""
Run Configuration Store.

Settings are resolved in three layers: field defaults, the ``[tool.modsplit]``
table of the nearest ``pyproject.toml`` above the workspace root, and explicit
overrides (usually from the CLI). Run from inside a module package, the
CLI scopes itself to that package (the *ambient* scope) unless a module is
named explicitly or the whole workspace is requested. The resulting :class:`RunConfig` is passed
explicitly to every component; nothing reads global state.

Example ``pyproject.toml``::

    [tool.modsplit]
    module_prefix = "mod-"
    consumer_prefix = "consumer-"
    workers = 4
    verify_command = ["python", "-m", "mypy", "--strict"]
"""

import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from modsplit.errors import WorkspaceError

if sys.version_info >= (3, 11):
  import tomllib
else:
  import tomli as tomllib

CONFIG_TABLE = "modsplit"
MANIFEST_NAME = "pyproject.toml"

DEFAULT_EXCLUDE_DIRS = (
  "__pycache__",
  "build",
  "dist",
  "node_modules",
  "venv",
  "env",
  "site-packages",
)


class RunConfig(BaseModel):
  """
  Configuration container for one generation run.
  """

  model_config = ConfigDict(frozen=True)

  root: Path = Field(default_factory=Path.cwd, description="Workspace root directory to scan.")
  force: bool = Field(False, description="Regenerate every module package regardless of staleness.")
  module_filter: Optional[str] = Field(None, description="Restrict the run to one module package.")
  module_prefix: str = Field("mod-", description="Manifest name prefix identifying module packages.")
  consumer_prefix: str = Field("consumer-", description="Manifest name prefix given to consumer packages.")
  workers: Optional[int] = Field(None, ge=1, description="Worker pool size (default: CPU count).")
  verify: bool = Field(True, description="Type-check generated consumer packages after writing.")
  verify_command: Optional[List[str]] = Field(None, description="Override for the type-check command prefix.")
  record_name: str = Field(".modsplit-record.json", description="Generation record file name.")
  exclude_dirs: Tuple[str, ...] = Field(DEFAULT_EXCLUDE_DIRS, description="Directory names never scanned.")

  @field_validator("module_prefix", "consumer_prefix")
  @classmethod
  def validate_prefix(cls, v: str) -> str:
    """
    Ensures a naming prefix is usable.

    Args:
        v (str): The raw prefix.

    Returns:
        str: The prefix, unchanged.

    Raises:
        ValueError: If the prefix is empty or contains whitespace.
    """
    if not v or v.strip() != v or " " in v:
      raise ValueError(f"Invalid package prefix: '{v}'")
    return v

  @model_validator(mode="after")
  def validate_distinct_prefixes(self) -> "RunConfig":
    if self.module_prefix == self.consumer_prefix:
      raise ValueError("module_prefix and consumer_prefix must differ")
    return self

  @property
  def effective_workers(self) -> int:
    """
    Resolves the worker pool bound.

    Returns:
        int: Configured worker count, else the CPU count.
    """
    return self.workers or os.cpu_count() or 1

  def with_overrides(self, **changes: Any) -> "RunConfig":
    """Returns a copy with the given non-None fields replaced."""
    updates = {k: v for k, v in changes.items() if v is not None}
    return self.model_copy(update=updates)

  @classmethod
  def load(
    cls,
    root: Optional[Path] = None,
    force: Optional[bool] = None,
    module_filter: Optional[str] = None,
    verify: Optional[bool] = None,
    workers: Optional[int] = None,
    search_path: Optional[Path] = None,
    ambient_scope: bool = False,
  ) -> "RunConfig":
    """
    Loads configuration from pyproject.toml and overrides with explicit arguments.

    Args:
        root (Optional[Path]): Workspace root. Defaults to the discovered root.
        force (Optional[bool]): Override for the force flag.
        module_filter (Optional[str]): Single module package to process.
        verify (Optional[bool]): Override for the verification gate.
        workers (Optional[int]): Override for the worker pool size.
        search_path (Optional[Path]): Directory to start root discovery from.
        ambient_scope (bool): Without a module filter, restrict the run to the
            module package enclosing ``search_path`` (or the current directory).

    Returns:
        RunConfig: The fully resolved configuration object.

    Raises:
        WorkspaceError: If the settings table holds invalid values.
    """
    here = (search_path or Path.cwd()).resolve()
    marked = None if root else _find_marked_root(here)
    settings_root = root.resolve() if root else marked
    settings = _load_toml_settings(settings_root) if settings_root else {}

    values: Dict[str, Any] = {k.replace("-", "_"): v for k, v in settings.items()}
    values = {k: v for k, v in values.items() if k in cls.model_fields and k != "root"}
    if "exclude_dirs" in values:
      values["exclude_dirs"] = tuple(DEFAULT_EXCLUDE_DIRS) + tuple(values["exclude_dirs"])

    prefix = str(values.get("module_prefix", cls.model_fields["module_prefix"].default))
    enclosing = find_enclosing_module(here, prefix) if ambient_scope or settings_root is None else None
    if settings_root is not None:
      resolved_root = settings_root
    elif enclosing is not None:
      # Module and consumer packages are siblings.
      resolved_root = enclosing[0].parent
    else:
      resolved_root = here
    if ambient_scope and module_filter is None and enclosing is not None and _contains(resolved_root, enclosing[0]):
      module_filter = enclosing[1]

    overrides = {
      "force": force,
      "module_filter": module_filter,
      "verify": verify,
      "workers": workers,
    }
    values.update({k: v for k, v in overrides.items() if v is not None})

    try:
      return cls(root=resolved_root, **values)
    except ValidationError as e:
      raise WorkspaceError(f"Invalid [tool.{CONFIG_TABLE}] configuration: {e}", file=resolved_root / MANIFEST_NAME)


def find_workspace_root(start: Path) -> Path:
  """
  Walks up from ``start`` to the directory whose pyproject.toml holds a
  ``[tool.modsplit]`` settings table.

  The search stops at a directory containing ``.git``. When no marked manifest
  is found, ``start`` itself is the root.

  Args:
      start (Path): Directory to start searching from.

  Returns:
      Path: The resolved workspace root.
  """
  return _find_marked_root(start) or start.resolve()


def _find_marked_root(start: Path) -> Optional[Path]:
  current = start.resolve()
  for parent in [current, *current.parents]:
    manifest = parent / MANIFEST_NAME
    if manifest.is_file():
      table = read_toml(manifest).get("tool", {}).get(CONFIG_TABLE)
      # Generated consumer manifests carry the table too, marked with their origin.
      if isinstance(table, dict) and "generated-from" not in table:
        return parent
    if (parent / ".git").exists():
      break
  return None


def find_enclosing_module(start: Path, prefix: str) -> Optional[Tuple[Path, str]]:
  """
  Finds the module package a directory belongs to.

  Only the nearest manifest above ``start`` counts: inside a consumer package,
  or directly in the workspace root, there is no enclosing module package.

  Args:
      start (Path): Directory to start searching from.
      prefix (str): Manifest name prefix identifying module packages.

  Returns:
      Optional[Tuple[Path, str]]: The module package directory and its name.
  """
  current = start.resolve()
  for parent in [current, *current.parents]:
    manifest = parent / MANIFEST_NAME
    if manifest.is_file():
      name = read_toml(manifest).get("project", {}).get("name")
      if isinstance(name, str) and name.startswith(prefix):
        return parent, name
      return None
    if (parent / ".git").exists():
      break
  return None


def _contains(root: Path, path: Path) -> bool:
  return path == root or root in path.parents


def read_toml(path: Path) -> Dict[str, Any]:
  """
  Parses a TOML file.

  Args:
      path (Path): File to read.

  Returns:
      Dict[str, Any]: Parsed document.

  Raises:
      WorkspaceError: If the file is unreadable or is not valid TOML.
  """
  try:
    with open(path, "rb") as f:
      return tomllib.load(f)
  except tomllib.TOMLDecodeError as e:
    raise WorkspaceError(f"Invalid TOML: {e}", file=path)
  except OSError as e:
    raise WorkspaceError(f"Cannot read manifest: {e.strerror or e}", file=path)


def _load_toml_settings(root: Path) -> Dict[str, Any]:
  """
  Extracts the ``[tool.modsplit]`` table from the root manifest.

  Args:
      root (Path): Workspace root.

  Returns:
      Dict[str, Any]: The settings table, empty when absent.
  """
  manifest = root / MANIFEST_NAME
  if not manifest.is_file():
    return {}
  table = read_toml(manifest).get("tool", {}).get(CONFIG_TABLE, {})
  return table if isinstance(table, dict) else {}
