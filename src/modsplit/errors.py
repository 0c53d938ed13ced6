"""
Error Taxonomy.

Every failure raised by modsplit derives from :class:`ModsplitError`, which
carries the location context (package, file, line, column) needed to report
the error together with all other failures at the end of a run, and the exit
code category it maps to.

Hierarchy::

    ModsplitError
    ├── WorkspaceError
    │   ├── PackageNotFoundError
    │   ├── NoPackagesFoundError
    │   └── DuplicatePackageError
    ├── ParseError
    ├── AnnotationError
    │   ├── MisplacedAnnotationError
    │   └── ConflictingAnnotationError
    ├── GenerationError
    │   └── UnresolvedTypeError
    ├── VerificationError
    └── FileAccessError
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from modsplit.enums import ExitCode


class ModsplitError(Exception):
  """
  Base exception for modsplit.

  Attributes:
      message (str): Human readable description.
      package (Optional[str]): Module package name the error belongs to.
      file (Optional[str]): Source file the error points at.
      line (Optional[int]): 1-based line number.
      column (Optional[int]): 1-based column number.
  """

  exit_code: ExitCode = ExitCode.FAILURE

  def __init__(
    self,
    message: str,
    *,
    package: Optional[str] = None,
    file: Optional[Union[str, Path]] = None,
    line: Optional[int] = None,
    column: Optional[int] = None,
  ) -> None:
    super().__init__(message)
    self.message = message
    self.package = package
    self.file = str(file) if file is not None else None
    self.line = line
    self.column = column

  @property
  def location(self) -> str:
    """
    Formats the error location as ``file:line:column``.

    Returns:
        str: The location, or an empty string when no file is known.
    """
    if not self.file:
      return ""
    parts = [self.file]
    if self.line is not None:
      parts.append(str(self.line))
      if self.column is not None:
        parts.append(str(self.column))
    return ":".join(parts)

  def with_package(self, package: str) -> "ModsplitError":
    """Fills in the package name if it was not known where the error was raised."""
    if self.package is None:
      self.package = package
    return self

  def to_info(self) -> Dict[str, Any]:
    """
    Returns a JSON-serializable error payload.

    Returns:
        Dict[str, Any]: Error kind, message, location context and exit code.
    """
    return {
      "kind": self.__class__.__name__,
      "message": self.message,
      "package": self.package,
      "file": self.file,
      "line": self.line,
      "column": self.column,
      "exit_code": int(self.exit_code),
    }

  def __str__(self) -> str:
    prefix = f"{self.location}: " if self.location else ""
    scope = f"[{self.package}] " if self.package else ""
    return f"{scope}{prefix}{self.message}"


class WorkspaceError(ModsplitError):
  """Raised when the workspace cannot be scanned."""

  exit_code = ExitCode.SCAN


class PackageNotFoundError(WorkspaceError):
  """Raised when a module filter matches no module package."""

  def __init__(self, name: str, available: Optional[List[str]] = None) -> None:
    known = ", ".join(available or []) or "none"
    super().__init__(f"No module package named '{name}' (available: {known})")
    self.name = name


class NoPackagesFoundError(WorkspaceError):
  """Raised when the workspace holds no module packages at all."""

  def __init__(self, root: Union[str, Path], prefix: str) -> None:
    super().__init__(f"No module packages with prefix '{prefix}' found under {root}")
    self.root = str(root)


class DuplicatePackageError(WorkspaceError):
  """Raised when two module packages map to the same consumer package name."""


class ParseError(ModsplitError):
  """Raised when a source file cannot be parsed."""

  exit_code = ExitCode.PARSE


class AnnotationError(ModsplitError):
  """Raised when the export annotation is used incorrectly."""

  exit_code = ExitCode.ANNOTATION


class MisplacedAnnotationError(AnnotationError):
  """Raised when the export annotation decorates something other than a top-level class."""


class ConflictingAnnotationError(AnnotationError):
  """Raised when two blocks declare the same interface with different signatures."""


class GenerationError(ModsplitError):
  """Raised when consumer source cannot be synthesized."""

  exit_code = ExitCode.GENERATION


class UnresolvedTypeError(GenerationError):
  """Raised when a referenced type cannot be located for copying."""

  def __init__(self, name: str, reason: str = "cannot be resolved", **kwargs: Any) -> None:
    super().__init__(f"Type '{name}' referenced by an exported signature {reason}", **kwargs)
    self.name = name


class VerificationError(ModsplitError):
  """
  Raised when a generated consumer package fails the type-check.

  Attributes:
      diagnostics (List[Any]): Structured diagnostics reported by the checker.
      output (str): Raw checker output.
  """

  exit_code = ExitCode.VERIFICATION

  def __init__(self, message: str, *, diagnostics: Optional[List[Any]] = None, output: str = "", **kwargs: Any) -> None:
    super().__init__(message, **kwargs)
    self.diagnostics = list(diagnostics or [])
    self.output = output

  def to_info(self) -> Dict[str, Any]:
    info = super().to_info()
    info["diagnostics"] = [d.model_dump() if hasattr(d, "model_dump") else d for d in self.diagnostics]
    return info


class FileAccessError(ModsplitError):
  """Raised when reading or writing the filesystem fails."""

  exit_code = ExitCode.IO

  @classmethod
  def from_os_error(cls, exc: OSError, package: Optional[str] = None) -> "FileAccessError":
    """
    Wraps an OSError, keeping the offending path.

    Args:
        exc: The original error.
        package: Owning package name, if known.

    Returns:
        FileAccessError: The wrapped error.
    """
    reason = exc.strerror or str(exc)
    return cls(reason, package=package, file=exc.filename)
