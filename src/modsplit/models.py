"""
Data structures shared by the generation pipeline.

Snapshots produced by the scanner and extractor (:class:`ModulePackage`,
:class:`AnnotatedBlock`, :class:`MethodSignature`) are frozen Pydantic models:
they are recomputed on every run and never mutated. The result models
(:class:`PackageResult`, :class:`RunReport`) collect what happened to each
package and serialize to the JSON report.
"""

from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from modsplit.enums import (
  BlockKind,
  ExitCode,
  PackageOutcome,
  ParameterKind,
  ProcessReason,
  ReceiverKind,
  RunStatus,
  worst_exit_code,
)

INDENT = "    "


def render_docstring(text: str, indent: str) -> str:
  """
  Renders a cleaned docstring as a triple-quoted literal at the given indent.

  Args:
      text: The docstring value (already dedented).
      indent: Indentation of the enclosing body.

  Returns:
      str: The indented literal, without trailing newline.
  """
  escaped = text.replace("\\", "\\\\").replace('"', '\\"')
  lines = escaped.split("\n")
  if len(lines) == 1:
    return f'{indent}"""{lines[0]}"""'
  body = [f'{indent}"""{lines[0]}']
  body.extend(f"{indent}{line}" if line else "" for line in lines[1:])
  body.append(f'{indent}"""')
  return "\n".join(body)


class ParameterSignature(BaseModel):
  """
  A single declared parameter of an exported method.
  """

  model_config = ConfigDict(frozen=True)

  name: str
  annotation: Optional[str] = Field(None, description="Annotation source text, passed through verbatim.")
  kind: ParameterKind = ParameterKind.POSITIONAL_OR_KEYWORD
  has_default: bool = False

  def render(self) -> str:
    star = {ParameterKind.VAR_POSITIONAL: "*", ParameterKind.VAR_KEYWORD: "**"}.get(self.kind, "")
    text = f"{star}{self.name}"
    if self.annotation is not None:
      text += f": {self.annotation}"
      if self.has_default:
        text += " = ..."
    elif self.has_default:
      text += "=..."
    return text


class MethodSignature(BaseModel):
  """
  The interface-relevant part of one method of an annotated class.

  Attributes:
      name: Method name.
      receiver: How the method binds its owner.
      receiver_name: Declared name of the receiver parameter (``self``/``cls``).
      receiver_positional_only: Whether ``/`` directly follows the receiver.
      parameters: Declared parameters after the receiver, in order.
      return_annotation: Return annotation text, if declared.
      is_async: Whether the method is ``async def``.
      decorators: Interface-relevant decorators (``property``, ``overload``...).
      type_params: PEP 695 type parameter text, opaque.
      docstring: Cleaned docstring, if any.
      references: Root names the annotations refer to.
      line: Line of the ``def`` in its source file.
  """

  model_config = ConfigDict(frozen=True)

  name: str
  receiver: ReceiverKind = ReceiverKind.INSTANCE
  receiver_name: Optional[str] = "self"
  receiver_positional_only: bool = False
  parameters: Tuple[ParameterSignature, ...] = ()
  return_annotation: Optional[str] = None
  is_async: bool = False
  decorators: Tuple[str, ...] = ()
  type_params: Optional[str] = None
  docstring: Optional[str] = None
  references: FrozenSet[str] = frozenset()
  line: int = 0

  def _parameter_list(self) -> str:
    parts: List[str] = []
    if self.receiver_name and self.receiver is not ReceiverKind.NONE:
      parts.append(self.receiver_name)

    params = list(self.parameters)
    last_positional_only = max(
      (i for i, p in enumerate(params) if p.kind is ParameterKind.POSITIONAL_ONLY),
      default=None,
    )
    if last_positional_only is None and self.receiver_positional_only and parts:
      parts.append("/")
    has_var_positional = any(p.kind is ParameterKind.VAR_POSITIONAL for p in params)
    star_emitted = False
    for index, param in enumerate(params):
      if param.kind is ParameterKind.KEYWORD_ONLY and not has_var_positional and not star_emitted:
        parts.append("*")
        star_emitted = True
      parts.append(param.render())
      if index == last_positional_only:
        parts.append("/")
    return ", ".join(parts)

  def signature_text(self) -> str:
    """
    Canonical one-line rendering of the signature, decorators included.

    This text is what conflicts are detected on and what the generation
    fingerprint covers, so two blocks compare equal exactly when they would
    generate the same interface method.

    Returns:
        str: Decorator lines followed by the ``def`` line.
    """
    lines = [f"@{d}" for d in self.decorators]
    prefix = "async def" if self.is_async else "def"
    type_params = f"[{self.type_params}]" if self.type_params else ""
    returns = f" -> {self.return_annotation}" if self.return_annotation is not None else ""
    lines.append(f"{prefix} {self.name}{type_params}({self._parameter_list()}){returns}:")
    return "\n".join(lines)

  def render_def(self, indent: str = INDENT) -> str:
    """
    Renders the method as an interface stub body.

    Args:
        indent: Indentation of the method inside its class.

    Returns:
        str: The decorated stub, body ``...``, docstring kept.
    """
    lines = [f"{indent}{line}" for line in self.signature_text().split("\n")]
    if self.docstring:
      lines.append(render_docstring(self.docstring, indent + INDENT))
    lines.append(f"{indent}{INDENT}...")
    return "\n".join(lines)


class AnnotatedBlock(BaseModel):
  """
  An exported implementation class and the interface it declares.
  """

  model_config = ConfigDict(frozen=True)

  interface: str = Field(description="Declared or inferred interface name.")
  class_name: str = Field(description="Name of the implementing class.")
  file: str = Field(description="Source file, relative to the module package.")
  line: int = 0
  docstring: Optional[str] = None
  type_params: Optional[str] = Field(None, description="PEP 695 class type parameters, opaque.")
  protocol_args: Optional[str] = Field(None, description="Arguments of a Generic[...] base, opaque.")
  references: FrozenSet[str] = Field(frozenset(), description="Root names the generics refer to.")
  runtime_checkable: bool = False
  methods: Tuple[MethodSignature, ...] = ()

  def ordered_methods(self) -> List[MethodSignature]:
    """Methods sorted by name; same-name methods keep source order."""
    return sorted(self.methods, key=lambda m: m.name)

  def canonical_signature(self) -> str:
    """
    Text identifying the interface shape of this block.

    Returns:
        str: Generics, checkability and every method signature in name order.
    """
    head = f"[{self.type_params or ''}]({self.protocol_args or ''}) runtime_checkable={self.runtime_checkable}"
    return "\n".join([head, *(m.signature_text() for m in self.ordered_methods())])

  @property
  def location(self) -> str:
    return f"{self.file}:{self.line}"


class ScannedBlock(BaseModel):
  """
  Per-class extraction result: either an annotated block or an ignored class.
  """

  model_config = ConfigDict(frozen=True)

  kind: BlockKind
  class_name: str
  block: Optional[AnnotatedBlock] = None


class ConsumerPackage(BaseModel):
  """
  Scan-time snapshot of the consumer package generated for a module package.
  """

  model_config = ConfigDict(frozen=True)

  name: str
  import_name: str
  path: Path
  exists: bool = False
  latest_mtime_ns: Optional[int] = None

  @property
  def manifest_path(self) -> Path:
    return self.path / "pyproject.toml"

  @property
  def import_dir(self) -> Path:
    return self.path / self.import_name


class ModulePackage(BaseModel):
  """
  Scan-time snapshot of a module package.
  """

  model_config = ConfigDict(frozen=True)

  name: str
  short_name: str
  path: Path
  manifest_path: Path
  source_root: Path
  source_files: Tuple[Path, ...] = ()
  import_names: Tuple[str, ...] = ()
  version: str = "0.0.0"
  requires_python: Optional[str] = None
  requirements: Tuple[str, ...] = ()
  latest_mtime_ns: int = 0
  record_mtime_ns: Optional[int] = None
  consumer: ConsumerPackage

  def relative(self, path: Path) -> str:
    """Formats a path inside the package relative to the package directory."""
    try:
      return path.relative_to(self.path).as_posix()
    except ValueError:
      return str(path)


class SynthesizedPackage(BaseModel):
  """
  Rendered consumer package contents.
  """

  model_config = ConfigDict(frozen=True)

  files: Dict[str, str] = Field(description="Relative path to file text.")
  interfaces: Tuple[str, ...] = ()
  requirements: Tuple[str, ...] = ()
  fingerprint: str = ""


class Diagnostic(BaseModel):
  """
  One diagnostic reported by the type-check tool.
  """

  file: str
  line: int
  column: Optional[int] = None
  severity: str = "error"
  message: str
  code: Optional[str] = None

  def __str__(self) -> str:
    col = f":{self.column}" if self.column is not None else ""
    code = f" [{self.code}]" if self.code else ""
    return f"{self.file}:{self.line}{col}: {self.severity}: {self.message}{code}"


class VerificationResult(BaseModel):
  """
  Outcome of verifying one consumer package.
  """

  package: str
  consumer: str
  success: bool
  returncode: Optional[int] = None
  diagnostics: List[Diagnostic] = Field(default_factory=list)
  output: str = ""
  command: List[str] = Field(default_factory=list)


class DependencyChange(BaseModel):
  """
  Dependency entries added to or removed from one consumer manifest.
  """

  added: List[str] = Field(default_factory=list)
  removed: List[str] = Field(default_factory=list)

  @property
  def is_empty(self) -> bool:
    return not self.added and not self.removed


class PackageResult(BaseModel):
  """
  What happened to one module package during a run.
  """

  package: str
  consumer: str
  outcome: PackageOutcome
  reason: Optional[ProcessReason] = None
  interfaces: List[str] = Field(default_factory=list)
  files_written: List[str] = Field(default_factory=list)
  dependencies: DependencyChange = Field(default_factory=DependencyChange)
  error: Optional[Dict[str, Any]] = None
  exit_code: ExitCode = ExitCode.SUCCESS
  verification: Optional[VerificationResult] = None
  needs_verification: bool = Field(False, exclude=True)
  """Whether the consumer on disk still has to pass the type-check in this run."""

  @property
  def failed(self) -> bool:
    return self.outcome is PackageOutcome.FAILED


class DependencySummary(BaseModel):
  """
  Aggregated dependency edits across all consumer packages of a run.
  """

  added: int = 0
  removed: int = 0
  packages: int = 0

  def describe(self) -> str:
    if not self.added and not self.removed:
      return "No dependency changes"
    return f"{self.added} dependencies added, {self.removed} removed across {self.packages} consumer packages"


class RunReport(BaseModel):
  """
  Result of a complete generation run.
  """

  root: str
  status: RunStatus = RunStatus.SUCCESS
  results: List[PackageResult] = Field(default_factory=list)
  dependency_summary: DependencySummary = Field(default_factory=DependencySummary)
  errors: List[Dict[str, Any]] = Field(default_factory=list, description="Run-level (fatal) errors.")
  exit_code: ExitCode = ExitCode.SUCCESS

  def result_for(self, package: str) -> Optional[PackageResult]:
    for result in self.results:
      if result.package == package:
        return result
    return None

  def count(self, outcome: PackageOutcome) -> int:
    return sum(1 for r in self.results if r.outcome is outcome)

  def finalize(self) -> "RunReport":
    """
    Derives the status and the worst exit code from the collected results.

    Returns:
        RunReport: self, for chaining.
    """
    codes = [r.exit_code for r in self.results if r.exit_code is not ExitCode.SUCCESS]
    codes.extend(ExitCode(e.get("exit_code", ExitCode.FAILURE)) for e in self.errors)
    if self.status is RunStatus.CANCELLED:
      codes.append(ExitCode.CANCELLED)
    self.exit_code = worst_exit_code(codes)
    if self.status is not RunStatus.CANCELLED:
      self.status = RunStatus.SUCCESS if self.exit_code is ExitCode.SUCCESS else RunStatus.FAILED
    return self
