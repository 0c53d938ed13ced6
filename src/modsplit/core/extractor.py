"""
Annotation Extractor.

Parses every source file of a module package with LibCST and produces, for
each module-level class, a tagged :class:`~modsplit.models.ScannedBlock`:
``ANNOTATED`` with the extracted interface when the class carries the export
decorator, ``IGNORED`` otherwise.

Recognition is syntactic. The decorator must resolve, through the file's
imports, to ``modsplit.export`` (or ``modsplit.markers.export``)::

    from modsplit import export
    import modsplit as ms

    @export                                   # interface "Storage" for StorageImpl
    @export("Clock")                          # explicit name
    @ms.export(interface="Clock", runtime_checkable=True)

Text that merely looks like the decorator (in strings or comments) is never a
match, because only decorator nodes are inspected.

Extraction never writes anything; it is a pure function of the source text.
"""

import keyword
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

import libcst as cst
from libcst.metadata import MetadataWrapper, PositionProvider

from modsplit.analysis.imports import qualify
from modsplit.analysis.names import (
  collect_references,
  expression_text,
  type_parameter_names,
  type_parameter_references,
  type_parameter_text,
)
from modsplit.analysis.symbol_table import ModuleSymbols, SymbolTableBuilder
from modsplit.enums import BlockKind, ParameterKind, ReceiverKind
from modsplit.errors import (
  AnnotationError,
  ConflictingAnnotationError,
  FileAccessError,
  MisplacedAnnotationError,
  ParseError,
)
from modsplit.models import AnnotatedBlock, MethodSignature, ModulePackage, ParameterSignature, ScannedBlock
from modsplit.utils.console import log_debug

EXPORT_TARGETS = frozenset({"modsplit.export", "modsplit.markers.export"})

# Dunder methods that configure construction, not the object's interface.
CONSTRUCTION_HOOKS = frozenset({"__init__", "__new__", "__init_subclass__", "__class_getitem__", "__post_init__"})

_GENERIC_BASES = frozenset({"typing.Generic", "typing_extensions.Generic", "typing.Protocol", "typing_extensions.Protocol"})

_DECORATOR_ALIASES = {
  "property": "property",
  "functools.cached_property": "property",
  "classmethod": "classmethod",
  "staticmethod": "staticmethod",
  "typing.overload": "overload",
  "typing_extensions.overload": "overload",
}

_ACCESSOR_SUFFIXES = frozenset({"setter", "getter", "deleter"})


@dataclass(frozen=True)
class ExportArguments:
  interface: Optional[str] = None
  runtime_checkable: bool = False


@dataclass
class PackageExtraction:
  """
  Everything extracted from one module package.

  Attributes:
      package: The scanned module package.
      scanned: Tagged per-class results, in file then source order.
      modules: Symbol tables by dotted module name.
      files: Symbol tables by package-relative file path.
  """

  package: ModulePackage
  scanned: List[ScannedBlock] = field(default_factory=list)
  modules: Dict[str, ModuleSymbols] = field(default_factory=dict)
  files: Dict[str, ModuleSymbols] = field(default_factory=dict)

  @property
  def blocks(self) -> List[AnnotatedBlock]:
    return [s.block for s in self.scanned if s.kind is BlockKind.ANNOTATED and s.block is not None]

  def symbols_for(self, block: AnnotatedBlock) -> ModuleSymbols:
    return self.files[block.file]


def is_interface_method(name: str) -> bool:
  """
  Whether a method belongs to the exported interface.

  Args:
      name: Method name.

  Returns:
      True for public names and for dunders other than construction hooks.
  """
  if name.startswith("__") and name.endswith("__") and len(name) > 4:
    return name not in CONSTRUCTION_HOOKS
  return not name.startswith("_")


def infer_interface_name(class_name: str) -> str:
  """
  Interface name used when the decorator does not give one.

  Args:
      class_name: Implementing class name.

  Returns:
      str: ``StorageImpl`` becomes ``Storage``; other names are kept.
  """
  if class_name.endswith("Impl") and len(class_name) > len("Impl"):
    return class_name[: -len("Impl")]
  return class_name


def module_name_for(path: Path, source_root: Path) -> Tuple[str, bool]:
  """
  Dotted module name of a source file.

  Args:
      path: Source file.
      source_root: Directory imports are relative to.

  Returns:
      Tuple[str, bool]: The module name and whether the file is a package ``__init__``.
  """
  parts = list(path.relative_to(source_root).with_suffix("").parts)
  is_package = bool(parts) and parts[-1] == "__init__"
  if is_package:
    parts = parts[:-1]
  return ".".join(parts), is_package


class ExportCollector(cst.CSTVisitor):
  """
  Finds export-annotated classes in one module and extracts their interfaces.

  Must be run through a ``MetadataWrapper`` so source positions are available.

  Attributes:
      symbols (ModuleSymbols): Symbol table of the module (imports are used to
          recognize the decorator).
      package_name (str): Owning module package, for error context.
      results (List[ScannedBlock]): Tagged per-class results.
  """

  METADATA_DEPENDENCIES = (PositionProvider,)

  def __init__(self, symbols: ModuleSymbols, package_name: str) -> None:
    self.symbols = symbols
    self.package_name = package_name
    self.results: List[ScannedBlock] = []
    self._top_level: Set[int] = set()

  def _position(self, node: cst.CSTNode) -> Tuple[int, int]:
    pos = self.get_metadata(PositionProvider, node).start
    return pos.line, pos.column + 1

  def _error(self, cls, message: str, node: cst.CSTNode) -> Exception:
    line, column = self._position(node)
    return cls(message, package=self.package_name, file=self.symbols.file, line=line, column=column)

  def visit_Module(self, node: cst.Module) -> None:
    self._top_level = {id(stmt) for stmt in node.body if isinstance(stmt, cst.ClassDef)}

  def visit_FunctionDef(self, node: cst.FunctionDef) -> None:
    if self._find_export(node.decorators) is not None:
      raise self._error(
        MisplacedAnnotationError,
        f"@export decorates function '{node.name.value}'; only module-level classes can be exported",
        node,
      )

  def visit_ClassDef(self, node: cst.ClassDef) -> None:
    name = node.name.value
    export = self._find_export(node.decorators)
    if id(node) not in self._top_level:
      if export is not None:
        raise self._error(
          MisplacedAnnotationError,
          f"@export decorates nested class '{name}'; only module-level classes can be exported",
          node,
        )
      return
    if export is None:
      self.results.append(ScannedBlock(kind=BlockKind.IGNORED, class_name=name))
      return
    block = self._build_block(node, export)
    self.symbols.exported_classes.add(name)
    log_debug(f"{self.symbols.file}: {name} exports interface {block.interface} ({len(block.methods)} methods)")
    self.results.append(ScannedBlock(kind=BlockKind.ANNOTATED, class_name=name, block=block))

  # --- Decorator recognition ---

  def _find_export(self, decorators) -> Optional[ExportArguments]:
    for decorator in decorators:
      expr = decorator.decorator
      target = expr.func if isinstance(expr, cst.Call) else expr
      if qualify(target, self.symbols.imports) not in EXPORT_TARGETS:
        continue
      if isinstance(expr, cst.Call):
        return self._parse_arguments(expr)
      return ExportArguments()
    return None

  def _parse_arguments(self, call: cst.Call) -> ExportArguments:
    interface: Optional[str] = None
    runtime_checkable = False
    for index, arg in enumerate(call.args):
      if arg.star:
        raise self._error(AnnotationError, "@export does not accept unpacked arguments", arg)
      if arg.keyword is None:
        if index != 0:
          raise self._error(AnnotationError, "@export takes at most one positional argument", arg)
        interface = self._string_argument(arg)
      elif arg.keyword.value == "interface":
        if interface is not None:
          raise self._error(AnnotationError, "@export got the interface name twice", arg)
        interface = self._string_argument(arg)
      elif arg.keyword.value == "runtime_checkable":
        runtime_checkable = self._bool_argument(arg)
      else:
        raise self._error(AnnotationError, f"Unknown @export argument '{arg.keyword.value}'", arg)
    return ExportArguments(interface=interface, runtime_checkable=runtime_checkable)

  def _string_argument(self, arg: cst.Arg) -> str:
    value = arg.value
    text = value.evaluated_value if isinstance(value, (cst.SimpleString, cst.ConcatenatedString)) else None
    if not isinstance(text, str):
      raise self._error(AnnotationError, "@export interface name must be a string literal", arg)
    if not text.isidentifier() or keyword.iskeyword(text):
      raise self._error(AnnotationError, f"@export interface name '{text}' is not a valid identifier", arg)
    return text

  def _bool_argument(self, arg: cst.Arg) -> bool:
    if isinstance(arg.value, cst.Name) and arg.value.value in ("True", "False"):
      return arg.value.value == "True"
    raise self._error(AnnotationError, "@export runtime_checkable must be True or False", arg)

  # --- Interface extraction ---

  def _build_block(self, node: cst.ClassDef, export: ExportArguments) -> AnnotatedBlock:
    class_name = node.name.value
    tree = self.symbols.tree
    class_locals = type_parameter_names(node.type_parameters)

    protocol_args: Optional[str] = None
    references = set(type_parameter_references(node.type_parameters))
    for base in node.bases:
      value = base.value
      if isinstance(value, cst.Subscript) and qualify(value.value, self.symbols.imports) in _GENERIC_BASES:
        protocol_args = ", ".join(expression_text(el.slice, tree) for el in value.slice)
        references |= collect_references([el.slice for el in value.slice])

    methods = self._collect_methods(node, class_locals)
    line, _ = self._position(node)
    return AnnotatedBlock(
      interface=export.interface or infer_interface_name(class_name),
      class_name=class_name,
      file=self.symbols.file,
      line=line,
      docstring=node.get_docstring(),
      type_params=type_parameter_text(node.type_parameters, tree),
      protocol_args=protocol_args,
      references=frozenset(references),
      runtime_checkable=export.runtime_checkable,
      methods=tuple(methods),
    )

  def _collect_methods(self, node: cst.ClassDef, class_locals: Set[str]) -> List[MethodSignature]:
    if not isinstance(node.body, cst.IndentedBlock):
      return []
    methods = [
      self._extract_method(stmt, node.name.value, class_locals)
      for stmt in node.body.body
      if isinstance(stmt, cst.FunctionDef) and is_interface_method(stmt.name.value)
    ]
    # When overloads are declared, they alone describe the method.
    overloaded = {m.name for m in methods if "overload" in m.decorators}
    return [m for m in methods if m.name not in overloaded or "overload" in m.decorators]

  def _normalize_decorator(self, decorator: cst.Decorator) -> Optional[str]:
    expr = decorator.decorator
    if isinstance(expr, cst.Call):
      return None
    qualified = qualify(expr, self.symbols.imports)
    if qualified in _DECORATOR_ALIASES:
      return _DECORATOR_ALIASES[qualified]
    if isinstance(expr, cst.Attribute) and isinstance(expr.value, cst.Name) and expr.attr.value in _ACCESSOR_SUFFIXES:
      return f"{expr.value.value}.{expr.attr.value}"
    return None

  def _extract_method(self, fn: cst.FunctionDef, class_name: str, class_locals: Set[str]) -> MethodSignature:
    tree = self.symbols.tree
    name = fn.name.value
    decorators = tuple(d for d in (self._normalize_decorator(dec) for dec in fn.decorators) if d)
    if "staticmethod" in decorators:
      receiver = ReceiverKind.NONE
    elif "classmethod" in decorators:
      receiver = ReceiverKind.CLASS
    else:
      receiver = ReceiverKind.INSTANCE

    params = fn.params
    ordered: List[Tuple[cst.Param, ParameterKind]] = [(p, ParameterKind.POSITIONAL_ONLY) for p in params.posonly_params]
    ordered.extend((p, ParameterKind.POSITIONAL_OR_KEYWORD) for p in params.params)

    receiver_name: Optional[str] = None
    receiver_positional_only = False
    if receiver is not ReceiverKind.NONE:
      if not ordered:
        raise self._error(AnnotationError, f"Method '{class_name}.{name}' has no receiver parameter", fn)
      first, first_kind = ordered.pop(0)
      receiver_name = first.name.value
      receiver_positional_only = first_kind is ParameterKind.POSITIONAL_ONLY and not any(
        kind is ParameterKind.POSITIONAL_ONLY for _, kind in ordered
      )

    if isinstance(params.star_arg, cst.Param):
      ordered.append((params.star_arg, ParameterKind.VAR_POSITIONAL))
    ordered.extend((p, ParameterKind.KEYWORD_ONLY) for p in params.kwonly_params)
    if isinstance(params.star_kwarg, cst.Param):
      ordered.append((params.star_kwarg, ParameterKind.VAR_KEYWORD))

    local = class_locals | type_parameter_names(fn.type_parameters)
    annotations: List[Optional[cst.CSTNode]] = [p.annotation.annotation if p.annotation else None for p, _ in ordered]
    if fn.returns is not None:
      annotations.append(fn.returns.annotation)

    parameters = tuple(
      ParameterSignature(
        name=p.name.value,
        annotation=expression_text(p.annotation.annotation, tree) if p.annotation else None,
        kind=kind,
        has_default=p.default is not None,
      )
      for p, kind in ordered
    )
    line, _ = self._position(fn)
    return MethodSignature(
      name=name,
      receiver=receiver,
      receiver_name=receiver_name,
      receiver_positional_only=receiver_positional_only,
      parameters=parameters,
      return_annotation=expression_text(fn.returns.annotation, tree) if fn.returns else None,
      is_async=fn.asynchronous is not None,
      decorators=decorators,
      type_params=type_parameter_text(fn.type_parameters, tree),
      docstring=fn.get_docstring(),
      references=collect_references(annotations, exclude=local) | type_parameter_references(fn.type_parameters),
      line=line,
    )


class AnnotationExtractor:
  """
  Runs extraction over every source file of a module package.
  """

  def extract_source(self, package: ModulePackage, path: Path, text: str) -> Tuple[ModuleSymbols, List[ScannedBlock]]:
    """
    Parses one file and extracts its blocks.

    Args:
        package: Owning module package.
        path: Absolute path of the file.
        text: File content.

    Returns:
        Tuple[ModuleSymbols, List[ScannedBlock]]: The file's symbol table and results.

    Raises:
        ParseError: If the file is not valid Python.
        AnnotationError: If the export decorator is misused.
    """
    rel = package.relative(path)
    try:
      tree = cst.parse_module(text)
    except cst.ParserSyntaxError as e:
      raise ParseError(e.message, package=package.name, file=rel, line=e.editor_line, column=e.editor_column) from e

    wrapper = MetadataWrapper(tree)
    positions = wrapper.resolve(PositionProvider)
    module_name, is_package = module_name_for(path, package.source_root)
    symbols = SymbolTableBuilder(wrapper.module, module_name, rel, is_package, positions).build()
    collector = ExportCollector(symbols, package.name)
    wrapper.visit(collector)
    return symbols, collector.results

  def extract_package(self, package: ModulePackage) -> PackageExtraction:
    """
    Extracts all blocks of a module package and checks interface consistency.

    Args:
        package: The module package snapshot.

    Returns:
        PackageExtraction: Tagged results and per-file symbol tables.

    Raises:
        ParseError: On malformed source.
        AnnotationError: On misplaced or conflicting annotations.
        FileAccessError: If a source file cannot be read.
    """
    extraction = PackageExtraction(package=package)
    for path in package.source_files:
      try:
        text = path.read_text(encoding="utf-8")
      except UnicodeDecodeError as e:
        raise ParseError(f"Source is not valid UTF-8: {e.reason}", package=package.name, file=package.relative(path))
      except OSError as e:
        raise FileAccessError.from_os_error(e, package.name) from e
      symbols, scanned = self.extract_source(package, path, text)
      extraction.modules[symbols.module_name] = symbols
      extraction.files[symbols.file] = symbols
      extraction.scanned.extend(scanned)

    check_conflicts(package.name, extraction.blocks)
    return extraction


def check_conflicts(package_name: str, blocks: List[AnnotatedBlock]) -> None:
  """
  Ensures blocks sharing an interface name declare the same interface.

  Args:
      package_name: Owning module package.
      blocks: Every annotated block of the package.

  Raises:
      ConflictingAnnotationError: On the first differing pair.
  """
  first_by_interface: Dict[str, AnnotatedBlock] = {}
  for block in sorted(blocks, key=lambda b: (b.file, b.line)):
    first = first_by_interface.setdefault(block.interface, block)
    if first is block:
      continue
    if first.canonical_signature() != block.canonical_signature():
      raise ConflictingAnnotationError(
        f"Interface '{block.interface}' is declared by {first.class_name} ({first.location}) "
        f"and {block.class_name} ({block.location}) with different signatures",
        package=package_name,
        file=block.file,
        line=block.line,
      )
