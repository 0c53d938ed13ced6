"""
Module-level Symbol Tables.

Builds, for one parsed source file, the table of names the file defines at
module scope and the names it imports. The synthesizer uses these tables to
locate the declaration behind every name an exported signature mentions, and
to copy that declaration into the consumer package.

Recorded declaration kinds:

- ``class``: ``class Point: ...``
- ``alias``: ``UserId = int``, ``Ids: TypeAlias = list[int]``
- ``typevar``: ``T = TypeVar("T")`` (also ``ParamSpec``, ``TypeVarTuple``, ``NewType``)
- ``type``: PEP 695 ``type Pair = tuple[int, int]``
- ``function``: ``def helper(): ...`` (never copyable)
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Set

import libcst as cst
from libcst.metadata import CodeRange

from modsplit.analysis.imports import ImportBinding, ImportCollector
from modsplit.analysis.names import collect_references, get_full_name, type_parameter_names

_TYPEVAR_FACTORIES = frozenset({"TypeVar", "ParamSpec", "TypeVarTuple", "NewType"})


class DeclarationKind(str, Enum):
  CLASS = "class"
  ALIAS = "alias"
  TYPEVAR = "typevar"
  TYPE = "type"
  FUNCTION = "function"


@dataclass
class Declaration:
  """
  A module-scope name definition.
  """

  name: str
  kind: DeclarationKind
  node: cst.CSTNode
  """The full statement (``ClassDef``, ``FunctionDef`` or ``SimpleStatementLine``)."""

  line: int = 0
  references: FrozenSet[str] = frozenset()
  """Root names the declaration needs at module scope (method bodies excluded)."""


@dataclass
class ModuleSymbols:
  """
  The symbol table of one source file.
  """

  module_name: str
  """Dotted import path, e.g. ``alpha.models``."""

  file: str
  """Path relative to the owning package directory."""

  is_package: bool
  tree: cst.Module
  declarations: Dict[str, Declaration] = field(default_factory=dict)
  imports: Dict[str, ImportBinding] = field(default_factory=dict)
  star_imports: List[str] = field(default_factory=list)
  exported_classes: Set[str] = field(default_factory=set)

  def code_for(self, node: cst.CSTNode) -> str:
    """
    Renders a top-level statement without its leading blank lines.

    Class statements have every method body replaced by ``...`` (docstrings
    kept), so a copied class carries its shape but none of its logic.

    Args:
        node: A statement of this module.

    Returns:
        str: Statement source text, without trailing newline.
    """
    if hasattr(node, "leading_lines"):
      node = node.with_changes(leading_lines=())
    if isinstance(node, cst.ClassDef):
      node = node.visit(MethodBodyStubber())
    return self.tree.code_for_node(node).rstrip("\n")

  def resolve_relative(self, binding: ImportBinding) -> str:
    """
    Absolute dotted module a (possibly relative) import points at.

    Args:
        binding: An import binding of this module.

    Returns:
        str: The absolute module path.
    """
    if not binding.is_relative:
      return binding.module
    parts = self.module_name.split(".") if self.module_name else []
    if not self.is_package:
      parts = parts[:-1]
    if binding.level > 1:
      parts = parts[: len(parts) - (binding.level - 1)]
    if binding.module:
      parts.append(binding.module)
    return ".".join(p for p in parts if p)


class MethodBodyStubber(cst.CSTTransformer):
  """
  Replaces function bodies with ``...``.

  Decorators, signatures and docstrings are kept. Nested functions disappear
  with the body that held them.
  """

  def visit_FunctionDef(self, node: cst.FunctionDef) -> bool:
    return False

  def leave_FunctionDef(self, original_node: cst.FunctionDef, updated_node: cst.FunctionDef) -> cst.FunctionDef:
    body: List[cst.BaseStatement] = []
    docstring = _docstring_statement(original_node.body)
    if docstring is not None:
      body.append(docstring.with_changes(leading_lines=()))
    body.append(cst.SimpleStatementLine(body=[cst.Expr(cst.Ellipsis())]))
    return updated_node.with_changes(body=cst.IndentedBlock(body=body))


def _docstring_statement(body: cst.BaseSuite) -> Optional[cst.SimpleStatementLine]:
  if not isinstance(body, cst.IndentedBlock) or not body.body:
    return None
  first = body.body[0]
  if (
    isinstance(first, cst.SimpleStatementLine)
    and len(first.body) == 1
    and isinstance(first.body[0], cst.Expr)
    and isinstance(first.body[0].value, (cst.SimpleString, cst.ConcatenatedString))
  ):
    return first
  return None


def _class_references(node: cst.ClassDef) -> FrozenSet[str]:
  """Names a class needs at definition time: decorators, bases, class-level annotations and values."""
  local = type_parameter_names(node.type_parameters)
  nodes: List[Optional[cst.CSTNode]] = [d.decorator for d in node.decorators]
  nodes.extend(arg.value for arg in node.bases)
  nodes.extend(arg.value for arg in node.keywords)
  names: Set[str] = set(collect_references(nodes, exclude=local))

  if isinstance(node.body, cst.IndentedBlock):
    body = list(node.body.body)
  else:
    body = [cst.SimpleStatementLine(body=node.body.body)]
  # Names bound in the class body are attributes, not module references.
  defined: Set[str] = set()
  for stmt in body:
    if isinstance(stmt, cst.ClassDef):
      defined.add(stmt.name.value)
      names |= _class_references(stmt)
    elif isinstance(stmt, cst.FunctionDef):
      defined.add(stmt.name.value)
      names |= _function_signature_references(stmt)
    elif isinstance(stmt, cst.SimpleStatementLine):
      for small in stmt.body:
        if isinstance(small, cst.AnnAssign):
          if isinstance(small.target, cst.Name):
            defined.add(small.target.value)
          names |= collect_references([small.annotation.annotation])
          names |= collect_references([small.value], parse_strings=False)
        elif isinstance(small, cst.Assign):
          defined.update(t.target.value for t in small.targets if isinstance(t.target, cst.Name))
          names |= collect_references([small.value], parse_strings=False)
  return frozenset(names - local - defined)


def _function_signature_references(node: cst.FunctionDef) -> FrozenSet[str]:
  local = type_parameter_names(node.type_parameters)
  params = node.params
  all_params = [*params.posonly_params, *params.params, *params.kwonly_params]
  for extra in (params.star_arg, params.star_kwarg):
    if isinstance(extra, cst.Param):
      all_params.append(extra)
  nodes: List[Optional[cst.CSTNode]] = [d.decorator for d in node.decorators]
  for p in all_params:
    nodes.append(p.annotation.annotation if p.annotation else None)
  names = set(collect_references(nodes, exclude=local))
  names |= collect_references([p.default for p in all_params], parse_strings=False, exclude=local)
  if node.returns is not None:
    names |= collect_references([node.returns.annotation], exclude=local)
  return frozenset(names)


def _assignment_kind(value: Optional[cst.BaseExpression]) -> DeclarationKind:
  if isinstance(value, cst.Call) and get_full_name(value.func).rsplit(".", 1)[-1] in _TYPEVAR_FACTORIES:
    return DeclarationKind.TYPEVAR
  return DeclarationKind.ALIAS


class SymbolTableBuilder:
  """
  Builds a :class:`ModuleSymbols` from a parsed module.

  Only direct children of the module body are declarations; definitions inside
  ``if``/``try`` blocks are conditional and are not copied.
  """

  def __init__(
    self,
    tree: cst.Module,
    module_name: str,
    file: str,
    is_package: bool,
    positions: Optional[Dict[cst.CSTNode, CodeRange]] = None,
  ) -> None:
    self.tree = tree
    self.symbols = ModuleSymbols(module_name=module_name, file=file, is_package=is_package, tree=tree)
    self._positions = positions or {}

  def build(self) -> ModuleSymbols:
    """
    Populates imports and declarations.

    Returns:
        ModuleSymbols: The completed table.
    """
    collector = ImportCollector()
    self.tree.visit(collector)
    self.symbols.imports = collector.bindings
    self.symbols.star_imports = collector.star_imports

    for stmt in self.tree.body:
      if isinstance(stmt, cst.ClassDef):
        self._add(stmt.name.value, DeclarationKind.CLASS, stmt, _class_references(stmt))
      elif isinstance(stmt, cst.FunctionDef):
        self._add(stmt.name.value, DeclarationKind.FUNCTION, stmt, frozenset())
      elif isinstance(stmt, cst.SimpleStatementLine):
        for small in stmt.body:
          self._add_small(stmt, small)
    return self.symbols

  def _add_small(self, stmt: cst.SimpleStatementLine, small: cst.BaseSmallStatement) -> None:
    if isinstance(small, cst.Assign):
      refs = collect_references([small.value], parse_strings=False)
      kind = _assignment_kind(small.value)
      for target in small.targets:
        if isinstance(target.target, cst.Name):
          self._add(target.target.value, kind, stmt, refs)
    elif isinstance(small, cst.AnnAssign) and isinstance(small.target, cst.Name):
      refs = collect_references([small.annotation.annotation]) | collect_references(
        [small.value], parse_strings=_is_type_alias_annotation(small.annotation.annotation)
      )
      self._add(small.target.value, _assignment_kind(small.value), stmt, refs)
    elif isinstance(small, cst.TypeAlias):
      local = type_parameter_names(small.type_parameters)
      refs = collect_references([small.value], exclude=local)
      self._add(small.name.value, DeclarationKind.TYPE, stmt, refs)

  def _add(self, name: str, kind: DeclarationKind, node: cst.CSTNode, refs: FrozenSet[str]) -> None:
    self.symbols.declarations[name] = Declaration(
      name=name,
      kind=kind,
      node=node,
      line=self._positions[node].start.line if node in self._positions else 0,
      references=frozenset(refs - {name}),
    )


def _is_type_alias_annotation(annotation: cst.BaseExpression) -> bool:
  return get_full_name(annotation).rsplit(".", 1)[-1] == "TypeAlias"
