"""
Name Resolution Helpers for Annotation Expressions.

This module provides the LibCST helpers used to turn annotation expressions
into the two things generation needs from them:

1.  **Text**: the exact source of an annotation on one line, via
    :func:`expression_text`, so it can be passed through verbatim.
2.  **References**: the set of root identifiers an expression depends on, via
    :class:`ReferencedNameCollector`, so the synthesizer can locate and copy
    the declarations or imports that make those names resolvable.
"""

import builtins
from typing import FrozenSet, Iterable, Optional, Set, Union

import libcst as cst

BUILTIN_NAMES: FrozenSet[str] = frozenset(dir(builtins))

# Subscripts whose arguments are values, not type expressions.
_LITERAL_NAMES = frozenset({"Literal", "typing.Literal", "typing_extensions.Literal"})

_EMPTY_MODULE = cst.Module(body=[])


def get_full_name(node: cst.BaseExpression) -> str:
  """
  Resolves a CST Name or Attribute chain to a dot-separated string.

  Args:
    node: The CST node representing the identifier.

  Returns:
    str: The dotted name (e.g. "typing.Protocol"), or an empty string if the
    node is not a pure Name/Attribute chain.

  Example:
    >>> get_full_name(cst.Attribute(value=cst.Name("typing"), attr=cst.Name("Any")))
    'typing.Any'
  """
  if isinstance(node, cst.Name):
    return node.value
  elif isinstance(node, cst.Attribute):
    base = get_full_name(node.value)
    return f"{base}.{node.attr.value}" if base else ""
  return ""


class _WhitespaceFlattener(cst.CSTTransformer):
  """Collapses bracketed line continuations (and their comments) onto one line."""

  def leave_Comma(self, original_node: cst.Comma, updated_node: cst.Comma) -> cst.Comma:
    if isinstance(original_node.whitespace_after, cst.ParenthesizedWhitespace):
      return updated_node.with_changes(whitespace_after=cst.SimpleWhitespace(" "))
    return updated_node

  def leave_ParenthesizedWhitespace(
    self, original_node: cst.ParenthesizedWhitespace, updated_node: cst.ParenthesizedWhitespace
  ) -> cst.SimpleWhitespace:
    return cst.SimpleWhitespace("")


def expression_text(node: cst.CSTNode, module: Optional[cst.Module] = None) -> str:
  """
  Renders an expression as single-line source text.

  Args:
    node: The expression (or any node) to render.
    module: The module the node belongs to, for consistent code generation
      settings. An empty module is used when omitted.

  Returns:
    str: The exact source text, with multi-line brackets joined.
  """
  owner = module or _EMPTY_MODULE
  text = owner.code_for_node(node)
  if "\n" in text:
    text = owner.code_for_node(node.visit(_WhitespaceFlattener()))
  return text.strip()


class ReferencedNameCollector(cst.CSTVisitor):
  """
  Collects the root identifiers an expression refers to.

  ``Dict[str, models.Point]`` yields ``{"Dict", "str", "models"}``. Keyword
  names in calls, attribute tails and ``Literal[...]`` arguments are not
  references. String annotations are parsed as expressions where possible,
  except the metadata of ``Annotated[T, ...]``, which are plain values.

  Attributes:
    names (Set[str]): Accumulated root names.
    parse_strings (bool): Treat string literals as forward references.
  """

  def __init__(self, parse_strings: bool = True) -> None:
    self.names: Set[str] = set()
    self.parse_strings = parse_strings

  def visit_Name(self, node: cst.Name) -> None:
    self.names.add(node.value)

  def visit_Attribute(self, node: cst.Attribute) -> bool:
    node.value.visit(self)
    return False

  def visit_Arg(self, node: cst.Arg) -> bool:
    node.value.visit(self)
    return False

  def visit_Subscript(self, node: cst.Subscript) -> bool:
    name = get_full_name(node.value)
    if name in _LITERAL_NAMES:
      node.value.visit(self)
      return False
    # Annotated[T, *metadata]: only T is a type expression.
    if name.rsplit(".", 1)[-1] == "Annotated" and node.slice:
      node.value.visit(self)
      node.slice[0].visit(self)
      metadata = ReferencedNameCollector(parse_strings=False)
      for element in node.slice[1:]:
        element.visit(metadata)
      self.names |= metadata.names
      return False
    return True

  def visit_SimpleString(self, node: cst.SimpleString) -> None:
    if not self.parse_strings:
      return
    value = node.evaluated_value
    if not isinstance(value, str):
      return
    try:
      parsed = cst.parse_expression(value.strip())
    except cst.ParserSyntaxError:
      return
    parsed.visit(self)

  def visit_Lambda(self, node: cst.Lambda) -> bool:
    return False


def collect_references(
  nodes: Iterable[Optional[cst.CSTNode]],
  parse_strings: bool = True,
  exclude: Iterable[str] = (),
) -> FrozenSet[str]:
  """
  Collects root names referenced by several nodes.

  Args:
    nodes: Nodes to scan. None entries are skipped.
    parse_strings: Whether string literals are forward references.
    exclude: Names bound locally (type parameters) to leave out.

  Returns:
    FrozenSet[str]: The referenced names.
  """
  collector = ReferencedNameCollector(parse_strings=parse_strings)
  for node in nodes:
    if node is not None:
      node.visit(collector)
  return frozenset(collector.names - set(exclude))


def type_parameter_names(params: Optional[cst.TypeParameters]) -> Set[str]:
  """
  Names bound by a PEP 695 type parameter list.

  Args:
    params: The ``[T, *Ts, **P]`` node, or None.

  Returns:
    Set[str]: The bound names.
  """
  if params is None:
    return set()
  return {tp.param.name.value for tp in params.params}


def type_parameter_text(params: Optional[cst.TypeParameters], module: Optional[cst.Module] = None) -> Optional[str]:
  """
  Renders a PEP 695 type parameter list without its brackets.

  Args:
    params: The type parameter list, or None.
    module: Owning module for code generation.

  Returns:
    Optional[str]: ``"K, V: Hashable"``-style text, or None.
  """
  if params is None or not params.params:
    return None
  parts = [expression_text(tp.with_changes(comma=cst.MaybeSentinel.DEFAULT), module) for tp in params.params]
  return ", ".join(parts)


def type_parameter_references(params: Optional[cst.TypeParameters]) -> FrozenSet[str]:
  """Names referenced by bounds and defaults of a type parameter list."""
  if params is None:
    return frozenset()
  nodes = []
  for tp in params.params:
    nodes.append(getattr(tp.param, "bound", None))
    nodes.append(getattr(tp, "default", None))
  return collect_references(nodes, exclude=type_parameter_names(params))


def root_name(dotted: Union[str, cst.BaseExpression]) -> str:
  """Returns the first segment of a dotted name."""
  text = dotted if isinstance(dotted, str) else get_full_name(dotted)
  return text.split(".", 1)[0]
