"""
Import Binding Analysis.

Maps every name a module binds through ``import`` statements to where it comes
from. Only module-scope imports are collected, including those nested in
module-level ``if``/``try`` blocks such as ``if TYPE_CHECKING:``; imports inside
functions and classes are local to those scopes and are ignored.

The resulting :class:`ImportBinding` objects serve three consumers:

1.  Recognizing the export decorator through whatever alias it was imported as.
2.  Classifying a referenced name as standard library, third-party or internal.
3.  Re-emitting the exact import in a generated consumer package.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

import libcst as cst

from modsplit.analysis.names import get_full_name


@dataclass(frozen=True)
class ImportBinding:
  """
  A single name bound by an import statement.

  Attributes:
      local: The name bound in the importing module.
      module: Imported module path, without leading dots.
      name: The imported member for ``from`` imports, None for ``import x``.
      asname: Explicit alias, if any.
      level: Number of leading dots of a relative import.
  """

  local: str
  module: str
  name: Optional[str] = None
  asname: Optional[str] = None
  level: int = 0

  @property
  def is_relative(self) -> bool:
    return self.level > 0

  @property
  def root(self) -> str:
    """Top-level package of an absolute import."""
    return self.module.split(".", 1)[0]

  def qualified(self, rest: str = "") -> str:
    """
    Dotted path the bound name stands for.

    Args:
        rest: Attribute path accessed on the bound name.

    Returns:
        str: e.g. ``typing.Protocol`` for ``from typing import Protocol``.
    """
    dots = "." * self.level
    if self.name is not None:
      base = f"{dots}{self.module}.{self.name}" if self.module else f"{dots}{self.name}"
    elif self.asname is not None:
      base = self.module
    else:
      base = self.local
    return f"{base}.{rest}" if rest else base

  def render(self) -> str:
    """Source text of an import statement binding only this name."""
    alias = f" as {self.asname}" if self.asname else ""
    if self.name is None:
      return f"import {self.module}{alias}"
    return f"from {'.' * self.level}{self.module} import {self.name}{alias}"


def _dotted(node: Optional[cst.BaseExpression]) -> str:
  return get_full_name(node) if node is not None else ""


class ImportCollector(cst.CSTVisitor):
  """
  Collects module-scope import bindings.

  Attributes:
      bindings (Dict[str, ImportBinding]): Local name to binding. Later
          bindings of the same name replace earlier ones.
      star_imports (List[str]): Modules imported with ``*``.
  """

  def __init__(self) -> None:
    self.bindings: Dict[str, ImportBinding] = {}
    self.star_imports: List[str] = []

  def visit_FunctionDef(self, node: cst.FunctionDef) -> bool:
    return False

  def visit_ClassDef(self, node: cst.ClassDef) -> bool:
    return False

  def visit_Import(self, node: cst.Import) -> None:
    for alias in node.names:
      module = _dotted(alias.name)
      asname = alias.asname.name.value if alias.asname and isinstance(alias.asname.name, cst.Name) else None
      local = asname or module.split(".", 1)[0]
      self.bindings[local] = ImportBinding(local=local, module=module, asname=asname)

  def visit_ImportFrom(self, node: cst.ImportFrom) -> None:
    module = _dotted(node.module)
    level = len(node.relative)
    if isinstance(node.names, cst.ImportStar):
      self.star_imports.append("." * level + module)
      return
    for alias in node.names:
      name = _dotted(alias.name)
      asname = alias.asname.name.value if alias.asname and isinstance(alias.asname.name, cst.Name) else None
      local = asname or name
      self.bindings[local] = ImportBinding(local=local, module=module, name=name, asname=asname, level=level)


def collect_imports(module: cst.Module) -> Dict[str, ImportBinding]:
  """
  Convenience wrapper returning the module-scope bindings of a parsed module.

  Args:
      module: Parsed LibCST module.

  Returns:
      Dict[str, ImportBinding]: Local name to binding.
  """
  collector = ImportCollector()
  module.visit(collector)
  return collector.bindings


def qualify(expression: cst.BaseExpression, bindings: Dict[str, ImportBinding]) -> str:
  """
  Resolves a Name/Attribute chain to the dotted path it refers to.

  ``m.export`` with ``import modsplit as m`` resolves to ``modsplit.export``.
  Names without an import binding resolve to themselves.

  Args:
      expression: The decorator or base expression.
      bindings: Import bindings of the module.

  Returns:
      str: The qualified dotted name, or an empty string for other expressions.
  """
  full = get_full_name(expression)
  if not full:
    return ""
  head, _, rest = full.partition(".")
  binding = bindings.get(head)
  if binding is None:
    return full
  if binding.name is None and binding.asname is None:
    # `import a.b` binds `a`; `a.b.X` is already fully qualified.
    return full
  return binding.qualified(rest)
