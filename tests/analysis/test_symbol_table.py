"""
Tests for Module-level Symbol Tables.

Verifies that:
1.  Classes, aliases, TypeVars, ``type`` statements and functions are recorded
    with their kind, line and module-scope references.
2.  Names bound inside a class body are not treated as module references.
3.  Declarations render without leading blank lines; copied classes keep
    method signatures but lose method bodies.
4.  Relative imports resolve against the module's package.
"""

import libcst as cst
from libcst.metadata import MetadataWrapper, PositionProvider

from modsplit.analysis.imports import ImportBinding
from modsplit.analysis.symbol_table import DeclarationKind, SymbolTableBuilder

CODE = '''
from dataclasses import dataclass
from typing import TypeVar, TypeAlias

T = TypeVar("T", bound="Base")
UserId = int
Ids: TypeAlias = "list[UserId]"
type Pair = tuple[T, T]


# models
@dataclass
class Point:
    """A point."""

    x: float
    origin: "Point | None" = None

    def shifted(self, by: Offset) -> Point:
        return Point(self.x + by.dx)


def helper() -> None:
    pass
'''


def build(code: str = CODE, module_name: str = "alpha.models", is_package: bool = False):
  wrapper = MetadataWrapper(cst.parse_module(code))
  positions = wrapper.resolve(PositionProvider)
  return SymbolTableBuilder(wrapper.module, module_name, "src/alpha/models.py", is_package, positions).build()


def test_declaration_kinds():
  symbols = build()
  kinds = {name: d.kind for name, d in symbols.declarations.items()}
  assert kinds == {
    "T": DeclarationKind.TYPEVAR,
    "UserId": DeclarationKind.ALIAS,
    "Ids": DeclarationKind.ALIAS,
    "Pair": DeclarationKind.TYPE,
    "Point": DeclarationKind.CLASS,
    "helper": DeclarationKind.FUNCTION,
  }


def test_declaration_references():
  symbols = build()
  assert symbols.declarations["T"].references == {"TypeVar"}
  assert symbols.declarations["Ids"].references == {"TypeAlias", "list", "UserId"}
  assert symbols.declarations["Pair"].references == {"tuple", "T"}


def test_class_references_exclude_body_names():
  """
  Scenario: A class references itself in an annotation and a type from elsewhere.
  Expectation: Self-references and body-bound names are dropped; the rest kept.
  """
  refs = build().declarations["Point"].references
  assert "dataclass" in refs
  assert "float" in refs
  assert "Offset" in refs
  assert "Point" not in refs
  assert "x" not in refs
  assert "shifted" not in refs


def test_lines_recorded():
  symbols = build()
  assert symbols.declarations["T"].line == 5
  assert symbols.declarations["Point"].line == 13


def test_code_for_strips_leading_lines():
  symbols = build()
  text = symbols.code_for(symbols.declarations["Point"].node)
  assert text.startswith("@dataclass\nclass Point:")
  assert text.endswith("def shifted(self, by: Offset) -> Point:\n        ...")
  assert "return" not in text


STUBBED = '''
@dataclass
class Point:
    x: int

    @property
    def clamped(self) -> int:
        """Clamped x."""
        return _clamp(self.x)

    def scaled(self, by: int) -> "Point": return Point(self.x * by)

    class Meta:
        def describe(self) -> str:
            def inner() -> str:
                return _name()
            return inner()
'''


def test_code_for_stubs_method_bodies():
  """
  Scenario: A copied class has methods calling module-private helpers.
  Expectation: Bodies become ``...``; decorators, signatures and docstrings stay.
  """
  symbols = build(STUBBED)
  text = symbols.code_for(symbols.declarations["Point"].node)
  assert "_clamp" not in text
  assert "_name" not in text
  assert "inner" not in text
  assert '    @property\n    def clamped(self) -> int:\n        """Clamped x."""\n        ...\n' in text
  assert '    def scaled(self, by: int) -> "Point":\n        ...\n' in text
  assert text.endswith("    class Meta:\n        def describe(self) -> str:\n            ...")
  assert "x: int" in text


def test_code_for_keeps_non_class_statements():
  symbols = build("UserId  =  int\n")
  assert symbols.code_for(symbols.declarations["UserId"].node) == "UserId  =  int"


def test_imports_attached():
  symbols = build()
  assert symbols.imports["dataclass"].module == "dataclasses"


def test_resolve_relative():
  module = build("from .types import X\n", module_name="alpha.models")
  assert module.resolve_relative(ImportBinding(local="X", module="types", name="X", level=1)) == "alpha.types"
  assert module.resolve_relative(ImportBinding(local="X", module="", name="X", level=2)) == ""

  package = build("", module_name="alpha.sub", is_package=True)
  assert package.resolve_relative(ImportBinding(local="X", module="types", name="X", level=1)) == "alpha.sub.types"
  assert package.resolve_relative(ImportBinding(local="X", module="types", name="X", level=2)) == "alpha.types"
  assert package.resolve_relative(ImportBinding(local="os", module="os")) == "os"
