"""
Tests for Import Binding Analysis.

Verifies that:
1.  Module-scope imports (including ``if TYPE_CHECKING`` blocks) are collected.
2.  Imports inside functions and classes are ignored.
3.  Decorators resolve through aliases to their qualified path.
"""

import libcst as cst

from modsplit.analysis.imports import ImportBinding, ImportCollector, collect_imports, qualify


CODE = """
import os.path
import numpy as np
from typing import Protocol as P, Dict
from . import models
from ..core.types import Point
from typing import TYPE_CHECKING
from helpers import *

if TYPE_CHECKING:
    from attrs import Factory

def f():
    import json

class C:
    from collections import OrderedDict
"""


def test_collects_module_scope_bindings():
  bindings = collect_imports(cst.parse_module(CODE))
  assert bindings["os"] == ImportBinding(local="os", module="os.path")
  assert bindings["np"] == ImportBinding(local="np", module="numpy", asname="np")
  assert bindings["P"] == ImportBinding(local="P", module="typing", name="Protocol", asname="P")
  assert bindings["Dict"].name == "Dict"
  assert bindings["models"].level == 1
  assert bindings["models"].module == ""
  assert bindings["Point"].level == 2
  assert bindings["Point"].module == "core.types"
  assert "Factory" in bindings
  assert "json" not in bindings
  assert "OrderedDict" not in bindings


def test_star_imports_recorded():
  collector = ImportCollector()
  cst.parse_module(CODE).visit(collector)
  assert collector.star_imports == ["helpers"]


def test_render_and_qualified():
  assert ImportBinding(local="np", module="numpy", asname="np").render() == "import numpy as np"
  binding = ImportBinding(local="Point", module="core.types", name="Point", level=2)
  assert binding.render() == "from ..core.types import Point"
  assert binding.qualified() == "..core.types.Point"
  assert binding.is_relative
  assert ImportBinding(local="P", module="typing", name="Protocol", asname="P").qualified("x") == "typing.Protocol.x"


def test_qualify_decorator_aliases():
  bindings = collect_imports(cst.parse_module("import modsplit as ms\nfrom modsplit import export as ex\nimport modsplit.markers\n"))
  assert qualify(cst.parse_expression("ms.export"), bindings) == "modsplit.export"
  assert qualify(cst.parse_expression("ex"), bindings) == "modsplit.export"
  assert qualify(cst.parse_expression("modsplit.markers.export"), bindings) == "modsplit.markers.export"
  assert qualify(cst.parse_expression("unknown"), bindings) == "unknown"
  assert qualify(cst.parse_expression("f()"), bindings) == ""
