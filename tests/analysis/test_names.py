"""
Tests for Annotation Name Helpers.

Verifies that:
1.  Annotation text is passed through verbatim, with multi-line brackets joined.
2.  Root-name collection skips attribute tails, keywords and Literal values.
3.  String annotations are treated as forward references.
4.  PEP 695 type parameters are rendered and excluded from references.
"""

import libcst as cst

from modsplit.analysis.names import (
  collect_references,
  expression_text,
  get_full_name,
  root_name,
  type_parameter_names,
  type_parameter_references,
  type_parameter_text,
)


def refs(code: str) -> set:
  return set(collect_references([cst.parse_expression(code)]))


def test_get_full_name():
  assert get_full_name(cst.parse_expression("typing.Protocol")) == "typing.Protocol"
  assert get_full_name(cst.parse_expression("x")) == "x"
  assert get_full_name(cst.parse_expression("f().x")) == ""


def test_expression_text_verbatim():
  assert expression_text(cst.parse_expression("Dict[str,  'Point']")) == "Dict[str,  'Point']"


def test_expression_text_joins_lines():
  """
  Scenario: An annotation spans several lines inside brackets.
  Expectation: Rendered on one line, comments dropped.
  """
  module = cst.parse_module("x: Dict[\n    str,  # key\n    int,\n]\n")
  annotation = module.body[0].body[0].annotation.annotation
  text = expression_text(annotation, module)
  assert "\n" not in text
  assert text.replace(" ", "") == "Dict[str,int,]"


def test_references_roots_only():
  assert refs("Dict[str, models.Point]") == {"Dict", "str", "models"}


def test_references_skip_literal_values():
  assert refs("Literal['a', 'b']") == {"Literal"}
  assert refs("typing.Literal['Point']") == {"typing"}


def test_references_forward_strings():
  assert refs("List['Point']") == {"List", "Point"}
  assert refs("'not a type !'") == set()


def test_references_skip_call_keywords():
  assert refs("Annotated[int, Field(gt=0)]") == {"Annotated", "int", "Field"}


def test_references_annotated_metadata_are_values():
  """
  Scenario: ``Annotated`` carries string metadata next to the annotated type.
  Expectation: Only the first argument is read as a (possibly quoted) type.
  """
  assert refs("Annotated[int, 'positive']") == {"Annotated", "int"}
  assert refs("typing.Annotated['Point', 'unit: m', Gt(0)]") == {"typing", "Point", "Gt"}
  assert refs("t.Annotated[List['Point'], 'Other']") == {"t", "List", "Point"}


def test_references_exclude():
  node = cst.parse_expression("Mapping[K, V]")
  assert set(collect_references([node, None], exclude={"K", "V"})) == {"Mapping"}


def test_type_parameters():
  module = cst.parse_module("class Box[K, V: Hashable]:\n    pass\n")
  params = module.body[0].type_parameters
  assert type_parameter_names(params) == {"K", "V"}
  assert type_parameter_text(params, module) == "K, V: Hashable"
  assert type_parameter_references(params) == {"Hashable"}
  assert type_parameter_text(None) is None
  assert type_parameter_references(None) == frozenset()


def test_root_name():
  assert root_name("a.b.c") == "a"
  assert root_name(cst.parse_expression("x.y")) == "x"
