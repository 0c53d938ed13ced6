"""
Interface Synthesizer.

Turns the annotated blocks of one module package into the source of its
consumer package. Work happens in two steps:

1.  **Plan** (:meth:`InterfaceSynthesizer.plan`): group blocks by interface
    and resolve every name the signatures mention. Each name ends up as one of:

    - a copied declaration (class, alias, TypeVar, ``type`` statement) taken
      verbatim from the module package, its own references resolved in turn;
    - an alias line (``P = Point``) for an internal import under another name;
    - a copied standard library import;
    - a copied third-party import, which also makes the consumer package depend
      on the providing distribution;
    - a builtin, or another generated interface, needing nothing.

    Anything else fails with :class:`~modsplit.errors.UnresolvedTypeError`.

2.  **Render** (:meth:`InterfaceSynthesizer.render`): a pure function of the
    plan. Imports are sorted, declarations are emitted in dependency order,
    Protocols and their methods in name order. The output is re-parsed with
    LibCST to check its syntax; nothing is reformatted, so copied
    declarations keep the layout of the file they came from.
"""

import heapq
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Set, Tuple

import libcst as cst

from modsplit.analysis.dependencies import ImportKind, classify_import, requirement_for
from modsplit.analysis.imports import ImportBinding
from modsplit.analysis.names import BUILTIN_NAMES
from modsplit.analysis.symbol_table import Declaration, DeclarationKind, ModuleSymbols
from modsplit.core.extractor import PackageExtraction
from modsplit.errors import GenerationError, UnresolvedTypeError
from modsplit.models import INDENT, AnnotatedBlock, ModulePackage, SynthesizedPackage, render_docstring
from modsplit.utils.io import sha256_text

FORMAT_VERSION = "1"
TOOL_NAME = "modsplit"
GENERATED_MARKER = f"automatically generated by {TOOL_NAME}"


@dataclass(frozen=True)
class CopiedDeclaration:
  """
  A declaration copied into the consumer package.

  Attributes:
      name: Name it binds in the consumer package.
      text: Source text, verbatim.
      requires: Names it refers to at module scope.
      origin: ``file:line`` it was copied from.
  """

  name: str
  text: str
  requires: FrozenSet[str] = frozenset()
  origin: str = ""


@dataclass
class InterfacePlan:
  name: str
  block: AnnotatedBlock
  implementations: List[str] = field(default_factory=list)


@dataclass
class SynthesisPlan:
  """
  Resolved inputs of a consumer package, ready to render.
  """

  package: ModulePackage
  interfaces: List[InterfacePlan] = field(default_factory=list)
  imports: Dict[str, ImportBinding] = field(default_factory=dict)
  declarations: Dict[str, CopiedDeclaration] = field(default_factory=dict)
  requirements: Set[str] = field(default_factory=set)
  fingerprint: str = ""

  @property
  def interface_names(self) -> Tuple[str, ...]:
    return tuple(i.name for i in self.interfaces)


def _typing_import(name: str) -> ImportBinding:
  return ImportBinding(local=name, module="typing", name=name)


class _Resolver:
  """
  Resolves referenced names into imports and copied declarations.

  Every name bound in the generated module is registered with an identity
  string; binding one name to two different things is a generation error.
  """

  def __init__(self, extraction: PackageExtraction, interfaces: Set[str]) -> None:
    self.extraction = extraction
    self.package = extraction.package
    self.interfaces = interfaces
    self.bound: Dict[str, str] = {name: f"interface {name}" for name in interfaces}
    self.imports: Dict[str, ImportBinding] = {}
    self.declarations: Dict[str, CopiedDeclaration] = {}
    self.requirements: Set[str] = set()
    self._done: Dict[Tuple[str, str], str] = {}
    self._active: Set[Tuple[str, str]] = set()

  def bind(self, name: str, identity: str, symbols: Optional[ModuleSymbols] = None, line: int = 0) -> bool:
    """
    Registers a name in the generated module.

    Returns:
        bool: True if the name is new, False if already bound to the same thing.

    Raises:
        GenerationError: If the name is already bound to something else.
    """
    existing = self.bound.get(name)
    if existing is None:
      self.bound[name] = identity
      return True
    if existing == identity:
      return False
    raise GenerationError(
      f"Name '{name}' would refer to both {existing} and {identity} in the consumer package",
      package=self.package.name,
      file=symbols.file if symbols else None,
      line=line or None,
    )

  def add_import(self, binding: ImportBinding, symbols: Optional[ModuleSymbols] = None, line: int = 0) -> None:
    plain = binding.name is None and binding.asname is None
    identity = f"module {binding.root}" if plain else binding.render()
    self.bind(binding.local, identity, symbols, line)
    self.imports[binding.render()] = binding

  def resolve(self, name: str, symbols: ModuleSymbols, line: int) -> str:
    """
    Makes ``name``, as seen from ``symbols``, available in the consumer package.

    Args:
        name: Root name referenced.
        symbols: Symbol table of the referencing file.
        line: Referencing line, for error reporting.

    Returns:
        str: The name it is bound to in the consumer package.

    Raises:
        UnresolvedTypeError: If the name cannot be copied or imported.
    """
    key = (symbols.module_name, name)
    if key in self._done:
      return self._done[key]

    declaration = symbols.declarations.get(name)
    if declaration is not None:
      return self._resolve_declaration(declaration, symbols)
    binding = symbols.imports.get(name)
    if binding is not None:
      if key in self._active:
        raise self._unresolved(name, "is part of a circular import chain", symbols, line)
      self._active.add(key)
      try:
        result = self._resolve_import(binding, symbols, line)
      finally:
        self._active.discard(key)
      self._done[key] = result
      return result
    if name in self.interfaces or name in BUILTIN_NAMES:
      return name
    raise self._unresolved(name, f"is neither defined nor imported in {symbols.file}", symbols, line)

  def _unresolved(self, name: str, reason: str, symbols: ModuleSymbols, line: int) -> UnresolvedTypeError:
    return UnresolvedTypeError(name, reason, package=self.package.name, file=symbols.file, line=line or None)

  def _resolve_declaration(self, declaration: Declaration, symbols: ModuleSymbols) -> str:
    name = declaration.name
    if declaration.kind is DeclarationKind.FUNCTION:
      raise self._unresolved(name, "refers to a function, which cannot be copied", symbols, declaration.line)
    if name in symbols.exported_classes:
      raise self._unresolved(
        name,
        "refers to an exported implementation class; use its interface name instead",
        symbols,
        declaration.line,
      )

    self._done[(symbols.module_name, name)] = name
    if not self.bind(name, f"{symbols.module_name}.{name}", symbols, declaration.line):
      return name
    requires = {self.resolve(ref, symbols, declaration.line) for ref in sorted(declaration.references)}
    self.declarations[name] = CopiedDeclaration(
      name=name,
      text=symbols.code_for(declaration.node),
      requires=frozenset(requires),
      origin=f"{symbols.file}:{declaration.line}",
    )
    return name

  def _resolve_import(self, binding: ImportBinding, symbols: ModuleSymbols, line: int) -> str:
    kind = classify_import(binding, self.package.import_names)
    if kind is ImportKind.FUTURE:
      return binding.local
    if kind is not ImportKind.INTERNAL:
      self.add_import(binding, symbols, line)
      if kind is ImportKind.EXTERNAL:
        self.requirements.add(requirement_for(binding.root, self.package.requirements))
      return binding.local

    modules = self.extraction.modules
    target_module = symbols.resolve_relative(binding)
    if binding.name is None or f"{target_module}.{binding.name}" in modules:
      module_ref = target_module if binding.name is None else f"{target_module}.{binding.name}"
      raise self._unresolved(binding.local, f"refers to internal module '{module_ref}'; import the type itself", symbols, line)
    target = modules.get(target_module)
    if target is None or (binding.name not in target.declarations and binding.name not in target.imports):
      raise self._unresolved(binding.local, f"cannot be located in internal module '{target_module}'", symbols, line)

    resolved = self.resolve(binding.name, target, line)
    if resolved != binding.local and self.bind(binding.local, f"alias of {resolved}", symbols, line):
      self.declarations[binding.local] = CopiedDeclaration(
        name=binding.local,
        text=f"{binding.local} = {resolved}",
        requires=frozenset({resolved}),
        origin=f"{symbols.file}:{line}",
      )
    return binding.local


def order_declarations(declarations: Dict[str, CopiedDeclaration]) -> List[CopiedDeclaration]:
  """
  Orders declarations so each follows the declarations it requires.

  Ties are broken alphabetically; members of a dependency cycle are appended
  alphabetically after everything else.

  Args:
      declarations: Copied declarations by name.

  Returns:
      List[CopiedDeclaration]: Emission order.
  """
  deps = {n: {r for r in d.requires if r in declarations and r != n} for n, d in declarations.items()}
  dependents: Dict[str, Set[str]] = defaultdict(set)
  for name, needed in deps.items():
    for dep in needed:
      dependents[dep].add(name)

  remaining = {n: len(needed) for n, needed in deps.items()}
  ready = [n for n, count in remaining.items() if count == 0]
  heapq.heapify(ready)
  ordered: List[str] = []
  while ready:
    name = heapq.heappop(ready)
    ordered.append(name)
    for dependent in dependents[name]:
      remaining[dependent] -= 1
      if remaining[dependent] == 0:
        heapq.heappush(ready, dependent)

  emitted = set(ordered)
  ordered.extend(sorted(n for n in declarations if n not in emitted))
  return [declarations[n] for n in ordered]


def render_imports(imports: Dict[str, ImportBinding]) -> List[str]:
  """
  Renders import statements, sorted and merged per module.

  Args:
      imports: Bindings to import.

  Returns:
      List[str]: ``import x`` lines, then ``from x import a, b`` lines.
  """
  plain = sorted({b.render() for b in imports.values() if b.name is None})
  grouped: Dict[str, Set[str]] = defaultdict(set)
  for binding in imports.values():
    if binding.name is not None:
      alias = f" as {binding.asname}" if binding.asname else ""
      grouped[binding.module].add(f"{binding.name}{alias}")
  from_lines = [f"from {module} import {', '.join(sorted(names))}" for module, names in sorted(grouped.items())]
  return plain + from_lines


def render_interface(interface: InterfacePlan) -> str:
  """
  Renders one Protocol class.

  Args:
      interface: The interface and its representative block.

  Returns:
      str: Class source text.
  """
  block = interface.block
  lines = []
  if block.runtime_checkable:
    lines.append("@runtime_checkable")
  type_params = f"[{block.type_params}]" if block.type_params else ""
  base = f"Protocol[{block.protocol_args}]" if block.protocol_args else "Protocol"
  lines.append(f"class {interface.name}{type_params}({base}):")

  body = []
  if block.docstring:
    body.append(render_docstring(block.docstring, INDENT))
  body.extend(method.render_def(INDENT) for method in block.ordered_methods())
  if not body:
    body.append(f"{INDENT}...")
  return "\n".join(lines) + "\n" + "\n\n".join(body)


class InterfaceSynthesizer:
  """
  Plans and renders consumer packages.
  """

  def plan(self, extraction: PackageExtraction) -> SynthesisPlan:
    """
    Groups blocks into interfaces and resolves every referenced name.

    Args:
        extraction: Result of extracting one module package.

    Returns:
        SynthesisPlan: The resolved plan, fingerprinted.

    Raises:
        UnresolvedTypeError: If a referenced type cannot be located.
        GenerationError: If two things would bind the same name.
    """
    package = extraction.package
    groups: Dict[str, List[AnnotatedBlock]] = defaultdict(list)
    for block in sorted(extraction.blocks, key=lambda b: (b.file, b.line)):
      groups[block.interface].append(block)

    interfaces = [
      InterfacePlan(name=name, block=blocks[0], implementations=[f"{b.file}:{b.class_name}" for b in blocks])
      for name, blocks in sorted(groups.items())
    ]
    resolver = _Resolver(extraction, set(groups))
    resolver.add_import(_typing_import("Protocol"))
    if any(i.block.runtime_checkable for i in interfaces):
      resolver.add_import(_typing_import("runtime_checkable"))
    if any("overload" in m.decorators for i in interfaces for m in i.block.methods):
      resolver.add_import(_typing_import("overload"))

    for interface in interfaces:
      block = interface.block
      symbols = extraction.symbols_for(block)
      for ref in sorted(block.references):
        resolver.resolve(ref, symbols, block.line)
      for method in block.ordered_methods():
        for ref in sorted(method.references):
          resolver.resolve(ref, symbols, method.line)

    plan = SynthesisPlan(
      package=package,
      interfaces=interfaces,
      imports=resolver.imports,
      declarations=resolver.declarations,
      requirements=resolver.requirements,
    )
    plan.fingerprint = fingerprint(plan)
    return plan

  def render(self, plan: SynthesisPlan) -> SynthesizedPackage:
    """
    Renders the consumer package files.

    Args:
        plan: A plan produced by :meth:`plan`.

    Returns:
        SynthesizedPackage: ``<import>/__init__.py`` and ``<import>/py.typed``.

    Raises:
        GenerationError: If the rendered module does not parse. The parse only
          validates; the returned text is exactly what was assembled.
    """
    package = plan.package
    consumer = package.consumer
    sections = [
      "\n".join(
        [
          f"# This file is {GENERATED_MARKER} from {package.name}.",
          f"# Do not edit it by hand; run `{TOOL_NAME} generate` to regenerate it.",
          "# ruff: noqa: F401",
          "# pylint: disable=unused-import",
          '# mypy: disable-error-code="empty-body"',
          f'"""Interfaces exported by {package.name}."""',
        ]
      ),
      "from __future__ import annotations",
      "\n".join(render_imports(plan.imports)),
    ]
    sections.extend(d.text for d in order_declarations(plan.declarations))
    sections.extend(render_interface(i) for i in plan.interfaces)

    exported = sorted(set(plan.interface_names) | set(plan.declarations))
    sections.append("__all__ = [\n" + "".join(f'{INDENT}"{name}",\n' for name in exported) + "]")

    text = "\n\n\n".join(sections[:1] + ["\n\n".join(sections[1:3])] + sections[3:]) + "\n"
    try:
      cst.parse_module(text)
    except cst.ParserSyntaxError as e:
      raise GenerationError(
        f"Generated source does not parse: {e.message}",
        package=package.name,
        file=f"{consumer.name}/{consumer.import_name}/__init__.py",
        line=e.editor_line,
      ) from e

    return SynthesizedPackage(
      files={f"{consumer.import_name}/__init__.py": text, f"{consumer.import_name}/py.typed": ""},
      interfaces=plan.interface_names,
      requirements=tuple(sorted(plan.requirements)),
      fingerprint=plan.fingerprint,
    )


def fingerprint(plan: SynthesisPlan) -> str:
  """
  Hashes everything that determines the rendered output.

  Covers the canonical interface text (signatures, generics, docstrings), the
  resolved imports and copied declarations, and the requirements.

  Args:
      plan: The resolved plan.

  Returns:
      str: Hex SHA-256 digest.
  """
  package = plan.package
  parts = [f"format={FORMAT_VERSION}", f"module={package.name}", f"consumer={package.consumer.name}"]
  parts.extend(render_interface(i) for i in plan.interfaces)
  parts.extend(sorted(plan.imports))
  parts.extend(plan.declarations[name].text for name in sorted(plan.declarations))
  parts.extend(sorted(plan.requirements))
  return sha256_text("\n".join(parts))
