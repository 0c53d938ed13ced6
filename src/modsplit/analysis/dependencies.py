"""
Import Classification and Requirement Mapping.

Decides, for an import binding found in a module package, what copying it into
a consumer package implies:

1.  ``__future__`` imports are dropped; generated modules always enable
    postponed evaluation of annotations.
2.  **Standard Library** imports (``sys.stdlib_module_names``) are copied as-is.
3.  **Internal** imports (relative, or rooted at one of the module package's
    own top-level packages) are followed to the defining file instead.
4.  Everything else is **third-party**: the import is copied and the consumer
    package must depend on the distribution providing it.
"""

import functools
import re
import sys
from enum import Enum
from importlib.metadata import packages_distributions
from typing import Dict, Iterable, List, Optional

from modsplit.analysis.imports import ImportBinding

_REQUIREMENT_NAME = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)")


class ImportKind(str, Enum):
  FUTURE = "future"
  STDLIB = "stdlib"
  INTERNAL = "internal"
  EXTERNAL = "external"


def is_stdlib(name: str) -> bool:
  """
  Determines if a top-level module is part of the Python Standard Library.

  Args:
      name: The root module name.

  Returns:
      True if the module ships with the interpreter.
  """
  return name in sys.stdlib_module_names


def classify_import(binding: ImportBinding, internal_roots: Iterable[str]) -> ImportKind:
  """
  Classifies an import binding.

  Args:
      binding: The binding to classify.
      internal_roots: Top-level import names of the owning module package.

  Returns:
      ImportKind: The category.
  """
  if binding.is_relative:
    return ImportKind.INTERNAL
  root = binding.root
  if root == "__future__":
    return ImportKind.FUTURE
  if root in set(internal_roots):
    return ImportKind.INTERNAL
  if is_stdlib(root):
    return ImportKind.STDLIB
  return ImportKind.EXTERNAL


def normalize_name(name: str) -> str:
  """
  Normalizes a distribution or import name for comparison (PEP 503).

  Args:
      name: e.g. ``"Typing_Extensions"``.

  Returns:
      str: e.g. ``"typing-extensions"``.
  """
  return re.sub(r"[-_.]+", "-", name).lower()


def requirement_name(requirement: str) -> Optional[str]:
  """
  Extracts the distribution name from a requirement string.

  Args:
      requirement: e.g. ``"pydantic>=2; python_version>'3.8'"``.

  Returns:
      Optional[str]: e.g. ``"pydantic"``, or None if unparseable.
  """
  match = _REQUIREMENT_NAME.match(requirement)
  return match.group(1) if match else None




@functools.lru_cache(maxsize=None)
def _distribution_map() -> Dict[str, List[str]]:
  return packages_distributions()


def providing_distributions(import_root: str) -> List[str]:
  """
  Installed distributions that provide a top-level module.

  Args:
      import_root: e.g. ``"yaml"``.

  Returns:
      List[str]: e.g. ``["PyYAML"]``; empty when nothing installed provides it.
  """
  seen: List[str] = []
  for name in _distribution_map().get(import_root, []):
    if name not in seen:
      seen.append(name)
  return seen


def requirement_for(import_root: str, declared: Iterable[str]) -> str:
  """
  Picks the requirement a consumer package needs for a third-party import.

  Import names and distribution names often differ (``attr`` comes from
  ``attrs``, ``yaml`` from ``PyYAML``), so the candidates are the import name
  itself plus every installed distribution providing it. The module package's
  own declared requirement is reused when it names a candidate, so version
  constraints carry over. Otherwise the first providing distribution is used,
  and the bare import name when nothing installed provides it.

  Args:
      import_root: Top-level module imported (e.g. ``"attr"``).
      declared: Requirement strings of the module package manifest.

  Returns:
      str: The requirement string.
  """
  providers = providing_distributions(import_root)
  wanted = {normalize_name(import_root)} | {normalize_name(name) for name in providers}
  for requirement in declared:
    name = requirement_name(requirement)
    if name and normalize_name(name) in wanted:
      return requirement.strip()
  return providers[0] if providers else import_root
