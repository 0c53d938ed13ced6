"""
Dependency Command Handlers.

Manual edits of a consumer package's manifest dependencies. The consumer
package must already have been generated. Without ``--mod`` the module package
enclosing the current directory is edited.
"""

from pathlib import Path
from typing import Callable, List, Optional

from rich.markup import escape

from modsplit.config import RunConfig
from modsplit.core.package_manager import ConsumerPackageManager
from modsplit.core.scanner import WorkspaceScanner, find_package
from modsplit.errors import ModsplitError, WorkspaceError
from modsplit.models import ConsumerPackage, DependencyChange
from modsplit.utils.console import log_error, log_info, log_success


def _edit(
  root: Optional[Path],
  module: Optional[str],
  edit: Callable[[ConsumerPackageManager, ConsumerPackage], DependencyChange],
) -> DependencyChange:
  config = RunConfig.load(root=root, module_filter=module, ambient_scope=True)
  if not config.module_filter:
    raise WorkspaceError("No module package given: pass --mod or run inside a module package")
  packages = WorkspaceScanner(config).discover()
  package = find_package(packages, config.module_filter, config)
  return edit(ConsumerPackageManager(config), package.consumer)


def handle_add_dependency(root: Optional[Path], module: Optional[str], requirements: List[str]) -> int:
  """
  Handles 'add-dependency' command.

  Args:
      root: Workspace root, or None to discover it.
      module: Module package whose consumer is edited (``alpha`` or ``mod-alpha``),
        or None for the one enclosing the current directory.
      requirements: Requirement strings to add.

  Returns:
      int: Exit code.
  """
  try:
    change = _edit(root, module, lambda manager, consumer: manager.add_dependencies(consumer, requirements))
  except ModsplitError as e:
    log_error(escape(str(e)))
    return int(e.exit_code)

  if change.added:
    log_success(f"Added {escape(', '.join(change.added))}")
  else:
    log_info("All requirements already declared; nothing to add")
  return 0


def handle_remove_dependency(root: Optional[Path], module: Optional[str], requirements: List[str]) -> int:
  """
  Handles 'remove-dependency' command.

  Args:
      root: Workspace root, or None to discover it.
      module: Module package whose consumer is edited, or None for the enclosing one.
      requirements: Requirement strings or names to remove.

  Returns:
      int: Exit code.
  """
  try:
    change = _edit(root, module, lambda manager, consumer: manager.remove_dependencies(consumer, requirements))
  except ModsplitError as e:
    log_error(escape(str(e)))
    return int(e.exit_code)

  if change.removed:
    log_success(f"Removed {escape(', '.join(change.removed))}")
  else:
    log_info("No matching dependencies declared; nothing removed")
  return 0
