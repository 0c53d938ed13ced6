"""CLI listing command."""

import os
from pathlib import Path
from typing import Optional

from rich.markup import escape
from rich.table import Table

from modsplit.config import RunConfig
from modsplit.core.package_manager import ConsumerPackageManager
from modsplit.core.scanner import WorkspaceScanner
from modsplit.errors import ModsplitError
from modsplit.cli.handlers.generate import log_ambient_scope
from modsplit.utils.console import console, log_error


def handle_list(root: Optional[Path], module_filter: Optional[str] = None, workspace: bool = False) -> int:
  """
  Handles 'list' command.

  Prints every discovered module package with its consumer package and the
  consumer's declared dependencies. Nothing is written.

  Args:
      root: Workspace root, or None to discover it.
      module_filter: Show only this module package.
      workspace: Show every module package even when run inside one.

  Returns:
      int: Exit code.
  """
  try:
    config = RunConfig.load(root=root, module_filter=module_filter, ambient_scope=not workspace)
    log_ambient_scope(config, module_filter)
    packages = WorkspaceScanner(config).scan()
    manager = ConsumerPackageManager(config)
    rows = []
    for package in packages:
      dependencies = manager.consumer_dependencies(package.consumer)
      rows.append(
        (
          package.name,
          package.consumer.name,
          "yes" if package.consumer.exists else "no",
          escape(", ".join(dependencies or [])),
          escape(os.path.relpath(package.path, config.root)),
        )
      )
  except ModsplitError as e:
    log_error(escape(str(e)))
    return int(e.exit_code)

  table = Table(title=f"Module Packages ({config.root})")
  table.add_column("Module", style="cyan")
  table.add_column("Consumer")
  table.add_column("Generated", justify="center")
  table.add_column("Dependencies")
  table.add_column("Path", style="bold blue")
  for row in rows:
    table.add_row(*row)
  console.print(table)
  return 0
