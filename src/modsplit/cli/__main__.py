"""
Main Entry Point for modsplit CLI.

This module handles argument parsing and dispatches to specific command
handlers defined in `modsplit.cli.commands`.

``generate`` is the default command: ``modsplit --force`` is the same as
``modsplit generate --force``. Global options are accepted before or after
the command name.

Run from inside a module package, every command works on that package only;
``--mod`` names another one and ``--workspace`` selects all of them.
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from modsplit import __version__
from modsplit.cli import commands
from modsplit.utils.console import set_verbosity


def _positive_int(value: str) -> int:
  try:
    number = int(value)
  except ValueError:
    raise argparse.ArgumentTypeError(f"invalid worker count: '{value}'")
  if number < 1:
    raise argparse.ArgumentTypeError("worker count must be at least 1")
  return number


def _add_global_options(parser: argparse.ArgumentParser, suppress: bool) -> None:
  """
  Registers options shared by every command.

  Subcommand copies use ``SUPPRESS`` defaults so they never overwrite a value
  given before the command name.
  """
  parser.add_argument(
    "--root",
    type=Path,
    default=argparse.SUPPRESS if suppress else None,
    help="Workspace root (default: nearest directory with [tool.modsplit], else the current directory)",
  )
  parser.add_argument(
    "-v",
    "--verbose",
    action="store_true",
    default=argparse.SUPPRESS if suppress else False,
    help="Show debug output",
  )


def _add_scope_option(parser: argparse.ArgumentParser, suppress: bool) -> None:
  parser.add_argument(
    "--workspace",
    action="store_true",
    default=argparse.SUPPRESS if suppress else False,
    help="Process every module package, even when run inside one (opposite of --mod)",
  )


def _add_generate_options(parser: argparse.ArgumentParser, suppress: bool) -> None:
  default = argparse.SUPPRESS if suppress else None
  parser.add_argument(
    "--force",
    action="store_true",
    default=argparse.SUPPRESS if suppress else False,
    help="Regenerate every module package regardless of timestamps",
  )
  parser.add_argument("--mod", dest="module_filter", default=default, help="Only process this module package")
  parser.add_argument(
    "--skip-verify",
    action="store_true",
    default=argparse.SUPPRESS if suppress else False,
    help="Do not type-check generated consumer packages",
  )
  parser.add_argument("--workers", type=_positive_int, default=default, help="Worker pool size (default: CPU count)")
  parser.add_argument("--json-report", type=Path, default=default, help="Save the run report to a JSON file")


def build_parser() -> argparse.ArgumentParser:
  """
  Builds the argument parser.

  Returns:
      argparse.ArgumentParser: The configured parser.
  """
  parser = argparse.ArgumentParser(
    prog="modsplit",
    description="modsplit: Protocol-only consumer packages generated from annotated module packages",
  )
  parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
  _add_global_options(parser, suppress=False)
  _add_scope_option(parser, suppress=False)
  _add_generate_options(parser, suppress=False)

  subparsers = parser.add_subparsers(dest="command")

  # --- Command: GENERATE (default) ---
  cmd_gen = subparsers.add_parser("generate", help="Generate stale consumer packages (default command)")
  _add_global_options(cmd_gen, suppress=True)
  _add_scope_option(cmd_gen, suppress=True)
  _add_generate_options(cmd_gen, suppress=True)

  # --- Command: LIST ---
  cmd_list = subparsers.add_parser("list", help="List module packages and their consumer packages")
  _add_global_options(cmd_list, suppress=True)
  _add_scope_option(cmd_list, suppress=True)
  cmd_list.add_argument("--mod", dest="module_filter", default=argparse.SUPPRESS, help="Only show this module package")

  # --- Command: ADD-DEPENDENCY ---
  cmd_add = subparsers.add_parser("add-dependency", help="Add dependencies to a consumer package manifest")
  _add_global_options(cmd_add, suppress=True)
  cmd_add.add_argument(
    "--mod", dest="module", default=None, help="Module package whose consumer is edited (default: the enclosing one)"
  )
  cmd_add.add_argument("requirements", nargs="+", help="Requirement strings (e.g. 'attrs>=23')")

  # --- Command: REMOVE-DEPENDENCY ---
  cmd_rm = subparsers.add_parser("remove-dependency", help="Remove dependencies from a consumer package manifest")
  _add_global_options(cmd_rm, suppress=True)
  cmd_rm.add_argument(
    "--mod", dest="module", default=None, help="Module package whose consumer is edited (default: the enclosing one)"
  )
  cmd_rm.add_argument("requirements", nargs="+", help="Requirement names to remove")

  return parser


def main(argv: Optional[List[str]] = None) -> int:
  """
  Main CLI entry point.

  Parses arguments via argparse and calls the appropriate handler function.

  Args:
      argv: Optional list of command line arguments (defaults to sys.argv).

  Returns:
      int: Exit code (0 for success, see ``modsplit.enums.ExitCode`` otherwise).
  """
  args = build_parser().parse_args(argv)
  set_verbosity(args.verbose)

  if args.command in (None, "generate"):
    return commands.handle_generate(
      args.root,
      force=args.force,
      module_filter=args.module_filter,
      skip_verify=args.skip_verify,
      workers=args.workers,
      json_report=args.json_report,
      workspace=args.workspace,
    )

  elif args.command == "list":
    return commands.handle_list(args.root, args.module_filter, workspace=args.workspace)

  elif args.command == "add-dependency":
    return commands.handle_add_dependency(args.root, args.module, args.requirements)

  elif args.command == "remove-dependency":
    return commands.handle_remove_dependency(args.root, args.module, args.requirements)

  return 0


if __name__ == "__main__":
  sys.exit(main())
