"""
Generate Command Handler.

Runs the generation pipeline and renders its report: a summary table of every
module package, the errors of failed packages (including type-check
diagnostics), the aggregated dependency changes and, optionally, a JSON dump
of the full :class:`~modsplit.models.RunReport`.
"""

from pathlib import Path
from typing import Any, Dict, Optional

from rich.markup import escape
from rich.table import Table

from modsplit.config import RunConfig
from modsplit.core.pipeline import GenerationPipeline
from modsplit.enums import ExitCode, PackageOutcome, RunStatus, worst_exit_code
from modsplit.errors import ModsplitError
from modsplit.models import PackageResult, RunReport
from modsplit.utils.console import console, log_error, log_info, log_success, log_warning

_OUTCOME_LABELS = {
  PackageOutcome.SKIPPED_FRESH: "[dim]fresh[/dim]",
  PackageOutcome.NO_EXPORTS: "[dim]no exports[/dim]",
  PackageOutcome.UNCHANGED: "unchanged",
  PackageOutcome.WRITTEN: "[green]written[/green]",
  PackageOutcome.FAILED: "[bold red]failed[/bold red]",
  PackageOutcome.ABANDONED: "[yellow]abandoned[/yellow]",
}


def format_error(info: Dict[str, Any]) -> str:
  """
  Formats an error payload (see ``ModsplitError.to_info``) as one line.

  Args:
      info: The error payload.

  Returns:
      str: ``[package] file:line:column: message``.
  """
  location = ":".join(str(info[k]) for k in ("file", "line", "column") if info.get(k) is not None)
  scope = f"[{info['package']}] " if info.get("package") else ""
  prefix = f"{location}: " if location else ""
  return f"{scope}{prefix}{info.get('message', '')}"


def log_ambient_scope(config: RunConfig, requested: Optional[str]) -> None:
  """Tells the user when the current directory narrowed the run to one module package."""
  if requested is None and config.module_filter:
    name = escape(config.module_filter)
    log_info(f"Limited to [pkg]{name}[/pkg] (current directory); use --workspace for all module packages")


def handle_generate(
  root: Optional[Path],
  force: bool = False,
  module_filter: Optional[str] = None,
  skip_verify: bool = False,
  workers: Optional[int] = None,
  json_report: Optional[Path] = None,
  workspace: bool = False,
) -> int:
  """
  Handles the 'generate' command (also the default action).

  Args:
      root: Workspace root, or None to discover it from the current directory.
      force: Regenerate every package regardless of timestamps.
      module_filter: Restrict the run to one module package.
      skip_verify: Do not type-check the generated packages.
      workers: Worker pool size override.
      json_report: Optional path receiving the run report as JSON.
      workspace: Process every module package even when run inside one.

  Returns:
      int: The run's exit code.
  """
  try:
    config = RunConfig.load(
      root=root,
      force=True if force else None,
      module_filter=module_filter,
      verify=False if skip_verify else None,
      workers=workers,
      ambient_scope=not workspace,
    )
  except ModsplitError as e:
    log_error(escape(str(e)))
    return int(e.exit_code)

  log_info(f"Workspace root: [path]{config.root}[/path]")
  log_ambient_scope(config, module_filter)
  report = GenerationPipeline(config).run()
  _print_report(report)

  exit_code = report.exit_code
  if json_report:
    exit_code = worst_exit_code([exit_code, _save_report(report, json_report)])
  return int(exit_code)


def _save_report(report: RunReport, path: Path) -> ExitCode:
  try:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wt", encoding="utf-8") as f:
      f.write(report.model_dump_json(indent=2))
      f.write("\n")
  except OSError as e:
    log_error(f"Failed to save report: {escape(str(e))}")
    return ExitCode.IO
  log_success(f"Run report saved to [path]{path}[/path]")
  return ExitCode.SUCCESS


def _details(result: PackageResult) -> str:
  if result.error:
    return escape(result.error.get("message", ""))
  if result.files_written:
    return escape(", ".join(result.files_written))
  return ""


def _print_report(report: RunReport) -> None:
  """
  Renders a run report to the console.

  Args:
      report: The finalized run report.
  """
  for info in report.errors:
    log_error(escape(format_error(info)))

  if report.results:
    table = Table(title="Generation Report")
    table.add_column("Module", style="cyan")
    table.add_column("Consumer")
    table.add_column("Outcome", justify="center")
    table.add_column("Interfaces")
    table.add_column("Details", overflow="fold")
    for result in report.results:
      table.add_row(
        result.package,
        result.consumer,
        _OUTCOME_LABELS[result.outcome],
        escape(", ".join(result.interfaces)),
        _details(result),
      )
    console.print(table)

  for result in report.results:
    if not result.failed or not result.error:
      continue
    log_error(escape(format_error(result.error)))
    if result.verification is not None:
      for diagnostic in result.verification.diagnostics:
        console.print(f"    {escape(result.consumer)}/{escape(str(diagnostic))}")
      if not result.verification.diagnostics and result.verification.output:
        console.print(escape(result.verification.output))

  if report.dependency_summary.packages:
    log_info(report.dependency_summary.describe())

  written = report.count(PackageOutcome.WRITTEN)
  failed = report.count(PackageOutcome.FAILED)
  if report.status is RunStatus.CANCELLED:
    abandoned = report.count(PackageOutcome.ABANDONED)
    log_warning(f"Run cancelled: {written} written, {abandoned} abandoned.")
  elif report.status is RunStatus.FAILED:
    log_error(f"Generation failed (exit code {int(report.exit_code)}): {failed} package(s) failed.")
  else:
    log_success(f"Generation complete: {written} written, {len(report.results) - written} up to date.")
