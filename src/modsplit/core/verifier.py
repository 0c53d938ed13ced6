"""
Verification Runner.

Type-checks generated consumer packages with an external checker. The default
checker is mypy, run in check-only mode as a subprocess of the current
interpreter; ``verify_command`` in ``[tool.modsplit]`` replaces it with any
tool printing ``file:line[:column]: severity: message [code]`` diagnostics.

A failed check never rolls anything back: the generated files stay on disk for
inspection and the diagnostics are attributed to the consumer package.
"""

import concurrent.futures
import re
import subprocess
import sys
import threading
from typing import Callable, List, Optional, Sequence

from modsplit.config import RunConfig
from modsplit.errors import VerificationError
from modsplit.models import Diagnostic, ModulePackage, VerificationResult
from modsplit.utils.console import log_debug

DEFAULT_COMMAND = (
  sys.executable,
  "-m",
  "mypy",
  "--no-error-summary",
  "--show-column-numbers",
  "--show-error-codes",
  "--no-color-output",
  "--ignore-missing-imports",
  "--follow-imports=silent",
)

DIAGNOSTIC_PATTERN = re.compile(
  r"^(?P<file>[^\n:]+):(?P<line>\d+):(?:(?P<column>\d+):)?\s*"
  r"(?P<severity>error|warning|note):\s*(?P<message>.*?)(?:\s+\[(?P<code>[\w-]+)\])?\s*$"
)

Runner = Callable[..., subprocess.CompletedProcess]


def parse_diagnostics(output: str) -> List[Diagnostic]:
  """
  Parses checker output into structured diagnostics.

  Args:
      output: Combined stdout/stderr of the checker.

  Returns:
      List[Diagnostic]: One entry per recognized line; notes included.
  """
  diagnostics = []
  for line in output.splitlines():
    match = DIAGNOSTIC_PATTERN.match(line.strip())
    if not match:
      continue
    column = match.group("column")
    diagnostics.append(
      Diagnostic(
        file=match.group("file"),
        line=int(match.group("line")),
        column=int(column) if column else None,
        severity=match.group("severity"),
        message=match.group("message"),
        code=match.group("code"),
      )
    )
  return diagnostics


class Verifier:
  """
  Runs the type-check command against consumer packages.

  Attributes:
      config (RunConfig): Run configuration (command override, worker bound).
      runner (Runner): ``subprocess.run``-compatible callable.
  """

  def __init__(self, config: RunConfig, runner: Optional[Runner] = None) -> None:
    self.config = config
    self.runner = runner or subprocess.run

  def command_for(self, package: ModulePackage) -> List[str]:
    """
    Builds the command checking one consumer package.

    Args:
        package: Module package whose consumer is checked.

    Returns:
        List[str]: The argv, ending with the consumer's import directory.
    """
    prefix: Sequence[str] = self.config.verify_command or DEFAULT_COMMAND
    return [*prefix, package.consumer.import_name]

  def verify(self, package: ModulePackage) -> VerificationResult:
    """
    Type-checks the consumer package of one module package.

    Args:
        package: Module package whose consumer was just written.

    Returns:
        VerificationResult: Success flag, diagnostics and raw output.
    """
    consumer = package.consumer
    command = self.command_for(package)
    log_debug(f"Verifying [pkg]{consumer.name}[/pkg]: {' '.join(command)}")
    try:
      proc = self.runner(command, cwd=str(consumer.path), capture_output=True, text=True)
    except OSError as e:
      return VerificationResult(
        package=package.name,
        consumer=consumer.name,
        success=False,
        output=f"Cannot run verification command '{command[0]}': {e.strerror or e}",
        command=command,
      )

    output = "\n".join(part for part in (proc.stdout, proc.stderr) if part).strip()
    diagnostics = parse_diagnostics(output)
    has_errors = any(d.severity == "error" for d in diagnostics)
    return VerificationResult(
      package=package.name,
      consumer=consumer.name,
      success=proc.returncode == 0 and not has_errors,
      returncode=proc.returncode,
      diagnostics=diagnostics,
      output=output,
      command=command,
    )

  def verify_all(
    self,
    packages: Sequence[ModulePackage],
    cancel_event: Optional[threading.Event] = None,
  ) -> List[VerificationResult]:
    """
    Verifies several consumer packages in parallel.

    Args:
        packages: Module packages whose consumers need a check.
        cancel_event: When set, checks not yet started are skipped.

    Returns:
        List[VerificationResult]: Results in the order of ``packages``
        (skipped checks are omitted).
    """
    if not packages:
      return []
    results = {}
    workers = min(self.config.effective_workers, len(packages))
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers, thread_name_prefix="modsplit-verify") as executor:
      futures = {}
      for package in packages:
        if cancel_event is not None and cancel_event.is_set():
          break
        futures[executor.submit(self.verify, package)] = package.name
      for future in concurrent.futures.as_completed(futures):
        results[futures[future]] = future.result()
    return [results[p.name] for p in packages if p.name in results]


def to_error(result: VerificationResult) -> VerificationError:
  """
  Converts a failed verification into the error reported for its package.

  Args:
      result: A failed result.

  Returns:
      VerificationError: Carrying the diagnostics and raw output.
  """
  errors = [d for d in result.diagnostics if d.severity == "error"]
  summary = f"{len(errors)} type error(s)" if errors else (result.output.splitlines() or ["checker failed"])[-1]
  first = errors[0] if errors else None
  return VerificationError(
    f"{result.consumer} failed verification: {summary}",
    package=result.package,
    file=f"{result.consumer}/{first.file}" if first else None,
    line=first.line if first else None,
    column=first.column if first else None,
    diagnostics=result.diagnostics,
    output=result.output,
  )
