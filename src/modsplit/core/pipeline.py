"""
Generation Pipeline.

Coordinates one run over the workspace:

1.  **Scan** the workspace once (timestamps are snapshotted here and never
    re-read). Scan failures abort the run.
2.  **Generate** each module package independently on a bounded thread pool:
    staleness gate, extraction, planning, record short-circuit, rendering and
    writing. A failure fails only its own package.
3.  **Verify**, after all writes have finished, every consumer package written
    in this run or whose generation record is not yet verified. Packages that
    pass have their record marked verified.

Only the coordinating thread touches the :class:`~modsplit.models.RunReport`;
workers return their :class:`~modsplit.models.PackageResult` through futures.

Cancellation (``KeyboardInterrupt`` in the coordinator, or :meth:`cancel` from
another thread) lets in-flight packages finish their atomic writes, abandons
packages not yet started, skips verification, and reports ``cancelled``.
"""

import concurrent.futures
import threading
from typing import Dict, List, Optional

from modsplit.config import RunConfig
from modsplit.core import staleness
from modsplit.core.extractor import AnnotationExtractor
from modsplit.core.package_manager import ConsumerPackageManager
from modsplit.core.records import load_record, record_matches
from modsplit.core.scanner import WorkspaceScanner
from modsplit.core.synthesizer import InterfaceSynthesizer
from modsplit.core.verifier import Verifier, to_error
from modsplit.enums import PackageOutcome, RunStatus
from modsplit.errors import FileAccessError, ModsplitError
from modsplit.models import DependencySummary, ModulePackage, PackageResult, RunReport
from modsplit.utils.console import log_debug, log_info, log_warning


class GenerationPipeline:
  """
  Runs scan, generation and verification for one configuration.

  Attributes:
      config (RunConfig): Run configuration.
      scanner (WorkspaceScanner): Package discovery.
      extractor (AnnotationExtractor): Source extraction.
      synthesizer (InterfaceSynthesizer): Planning and rendering.
      manager (ConsumerPackageManager): Disk writes.
      verifier (Verifier): Type-check runner.
  """

  def __init__(
    self,
    config: RunConfig,
    verifier: Optional[Verifier] = None,
    manager: Optional[ConsumerPackageManager] = None,
  ) -> None:
    self.config = config
    self.scanner = WorkspaceScanner(config)
    self.extractor = AnnotationExtractor()
    self.synthesizer = InterfaceSynthesizer()
    self.manager = manager or ConsumerPackageManager(config)
    self.verifier = verifier or Verifier(config)
    self._cancel = threading.Event()

  def cancel(self) -> None:
    """Requests cancellation. Packages not yet started are abandoned."""
    self._cancel.set()

  @property
  def cancelled(self) -> bool:
    return self._cancel.is_set()

  def run(self) -> RunReport:
    """
    Executes a full run.

    Returns:
        RunReport: Per-package results, dependency summary, status and exit code.
    """
    report = RunReport(root=str(self.config.root))
    try:
      packages = self.scanner.scan()
    except ModsplitError as e:
      report.errors.append(e.to_info())
      return report.finalize()

    log_info(f"Found {len(packages)} module package(s) under [path]{self.config.root}[/path]")
    results = self._generate_all(packages)
    report.results = [results[p.name] for p in packages]
    report.dependency_summary = _summarize_dependencies(report.results)

    if self.cancelled:
      report.status = RunStatus.CANCELLED
    elif self.config.verify:
      self._verify(packages, report)
    return report.finalize()

  def process_package(self, package: ModulePackage) -> PackageResult:
    """
    Runs the generation steps for one module package.

    Errors are converted into a FAILED result; nothing propagates.

    Args:
        package: Scan snapshot of the module package.

    Returns:
        PackageResult: The outcome.
    """
    result = PackageResult(package=package.name, consumer=package.consumer.name, outcome=PackageOutcome.FAILED)
    try:
      self._process(package, result)
    except ModsplitError as e:
      e.with_package(package.name)
      result.outcome = PackageOutcome.FAILED
      result.error = e.to_info()
      result.exit_code = e.exit_code
    except OSError as e:
      error = FileAccessError.from_os_error(e, package.name)
      result.outcome = PackageOutcome.FAILED
      result.error = error.to_info()
      result.exit_code = error.exit_code
    return result

  def _process(self, package: ModulePackage, result: PackageResult) -> None:
    record = load_record(package, self.config)
    reason = staleness.evaluate(package, self.config, record)
    result.reason = reason
    if reason is None:
      log_debug(f"[pkg]{package.name}[/pkg] is fresh")
      result.outcome = PackageOutcome.SKIPPED_FRESH
      result.interfaces = list(record.interfaces) if record else []
      return

    log_debug(f"Processing [pkg]{package.name}[/pkg] ({reason.value})")
    extraction = self.extractor.extract_package(package)
    if not extraction.blocks:
      if package.consumer.exists:
        log_warning(f"{package.name} exports no interfaces; leaving existing {package.consumer.name} untouched")
      self.manager.record_no_exports(package)
      result.outcome = PackageOutcome.NO_EXPORTS
      return

    plan = self.synthesizer.plan(extraction)
    result.interfaces = list(plan.interface_names)
    if record_matches(record, plan.fingerprint, package.consumer.path):
      log_debug(f"[pkg]{package.name}[/pkg] interfaces unchanged (fingerprint {plan.fingerprint[:12]})")
      result.outcome = PackageOutcome.UNCHANGED
      result.needs_verification = not record.verified
      return

    synthesized = self.synthesizer.render(plan)
    written = self.manager.write(package, synthesized)
    result.files_written = written.files_written
    result.dependencies = written.dependencies
    result.outcome = PackageOutcome.WRITTEN if written.changed else PackageOutcome.UNCHANGED
    result.needs_verification = True

  def _generate_all(self, packages: List[ModulePackage]) -> Dict[str, PackageResult]:
    results: Dict[str, PackageResult] = {}
    workers = min(self.config.effective_workers, len(packages))
    executor = concurrent.futures.ThreadPoolExecutor(max_workers=workers, thread_name_prefix="modsplit-gen")
    futures: Dict[concurrent.futures.Future, ModulePackage] = {}
    try:
      for package in packages:
        futures[executor.submit(self._guarded_process, package)] = package
      for future in concurrent.futures.as_completed(futures):
        package = futures[future]
        results[package.name] = future.result()
        _log_result(results[package.name])
    except KeyboardInterrupt:
      log_warning("Interrupted; finishing in-flight packages")
      self.cancel()
    finally:
      for future in futures:
        future.cancel()
      executor.shutdown(wait=True)

    for future, package in futures.items():
      if package.name in results:
        continue
      if future.cancelled():
        results[package.name] = _abandoned(package)
      else:
        results[package.name] = future.result()
    for package in packages:
      results.setdefault(package.name, _abandoned(package))
    return results

  def _guarded_process(self, package: ModulePackage) -> PackageResult:
    if self.cancelled:
      return _abandoned(package)
    return self.process_package(package)

  def _verify(self, packages: List[ModulePackage], report: RunReport) -> None:
    pending = [p for p in packages if report.result_for(p.name).needs_verification]
    if not pending:
      return
    log_info(f"Verifying {len(pending)} consumer package(s)")
    try:
      verifications = self.verifier.verify_all(pending, self._cancel)
    except KeyboardInterrupt:
      self.cancel()
      report.status = RunStatus.CANCELLED
      return

    by_name = {p.name: p for p in pending}
    for verification in verifications:
      result = report.result_for(verification.package)
      result.verification = verification
      if not verification.success:
        _fail(result, to_error(verification))
        continue
      try:
        self.manager.mark_verified(by_name[verification.package])
      except ModsplitError as e:
        _fail(result, e)
    if self.cancelled:
      report.status = RunStatus.CANCELLED


def _fail(result: PackageResult, error: ModsplitError) -> None:
  result.outcome = PackageOutcome.FAILED
  result.error = error.to_info()
  result.exit_code = error.exit_code
  _log_result(result)


def _abandoned(package: ModulePackage) -> PackageResult:
  return PackageResult(package=package.name, consumer=package.consumer.name, outcome=PackageOutcome.ABANDONED)


def _summarize_dependencies(results: List[PackageResult]) -> DependencySummary:
  summary = DependencySummary()
  for result in results:
    if result.dependencies.is_empty:
      continue
    summary.added += len(result.dependencies.added)
    summary.removed += len(result.dependencies.removed)
    summary.packages += 1
  return summary


def _log_result(result: PackageResult) -> None:
  if result.outcome is PackageOutcome.WRITTEN:
    log_info(f"Generated [pkg]{result.consumer}[/pkg] ({', '.join(result.interfaces)})")
  elif result.outcome is PackageOutcome.FAILED and result.error:
    log_debug(f"[pkg]{result.package}[/pkg] failed: {result.error.get('message')}")
  elif result.outcome is PackageOutcome.NO_EXPORTS:
    log_debug(f"[pkg]{result.package}[/pkg] exports no interfaces")


def generate(config: RunConfig, verifier: Optional[Verifier] = None) -> RunReport:
  """
  Runs the generation pipeline with the given configuration.

  Args:
      config: Run configuration.
      verifier: Optional verifier override (e.g. with a custom runner).

  Returns:
      RunReport: The run report.
  """
  return GenerationPipeline(config, verifier=verifier).run()


__all__ = ["GenerationPipeline", "generate"]
