"""
Tests for the Generation Pipeline.

Verifies that:
1.  Outcomes follow staleness, extraction and the record short-circuit.
2.  A failing package never stops the others, and the run exit code is the
    most severe category seen.
3.  Verification covers packages written in the run and consumers that have
    not passed a check yet; a failed check is never accepted on a later run.
4.  Regenerating one module package leaves sibling consumers untouched.
5.  Cancellation abandons packages not yet started.
"""

import subprocess

from modsplit.core.pipeline import GenerationPipeline
from modsplit.enums import ExitCode, PackageOutcome, ProcessReason, RunStatus

STORE = """
from modsplit import export


@export
class StoreImpl:
    def get(self, key: str) -> bytes:
        return b""
"""

HELPERS = """
def helper() -> int:
    return 1
"""


def run(workspace, fake_verifier=None, runner=None, **kwargs):
  config = workspace.config(**kwargs)
  verifier = fake_verifier(config, runner) if runner else (fake_verifier(config) if fake_verifier else None)
  return GenerationPipeline(config, verifier=verifier).run()


def outcomes(report):
  return {r.package: r.outcome for r in report.results}


def test_first_and_second_run(workspace):
  workspace.module("alpha", {"store.py": STORE})
  workspace.module("beta", {"helpers.py": HELPERS})

  report = run(workspace)
  assert outcomes(report) == {"mod-alpha": PackageOutcome.WRITTEN, "mod-beta": PackageOutcome.NO_EXPORTS}
  assert report.status is RunStatus.SUCCESS
  assert report.exit_code is ExitCode.SUCCESS
  alpha = report.result_for("mod-alpha")
  assert alpha.reason is ProcessReason.MISSING
  assert alpha.interfaces == ["Store"]
  assert "consumer_alpha/__init__.py" in alpha.files_written
  assert workspace.consumer_init("alpha").is_file()
  assert not (workspace.root / "consumer-beta").exists()

  report = run(workspace)
  assert outcomes(report) == {"mod-alpha": PackageOutcome.SKIPPED_FRESH, "mod-beta": PackageOutcome.SKIPPED_FRESH}
  assert report.result_for("mod-alpha").interfaces == ["Store"]


def test_cosmetic_edit_is_unchanged(workspace):
  path = workspace.module("alpha", {"store.py": STORE})
  run(workspace)
  init = workspace.consumer_init("alpha")
  before = init.read_text(encoding="utf-8")

  source = path / "src" / "mod_alpha" / "store.py"
  source.write_text(source.read_text(encoding="utf-8").replace('return b""', "return bytes()"), encoding="utf-8")
  workspace.bump(source)

  report = run(workspace)
  result = report.result_for("mod-alpha")
  assert result.reason is ProcessReason.MODIFIED
  assert result.outcome is PackageOutcome.UNCHANGED
  assert init.read_text(encoding="utf-8") == before


def test_signature_edit_rewrites(workspace):
  path = workspace.module("alpha", {"store.py": STORE})
  run(workspace)

  source = path / "src" / "mod_alpha" / "store.py"
  source.write_text(source.read_text(encoding="utf-8").replace("key: str", "key: bytes"), encoding="utf-8")
  workspace.bump(source)

  report = run(workspace)
  assert report.result_for("mod-alpha").outcome is PackageOutcome.WRITTEN
  assert "def get(self, key: bytes) -> bytes:" in workspace.consumer_init("alpha").read_text(encoding="utf-8")


def test_force(workspace):
  workspace.module("alpha", {"store.py": STORE})
  run(workspace)
  report = run(workspace, force=True)
  result = report.result_for("mod-alpha")
  assert result.reason is ProcessReason.FORCE
  assert result.outcome is PackageOutcome.UNCHANGED


def test_deleted_output_is_regenerated(workspace):
  workspace.module("alpha", {"store.py": STORE})
  run(workspace)
  workspace.consumer_init("alpha").unlink()

  report = run(workspace)
  assert report.result_for("mod-alpha").reason is ProcessReason.MISSING
  assert report.result_for("mod-alpha").outcome is PackageOutcome.WRITTEN
  assert workspace.consumer_init("alpha").is_file()


def test_failure_is_isolated(workspace):
  workspace.module("alpha", {"store.py": STORE})
  workspace.module("broken", {"bad.py": "def broken(:\n"})
  workspace.module("gamma", {"store.py": STORE.replace("key: str", "key: Missing")})

  report = run(workspace)

  assert outcomes(report) == {
    "mod-alpha": PackageOutcome.WRITTEN,
    "mod-broken": PackageOutcome.FAILED,
    "mod-gamma": PackageOutcome.FAILED,
  }
  broken = report.result_for("mod-broken")
  assert broken.exit_code is ExitCode.PARSE
  assert broken.error["package"] == "mod-broken"
  assert broken.error["file"] == "src/mod_broken/bad.py"
  assert report.result_for("mod-gamma").exit_code is ExitCode.GENERATION
  assert report.status is RunStatus.FAILED
  assert report.exit_code is ExitCode.PARSE
  assert not (workspace.root / "consumer-gamma").exists()


def test_dependency_summary(workspace):
  source = "import numpy as np\n" + STORE.replace("-> bytes", "-> np.ndarray")
  workspace.module("alpha", {"store.py": source}, dependencies=["numpy>=1.26"])

  report = run(workspace)
  assert report.result_for("mod-alpha").dependencies.added == ["numpy>=1.26"]
  assert report.dependency_summary.added == 1
  assert report.dependency_summary.packages == 1


def test_verification_skips_accepted_packages(workspace, fake_verifier):
  workspace.module("alpha", {"store.py": STORE})
  workspace.module("beta", {"store.py": STORE})
  run(workspace, fake_verifier, module_filter="beta", verify=True)
  checked = []

  def runner(command, **kwargs):
    checked.append(command[-1])
    return subprocess.CompletedProcess(command, 0, stdout="", stderr="")

  report = run(workspace, fake_verifier, runner, verify=True)

  assert checked == ["consumer_alpha"]
  assert report.result_for("mod-alpha").verification.success
  assert report.result_for("mod-beta").verification is None
  assert report.exit_code is ExitCode.SUCCESS


def failing_runner(command, **kwargs):
  output = "consumer_alpha/__init__.py:9:5: error: Something is wrong  [misc]\n"
  return subprocess.CompletedProcess(command, 1, stdout=output, stderr="")


def test_verification_failure(workspace, fake_verifier):
  workspace.module("alpha", {"store.py": STORE})

  report = run(workspace, fake_verifier, failing_runner, verify=True)

  result = report.result_for("mod-alpha")
  assert result.outcome is PackageOutcome.FAILED
  assert result.exit_code is ExitCode.VERIFICATION
  assert result.error["kind"] == "VerificationError"
  assert result.error["line"] == 9
  assert report.exit_code is ExitCode.VERIFICATION
  # Output is kept for inspection.
  assert workspace.consumer_init("alpha").is_file()


def test_failed_verification_is_not_accepted_later(workspace, fake_verifier):
  """
  Scenario: The type-check fails, then the run is repeated as is, then the
  module gets a comment-only edit.
  Expectation: Every run checks the consumer again and fails until it passes;
  only a passing check lets later runs skip the package.
  """
  path = workspace.module("alpha", {"store.py": STORE})
  source = path / "src" / "mod_alpha" / "store.py"

  first = run(workspace, fake_verifier, failing_runner, verify=True)
  assert first.exit_code is ExitCode.VERIFICATION

  again = run(workspace, fake_verifier, failing_runner, verify=True)
  assert again.result_for("mod-alpha").reason is ProcessReason.UNVERIFIED
  assert again.result_for("mod-alpha").outcome is PackageOutcome.FAILED
  assert again.exit_code is ExitCode.VERIFICATION

  source.write_text("# tweak\n" + source.read_text(encoding="utf-8"), encoding="utf-8")
  workspace.bump(source)
  edited = run(workspace, fake_verifier, failing_runner, verify=True)
  assert edited.result_for("mod-alpha").reason is ProcessReason.MODIFIED
  assert edited.result_for("mod-alpha").outcome is PackageOutcome.FAILED
  assert edited.exit_code is ExitCode.VERIFICATION

  passing = run(workspace, fake_verifier, verify=True)
  assert passing.result_for("mod-alpha").outcome is PackageOutcome.UNCHANGED
  assert passing.result_for("mod-alpha").verification.success
  assert passing.exit_code is ExitCode.SUCCESS

  checked = []

  def recording_runner(command, **kwargs):
    checked.append(command[-1])
    return subprocess.CompletedProcess(command, 0, stdout="", stderr="")

  accepted = run(workspace, fake_verifier, recording_runner, verify=True)
  assert accepted.result_for("mod-alpha").outcome is PackageOutcome.UNCHANGED
  assert accepted.result_for("mod-alpha").verification is None
  assert checked == []


def test_regeneration_leaves_siblings_untouched(workspace):
  """
  Scenario: Two module packages export interfaces; one of them changes a signature.
  Expectation: Only its consumer is rewritten; the sibling keeps its bytes and mtimes.
  """
  alpha = workspace.module("alpha", {"store.py": STORE})
  workspace.module("beta", {"store.py": STORE})
  run(workspace)
  sibling = [workspace.consumer_init("beta"), workspace.root / "consumer-beta" / "pyproject.toml"]
  before = [(p.read_bytes(), p.stat().st_mtime_ns) for p in sibling]
  record = workspace.root / "mod-beta" / ".modsplit-record.json"
  record_before = (record.read_bytes(), record.stat().st_mtime_ns)

  source = alpha / "src" / "mod_alpha" / "store.py"
  source.write_text(source.read_text(encoding="utf-8").replace("key: str", "key: int"), encoding="utf-8")
  workspace.bump(source)
  report = run(workspace)

  assert outcomes(report) == {"mod-alpha": PackageOutcome.WRITTEN, "mod-beta": PackageOutcome.SKIPPED_FRESH}
  assert [(p.read_bytes(), p.stat().st_mtime_ns) for p in sibling] == before
  assert (record.read_bytes(), record.stat().st_mtime_ns) == record_before
  assert "key: int" in workspace.consumer_init("alpha").read_text(encoding="utf-8")


def test_scan_failure(workspace):
  report = run(workspace)
  assert report.results == []
  assert report.errors[0]["kind"] == "NoPackagesFoundError"
  assert report.exit_code is ExitCode.SCAN
  assert report.status is RunStatus.FAILED


def test_cancel_before_start(workspace):
  workspace.module("alpha", {"store.py": STORE})
  workspace.module("beta", {"store.py": STORE})
  pipeline = GenerationPipeline(workspace.config())
  pipeline.cancel()

  report = pipeline.run()

  assert outcomes(report) == {"mod-alpha": PackageOutcome.ABANDONED, "mod-beta": PackageOutcome.ABANDONED}
  assert report.status is RunStatus.CANCELLED
  assert report.exit_code is ExitCode.CANCELLED
  assert not (workspace.root / "consumer-alpha").exists()


def test_cancel_during_run(workspace):
  for name in ("alpha", "beta", "gamma"):
    workspace.module(name, {"store.py": STORE})
  pipeline = GenerationPipeline(workspace.config(workers=1))
  process = pipeline.process_package

  def process_then_cancel(package):
    result = process(package)
    pipeline.cancel()
    return result

  pipeline.process_package = process_then_cancel
  report = pipeline.run()

  assert report.result_for("mod-alpha").outcome is PackageOutcome.WRITTEN
  assert report.result_for("mod-gamma").outcome is PackageOutcome.ABANDONED
  assert report.status is RunStatus.CANCELLED


def test_no_exports_leaves_existing_consumer(workspace):
  path = workspace.module("alpha", {"store.py": STORE})
  run(workspace)
  source = path / "src" / "mod_alpha" / "store.py"
  source.write_text(HELPERS, encoding="utf-8")
  workspace.bump(source)

  report = run(workspace)
  assert report.result_for("mod-alpha").outcome is PackageOutcome.NO_EXPORTS
  assert workspace.consumer_init("alpha").is_file()
