"""
Tests for the staleness policy.
"""

from modsplit.core import staleness
from modsplit.core.records import GenerationRecord
from modsplit.enums import ProcessReason
from modsplit.models import ConsumerPackage, ModulePackage


def make_package(tmp_path, module_mtime=100, consumer_mtime=None, record_mtime=None) -> ModulePackage:
  consumer = ConsumerPackage(
    name="consumer-alpha",
    import_name="consumer_alpha",
    path=tmp_path / "consumer-alpha",
    exists=consumer_mtime is not None,
    latest_mtime_ns=consumer_mtime,
  )
  return ModulePackage(
    name="mod-alpha",
    short_name="alpha",
    path=tmp_path / "mod-alpha",
    manifest_path=tmp_path / "mod-alpha" / "pyproject.toml",
    source_root=tmp_path / "mod-alpha" / "src",
    latest_mtime_ns=module_mtime,
    record_mtime_ns=record_mtime,
    consumer=consumer,
  )


def empty_record() -> GenerationRecord:
  return GenerationRecord(module="mod-alpha", consumer="consumer-alpha")


def test_force_wins(workspace, tmp_path):
  package = make_package(tmp_path, module_mtime=100, consumer_mtime=200)
  assert staleness.evaluate(package, workspace.config(force=True)) is ProcessReason.FORCE


def test_missing_consumer(workspace, tmp_path):
  assert staleness.evaluate(make_package(tmp_path), workspace.config()) is ProcessReason.MISSING


def test_module_newer_than_consumer(workspace, tmp_path):
  package = make_package(tmp_path, module_mtime=300, consumer_mtime=200)
  assert staleness.evaluate(package, workspace.config()) is ProcessReason.MODIFIED


def test_equal_timestamps_are_fresh(workspace, tmp_path):
  package = make_package(tmp_path, module_mtime=200, consumer_mtime=200)
  assert staleness.evaluate(package, workspace.config()) is None


def test_consumer_newer_is_fresh(workspace, tmp_path):
  package = make_package(tmp_path, module_mtime=100, consumer_mtime=200)
  assert staleness.evaluate(package, workspace.config()) is None


def test_known_empty_package_is_fresh(workspace, tmp_path):
  package = make_package(tmp_path, module_mtime=100, record_mtime=150)
  assert staleness.evaluate(package, workspace.config(), empty_record()) is None


def test_known_empty_package_edited_since(workspace, tmp_path):
  package = make_package(tmp_path, module_mtime=200, record_mtime=150)
  assert staleness.evaluate(package, workspace.config(), empty_record()) is ProcessReason.MISSING


def test_record_with_exports_does_not_excuse_missing_consumer(workspace, tmp_path):
  package = make_package(tmp_path, module_mtime=100, record_mtime=150)
  record = GenerationRecord(module="mod-alpha", consumer="consumer-alpha", interfaces=["Store"])
  assert staleness.evaluate(package, workspace.config(), record) is ProcessReason.MISSING


def test_unverified_consumer_is_checked_again(workspace, tmp_path):
  """
  Scenario: Timestamps say fresh, but the last generation never passed the type-check.
  Expectation: Reprocessed when verification is on, fresh when it is skipped.
  """
  package = make_package(tmp_path, module_mtime=100, consumer_mtime=200)
  record = GenerationRecord(module="mod-alpha", consumer="consumer-alpha", interfaces=["Store"])
  assert staleness.evaluate(package, workspace.config(verify=True), record) is ProcessReason.UNVERIFIED
  assert staleness.evaluate(package, workspace.config(verify=False), record) is None

  record.verified = True
  assert staleness.evaluate(package, workspace.config(verify=True), record) is None


def test_modified_wins_over_unverified(workspace, tmp_path):
  package = make_package(tmp_path, module_mtime=300, consumer_mtime=200)
  record = GenerationRecord(module="mod-alpha", consumer="consumer-alpha", interfaces=["Store"])
  assert staleness.evaluate(package, workspace.config(verify=True), record) is ProcessReason.MODIFIED
