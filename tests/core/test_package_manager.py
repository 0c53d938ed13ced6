"""
Tests for the Consumer Package Manager.
"""

import pytest

from modsplit.core.manifest import declared_dependencies, managed_dependencies, read_manifest
from modsplit.core.package_manager import ConsumerPackageManager, changed_files
from modsplit.core.records import load_record
from modsplit.errors import WorkspaceError
from modsplit.models import SynthesizedPackage
from modsplit.utils.io import sha256_text

INIT = "consumer_alpha/__init__.py"


def synthesized(body: str = "x = 1\n", requirements=(), fingerprint: str = "f1") -> SynthesizedPackage:
  return SynthesizedPackage(
    files={INIT: body, "consumer_alpha/py.typed": ""},
    interfaces=("Store",),
    requirements=tuple(requirements),
    fingerprint=fingerprint,
  )


def test_first_write_creates_package(workspace):
  workspace.module("alpha")
  package = workspace.package("alpha")
  manager = ConsumerPackageManager(workspace.config())

  result = manager.write(package, synthesized(requirements=["numpy>=1.26"]))

  assert result.created
  assert result.changed
  assert result.files_written == [INIT, "consumer_alpha/py.typed"]
  assert result.dependencies.added == ["numpy>=1.26"]

  consumer = package.consumer
  assert (consumer.path / INIT).read_text(encoding="utf-8") == "x = 1\n"
  assert (consumer.path / "consumer_alpha" / "py.typed").is_file()
  doc = read_manifest(consumer.manifest_path)
  assert declared_dependencies(doc) == ["numpy>=1.26"]
  assert managed_dependencies(doc) == ["numpy"]

  record = load_record(package, workspace.config())
  assert record.fingerprint == "f1"
  assert record.interfaces == ["Store"]
  assert record.requirements == ["numpy>=1.26"]
  assert record.files[INIT] == sha256_text("x = 1\n")
  assert not record.verified


def test_identical_write_touches_nothing(workspace):
  workspace.module("alpha")
  manager = ConsumerPackageManager(workspace.config())
  manager.write(workspace.package("alpha"), synthesized())
  init = workspace.consumer_init("alpha")
  before = init.stat().st_mtime_ns

  result = manager.write(workspace.package("alpha"), synthesized())

  assert not result.changed
  assert result.files_written == []
  assert init.stat().st_mtime_ns == before


def test_changed_file_only(workspace):
  workspace.module("alpha")
  manager = ConsumerPackageManager(workspace.config())
  manager.write(workspace.package("alpha"), synthesized())
  result = manager.write(workspace.package("alpha"), synthesized("x = 2\n", fingerprint="f2"))
  assert result.files_written == [INIT]
  assert not result.created


def test_manifest_edits_survive_regeneration(workspace):
  workspace.module("alpha")
  manager = ConsumerPackageManager(workspace.config())
  package = workspace.package("alpha")
  manager.write(package, synthesized(requirements=["numpy"]))

  manifest_path = package.consumer.manifest_path
  manifest_path.write_text(
    manifest_path.read_text(encoding="utf-8") + '\n[tool.black]\nline-length = 100\n', encoding="utf-8"
  )
  manager.add_dependencies(package.consumer, ["attrs>=23"])

  result = manager.write(workspace.package("alpha"), synthesized("x = 2\n", fingerprint="f2"))

  assert result.dependencies.removed == ["numpy"]
  text = manifest_path.read_text(encoding="utf-8")
  assert "line-length = 100" in text
  assert declared_dependencies(read_manifest(manifest_path)) == ["attrs>=23"]


def test_record_no_exports(workspace):
  workspace.module("alpha")
  package = workspace.package("alpha")
  ConsumerPackageManager(workspace.config()).record_no_exports(package)
  record = load_record(package, workspace.config())
  assert record.interfaces == []
  assert not record.has_exports
  assert not package.consumer.path.exists()


def test_mark_verified(workspace):
  workspace.module("alpha")
  package = workspace.package("alpha")
  config = workspace.config()
  manager = ConsumerPackageManager(config)
  manager.write(package, synthesized())

  manager.mark_verified(package)
  assert load_record(package, config).verified

  # A later write of different output is unverified again.
  manager.write(package, synthesized(body="x = 2\n", fingerprint="f2"))
  assert not load_record(package, config).verified


def test_mark_verified_without_record(workspace):
  workspace.module("alpha")
  package = workspace.package("alpha")
  ConsumerPackageManager(workspace.config()).mark_verified(package)
  assert load_record(package, workspace.config()) is None


def test_dependency_edits_require_consumer(workspace):
  workspace.module("alpha")
  manager = ConsumerPackageManager(workspace.config())
  consumer = workspace.package("alpha").consumer
  with pytest.raises(WorkspaceError, match="run generate first"):
    manager.add_dependencies(consumer, ["attrs"])
  assert manager.consumer_dependencies(consumer) is None


def test_dependency_edits(workspace):
  workspace.module("alpha")
  manager = ConsumerPackageManager(workspace.config())
  package = workspace.package("alpha")
  manager.write(package, synthesized())

  assert manager.add_dependencies(package.consumer, ["attrs", "rich>=13"]).added == ["attrs", "rich>=13"]
  assert manager.add_dependencies(package.consumer, ["attrs"]).is_empty
  assert manager.remove_dependencies(package.consumer, ["attrs"]).removed == ["attrs"]
  assert manager.consumer_dependencies(package.consumer) == ["rich>=13"]


def test_changed_files(tmp_path):
  (tmp_path / "a.py").write_text("same", encoding="utf-8")
  (tmp_path / "b.py").write_text("old", encoding="utf-8")
  assert changed_files(tmp_path, {"a.py": "same", "b.py": "new", "c.py": ""}) == ["b.py", "c.py"]
