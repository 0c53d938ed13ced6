"""
Consumer Package Manager.

The only component that writes to disk during generation. For one module
package it:

1.  Creates the consumer package directory and manifest on first generation.
2.  Writes the synthesized files, skipping every file whose content is already
    identical so unchanged output keeps its timestamps.
3.  Brings the manifest's generator-managed dependencies in line with the
    requirements of the generated code.
4.  Writes the generation record into the module package.

Every write replaces a whole file atomically.
"""

from pathlib import Path
from typing import Iterable, List, Optional

from pydantic import BaseModel, Field

from modsplit.config import RunConfig
from modsplit.core import manifest
from modsplit.core.records import GenerationRecord, load_record, write_record
from modsplit.errors import FileAccessError, WorkspaceError
from modsplit.models import ConsumerPackage, DependencyChange, ModulePackage, SynthesizedPackage
from modsplit.utils.console import log_debug, log_info
from modsplit.utils.io import atomic_write_text, read_text_if_exists, sha256_text


class WriteResult(BaseModel):
  """
  What a write of one consumer package changed.
  """

  created: bool = False
  files_written: List[str] = Field(default_factory=list)
  dependencies: DependencyChange = Field(default_factory=DependencyChange)

  @property
  def changed(self) -> bool:
    return self.created or bool(self.files_written) or not self.dependencies.is_empty


def changed_files(root: Path, files: dict) -> List[str]:
  """
  Lists the files whose on-disk content differs from the given content.

  Args:
      root: Directory the relative paths are resolved against.
      files: Relative path to desired content.

  Returns:
      List[str]: Sorted relative paths needing a write.
  """
  return sorted(rel for rel, text in files.items() if read_text_if_exists(root / rel) != text)


class ConsumerPackageManager:
  """
  Writes consumer packages and generation records.

  Attributes:
      config (RunConfig): Run configuration.
  """

  def __init__(self, config: RunConfig) -> None:
    self.config = config

  def ensure_package(self, package: ModulePackage) -> bool:
    """
    Creates the consumer directory and manifest if the manifest is missing.

    Args:
        package: The module package.

    Returns:
        bool: True if the manifest was created.
    """
    consumer = package.consumer
    if consumer.manifest_path.is_file():
      return False
    log_info(f"Creating consumer package [pkg]{consumer.name}[/pkg] at [path]{consumer.path}[/path]")
    manifest.write_manifest(consumer.manifest_path, manifest.build_manifest(package))
    return True

  def write(self, package: ModulePackage, synthesized: SynthesizedPackage) -> WriteResult:
    """
    Writes a synthesized consumer package and its generation record.

    Args:
        package: The module package.
        synthesized: Rendered consumer files and requirements.

    Returns:
        WriteResult: Files written and dependency changes.

    Raises:
        FileAccessError: If a write fails.
        WorkspaceError: If the existing consumer manifest is not valid TOML.
    """
    consumer = package.consumer
    try:
      created = self.ensure_package(package)
      pending = changed_files(consumer.path, synthesized.files)
      for rel in pending:
        log_debug(f"Writing {consumer.name}/{rel}")
        atomic_write_text(consumer.path / rel, synthesized.files[rel])

      doc = manifest.read_manifest(consumer.manifest_path)
      change = manifest.sync_dependencies(doc, synthesized.requirements)
      if not change.is_empty:
        manifest.write_manifest(consumer.manifest_path, doc)

      record = GenerationRecord(
        module=package.name,
        consumer=consumer.name,
        fingerprint=synthesized.fingerprint,
        interfaces=list(synthesized.interfaces),
        requirements=list(synthesized.requirements),
        files={rel: sha256_text(text) for rel, text in sorted(synthesized.files.items())},
      )
      write_record(package, self.config, record)
    except OSError as e:
      raise FileAccessError.from_os_error(e, package.name) from e
    return WriteResult(created=created, files_written=pending, dependencies=change)

  def mark_verified(self, package: ModulePackage) -> None:
    """
    Marks the generation record of a package as having passed the type-check.

    Args:
        package: The module package.

    Raises:
        FileAccessError: If the record cannot be written.
    """
    record = load_record(package, self.config)
    if record is None or record.verified:
      return
    record.verified = True
    try:
      write_record(package, self.config, record)
    except OSError as e:
      raise FileAccessError.from_os_error(e, package.name) from e

  def record_no_exports(self, package: ModulePackage) -> None:
    """
    Records that a module package exports nothing.

    The record is rewritten even when unchanged, so its timestamp marks the
    package as checked.

    Args:
        package: The module package.
    """
    record = GenerationRecord(module=package.name, consumer=package.consumer.name)
    try:
      write_record(package, self.config, record, touch=True)
    except OSError as e:
      raise FileAccessError.from_os_error(e, package.name) from e

  def _edit_dependencies(self, consumer: ConsumerPackage, edit, requirements: Iterable[str]) -> DependencyChange:
    if not consumer.manifest_path.is_file():
      raise WorkspaceError(
        f"Consumer package '{consumer.name}' does not exist yet; run generate first",
        file=consumer.manifest_path,
      )
    doc = manifest.read_manifest(consumer.manifest_path)
    change = edit(doc, list(requirements))
    if not change.is_empty:
      try:
        manifest.write_manifest(consumer.manifest_path, doc)
      except OSError as e:
        raise FileAccessError.from_os_error(e) from e
    return change

  def add_dependencies(self, consumer: ConsumerPackage, requirements: Iterable[str]) -> DependencyChange:
    """
    Adds dependency entries to an existing consumer manifest.

    Args:
        consumer: Target consumer package.
        requirements: Requirement strings.

    Returns:
        DependencyChange: Entries added.

    Raises:
        WorkspaceError: If the consumer package has not been generated.
    """
    return self._edit_dependencies(consumer, manifest.add_dependencies, requirements)

  def remove_dependencies(self, consumer: ConsumerPackage, requirements: Iterable[str]) -> DependencyChange:
    """
    Removes dependency entries from an existing consumer manifest.

    Args:
        consumer: Target consumer package.
        requirements: Requirement strings or names.

    Returns:
        DependencyChange: Entries removed.

    Raises:
        WorkspaceError: If the consumer package has not been generated.
    """
    return self._edit_dependencies(consumer, manifest.remove_dependencies, requirements)

  def consumer_dependencies(self, consumer: ConsumerPackage) -> Optional[List[str]]:
    """Declared dependencies of a consumer package, or None if it has no manifest."""
    if not consumer.manifest_path.is_file():
      return None
    return manifest.declared_dependencies(manifest.read_manifest(consumer.manifest_path))
