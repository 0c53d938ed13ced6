"""
Generation Records.

A generation record is a small JSON file kept in the *module* package
(``.modsplit-record.json`` by default). It remembers the fingerprint of the
last generated interface set and the hash of every generated file, so a run
triggered by a cosmetic source edit can skip rendering and writing when
nothing interface-relevant changed. It also remembers whether the generated
files passed the type-check: a record is written unverified and only marked
verified after a successful check, so a consumer that failed (or was never
checked) is checked again on the next verifying run.

Records are a cache. The timestamp comparison of the staleness tracker is the
authoritative gate; a missing or unreadable record only costs a regeneration.
Records contain no timestamps, so regenerating from unchanged sources leaves
them byte-identical.
"""

from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from modsplit.config import RunConfig
from modsplit.models import ModulePackage
from modsplit.utils.console import log_warning
from modsplit.utils.io import atomic_write_text, read_text_if_exists, sha256_file

RECORD_VERSION = 2


class GenerationRecord(BaseModel):
  """
  Persisted bookkeeping of the last generation of a module package.
  """

  version: int = Field(RECORD_VERSION, description="Record format version.")
  module: str = Field(description="Module package name.")
  consumer: str = Field(description="Consumer package name.")
  fingerprint: str = Field("", description="SHA-256 of the resolved interface set.")
  interfaces: List[str] = Field(default_factory=list, description="Generated interface names.")
  requirements: List[str] = Field(default_factory=list, description="Requirements managed for the consumer.")
  files: Dict[str, str] = Field(default_factory=dict, description="Consumer-relative path to SHA-256.")
  verified: bool = Field(False, description="Whether the files passed the type-check since they were written.")

  @property
  def has_exports(self) -> bool:
    return bool(self.interfaces)

  @property
  def needs_verification(self) -> bool:
    return self.has_exports and not self.verified


def record_path(package: ModulePackage, config: RunConfig) -> Path:
  return package.path / config.record_name


def load_record(package: ModulePackage, config: RunConfig) -> Optional[GenerationRecord]:
  """
  Reads the record of a module package.

  Args:
      package: The module package.
      config: Run configuration (record file name).

  Returns:
      Optional[GenerationRecord]: The record, or None when absent, unreadable
      or written by another format version.
  """
  path = record_path(package, config)
  text = read_text_if_exists(path)
  if text is None:
    return None
  try:
    record = GenerationRecord.model_validate_json(text)
  except ValidationError:
    log_warning(f"Ignoring unreadable generation record [path]{path}[/path]")
    return None
  if record.version != RECORD_VERSION or record.module != package.name:
    return None
  return record


def write_record(package: ModulePackage, config: RunConfig, record: GenerationRecord, touch: bool = False) -> bool:
  """
  Writes a record atomically, unless the file already holds the same content.

  Args:
      package: The module package.
      config: Run configuration.
      record: Record to persist.
      touch: Rewrite identical content too, refreshing the record timestamp.

  Returns:
      bool: True if the file was written.
  """
  path = record_path(package, config)
  text = record.model_dump_json(indent=2) + "\n"
  if not touch and read_text_if_exists(path) == text:
    return False
  atomic_write_text(path, text)
  return True


def record_matches(record: Optional[GenerationRecord], fingerprint: str, consumer_path: Path) -> bool:
  """
  Whether a previous generation with the same fingerprint is intact on disk.

  Args:
      record: The loaded record, if any.
      fingerprint: Fingerprint of the current plan.
      consumer_path: Consumer package directory.

  Returns:
      bool: True when rendering and writing can be skipped.
  """
  if record is None or record.fingerprint != fingerprint or not record.files:
    return False
  if not (consumer_path / "pyproject.toml").is_file():
    return False
  return all(sha256_file(consumer_path / rel) == digest for rel, digest in record.files.items())
