"""
Staleness Tracker.

Decides whether a module package needs processing, using the timestamps
captured in the scan snapshot and the generation record:

1.  ``--force``: always.
2.  No consumer package yet: always, unless the generation record shows the
    package exported nothing and it has not changed since that was recorded.
3.  Module package (sources and manifest) strictly newer than its consumer
    package: regenerate.
4.  When verification is enabled, a consumer whose record was never marked
    verified is checked again.
5.  Otherwise the package is fresh.
"""

from typing import Optional

from modsplit.config import RunConfig
from modsplit.core.records import GenerationRecord
from modsplit.enums import ProcessReason
from modsplit.models import ModulePackage


def evaluate(
  package: ModulePackage,
  config: RunConfig,
  record: Optional[GenerationRecord] = None,
) -> Optional[ProcessReason]:
  """
  Evaluates the staleness policy for one module package.

  Args:
      package: Scan snapshot of the module package.
      config: Run configuration (force and verify flags).
      record: The package's generation record, if one was loaded.

  Returns:
      Optional[ProcessReason]: Why the package must be processed, or None if fresh.
  """
  if config.force:
    return ProcessReason.FORCE

  consumer = package.consumer
  if not consumer.exists or consumer.latest_mtime_ns is None:
    if _known_empty(package, record):
      return None
    return ProcessReason.MISSING

  if package.latest_mtime_ns > consumer.latest_mtime_ns:
    return ProcessReason.MODIFIED
  if config.verify and record is not None and record.needs_verification:
    return ProcessReason.UNVERIFIED
  return None


def _known_empty(package: ModulePackage, record: Optional[GenerationRecord]) -> bool:
  if record is None or record.has_exports or package.record_mtime_ns is None:
    return False
  return package.record_mtime_ns >= package.latest_mtime_ns
