"""
Enumerations for modsplit.

This module defines the enumerations shared across the scanner, extractor,
synthesizer and pipeline: how a method binds its receiver and parameters, why a
package was (re)generated, what happened to it, and how the run exits.
"""

from enum import Enum, IntEnum


class ReceiverKind(str, Enum):
  """
  How a method receives its owning object.
  """

  INSTANCE = "instance"  # def m(self, ...)
  CLASS = "class"  # @classmethod def m(cls, ...)
  NONE = "none"  # @staticmethod


class ParameterKind(str, Enum):
  """
  Binding kind of a single parameter in a method signature.
  """

  POSITIONAL_ONLY = "positional_only"  # before '/'
  POSITIONAL_OR_KEYWORD = "positional_or_keyword"
  VAR_POSITIONAL = "var_positional"  # *args
  KEYWORD_ONLY = "keyword_only"  # after '*'
  VAR_KEYWORD = "var_keyword"  # **kwargs


class BlockKind(str, Enum):
  """
  Tag of a per-class extraction result.
  """

  ANNOTATED = "annotated"
  IGNORED = "ignored"


class ProcessReason(str, Enum):
  """
  Why a module package is scheduled for generation.
  """

  FORCE = "force"
  MISSING = "missing"
  MODIFIED = "modified"
  UNVERIFIED = "unverified"


class PackageOutcome(str, Enum):
  """
  Final state of a module package after a run.
  """

  SKIPPED_FRESH = "fresh"
  NO_EXPORTS = "no-exports"
  UNCHANGED = "unchanged"
  WRITTEN = "written"
  FAILED = "failed"
  ABANDONED = "abandoned"


class RunStatus(str, Enum):
  """
  Aggregate state of a whole generation run.
  """

  SUCCESS = "success"
  FAILED = "failed"
  CANCELLED = "cancelled"


class ExitCode(IntEnum):
  """
  Process exit codes, one per failure category.
  """

  SUCCESS = 0
  FAILURE = 1
  SCAN = 2
  PARSE = 3
  ANNOTATION = 4
  GENERATION = 5
  VERIFICATION = 6
  IO = 7
  CANCELLED = 130


# Worst first. The run exits with the first code in this list it encountered.
EXIT_CODE_SEVERITY = (
  ExitCode.CANCELLED,
  ExitCode.SCAN,
  ExitCode.IO,
  ExitCode.PARSE,
  ExitCode.ANNOTATION,
  ExitCode.GENERATION,
  ExitCode.VERIFICATION,
  ExitCode.FAILURE,
)


def worst_exit_code(codes) -> ExitCode:
  """
  Picks the most severe exit code from a collection.

  Args:
      codes: Iterable of ExitCode values.

  Returns:
      ExitCode: The most severe code, or SUCCESS for an empty input.
  """
  present = set(codes)
  for code in EXIT_CODE_SEVERITY:
    if code in present:
      return code
  return ExitCode.SUCCESS
