"""
Tests for the error taxonomy and exit code ordering.
"""

import errno

import pytest

from modsplit.enums import ExitCode, worst_exit_code
from modsplit.errors import (
  ConflictingAnnotationError,
  FileAccessError,
  GenerationError,
  ModsplitError,
  NoPackagesFoundError,
  PackageNotFoundError,
  ParseError,
  UnresolvedTypeError,
  VerificationError,
)


@pytest.mark.parametrize(
  "error, code",
  [
    (ModsplitError("x"), ExitCode.FAILURE),
    (PackageNotFoundError("alpha"), ExitCode.SCAN),
    (NoPackagesFoundError("/ws", "mod-"), ExitCode.SCAN),
    (ParseError("x"), ExitCode.PARSE),
    (ConflictingAnnotationError("x"), ExitCode.ANNOTATION),
    (UnresolvedTypeError("T"), ExitCode.GENERATION),
    (VerificationError("x"), ExitCode.VERIFICATION),
    (FileAccessError("x"), ExitCode.IO),
  ],
)
def test_exit_codes(error, code):
  assert error.exit_code is code
  assert error.to_info()["exit_code"] == int(code)


def test_location_and_str():
  error = GenerationError("boom", file="src/a.py", line=3, column=7)
  assert error.location == "src/a.py:3:7"
  assert str(error) == "src/a.py:3:7: boom"

  error.with_package("mod-a")
  error.with_package("mod-b")
  assert error.package == "mod-a"
  assert str(error) == "[mod-a] src/a.py:3:7: boom"

  info = error.to_info()
  assert info["kind"] == "GenerationError"
  assert (info["file"], info["line"], info["column"]) == ("src/a.py", 3, 7)

  assert ModsplitError("plain").location == ""
  assert str(ModsplitError("plain")) == "plain"


def test_from_os_error():
  error = FileAccessError.from_os_error(OSError(errno.EACCES, "Permission denied", "/ws/x.py"), "mod-a")
  assert error.message == "Permission denied"
  assert error.file == "/ws/x.py"
  assert error.package == "mod-a"


def test_package_not_found_lists_known():
  assert "mod-a, mod-b" in PackageNotFoundError("zeta", ["mod-a", "mod-b"]).message
  assert "available: none" in PackageNotFoundError("zeta").message


def test_worst_exit_code():
  assert worst_exit_code([]) is ExitCode.SUCCESS
  assert worst_exit_code([ExitCode.VERIFICATION, ExitCode.PARSE]) is ExitCode.PARSE
  assert worst_exit_code([ExitCode.FAILURE, ExitCode.VERIFICATION]) is ExitCode.VERIFICATION
  assert worst_exit_code([ExitCode.GENERATION, ExitCode.IO, ExitCode.SCAN]) is ExitCode.SCAN
  assert worst_exit_code([ExitCode.SCAN, ExitCode.CANCELLED]) is ExitCode.CANCELLED
