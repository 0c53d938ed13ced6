"""
Filesystem primitives.

Generated files, manifests and generation records are only ever replaced
whole: content is written to a temporary file in the target directory,
fsync'd, then moved over the target with :func:`os.replace`. A reader therefore
sees either the old file or the new one, never a partial write.
"""

import hashlib
import os
import tempfile
from pathlib import Path
from typing import Iterable, Optional, Union

PathLike = Union[str, Path]


def atomic_write_text(path: PathLike, text: str, encoding: str = "utf-8") -> None:
  """
  Writes ``text`` to ``path`` atomically.

  Args:
      path: Target file path. Parent directories are created.
      text: Full file content.
      encoding: Text encoding.

  Raises:
      OSError: If the temporary file cannot be written or moved into place.
  """
  path = Path(path)
  path.parent.mkdir(parents=True, exist_ok=True)
  tmp_path: Optional[Path] = None
  try:
    with tempfile.NamedTemporaryFile(
      "w",
      encoding=encoding,
      newline="\n",
      dir=str(path.parent),
      prefix=f".{path.name}.",
      suffix=".tmp",
      delete=False,
    ) as f:
      tmp_path = Path(f.name)
      f.write(text)
      f.flush()
      os.fsync(f.fileno())
    os.replace(tmp_path, path)
    tmp_path = None
  finally:
    if tmp_path is not None and tmp_path.exists():
      tmp_path.unlink()


def read_text_if_exists(path: PathLike) -> Optional[str]:
  """
  Reads a UTF-8 file, returning None when it does not exist.

  Args:
      path: File to read.

  Returns:
      Optional[str]: The content, or None.
  """
  try:
    return Path(path).read_text(encoding="utf-8")
  except FileNotFoundError:
    return None


def sha256_text(text: str) -> str:
  return hashlib.sha256(text.encode("utf-8")).hexdigest()


def sha256_file(path: PathLike) -> Optional[str]:
  """
  Hashes a file's bytes.

  Args:
      path: File to hash.

  Returns:
      Optional[str]: Hex digest, or None when the file does not exist.
  """
  digest = hashlib.sha256()
  try:
    with open(path, "rb") as f:
      for chunk in iter(lambda: f.read(65536), b""):
        digest.update(chunk)
  except FileNotFoundError:
    return None
  return digest.hexdigest()


def latest_mtime_ns(paths: Iterable[PathLike]) -> Optional[int]:
  """
  Returns the newest modification time among existing files.

  Args:
      paths: Candidate files. Missing files are ignored.

  Returns:
      Optional[int]: Newest ``st_mtime_ns``, or None when no file exists.
  """
  newest: Optional[int] = None
  for p in paths:
    try:
      mtime = os.stat(p).st_mtime_ns
    except FileNotFoundError:
      continue
    if newest is None or mtime > newest:
      newest = mtime
  return newest
