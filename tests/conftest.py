"""
Pytest Configuration and Fixtures.

Includes:
- Syspath patching for local imports.
- A workspace builder creating module packages on disk.
- Console isolation so tests capturing output do not leak handlers.
"""

import os
import subprocess
import sys
import textwrap
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Add src to path so we can import 'modsplit' without installing it
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from modsplit.config import RunConfig  # noqa: E402
from modsplit.core.scanner import WorkspaceScanner  # noqa: E402
from modsplit.core.verifier import Verifier  # noqa: E402
from modsplit.models import ModulePackage  # noqa: E402
from modsplit.utils.console import reset_console  # noqa: E402


class WorkspaceBuilder:
  """
  Creates module packages under a temporary workspace root.

  Attributes:
      root (Path): Workspace root directory.
  """

  def __init__(self, root: Path) -> None:
    self.root = root

  def write(self, rel: str, text: str) -> Path:
    """Writes a file relative to the root, dedenting the content."""
    path = self.root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(text).lstrip("\n"), encoding="utf-8")
    return path

  def module(
    self,
    short_name: str,
    files: Optional[Dict[str, str]] = None,
    dependencies: Optional[List[str]] = None,
    prefix: str = "mod-",
  ) -> Path:
    """
    Creates ``<prefix><short_name>/`` with a manifest and ``src/<import>/`` sources.

    Args:
        short_name: e.g. ``alpha``.
        files: Source files relative to the import package directory.
        dependencies: ``[project] dependencies`` entries.
        prefix: Manifest name prefix.

    Returns:
        Path: The module package directory.
    """
    name = f"{prefix}{short_name}"
    import_name = name.replace("-", "_")
    deps = ", ".join(f'"{d}"' for d in dependencies or [])
    self.write(
      f"{name}/pyproject.toml",
      f"""
      [project]
      name = "{name}"
      version = "1.2.0"
      requires-python = ">=3.10"
      dependencies = [{deps}]
      """,
    )
    package_dir = f"{name}/src/{import_name}"
    self.write(f"{package_dir}/__init__.py", "")
    for rel, text in (files or {}).items():
      self.write(f"{package_dir}/{rel}", text)
    return self.root / name

  def config(self, **kwargs) -> RunConfig:
    kwargs.setdefault("verify", False)
    kwargs.setdefault("workers", 2)
    return RunConfig(root=self.root, **kwargs)

  def scan(self, **kwargs) -> List[ModulePackage]:
    return WorkspaceScanner(self.config(**kwargs)).scan()

  def package(self, short_name: str, **kwargs) -> ModulePackage:
    return next(p for p in self.scan(**kwargs) if p.short_name == short_name)

  def consumer_init(self, short_name: str) -> Path:
    return self.root / f"consumer-{short_name}" / f"consumer_{short_name}" / "__init__.py"

  def bump(self, path: Path, seconds: int = 10) -> None:
    """Moves a file's modification time into the future."""
    stamp = path.stat().st_mtime + seconds
    os.utime(path, (stamp, stamp))


@pytest.fixture
def workspace(tmp_path: Path) -> WorkspaceBuilder:
  """An empty workspace root."""
  root = tmp_path / "ws"
  root.mkdir()
  return WorkspaceBuilder(root)


def passing_runner(command, **kwargs) -> subprocess.CompletedProcess:
  """A subprocess.run replacement reporting a clean type check."""
  return subprocess.CompletedProcess(command, 0, stdout="Success: no issues found\n", stderr="")


@pytest.fixture
def fake_verifier():
  """Builds a Verifier whose type checker always passes."""

  def factory(config: RunConfig, runner=passing_runner) -> Verifier:
    return Verifier(config, runner=runner)

  return factory


@pytest.fixture(autouse=True)
def isolate_console():
  """
  Ensures tests that swap the console backend or the log level do not leak
  into one another.
  """
  yield
  reset_console()
