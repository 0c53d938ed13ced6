"""
modsplit Package.

A workspace source generator that keeps Protocol-only consumer packages in
sync with the exported classes of module packages.

Implementation classes in a module package (a project named ``mod-*``) are
marked with :func:`export`. For each module package, modsplit extracts the
annotated method signatures with LibCST (without importing anything) and
writes a sibling consumer package (``consumer-*``) that contains only
``typing.Protocol`` definitions, then type-checks it with mypy.

Usage
-----

Marking an Implementation
^^^^^^^^^^^^^^^^^^^^^^^^^

.. code-block:: python

    from modsplit import export

    @export
    class StorageImpl:
        def get(self, key: str) -> bytes:
            ...

Running a Generation
^^^^^^^^^^^^^^^^^^^^

.. code-block:: python

    import modsplit

    report = modsplit.generate("path/to/workspace", force=True)
    for result in report.results:
        print(result.package, result.outcome.value)
"""

from pathlib import Path
from typing import Any, Optional, Union

from modsplit.config import RunConfig
from modsplit.core.pipeline import GenerationPipeline
from modsplit.markers import export
from modsplit.models import RunReport

__version__ = "0.1.0"


def generate(root: Optional[Union[str, Path]] = None, **overrides: Any) -> RunReport:
  """
  Runs one generation over a workspace.

  This is a high-level convenience wrapper around :class:`GenerationPipeline`.
  Configuration is loaded from the workspace's ``[tool.modsplit]`` table and
  then overridden by the keyword arguments.

  Args:
      root: Workspace root. Defaults to the root discovered from the current
          directory.
      **overrides: Any :class:`RunConfig` field (``force``, ``module_filter``,
          ``verify``, ``workers``, ...).

  Returns:
      RunReport: Per-package outcomes, status and exit code.
  """
  config = RunConfig.load(root=Path(root) if root is not None else None)
  if overrides:
    config = config.with_overrides(**overrides)
  return GenerationPipeline(config).run()


__all__ = ["GenerationPipeline", "RunConfig", "RunReport", "export", "generate", "__version__"]
