"""
Runtime Export Marker.

Module packages decorate implementation classes with :func:`export`. At import
time the decorator only records its arguments on the class; the generator
recognizes the decorator syntactically, without importing any module package.

.. code-block:: python

    from modsplit import export

    @export
    class StorageImpl:
        def get(self, key: str) -> bytes: ...

    @export("Clock", runtime_checkable=True)
    class SystemClock:
        def now(self) -> float: ...
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar, Union, overload

MARKER_ATTRIBUTE = "__modsplit_export__"

_T = TypeVar("_T", bound=type)


@dataclass(frozen=True)
class ExportInfo:
  """Arguments recorded by the export decorator."""

  interface: Optional[str] = None
  runtime_checkable: bool = False


def _mark(cls: Any, info: ExportInfo) -> Any:
  if not isinstance(cls, type):
    raise TypeError(f"@export can only decorate classes, got {type(cls).__name__}")
  setattr(cls, MARKER_ATTRIBUTE, info)
  return cls


@overload
def export(target: _T) -> _T: ...


@overload
def export(target: Optional[str] = None, *, interface: Optional[str] = None, runtime_checkable: bool = False) -> Callable[[_T], _T]: ...


def export(
  target: Union[type, str, None] = None,
  *,
  interface: Optional[str] = None,
  runtime_checkable: bool = False,
) -> Any:
  """
  Marks a class as the implementation of an exported interface.

  Args:
      target: The class (bare ``@export`` usage) or the interface name.
      interface: Interface name, as a keyword.
      runtime_checkable: Emit ``@runtime_checkable`` on the generated Protocol.

  Returns:
      The class unchanged, or a decorator when called with arguments.

  Raises:
      TypeError: If applied to something that is not a class, or given two names.
  """
  if isinstance(target, type):
    return _mark(target, ExportInfo())
  if target is not None and interface is not None:
    raise TypeError("@export got the interface name twice")
  info = ExportInfo(interface=target or interface, runtime_checkable=runtime_checkable)

  def decorator(cls: _T) -> _T:
    return _mark(cls, info)

  return decorator


def get_export_info(cls: type) -> Optional[ExportInfo]:
  """Returns the recorded export arguments of a class, if it is marked."""
  return getattr(cls, MARKER_ATTRIBUTE, None)
