from .generate import handle_generate, _print_report
from .listing import handle_list
from .dependencies import handle_add_dependency, handle_remove_dependency

__all__ = [
  "_print_report",
  "handle_add_dependency",
  "handle_generate",
  "handle_list",
  "handle_remove_dependency",
]
