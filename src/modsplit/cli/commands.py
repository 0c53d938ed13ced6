"""
CLI Command Handlers Facade.

Re-exports handlers from `modsplit.cli.handlers` so the dispatcher and tests
have a single import (and patch) target.
"""

from modsplit.cli.handlers.generate import handle_generate, _print_report, format_error
from modsplit.cli.handlers.listing import handle_list
from modsplit.cli.handlers.dependencies import handle_add_dependency, handle_remove_dependency
