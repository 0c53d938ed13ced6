"""
Entry point for module execution (``python -m modsplit``).

This module delegates execution to the CLI handler in ``modsplit.cli.__main__``.
"""

import sys
from modsplit.cli.__main__ import main

if __name__ == "__main__":
  sys.exit(main())
