"""
Tests for the console proxy and logging wrappers.
"""

import logging

from rich.console import Console

from modsplit.utils.console import (
  console,
  get_console,
  log_debug,
  log_error,
  log_info,
  log_success,
  log_warning,
  reset_console,
  set_console,
  set_verbosity,
)


def test_proxy_forwards():
  assert callable(console.print)
  assert isinstance(get_console(), Console)
  assert console.width == get_console().width


def test_injection_captures_logging():
  capture = Console(record=True, width=120)
  set_console(capture)

  log_info("Scanning [path]/ws[/path]")
  log_success("done")
  log_warning("careful")
  log_error("broken")
  console.print("plain")

  text = capture.export_text()
  assert "Scanning /ws" in text
  assert "SUCCESS" in text
  assert "careful" in text
  assert "broken" in text
  assert "plain" in text


def test_verbosity():
  capture = Console(record=True, width=120)
  set_console(capture)

  log_debug("hidden")
  assert "hidden" not in capture.export_text()

  set_verbosity(True)
  assert logging.getLogger().level == logging.DEBUG
  log_debug("shown")
  assert "shown" in capture.export_text()


def test_reset():
  temp = Console()
  set_console(temp)
  set_verbosity(True)
  reset_console()
  assert get_console() is not temp
  assert logging.getLogger().level == logging.INFO
  handlers = [h for h in logging.getLogger().handlers if h.__class__.__name__ == "RichHandler"]
  assert len(handlers) == 1
