"""Tests for the application log file."""

import logging
from pathlib import Path

import main  # noqa: F401
from reimburse.core.utils import ROOT_LOGGER, get_logger


def _log_file() -> Path:
    handlers = [h for h in logging.getLogger(ROOT_LOGGER).handlers if isinstance(h, logging.FileHandler)]
    if not handlers:
        msg = "Expected setup_logging to attach a file handler to the application logger"
        raise AssertionError(msg)
    handlers[0].flush()
    return Path(handlers[0].baseFilename)


def test_module_loggers_reach_the_log_file() -> None:
    """Lines logged by service modules are written to the persistent log file."""
    get_logger("reimburse.forms").warning("form service line for the log file")
    get_logger("reimburse.pdf").error("pdf service line for the log file")
    text = _log_file().read_text(encoding="utf-8")
    for line in ("form service line for the log file", "pdf service line for the log file"):
        if line not in text:
            msg = f"Expected '{line}' in the log file"
            raise AssertionError(msg)


def test_module_loggers_do_not_duplicate_console_output() -> None:
    """Module loggers own no handlers and propagate to the application logger."""
    logger = get_logger("reimburse.forms")
    if logger.handlers or not logger.propagate:
        msg = f"Expected a propagating logger without handlers, got {logger.handlers} propagate={logger.propagate}"
        raise AssertionError(msg)
