"""Run log with prefixed message categories, plus optional console progress output."""

from __future__ import annotations

import logging
import sys

logger = logging.getLogger("fetrunner")
logger.setLevel(logging.DEBUG)
logger.propagate = False

_PREFIXES = {
    logging.DEBUG: "*INFO* ",
    logging.INFO: "*INFO* ",
    logging.WARNING: "*WARNING* ",
    logging.ERROR: "*ERROR* ",
}

_console = False


class _PrefixFormatter(logging.Formatter):
    """Prefix each record with its category tag; bugs also carry file and line."""

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        if record.levelno >= logging.CRITICAL:
            return f"*BUG* {record.filename}:{record.lineno}: {text}"
        return _PREFIXES.get(record.levelno, "*INFO* ") + text


def open_log(logpath: str) -> logging.Handler:
    """Direct the run log to ``logpath`` (truncated), or to stderr if it is empty."""
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    if logpath:
        handler: logging.Handler = logging.FileHandler(
            logpath, mode="w", encoding="utf-8"
        )
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_PrefixFormatter("%(message)s"))
    logger.addHandler(handler)
    return handler


def set_console(enabled: bool) -> None:
    """Switch progress output to the console on or off."""
    global _console
    _console = bool(enabled)


def report(msg: str) -> None:
    """Print a progress message if console output is enabled."""
    if _console:
        print(msg, end="", flush=True)