"""
Logging configuration - central setup for the CLI.

Called once at startup by main.py.  Every module that does
``logger = logging.getLogger(__name__)`` inherits this config.

Levels are resolved in precedence order:
    CLI flag  >  GROUNDWORK_LOG_LEVEL env var  >  WARNING (default)

Optional file output via GROUNDWORK_LOG_FILE / GROUNDWORK_LOG_FILE_LEVEL.
"""

from __future__ import annotations

import logging
import os
import sys

ENV_LEVEL = "GROUNDWORK_LOG_LEVEL"
ENV_FILE = "GROUNDWORK_LOG_FILE"
ENV_FILE_LEVEL = "GROUNDWORK_LOG_FILE_LEVEL"

# ── Format strings ──────────────────────────────────────────────

# Detectors and generation run on worker pools, so DEBUG and file
# output carry the thread name.
_DETAILED = "%(asctime)s %(levelname)-5s %(threadName)s %(name)s:%(lineno)d - %(message)s"

# (max level, format, datefmt), checked in order
_CONSOLE_FORMATS = [
    (logging.DEBUG, _DETAILED, "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
    (logging.CRITICAL, "%(levelname)s: %(message)s", None),
]
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"


def resolve_level(verbose: bool = False, quiet: bool = False, debug: bool = False) -> str:
    """Level name from CLI flags, falling back to the environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return os.environ.get(ENV_LEVEL, "WARNING")


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    for ceiling, fmt, datefmt in _CONSOLE_FORMATS:
        if level <= ceiling:
            handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
            break
    return handler


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Configure Python logging for the process.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional path to a log file; defaults to GROUNDWORK_LOG_FILE.
        log_file_level: Optional separate level for the file; defaults to
            GROUNDWORK_LOG_FILE_LEVEL, then ``level``.
    """
    console_level = _parse_level(level)
    handlers = [_console_handler(console_level)]

    log_file = log_file or os.environ.get(ENV_FILE)
    if log_file:
        file_level = _parse_level(log_file_level or os.environ.get(ENV_FILE_LEVEL) or level)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(logging.Formatter(_DETAILED, datefmt=_FILE_DATEFMT))
        handlers.append(fh)

    root = logging.getLogger()
    root.handlers.clear()
    for handler in handlers:
        root.addHandler(handler)
    # Root passes everything any handler wants; handlers filter.
    root.setLevel(min(h.level for h in handlers))

    # Don't propagate exceptions from logging itself
    logging.raiseExceptions = False


def _parse_level(level: str | None) -> int:
    """Convert a level name string to its numeric constant."""
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.WARNING
    return numeric
