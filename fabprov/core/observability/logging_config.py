"""
Logging setup for the fabprov CLI.

Console level, highest precedence first:

    --debug / --verbose / --quiet  >  FABPROV_LOG_LEVEL  >  WARNING

Console output goes to stderr, so ``--json`` documents on stdout stay
parseable. FABPROV_LOG_FILE adds a file handler at
FABPROV_LOG_FILE_LEVEL (default: the console level) that always
records file:line detail.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Mapping

LEVEL_ENV = "FABPROV_LOG_LEVEL"
FILE_ENV = "FABPROV_LOG_FILE"
FILE_LEVEL_ENV = "FABPROV_LOG_FILE_LEVEL"

_DETAILED = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s"

# console (format, datefmt) per level; WARNING and above print bare messages
_CONSOLE_FORMATS: dict[int, tuple[str, str | None]] = {
    logging.DEBUG: (_DETAILED, "%H:%M:%S"),
    logging.INFO: ("%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
}
_FILE_FORMAT = (_DETAILED, "%Y-%m-%d %H:%M:%S")

_NOISY_LOGGERS = ("urllib3", "asyncio")


def parse_level(name: str | None, default: int = logging.WARNING) -> int:
    """Numeric level for a name like ``"info"``; *default* if unknown."""
    if not name:
        return default
    value = logging.getLevelName(name.strip().upper())
    return value if isinstance(value, int) else default


def cli_level(
    *,
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
    environ: Mapping[str, str] | None = None,
) -> int:
    """Console level from the global CLI flags, then FABPROV_LOG_LEVEL."""
    if debug:
        return logging.DEBUG
    if verbose:
        return logging.INFO
    if quiet:
        return logging.ERROR
    environ = os.environ if environ is None else environ
    return parse_level(environ.get(LEVEL_ENV))


def _console_formatter(level: int) -> logging.Formatter:
    for threshold in sorted(_CONSOLE_FORMATS):
        if level <= threshold:
            fmt, datefmt = _CONSOLE_FORMATS[threshold]
            return logging.Formatter(fmt, datefmt=datefmt)
    return logging.Formatter("%(message)s")


def setup_logging(
    level: int = logging.WARNING,
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Install the console (and optional file) handler on the root logger.

    Replaces any handlers a previous call installed, so it is safe to
    call once per CLI invocation.
    """
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(_console_formatter(level))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root_level = level

    if log_file:
        file_level = parse_level(log_file_level, default=level)
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setLevel(file_level)
        handler.setFormatter(logging.Formatter(*_FILE_FORMAT))
        root.addHandler(handler)
        root_level = min(root_level, file_level)

    root.setLevel(root_level)

    if level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.raiseExceptions = False
