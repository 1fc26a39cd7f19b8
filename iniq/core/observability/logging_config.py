"""
Logging configuration for the iniq process.

``main.py`` calls ``setup_logging`` once before any feature runs; modules
only ever do ``logger = logging.getLogger(__name__)``.

Console level, highest precedence first:
    --debug / --verbose  >  --quiet  >  INIQ_LOG_LEVEL  >  INFO

Feature progress ("Would create user bob ...", "Wrote /etc/sudoers.d/bob")
is logged at INFO, so INFO is what an operator sees by default and
``--quiet`` drops to errors only.

A second, independent destination can be added with INIQ_LOG_FILE, at
INIQ_LOG_FILE_LEVEL (defaults to the console level).
"""

from __future__ import annotations

import logging
import sys

DEFAULT_LEVEL = "INFO"

# Console: bare messages for operators, source locations when debugging
_CONSOLE_FORMAT = "%(message)s"
_CONSOLE_DEBUG_FORMAT = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d - %(message)s"
_CONSOLE_DEBUG_DATEFMT = "%H:%M:%S"

# Log file: always the detailed form with full dates
_FILE_FORMAT = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d - %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers held at WARNING outside debug runs
_CHATTY_LIBRARIES = ("urllib3", "charset_normalizer")


def setup_logging(
    level: str = DEFAULT_LEVEL,
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Replace the root logger's handlers with iniq's console (and file) output.

    Args:
        level: Console level name.
        log_file: Optional file to append to.
        log_file_level: Level for ``log_file``; the console level if omitted.
        quiet_third_party: Hold third-party loggers at WARNING unless the
            console is at DEBUG.
    """
    console_level = _parse_level(level)
    handlers = [_console_handler(console_level)]
    root_level = console_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        handlers.append(_file_handler(log_file, file_level))
        root_level = min(root_level, file_level)

    root = logging.getLogger()
    root.handlers.clear()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(root_level)

    if quiet_third_party and console_level > logging.DEBUG:
        for name in _CHATTY_LIBRARIES:
            logging.getLogger(name).setLevel(logging.WARNING)

    # a closed terminal must not turn into logging tracebacks
    logging.raiseExceptions = False


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    if level <= logging.DEBUG:
        handler.setFormatter(logging.Formatter(_CONSOLE_DEBUG_FORMAT, datefmt=_CONSOLE_DEBUG_DATEFMT))
    else:
        handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    return handler


def _file_handler(path: str, level: int) -> logging.Handler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
    return handler


def resolve_level(
    *,
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
    env_level: str | None = None,
) -> str:
    """Console level name for the given CLI flags and INIQ_LOG_LEVEL."""
    if debug or verbose:
        return "DEBUG"
    if quiet:
        return "ERROR"
    return env_level or DEFAULT_LEVEL


def _parse_level(level: str | None) -> int:
    """Level name to its number; unknown or empty names mean INFO."""
    numeric = logging.getLevelName(level.upper()) if level else logging.INFO
    return numeric if isinstance(numeric, int) else logging.INFO
