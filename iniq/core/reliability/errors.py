"""
Error taxonomy — the closed set of failure kinds a feature can raise.

Features raise one of the typed errors below; the orchestrator asks
``classify_error`` which kind it is and picks the retry policy from
that.  Exceptions raised by foreign code (subprocess, urllib, os) are
mapped onto the same kinds by exception type first and by message
pattern last.
"""

from __future__ import annotations

import errno
import subprocess
import urllib.error
from enum import Enum


class ErrorKind(str, Enum):
    """How the orchestrator should react to a failure."""

    VALIDATION = "validation"   # never retried
    PERMISSION = "permission"   # interactive remediation, else fail
    TRANSIENT = "transient"     # retried after 2s
    RELOGIN = "relogin"         # abort the run, ask for a login cycle
    CRITICAL = "critical"       # abort the run, exit 1
    OTHER = "other"             # retried after 1s


class IniqError(Exception):
    """Base class for all errors raised by features."""

    kind: ErrorKind = ErrorKind.OTHER


class ConfigurationError(IniqError):
    """Malformed input, conflicting flags, unsupported OS."""

    kind = ErrorKind.VALIDATION


class PrivilegeError(IniqError):
    """The caller lacks root/sudo for the requested mutation."""

    kind = ErrorKind.PERMISSION


class TransientError(IniqError):
    """Network fetch failures, timeouts."""

    kind = ErrorKind.TRANSIENT


class SudoActivationPending(IniqError):
    """The user was added to the admin group but this session predates it."""

    kind = ErrorKind.RELOGIN

    def __init__(self, message: str = "") -> None:
        super().__init__(
            message
            or "sudo group membership not yet active; "
            "please log out and log back in, then run iniq again"
        )


class CriticalFailure(IniqError):
    """A failure that must abort the whole run."""

    kind = ErrorKind.CRITICAL


# ── Message patterns for foreign exceptions ─────────────────────

NON_RETRYABLE_PATTERNS: tuple[str, ...] = (
    "cannot specify both --password and --no-pass options",
    "requires password input",
    "conflicting password options",
    "invalid option",
    "invalid argument",
    "invalid flag",
    "unknown flag",
    "required flag",
    "unsupported os",
    "user already exists",
    "invalid username",
    "invalid shell",
    "invalid home directory",
    "validation failed",
    "invalid configuration",
    "missing required",
    "duplicate option",
    "invalid format",
    "parse error",
    "syntax error",
    "stdin already set",
    "stdout already set",
    "stderr already set",
    "process already started",
    "already started",
    "not started",
    "command not found",
    "no such file or directory",
)

RELOGIN_PATTERNS: tuple[str, ...] = ("sudo group membership not yet active",)

PERMISSION_PATTERNS: tuple[str, ...] = (
    "permission denied",
    "operation not permitted",
    "requires root privileges",
)

TRANSIENT_PATTERNS: tuple[str, ...] = ("network", "connection", "timeout", "timed out")


def classify_error(exc: BaseException) -> ErrorKind:
    """Map an exception onto an ``ErrorKind``.

    Typed ``IniqError`` subclasses answer directly.  Everything else is
    matched by exception type, then by message substring.
    """
    if isinstance(exc, IniqError) and exc.kind is not ErrorKind.OTHER:
        return exc.kind

    if isinstance(exc, PermissionError):
        return ErrorKind.PERMISSION
    if isinstance(exc, OSError) and exc.errno in (errno.EACCES, errno.EPERM):
        return ErrorKind.PERMISSION
    if isinstance(exc, (TimeoutError, ConnectionError, subprocess.TimeoutExpired)):
        return ErrorKind.TRANSIENT
    if isinstance(exc, urllib.error.URLError) and not isinstance(exc, urllib.error.HTTPError):
        return ErrorKind.TRANSIENT

    message = str(exc).lower()
    if _matches(message, RELOGIN_PATTERNS):
        return ErrorKind.RELOGIN
    if _matches(message, NON_RETRYABLE_PATTERNS):
        return ErrorKind.VALIDATION
    if _matches(message, PERMISSION_PATTERNS):
        return ErrorKind.PERMISSION
    if _matches(message, TRANSIENT_PATTERNS):
        return ErrorKind.TRANSIENT
    return ErrorKind.OTHER


def _matches(message: str, patterns: tuple[str, ...]) -> bool:
    return any(p in message for p in patterns)
