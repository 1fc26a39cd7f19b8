"""
Account passwords.

On Linux the password is piped to ``chpasswd`` on stdin, so it never
appears on a command line or in a log.  macOS has no stdin-driven
equivalent; ``passwd`` is run on the terminal and prompts by itself.
"""

from __future__ import annotations

import logging

from iniq.adapters.host import Host
from iniq.adapters.osdetect import OsInfo
from iniq.core.reliability.errors import ConfigurationError, IniqError

logger = logging.getLogger(__name__)


def needs_terminal(os_info: OsInfo) -> bool:
    """Whether the platform's password tool prompts for itself."""
    return os_info.is_darwin


def set_password(host: Host, os_info: OsInfo, username: str, password: str | None) -> None:
    """Set the login password of ``username``.

    Raises:
        ConfigurationError: Unsupported OS, or no password on Linux.
        IniqError: If the password tool fails.
    """
    if os_info.is_linux:
        if not password:
            raise ConfigurationError("missing required password")
        result = host.runner.run(["chpasswd"], input=f"{username}:{password}\n")
    elif os_info.is_darwin:
        result = host.runner.run(["passwd", username], interactive=True)
    else:
        raise ConfigurationError(f"unsupported OS: {os_info.type}")

    if not result.ok:
        raise IniqError(f"failed to set password for {username}: {result.error}")
    logger.info("Password set for user '%s'", username)
