"""
Privilege helpers — admin-group membership and sudo probes.

"Admin group" is whichever of ``sudo`` / ``wheel`` / ``admin`` the host
uses to grant sudo.  Adding a user to it only takes effect for new
login sessions; ``membership_pending`` detects the window in between.
"""

from __future__ import annotations

import logging
from enum import Enum

from iniq.adapters.host import Host
from iniq.adapters.osdetect import OsInfo
from iniq.core.reliability.errors import ConfigurationError, IniqError
from iniq.core.services.sudoers import SudoersWriter, parse_sudoers_entry

logger = logging.getLogger(__name__)

ADMIN_GROUPS = ("sudo", "wheel", "admin")


class SudoProbe(str, Enum):
    """Result of ``sudo -n true`` for the current user."""

    PASSWORDLESS = "passwordless"
    PASSWORD_REQUIRED = "password_required"
    DENIED = "denied"
    UNAVAILABLE = "unavailable"

    @property
    def has_sudo(self) -> bool:
        return self in (SudoProbe.PASSWORDLESS, SudoProbe.PASSWORD_REQUIRED)


def probe_sudo(host: Host) -> SudoProbe:
    result = host.runner.run(["sudo", "-n", "true"], timeout=15)
    if result.ok:
        return SudoProbe.PASSWORDLESS
    if result.returncode == 127:
        return SudoProbe.UNAVAILABLE
    err = result.stderr.lower()
    if "password is required" in err or "no tty present" in err or "askpass" in err:
        return SudoProbe.PASSWORD_REQUIRED
    return SudoProbe.DENIED


def admin_group_for(host: Host, os_info: OsInfo) -> str:
    """Name of the group that grants sudo on this host."""
    if os_info.is_darwin:
        return "admin"
    for name in ("sudo", "wheel"):
        if host.group_exists(name):
            return name
    return "sudo"


def in_admin_group(host: Host, username: str) -> bool:
    """Group-database membership (may not be active in this session yet)."""
    return any(g.lower() in ADMIN_GROUPS for g in host.user_groups(username))


def has_privileges(host: Host) -> bool:
    """Whether this process can perform privileged mutations at all."""
    return host.is_root or probe_sudo(host).has_sudo


def membership_pending(host: Host, username: str) -> bool:
    """True when ``username`` joined the admin group after this session began."""
    if host.is_root or host.current_user().name != username:
        return False
    if not in_admin_group(host, username):
        return False
    if any(g.lower() in ADMIN_GROUPS for g in host.process_groups()):
        return False
    return not probe_sudo(host).has_sudo


def user_has_sudo(host: Host, username: str, sudoers: SudoersWriter) -> bool:
    if username == "root":
        return True
    if in_admin_group(host, username):
        return True
    return _sudoers_entry(host, username, sudoers) is not None


def has_passwordless_sudo(host: Host, username: str, sudoers: SudoersWriter) -> bool:
    if username == "root":
        return True
    entry = _sudoers_entry(host, username, sudoers)
    if entry is not None:
        return entry.nopasswd
    if not host.is_root and host.current_user().name == username:
        return probe_sudo(host) is SudoProbe.PASSWORDLESS
    return False


def _sudoers_entry(host: Host, username: str, sudoers: SudoersWriter):
    try:
        content = sudoers.read(username)
    except PermissionError:
        logger.debug("Cannot read sudoers fragment for %s", username)
        return None
    if content is None:
        return None
    return parse_sudoers_entry(content, username)


def add_user_to_admin_group(host: Host, os_info: OsInfo, username: str) -> str:
    """Add ``username`` to the admin group.

    As root this runs ``usermod`` / ``dseditgroup`` directly.  Otherwise
    the user is asked for the root password by ``su`` (Linux) or
    ``sudo`` (macOS) on the terminal.

    Returns:
        The group name.

    Raises:
        IniqError: If the command fails or membership cannot be verified.
    """
    group = admin_group_for(host, os_info)

    if os_info.is_linux:
        usermod = f"/usr/sbin/usermod -aG {group} {username}"
        cmd = usermod.split() if host.is_root else ["su", "-c", usermod]
    elif os_info.is_darwin:
        cmd = ["dseditgroup", "-o", "edit", "-a", username, "-t", "user", group]
        if not host.is_root:
            cmd = ["sudo"] + cmd
    else:
        raise ConfigurationError(f"unsupported OS: {os_info.type}")

    logger.info("Adding user '%s' to the %s group...", username, group)
    result = host.runner.run(cmd, interactive=not host.is_root)
    if not result.ok:
        raise IniqError(f"failed to add {username} to the {group} group: {result.error}")
    if not in_admin_group(host, username):
        raise IniqError(f"failed to verify {username} was added to the {group} group")

    logger.info("Note: group membership takes full effect after logging out and back in")
    return group


def activate_admin_group(host: Host) -> bool:
    """Try to make fresh membership usable in this session.

    Runs ``sudo -v`` on the terminal, then re-probes.
    """
    logger.info("Attempting to activate sudo group membership...")
    result = host.runner.run(["sudo", "-v"], interactive=True)
    if not result.ok:
        logger.warning("sudo -v failed: %s", result.error)
    return probe_sudo(host).has_sudo
