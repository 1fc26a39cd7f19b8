"""
Host adapter — the local machine as features see it.

Wraps the account database (``pwd``/``grp``), process privileges and
the command runner behind one object, so features never call ``os`` or
``subprocess`` directly and tests can swap in ``MockHost``.
"""

from __future__ import annotations

import grp
import logging
import os
import pwd
import shutil
from dataclasses import dataclass
from pathlib import Path

from iniq.adapters.shell.command import CommandRunner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserInfo:
    """One entry of the account database."""

    name: str
    uid: int
    gid: int
    home: str
    shell: str = ""


class Host:
    """The real local host."""

    def __init__(self, runner: CommandRunner | None = None):
        self.runner = runner or CommandRunner()

    # ── Privileges ──────────────────────────────────────────────

    @property
    def is_root(self) -> bool:
        return os.geteuid() == 0

    def current_user(self) -> UserInfo:
        """The account this process runs as."""
        return _to_info(pwd.getpwuid(os.geteuid()))

    def real_user(self) -> UserInfo:
        """The human behind the process.

        Under ``sudo`` this is ``$SUDO_USER`` rather than root.
        """
        sudo_user = os.environ.get("SUDO_USER")
        if self.is_root and sudo_user and sudo_user != "root":
            info = self.lookup_user(sudo_user)
            if info is not None:
                return info
        return self.current_user()

    # ── Account database ────────────────────────────────────────

    def lookup_user(self, name: str) -> UserInfo | None:
        try:
            return _to_info(pwd.getpwnam(name))
        except KeyError:
            return None

    def user_exists(self, name: str) -> bool:
        return self.lookup_user(name) is not None

    def uid_in_use(self, uid: int) -> bool:
        try:
            pwd.getpwuid(uid)
        except KeyError:
            return False
        return True

    def group_exists(self, name: str) -> bool:
        try:
            grp.getgrnam(name)
        except KeyError:
            return False
        return True

    def user_groups(self, name: str) -> list[str]:
        """Groups ``name`` belongs to according to the group database."""
        info = self.lookup_user(name)
        groups: list[str] = []
        for entry in grp.getgrall():
            if name in entry.gr_mem or (info is not None and entry.gr_gid == info.gid):
                groups.append(entry.gr_name)
        return groups

    def process_groups(self) -> list[str]:
        """Groups the *current process* carries.

        Differs from ``user_groups(current_user)`` right after a
        ``usermod -aG``: the new group only shows up here after a new
        login session.
        """
        names: list[str] = []
        for gid in os.getgroups():
            try:
                names.append(grp.getgrgid(gid).gr_name)
            except KeyError:
                continue
        return names

    def home_dir(self, name: str, fallback_root: str = "/home") -> Path:
        """Home directory of ``name``, or the conventional path if unknown."""
        info = self.lookup_user(name)
        if info is not None and info.home:
            return Path(info.home)
        return Path(fallback_root) / name

    # ── Filesystem helpers ──────────────────────────────────────

    def chown(self, path: Path, user: UserInfo) -> None:
        os.chown(path, user.uid, user.gid)

    def which(self, program: str) -> str | None:
        return shutil.which(program)


def _to_info(entry: pwd.struct_passwd) -> UserInfo:
    return UserInfo(
        name=entry.pw_name,
        uid=entry.pw_uid,
        gid=entry.pw_gid,
        home=entry.pw_dir,
        shell=entry.pw_shell,
    )
