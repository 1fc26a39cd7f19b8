"""
Sudoers fragments — render, read and safely write ``/etc/sudoers.d/<user>``.

A fragment is written with mode 0440, then checked with
``visudo -c -f``.  A fragment that fails the check is deleted again:
an invalid file under ``sudoers.d`` can lock every user out of sudo.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

from iniq.adapters.shell.command import CommandRunner
from iniq.core.reliability.errors import ConfigurationError
from iniq.core.services.backup import backup_file

logger = logging.getLogger(__name__)

SUDOERS_DIR = Path("/etc/sudoers.d")
SUDOERS_MODE = 0o440


@dataclass(frozen=True)
class SudoersEntry:
    username: str
    nopasswd: bool


def render_sudoers_entry(username: str, nopasswd: bool) -> str:
    """The single rule line iniq writes for ``username``."""
    if nopasswd:
        return f"{username} ALL=(ALL) NOPASSWD: ALL"
    return f"{username} ALL=(ALL) ALL"


def parse_sudoers_entry(text: str, username: str) -> SudoersEntry | None:
    """Find the first rule for ``username`` in a sudoers fragment."""
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        parts = stripped.split(None, 1)
        if parts[0] == username and len(parts) > 1:
            return SudoersEntry(username=username, nopasswd="NOPASSWD:" in parts[1])
    return None


class SudoersWriter:
    """Writes sudoers fragments, as root directly or through ``sudo``."""

    def __init__(
        self,
        runner: CommandRunner,
        *,
        directory: Path = SUDOERS_DIR,
        use_sudo: bool = False,
        backup: bool = False,
    ):
        self.runner = runner
        self.directory = directory
        self.use_sudo = use_sudo
        self.backup = backup

    def path_for(self, username: str) -> Path:
        return self.directory / username

    def read(self, username: str) -> str | None:
        """Current fragment content, or None when there is none."""
        path = self.path_for(username)
        if self.use_sudo:
            result = self.runner.run(["sudo", "-n", "cat", str(path)])
            return result.stdout if result.ok else None
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def write(self, username: str, nopasswd: bool) -> bool:
        """Install the rule for ``username``.

        Returns:
            True if the fragment changed, False if it already matched.

        Raises:
            ConfigurationError: If ``visudo`` rejects the fragment (the
                fragment is removed first).
        """
        path = self.path_for(username)
        content = render_sudoers_entry(username, nopasswd) + "\n"

        if self.read(username) == content:
            logger.info("Sudoers entry for %s already up to date", username)
            return False

        backup_file(path, enabled=self.backup, runner=self.runner, use_sudo=self.use_sudo)

        if self.use_sudo:
            self._install_with_sudo(path, content)
        else:
            self._install_direct(path, content)

        self._validate(path)
        logger.info("Wrote %s", path)
        return True

    # ── Internals ───────────────────────────────────────────────

    def _install_direct(self, path: Path, content: str) -> None:
        path.parent.mkdir(mode=0o750, parents=True, exist_ok=True)
        # sudo ignores names containing '.', so the temp file is inert
        tmp = path.with_name(f".{path.name}.iniq-tmp")
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, SUDOERS_MODE)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.chmod(tmp, SUDOERS_MODE)
            os.replace(tmp, path)
        finally:
            if tmp.exists():
                tmp.unlink()

    def _install_with_sudo(self, path: Path, content: str) -> None:
        fd, tmp_name = tempfile.mkstemp(prefix="iniq-sudoers-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            self.runner.check(
                ["sudo", "mkdir", "-p", str(path.parent)],
                f"failed to create {path.parent}",
            )
            self.runner.check(
                ["sudo", "install", "-m", "0440", "-o", "root", tmp_name, str(path)],
                f"failed to install {path}",
            )
        finally:
            os.unlink(tmp_name)

    def _validate(self, path: Path) -> None:
        prefix = ["sudo"] if self.use_sudo else []
        result = self.runner.run(prefix + ["visudo", "-c", "-f", str(path)])
        if result.ok:
            return
        logger.error("visudo rejected %s, removing it", path)
        if self.use_sudo:
            self.runner.run(["sudo", "rm", "-f", str(path)])
        else:
            path.unlink(missing_ok=True)
        raise ConfigurationError(f"sudoers validation failed for {path}: {result.error}")
