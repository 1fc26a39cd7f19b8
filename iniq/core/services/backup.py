"""
Pre-mutation backup.

Every destructive rewrite of an existing file is preceded by a copy:

    backup enabled   →  PATH.bak.YYYYMMDDhhmmss  (one per run)
    backup disabled  →  PATH.bak                 (single, overwritten)
"""

from __future__ import annotations

import logging
import shutil
from datetime import datetime
from pathlib import Path

from iniq.adapters.shell.command import CommandRunner

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"


def backup_path(path: Path, *, enabled: bool, now: datetime | None = None) -> Path:
    """Where the backup of ``path`` goes under the given policy."""
    if enabled:
        stamp = (now or datetime.now()).strftime(TIMESTAMP_FORMAT)
        return path.with_name(f"{path.name}.bak.{stamp}")
    return path.with_name(f"{path.name}.bak")


def backup_file(
    path: Path,
    *,
    enabled: bool,
    runner: CommandRunner | None = None,
    use_sudo: bool = False,
    now: datetime | None = None,
) -> Path | None:
    """Copy ``path`` aside before it is rewritten.

    With ``use_sudo`` the copy is made with ``sudo cp -p`` through
    ``runner`` (the caller cannot read root-owned files itself).

    Returns:
        The backup path, or None if ``path`` does not exist.
    """
    dest = backup_path(path, enabled=enabled, now=now)

    if use_sudo:
        if runner is None:
            raise ValueError("use_sudo requires a runner")
        result = runner.run(["sudo", "test", "-e", str(path)])
        if not result.ok:
            logger.debug("Nothing to back up at %s", path)
            return None
        runner.check(["sudo", "cp", "-p", str(path), str(dest)], f"failed to back up {path}")
    else:
        if not path.exists():
            logger.debug("Nothing to back up at %s", path)
            return None
        shutil.copy2(path, dest)

    logger.info("Backed up %s → %s", path, dest)
    return dest
