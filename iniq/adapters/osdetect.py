"""
OS detection — which platform we run on and where its SSH bits live.

Read-only probe of ``platform.system()`` and ``/etc/os-release``.
Supplies the SSH daemon config path and the restart command to the
security feature, and the home-directory root to the key feature.
"""

from __future__ import annotations

import logging
import platform
from pathlib import Path

from pydantic import BaseModel

logger = logging.getLogger(__name__)

OS_RELEASE_PATH = Path("/etc/os-release")

LINUX_SSH_RESTART = (
    "systemctl restart ssh 2>/dev/null || systemctl restart sshd 2>/dev/null "
    "|| service ssh restart"
)
DARWIN_SSH_RESTART = "launchctl kickstart -k system/com.openssh.sshd"


class OsInfo(BaseModel):
    """What iniq needs to know about the operating system."""

    type: str                      # "linux" | "darwin" | ...
    distribution: str = ""         # os-release ID ("ubuntu", "debian", ...)
    version: str = ""
    ssh_config_path: str = "/etc/ssh/sshd_config"
    ssh_restart_command: str = LINUX_SSH_RESTART
    home_root: str = "/home"

    @property
    def is_linux(self) -> bool:
        return self.type == "linux"

    @property
    def is_darwin(self) -> bool:
        return self.type == "darwin"

    @property
    def is_supported(self) -> bool:
        return self.type in ("linux", "darwin")

    @property
    def label(self) -> str:
        parts = [self.distribution or self.type, self.version]
        return " ".join(p for p in parts if p)


def parse_os_release(text: str) -> dict[str, str]:
    """Parse ``KEY=value`` lines of an os-release file."""
    fields: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        fields[key.strip()] = value.strip().strip('"').strip("'")
    return fields


def detect_os(os_release_path: Path = OS_RELEASE_PATH) -> OsInfo:
    """Detect the running operating system."""
    system = platform.system().lower()

    if system == "linux":
        release: dict[str, str] = {}
        try:
            release = parse_os_release(os_release_path.read_text(encoding="utf-8"))
        except OSError:
            logger.debug("No readable %s, distribution unknown", os_release_path)
        return OsInfo(
            type="linux",
            distribution=release.get("ID", ""),
            version=release.get("VERSION_ID", ""),
        )

    if system == "darwin":
        return OsInfo(
            type="darwin",
            distribution="macos",
            version=platform.mac_ver()[0],
            ssh_restart_command=DARWIN_SSH_RESTART,
            home_root="/Users",
        )

    return OsInfo(type=system or "unknown", ssh_config_path="", ssh_restart_command="")
