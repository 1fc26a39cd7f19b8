"""
Status use case — read-only overview of what iniq manages.

Runs every feature's detection step and condenses the detected state
into a few labelled lines.  Never mutates anything.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from iniq.adapters.host import Host
from iniq.adapters.osdetect import OsInfo
from iniq.core.features.base import DetectedState, ExecutionContext
from iniq.core.features.registry import (
    DEFAULT_FEATURES,
    FeatureFactory,
    FeatureRegistry,
    build_registry,
    sort_by_priority,
)
from iniq.core.models.options import Options
from iniq.core.services import privileges

logger = logging.getLogger(__name__)

StatusLine = tuple[str, str, bool | None]


@dataclass
class StatusSection:
    name: str
    description: str
    lines: list[StatusLine] = field(default_factory=list)
    error: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "lines": [{"label": l, "value": v, "ok": ok} for l, v, ok in self.lines],
            "error": self.error,
        }


@dataclass
class StatusReport:
    os_info: OsInfo
    is_root: bool
    has_privileges: bool
    sections: list[StatusSection] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "os": self.os_info.model_dump(),
            "is_root": self.is_root,
            "has_privileges": self.has_privileges,
            "sections": [s.to_dict() for s in self.sections],
        }


def get_status(registry: FeatureRegistry, ctx: ExecutionContext) -> StatusReport:
    """Detect every feature's state."""
    host: Host = ctx.host
    report = StatusReport(
        os_info=ctx.os_info,
        is_root=host.is_root,
        has_privileges=privileges.has_privileges(host),
    )
    for feature in sort_by_priority(registry.features):
        section = StatusSection(name=feature.name, description=feature.description)
        try:
            state = feature.detect_current_state(ctx)
        except Exception as e:
            logger.debug("status: %s detection failed", feature.name, exc_info=True)
            section.error = str(e)
        else:
            section.lines = summarize(feature.name, state)
        report.sections.append(section)
    return report


def summarize(name: str, state: DetectedState) -> list[StatusLine]:
    """Condense one feature's detected state."""
    if name == "user":
        exists = state.get("user_exists", False)
        return [("User", f"{state.get('username', '?')} ({'exists' if exists else 'missing'})", exists)]

    if name == "ssh-keys":
        if state.get("unreadable"):
            return [("authorized_keys", "not readable", None)]
        count = state.get("key_count", 0)
        return [("SSH keys", f"{count} in {state.get('authorized_keys', '?')}", count > 0)]

    if name == "sudo":
        if not state.get("user_exists", False):
            return [("Sudo", "user does not exist", False)]
        lines: list[StatusLine] = [("Sudo access", "yes" if state.get("has_sudo") else "no", bool(state.get("has_sudo")))]
        passwordless = bool(state.get("has_passwordless_sudo"))
        lines.append(("Passwordless sudo", "yes" if passwordless else "no", passwordless))
        return lines

    if name == "security":
        if state.get("config_readable") is False:
            return [("sshd_config", "not readable", None)]
        root_off = bool(state.get("root_login_disabled"))
        pw_off = bool(state.get("password_auth_disabled"))
        return [
            ("Root login", "disabled" if root_off else "enabled", root_off),
            ("Password authentication", "disabled" if pw_off else "enabled", pw_off),
        ]

    return [(k, str(v), None) for k, v in state.items()]


def collect_status(
    options: Options,
    *,
    host: Host,
    os_info: OsInfo,
    factories: Iterable[FeatureFactory] = DEFAULT_FEATURES,
) -> StatusReport:
    """Build the registry and detect every feature without running anything."""
    ctx = ExecutionContext(options=options, os_info=os_info, host=host)
    return get_status(build_registry(os_info, host, factories), ctx)
