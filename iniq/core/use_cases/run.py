"""
Run use case — the composition root.

Builds the host adapter, OS info, feature registry and orchestrator for
one invocation and runs the active features.  The CLI calls ``run`` and
turns the result into an exit status; nothing here exits the process.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable

from iniq.adapters.host import Host
from iniq.adapters.osdetect import OsInfo, detect_os
from iniq.core.engine.orchestrator import Orchestrator, Remediator
from iniq.core.engine.remediation import offer_sudo_group
from iniq.core.features.base import ExecutionContext, Prompter
from iniq.core.features.registry import DEFAULT_FEATURES, FeatureFactory, build_registry
from iniq.core.models.options import Options
from iniq.core.models.outcome import RunReport
from iniq.core.reliability.errors import IniqError
from iniq.core.services import privileges

logger = logging.getLogger(__name__)


class PrivilegeCheck(str, Enum):
    CONTINUE = "continue"
    RELOGIN = "relogin"
    ABORT = "abort"


@dataclass
class RunResult:
    """Outcome of one ``run`` call."""

    report: RunReport = field(default_factory=RunReport)
    error: str = ""
    interactive: bool = False

    @property
    def exit_code(self) -> int:
        if self.error:
            return 1
        return self.report.exit_code

    def to_dict(self) -> dict:
        return {
            "exit_code": self.exit_code,
            "error": self.error,
            "interactive": self.interactive,
            "report": self.report.to_dict(),
        }


def build_context(
    options: Options,
    *,
    host: Host | None = None,
    os_info: OsInfo | None = None,
    prompter: Prompter | None = None,
) -> ExecutionContext:
    """Assemble the execution context; enters interactive mode when no action was requested."""
    if not options.has_action_flags() and not options.yes:
        options.interactive = True
    return ExecutionContext(
        options=options,
        os_info=os_info or detect_os(),
        host=host or Host(),
        prompter=prompter,
    )


def check_privileges(ctx: ExecutionContext) -> PrivilegeCheck:
    """Startup check: offer to join the sudo group when privileges are missing.

    Skipped for root, dry runs, ``--skip-sudo`` and unattended runs.
    """
    options = ctx.options
    host = ctx.host
    if host.is_root or options.dry_run or options.skip_sudo or not ctx.can_prompt:
        return PrivilegeCheck.CONTINUE
    if privileges.has_privileges(host):
        return PrivilegeCheck.CONTINUE

    assert ctx.prompter is not None
    username = host.current_user().name
    logger.warning("You are not root and '%s' has no sudo privileges", username)

    if ctx.prompter.confirm(f"Add '{username}' to the sudo group now?", default=True):
        try:
            privileges.add_user_to_admin_group(host, ctx.os_info, username)
        except IniqError as e:
            logger.error("%s", e)
            return PrivilegeCheck.ABORT
        if privileges.activate_admin_group(host):
            return PrivilegeCheck.CONTINUE
        logger.info("Please log out and log back in, then run iniq again")
        return PrivilegeCheck.RELOGIN

    if ctx.prompter.confirm("Continue without sudo configuration?", default=True):
        options.skip_sudo = True
        return PrivilegeCheck.CONTINUE
    return PrivilegeCheck.ABORT


def run(
    options: Options,
    *,
    host: Host | None = None,
    os_info: OsInfo | None = None,
    prompter: Prompter | None = None,
    factories: Iterable[FeatureFactory] = DEFAULT_FEATURES,
    sleep: Callable[[float], None] = time.sleep,
    remediator: Remediator | None = offer_sudo_group,
    on_start: Callable[[str], None] | None = None,
) -> RunResult:
    """Run every active feature for ``options``."""
    ctx = build_context(options, host=host, os_info=os_info, prompter=prompter)
    result = RunResult(interactive=options.interactive)

    if not ctx.os_info.is_supported:
        result.error = f"unsupported OS: {ctx.os_info.type}"
        return result
    if ctx.os_info.is_darwin:
        logger.warning("macOS support is experimental")

    check = check_privileges(ctx)
    if check is PrivilegeCheck.ABORT:
        result.error = "root or sudo privileges are required"
        return result
    if check is PrivilegeCheck.RELOGIN:
        result.report.aborted = True
        result.report.relogin_required = True
        return result

    registry = build_registry(ctx.os_info, ctx.host, factories)
    active = registry.get_active_features(options)
    if not active:
        logger.info("No operations requested")
        return result

    logger.debug("Active features: %s", ", ".join(f.name for f in active))
    orchestrator = Orchestrator(ctx, sleep=sleep, remediator=remediator, on_start=on_start)
    result.report = orchestrator.run(active)
    return result
