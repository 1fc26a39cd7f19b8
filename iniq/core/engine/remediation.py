"""
Permission remediation — what to do when an operation lacks privileges.

Offered by the orchestrator only when prompting is allowed, the process
is not root and the failing feature applies its changes through sudo;
features that need a root process are not helped by group membership.
Choices: join the admin group (and try to activate it right away), skip
the operation, or give up.
"""

from __future__ import annotations

import logging
from enum import Enum

from iniq.core.features.base import ExecutionContext
from iniq.core.reliability.errors import IniqError
from iniq.core.services import privileges

logger = logging.getLogger(__name__)


class Remediation(str, Enum):
    RETRY = "retry"        # privileges acquired, run the operation again
    SKIP = "skip"          # leave this operation out, continue the run
    RELOGIN = "relogin"    # membership added but needs a new login session
    ABORT = "abort"        # stop the run


def offer_sudo_group(ctx: ExecutionContext, title: str, error: BaseException) -> Remediation:
    """Ask the user how to recover from a permission failure."""
    assert ctx.prompter is not None
    host = ctx.host
    username = host.current_user().name

    logger.warning("'%s' needs elevated privileges: %s", title, error)

    if ctx.prompter.confirm(f"Add '{username}' to the sudo group and retry?", default=True):
        try:
            privileges.add_user_to_admin_group(host, ctx.os_info, username)
        except IniqError as e:
            logger.error("Could not add '%s' to the sudo group: %s", username, e)
            logger.error("Please run iniq with sudo privileges")
            return Remediation.ABORT
        if privileges.activate_admin_group(host):
            logger.info("Sudo privileges active, retrying '%s'", title)
            return Remediation.RETRY
        return Remediation.RELOGIN

    if ctx.prompter.confirm(f"Skip '{title}' and continue?", default=True):
        logger.warning("Skipping '%s'", title)
        return Remediation.SKIP

    return Remediation.ABORT
