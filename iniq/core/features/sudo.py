"""
Sudo feature — grant the user sudo, with or without a password.

Linux: a ``/etc/sudoers.d/<user>`` fragment.  macOS: membership of the
``admin`` group, plus a NOPASSWD fragment when passwordless sudo is
requested.  Runs after the user feature, so the account exists by the
time the fragment is written.
"""

from __future__ import annotations

import logging
from pathlib import Path

from iniq.adapters.host import Host
from iniq.adapters.osdetect import OsInfo
from iniq.core.features.base import DetectedState, ExecutionContext, Feature, Flag, show_field
from iniq.core.models.options import Options
from iniq.core.reliability.errors import ConfigurationError, IniqError, SudoActivationPending
from iniq.core.services import privileges
from iniq.core.services.sudoers import SUDOERS_DIR, SudoersWriter

logger = logging.getLogger(__name__)


class SudoFeature(Feature):
    runs_via_sudo = True
    flags = (
        Flag("sudo-nopasswd", "Configure passwordless sudo", default=True),
        Flag("skip-sudo", "Skip sudo configuration", default=False),
    )

    def __init__(self, os_info: OsInfo, host: Host, sudoers_dir: Path = SUDOERS_DIR):
        super().__init__(os_info, host)
        self.sudoers_dir = sudoers_dir

    @property
    def name(self) -> str:
        return "sudo"

    @property
    def description(self) -> str:
        return "Sudo configuration"

    @property
    def priority(self) -> int:
        return 30

    def writer(self, ctx: ExecutionContext) -> SudoersWriter:
        return SudoersWriter(
            self.host.runner,
            directory=self.sudoers_dir,
            use_sudo=not self.host.is_root,
            backup=ctx.options.backup,
        )

    def should_activate(self, options: Options) -> bool:
        if options.skip_sudo:
            return False
        if options.interactive:
            return True
        return bool(options.user) or options.sudo_nopasswd is not None

    def validate_options(self, options: Options) -> None:
        if options.interactive:
            return
        if not options.effective_user and options.sudo_nopasswd is None:
            raise ConfigurationError("missing required username for sudo configuration")

    # ── State ───────────────────────────────────────────────────

    def detect_current_state(self, ctx: ExecutionContext) -> DetectedState:
        username = ctx.username or self.host.real_user().name
        state: DetectedState = {
            "username": username,
            "user_exists": self.host.user_exists(username),
            "is_root": self.host.is_root,
        }
        if not state["user_exists"]:
            return state

        writer = self.writer(ctx)
        state["in_sudo_group"] = privileges.in_admin_group(self.host, username)
        state["has_sudo"] = privileges.user_has_sudo(self.host, username, writer)
        state["has_passwordless_sudo"] = privileges.has_passwordless_sudo(self.host, username, writer)
        return state

    def render_state(self, state: DetectedState) -> None:
        show_field("Username", state["username"])
        if not state["user_exists"]:
            show_field("User status", "does not exist (sudo is applied after creation)", ok=False)
            return
        if state["has_sudo"]:
            show_field("Sudo access", "enabled", ok=True)
        else:
            show_field("Sudo access", "disabled", ok=False)
        if state["has_passwordless_sudo"]:
            show_field("Passwordless sudo", "enabled", ok=True)
        elif state["has_sudo"]:
            show_field("Passwordless sudo", "disabled (password required)", ok=False)
        else:
            show_field("Passwordless sudo", "not configured", ok=False)
        show_field("Sudo group", "member" if state["in_sudo_group"] else "not a member", ok=state["in_sudo_group"])
        show_field("Root privileges", "running as root" if state["is_root"] else "not running as root", ok=state["is_root"])

    def should_prompt_user(self, ctx: ExecutionContext, state: DetectedState) -> bool:
        if not super().should_prompt_user(ctx, state):
            return False
        # Nothing to ask a user who already has passwordless sudo
        return not state.get("has_passwordless_sudo", False)

    def prompt_user(self, ctx: ExecutionContext, state: DetectedState) -> None:
        assert ctx.prompter is not None
        username = state["username"]
        if not state.get("has_sudo", False):
            if not ctx.prompter.confirm(f"Grant sudo privileges to '{username}'?", default=True):
                ctx.options.skip_sudo = True
                return
        if ctx.options.sudo_nopasswd is None:
            ctx.options.sudo_nopasswd = ctx.prompter.confirm("Enable passwordless sudo?", default=True)

    def operation_title(self, ctx: ExecutionContext, state: DetectedState) -> str | None:
        options = ctx.options
        if options.skip_sudo:
            logger.info("Skipping sudo configuration")
            return None
        if state.get("has_passwordless_sudo") and options.nopasswd:
            options.derived.sudo_already_configured = True
            logger.info("User '%s' already has passwordless sudo", state["username"])
            return None
        if options.nopasswd:
            return "Configure passwordless sudo"
        return "Configure sudo"

    # ── Execute ─────────────────────────────────────────────────

    def execute(self, ctx: ExecutionContext) -> None:
        options = ctx.options
        username = options.effective_user or self.host.real_user().name
        nopasswd = options.nopasswd

        if options.derived.sudo_already_configured:
            logger.info("Sudo already configured for %s", username)
            return

        if ctx.dry_run:
            if nopasswd:
                logger.info("Would configure passwordless sudo for user %s", username)
            else:
                logger.info("Would configure sudo with password for user %s", username)
            return

        if not self.host.is_root:
            current = self.host.current_user().name
            if privileges.membership_pending(self.host, current):
                raise SudoActivationPending()
            logger.info("Not running as root; using sudo (you may be prompted for your password)")

        if not self.host.user_exists(username):
            raise IniqError(f"user {username} does not exist")

        logger.info(
            "Configuring sudo for %s (password required: %s)",
            username, "no" if nopasswd else "yes",
        )

        if self.os_info.is_linux:
            self.writer(ctx).write(username, nopasswd)
        elif self.os_info.is_darwin:
            self._configure_darwin(ctx, username, nopasswd)
        else:
            raise ConfigurationError(f"unsupported OS: {self.os_info.type}")

        logger.info("Sudo configured successfully for %s", username)

    def _configure_darwin(self, ctx: ExecutionContext, username: str, nopasswd: bool) -> None:
        cmd = ["dseditgroup", "-o", "edit", "-a", username, "-t", "user", "admin"]
        if not self.host.is_root:
            cmd = ["sudo"] + cmd
        self.host.runner.check(cmd, f"failed to add {username} to the admin group")
        if nopasswd:
            self.writer(ctx).write(username, nopasswd)
