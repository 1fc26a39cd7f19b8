"""
Security feature — harden the SSH daemon.

Manages ``PermitRootLogin`` and ``PasswordAuthentication`` in
``sshd_config`` through the idempotent directive mutator, validates the
result with ``sshd -t`` and restarts the daemon.
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from iniq.adapters.host import Host
from iniq.adapters.osdetect import OsInfo
from iniq.core.features.base import DetectedState, ExecutionContext, Feature, Flag, show_field
from iniq.core.models.options import Options
from iniq.core.models.toggle import ToggleAction, parse_toggle
from iniq.core.reliability.errors import ConfigurationError, CriticalFailure, IniqError, PrivilegeError
from iniq.core.services.backup import backup_file
from iniq.core.services.directives import (
    find_directive,
    password_auth_disabled,
    root_login_disabled,
    set_directives,
)

logger = logging.getLogger(__name__)

ROOT_LOGIN = "PermitRootLogin"
PASSWORD_AUTH = "PasswordAuthentication"


def desired_settings(options: Options) -> dict[str, str]:
    """Directive values the options ask for, in file-edit order."""
    settings: dict[str, str] = {}

    root = parse_toggle(options.ssh_root_login)
    if root is None and (options.ssh_no_root or options.all):
        root = ToggleAction.DISABLE
    if root is not None:
        settings[ROOT_LOGIN] = "yes" if root is ToggleAction.ENABLE else "no"

    password = parse_toggle(options.ssh_password_auth)
    if password is None and (options.ssh_no_password or options.all):
        password = ToggleAction.DISABLE
    if password is not None:
        settings[PASSWORD_AUTH] = "yes" if password is ToggleAction.ENABLE else "no"

    return settings


class SecurityFeature(Feature):
    flags = (
        Flag("ssh-root-login", "Enable/disable SSH root login (yes/no)", default=""),
        Flag("ssh-password-auth", "Enable/disable SSH password authentication (yes/no)", default=""),
        Flag("ssh-no-root", "Disable SSH root login (deprecated)", default=False),
        Flag("ssh-no-password", "Disable SSH password authentication (deprecated)", default=False),
        Flag("all", "Apply all security hardening", shorthand="a", default=False),
    )

    def __init__(self, os_info: OsInfo, host: Host, config_path: Path | None = None):
        super().__init__(os_info, host)
        self.config_path = config_path or Path(os_info.ssh_config_path or "/etc/ssh/sshd_config")
        self._restart_pending = False

    @property
    def name(self) -> str:
        return "security"

    @property
    def description(self) -> str:
        return "SSH security"

    @property
    def priority(self) -> int:
        return 40

    def should_activate(self, options: Options) -> bool:
        if options.skip_sudo:
            return False
        if options.all:
            # "all" implies both hardening flags
            options.ssh_no_root = True
            options.ssh_no_password = True
        if options.interactive:
            return True
        return bool(
            options.ssh_root_login
            or options.ssh_password_auth
            or options.ssh_no_root
            or options.ssh_no_password
        )

    def validate_options(self, options: Options) -> None:
        root = parse_toggle(options.ssh_root_login)
        password = parse_toggle(options.ssh_password_auth)
        if root is ToggleAction.ENABLE and options.ssh_no_root:
            raise ConfigurationError("conflicting options: --ssh-root-login=yes with --ssh-no-root")
        if password is ToggleAction.ENABLE and options.ssh_no_password:
            raise ConfigurationError("conflicting options: --ssh-password-auth=yes with --ssh-no-password")

    # ── State ───────────────────────────────────────────────────

    def detect_current_state(self, ctx: ExecutionContext) -> DetectedState:
        state: DetectedState = {
            "config_path": str(self.config_path),
            "config_exists": self.config_path.exists(),
        }
        text = ""
        if state["config_exists"]:
            try:
                text = self.config_path.read_text(encoding="utf-8", errors="surrogateescape")
            except PermissionError:
                state["config_readable"] = False
        root = find_directive(text, ROOT_LOGIN)
        password = find_directive(text, PASSWORD_AUTH)
        state.update(
            {
                "permit_root_login_value": root.value,
                "permit_root_login_source": root.source.value,
                "root_login_disabled": root_login_disabled(root.value),
                "password_auth_value": password.value,
                "password_auth_source": password.source.value,
                "password_auth_disabled": password_auth_disabled(password.value),
            }
        )
        return state

    def render_state(self, state: DetectedState) -> None:
        show_field("Config file", state["config_path"])
        if state.get("config_readable") is False:
            show_field("Status", "config not readable without root", ok=False)
            return
        root_src = state["permit_root_login_source"]
        show_field(
            "Root login",
            f"{'disabled' if state['root_login_disabled'] else 'enabled'} "
            f"({ROOT_LOGIN} {state['permit_root_login_value']}, {root_src})",
            ok=state["root_login_disabled"],
        )
        pw_src = state["password_auth_source"]
        show_field(
            "Password authentication",
            f"{'disabled' if state['password_auth_disabled'] else 'enabled'} "
            f"({PASSWORD_AUTH} {state['password_auth_value']}, {pw_src})",
            ok=state["password_auth_disabled"],
        )

    def prompt_user(self, ctx: ExecutionContext, state: DetectedState) -> None:
        assert ctx.prompter is not None
        options = ctx.options

        if not options.ssh_root_login and not options.ssh_no_root:
            result = ctx.prompter.toggle("SSH root login", not state["root_login_disabled"])
            if result.has_change:
                options.ssh_root_login = result.action.value
                options.derived.ssh_security_has_changes = True

        if not options.ssh_password_auth and not options.ssh_no_password:
            result = ctx.prompter.toggle("SSH password authentication", not state["password_auth_disabled"])
            if result.has_change:
                options.ssh_password_auth = result.action.value
                options.derived.ssh_security_has_changes = True

    def operation_title(self, ctx: ExecutionContext, state: DetectedState) -> str | None:
        pending = self._pending_settings(ctx.options, state)
        if not pending:
            if desired_settings(ctx.options):
                logger.info("SSH security settings already applied")
            return None
        ctx.options.derived.ssh_security_has_changes = True
        return "Configure SSH security"

    def _pending_settings(self, options: Options, state: DetectedState) -> dict[str, str]:
        current = {
            ROOT_LOGIN: (state.get("permit_root_login_value", ""), state.get("permit_root_login_source")),
            PASSWORD_AUTH: (state.get("password_auth_value", ""), state.get("password_auth_source")),
        }
        pending: dict[str, str] = {}
        for name, value in desired_settings(options).items():
            have, source = current[name]
            if source == "explicit" and have.lower() == value:
                continue
            pending[name] = value
        return pending

    # ── Execute ─────────────────────────────────────────────────

    def execute(self, ctx: ExecutionContext) -> None:
        settings = desired_settings(ctx.options)
        if not settings:
            logger.info("No SSH security options enabled, skipping")
            return

        if ctx.dry_run:
            for name, value in settings.items():
                verb = "disable" if value == "no" else "enable"
                what = "SSH root login" if name == ROOT_LOGIN else "SSH password authentication"
                logger.info("Would %s %s (%s %s in %s)", verb, what, name, value, self.config_path)
            return

        if not self.host.is_root:
            raise PrivilegeError("configuring SSH security requires root privileges")

        try:
            original = self.config_path.read_text(encoding="utf-8", errors="surrogateescape")
        except FileNotFoundError as e:
            raise IniqError(f"SSH config file not found: {self.config_path}") from e

        updated = set_directives(original, settings)
        if updated == original:
            logger.info("SSH configuration already up to date")
        else:
            backup = backup_file(self.config_path, enabled=ctx.options.backup)
            self._write(updated)
            self._validate(backup)
            for name, value in settings.items():
                logger.info("Set %s %s in %s", name, value, self.config_path)
            self._restart_pending = True

        if self._restart_pending:
            self._restart()

    def _write(self, text: str) -> None:
        tmp = self.config_path.with_name(f".{self.config_path.name}.iniq-tmp")
        tmp.write_text(text, encoding="utf-8", errors="surrogateescape")
        shutil.copymode(self.config_path, tmp)
        os.replace(tmp, self.config_path)

    def _validate(self, backup: Path | None) -> None:
        if not self.host.which("sshd"):
            logger.debug("sshd not found, skipping config validation")
            return
        result = self.host.runner.run(["sshd", "-t", "-f", str(self.config_path)])
        if result.ok:
            return
        if backup is not None:
            try:
                shutil.copy2(backup, self.config_path)
            except OSError as e:
                raise CriticalFailure(f"sshd rejected the new configuration and {backup} could not be restored: {e}") from e
            logger.error("sshd rejected the new configuration; restored %s", backup)
        raise ConfigurationError(f"sshd configuration validation failed: {result.error}")

    def _restart(self) -> None:
        command = self.os_info.ssh_restart_command
        if not command:
            raise ConfigurationError(f"unsupported OS: {self.os_info.type}")
        logger.info("Restarting SSH service...")
        result = self.host.runner.run(["sh", "-c", command], timeout=60)
        if not result.ok:
            raise IniqError(f"failed to restart SSH service: {result.error}")
        self._restart_pending = False
        logger.info("SSH service restarted")
