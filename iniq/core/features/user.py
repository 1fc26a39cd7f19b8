"""
User feature — create the login account everything else hangs off.

Critical: the SSH-key and sudo features assume the account exists, so a
failure here aborts the run.
"""

from __future__ import annotations

import logging
import re

from iniq.core.features.base import DetectedState, ExecutionContext, Feature, Flag, show_field
from iniq.core.models.options import Options
from iniq.core.reliability.errors import ConfigurationError, PrivilegeError
from iniq.core.services import passwords

logger = logging.getLogger(__name__)

USERNAME_RE = re.compile(r"^[A-Za-z0-9_.\-]+$")

PASSWORD_CONFLICT = "cannot specify both --password and --no-pass options"

# macOS: first regular UID, "staff" group
_DARWIN_FIRST_UID = 501
_DARWIN_STAFF_GID = 20


def validate_username(username: str) -> None:
    if not USERNAME_RE.match(username):
        raise ConfigurationError(
            f"invalid username: {username} "
            "(only letters, numbers, underscore, hyphen, and dot are allowed)"
        )


class UserFeature(Feature):
    critical = True
    flags = (
        Flag("user", "Username to create or configure", shorthand="u", default=""),
        Flag("password", "Set a password for the user", default=False),
        Flag("no-password", "Create the user without a password", default=False),
    )

    @property
    def name(self) -> str:
        return "user"

    @property
    def description(self) -> str:
        return "User management"

    @property
    def priority(self) -> int:
        return 10

    def should_activate(self, options: Options) -> bool:
        return options.interactive or bool(options.user)

    def validate_options(self, options: Options) -> None:
        if options.password and options.no_password:
            raise ConfigurationError(PASSWORD_CONFLICT)
        if options.interactive and not options.effective_user:
            return
        username = options.effective_user
        if not username:
            raise ConfigurationError("missing required username")
        validate_username(username)

    # ── State ───────────────────────────────────────────────────

    def detect_current_state(self, ctx: ExecutionContext) -> DetectedState:
        username = ctx.username or self.host.real_user().name
        info = self.host.lookup_user(username)
        state: DetectedState = {
            "username": username,
            "user_exists": info is not None,
            "running_as_root": self.host.is_root,
        }
        if info is not None:
            state["home"] = info.home
            state["shell"] = info.shell
        return state

    def render_state(self, state: DetectedState) -> None:
        if state["user_exists"]:
            show_field("User", f"{state['username']} (exists, shell {state.get('shell') or '?'})", ok=True)
        else:
            show_field("User", f"{state['username']} (does not exist)", ok=False)

    def prompt_user(self, ctx: ExecutionContext, state: DetectedState) -> None:
        assert ctx.prompter is not None
        default = state["username"]
        username = ctx.prompter.text("Username to configure", default=default).strip() or default
        validate_username(username)
        ctx.options.user = username
        ctx.options.derived.username = username

        exists = self.host.user_exists(username)
        if not exists and not (ctx.options.password or ctx.options.no_password):
            if ctx.prompter.confirm(f"Set a password for new user '{username}'?", default=True):
                ctx.options.password = True
            else:
                ctx.options.no_password = True

    def operation_title(self, ctx: ExecutionContext, state: DetectedState) -> str | None:
        username = ctx.username or state.get("username") or self.host.real_user().name
        if not self.host.user_exists(username):
            return f"Create user '{username}'"
        ctx.options.derived.user_already_exists = True
        if ctx.options.password:
            return f"Set password for user '{username}'"
        logger.info("User '%s' already exists", username)
        return None

    # ── Execute ─────────────────────────────────────────────────

    def execute(self, ctx: ExecutionContext) -> None:
        options = ctx.options
        username = options.effective_user
        if not username:
            username = self.host.real_user().name
            logger.info("No username specified, using detected user: %s", username)
        options.derived.username = username

        if options.password and options.no_password:
            raise ConfigurationError(PASSWORD_CONFLICT)

        shell = options.shell or "/bin/bash"

        if self.host.user_exists(username):
            options.derived.user_already_exists = True
            logger.info("User %s already exists", username)
            if options.password:
                self._set_password(ctx, username)
            return

        needs_password = not options.no_password
        if needs_password and not ctx.can_prompt and not passwords.needs_terminal(self.os_info):
            raise ConfigurationError(
                f"creating user '{username}' requires password input; "
                "remove -y to enter it interactively, or add --no-pass"
            )

        if ctx.dry_run:
            logger.info("Would create user %s with shell %s", username, shell)
            if needs_password:
                logger.info("Would set password for user %s", username)
            else:
                logger.info("Would create user %s without password", username)
            return

        if not self.host.is_root:
            raise PrivilegeError("creating users requires root privileges")

        if self.os_info.is_linux:
            self._create_linux_user(username, shell)
        elif self.os_info.is_darwin:
            self._create_darwin_user(username, shell)
        else:
            raise ConfigurationError(f"unsupported OS: {self.os_info.type}")

        logger.info("User %s created successfully", username)

        if needs_password:
            self._set_password(ctx, username)
        else:
            logger.info(
                "User %s created without password. Use 'passwd %s' to set one later.",
                username, username,
            )

    def _set_password(self, ctx: ExecutionContext, username: str) -> None:
        if ctx.dry_run:
            logger.info("Would set password for user %s", username)
            return
        password = None
        if not passwords.needs_terminal(self.os_info):
            if not ctx.can_prompt:
                raise ConfigurationError(f"setting the password for '{username}' requires password input")
            assert ctx.prompter is not None
            password = ctx.prompter.password(username)
        passwords.set_password(self.host, self.os_info, username, password)

    def _create_linux_user(self, username: str, shell: str) -> None:
        self.host.runner.check(
            ["useradd", "-m", "-s", shell, username],
            f"failed to create user {username}",
        )

    def _create_darwin_user(self, username: str, shell: str) -> None:
        uid = _DARWIN_FIRST_UID
        while self.host.uid_in_use(uid):
            uid += 1
        home = f"/Users/{username}"
        record = f"/Users/{username}"
        for attrs in (
            [],
            ["UserShell", shell],
            ["RealName", username],
            ["UniqueID", str(uid)],
            ["PrimaryGroupID", str(_DARWIN_STAFF_GID)],
            ["NFSHomeDirectory", home],
        ):
            self.host.runner.check(
                ["dscl", ".", "-create", record, *attrs],
                f"failed to create user {username}",
            )
        self.host.runner.check(["createhomedir", "-c", "-u", username], f"failed to create {home}")
