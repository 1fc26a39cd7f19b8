"""
SSH keys feature — install public keys into ``~user/.ssh/authorized_keys``.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable

from iniq.adapters.host import Host
from iniq.adapters.osdetect import OsInfo
from iniq.adapters.sshkeys import (
    KeySource,
    SSHKey,
    fetch_keys,
    merge_authorized_keys,
    parse_key_source,
    parse_keys,
)
from iniq.core.features.base import DetectedState, ExecutionContext, Feature, Flag, show_field
from iniq.core.models.options import Options
from iniq.core.reliability.errors import ErrorKind, IniqError, TransientError, classify_error
from iniq.core.services.backup import backup_file

logger = logging.getLogger(__name__)

SSH_DIR_MODE = 0o700
AUTHORIZED_KEYS_MODE = 0o600

KeyFetcher = Callable[[KeySource], list[SSHKey]]


class SSHKeysFeature(Feature):
    flags = (
        Flag(
            "keys",
            "SSH key sources (github:user, gitlab:user, url:https://..., file:path)",
            shorthand="k",
            default=[],
        ),
    )

    def __init__(self, os_info: OsInfo, host: Host, fetcher: KeyFetcher = fetch_keys):
        super().__init__(os_info, host)
        self.fetcher = fetcher

    @property
    def name(self) -> str:
        return "ssh-keys"

    @property
    def description(self) -> str:
        return "SSH key management"

    @property
    def priority(self) -> int:
        return 20

    def should_activate(self, options: Options) -> bool:
        return options.interactive or bool(options.keys)

    def validate_options(self, options: Options) -> None:
        for source in options.keys:
            parse_key_source(source)

    # ── State ───────────────────────────────────────────────────

    def _paths(self, username: str) -> tuple[Path, Path]:
        ssh_dir = self.host.home_dir(username, self.os_info.home_root) / ".ssh"
        return ssh_dir, ssh_dir / "authorized_keys"

    def detect_current_state(self, ctx: ExecutionContext) -> DetectedState:
        username = ctx.username or self.host.real_user().name
        ssh_dir, auth_file = self._paths(username)
        state: DetectedState = {
            "username": username,
            "user_exists": self.host.user_exists(username),
            "ssh_dir": str(ssh_dir),
            "ssh_dir_exists": ssh_dir.is_dir(),
            "authorized_keys": str(auth_file),
            "authorized_keys_exists": False,
            "key_count": 0,
            "keys": [],
        }
        try:
            text = auth_file.read_text(encoding="utf-8", errors="surrogateescape")
        except FileNotFoundError:
            return state
        except PermissionError:
            state["unreadable"] = True
            return state
        keys = parse_keys(text, source=str(auth_file))
        state["authorized_keys_exists"] = True
        state["key_count"] = len(keys)
        state["keys"] = [f"{k.type} {k.fingerprint} {k.comment}".strip() for k in keys]
        return state

    def render_state(self, state: DetectedState) -> None:
        if not state["user_exists"]:
            show_field("User", f"{state['username']} (will be created first)", ok=False)
            return
        if state.get("unreadable"):
            show_field("authorized_keys", f"{state['authorized_keys']} (not readable)", ok=False)
            return
        if not state["authorized_keys_exists"]:
            show_field("authorized_keys", "not present", ok=False)
            return
        show_field("authorized_keys", f"{state['key_count']} key(s)", ok=state["key_count"] > 0)
        for key in state["keys"]:
            show_field("  Key", key)

    def prompt_user(self, ctx: ExecutionContext, state: DetectedState) -> None:
        assert ctx.prompter is not None
        if ctx.options.keys:
            return
        answer = ctx.prompter.text(
            "SSH key sources (e.g. github:alice;gitlab:bob), empty to skip",
            default="",
        )
        ctx.options.keys = answer
        self.validate_options(ctx.options)

    def operation_title(self, ctx: ExecutionContext, state: DetectedState) -> str | None:
        if not ctx.options.keys:
            logger.info("No SSH keys specified, skipping")
            return None
        return "Configure SSH keys"

    # ── Execute ─────────────────────────────────────────────────

    def execute(self, ctx: ExecutionContext) -> None:
        username = ctx.username or self.host.real_user().name
        sources = [parse_key_source(source) for source in ctx.options.keys]
        if not sources:
            logger.info("No SSH keys specified, skipping")
            return

        ssh_dir, auth_file = self._paths(username)

        if ctx.dry_run:
            logger.info(
                "Would add SSH keys from %s to %s",
                ", ".join(s.label for s in sources), auth_file,
            )
            return

        keys = self._collect(sources)
        self._install(ctx, username, ssh_dir, auth_file, keys)

    def _collect(self, sources: list[KeySource]) -> list[SSHKey]:
        """Fetch every source; a failing source is a warning, not an error.

        Raises:
            TransientError: When nothing was fetched and at least one
                source failed for a network reason.
            IniqError: When nothing was fetched at all.
        """
        keys: list[SSHKey] = []
        transient: list[str] = []
        for source in sources:
            logger.info("Processing SSH key source: %s", source.label)
            try:
                fetched = self.fetcher(source)
            except Exception as e:
                if classify_error(e) is ErrorKind.TRANSIENT:
                    transient.append(str(e))
                logger.warning("Failed to process key source %s: %s", source.label, e)
                continue
            logger.info("Found %d key(s) from %s", len(fetched), source.label)
            keys.extend(fetched)

        if not keys:
            if transient:
                raise TransientError("; ".join(transient))
            raise IniqError("no valid SSH keys found in any key source")
        return keys

    def _install(
        self,
        ctx: ExecutionContext,
        username: str,
        ssh_dir: Path,
        auth_file: Path,
        keys: list[SSHKey],
    ) -> None:
        owner = self.host.lookup_user(username)
        chown = self.host.is_root and owner is not None

        if not ssh_dir.is_dir():
            ssh_dir.mkdir(mode=SSH_DIR_MODE, parents=True)
            logger.info("Created %s", ssh_dir)
        os.chmod(ssh_dir, SSH_DIR_MODE)

        existing = ""
        if auth_file.exists():
            existing = auth_file.read_text(encoding="utf-8", errors="surrogateescape")

        text, added = merge_authorized_keys(existing, keys)
        if text != existing:
            if existing:
                backup_file(auth_file, enabled=ctx.options.backup)
            fd = os.open(auth_file, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, AUTHORIZED_KEYS_MODE)
            with os.fdopen(fd, "w", encoding="utf-8", errors="surrogateescape") as f:
                f.write(text)
        os.chmod(auth_file, AUTHORIZED_KEYS_MODE)

        if chown:
            self.host.chown(ssh_dir, owner)
            self.host.chown(auth_file, owner)

        skipped = len(keys) - added
        if added:
            logger.info("Added %d SSH key(s) to %s", added, auth_file)
        if skipped:
            logger.info("Skipped %d key(s) already present", skipped)
