"""
Feature base — the contract between the orchestrator and each unit of work.

A feature is one kind of host change (user, SSH keys, sudo, SSH
hardening).  The orchestrator only talks to features through this
contract and drives each one through the same lifecycle:

    detect → display → prompt → validate → execute (with retries)

To create a new feature:
    1. Subclass Feature
    2. Implement name, description, priority, should_activate,
       validate_options, detect_current_state, operation_title, execute
    3. Add its class to DEFAULT_FEATURES in the registry module
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Protocol

import click

from iniq.adapters.host import Host
from iniq.adapters.osdetect import OsInfo
from iniq.core.models.options import Options
from iniq.core.models.toggle import StateToggleResult

DetectedState = dict[str, Any]


class Prompter(Protocol):
    """Terminal questions a feature may ask (implemented in ui.cli)."""

    def confirm(self, question: str, default: bool = True) -> bool: ...

    def text(self, question: str, default: str = "") -> str: ...

    def password(self, username: str) -> str: ...

    def toggle(self, feature_name: str, current_state: bool) -> StateToggleResult: ...


@dataclass(frozen=True)
class Flag:
    """Informational description of a CLI flag a feature consumes."""

    name: str
    usage: str
    shorthand: str = ""
    default: Any = None


@dataclass
class ExecutionContext:
    """Everything a feature needs for one run."""

    options: Options
    os_info: OsInfo
    host: Host
    prompter: Prompter | None = None

    @property
    def dry_run(self) -> bool:
        return self.options.dry_run

    @property
    def interactive(self) -> bool:
        """Wizard mode: display detected state and ask questions."""
        return self.options.interactive

    @property
    def can_prompt(self) -> bool:
        """Whether asking the user anything is allowed at all."""
        return self.prompter is not None and not self.options.yes

    @property
    def username(self) -> str:
        return self.options.effective_user


class Feature(ABC):
    """Abstract base class for all features."""

    critical: bool = False
    # mutations go through sudo when not root, so joining the sudo group helps
    runs_via_sudo: bool = False
    flags: tuple[Flag, ...] = ()

    def __init__(self, os_info: OsInfo, host: Host):
        self.os_info = os_info
        self.host = host

    @property
    @abstractmethod
    def name(self) -> str:
        """Short identifier (``user``, ``ssh-keys``, ``sudo``, ``security``)."""

    @property
    @abstractmethod
    def description(self) -> str:
        """One-line human description."""

    @property
    @abstractmethod
    def priority(self) -> int:
        """Execution order; lower runs first."""

    @abstractmethod
    def should_activate(self, options: Options) -> bool:
        """Whether the options ask for this feature at all."""

    @abstractmethod
    def validate_options(self, options: Options) -> None:
        """Reject malformed or conflicting options.

        Must not touch the host.

        Raises:
            ConfigurationError: On invalid options.
        """

    @abstractmethod
    def detect_current_state(self, ctx: ExecutionContext) -> DetectedState:
        """Read-only probe of the host."""

    def display_current_state(self, ctx: ExecutionContext, state: DetectedState) -> None:
        """Show detected state (interactive mode only)."""
        if not ctx.interactive:
            return
        click.echo()
        click.secho(f"Current {self.description.lower()} status:", fg="cyan", bold=True)
        self.render_state(state)

    def render_state(self, state: DetectedState) -> None:
        """Print ``state`` for a human; features override for nicer output."""
        for key, value in state.items():
            show_field(key.replace("_", " ").capitalize(), str(value))

    def should_prompt_user(self, ctx: ExecutionContext, state: DetectedState) -> bool:
        """Whether interactive mode needs to ask anything."""
        return ctx.interactive and ctx.can_prompt

    def prompt_user(self, ctx: ExecutionContext, state: DetectedState) -> None:
        """Ask the interactive questions and record answers in ``ctx.options``."""

    @abstractmethod
    def operation_title(self, ctx: ExecutionContext, state: DetectedState) -> str | None:
        """Title of the operation this run will perform, or None if nothing to do."""

    @abstractmethod
    def execute(self, ctx: ExecutionContext) -> None:
        """Apply the change, or only log it when ``ctx.dry_run``.

        Raises:
            IniqError: Typed failures; see ``iniq.core.reliability.errors``.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r} priority={self.priority}>"


# ── Presentation helpers ────────────────────────────────────────


def show_field(label: str, value: str, ok: bool | None = None) -> None:
    """One ``label: value`` line; green/yellow when ``ok`` is given."""
    color = None if ok is None else ("green" if ok else "yellow")
    click.echo(f"  {label}: ", nl=False)
    click.secho(value, fg=color)
