"""
Terminal prompts for interactive runs.

``ClickPrompter`` is the production implementation of the feature
``Prompter`` protocol; all reads go through click so ``CliRunner``
input drives them in tests.
"""

from __future__ import annotations

import click

from iniq.core.models.toggle import StateToggleResult, ToggleAction

_TOGGLE_CHOICES = {
    "e": ToggleAction.ENABLE,
    "enable": ToggleAction.ENABLE,
    "d": ToggleAction.DISABLE,
    "disable": ToggleAction.DISABLE,
    "k": ToggleAction.KEEP,
    "keep": ToggleAction.KEEP,
}

MIN_PASSWORD_LENGTH = 1


def prompt_state_toggle(feature_name: str, current_state: bool) -> StateToggleResult:
    """Ask whether to enable, disable or keep ``feature_name``.

    ``current_state`` is True when the setting is currently enabled.
    """
    current = "enabled" if current_state else "disabled"
    click.echo(f"{feature_name} is currently ", nl=False)
    click.secho(current, fg="green" if current_state else "yellow")
    answer = click.prompt(
        "  [e]nable, [d]isable or [k]eep",
        type=click.Choice(sorted(_TOGGLE_CHOICES), case_sensitive=False),
        default="k",
        show_choices=False,
    )
    return StateToggleResult.resolve(_TOGGLE_CHOICES[answer.lower()], current_state)


class ClickPrompter:
    """Asks questions on the controlling terminal."""

    def confirm(self, question: str, default: bool = True) -> bool:
        return click.confirm(question, default=default)

    def text(self, question: str, default: str = "") -> str:
        return click.prompt(question, default=default, show_default=bool(default))

    def password(self, username: str) -> str:
        while True:
            value = click.prompt(
                f"Password for {username}",
                hide_input=True,
                confirmation_prompt="Confirm password",
            )
            if len(value) >= MIN_PASSWORD_LENGTH:
                return value
            click.secho("Password cannot be empty", fg="red")

    def toggle(self, feature_name: str, current_state: bool) -> StateToggleResult:
        return prompt_state_toggle(feature_name, current_state)
