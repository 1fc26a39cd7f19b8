"""
Toggle models — tri-state enable/disable/keep decisions.

Used by the security feature (``--ssh-root-login``, ``--ssh-password-auth``)
and by the interactive state-toggle prompt.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel

from iniq.core.reliability.errors import ConfigurationError

ENABLE_TOKENS: tuple[str, ...] = ("yes", "enable", "true", "1", "y", "t", "on")
DISABLE_TOKENS: tuple[str, ...] = ("no", "disable", "false", "0", "n", "f", "off")


class ToggleAction(str, Enum):
    ENABLE = "enable"
    DISABLE = "disable"
    KEEP = "keep"


class StateToggleResult(BaseModel):
    """Outcome of asking the user to enable, disable or keep a setting."""

    action: ToggleAction = ToggleAction.KEEP
    has_change: bool = False

    @classmethod
    def resolve(cls, action: ToggleAction, current_state: bool) -> StateToggleResult:
        """Compute ``has_change`` against the currently detected state.

        ``current_state`` is True when the setting is currently enabled.
        ``keep`` never changes anything.
        """
        if action is ToggleAction.KEEP:
            return cls(action=action, has_change=False)
        desired = action is ToggleAction.ENABLE
        return cls(action=action, has_change=desired != current_state)


def parse_toggle(value: str | None) -> ToggleAction | None:
    """Parse a tri-valued flag.

    Returns None for an empty value (flag not given).

    Raises:
        ConfigurationError: If the value is not an accepted token.
    """
    if value is None:
        return None
    token = str(value).strip().lower()
    if not token:
        return None
    if token in ENABLE_TOKENS:
        return ToggleAction.ENABLE
    if token in DISABLE_TOKENS:
        return ToggleAction.DISABLE
    raise ConfigurationError(
        f"invalid value '{value}': use one of "
        f"{'/'.join(ENABLE_TOKENS)} or {'/'.join(DISABLE_TOKENS)}"
    )
