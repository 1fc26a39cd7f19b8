"""
Options model — the desired configuration for one run.

Assembled once by the CLI (flags, ``~/.iniq.yaml``, ``INIQ_*`` env) and
handed to the orchestrator.  Values a feature resolves at run time (the
effective username, "already configured" markers) go into the separate
``DerivedValues`` model rather than back into the options themselves.

Field names use underscores; the hyphenated CLI spellings
(``no-password``, ``ssh-root-login``) are accepted as aliases.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _hyphenate(name: str) -> str:
    return name.replace("_", "-")


class DerivedValues(BaseModel):
    """Values written by one feature and read by later ones."""

    username: str = ""
    user_already_exists: bool = False
    sudo_already_configured: bool = False
    ssh_security_has_changes: bool = False


class Options(BaseModel):
    """Typed run configuration."""

    model_config = ConfigDict(
        alias_generator=_hyphenate,
        populate_by_name=True,
        validate_assignment=True,
        extra="forbid",
    )

    user: str = ""
    keys: list[str] = Field(default_factory=list)
    ssh_root_login: str = ""
    ssh_password_auth: str = ""
    ssh_no_root: bool = False
    ssh_no_password: bool = False
    sudo_nopasswd: bool | None = None
    skip_sudo: bool = False
    all: bool = False
    password: bool = False
    no_password: bool = False
    backup: bool = False
    yes: bool = False
    dry_run: bool = False
    interactive: bool = False
    shell: str = "/bin/bash"

    derived: DerivedValues = Field(default_factory=DerivedValues, exclude=True)

    @field_validator("keys", mode="before")
    @classmethod
    def _split_keys(cls, value: object) -> object:
        """Accept ``"github:a;gitlab:b"`` as well as a list."""
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        if isinstance(value, (list, tuple)):
            out: list[str] = []
            for item in value:
                for part in str(item).split(";"):
                    part = part.strip()
                    if part:
                        out.append(part)
            return out
        return value

    @property
    def effective_user(self) -> str:
        """The derived username once resolved, else the requested one."""
        return self.derived.username or self.user

    @property
    def nopasswd(self) -> bool:
        """Sudo policy; passwordless unless explicitly turned off."""
        return True if self.sudo_nopasswd is None else self.sudo_nopasswd

    def has_action_flags(self) -> bool:
        """Whether any flag asks for a change (otherwise: interactive mode)."""
        return bool(
            self.user
            or self.keys
            or self.ssh_root_login
            or self.ssh_password_auth
            or self.ssh_no_root
            or self.ssh_no_password
            or self.all
            or self.sudo_nopasswd is not None
            or self.password
        )

    def to_dict(self) -> dict:
        """Hyphenated view, as written to ``~/.iniq.yaml``."""
        return self.model_dump(by_alias=True, exclude={"derived", "interactive"})
