"""
Directive model — one named setting inside a line-oriented config file.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class DirectiveSource(str, Enum):
    """Where the effective value of a directive came from."""

    EXPLICIT = "explicit"    # uncommented line in the file
    COMMENTED = "commented"  # ``#Directive value`` hint
    DEFAULT = "default"      # daemon's built-in default


class Directive(BaseModel):
    """Effective value of a directive as the daemon would see it."""

    name: str
    value: str
    source: DirectiveSource = DirectiveSource.DEFAULT

    @property
    def explicit(self) -> bool:
        return self.source is DirectiveSource.EXPLICIT
