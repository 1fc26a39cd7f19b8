"""
Run outcome models — what happened to every operation in one run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class RunReport:
    """Aggregate of one orchestrator run.

    ``outcomes`` maps the operation title to success.  Insertion order is
    execution order.  ``aborted`` is set when the run stopped early (a
    critical failure or a required login cycle); ``exit_code`` is what
    the CLI should exit with.
    """

    outcomes: dict[str, bool] = field(default_factory=dict)
    aborted: bool = False
    relogin_required: bool = False
    abort_reason: str = ""
    skipped: list[str] = field(default_factory=list)

    def record(self, title: str, ok: bool) -> None:
        self.outcomes[title] = ok

    @property
    def succeeded(self) -> list[str]:
        return [t for t, ok in self.outcomes.items() if ok]

    @property
    def failed(self) -> list[str]:
        return [t for t, ok in self.outcomes.items() if not ok]

    @property
    def ok(self) -> bool:
        return not self.failed and (not self.aborted or self.relogin_required)

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "exit_code": self.exit_code,
            "outcomes": dict(self.outcomes),
            "skipped": list(self.skipped),
            "aborted": self.aborted,
            "relogin_required": self.relogin_required,
            "abort_reason": self.abort_reason,
        }
