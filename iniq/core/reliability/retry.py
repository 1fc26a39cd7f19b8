"""
Retry policy — bounded attempts with a fixed delay per error kind.

The orchestrator executes a feature at most ``max_attempts`` times.
Delays are fixed (no exponential growth, no jitter): the run is
single-threaded and interactive, and a human is usually watching.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from iniq.core.reliability.errors import ErrorKind


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try, and how long to wait between tries."""

    max_attempts: int = 3
    delays: dict[ErrorKind, float] = field(
        default_factory=lambda: {
            ErrorKind.TRANSIENT: 2.0,
            ErrorKind.OTHER: 1.0,
        }
    )

    def is_retryable(self, kind: ErrorKind) -> bool:
        """Whether a failure of this kind may consume another attempt."""
        return kind in self.delays

    def delay_for(self, kind: ErrorKind) -> float:
        """Seconds to sleep before retrying a failure of this kind."""
        return self.delays.get(kind, 0.0)

    def exhausted(self, attempt: int) -> bool:
        """Whether ``attempt`` (1-based) was the last one allowed."""
        return attempt >= self.max_attempts
