"""
Command runner — the single place where ``subprocess.run`` is called.

Every external program iniq invokes (``useradd``, ``visudo``,
``dseditgroup``, service restarts, ``sudo``) goes through
``CommandRunner.run`` so tests can substitute ``MockCommandRunner`` and
assert exactly which commands a run would have issued.

Secrets (passwords) are passed through ``input`` only, never on argv,
and are never logged.
"""

from __future__ import annotations

import logging
import subprocess
import time
from dataclasses import dataclass

from iniq.core.reliability.errors import IniqError, TransientError

logger = logging.getLogger(__name__)

_OUTPUT_LIMIT = 2000


@dataclass
class CommandResult:
    """Outcome of one external command."""

    args: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    elapsed_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def error(self) -> str:
        """Best human-readable failure description."""
        detail = (self.stderr or self.stdout).strip()
        if detail:
            return detail
        return f"exit status {self.returncode}"


class CommandError(IniqError):
    """An external command exited non-zero."""

    def __init__(self, message: str, result: CommandResult) -> None:
        super().__init__(f"{message}: {result.error}")
        self.result = result


class CommandRunner:
    """Runs external commands on the local host."""

    def run(
        self,
        cmd: list[str],
        *,
        input: str | None = None,
        timeout: int = 120,
        interactive: bool = False,
    ) -> CommandResult:
        """Run ``cmd`` and return its result.

        Args:
            cmd: Command list for ``subprocess.run()``.
            input: Data piped to stdin (passwords, sudoers content).
            timeout: Seconds before the command is killed.
            interactive: Inherit the terminal instead of capturing
                output (for ``sudo -v`` / ``su`` password prompts).

        Raises:
            TransientError: If the command timed out.
        """
        logger.debug("exec: %s", " ".join(cmd))
        start = time.monotonic()
        try:
            if interactive:
                proc = subprocess.run(cmd, timeout=timeout, check=False)
                stdout, stderr = "", ""
            else:
                proc = subprocess.run(
                    cmd,
                    input=input,
                    capture_output=True,
                    text=True,
                    timeout=timeout,
                    check=False,
                )
                stdout, stderr = proc.stdout or "", proc.stderr or ""
        except FileNotFoundError:
            return CommandResult(
                args=list(cmd),
                returncode=127,
                stderr=f"command not found: {cmd[0]}",
            )
        except subprocess.TimeoutExpired as e:
            raise TransientError(f"command timed out after {timeout}s: {cmd[0]}") from e

        elapsed_ms = int((time.monotonic() - start) * 1000)
        result = CommandResult(
            args=list(cmd),
            returncode=proc.returncode,
            stdout=stdout[-_OUTPUT_LIMIT:],
            stderr=stderr[-_OUTPUT_LIMIT:],
            elapsed_ms=elapsed_ms,
        )
        if not result.ok:
            logger.debug("exec failed (%d): %s", result.returncode, result.error)
        return result

    def check(self, cmd: list[str], message: str, **kwargs) -> CommandResult:
        """Run ``cmd`` and raise ``CommandError`` unless it succeeds."""
        result = self.run(cmd, **kwargs)
        if not result.ok:
            raise CommandError(message, result)
        return result
