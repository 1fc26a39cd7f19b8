"""
Mock adapters — test doubles for the runner, the host and the terminal.

``MockCommandRunner`` records every command instead of running it and
answers with a configurable ``CommandResult`` (success by default).
``MockHost`` keeps an in-memory account database.  ``ScriptedPrompter``
replays queued answers to interactive questions.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from iniq.adapters.host import Host, UserInfo
from iniq.adapters.shell.command import CommandResult, CommandRunner
from iniq.core.models.toggle import StateToggleResult, ToggleAction


class MockCommandRunner(CommandRunner):
    """Records commands; by default every command succeeds.

    Responses are keyed by a command prefix: ``set_result(["sudo", "-n"],
    ...)`` answers every command starting with ``sudo -n``.  The longest
    matching prefix wins.
    """

    def __init__(self, default_stdout: str = ""):
        self._default_stdout = default_stdout
        self._results: dict[tuple[str, ...], list[CommandResult]] = {}
        self._call_log: list[dict[str, Any]] = []

    @property
    def call_log(self) -> list[dict[str, Any]]:
        """Every call as ``{"cmd": [...], "input": ..., "interactive": ...}``."""
        return self._call_log

    @property
    def commands(self) -> list[list[str]]:
        return [call["cmd"] for call in self._call_log]

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def set_result(self, prefix: list[str] | str, *results: CommandResult) -> None:
        """Answer commands starting with ``prefix``.

        Several results are consumed in order; the last one repeats.
        """
        key = (prefix,) if isinstance(prefix, str) else tuple(prefix)
        self._results[key] = list(results)

    def set_failure(self, prefix: list[str] | str, stderr: str = "mock failure", returncode: int = 1) -> None:
        key = [prefix] if isinstance(prefix, str) else list(prefix)
        self.set_result(key, CommandResult(args=key, returncode=returncode, stderr=stderr))

    def calls_to(self, program: str) -> list[list[str]]:
        """Commands whose argv (after an optional ``sudo``) starts with ``program``."""
        found = []
        for cmd in self.commands:
            argv = cmd[1:] if cmd and cmd[0] == "sudo" and program != "sudo" else cmd
            if argv and argv[0] == program:
                found.append(cmd)
        return found

    def run(
        self,
        cmd: list[str],
        *,
        input: str | None = None,
        timeout: int = 120,
        interactive: bool = False,
    ) -> CommandResult:
        self._call_log.append({"cmd": list(cmd), "input": input, "interactive": interactive})

        best: tuple[str, ...] | None = None
        for prefix in self._results:
            if tuple(cmd[: len(prefix)]) == prefix and (best is None or len(prefix) > len(best)):
                best = prefix
        if best is not None:
            queue = self._results[best]
            result = queue.pop(0) if len(queue) > 1 else queue[0]
            return CommandResult(
                args=list(cmd),
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return CommandResult(args=list(cmd), returncode=0, stdout=self._default_stdout)

    def reset(self) -> None:
        """Clear call log and custom results."""
        self._call_log.clear()
        self._results.clear()


class MockHost(Host):
    """In-memory host; homes live under ``home_root``."""

    def __init__(
        self,
        *,
        root: bool = True,
        current: str = "root",
        home_root: Path | str = "/home",
        runner: MockCommandRunner | None = None,
        which: dict[str, str] | None = None,
    ):
        super().__init__(runner or MockCommandRunner())
        self.root = root
        self.home_root = Path(home_root)
        self.users: dict[str, UserInfo] = {}
        self.groups: dict[str, list[str]] = {}
        self.active_groups: list[str] = []
        self.sudo_user: str | None = None
        self.chowned: list[tuple[Path, str]] = []
        self._which = which or {}
        self._next_uid = 1000
        self.add_user("root", uid=0, home="/root")
        self.current = current
        if current != "root":
            self.add_user(current)

    # ── Setup ───────────────────────────────────────────────────

    def add_user(self, name: str, *, uid: int | None = None, home: str | None = None,
                 groups: tuple[str, ...] = ()) -> UserInfo:
        if uid is None:
            uid = self._next_uid
            self._next_uid += 1
        info = UserInfo(
            name=name,
            uid=uid,
            gid=uid,
            home=home or str(self.home_root / name),
            shell="/bin/bash",
        )
        self.users[name] = info
        for group in groups:
            self.groups.setdefault(group, []).append(name)
        return info

    def add_group(self, name: str, *members: str) -> None:
        self.groups.setdefault(name, []).extend(members)

    # ── Host interface ──────────────────────────────────────────

    @property
    def is_root(self) -> bool:
        return self.root

    def current_user(self) -> UserInfo:
        return self.users["root"] if self.root else self.users[self.current]

    def real_user(self) -> UserInfo:
        if self.root and self.sudo_user in self.users:
            return self.users[self.sudo_user]
        return self.current_user()

    def lookup_user(self, name: str) -> UserInfo | None:
        return self.users.get(name)

    def uid_in_use(self, uid: int) -> bool:
        return any(info.uid == uid for info in self.users.values())

    def group_exists(self, name: str) -> bool:
        return name in self.groups

    def user_groups(self, name: str) -> list[str]:
        return [group for group, members in self.groups.items() if name in members]

    def process_groups(self) -> list[str]:
        return list(self.active_groups)

    def chown(self, path: Path, user: UserInfo) -> None:
        self.chowned.append((Path(path), user.name))

    def which(self, program: str) -> str | None:
        return self._which.get(program)


class ScriptedPrompter:
    """Replays queued answers; records every question asked.

    Answers are consumed in order regardless of question type.  A toggle
    answer may be a ``ToggleAction`` or one of ``"e"``/``"d"``/``"k"``.
    """

    def __init__(self, *answers: Any):
        self.answers = list(answers)
        self.questions: list[str] = []

    def _next(self, question: str) -> Any:
        self.questions.append(question)
        if not self.answers:
            raise AssertionError(f"unexpected question: {question}")
        return self.answers.pop(0)

    def confirm(self, question: str, default: bool = True) -> bool:
        return bool(self._next(question))

    def text(self, question: str, default: str = "") -> str:
        answer = self._next(question)
        return default if answer is None else str(answer)

    def password(self, username: str) -> str:
        return str(self._next(f"password for {username}"))

    def toggle(self, feature_name: str, current_state: bool) -> StateToggleResult:
        answer = self._next(feature_name)
        if not isinstance(answer, ToggleAction):
            answer = {"e": ToggleAction.ENABLE, "d": ToggleAction.DISABLE, "k": ToggleAction.KEEP}[answer]
        return StateToggleResult.resolve(answer, current_state)
