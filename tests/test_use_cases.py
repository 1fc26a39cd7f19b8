"""
Tests for the run and status use cases — startup checks, the interactive
wizard and the read-only status overview.
"""

import click
from click.testing import CliRunner

from iniq.adapters.mock import MockHost, ScriptedPrompter
from iniq.adapters.osdetect import OsInfo
from iniq.adapters.shell.command import CommandResult
from iniq.core.features.base import ExecutionContext
from iniq.core.features.security import SecurityFeature
from iniq.core.features.sudo import SudoFeature
from iniq.core.features.user import UserFeature
from iniq.core.models.options import Options
from iniq.core.models.toggle import StateToggleResult, ToggleAction
from iniq.core.use_cases.run import PrivilegeCheck, RunResult, build_context, check_privileges, run
from iniq.core.use_cases.status import collect_status, summarize
from iniq.ui.cli.prompts import prompt_state_toggle

DENIED = CommandResult(args=["sudo"], returncode=1, stderr="alice is not in the sudoers file")
GRANTED = CommandResult(args=["sudo"], returncode=0)


def _no_sleep(seconds):
    pass


# ── build_context ────────────────────────────────────────────────────


class TestBuildContext:
    def test_no_flags_means_interactive(self, linux, host):
        ctx = build_context(Options(), host=host, os_info=linux)
        assert ctx.interactive

    def test_yes_is_never_interactive(self, linux, host):
        ctx = build_context(Options(yes=True), host=host, os_info=linux)
        assert not ctx.interactive
        assert not ctx.can_prompt

    def test_action_flag_is_not_interactive(self, linux, host):
        ctx = build_context(Options(user="bob"), host=host, os_info=linux)
        assert not ctx.interactive


# ── check_privileges ─────────────────────────────────────────────────


class TestCheckPrivileges:
    def _ctx(self, linux, host, prompter=None, **values):
        return ExecutionContext(options=Options(**values), os_info=linux, host=host, prompter=prompter)

    def test_root_continues(self, linux, host):
        assert check_privileges(self._ctx(linux, host, ScriptedPrompter())) is PrivilegeCheck.CONTINUE

    def test_sudo_user_continues(self, linux):
        host = MockHost(root=False, current="alice")
        assert check_privileges(self._ctx(linux, host, ScriptedPrompter(), user="alice")) is PrivilegeCheck.CONTINUE

    def test_unattended_continues_without_asking(self, linux):
        host = MockHost(root=False, current="alice")
        host.runner.set_result(["sudo", "-n", "true"], DENIED)
        ctx = self._ctx(linux, host, ScriptedPrompter(), user="alice", yes=True)
        assert check_privileges(ctx) is PrivilegeCheck.CONTINUE

    def test_join_and_activate(self, linux):
        host = MockHost(root=False, current="alice")
        host.add_group("sudo", "alice")
        host.runner.set_result(["sudo", "-n", "true"], DENIED, GRANTED)
        prompter = ScriptedPrompter(True)

        check = check_privileges(self._ctx(linux, host, prompter, user="alice"))

        assert check is PrivilegeCheck.CONTINUE
        assert prompter.questions == ["Add 'alice' to the sudo group now?"]
        assert ["su", "-c", "/usr/sbin/usermod -aG sudo alice"] in host.runner.commands
        assert ["sudo", "-v"] in host.runner.commands

    def test_join_needs_relogin(self, linux):
        host = MockHost(root=False, current="alice")
        host.add_group("sudo", "alice")
        host.runner.set_result(["sudo", "-n", "true"], DENIED)
        check = check_privileges(self._ctx(linux, host, ScriptedPrompter(True), user="alice"))
        assert check is PrivilegeCheck.RELOGIN

    def test_join_fails(self, linux):
        host = MockHost(root=False, current="alice")
        host.runner.set_result(["sudo", "-n", "true"], DENIED)
        host.runner.set_failure("su", stderr="su: Authentication failure")
        check = check_privileges(self._ctx(linux, host, ScriptedPrompter(True), user="alice"))
        assert check is PrivilegeCheck.ABORT

    def test_decline_then_continue_without_sudo(self, linux):
        host = MockHost(root=False, current="alice")
        host.runner.set_result(["sudo", "-n", "true"], DENIED)
        ctx = self._ctx(linux, host, ScriptedPrompter(False, True), user="alice")
        assert check_privileges(ctx) is PrivilegeCheck.CONTINUE
        assert ctx.options.skip_sudo

    def test_decline_twice_aborts(self, linux):
        host = MockHost(root=False, current="alice")
        host.runner.set_result(["sudo", "-n", "true"], DENIED)
        ctx = self._ctx(linux, host, ScriptedPrompter(False, False), user="alice")
        assert check_privileges(ctx) is PrivilegeCheck.ABORT


# ── run ──────────────────────────────────────────────────────────────


class TestRun:
    def test_nothing_requested(self, linux, host, caplog):
        with caplog.at_level("INFO"):
            result = run(Options(yes=True), host=host, os_info=linux, sleep=_no_sleep)
        assert result.exit_code == 0
        assert result.report.outcomes == {}
        assert "No operations requested" in caplog.text

    def test_unsupported_os(self, host):
        result = run(Options(user="bob", yes=True), host=host, os_info=OsInfo(type="freebsd"))
        assert result.exit_code == 1
        assert result.error == "unsupported OS: freebsd"
        assert host.runner.call_count == 0

    def test_darwin_is_experimental(self, darwin, host, caplog):
        with caplog.at_level("WARNING"):
            run(Options(yes=True), host=host, os_info=darwin)
        assert "macOS support is experimental" in caplog.text

    def test_privileges_refused(self, linux):
        host = MockHost(root=False, current="alice")
        host.runner.set_result(["sudo", "-n", "true"], DENIED)
        result = run(Options(user="alice"), host=host, os_info=linux, prompter=ScriptedPrompter(False, False))
        assert result.exit_code == 1
        assert result.error == "root or sudo privileges are required"

    def test_relogin_exits_cleanly(self, linux):
        host = MockHost(root=False, current="alice")
        host.add_group("sudo", "alice")
        host.runner.set_result(["sudo", "-n", "true"], DENIED)
        result = run(Options(user="alice"), host=host, os_info=linux, prompter=ScriptedPrompter(True))
        assert result.exit_code == 0
        assert result.report.relogin_required
        assert result.report.outcomes == {}

    def test_interactive_wizard_creates_user(self, linux, host):
        prompter = ScriptedPrompter("dave", False)
        started = []

        result = run(
            Options(),
            host=host,
            os_info=linux,
            prompter=prompter,
            factories=[UserFeature],
            sleep=_no_sleep,
            on_start=started.append,
        )

        assert result.interactive
        assert result.exit_code == 0
        assert started == ["Create user 'dave'"]
        assert prompter.questions == ["Username to configure", "Set a password for new user 'dave'?"]
        assert host.runner.commands == [["useradd", "-m", "-s", "/bin/bash", "dave"]]

    def test_interactive_wizard_grants_sudo(self, linux, host, tmp_path):
        host.add_user("erin")
        sudoers_dir = tmp_path / "sudoers.d"
        prompter = ScriptedPrompter("erin", True, True)

        result = run(
            Options(),
            host=host,
            os_info=linux,
            prompter=prompter,
            factories=[UserFeature, lambda o, h: SudoFeature(o, h, sudoers_dir=sudoers_dir)],
            sleep=_no_sleep,
        )

        assert result.exit_code == 0
        assert result.report.skipped == ["user"]
        assert result.report.succeeded == ["Configure passwordless sudo"]
        assert (sudoers_dir / "erin").read_text() == "erin ALL=(ALL) NOPASSWD: ALL\n"

    def test_result_to_dict(self):
        data = RunResult(error="boom").to_dict()
        assert data["exit_code"] == 1
        assert data["error"] == "boom"
        assert data["report"]["outcomes"] == {}


# ── status ───────────────────────────────────────────────────────────


class TestStatus:
    def test_collect_status(self, linux, host, tmp_path):
        host.add_user("alice")
        config = tmp_path / "sshd_config"
        config.write_text("PermitRootLogin no\nPasswordAuthentication yes\n")
        factories = [UserFeature, lambda o, h: SecurityFeature(o, h, config_path=config)]

        status = collect_status(Options(user="alice"), host=host, os_info=linux, factories=factories)

        assert [s.name for s in status.sections] == ["user", "security"]
        assert status.sections[0].lines == [("User", "alice (exists)", True)]
        assert status.sections[1].lines == [
            ("Root login", "disabled", True),
            ("Password authentication", "enabled", False),
        ]
        assert status.is_root and status.has_privileges
        assert host.runner.call_count == 0
        assert status.to_dict()["sections"][0]["lines"][0]["value"] == "alice (exists)"

    def test_summarize_sudo(self):
        lines = summarize("sudo", {"user_exists": True, "has_sudo": True, "has_passwordless_sudo": False})
        assert lines == [("Sudo access", "yes", True), ("Passwordless sudo", "no", False)]

    def test_summarize_missing_user(self):
        assert summarize("sudo", {"user_exists": False}) == [("Sudo", "user does not exist", False)]

    def test_summarize_unreadable_keys(self):
        assert summarize("ssh-keys", {"unreadable": True}) == [("authorized_keys", "not readable", None)]


# ── prompts ──────────────────────────────────────────────────────────


class TestPromptStateToggle:
    def _ask(self, answer, current):
        captured = {}

        @click.command()
        def ask():
            captured["result"] = prompt_state_toggle("SSH root login", current)

        output = CliRunner().invoke(ask, input=answer).output
        return captured["result"], output

    def test_disable(self):
        result, output = self._ask("d\n", True)
        assert result == StateToggleResult(action=ToggleAction.DISABLE, has_change=True)
        assert "SSH root login is currently enabled" in output

    def test_keep_is_default(self):
        result, _ = self._ask("\n", False)
        assert result == StateToggleResult(action=ToggleAction.KEEP, has_change=False)

    def test_enable_when_already_enabled(self):
        result, _ = self._ask("enable\n", True)
        assert result == StateToggleResult(action=ToggleAction.ENABLE, has_change=False)
