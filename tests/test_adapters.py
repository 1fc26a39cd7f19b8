"""
Tests for adapters — command runner, mock doubles, OS detection and
SSH key sources.
"""

import io
import subprocess
import urllib.error

import pytest

from iniq.adapters import osdetect
from iniq.adapters.mock import MockCommandRunner, MockHost, ScriptedPrompter
from iniq.adapters.osdetect import DARWIN_SSH_RESTART, OsInfo, detect_os, parse_os_release
from iniq.adapters.shell.command import CommandError, CommandResult, CommandRunner
from iniq.adapters.sshkeys import (
    KeySource,
    fetch_keys,
    merge_authorized_keys,
    parse_key_line,
    parse_key_source,
    parse_keys,
)
from iniq.core.models.toggle import ToggleAction
from iniq.core.reliability.errors import ConfigurationError, IniqError, TransientError

# ── Command runner ───────────────────────────────────────────────────


class TestCommandRunner:
    def test_captures_output(self, monkeypatch):
        seen = {}

        def fake_run(cmd, **kwargs):
            seen.update(kwargs)
            return subprocess.CompletedProcess(cmd, 0, stdout="hello\n", stderr="")

        monkeypatch.setattr(subprocess, "run", fake_run)
        result = CommandRunner().run(["echo", "hello"], input="data")
        assert result.ok
        assert result.stdout == "hello\n"
        assert seen["input"] == "data"
        assert seen["capture_output"] is True

    def test_missing_program_is_127(self, monkeypatch):
        def fake_run(cmd, **kwargs):
            raise FileNotFoundError(cmd[0])

        monkeypatch.setattr(subprocess, "run", fake_run)
        result = CommandRunner().run(["nope"])
        assert result.returncode == 127
        assert result.error == "command not found: nope"

    def test_timeout_is_transient(self, monkeypatch):
        def fake_run(cmd, **kwargs):
            raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

        monkeypatch.setattr(subprocess, "run", fake_run)
        with pytest.raises(TransientError, match="timed out"):
            CommandRunner().run(["sleep", "99"], timeout=1)

    def test_interactive_inherits_terminal(self, monkeypatch):
        seen = {}

        def fake_run(cmd, **kwargs):
            seen.update(kwargs)
            return subprocess.CompletedProcess(cmd, 0)

        monkeypatch.setattr(subprocess, "run", fake_run)
        CommandRunner().run(["sudo", "-v"], interactive=True)
        assert "capture_output" not in seen

    def test_check_raises_command_error(self, monkeypatch):
        monkeypatch.setattr(
            subprocess, "run",
            lambda cmd, **kw: subprocess.CompletedProcess(cmd, 1, stdout="", stderr="boom"),
        )
        with pytest.raises(CommandError, match="failed to frob: boom") as exc_info:
            CommandRunner().check(["frob"], "failed to frob")
        assert exc_info.value.result.returncode == 1

    def test_error_falls_back_to_status(self):
        assert CommandResult(args=["x"], returncode=3).error == "exit status 3"


# ── Mock doubles ─────────────────────────────────────────────────────


class TestMockCommandRunner:
    def test_default_success_and_log(self):
        runner = MockCommandRunner()
        assert runner.run(["true"]).ok
        assert runner.call_count == 1
        assert runner.call_log[0] == {"cmd": ["true"], "input": None, "interactive": False}

    def test_longest_prefix_wins(self):
        runner = MockCommandRunner()
        runner.set_failure("sudo")
        runner.set_result(["sudo", "-n"], CommandResult(args=[], returncode=0, stdout="ok"))
        assert runner.run(["sudo", "-n", "true"]).stdout == "ok"
        assert not runner.run(["sudo", "-v"]).ok

    def test_calls_to_sees_through_sudo(self):
        runner = MockCommandRunner()
        runner.run(["sudo", "visudo", "-c"])
        runner.run(["visudo", "-c"])
        assert len(runner.calls_to("visudo")) == 2

    def test_reset(self):
        runner = MockCommandRunner()
        runner.set_failure("x")
        runner.run(["x"])
        runner.reset()
        assert runner.call_count == 0
        assert runner.run(["x"]).ok


class TestMockHost:
    def test_groups_and_users(self):
        host = MockHost(root=False, current="alice")
        host.add_group("sudo", "alice")
        assert host.current_user().name == "alice"
        assert host.user_groups("alice") == ["sudo"]
        assert host.process_groups() == []
        assert host.uid_in_use(0)

    def test_scripted_toggle(self):
        prompter = ScriptedPrompter("d", ToggleAction.KEEP)
        assert prompter.toggle("SSH root login", True).has_change is True
        assert prompter.toggle("SSH root login", True).has_change is False
        assert prompter.questions == ["SSH root login", "SSH root login"]

    def test_scripted_toggle_accepts_actions(self):
        prompter = ScriptedPrompter(ToggleAction.DISABLE, ToggleAction.ENABLE)
        assert prompter.toggle("SSH root login", True).action is ToggleAction.DISABLE
        assert prompter.toggle("SSH password authentication", False).has_change is True

    def test_unexpected_question(self):
        with pytest.raises(AssertionError, match="unexpected question"):
            ScriptedPrompter().confirm("Continue?")


# ── OS detection ─────────────────────────────────────────────────────


class TestOsDetect:
    def test_parse_os_release(self):
        text = 'NAME="Ubuntu"\nID=ubuntu\nVERSION_ID="24.04"\n# comment\n\nBROKEN\n'
        fields = parse_os_release(text)
        assert fields == {"NAME": "Ubuntu", "ID": "ubuntu", "VERSION_ID": "24.04"}

    def test_linux(self, monkeypatch, tmp_path):
        release = tmp_path / "os-release"
        release.write_text('ID=debian\nVERSION_ID="12"\n')
        monkeypatch.setattr(osdetect.platform, "system", lambda: "Linux")
        info = detect_os(release)
        assert info.is_linux and info.is_supported
        assert info.distribution == "debian"
        assert info.label == "debian 12"
        assert info.ssh_config_path == "/etc/ssh/sshd_config"

    def test_linux_without_os_release(self, monkeypatch, tmp_path):
        monkeypatch.setattr(osdetect.platform, "system", lambda: "Linux")
        info = detect_os(tmp_path / "missing")
        assert info.is_linux
        assert info.distribution == ""

    def test_darwin(self, monkeypatch):
        monkeypatch.setattr(osdetect.platform, "system", lambda: "Darwin")
        monkeypatch.setattr(osdetect.platform, "mac_ver", lambda: ("14.5", ("", "", ""), "arm64"))
        info = detect_os()
        assert info.is_darwin
        assert info.ssh_restart_command == DARWIN_SSH_RESTART
        assert info.home_root == "/Users"

    def test_unsupported(self, monkeypatch):
        monkeypatch.setattr(osdetect.platform, "system", lambda: "FreeBSD")
        info = detect_os()
        assert not info.is_supported
        assert info.type == "freebsd"

    def test_label_falls_back_to_type(self):
        assert OsInfo(type="linux").label == "linux"


# ── SSH key sources ──────────────────────────────────────────────────


class TestParseKeySource:
    @pytest.mark.parametrize(
        "spec, kind, value",
        [
            ("github:alice", "github", "alice"),
            ("gh:alice", "github", "alice"),
            ("GitLab:bob", "gitlab", "bob"),
            ("gl:bob", "gitlab", "bob"),
            ("url:https://example.com/keys", "url", "https://example.com/keys"),
            ("https://example.com/keys", "url", "https://example.com/keys"),
            ("file:~/.ssh/id.pub", "file", "~/.ssh/id.pub"),
            ("f:/tmp/k.pub", "file", "/tmp/k.pub"),
            ("/tmp/k.pub", "file", "/tmp/k.pub"),
        ],
    )
    def test_sources(self, spec, kind, value):
        assert parse_key_source(spec) == KeySource(kind=kind, value=value)

    def test_urls(self):
        assert parse_key_source("gh:alice").url == "https://github.com/alice.keys"
        assert parse_key_source("gl:bob").url == "https://gitlab.com/bob.keys"

    @pytest.mark.parametrize("spec", ["", "github:", "gh:a/b", "url:ftp://x"])
    def test_invalid(self, spec):
        with pytest.raises(ConfigurationError, match="invalid key source"):
            parse_key_source(spec)


class TestKeys:
    def test_parse_line_with_options(self, public_key):
        key = parse_key_line(f'from="10.0.0.0/8" {public_key}')
        assert key.type == "ssh-ed25519"
        assert key.comment == "alice@laptop"
        assert key.options == 'from="10.0.0.0/8"'
        assert key.fingerprint.startswith("SHA256:")

    def test_rejects_garbage_body(self, bogus_key_body):
        with pytest.raises(ValueError):
            parse_key_line(f"ssh-ed25519 {bogus_key_body}")

    def test_rejects_bad_base64(self):
        with pytest.raises(ValueError, match="base64"):
            parse_key_line("ssh-rsa not*base64")

    def test_parse_keys_skips_invalid_lines(self, make_key, bogus_key_body):
        text = f"# header\n{make_key('a')}\nssh-ed25519 {bogus_key_body}\n\n{make_key('b')}\n"
        assert [k.comment for k in parse_keys(text)] == ["a", "b"]


class _Response(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class TestFetchKeys:
    def test_github_adds_default_comment(self, make_key):
        key = make_key()
        requests = []

        def opener(request, timeout):
            requests.append((request.full_url, timeout, request.get_header("User-agent")))
            return _Response(f"{key}\n".encode())

        keys = fetch_keys(parse_key_source("github:alice"), opener=opener)
        assert requests == [("https://github.com/alice.keys", 10, "iniq")]
        assert len(keys) == 1
        assert keys[0].comment == "gh:alice"

    def test_existing_comment_kept(self, make_key):
        key = make_key("laptop")
        keys = fetch_keys(parse_key_source("gl:bob"), opener=lambda r, timeout: _Response(key.encode()))
        assert keys[0].comment == "laptop"

    def test_404_is_not_transient(self):
        def opener(request, timeout):
            raise urllib.error.HTTPError(request.full_url, 404, "Not Found", {}, None)

        with pytest.raises(IniqError, match="status code 404") as exc_info:
            fetch_keys(parse_key_source("gh:ghost"), opener=opener)
        assert not isinstance(exc_info.value, TransientError)

    def test_server_error_is_transient(self):
        def opener(request, timeout):
            raise urllib.error.HTTPError(request.full_url, 503, "Unavailable", {}, None)

        with pytest.raises(TransientError):
            fetch_keys(parse_key_source("gh:alice"), opener=opener)

    def test_connection_error_is_transient(self):
        def opener(request, timeout):
            raise urllib.error.URLError("Connection refused")

        with pytest.raises(TransientError, match="connection error"):
            fetch_keys(parse_key_source("gh:alice"), opener=opener)

    def test_empty_response(self):
        with pytest.raises(IniqError, match="no valid SSH keys"):
            fetch_keys(parse_key_source("gh:alice"), opener=lambda r, timeout: _Response(b"\n"))

    def test_file_source(self, tmp_path, make_key):
        path = tmp_path / "id.pub"
        path.write_text(make_key("me") + "\n")
        keys = fetch_keys(parse_key_source(f"file:{path}"))
        assert [k.comment for k in keys] == ["me"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(IniqError, match="failed to read key file"):
            fetch_keys(parse_key_source(str(tmp_path / "missing.pub")))


class TestMergeAuthorizedKeys:
    def test_appends_new_and_skips_known(self, make_key):
        a, b = make_key("a"), make_key("b")
        existing = f"# managed\n{a}\n"
        new = parse_keys(f"{a.rsplit(' ', 1)[0]} other-comment\n{b}\n")
        text, added = merge_authorized_keys(existing, new)
        assert added == 1
        assert text == f"# managed\n{a}\n{b}\n"

    def test_collapses_existing_duplicates(self, make_key):
        a = make_key("a")
        text, added = merge_authorized_keys(f"{a}\n{a}\n", [])
        assert text == f"{a}\n"
        assert added == 0

    def test_empty(self):
        assert merge_authorized_keys("", []) == ("", 0)

    def test_keeps_unparseable_lines(self, make_key):
        b = make_key("b")
        text, _ = merge_authorized_keys("not a key\n", parse_keys(b))
        assert text.splitlines() == ["not a key", b]

    def test_result_has_trailing_newline(self, make_key):
        a = make_key("a")
        text, _ = merge_authorized_keys(a, [])
        assert text == a + "\n"
