"""
Shared test fixtures and configuration.
"""

import base64
import logging
from pathlib import Path

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

from iniq.adapters.mock import MockCommandRunner, MockHost, ScriptedPrompter
from iniq.adapters.osdetect import OsInfo
from iniq.core.features.base import ExecutionContext
from iniq.core.models.options import Options


@pytest.fixture(autouse=True)
def _reset_root_logger():
    """The CLI reconfigures the root logger; undo it after every test."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def linux() -> OsInfo:
    return OsInfo(type="linux", distribution="debian", version="12")


@pytest.fixture
def darwin() -> OsInfo:
    return OsInfo(
        type="darwin",
        distribution="macos",
        version="14.5",
        ssh_restart_command="launchctl kickstart -k system/com.openssh.sshd",
        home_root="/Users",
    )


@pytest.fixture
def runner() -> MockCommandRunner:
    return MockCommandRunner()


@pytest.fixture
def host(tmp_path: Path, runner: MockCommandRunner) -> MockHost:
    """A root host whose home directories live under tmp_path."""
    return MockHost(root=True, home_root=tmp_path / "home", runner=runner)


@pytest.fixture
def make_ctx(linux: OsInfo, host: MockHost):
    """Build an ExecutionContext from option keywords."""

    def _make(prompter: ScriptedPrompter | None = None, **values) -> ExecutionContext:
        return ExecutionContext(
            options=Options(**values),
            os_info=linux,
            host=host,
            prompter=prompter,
        )

    return _make


def make_public_key(comment: str = "") -> str:
    """A fresh, valid ``ssh-ed25519 AAAA... comment`` line."""
    key = ed25519.Ed25519PrivateKey.generate().public_key()
    line = key.public_bytes(
        encoding=serialization.Encoding.OpenSSH,
        format=serialization.PublicFormat.OpenSSH,
    ).decode()
    return f"{line} {comment}".strip()


@pytest.fixture
def make_key():
    return make_public_key


@pytest.fixture
def public_key() -> str:
    return make_public_key("alice@laptop")


@pytest.fixture
def bogus_key_body() -> str:
    """Valid base64 that is not an SSH key."""
    return base64.b64encode(b"definitely not a key").decode()
