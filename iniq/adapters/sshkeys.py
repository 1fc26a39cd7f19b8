"""
SSH public keys — sources, fetching, parsing and authorized_keys merging.

Key sources are written ``<prefix>:<value>``:

    github:<user>  / gh:<user>   https://github.com/<user>.keys
    gitlab:<user>  / gl:<user>   https://gitlab.com/<user>.keys
    url:<https-url>              any URL serving authorized_keys lines
    file:<path>    / f:<path>    local file
    <path>                       local file (no prefix)

Keys are validated with ``cryptography`` and deduplicated by
``type + base64 body``; the comment never takes part in identity.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import struct
import urllib.error
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization

from iniq.core.reliability.errors import ConfigurationError, IniqError, TransientError

logger = logging.getLogger(__name__)

FETCH_TIMEOUT = 10  # seconds

GITHUB_KEYS_URL = "https://github.com/{user}.keys"
GITLAB_KEYS_URL = "https://gitlab.com/{user}.keys"

_PREFIXES: dict[str, str] = {
    "github": "github",
    "gh": "github",
    "gitlab": "gitlab",
    "gl": "gitlab",
    "url": "url",
    "file": "file",
    "f": "file",
}

_KEY_TYPE_PREFIXES = ("ssh-", "ecdsa-sha2-", "sk-ssh-", "sk-ecdsa-sha2-")


# ── Key sources ─────────────────────────────────────────────────


@dataclass(frozen=True)
class KeySource:
    """Where to get keys from."""

    kind: str   # "github" | "gitlab" | "url" | "file"
    value: str

    @property
    def label(self) -> str:
        return f"{self.kind}:{self.value}"

    @property
    def url(self) -> str:
        if self.kind == "github":
            return GITHUB_KEYS_URL.format(user=self.value)
        if self.kind == "gitlab":
            return GITLAB_KEYS_URL.format(user=self.value)
        if self.kind == "url":
            return self.value
        return ""

    @property
    def default_comment(self) -> str:
        """Comment added to keys that arrive without one."""
        if self.kind == "github":
            return f"gh:{self.value}"
        if self.kind == "gitlab":
            return f"gl:{self.value}"
        return ""


def parse_key_source(text: str) -> KeySource:
    """Parse ``github:alice`` and friends.

    Raises:
        ConfigurationError: For an empty source or empty value.
    """
    text = text.strip()
    if not text:
        raise ConfigurationError("invalid key source: empty value")

    prefix, sep, rest = text.partition(":")
    if sep and prefix.lower() in ("http", "https"):
        return KeySource(kind="url", value=text)
    kind = _PREFIXES.get(prefix.lower()) if sep else None
    if kind is None:
        return KeySource(kind="file", value=text)

    rest = rest.strip()
    if not rest:
        raise ConfigurationError(f"invalid key source '{text}': missing value after '{prefix}:'")
    if kind in ("github", "gitlab") and ("/" in rest or " " in rest):
        raise ConfigurationError(f"invalid key source '{text}': invalid username")
    if kind == "url" and not rest.startswith(("http://", "https://")):
        raise ConfigurationError(f"invalid key source '{text}': URL must start with http:// or https://")
    return KeySource(kind=kind, value=rest)


# ── Keys ────────────────────────────────────────────────────────


@dataclass
class SSHKey:
    """One public key line."""

    type: str
    value: str
    comment: str = ""
    options: str = ""

    @property
    def identity(self) -> tuple[str, str]:
        return (self.type, self.value)

    @property
    def line(self) -> str:
        parts = [self.options, self.type, self.value, self.comment]
        return " ".join(p for p in parts if p)

    @property
    def fingerprint(self) -> str:
        """``SHA256:<base64>`` as printed by ``ssh-keygen -l``."""
        blob = base64.b64decode(self.value)
        digest = base64.b64encode(hashlib.sha256(blob).digest()).decode()
        return "SHA256:" + digest.rstrip("=")


def parse_key_line(line: str) -> SSHKey:
    """Parse one authorized_keys line.

    Raises:
        ValueError: If the line holds no valid public key.
    """
    tokens = line.strip().split()
    for i, token in enumerate(tokens):
        if token.startswith(_KEY_TYPE_PREFIXES) and i + 1 < len(tokens):
            key = SSHKey(
                type=token,
                value=tokens[i + 1],
                comment=" ".join(tokens[i + 2:]),
                options=" ".join(tokens[:i]),
            )
            _validate_key(key)
            return key
    raise ValueError(f"not an SSH public key: {line.strip()[:40]!r}")


def parse_keys(text: str, *, source: str = "") -> list[SSHKey]:
    """Parse every valid key in ``text``; invalid lines are skipped."""
    keys: list[SSHKey] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        try:
            keys.append(parse_key_line(stripped))
        except ValueError as e:
            logger.warning("Skipping invalid key%s: %s", f" from {source}" if source else "", e)
    return keys


def _validate_key(key: SSHKey) -> None:
    try:
        blob = base64.b64decode(key.value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"invalid base64 in {key.type} key") from e

    try:
        serialization.load_ssh_public_key(f"{key.type} {key.value}".encode())
        return
    except UnsupportedAlgorithm:
        # Security-key types: check the embedded type name instead
        pass
    except ValueError as e:
        raise ValueError(f"invalid {key.type} key: {e}") from e

    if len(blob) < 4:
        raise ValueError(f"truncated {key.type} key")
    (length,) = struct.unpack(">I", blob[:4])
    if blob[4:4 + length].decode("ascii", "replace") != key.type:
        raise ValueError(f"key body does not match type {key.type}")


# ── Fetching ────────────────────────────────────────────────────

Opener = Callable[..., object]


def fetch_keys(source: KeySource, *, opener: Opener | None = None) -> list[SSHKey]:
    """Fetch and parse all keys from one source.

    Raises:
        TransientError: Network failure or timeout (worth retrying).
        IniqError: Any other failure (HTTP error, unreadable file,
            no valid keys).
    """
    if source.kind == "file":
        text = _read_key_file(Path(source.value).expanduser())
    else:
        text = _fetch_url(source.url, opener or urllib.request.urlopen)

    keys = parse_keys(text, source=source.label)
    if not keys:
        raise IniqError(f"no valid SSH keys found in {source.label}")

    comment = source.default_comment
    if comment:
        for key in keys:
            if not key.comment:
                key.comment = comment
    return keys


def _read_key_file(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise IniqError(f"failed to read key file {path}: {e.strerror or e}") from e


def _fetch_url(url: str, opener: Opener) -> str:
    logger.debug("Fetching keys from %s", url)
    request = urllib.request.Request(url, headers={"User-Agent": "iniq"})
    try:
        with opener(request, timeout=FETCH_TIMEOUT) as resp:
            return resp.read().decode("utf-8", errors="replace")
    except urllib.error.HTTPError as e:
        if e.code >= 500:
            raise TransientError(f"failed to fetch keys from {url}: server error {e.code}") from e
        raise IniqError(f"failed to fetch keys from {url}: status code {e.code}") from e
    except urllib.error.URLError as e:
        raise TransientError(f"failed to fetch keys from {url}: connection error ({e.reason})") from e
    except TimeoutError as e:
        raise TransientError(f"failed to fetch keys from {url}: timeout after {FETCH_TIMEOUT}s") from e


# ── authorized_keys merging ─────────────────────────────────────


def merge_authorized_keys(existing: str, new_keys: list[SSHKey]) -> tuple[str, int]:
    """Merge ``new_keys`` into authorized_keys text.

    Existing lines (comments and option-prefixed keys included) are kept
    in order, minus later duplicates of an already-seen key.  New keys
    whose identity is already present are skipped.

    Returns:
        ``(text, added)`` where ``added`` counts the keys appended.
    """
    seen: set[tuple[str, str]] = set()
    lines: list[str] = []
    for line in existing.splitlines():
        stripped = line.strip()
        if stripped and not stripped.startswith("#"):
            try:
                identity = parse_key_line(stripped).identity
            except ValueError:
                identity = None
            if identity is not None:
                if identity in seen:
                    continue
                seen.add(identity)
        lines.append(line)

    added = 0
    for key in new_keys:
        if key.identity in seen:
            continue
        seen.add(key.identity)
        lines.append(key.line)
        added += 1

    while lines and not lines[-1].strip():
        lines.pop()
    text = "\n".join(lines) + "\n" if lines else ""
    return text, added
