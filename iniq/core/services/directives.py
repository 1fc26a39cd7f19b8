"""
Directive mutator — idempotent rewrites of ``Keyword value`` config files.

Works on the text of line-oriented files such as ``sshd_config``.  Every
rewrite leaves a provenance comment right above the new line::

    # Modified by INIQ (Previous setting: PermitRootLogin yes)
    PermitRootLogin no

The comment records the setting that was in force *before iniq first
touched the file*.  On later runs the existing block is recognised,
its recorded previous setting is reused and the block is rewritten in
place, so applying the same change twice yields byte-identical text.

Reading (``find_directive``) is independent of rewriting and resolves
the effective value as explicit line > commented hint > daemon default.
"""

from __future__ import annotations

import re

from iniq.core.models.directive import Directive, DirectiveSource

PROVENANCE_TEMPLATE = "# Modified by INIQ (Previous setting: {previous})"

# Also recognise the "Added by" variant older releases wrote.
_PROVENANCE_RE = re.compile(r"^#\s*(?:Modified|Added) by INIQ \(Previous setting: (.*)\)\s*$")

SSHD_DEFAULTS: dict[str, str] = {
    "permitrootlogin": "yes",
    "passwordauthentication": "yes",
}

# PermitRootLogin values under which a password login as root is refused.
ROOT_LOGIN_DISABLED_VALUES = frozenset(
    {"no", "prohibit-password", "without-password", "forced-commands-only"}
)

# Directives appended after one of these would become conditional.
_SECTION_KEYWORDS = ("match",)


# ── Line classification ─────────────────────────────────────────


def _keyword(line: str) -> str:
    """Lower-cased first token of an uncommented line, else ``""``."""
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return ""
    return stripped.split(None, 1)[0].lower()


def _is_directive(line: str, name: str) -> bool:
    return _keyword(line) == name.lower()


def _is_commented_directive(line: str, name: str) -> bool:
    stripped = line.strip()
    if not stripped.startswith("#") or _PROVENANCE_RE.match(stripped):
        return False
    body = stripped.lstrip("#").strip()
    return bool(body) and body.split(None, 1)[0].lower() == name.lower()


def _value_of(line: str) -> str:
    """Value part of ``Keyword value`` (or ``#Keyword value``)."""
    body = line.strip().lstrip("#").strip()
    parts = body.split(None, 1)
    return parts[1].strip() if len(parts) > 1 else ""


def _provenance_previous(line: str) -> str | None:
    match = _PROVENANCE_RE.match(line.strip())
    return match.group(1) if match else None


# ── Reading ─────────────────────────────────────────────────────


def find_directive(
    text: str,
    name: str,
    defaults: dict[str, str] | None = None,
) -> Directive:
    """Resolve the effective value of ``name`` in ``text``.

    The first uncommented occurrence wins; otherwise the first commented
    occurrence is reported as a hint; otherwise the default table.
    """
    defaults = SSHD_DEFAULTS if defaults is None else defaults
    commented: str | None = None
    for line in text.splitlines():
        if _is_directive(line, name):
            return Directive(name=name, value=_value_of(line), source=DirectiveSource.EXPLICIT)
        if commented is None and _is_commented_directive(line, name):
            commented = _value_of(line)
    if commented is not None:
        return Directive(name=name, value=commented, source=DirectiveSource.COMMENTED)
    return Directive(
        name=name,
        value=defaults.get(name.lower(), ""),
        source=DirectiveSource.DEFAULT,
    )


def root_login_disabled(value: str) -> bool:
    return value.strip().lower() in ROOT_LOGIN_DISABLED_VALUES


def password_auth_disabled(value: str) -> bool:
    return value.strip().lower() == "no"


# ── Rewriting ───────────────────────────────────────────────────


def set_directive(text: str, name: str, value: str) -> str:
    """Set ``name`` to ``value`` in ``text``.

    Steps:
        1. Note the first uncommented occurrence (the previous setting),
           falling back to the first commented one for context.
        2. Drop every provenance block iniq wrote for ``name`` (comment
           plus the directive line under it), keeping the previous
           setting the first block recorded.
        3. Drop the first uncommented occurrence.
        4. Insert the provenance comment and ``name value`` where the
           directive or block used to be, or at end of file (before any
           ``Match`` section) when it never existed.

    Returns the text unchanged when the effective explicit value already
    equals ``value``.
    """
    lines = text.splitlines()
    current = find_directive(text, name, defaults={})
    if current.explicit and current.value.lower() == value.lower():
        return text

    block_previous: str | None = None
    explicit_previous: str | None = None
    commented_previous: str | None = None
    insert_at: int | None = None
    out: list[str] = []

    i = 0
    while i < len(lines):
        line = lines[i]
        recorded = _provenance_previous(line)
        if recorded is not None and i + 1 < len(lines) and _is_directive(lines[i + 1], name):
            if block_previous is None:
                block_previous = recorded
            if insert_at is None:
                insert_at = len(out)
            i += 2
            continue
        if explicit_previous is None and _is_directive(line, name):
            explicit_previous = line.strip()
            if insert_at is None:
                insert_at = len(out)
            i += 1
            continue
        if commented_previous is None and _is_commented_directive(line, name):
            commented_previous = line.strip()
        out.append(line)
        i += 1

    if block_previous is not None:
        previous = block_previous
    elif explicit_previous is not None:
        previous = explicit_previous
    elif commented_previous is not None:
        previous = commented_previous
    else:
        previous = "none"

    block = [PROVENANCE_TEMPLATE.format(previous=previous), f"{name} {value}"]

    if insert_at is None:
        insert_at = _append_position(out)
    out[insert_at:insert_at] = block

    return "\n".join(out) + "\n"


def set_directives(text: str, settings: dict[str, str]) -> str:
    """Apply ``set_directive`` for each ``name: value`` in order."""
    for name, value in settings.items():
        text = set_directive(text, name, value)
    return text


def _append_position(lines: list[str]) -> int:
    """End of the global section: before the first ``Match`` block."""
    for i, line in enumerate(lines):
        if _keyword(line) in _SECTION_KEYWORDS:
            return i
    end = len(lines)
    while end > 0 and not lines[end - 1].strip():
        end -= 1
    return end
