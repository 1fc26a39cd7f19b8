"""
Tests for the sshd_config directive reader and idempotent mutator.
"""

import textwrap

from iniq.core.models.directive import DirectiveSource
from iniq.core.services.directives import (
    find_directive,
    password_auth_disabled,
    root_login_disabled,
    set_directive,
    set_directives,
)

PROVENANCE = "# Modified by INIQ (Previous setting: {})"


class TestSetDirective:
    def test_replaces_explicit_line_with_provenance(self):
        text = "PermitRootLogin yes\nPasswordAuthentication yes\n"
        result = set_directive(text, "PermitRootLogin", "no")

        lines = result.splitlines()
        assert lines.count("PermitRootLogin no") == 1
        assert lines.count(PROVENANCE.format("PermitRootLogin yes")) == 1
        assert lines.index(PROVENANCE.format("PermitRootLogin yes")) == lines.index("PermitRootLogin no") - 1
        assert "PasswordAuthentication yes" in lines
        assert "PermitRootLogin yes" not in lines

    def test_applying_twice_is_identical(self):
        text = "PermitRootLogin yes\nPasswordAuthentication yes\n"
        once = set_directive(text, "PermitRootLogin", "no")
        twice = set_directive(once, "PermitRootLogin", "no")
        assert twice == once

    def test_unchanged_when_already_set(self):
        text = "Port 22\nPermitRootLogin no\n"
        assert set_directive(text, "PermitRootLogin", "no") == text

    def test_value_comparison_ignores_case(self):
        text = "PermitRootLogin No\n"
        assert set_directive(text, "PermitRootLogin", "no") == text

    def test_keyword_match_ignores_case(self):
        result = set_directive("permitrootlogin yes\n", "PermitRootLogin", "no")
        assert "permitrootlogin yes" not in result.splitlines()
        assert PROVENANCE.format("permitrootlogin yes") in result

    def test_flip_back_keeps_original_previous_setting(self):
        text = "PermitRootLogin yes\n"
        off = set_directive(text, "PermitRootLogin", "no")
        on = set_directive(off, "PermitRootLogin", "prohibit-password")

        lines = on.splitlines()
        assert lines == [
            PROVENANCE.format("PermitRootLogin yes"),
            "PermitRootLogin prohibit-password",
        ]

    def test_recognises_added_by_variant(self):
        text = textwrap.dedent("""\
            # Added by INIQ (Previous setting: PasswordAuthentication yes)
            PasswordAuthentication yes
        """)
        result = set_directive(text, "PasswordAuthentication", "no")
        assert result.splitlines() == [
            PROVENANCE.format("PasswordAuthentication yes"),
            "PasswordAuthentication no",
        ]

    def test_commented_hint_recorded_as_previous(self):
        text = "Port 22\n#PermitRootLogin prohibit-password\n"
        result = set_directive(text, "PermitRootLogin", "no")

        lines = result.splitlines()
        assert "#PermitRootLogin prohibit-password" in lines
        assert PROVENANCE.format("#PermitRootLogin prohibit-password") in lines
        assert lines[-1] == "PermitRootLogin no"

    def test_missing_directive_appended_at_end(self):
        text = "Port 22\nUsePAM yes\n\n\n"
        result = set_directive(text, "PasswordAuthentication", "no")
        assert result.splitlines()[:4] == [
            "Port 22",
            "UsePAM yes",
            PROVENANCE.format("none"),
            "PasswordAuthentication no",
        ]

    def test_missing_directive_inserted_before_match_block(self):
        text = textwrap.dedent("""\
            Port 22

            Match User backup
                PasswordAuthentication yes
        """)
        result = set_directive(text, "PermitRootLogin", "no")
        lines = result.splitlines()
        assert lines.index("PermitRootLogin no") < lines.index("Match User backup")

    def test_empty_text(self):
        assert set_directive("", "PermitRootLogin", "no") == (
            PROVENANCE.format("none") + "\nPermitRootLogin no\n"
        )

    def test_duplicate_explicit_lines_only_first_replaced(self):
        text = "PermitRootLogin yes\nPermitRootLogin without-password\n"
        result = set_directive(text, "PermitRootLogin", "no")
        lines = result.splitlines()
        assert lines[:2] == [PROVENANCE.format("PermitRootLogin yes"), "PermitRootLogin no"]
        assert find_directive(result, "PermitRootLogin").value == "no"

    def test_set_directives_applies_in_order(self):
        text = "PermitRootLogin yes\nPasswordAuthentication yes\n"
        result = set_directives(text, {"PermitRootLogin": "no", "PasswordAuthentication": "no"})
        assert find_directive(result, "PermitRootLogin").value == "no"
        assert find_directive(result, "PasswordAuthentication").value == "no"
        assert set_directives(result, {"PermitRootLogin": "no", "PasswordAuthentication": "no"}) == result


class TestFindDirective:
    def test_explicit_wins_over_comment(self):
        text = "#PermitRootLogin no\nPermitRootLogin yes\n"
        d = find_directive(text, "PermitRootLogin")
        assert d.value == "yes"
        assert d.source is DirectiveSource.EXPLICIT
        assert d.explicit

    def test_first_explicit_occurrence_wins(self):
        text = "PasswordAuthentication no\nPasswordAuthentication yes\n"
        assert find_directive(text, "PasswordAuthentication").value == "no"

    def test_commented_hint(self):
        d = find_directive("#PermitRootLogin prohibit-password\n", "PermitRootLogin")
        assert d.value == "prohibit-password"
        assert d.source is DirectiveSource.COMMENTED
        assert not d.explicit

    def test_provenance_comment_is_not_a_hint(self):
        text = PROVENANCE.format("PermitRootLogin yes") + "\n"
        d = find_directive(text, "PermitRootLogin")
        assert d.source is DirectiveSource.DEFAULT

    def test_default_table(self):
        d = find_directive("", "PasswordAuthentication")
        assert d.value == "yes"
        assert d.source is DirectiveSource.DEFAULT

    def test_custom_defaults(self):
        d = find_directive("", "PermitRootLogin", defaults={"permitrootlogin": "prohibit-password"})
        assert d.value == "prohibit-password"


class TestDisabledValues:
    def test_root_login(self):
        assert root_login_disabled("no")
        assert root_login_disabled("prohibit-password")
        assert root_login_disabled("Without-Password")
        assert not root_login_disabled("yes")

    def test_password_auth(self):
        assert password_auth_disabled("no")
        assert not password_auth_disabled("yes")
