"""
Wildcard Pattern Tests
----------------------
Tests for glob-style name matching.

Tests cover:
- Wildcard detection with escapes
- * ? and [] semantics, case-insensitive
- Malformed patterns
- matches_any defaults
"""

import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from commands.wildcard import (
    WildcardPattern, contains_wildcard_characters, create_patterns, matches_any
)
from core.errors import PatternSyntaxError


class TestWildcardDetection:
    """Tests for contains_wildcard_characters."""

    @pytest.mark.parametrize("text", ["Get-*", "Get-?tem", "Get-[CI]*", "*"])
    def test_detects_wildcards(self, text):
        assert contains_wildcard_characters(text)

    @pytest.mark.parametrize("text", ["Get-Item", "", None, "Get-`*"])
    def test_literal_names(self, text):
        """Escaped wildcards and empty values are literal."""
        assert not contains_wildcard_characters(text)


class TestWildcardMatching:
    """Tests for WildcardPattern.is_match."""

    def test_star_matches_any_run(self):
        pattern = WildcardPattern.get("Get-*")

        assert pattern.is_match("Get-ChildItem")
        assert pattern.is_match("Get-")
        assert not pattern.is_match("Set-Item")

    def test_case_insensitive(self):
        assert WildcardPattern.get("get-child*").is_match("Get-ChildItem")

    def test_question_mark_is_one_character(self):
        pattern = WildcardPattern.get("Get-?tem")

        assert pattern.is_match("Get-Item")
        assert not pattern.is_match("Get-Itm")

    def test_character_range(self):
        pattern = WildcardPattern.get("[a-c]*")

        assert pattern.is_match("Clear-Disk")
        assert not pattern.is_match("Get-Disk")

    def test_escape_makes_literal(self):
        pattern = WildcardPattern.get("Get-`*")

        assert pattern.is_match("Get-*")
        assert not pattern.is_match("Get-Item")

    def test_whole_string_match(self):
        """A literal pattern does not match a longer name."""
        assert not WildcardPattern.get("Get").is_match("Get-Item")

    def test_none_never_matches(self):
        assert not WildcardPattern.get("*").is_match(None)

    def test_unterminated_set_raises(self):
        with pytest.raises(PatternSyntaxError):
            WildcardPattern.get("Get-[abc")

    def test_compiled_patterns_are_shared(self):
        assert WildcardPattern.get("Get-*") is WildcardPattern.get("Get-*")


class TestMatchesAny:
    """Tests for matches_any and create_patterns."""

    def test_no_patterns_uses_default(self):
        assert matches_any("anything", [])
        assert not matches_any("anything", [], default_value=False)

    def test_any_pattern_matching(self):
        patterns = create_patterns(["Set-*", "Get-*"])

        assert matches_any("Get-Item", patterns)
        assert not matches_any("Remove-Item", patterns)

    def test_empty_values_are_skipped(self):
        assert len(create_patterns(["Get-*", ""])) == 1
