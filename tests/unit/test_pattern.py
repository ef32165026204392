"""
Unit tests for SwallowPattern.

Tests cover regex (default), glob and literal pattern types and validation.
"""

import pytest

from window_swallower.pattern import SwallowPattern, any_match, compile_patterns


class TestPatternTypes:
    """Test matching per pattern type."""

    def test_bare_pattern_is_regex_search(self):
        """Bare patterns match anywhere in the text, like bash =~."""
        assert SwallowPattern("vim").matches("nvim")
        assert SwallowPattern("vim").matches("vim")
        assert SwallowPattern("^vim$").matches("vim")
        assert not SwallowPattern("^vim$").matches("nvim")

    def test_regex_is_case_sensitive(self):
        assert SwallowPattern("Alacritty").matches("Alacritty")
        assert not SwallowPattern("alacritty").matches("Alacritty")

    def test_explicit_regex_prefix(self):
        assert SwallowPattern("regex:^(XTerm|URxvt)$").matches("URxvt")
        assert not SwallowPattern("regex:^(XTerm|URxvt)$").matches("URxvt-256")

    def test_glob_matches_whole_text(self):
        rule = SwallowPattern("glob:st-*")
        assert rule.matches("st-256color")
        assert not rule.matches("xst-256color")

    def test_literal_is_exact(self):
        rule = SwallowPattern("literal:kitty")
        assert rule.matches("kitty")
        assert not rule.matches("kitty-extra")

    def test_empty_text_never_matches(self):
        assert not SwallowPattern(".*").matches("")


class TestPatternValidation:
    """Test pattern construction errors."""

    def test_empty_pattern_rejected(self):
        with pytest.raises(ValueError, match="cannot be empty"):
            SwallowPattern("")

    def test_empty_prefixed_pattern_rejected(self):
        with pytest.raises(ValueError):
            SwallowPattern("glob:")

    def test_invalid_regex_rejected(self):
        with pytest.raises(ValueError, match="Invalid regex"):
            SwallowPattern("regex:([unclosed")

    def test_compile_patterns_fails_on_first_invalid(self):
        with pytest.raises(ValueError):
            compile_patterns(["kitty", "(", "XTerm"])


def test_any_match_checks_every_text():
    patterns = compile_patterns(["nvim", "htop"])
    assert any_match(patterns, "Alacritty", "htop - load")
    assert not any_match(patterns, "firefox", "Mozilla Firefox")
