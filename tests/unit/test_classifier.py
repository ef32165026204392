"""
Unit tests for the window classifier.
"""

import pytest

from window_swallower.classifier import is_exception, is_terminal, should_swallow
from window_swallower.models import SwallowConfig, WindowHandle


@pytest.fixture
def alacritty():
    return WindowHandle(id=7, window_class="Alacritty", title="bash")


@pytest.fixture
def firefox():
    return WindowHandle(id=42, window_class="firefox", title="Mozilla Firefox")


class TestShouldSwallow:
    """Test should_swallow decisions."""

    def test_terminal_parent_gui_child(self, config, alacritty, firefox):
        """Scenario: parent Alacritty, child firefox -> swallow."""
        assert should_swallow(alacritty, firefox, config) is True

    def test_exception_child_class(self, config, alacritty):
        """Scenario: child class nvim -> no swallow."""
        child = WindowHandle(id=43, window_class="nvim", title="init.lua")
        assert should_swallow(alacritty, child, config) is False

    def test_exception_child_title(self, config, alacritty):
        """Exception patterns also apply to the child's title."""
        child = WindowHandle(id=43, window_class="neovide", title="nvim ~/notes.md")
        assert should_swallow(alacritty, child, config) is False

    def test_non_terminal_parent(self, config, firefox):
        parent = WindowHandle(id=9, window_class="Thunar", title="Files")
        assert should_swallow(parent, firefox, config) is False

    def test_parent_without_class(self, config, firefox):
        parent = WindowHandle(id=9)
        assert should_swallow(parent, firefox, config) is False

    @pytest.mark.parametrize("child_class", ["firefox", "nvim", "mpv", ""])
    @pytest.mark.parametrize("parent_class", ["Alacritty", "kitty", "Thunar"])
    def test_disabled_never_swallows(self, config, parent_class, child_class):
        disabled = config.model_copy(update={"enabled": False})
        parent = WindowHandle(id=1, window_class=parent_class)
        child = WindowHandle(id=2, window_class=child_class)
        assert should_swallow(parent, child, disabled) is False

    def test_exception_wins_over_terminal_match(self, alacritty):
        """A child matching an exception is never swallowed, even from a terminal."""
        config = SwallowConfig(terminal_patterns=["Alacritty"], exception_patterns=["fire"])
        child = WindowHandle(id=2, window_class="firefox")
        assert should_swallow(alacritty, child, config) is False

    def test_default_config_terminals(self, firefox):
        config = SwallowConfig()
        for terminal_class in ("Alacritty", "kitty", "XTerm", "URxvt", "Gnome-terminal"):
            parent = WindowHandle(id=1, window_class=terminal_class)
            assert should_swallow(parent, firefox, config), terminal_class


class TestHelpers:
    """Test is_terminal / is_exception."""

    def test_is_terminal(self, config, alacritty, firefox):
        assert is_terminal(alacritty, config)
        assert not is_terminal(firefox, config)

    def test_is_exception(self, config, firefox):
        assert not is_exception(firefox, config)
        assert is_exception(WindowHandle(id=3, window_class="nvim"), config)
