"""
Unit tests for swallow/restore actions.
"""

from unittest.mock import AsyncMock, patch

import pytest

from window_swallower.actions import (
    SwallowActions,
    build_restore_commands,
    build_swallow_commands,
)
from window_swallower.models import SwallowRecord


@pytest.fixture
def record():
    return SwallowRecord(child_id=42, parent_id=7, created_at=0, parent_workspace="2")


class TestCommandBuilders:
    """Test i3 command strings."""

    def test_swallow_commands(self, record):
        assert build_swallow_commands(record) == [
            '[con_id=7] mark --add "swallowed:42", move scratchpad',
        ]

    def test_restore_to_original_workspace(self, record):
        assert build_restore_commands(record, "original") == [
            '[con_id=7] unmark "swallowed:42", scratchpad show, floating disable',
            '[con_id=7] move container to workspace "2"',
            "[con_id=7] focus",
        ]

    def test_restore_to_current_workspace(self, record):
        commands = build_restore_commands(record, "current")
        assert not any("move container" in c for c in commands)
        assert commands[-1] == "[con_id=7] focus"

    def test_background_restore_does_not_focus(self, record):
        """A restore nobody asked for must not switch the user's workspace."""
        commands = build_restore_commands(record, "original", focus=False)
        assert commands == [
            '[con_id=7] unmark "swallowed:42", scratchpad show, floating disable',
            '[con_id=7] move container to workspace "2"',
        ]

    def test_restore_uses_xid_mark(self):
        record = SwallowRecord(child_id=42, parent_id=7, child_xid=4194307)
        assert build_restore_commands(record)[0] == (
            '[con_id=7] unmark "swallowed:xid:4194307", scratchpad show, floating disable'
        )

    def test_workspace_name_quoted(self):
        record = SwallowRecord(child_id=42, parent_id=7, parent_workspace='3: "web"')
        assert build_restore_commands(record)[1] == (
            '[con_id=7] move container to workspace "3: \\"web\\""'
        )


class TestSwallowActions:
    """Test SwallowActions against the in-memory window system."""

    @pytest.mark.asyncio
    async def test_swallow(self, actions, window_system, terminal_and_child, record):
        assert await actions.swallow(record) is True
        assert window_system.swallow_commands(7) == build_swallow_commands(record)

    @pytest.mark.asyncio
    async def test_swallow_missing_parent(self, actions, window_system, record):
        """A rejected command is reported as False, never raised."""
        assert await actions.swallow(record) is False

    @pytest.mark.asyncio
    async def test_restore(self, actions, window_system, terminal_and_child, record):
        assert await actions.restore(record) is True
        assert window_system.commands == build_restore_commands(record)

    @pytest.mark.asyncio
    async def test_restore_parent_gone(self, actions, window_system, record):
        assert await actions.restore(record) is False
        assert len(window_system.commands) == 1

    @pytest.mark.asyncio
    async def test_restore_follow_up_failure_tolerated(
        self, actions, window_system, terminal_and_child, record
    ):
        window_system.fail_commands_matching.add("move container")
        assert await actions.restore(record) is True
        assert window_system.commands[-1] == "[con_id=7] focus"

    @pytest.mark.asyncio
    async def test_notifications(self, window_system, terminal_and_child, record, config):
        noisy = config.model_copy(update={"notifications_enabled": True})
        actions = SwallowActions(window_system, lambda: noisy)

        with patch("window_swallower.actions.send_notification", new_callable=AsyncMock) as notify:
            await actions.swallow(record)
            await actions.restore(record)

        assert notify.await_count == 2

    @pytest.mark.asyncio
    async def test_no_notifications_by_default(self, actions, terminal_and_child, record):
        with patch("window_swallower.actions.send_notification", new_callable=AsyncMock) as notify:
            await actions.swallow(record)

        notify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_restore_without_focus(self, actions, window_system, terminal_and_child, record):
        assert await actions.restore(record, focus=False) is True
        assert not any(c.endswith("focus") for c in window_system.commands)

    @pytest.mark.asyncio
    async def test_release_orphan(self, actions, window_system, terminal_and_child):
        assert await actions.release_orphan(7, "swallowed:xid:4194307") is True
        assert window_system.commands == [
            '[con_id=7] unmark "swallowed:xid:4194307", scratchpad show, floating disable'
        ]

    @pytest.mark.asyncio
    async def test_release_orphan_parent_gone(self, actions, window_system):
        assert await actions.release_orphan(7, "swallowed:42") is False
