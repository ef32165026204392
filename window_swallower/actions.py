"""Swallow / restore actions.

Translates swallow records into i3/Sway commands. Both actions catch
ActionFailed at this boundary and report success as a bool, so a window
vanishing mid-flight never propagates into the event loop.

Swallow:
    [con_id=<parent>] mark --add "<mark>", move scratchpad

Restore:
    [con_id=<parent>] unmark "<mark>", scratchpad show, floating disable
    [con_id=<parent>] move container to workspace "<original>"   (restore_to=original)
    [con_id=<parent>] focus                                      (user-triggered only)

<mark> is "swallowed:xid:<child X11 id>", or "swallowed:<child con_id>" for
windows without an X11 id.
"""

import asyncio
import logging
from typing import Callable, List

from .errors import ActionFailed
from .models import SwallowConfig, SwallowRecord
from .window_system import WindowSystem

logger = logging.getLogger(__name__)


def _quote(value: str) -> str:
    """Quote a string for use inside an i3 command."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def build_swallow_commands(record: SwallowRecord) -> List[str]:
    """Commands that move the parent to the scratchpad holding area."""
    return [
        f"[con_id={record.parent_id}] mark --add {_quote(record.mark)}, move scratchpad",
    ]


def _reveal_command(parent_id: int, mark: str) -> str:
    return f"[con_id={parent_id}] unmark {_quote(mark)}, scratchpad show, floating disable"


def build_restore_commands(
    record: SwallowRecord,
    restore_to: str = "original",
    focus: bool = True,
) -> List[str]:
    """Commands that bring the parent back from the scratchpad.

    `focus` moves input focus to the parent, which also switches to its
    workspace. Background restores (GC timeout) pass focus=False.
    """
    commands = [_reveal_command(record.parent_id, record.mark)]
    if restore_to == "original" and record.parent_workspace:
        commands.append(
            f"[con_id={record.parent_id}] move container to workspace "
            f"{_quote(record.parent_workspace)}"
        )
    if focus:
        commands.append(f"[con_id={record.parent_id}] focus")
    return commands


async def send_notification(summary: str, body: str, timeout_ms: int = 2000) -> None:
    """Send a desktop notification via notify-send (best effort)."""
    try:
        proc = await asyncio.create_subprocess_exec(
            "notify-send", "-t", str(timeout_ms), summary, body,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
        await asyncio.wait_for(proc.wait(), timeout=5.0)
    except FileNotFoundError:
        logger.debug("notify-send not found; skipping notification")
    except (asyncio.TimeoutError, OSError) as e:
        logger.debug(f"Notification failed: {e}")


class SwallowActions:
    """Issues hide/reveal commands for swallow records."""

    def __init__(self, window_system: WindowSystem, config_getter: Callable[[], SwallowConfig]):
        """
        Initialize actions.

        Args:
            window_system: Window system used to send commands
            config_getter: Callable returning the current config
        """
        self.window_system = window_system
        self.config_getter = config_getter

    async def swallow(self, record: SwallowRecord) -> bool:
        """
        Hide the parent window in the scratchpad.

        Idempotent: repeating while the parent is already hidden is harmless.

        Returns:
            True if the window manager accepted the command
        """
        logger.info(f"Swallowing: parent={record.parent_id}, child={record.child_id}")

        try:
            for command in build_swallow_commands(record):
                await self.window_system.command(command)
        except ActionFailed as e:
            logger.warning(f"Failed to swallow parent {record.parent_id}: {e.reason}")
            return False

        if self.config_getter().notifications_enabled:
            await send_notification("Window Swallowed", "Terminal hidden for GUI application")
        return True

    async def restore(self, record: SwallowRecord, focus: bool = True) -> bool:
        """
        Reveal the parent window.

        Tolerates the parent no longer existing: the failure is logged and
        dropped.

        Args:
            record: Swallow record to undo
            focus: Focus the parent afterwards

        Returns:
            True if the parent was restored
        """
        config = self.config_getter()
        logger.info(f"Restoring: parent={record.parent_id}, child={record.child_id}")

        commands = build_restore_commands(record, config.restore_to, focus=focus)
        try:
            await self.window_system.command(commands[0])
        except ActionFailed as e:
            logger.warning(
                f"Could not restore parent {record.parent_id} (window gone?): {e.reason}"
            )
            return False

        # Workspace move and focus are cosmetic once the window is visible
        for command in commands[1:]:
            try:
                await self.window_system.command(command)
            except ActionFailed as e:
                logger.debug(f"Restore follow-up failed for {record.parent_id}: {e.reason}")

        if config.notifications_enabled:
            await send_notification("Window Restored", "Terminal window restored")
        return True

    async def release_orphan(self, parent_id: int, mark: str) -> bool:
        """
        Reveal a marked parent whose child no longer exists.

        Used by startup recovery, where there is no record to restore from.

        Returns:
            True if the parent was revealed
        """
        logger.info(f"Releasing orphaned parent {parent_id} ({mark})")
        try:
            await self.window_system.command(_reveal_command(parent_id, mark))
        except ActionFailed as e:
            logger.warning(f"Could not release parent {parent_id}: {e.reason}")
            return False
        return True
