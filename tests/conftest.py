"""Pytest configuration and fixtures for window swallower tests."""

import re
import sys
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

import pytest

# Make the package importable without installation
package_root = Path(__file__).parent.parent
if str(package_root) not in sys.path:
    sys.path.insert(0, str(package_root))

from window_swallower.actions import SwallowActions  # noqa: E402
from window_swallower.errors import ActionFailed, MetadataUnavailable  # noqa: E402
from window_swallower.models import SwallowConfig, WindowHandle  # noqa: E402
from window_swallower.monitor import EventMonitor  # noqa: E402
from window_swallower.registry import SwallowRegistry  # noqa: E402
from window_swallower.sweeper import GCSweeper  # noqa: E402
from window_swallower.window_system import WindowSystem  # noqa: E402


_CON_ID = re.compile(r"\[con_id=(\d+)\]")


class FakeWindowSystem(WindowSystem):
    """In-memory window manager + process table."""

    def __init__(self) -> None:
        self.windows: Dict[int, WindowHandle] = {}
        self.ppids: Dict[int, int] = {}
        self.commands: List[str] = []
        self.fail_commands_matching: Set[str] = set()
        self.unavailable = False

    def add_window(
        self,
        window_id: int,
        window_class: str = "",
        title: str = "",
        pid: Optional[int] = None,
        workspace: Optional[str] = "1",
        marks: Iterable[str] = (),
        xid: Optional[int] = None,
    ) -> WindowHandle:
        handle = WindowHandle(
            id=window_id,
            window_class=window_class,
            title=title,
            pid=pid,
            xid=xid,
            workspace=workspace,
            marks=tuple(marks),
        )
        self.windows[window_id] = handle
        return handle

    def close_window(self, window_id: int) -> None:
        self.windows.pop(window_id, None)

    def add_process(self, pid: int, ppid: int) -> None:
        self.ppids[pid] = ppid

    async def get_window(self, window_id: int) -> WindowHandle:
        if self.unavailable or window_id not in self.windows:
            raise MetadataUnavailable(f"Window {window_id} not found", window_id=window_id)
        return self.windows[window_id]

    async def resolve_parent_pid(self, pid: int) -> int:
        if self.unavailable or pid not in self.ppids:
            raise MetadataUnavailable(f"No process {pid}", pid=pid)
        return self.ppids[pid]

    async def list_windows(self) -> List[WindowHandle]:
        if self.unavailable:
            raise MetadataUnavailable("tree unavailable")
        return list(self.windows.values())

    async def window_exists(self, window_id: int) -> bool:
        if self.unavailable:
            raise MetadataUnavailable("tree unavailable")
        return window_id in self.windows

    async def command(self, command: str) -> None:
        self.commands.append(command)
        if any(fragment in command for fragment in self.fail_commands_matching):
            raise ActionFailed(command, "rejected")
        match = _CON_ID.match(command)
        if match and int(match.group(1)) not in self.windows:
            raise ActionFailed(command, "No matching windows")

    def swallow_commands(self, parent_id: Optional[int] = None) -> List[str]:
        return [
            c for c in self.commands
            if "move scratchpad" in c and (parent_id is None or c.startswith(f"[con_id={parent_id}]"))
        ]

    def restore_commands(self, parent_id: Optional[int] = None) -> List[str]:
        return [
            c for c in self.commands
            if "scratchpad show" in c and (parent_id is None or c.startswith(f"[con_id={parent_id}]"))
        ]


@pytest.fixture
def config() -> SwallowConfig:
    """Config with no swallow delay, mirroring the example scenarios."""
    return SwallowConfig(
        terminal_patterns=["Alacritty"],
        exception_patterns=["nvim"],
        swallow_delay_ms=0,
        gc_timeout=30,
    )


@pytest.fixture
def window_system() -> FakeWindowSystem:
    return FakeWindowSystem()


@pytest.fixture
def terminal_and_child(window_system: FakeWindowSystem):
    """Alacritty (pid 100) -> bash (pid 200) -> firefox (pid 300)."""
    parent = window_system.add_window(7, "Alacritty", "bash", pid=100, workspace="2")
    child = window_system.add_window(42, "firefox", "Mozilla Firefox", pid=300, workspace="2")
    window_system.add_process(300, 200)
    window_system.add_process(200, 100)
    window_system.add_process(100, 1)
    return parent, child


@pytest.fixture
def registry() -> SwallowRegistry:
    return SwallowRegistry()


@pytest.fixture
def actions(window_system: FakeWindowSystem, config: SwallowConfig) -> SwallowActions:
    return SwallowActions(window_system, lambda: config)


@pytest.fixture
def monitor(window_system, registry, actions, config) -> EventMonitor:
    return EventMonitor(window_system, registry, actions, lambda: config)


@pytest.fixture
def sweeper(window_system, registry, actions, config) -> GCSweeper:
    return GCSweeper(window_system, registry, actions, lambda: config)
