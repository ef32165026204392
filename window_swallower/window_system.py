"""Window system capability interface.

The core logic (resolver, actions, monitor, sweeper) talks to the window
manager and the OS process table only through `WindowSystem`, so it can be
exercised against an in-memory fake. `I3WindowSystem` is the production
implementation on top of i3ipc.aio and psutil.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

import psutil
from i3ipc import aio

from .errors import ActionFailed, MetadataUnavailable
from .models import SwallowConfig, WindowHandle

logger = logging.getLogger(__name__)


class WindowSystem(ABC):
    """Queries and commands the swallower needs from the outside world."""

    @abstractmethod
    async def get_window(self, window_id: int) -> WindowHandle:
        """Snapshot a window by container ID.

        Raises:
            MetadataUnavailable: If the window does not exist or the query failed
        """

    @abstractmethod
    async def resolve_parent_pid(self, pid: int) -> int:
        """Return the parent PID of `pid` from the OS process table.

        Raises:
            MetadataUnavailable: If the process is gone or unreadable
        """

    @abstractmethod
    async def list_windows(self) -> List[WindowHandle]:
        """Enumerate all top-level windows with their owning PIDs.

        Raises:
            MetadataUnavailable: If the query failed
        """

    @abstractmethod
    async def window_exists(self, window_id: int) -> bool:
        """Check whether a window still exists.

        Raises:
            MetadataUnavailable: If the query failed (existence unknown)
        """

    @abstractmethod
    async def command(self, command: str) -> None:
        """Run a window manager command.

        Raises:
            ActionFailed: If the command was rejected or could not be sent
        """


def get_window_class(container) -> str:
    """Get window class in a Sway/i3-compatible way.

    For Sway/Wayland: Checks app_id first (native Wayland), then window_class (XWayland).
    For i3/X11: Uses window_class property.

    Args:
        container: i3ipc Con object

    Returns:
        Window class string or "" if not available
    """
    app_id = getattr(container, "app_id", None)
    if app_id:
        return app_id

    if getattr(container, "window_class", None):
        return container.window_class

    properties = getattr(container, "window_properties", None)
    if isinstance(properties, dict):
        return properties.get("class", "")

    return ""


async def get_window_pid_via_xprop(window_xid: int, timeout: float = 1.0) -> Optional[int]:
    """Get process ID for an X11 window using xprop as fallback.

    i3 does not report PIDs in its tree; xprop reads _NET_WM_PID directly.

    Args:
        window_xid: X11 window ID
        timeout: Seconds to wait for xprop

    Returns:
        Process ID or None if not available
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            "xprop", "-id", str(window_xid), "_NET_WM_PID",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError:
        logger.error("xprop command not found. Install x11-utils or xorg-xprop package.")
        return None

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        logger.warning(f"xprop timeout for window {window_xid}")
        return None

    if proc.returncode != 0:
        logger.debug(f"xprop failed for window {window_xid}: {stderr.decode().strip()}")
        return None

    # Output: "_NET_WM_PID(CARDINAL) = 12345"
    output = stdout.decode().strip()
    if " = " in output:
        try:
            return int(output.split(" = ")[1])
        except ValueError as e:
            logger.warning(f"Failed to parse PID from xprop output: {e}")
            return None

    logger.debug(f"Could not parse xprop output for window {window_xid}: {output}")
    return None


class I3WindowSystem(WindowSystem):
    """WindowSystem backed by an i3ipc.aio connection and psutil."""

    def __init__(self, conn: aio.Connection, config_getter: Callable[[], SwallowConfig]):
        """
        Initialize window system.

        Args:
            conn: Async i3/Sway IPC connection
            config_getter: Callable returning the current config (for query_timeout)
        """
        self.conn = conn
        self.config_getter = config_getter
        # PIDs never change for a live container; avoid re-running xprop
        self._pid_cache: Dict[int, int] = {}

    @property
    def timeout(self) -> float:
        return self.config_getter().query_timeout

    async def _get_tree(self) -> Any:
        try:
            return await asyncio.wait_for(self.conn.get_tree(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise MetadataUnavailable(f"get_tree timed out after {self.timeout}s") from e
        except Exception as e:
            raise MetadataUnavailable(f"get_tree failed: {e}") from e

    async def _container_pid(self, container) -> Optional[int]:
        cached = self._pid_cache.get(container.id)
        if cached:
            return cached

        pid = getattr(container, "pid", None)
        if not pid and container.window:
            pid = await get_window_pid_via_xprop(container.window, timeout=self.timeout)

        if pid:
            self._pid_cache[container.id] = pid
        return pid or None

    async def _to_handle(self, container) -> WindowHandle:
        workspace = container.workspace()
        return WindowHandle(
            id=container.id,
            window_class=get_window_class(container),
            instance=container.window_instance or "",
            title=container.name or "",
            pid=await self._container_pid(container),
            xid=container.window,
            workspace=workspace.name if workspace else None,
            marks=tuple(container.marks or ()),
        )

    async def get_window(self, window_id: int) -> WindowHandle:
        tree = await self._get_tree()
        container = tree.find_by_id(window_id)
        if container is None:
            raise MetadataUnavailable(f"Window {window_id} not found", window_id=window_id)
        return await self._to_handle(container)

    async def resolve_parent_pid(self, pid: int) -> int:
        try:
            ppid = psutil.Process(pid).ppid()
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess) as e:
            raise MetadataUnavailable(f"Cannot read parent of process {pid}: {e}", pid=pid) from e

        if not ppid:
            raise MetadataUnavailable(f"Process {pid} has no parent", pid=pid)
        return ppid

    async def list_windows(self) -> List[WindowHandle]:
        tree = await self._get_tree()
        leaves = tree.leaves()

        live_ids = {c.id for c in leaves}
        for stale_id in set(self._pid_cache) - live_ids:
            del self._pid_cache[stale_id]

        return [await self._to_handle(c) for c in leaves]

    async def window_exists(self, window_id: int) -> bool:
        tree = await self._get_tree()
        return tree.find_by_id(window_id) is not None

    async def command(self, command: str) -> None:
        try:
            replies = await asyncio.wait_for(self.conn.command(command), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise ActionFailed(command, f"timed out after {self.timeout}s") from e
        except Exception as e:
            raise ActionFailed(command, str(e)) from e

        for reply in replies or []:
            if not reply.success:
                raise ActionFailed(command, reply.error or "unknown error")

        logger.debug(f"Command succeeded: {command}")
