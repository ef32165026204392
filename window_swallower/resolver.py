"""Process-tree resolver.

Finds the window owned by a new window's parent process, which is the
candidate terminal to swallow.
"""

import logging
from typing import List, Optional

from .errors import MetadataUnavailable
from .models import WindowHandle
from .window_system import WindowSystem

logger = logging.getLogger(__name__)


async def _ancestor_pids(window_system: WindowSystem, pid: int, max_depth: int) -> List[int]:
    """Return up to `max_depth` ancestor PIDs of `pid`, nearest first.

    Stops at init (pid <= 1), on cycles, or when the process table cannot
    be read. Never raises.
    """
    ancestors: List[int] = []
    seen = {pid}
    current = pid

    for _ in range(max_depth):
        try:
            ppid = await window_system.resolve_parent_pid(current)
        except MetadataUnavailable as e:
            logger.debug(f"Stopping ancestry walk at pid {current}: {e}")
            break

        if ppid <= 1 or ppid in seen:
            break

        ancestors.append(ppid)
        seen.add(ppid)
        current = ppid

    return ancestors


async def find_parent_window(
    window_system: WindowSystem,
    child: WindowHandle,
    max_depth: int = 1,
) -> Optional[WindowHandle]:
    """Find the window owned by the child's parent process.

    With max_depth=1 only the direct parent process is considered. Larger
    values also consider grandparents and further ancestors, nearest first,
    which covers the usual terminal -> shell -> program chain.

    Missing metadata is a "no candidate" outcome, never an exception.

    Args:
        window_system: Window system to query
        child: Snapshot of the new window
        max_depth: Maximum number of ancestor processes to check

    Returns:
        The parent window, or None if there is no candidate
    """
    if not child.pid:
        logger.debug(f"Window {child.id} has no PID; no parent candidate")
        return None

    ancestors = await _ancestor_pids(window_system, child.pid, max_depth)
    if not ancestors:
        logger.debug(f"No parent process found for window {child.id} (pid={child.pid})")
        return None

    try:
        windows = await window_system.list_windows()
    except MetadataUnavailable as e:
        logger.debug(f"Cannot list windows while resolving parent of {child.id}: {e}")
        return None

    # O(W) index, first window per pid wins
    by_pid = {}
    for window in windows:
        if window.id == child.id or not window.pid:
            continue
        by_pid.setdefault(window.pid, window)

    for ancestor_pid in ancestors:
        parent = by_pid.get(ancestor_pid)
        if parent is not None:
            logger.debug(
                f"Resolved parent of window {child.id}: {parent} "
                f"(ancestor pid {ancestor_pid})"
            )
            return parent

    logger.debug(f"No window owned by ancestors {ancestors} of window {child.id}")
    return None
