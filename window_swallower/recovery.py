"""Startup recovery from window marks.

Every swallowed parent carries an i3 mark naming its child, either by X11
window id ("swallowed:xid:<xid>") or by container id ("swallowed:<con_id>").
The registry only lives in memory, so when the daemon or i3 restarts it is
rebuilt from those marks instead of leaving terminals stranded in the
scratchpad. Container ids change across an i3 restart; X11 ids do not.
"""

import logging
import time
from typing import Optional

from .actions import SwallowActions
from .errors import DuplicateChild, MetadataUnavailable, ParentAlreadySwallowed
from .models import SwallowRecord, parse_swallow_mark
from .registry import SwallowRegistry
from .window_system import WindowSystem

logger = logging.getLogger(__name__)


async def rebuild_from_marks(
    window_system: WindowSystem,
    registry: SwallowRegistry,
    actions: SwallowActions,
    now: Optional[float] = None,
) -> int:
    """Re-register swallows found in window marks.

    Marked parents whose child still exists are re-added with a fresh
    timestamp and the child's current container id; marked parents whose
    child is gone are revealed.

    Args:
        window_system: Window system to scan
        registry: Registry to populate
        actions: Actions used to reveal orphaned parents
        now: Timestamp for re-added records (default: time.time())

    Returns:
        Number of records re-added
    """
    now = time.time() if now is None else now

    try:
        windows = await window_system.list_windows()
    except MetadataUnavailable as e:
        logger.warning(f"Cannot scan windows for swallow marks: {e}")
        return 0

    by_id = {w.id: w for w in windows}
    by_xid = {w.xid: w for w in windows if w.xid}
    rebuilt = 0

    for window in windows:
        mark = window.swallow_mark()
        if mark is None:
            continue

        kind, value = parse_swallow_mark(mark)
        child = by_xid.get(value) if kind == "xid" else by_id.get(value)

        if child is None:
            logger.info(f"Child {kind}={value} of marked parent {window.id} is gone; releasing")
            await actions.release_orphan(window.id, mark)
            continue

        if child.id == window.id:
            logger.warning(f"Ignoring mark {mark!r} on window {window.id}: names the window itself")
            continue

        record = SwallowRecord(
            child_id=child.id,
            parent_id=window.id,
            child_xid=value if kind == "xid" else None,
            created_at=now,
        )

        try:
            await registry.add(record)
        except (DuplicateChild, ParentAlreadySwallowed) as e:
            logger.warning(f"Skipping marked parent {window.id}: {e}")
            continue

        rebuilt += 1
        logger.info(f"Recovered swallow from marks: {record}")

    if rebuilt:
        logger.info(f"Rebuilt {rebuilt} swallow(s) from window marks")
    return rebuilt
