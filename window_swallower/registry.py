"""Swallow Registry.

In-memory store of active swallow relationships, keyed by child window id.
This is the single source of truth for the daemon; the optional JSON mirror
on disk exists only so `window-swallower status` can show something when
the daemon is not reachable.
"""

import asyncio
import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import DuplicateChild, ParentAlreadySwallowed
from .models import SwallowRecord

logger = logging.getLogger(__name__)


class SwallowRegistry:
    """
    Keyed store of SwallowRecords with async-safe operations.

    Every operation takes the registry lock, so the event monitor and the
    GC sweeper never write concurrently. Records are never overwritten:
    adding a child that is already present raises DuplicateChild, and
    adding a record for a parent that is already hidden raises
    ParentAlreadySwallowed.
    """

    def __init__(self, mirror_path: Optional[Path] = None):
        """
        Initialize registry.

        Args:
            mirror_path: Optional JSON file to mirror the registry to for diagnostics
        """
        self._records: Dict[int, SwallowRecord] = {}
        self._lock = asyncio.Lock()
        # Serializes mirror writes, which run off the event loop
        self._mirror_lock = asyncio.Lock()
        self.mirror_path = mirror_path

        # Statistics counters
        self._total_added = 0
        self._total_removed = 0
        self._total_rejected = 0

    async def add(self, record: SwallowRecord) -> None:
        """
        Add a swallow record.

        Args:
            record: Record to insert

        Raises:
            DuplicateChild: If a record for record.child_id already exists
            ParentAlreadySwallowed: If record.parent_id is already hidden for another child
        """
        async with self._lock:
            existing = self._records.get(record.child_id)
            if existing is not None:
                self._total_rejected += 1
                raise DuplicateChild(record.child_id, existing.parent_id)

            for other in self._records.values():
                if other.parent_id == record.parent_id:
                    self._total_rejected += 1
                    raise ParentAlreadySwallowed(record.parent_id, other.child_id)

            self._records[record.child_id] = record
            self._total_added += 1
            logger.debug(f"Registered {record} ({len(self._records)} active)")

        await self._sync_mirror()

    async def remove(self, child_id: int) -> Optional[SwallowRecord]:
        """
        Remove and return the record for a child window.

        Args:
            child_id: Child window id

        Returns:
            The removed record, or None if no record existed
        """
        async with self._lock:
            record = self._records.pop(child_id, None)
            if record is not None:
                self._total_removed += 1
                logger.debug(f"Removed {record} ({len(self._records)} active)")

        if record is not None:
            await self._sync_mirror()
        return record

    async def find(self, child_id: int) -> Optional[SwallowRecord]:
        """Get the record for a child window, if any."""
        async with self._lock:
            return self._records.get(child_id)

    async def find_by_parent(self, parent_id: int) -> Optional[SwallowRecord]:
        """Get the record whose hidden parent is `parent_id`, if any."""
        async with self._lock:
            for record in self._records.values():
                if record.parent_id == parent_id:
                    return record
            return None

    async def all(self) -> List[SwallowRecord]:
        """Snapshot of all records, oldest first."""
        async with self._lock:
            return sorted(self._records.values(), key=lambda r: r.created_at)

    def __len__(self) -> int:
        return len(self._records)

    def stats(self) -> Dict[str, int]:
        """
        Get registry statistics for diagnostics.

        Returns:
            Dict with current size and historical counters
        """
        return {
            "active": len(self._records),
            "total_added": self._total_added,
            "total_removed": self._total_removed,
            "total_rejected": self._total_rejected,
        }

    async def _sync_mirror(self) -> None:
        """Write the current records to the diagnostics mirror.

        Runs outside the registry lock; the file I/O happens in a worker
        thread. The snapshot is taken under the mirror lock, so the last
        write always reflects the latest state.
        """
        if self.mirror_path is None:
            return

        async with self._mirror_lock:
            data = {
                "updated_at": time.time(),
                "pid": os.getpid(),
                "records": [r.to_dict() for r in self._records.values()],
            }
            await asyncio.to_thread(self._write_mirror, data)

    def _write_mirror(self, data: Dict[str, Any]) -> None:
        """Write a diagnostics snapshot (atomic). Failures are logged, never raised."""
        try:
            self.mirror_path.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(
                dir=self.mirror_path.parent, prefix=".swallow_map-", suffix=".json"
            )
            try:
                with os.fdopen(fd, "w") as f:
                    json.dump(data, f, indent=2)
                os.rename(temp_path, self.mirror_path)
            except Exception:
                if Path(temp_path).exists():
                    os.unlink(temp_path)
                raise
        except OSError as e:
            logger.warning(f"Failed to write registry mirror {self.mirror_path}: {e}")


def read_mirror(mirror_path: Path) -> Optional[Dict[str, Any]]:
    """
    Read a registry mirror written by a (possibly dead) daemon.

    Args:
        mirror_path: Path to swallow_map.json

    Returns:
        Dict with "updated_at", "pid" and "records" (list of SwallowRecord),
        or None if the file is missing or unreadable
    """
    if not mirror_path.exists():
        return None

    try:
        with open(mirror_path) as f:
            data = json.load(f)
        data["records"] = [SwallowRecord(**r) for r in data.get("records", [])]
        return data
    except (OSError, json.JSONDecodeError, TypeError, ValueError) as e:
        logger.warning(f"Failed to read registry mirror {mirror_path}: {e}")
        return None
