"""
Unit tests for SwallowRegistry.

Tests cover uniqueness of children and parents, removal ownership and the
diagnostics mirror.
"""

import json

import pytest

from window_swallower.errors import DuplicateChild, ParentAlreadySwallowed
from window_swallower.models import SwallowRecord
from window_swallower.registry import SwallowRegistry, read_mirror


class TestRegistryOperations:
    """Test add/remove/find."""

    @pytest.mark.asyncio
    async def test_add_and_find(self, registry):
        record = SwallowRecord(child_id=42, parent_id=7, created_at=100)
        await registry.add(record)

        assert await registry.find(42) == record
        assert await registry.find_by_parent(7) == record
        assert await registry.find(7) is None
        assert len(registry) == 1

    @pytest.mark.asyncio
    async def test_duplicate_child_rejected(self, registry):
        """Existing record is kept unchanged when the same child is added again."""
        original = SwallowRecord(child_id=42, parent_id=7, created_at=100)
        await registry.add(original)

        with pytest.raises(DuplicateChild) as exc_info:
            await registry.add(SwallowRecord(child_id=42, parent_id=9, created_at=200))

        assert exc_info.value.existing_parent_id == 7
        assert await registry.find(42) == original
        assert registry.stats()["total_rejected"] == 1

    @pytest.mark.asyncio
    async def test_parent_swallowed_once(self, registry):
        await registry.add(SwallowRecord(child_id=42, parent_id=7))

        with pytest.raises(ParentAlreadySwallowed) as exc_info:
            await registry.add(SwallowRecord(child_id=43, parent_id=7))

        assert exc_info.value.existing_child_id == 42
        assert await registry.find(43) is None

    @pytest.mark.asyncio
    async def test_remove_returns_record_once(self, registry):
        record = SwallowRecord(child_id=42, parent_id=7)
        await registry.add(record)

        assert await registry.remove(42) == record
        assert await registry.remove(42) is None
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_parent_reusable_after_remove(self, registry):
        await registry.add(SwallowRecord(child_id=42, parent_id=7))
        await registry.remove(42)
        await registry.add(SwallowRecord(child_id=43, parent_id=7))
        assert (await registry.find_by_parent(7)).child_id == 43

    @pytest.mark.asyncio
    async def test_all_sorted_oldest_first(self, registry):
        await registry.add(SwallowRecord(child_id=1, parent_id=10, created_at=300))
        await registry.add(SwallowRecord(child_id=2, parent_id=20, created_at=100))
        await registry.add(SwallowRecord(child_id=3, parent_id=30, created_at=200))

        assert [r.child_id for r in await registry.all()] == [2, 3, 1]

    @pytest.mark.asyncio
    async def test_stats(self, registry):
        await registry.add(SwallowRecord(child_id=1, parent_id=10))
        await registry.add(SwallowRecord(child_id=2, parent_id=20))
        await registry.remove(1)

        assert registry.stats() == {
            "active": 1,
            "total_added": 2,
            "total_removed": 1,
            "total_rejected": 0,
        }


class TestRegistryMirror:
    """Test the JSON diagnostics mirror."""

    @pytest.mark.asyncio
    async def test_mirror_written_on_change(self, tmp_path):
        mirror = tmp_path / "cache" / "swallow_map.json"
        registry = SwallowRegistry(mirror_path=mirror)

        await registry.add(SwallowRecord(child_id=42, parent_id=7, created_at=5, parent_workspace="2"))

        data = json.loads(mirror.read_text())
        assert data["records"] == [
            {"child_id": 42, "parent_id": 7, "child_xid": None, "created_at": 5, "parent_workspace": "2"}
        ]

        await registry.remove(42)
        assert json.loads(mirror.read_text())["records"] == []

    @pytest.mark.asyncio
    async def test_read_mirror(self, tmp_path):
        mirror = tmp_path / "swallow_map.json"
        registry = SwallowRegistry(mirror_path=mirror)
        await registry.add(SwallowRecord(child_id=42, parent_id=7, created_at=5))

        data = read_mirror(mirror)
        assert data["records"] == [SwallowRecord(child_id=42, parent_id=7, created_at=5)]

    def test_read_mirror_missing(self, tmp_path):
        assert read_mirror(tmp_path / "nope.json") is None

    def test_read_mirror_corrupt(self, tmp_path):
        mirror = tmp_path / "swallow_map.json"
        mirror.write_text("{not json")
        assert read_mirror(mirror) is None

    @pytest.mark.asyncio
    async def test_mirror_failure_does_not_raise(self, tmp_path):
        """An unwritable mirror is logged; the in-memory registry still works."""
        blocker = tmp_path / "file"
        blocker.write_text("")
        registry = SwallowRegistry(mirror_path=blocker / "swallow_map.json")

        await registry.add(SwallowRecord(child_id=42, parent_id=7))
        assert len(registry) == 1

    @pytest.mark.asyncio
    async def test_mirror_written_outside_registry_lock(self, tmp_path):
        """Lookups are not blocked while the mirror file is being written."""
        registry = SwallowRegistry(mirror_path=tmp_path / "swallow_map.json")
        lock_held = []
        write_mirror = registry._write_mirror

        def recording_write(data):
            lock_held.append(registry._lock.locked())
            write_mirror(data)

        registry._write_mirror = recording_write
        await registry.add(SwallowRecord(child_id=42, parent_id=7))
        await registry.remove(42)

        assert lock_held == [False, False]
        assert read_mirror(tmp_path / "swallow_map.json")["records"] == []
