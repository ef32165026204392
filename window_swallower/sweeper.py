"""GC sweeper.

Periodic consistency pass that reconciles the registry against live window
existence and enforces the swallow timeout. Decoupled from the event
monitor so dropped or missed close events still get cleaned up.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .actions import SwallowActions
from .errors import MetadataUnavailable
from .models import SwallowConfig, SwallowRecord
from .registry import SwallowRegistry
from .window_system import WindowSystem

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    """Outcome of a single sweep."""
    expired: List[int] = field(default_factory=list)  # child ids force-restored on timeout
    vanished: List[int] = field(default_factory=list)  # child ids dropped because a window is gone
    restored: int = 0
    kept: int = 0

    def to_dict(self) -> dict:
        return {
            "expired": self.expired,
            "vanished": self.vanished,
            "restored": self.restored,
            "kept": self.kept,
        }


class GCSweeper:
    """Enforces gc_timeout and removes records whose windows are gone."""

    def __init__(
        self,
        window_system: WindowSystem,
        registry: SwallowRegistry,
        actions: SwallowActions,
        config_getter: Callable[[], SwallowConfig],
    ):
        self.window_system = window_system
        self.registry = registry
        self.actions = actions
        self.config_getter = config_getter
        self.sweep_count = 0
        self.last_sweep_at: Optional[float] = None

    async def _exists(self, window_id: int) -> Optional[bool]:
        """Existence check; None when it could not be determined."""
        try:
            return await self.window_system.window_exists(window_id)
        except MetadataUnavailable as e:
            logger.debug(f"Existence check for window {window_id} failed: {e}")
            return None

    async def sweep(self, now: Optional[float] = None) -> SweepResult:
        """
        Run one reconciliation pass.

        For each record:
        - age > gc_timeout: remove and force restore, whatever the windows' state
        - child or parent gone: remove, restore unless the parent is known to be gone
        - existence unknown: keep until the next sweep

        Args:
            now: Current unix time (default: time.time())

        Returns:
            SweepResult describing what was removed
        """
        now = time.time() if now is None else now
        timeout = self.config_getter().gc_timeout
        result = SweepResult()

        for record in await self.registry.all():
            if record.is_expired(now, timeout):
                if await self._drop(record, restore=True, result=result):
                    result.expired.append(record.child_id)
                    logger.info(f"Swallow expired after {record.age(now):.0f}s: {record}")
                continue

            child_exists = await self._exists(record.child_id)
            parent_exists = await self._exists(record.parent_id)

            if child_exists is False or parent_exists is False:
                if await self._drop(record, restore=parent_exists is not False, result=result):
                    result.vanished.append(record.child_id)
                    logger.info(
                        f"Dropping stale swallow {record} "
                        f"(child_exists={child_exists}, parent_exists={parent_exists})"
                    )
                continue

            result.kept += 1

        self.sweep_count += 1
        self.last_sweep_at = now
        if result.expired or result.vanished:
            logger.info(
                f"GC sweep: {len(result.expired)} expired, {len(result.vanished)} stale, "
                f"{result.kept} kept"
            )
        return result

    async def _drop(self, record: SwallowRecord, restore: bool, result: SweepResult) -> bool:
        # Whoever removes the record owns the restore
        removed = await self.registry.remove(record.child_id)
        if removed is None:
            return False

        if restore and await self.actions.restore(removed, focus=False):
            result.restored += 1
        return True

    async def run_forever(self) -> None:
        """Sweep every gc_interval seconds until cancelled."""
        logger.info(f"GC sweeper started (interval: {self.config_getter().gc_interval}s)")
        while True:
            await asyncio.sleep(self.config_getter().gc_interval)
            try:
                await self.sweep()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error in GC sweep: {e}", exc_info=True)
