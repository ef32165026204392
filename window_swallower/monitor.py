"""Event monitor.

Consumes window lifecycle events in delivery order and drives each child
window through NotSwallowed -> Swallowed -> Restored.

A "created" event schedules a deferred swallow attempt after
`swallow_delay_ms`, giving the new window time to publish its class, title
and PID. The deferred attempts are tracked per window id so a "closed"
event or shutdown can cancel them.
"""

import asyncio
import logging
from typing import Callable, Dict, Optional

from .actions import SwallowActions
from .classifier import should_swallow
from .errors import DuplicateChild, MetadataUnavailable, ParentAlreadySwallowed
from .models import SwallowConfig, SwallowRecord, WindowEvent
from .registry import SwallowRegistry
from .resolver import find_parent_window
from .window_system import WindowSystem

logger = logging.getLogger(__name__)


class EventMonitor:
    """Single consumer of the window event stream."""

    def __init__(
        self,
        window_system: WindowSystem,
        registry: SwallowRegistry,
        actions: SwallowActions,
        config_getter: Callable[[], SwallowConfig],
    ) -> None:
        """Initialize monitor.

        Args:
            window_system: Window system for queries
            registry: Registry of active swallows
            actions: Swallow/restore actions
            config_getter: Callable returning the current config
        """
        self.window_system = window_system
        self.registry = registry
        self.actions = actions
        self.config_getter = config_getter
        self.queue: asyncio.Queue[WindowEvent] = asyncio.Queue()
        self._pending: Dict[int, asyncio.Task] = {}
        self._stopped = False
        self.events_processed = 0

    @property
    def pending_count(self) -> int:
        """Number of swallow attempts waiting for their delay to elapse."""
        return len(self._pending)

    def submit(self, event: WindowEvent) -> None:
        """Enqueue an event for processing."""
        if self._stopped:
            logger.debug(f"Monitor stopped; dropping {event.change} event for {event.window_id}")
            return
        self.queue.put_nowait(event)

    async def run(self) -> None:
        """Process events until cancelled. Errors never stop the loop."""
        logger.info("Event monitor started")
        while True:
            event = await self.queue.get()
            try:
                await self.handle_event(event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    f"Error handling {event.change} event for window {event.window_id}: {e}",
                    exc_info=True,
                )
            finally:
                self.queue.task_done()

    async def handle_event(self, event: WindowEvent) -> None:
        """Dispatch a single event."""
        self.events_processed += 1
        if event.change == "created":
            self._on_created(event)
        elif event.change == "closed":
            await self._on_closed(event)

    def _on_created(self, event: WindowEvent) -> None:
        if self._stopped:
            return

        config = self.config_getter()
        if not config.enabled:
            logger.debug(f"Swallowing disabled; ignoring new window {event.window_id}")
            return

        self._cancel_pending(event.window_id)
        task = asyncio.create_task(
            self._delayed_swallow(event.window_id, config.swallow_delay),
            name=f"swallow-{event.window_id}",
        )
        self._pending[event.window_id] = task
        logger.debug(
            f"Scheduled swallow check for window {event.window_id} "
            f"({event.window_class!r}) in {config.swallow_delay:.2f}s"
        )

    async def _delayed_swallow(self, window_id: int, delay: float) -> None:
        try:
            await asyncio.sleep(delay)
            if self._stopped:
                return
            await self.try_swallow(window_id)
        except asyncio.CancelledError:
            logger.debug(f"Swallow check for window {window_id} cancelled")
            raise
        except Exception as e:
            logger.error(f"Swallow check for window {window_id} failed: {e}", exc_info=True)
        finally:
            if self._pending.get(window_id) is asyncio.current_task():
                del self._pending[window_id]

    async def try_swallow(self, window_id: int) -> Optional[SwallowRecord]:
        """Classify a window and swallow its parent if it qualifies.

        Args:
            window_id: Container id of the new window

        Returns:
            The new record if the parent was swallowed, None otherwise
        """
        config = self.config_getter()

        try:
            child = await self.window_system.get_window(window_id)
        except MetadataUnavailable as e:
            logger.debug(f"Skipping window {window_id}: {e}")
            return None

        parent = await find_parent_window(
            self.window_system, child, max_depth=config.max_ancestry_depth
        )
        if parent is None:
            logger.debug(f"No parent window for {child}")
            return None

        if not should_swallow(parent, child, config):
            logger.debug(f"Not swallowing {parent} for {child}")
            return None

        record = SwallowRecord(
            child_id=child.id,
            parent_id=parent.id,
            child_xid=child.xid,
            parent_workspace=parent.workspace,
        )

        try:
            await self.registry.add(record)
        except (DuplicateChild, ParentAlreadySwallowed) as e:
            logger.warning(f"Not swallowing: {e}")
            return None

        if not await self.actions.swallow(record):
            await self.registry.remove(record.child_id)
            return None

        return record

    async def _on_closed(self, event: WindowEvent) -> None:
        window_id = event.window_id
        self._cancel_pending(window_id)

        if self.config_getter().restore_on_close:
            await self.restore_child(window_id)
        else:
            record = await self.registry.remove(window_id)
            if record is not None:
                logger.info(f"Child {window_id} closed; leaving parent {record.parent_id} hidden")

        # A swallowed terminal closed while hidden: nothing left to restore
        orphan = await self.registry.find_by_parent(window_id)
        if orphan is not None and await self.registry.remove(orphan.child_id) is not None:
            logger.info(f"Parent {window_id} closed while swallowed; dropped {orphan}")

    async def restore_child(self, child_id: int) -> Optional[SwallowRecord]:
        """Remove the record for `child_id` and restore its parent.

        Only the caller that removes the record restores it, so a record is
        restored at most once even if the sweeper races with this call.

        Returns:
            The restored record, or None if `child_id` was not swallowing anything
        """
        record = await self.registry.remove(child_id)
        if record is None:
            return None

        await self.actions.restore(record, focus=True)
        return record

    def _cancel_pending(self, window_id: int) -> None:
        task = self._pending.pop(window_id, None)
        if task is not None and not task.done():
            task.cancel()

    async def wait_pending(self) -> None:
        """Wait until all currently scheduled swallow attempts have finished."""
        tasks = list(self._pending.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def stop(self) -> None:
        """Cancel all pending swallow attempts. No action fires afterwards."""
        self._stopped = True
        tasks = list(self._pending.values())
        self._pending.clear()

        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        logger.info(f"Event monitor stopped ({len(tasks)} pending swallow(s) cancelled)")
