"""i3 IPC connection manager with retry.

Handles the i3/Sway IPC connection, exponential-backoff connection retry and
conversion of raw window events into WindowEvents.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from i3ipc import Event, aio
from i3ipc.events import IpcBaseEvent

from .models import WindowEvent

logger = logging.getLogger(__name__)


class ResilientI3Connection:
    """Manages the i3 IPC connection and forwards window lifecycle events."""

    def __init__(
        self,
        on_window_event: Callable[[WindowEvent], None],
        on_restart: Optional[Callable[[], Awaitable[None]]] = None,
        on_exit: Optional[Callable[[], None]] = None,
    ) -> None:
        """Initialize connection manager.

        Args:
            on_window_event: Called with each created/closed WindowEvent, in delivery order
            on_restart: Async callback run after i3 restarts in place
            on_exit: Called when i3 exits
        """
        self.on_window_event = on_window_event
        self.on_restart = on_restart
        self.on_exit = on_exit
        self.conn: Optional[aio.Connection] = None
        self.is_shutting_down = False
        self.reconnect_delay = 0.1  # Initial delay: 100ms

    @property
    def is_connected(self) -> bool:
        """Check if i3 IPC connection is active."""
        return self.conn is not None and not self.is_shutting_down

    async def connect_with_retry(self, max_attempts: int = 10) -> aio.Connection:
        """Connect to i3 with exponential backoff retry.

        Args:
            max_attempts: Maximum connection attempts

        Returns:
            Connected i3ipc.aio.Connection

        Raises:
            ConnectionError: If connection fails after max attempts
        """
        attempt = 0
        delay = self.reconnect_delay

        while attempt < max_attempts:
            try:
                logger.info(f"Attempting to connect to i3 (attempt {attempt + 1}/{max_attempts})")

                self.conn = await aio.Connection(auto_reconnect=True).connect()

                version = await self.conn.get_version()
                logger.info(f"Connected to i3 version {version.human_readable}")

                self.reconnect_delay = 0.1
                return self.conn

            except Exception as e:
                logger.warning(f"Connection attempt {attempt + 1} failed: {e}")
                attempt += 1

                if attempt < max_attempts:
                    logger.debug(f"Waiting {delay:.1f}s before retry...")
                    await asyncio.sleep(delay)

                    # Exponential backoff: double delay up to 5s max
                    delay = min(delay * 2, 5.0)

        raise ConnectionError(f"Failed to connect to i3 after {max_attempts} attempts")

    def register_handlers(self) -> None:
        """Register window and shutdown handlers.

        i3ipc.aio subscribes to the base event type ("window", "shutdown")
        automatically when a handler is registered.
        """
        if not self.conn:
            logger.error("Cannot register handlers: not connected")
            return

        self.conn.on(Event.WINDOW_NEW, self._handle_window_event)
        self.conn.on(Event.WINDOW_CLOSE, self._handle_window_event)
        self.conn.on(Event.SHUTDOWN, self.handle_shutdown_event)
        logger.info("Subscribed to i3 IPC event stream (window::new, window::close, shutdown)")

    def _handle_window_event(self, conn: aio.Connection, event: IpcBaseEvent) -> None:
        window_event = WindowEvent.from_i3(event)
        if window_event is None:
            return

        logger.debug(
            f"window::{event.change} id={window_event.window_id} "
            f"class={window_event.window_class!r}"
        )
        self.on_window_event(window_event)

    async def handle_shutdown_event(self, conn: aio.Connection, event: IpcBaseEvent) -> None:
        """Handle i3 shutdown/restart events.

        Distinguishes between i3 restart (reconnect) vs exit (shutdown daemon).

        Args:
            conn: i3 async connection
            event: Shutdown event from i3
        """
        try:
            change = event.change

            if change == "restart":
                logger.info("i3 is restarting - will auto-reconnect")
                # i3ipc.aio auto_reconnect handles the socket; wait for it
                await asyncio.sleep(2)
                if self.on_restart:
                    await self.on_restart()

            elif change == "exit":
                logger.info("i3 is exiting - shutting down daemon")
                self.is_shutting_down = True
                if self.on_exit:
                    self.on_exit()

            else:
                logger.warning(f"Unknown shutdown change: {change}")

        except Exception as e:
            logger.error(f"Error handling shutdown event: {e}")

    async def main(self) -> None:
        """Run the i3 async event loop.

        This blocks until the i3 connection is closed or the daemon shuts down.
        """
        if not self.conn:
            logger.error("Cannot run main loop: not connected")
            return

        try:
            await self.conn.main()

        except Exception as e:
            if not self.is_shutting_down:
                logger.error(f"i3 event loop error: {e}")
                raise
            else:
                logger.info("i3 event loop stopped (shutdown)")

    def close(self) -> None:
        """Close the i3 connection."""
        if self.conn:
            self.is_shutting_down = True
            self.conn.main_quit()
            self.conn = None
            logger.info("Closed i3 connection")
