"""Main daemon entry point with systemd integration.

This module provides the main event loop and systemd integration
(sd_notify, watchdog, journald logging).
"""

import asyncio
import contextlib
import logging
import os
import signal
import sys
from pathlib import Path
from typing import List, Optional

try:
    from systemd import journal, daemon as sd_daemon
    SYSTEMD_AVAILABLE = True
except ImportError:
    SYSTEMD_AVAILABLE = False

from .actions import SwallowActions
from .config import (
    MIRROR_FILE,
    SOCKET_PATH,
    ConfigWatcher,
    default_config_path,
    load_config,
)
from .connection import ResilientI3Connection
from .ipc_server import IPCServer
from .models import SwallowConfig
from .monitor import EventMonitor
from .recovery import rebuild_from_marks
from .registry import SwallowRegistry
from .sweeper import GCSweeper
from .window_system import I3WindowSystem

logger = logging.getLogger(__name__)


@contextlib.contextmanager
def _suppress_stderr_fd():
    """Suppress stderr at the file descriptor level.

    systemd-python writes directly to file descriptor 2, bypassing sys.stderr.
    """
    stderr_fd = sys.stderr.fileno()
    saved_stderr_fd = os.dup(stderr_fd)

    devnull_fd = os.open(os.devnull, os.O_WRONLY)
    os.dup2(devnull_fd, stderr_fd)
    os.close(devnull_fd)

    try:
        yield
    finally:
        os.dup2(saved_stderr_fd, stderr_fd)
        os.close(saved_stderr_fd)


class DaemonHealthMonitor:
    """Manages systemd health notifications and watchdog pings."""

    def __init__(self) -> None:
        self.watchdog_interval: Optional[float] = None
        self._setup_watchdog()

    def _setup_watchdog(self) -> None:
        """Detect watchdog interval from systemd environment."""
        if not SYSTEMD_AVAILABLE:
            return

        watchdog_usec = os.environ.get("WATCHDOG_USEC")
        if watchdog_usec:
            # Ping at 1/3 of the systemd timeout
            self.watchdog_interval = int(watchdog_usec) / 3_000_000
            logger.info(f"Systemd watchdog enabled: {self.watchdog_interval:.1f}s interval")
        else:
            logger.debug("Systemd watchdog not configured")

    def _notify(self, state: str) -> None:
        if SYSTEMD_AVAILABLE:
            with _suppress_stderr_fd():
                sd_daemon.notify(state)
            logger.debug(f"Sent {state} to systemd")

    def notify_ready(self) -> None:
        self._notify("READY=1")

    def notify_watchdog(self) -> None:
        self._notify("WATCHDOG=1")

    def notify_stopping(self) -> None:
        self._notify("STOPPING=1")

    async def watchdog_loop(self) -> None:
        """Background task that sends watchdog pings."""
        if not self.watchdog_interval:
            return

        logger.info(f"Starting watchdog loop (interval: {self.watchdog_interval:.1f}s)")
        while True:
            await asyncio.sleep(self.watchdog_interval)
            self.notify_watchdog()


class SwallowDaemon:
    """Main daemon class."""

    def __init__(
        self,
        config_file: Optional[Path] = None,
        mirror_file: Optional[Path] = MIRROR_FILE,
        socket_path: Path = SOCKET_PATH,
    ) -> None:
        """Initialize daemon.

        Args:
            config_file: Path to config.json (default: ~/.config/window-swallowing/config.json)
            mirror_file: Diagnostics mirror for the registry, or None to disable
            socket_path: IPC socket path
        """
        self.config_file = config_file or default_config_path()
        self.socket_path = socket_path
        self.config: SwallowConfig = SwallowConfig()
        self.registry = SwallowRegistry(mirror_path=mirror_file)
        self.connection: Optional[ResilientI3Connection] = None
        self.window_system: Optional[I3WindowSystem] = None
        self.actions: Optional[SwallowActions] = None
        self.monitor: Optional[EventMonitor] = None
        self.sweeper: Optional[GCSweeper] = None
        self.ipc_server: Optional[IPCServer] = None
        self.config_watcher: Optional[ConfigWatcher] = None
        self.health_monitor: Optional[DaemonHealthMonitor] = None
        self.shutdown_event = asyncio.Event()
        self._tasks: List[asyncio.Task] = []

    def get_config(self) -> SwallowConfig:
        return self.config

    def reload_config(self) -> SwallowConfig:
        """Re-read the config file, keeping the current config if it is invalid."""
        self.config = load_config(self.config_file, previous=self.config)
        return self.config

    def _submit_event(self, event) -> None:
        if self.monitor:
            self.monitor.submit(event)

    async def _resync_after_restart(self) -> None:
        """Container ids change across an i3 restart; rebuild from marks."""
        for record in await self.registry.all():
            await self.registry.remove(record.child_id)
        await rebuild_from_marks(self.window_system, self.registry, self.actions)

    async def initialize(self) -> None:
        """Initialize daemon components."""
        logger.info("Initializing window swallower daemon...")

        self.config = load_config(self.config_file)

        self.connection = ResilientI3Connection(
            on_window_event=self._submit_event,
            on_restart=self._resync_after_restart,
            on_exit=self.shutdown_event.set,
        )
        try:
            await self.connection.connect_with_retry(max_attempts=10)
        except ConnectionError as e:
            logger.error(f"Failed to connect to i3: {e}")
            raise

        self.window_system = I3WindowSystem(self.connection.conn, self.get_config)
        self.actions = SwallowActions(self.window_system, self.get_config)
        self.monitor = EventMonitor(self.window_system, self.registry, self.actions, self.get_config)
        self.sweeper = GCSweeper(self.window_system, self.registry, self.actions, self.get_config)

        await rebuild_from_marks(self.window_system, self.registry, self.actions)

        self.ipc_server = IPCServer(self, self.socket_path)
        await self.ipc_server.start()

        self.config_watcher = ConfigWatcher(
            config_file=self.config_file,
            reload_callback=self.reload_config,
            debounce_ms=100,
        )
        self.config_watcher.set_event_loop(asyncio.get_running_loop())
        self.config_watcher.start()

        self.health_monitor = DaemonHealthMonitor()

        self.connection.register_handlers()
        logger.info("Daemon initialized")

    async def run(self) -> None:
        """Main event loop."""
        logger.info("Starting daemon event loop...")

        self._tasks = [
            asyncio.create_task(self.monitor.run(), name="event-monitor"),
            asyncio.create_task(self.sweeper.run_forever(), name="gc-sweeper"),
            asyncio.create_task(self.health_monitor.watchdog_loop(), name="watchdog"),
        ]

        self.health_monitor.notify_ready()

        try:
            await self.connection.main()
        finally:
            for task in self._tasks:
                task.cancel()
            await asyncio.gather(*self._tasks, return_exceptions=True)
            self._tasks = []

    async def shutdown(self) -> None:
        """Graceful shutdown with timeouts to prevent hanging."""
        logger.info("Shutting down daemon...")

        if self.health_monitor:
            self.health_monitor.notify_stopping()

        # Pending swallows must not fire after this point
        if self.monitor:
            await self.monitor.stop()

        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        if self.config_watcher:
            try:
                self.config_watcher.stop()
            except Exception as e:
                logger.error(f"Error stopping config watcher: {e}")

        if self.ipc_server:
            try:
                await asyncio.wait_for(self.ipc_server.stop(), timeout=5.0)
            except asyncio.TimeoutError:
                logger.warning("IPC server shutdown timed out after 5s (continuing)")
            except Exception as e:
                logger.error(f"Error stopping IPC server: {e}")

        if self.connection:
            self.connection.close()

        logger.info("Daemon shutdown complete")

    def setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""

        def shutdown_handler(signum, frame):
            """Handle SIGTERM/SIGINT for graceful shutdown."""
            logger.info(f"Received signal {signum}, initiating shutdown...")
            loop = asyncio.get_event_loop()
            loop.call_soon_threadsafe(self.shutdown_event.set)

        def debug_handler(signum, frame):
            """Handle USR1 for debugging (log diagnostics without shutdown)."""
            logger.info("=== DEBUG INFO (USR1) ===")
            logger.info(f"PID: {os.getpid()}")
            logger.info(f"Registry: {self.registry.stats()}")
            for task in asyncio.all_tasks(asyncio.get_event_loop()):
                logger.info(f"  Task: {task.get_name()}")
            logger.info("======================")

        signal.signal(signal.SIGTERM, shutdown_handler)
        signal.signal(signal.SIGINT, shutdown_handler)
        signal.signal(signal.SIGUSR1, debug_handler)


def setup_logging() -> None:
    """Setup logging to systemd journal or stderr."""
    log_level = os.environ.get("LOG_LEVEL", "INFO").upper()

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    if SYSTEMD_AVAILABLE and os.environ.get("JOURNAL_STREAM"):
        with _suppress_stderr_fd():
            handler = journal.JournalHandler(SYSLOG_IDENTIFIER="window-swallower")
    else:
        handler = logging.StreamHandler(sys.stderr)

    formatter = logging.Formatter("%(levelname)s [%(name)s] %(message)s")
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    logger.info(f"Logging configured: level={log_level}")


async def main_async(config_file: Optional[Path] = None) -> int:
    """Async main function.

    Returns:
        Exit code (0 = success, non-zero = error)
    """
    daemon = SwallowDaemon(config_file=config_file)

    try:
        daemon.setup_signal_handlers()
        await daemon.initialize()

        run_task = asyncio.create_task(daemon.run())
        shutdown_task = asyncio.create_task(daemon.shutdown_event.wait())

        done, pending = await asyncio.wait(
            [run_task, shutdown_task], return_when=asyncio.FIRST_COMPLETED
        )
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        await daemon.shutdown()
        return 0

    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        await daemon.shutdown()
        return 1


def main(config_file: Optional[Path] = None) -> None:
    """Main entry point."""
    setup_logging()

    logger.info("Window swallower daemon starting...")
    logger.info(f"PID: {os.getpid()}")

    try:
        exit_code = asyncio.run(main_async(config_file))
        sys.exit(exit_code)

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(0)


if __name__ == "__main__":
    main()
