"""Configuration loader for the window swallower.

Handles loading, saving and toggling ~/.config/window-swallowing/config.json,
and watching it for changes while the daemon runs.
"""

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .models import SwallowConfig

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "window-swallowing"
CACHE_DIR = Path.home() / ".cache" / "window-swallowing"
MIRROR_FILE = CACHE_DIR / "swallow_map.json"
SOCKET_PATH = CACHE_DIR / "ipc.sock"


def default_config_path() -> Path:
    """Config file path, overridable with WINDOW_SWALLOWER_CONFIG."""
    override = os.environ.get("WINDOW_SWALLOWER_CONFIG")
    if override:
        return Path(override).expanduser()
    return CONFIG_DIR / "config.json"


def load_config(
    config_file: Path,
    previous: Optional[SwallowConfig] = None,
    create: bool = True,
) -> SwallowConfig:
    """Load configuration from JSON file.

    A missing file is created with defaults (when `create` is set). An
    unreadable or invalid file is logged and the previous configuration
    (or the defaults) is kept, so a bad edit never takes the daemon down.

    Args:
        config_file: Path to config.json
        previous: Configuration to keep if the file is invalid
        create: Write a default file when none exists

    Returns:
        SwallowConfig
    """
    fallback = previous or SwallowConfig()

    if not config_file.exists():
        logger.info(f"Config file does not exist: {config_file}, using defaults")
        if create:
            try:
                save_config(fallback, config_file)
            except OSError as e:
                logger.warning(f"Could not create default config {config_file}: {e}")
        return fallback

    try:
        with open(config_file) as f:
            data = json.load(f)
        config = SwallowConfig.model_validate(data)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Failed to read config from {config_file}: {e}")
        return fallback
    except ValidationError as e:
        logger.error(f"Invalid config in {config_file}: {e}")
        return fallback

    logger.info(
        f"Loaded config: enabled={config.enabled}, "
        f"{len(config.terminal_patterns)} terminal pattern(s), "
        f"{len(config.exception_patterns)} exception(s)"
    )
    return config


def atomic_write_json(config_file: Path, data: Dict[str, Any]) -> None:
    """Write JSON to a file atomically (temp file + fsync + rename).

    Args:
        config_file: Destination path
        data: JSON-serializable dictionary
    """
    config_file.parent.mkdir(parents=True, exist_ok=True)

    fd, temp_path = tempfile.mkstemp(
        dir=config_file.parent, prefix=".config-", suffix=".json"
    )
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(data, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.rename(temp_path, config_file)
    except Exception:
        if Path(temp_path).exists():
            os.unlink(temp_path)
        raise


def save_config(config: SwallowConfig, config_file: Path) -> None:
    """Save configuration to JSON file (atomic write).

    Args:
        config: Configuration to save
        config_file: Path to config.json
    """
    atomic_write_json(config_file, config.model_dump(mode="json"))
    logger.debug(f"Saved config to {config_file}")


def toggle_enabled(config_file: Path) -> bool:
    """Flip the `enabled` flag and persist it.

    Only the `enabled` key is rewritten; every other key in the file is
    preserved as-is, even if it does not validate.

    Args:
        config_file: Path to config.json

    Returns:
        The new value of `enabled`

    Raises:
        ValueError: If the file is not a JSON object
        OSError: If the file cannot be read or written
    """
    if not config_file.exists():
        save_config(SwallowConfig(), config_file)

    with open(config_file) as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Cannot toggle: {config_file} is not valid JSON ({e})") from e

    if not isinstance(data, dict):
        raise ValueError(f"Cannot toggle: {config_file} does not contain a JSON object")

    enabled = not bool(data.get("enabled", True))
    data["enabled"] = enabled
    atomic_write_json(config_file, data)

    logger.info(f"Window swallowing {'enabled' if enabled else 'disabled'}")
    return enabled


class DebouncedReloadHandler(FileSystemEventHandler):
    """File system event handler with debounced reload callback.

    Debounces rapid file modifications (e.g., editor save sequences)
    to prevent excessive reload operations. Watchdog delivers events on
    its own thread, so callbacks are handed to the asyncio loop.
    """

    def __init__(self, callback: Callable[[], None], debounce_ms: int = 100, target_filename: Optional[str] = None):
        """Initialize debounced reload handler.

        Args:
            callback: Function to call after debounce period (runs on the event loop)
            debounce_ms: Debounce timeout in milliseconds (default: 100ms)
            target_filename: If set, only trigger on events for this filename
        """
        super().__init__()
        self.callback = callback
        self.debounce_seconds = debounce_ms / 1000
        self.target_filename = target_filename
        self._timer: Optional[asyncio.TimerHandle] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def set_event_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Set the asyncio event loop for scheduling callbacks."""
        self._loop = loop

    def _schedule_callback(self) -> None:
        """Runs on the event loop: restart the debounce timer."""
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self._loop.call_later(self.debounce_seconds, self._fire)

    def _fire(self) -> None:
        self._timer = None
        try:
            self.callback()
        except Exception as e:
            logger.error(f"Config reload callback failed: {e}", exc_info=True)

    def _should_trigger(self, event) -> bool:
        """Check if event should trigger callback based on target filename filter."""
        if event.is_directory:
            return False
        if self.target_filename:
            event_path = getattr(event, "dest_path", None) or event.src_path
            return Path(event_path).name == self.target_filename
        return True

    def _dispatch(self, event) -> None:
        if not self._should_trigger(event):
            return
        if self._loop is None or self._loop.is_closed():
            logger.warning("No event loop set for debounced handler, ignoring change")
            return
        self._loop.call_soon_threadsafe(self._schedule_callback)

    def on_modified(self, event) -> None:
        self._dispatch(event)

    def on_created(self, event) -> None:
        self._dispatch(event)

    def on_moved(self, event) -> None:
        """Atomic saves use temp file + rename."""
        self._dispatch(event)

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


class ConfigWatcher:
    """File system watcher for config.json with auto-reload."""

    def __init__(self,
                 config_file: Path,
                 reload_callback: Callable[[], None],
                 debounce_ms: int = 100):
        """Initialize config file watcher.

        Args:
            config_file: Path to config.json
            reload_callback: Function to call on file modification
            debounce_ms: Debounce timeout in milliseconds (default: 100ms)
        """
        self.config_file = config_file
        self.observer = Observer()
        self.handler = DebouncedReloadHandler(
            reload_callback, debounce_ms, target_filename=config_file.name
        )
        self._started = False

    def set_event_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self.handler.set_event_loop(loop)

    def start(self) -> None:
        """Start watching config.json for modifications.

        Watches the parent directory since some editors use atomic save
        (create temp file + rename) which doesn't trigger inotify on the file itself.
        """
        if self._started:
            logger.warning("Config watcher already started")
            return

        watch_dir = self.config_file.parent
        watch_dir.mkdir(parents=True, exist_ok=True)

        self.observer.schedule(self.handler, str(watch_dir), recursive=False)
        self.observer.start()
        self._started = True

        logger.info(f"Started watching {self.config_file} for modifications")

    def stop(self) -> None:
        """Stop watching for file modifications."""
        if not self._started:
            return

        self.handler.cancel()
        self.observer.stop()
        self.observer.join(timeout=5.0)
        self._started = False

        logger.info(f"Stopped watching {self.config_file}")
