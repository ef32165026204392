"""JSON-RPC IPC server for CLI queries.

Exposes daemon state and maintenance operations over a UNIX socket.

Methods:
    status          Config, active swallows and counters
    cleanup         Run a GC sweep now
    restore         Restore the parent of a swallowed child ({"window_id": int})
    reload_config   Re-read the config file
"""

import asyncio
import json
import logging
import os
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from . import __version__
from .errors import ErrorCode

if TYPE_CHECKING:
    from .daemon import SwallowDaemon

logger = logging.getLogger(__name__)


class IPCServer:
    """JSON-RPC IPC server for CLI tool queries."""

    def __init__(self, daemon: "SwallowDaemon", socket_path: Path) -> None:
        """Initialize IPC server.

        Args:
            daemon: Running daemon whose registry/monitor/sweeper are exposed
            socket_path: UNIX socket path to listen on
        """
        self.daemon = daemon
        self.socket_path = socket_path
        self.server: Optional[asyncio.AbstractServer] = None
        self.clients: set[asyncio.StreamWriter] = set()
        self.started_at = time.time()
        self._methods: Dict[str, Callable[[Dict[str, Any]], Any]] = {
            "status": self._status,
            "cleanup": self._cleanup,
            "restore": self._restore,
            "reload_config": self._reload_config,
        }

    def _error_response(self, request_id: Any, code: ErrorCode, message: str) -> Dict[str, Any]:
        """Format JSON-RPC error response."""
        return {
            "jsonrpc": "2.0",
            "error": {"code": code.value, "message": message},
            "id": request_id,
        }

    async def start(self) -> None:
        """Start IPC server on the UNIX socket (user-only permissions)."""
        self.socket_path.parent.mkdir(parents=True, exist_ok=True)

        # Remove old socket if it exists
        if self.socket_path.exists():
            self.socket_path.unlink()

        self.server = await asyncio.start_unix_server(
            self._handle_client, path=str(self.socket_path)
        )
        os.chmod(self.socket_path, 0o600)

        logger.info(f"IPC server listening on {self.socket_path} (permissions: 0600)")

    async def stop(self) -> None:
        """Stop IPC server and close all connections."""
        if self.server:
            self.server.close()
            await self.server.wait_closed()

        for writer in list(self.clients):
            writer.close()

        if self.socket_path.exists():
            self.socket_path.unlink()

        logger.info("IPC server stopped")

    async def _handle_client(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        """Handle a client connection (one JSON request per line)."""
        self.clients.add(writer)

        try:
            while True:
                data = await reader.readline()
                if not data:
                    break

                try:
                    request = json.loads(data.decode())
                except json.JSONDecodeError as e:
                    logger.warning(f"Invalid JSON from IPC client: {e}")
                    response = self._error_response(None, ErrorCode.PARSE_ERROR, "Parse error")
                else:
                    response = await self.handle_request(request)

                writer.write(json.dumps(response).encode() + b"\n")
                await writer.drain()

        except (ConnectionResetError, BrokenPipeError) as e:
            logger.debug(f"IPC client disconnected: {e}")

        finally:
            self.clients.discard(writer)
            writer.close()

    async def handle_request(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """Handle a JSON-RPC request.

        Args:
            request: JSON-RPC request dictionary

        Returns:
            JSON-RPC response dictionary
        """
        request_id = request.get("id") if isinstance(request, dict) else None
        if not isinstance(request, dict) or not isinstance(request.get("method"), str):
            return self._error_response(request_id, ErrorCode.INVALID_REQUEST, "Invalid request")

        method = request["method"]
        params = request.get("params") or {}

        handler = self._methods.get(method)
        if handler is None:
            return self._error_response(
                request_id, ErrorCode.METHOD_NOT_FOUND, f"Method not found: {method}"
            )

        try:
            result = await handler(params)
        except LookupError as e:
            return self._error_response(request_id, ErrorCode.RECORD_NOT_FOUND, str(e))
        except (ValueError, TypeError) as e:
            return self._error_response(request_id, ErrorCode.INVALID_PARAMS, str(e))
        except Exception as e:
            logger.error(f"IPC method {method} failed: {e}", exc_info=True)
            return self._error_response(request_id, ErrorCode.INTERNAL_ERROR, str(e))

        return {"jsonrpc": "2.0", "result": result, "id": request_id}

    async def _status(self, params: Dict[str, Any]) -> Dict[str, Any]:
        daemon = self.daemon
        now = time.time()
        records = await daemon.registry.all()

        return {
            "version": __version__,
            "pid": os.getpid(),
            "uptime_seconds": now - self.started_at,
            "connected": bool(daemon.connection and daemon.connection.is_connected),
            "config": daemon.config.model_dump(mode="json"),
            "swallows": [
                {**r.to_dict(), "age_seconds": r.age(now)} for r in records
            ],
            "stats": {
                **daemon.registry.stats(),
                "events_processed": daemon.monitor.events_processed if daemon.monitor else 0,
                "pending_swallows": daemon.monitor.pending_count if daemon.monitor else 0,
                "sweeps": daemon.sweeper.sweep_count if daemon.sweeper else 0,
            },
        }

    async def _cleanup(self, params: Dict[str, Any]) -> Dict[str, Any]:
        if not self.daemon.sweeper:
            raise RuntimeError("GC sweeper not initialized")
        result = await self.daemon.sweeper.sweep()
        return result.to_dict()

    async def _restore(self, params: Dict[str, Any]) -> Dict[str, Any]:
        if "window_id" not in params:
            raise ValueError("window_id parameter is required")
        window_id = int(params["window_id"])

        record = await self.daemon.monitor.restore_child(window_id)
        if record is None:
            raise LookupError(f"No swallowed window for child {window_id}")
        return record.to_dict()

    async def _reload_config(self, params: Dict[str, Any]) -> Dict[str, Any]:
        config = self.daemon.reload_config()
        return config.model_dump(mode="json")
