"""
Window Swallower CLI

Usage:
    window-swallower monitor          Start the daemon (default)
    window-swallower toggle           Toggle swallowing on/off
    window-swallower status [--json]  Show current status
    window-swallower cleanup          Run a GC sweep now
    window-swallower restore ID       Restore the terminal swallowed by window ID
"""

import asyncio
import json
import socket
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import click
from rich.console import Console
from rich.table import Table

from .actions import send_notification
from .config import MIRROR_FILE, SOCKET_PATH, default_config_path, load_config, toggle_enabled
from .registry import read_mirror


class DaemonNotRunning(RuntimeError):
    """The daemon socket is missing or refused the connection."""


class DaemonClient:
    """JSON-RPC client for daemon communication."""

    def __init__(self, socket_path: Optional[Path] = None, timeout: float = 5.0):
        """
        Initialize daemon client.

        Args:
            socket_path: Path to daemon socket (default: ~/.cache/window-swallowing/ipc.sock)
            timeout: Socket timeout in seconds
        """
        self.socket_path = socket_path or SOCKET_PATH
        self.timeout = timeout
        self.request_id = 0

    def call(self, method: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Call JSON-RPC method on daemon.

        Args:
            method: Method name
            params: Method parameters (optional)

        Returns:
            Method result

        Raises:
            DaemonNotRunning: If the daemon socket is missing or refuses connections
            RuntimeError: If the daemon times out or returns an error
        """
        self.request_id += 1
        request = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params or {},
            "id": self.request_id,
        }

        try:
            with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
                sock.settimeout(self.timeout)
                sock.connect(str(self.socket_path))
                sock.sendall(json.dumps(request).encode() + b"\n")

                response_data = b""
                while b"\n" not in response_data:
                    chunk = sock.recv(4096)
                    if not chunk:
                        break
                    response_data += chunk

        except socket.timeout:
            raise RuntimeError(f"Timeout talking to daemon ({self.timeout:.0f}s)")
        except (FileNotFoundError, ConnectionRefusedError):
            raise DaemonNotRunning(
                f"Daemon not running (no socket at {self.socket_path}). "
                "Start it with: window-swallower monitor"
            )

        try:
            response = json.loads(response_data.decode())
        except json.JSONDecodeError:
            raise RuntimeError("Malformed response from daemon")

        if "error" in response:
            error = response["error"]
            raise RuntimeError(error.get("message", "Unknown error"))

        return response.get("result")


def _format_time(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M:%S")


def _swallow_table(swallows: list, now: float) -> Table:
    table = Table(title="Swallowed windows")
    table.add_column("Child", justify="right")
    table.add_column("Parent", justify="right")
    table.add_column("Workspace")
    table.add_column("Since")
    table.add_column("Age", justify="right")
    for entry in swallows:
        table.add_row(
            str(entry["child_id"]),
            str(entry["parent_id"]),
            entry.get("parent_workspace") or "-",
            _format_time(entry["created_at"]),
            f"{max(0.0, now - entry['created_at']):.0f}s",
        )
    return table


@click.group(invoke_without_command=True)
@click.option(
    "--config", "config_file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: ~/.config/window-swallowing/config.json)",
)
@click.pass_context
def cli(ctx: click.Context, config_file: Optional[Path]):
    """Smart window swallowing for i3: hide terminals while their GUI children are open."""
    ctx.ensure_object(dict)
    ctx.obj["config_file"] = config_file or default_config_path()
    if ctx.invoked_subcommand is None:
        ctx.invoke(monitor)


@cli.command()
@click.pass_context
def monitor(ctx: click.Context):
    """Start monitoring window events (runs the daemon)."""
    from .daemon import main

    main(ctx.obj["config_file"])


@cli.command()
@click.pass_context
def toggle(ctx: click.Context):
    """Toggle swallowing on/off."""
    console = Console()
    try:
        enabled = toggle_enabled(ctx.obj["config_file"])
    except (OSError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)
    state = "Enabled" if enabled else "Disabled"

    try:
        DaemonClient().call("reload_config")
    except DaemonNotRunning:
        pass
    except RuntimeError as e:
        console.print(f"[yellow]Warning: daemon did not reload config: {e}[/yellow]")

    asyncio.run(send_notification("Window Swallowing", state, timeout_ms=3000))
    console.print(f"Window swallowing [bold]{state.lower()}[/bold]")


@cli.command()
@click.option("--json", "output_json", is_flag=True, help="Output JSON instead of formatted tables")
@click.pass_context
def status(ctx: click.Context, output_json: bool):
    """Show current status."""
    console = Console()
    now = time.time()

    try:
        data = DaemonClient().call("status")
        stale = False
    except DaemonNotRunning:
        config = load_config(ctx.obj["config_file"], create=False)
        mirror = read_mirror(MIRROR_FILE)
        data = {
            "config": config.model_dump(mode="json"),
            "swallows": [r.to_dict() for r in mirror["records"]] if mirror else [],
        }
        stale = True
    except RuntimeError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    if output_json:
        click.echo(json.dumps({**data, "daemon_running": not stale}, indent=2))
        return

    config = data["config"]
    console.print("[bold]Window Swallowing Status[/bold]")
    console.print(f"Enabled: {config['enabled']}")
    console.print(f"Terminals: {' '.join(config['terminal_patterns'])}")
    console.print(f"Exceptions: {' '.join(config['exception_patterns'])}")
    if stale:
        console.print("[yellow]Daemon not running; showing last known state[/yellow]")
    else:
        stats = data["stats"]
        console.print(
            f"Daemon: pid {data['pid']}, up {data['uptime_seconds']:.0f}s, "
            f"{stats['events_processed']} events, {stats['sweeps']} sweeps"
        )

    swallows = data["swallows"]
    console.print(f"Active swallows: {len(swallows)}")
    if swallows:
        console.print(_swallow_table(swallows, now))


@cli.command()
def cleanup():
    """Clean up expired and stale swallows now."""
    console = Console()
    try:
        result = DaemonClient().call("cleanup")
    except RuntimeError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    console.print(
        f"Expired: {len(result['expired'])}, stale: {len(result['vanished'])}, "
        f"restored: {result['restored']}, kept: {result['kept']}"
    )


@cli.command()
@click.argument("window_id", type=int)
def restore(window_id: int):
    """Restore the terminal swallowed by child WINDOW_ID."""
    console = Console()
    try:
        record = DaemonClient().call("restore", {"window_id": window_id})
    except RuntimeError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    console.print(f"Restored parent {record['parent_id']} (child {record['child_id']})")


if __name__ == "__main__":
    cli()
