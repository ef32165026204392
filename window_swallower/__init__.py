"""i3 Window Swallower

Event-driven terminal swallowing for i3 and Sway.

This package provides a long-running daemon that:
- Maintains a persistent IPC connection to the window manager
- Hides a terminal when it spawns a graphical child window
- Restores the terminal when the child closes
- Garbage-collects stale swallows on a timer
- Exposes an IPC socket for CLI tool queries

License: MIT
Version: 1.0.0
"""

__version__ = "1.0.0"
