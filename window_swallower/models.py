"""Data models for the window swallower.

Pydantic models for window snapshots, swallow records, window events and
daemon configuration.
"""

import time
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .pattern import compile_patterns


DEFAULT_TERMINAL_PATTERNS = ["Alacritty", "kitty", "Gnome-terminal", "XTerm", "URxvt"]
DEFAULT_EXCEPTION_PATTERNS = ["vim", "nvim", "emacs", "nano", "htop", "btop", "ranger", "mc"]

SWALLOW_MARK_PREFIX = "swallowed:"
SWALLOW_MARK_XID = "xid:"


def parse_swallow_mark(mark: str) -> Optional[Tuple[str, int]]:
    """Parse a swallow mark into ("xid", <X11 id>) or ("con", <con_id>).

    X11 window ids survive an i3 restart, container ids do not, so children
    with an X11 window are marked by xid.

    Returns:
        (kind, value) or None if `mark` is not a valid swallow mark
    """
    if not mark.startswith(SWALLOW_MARK_PREFIX):
        return None

    body = mark[len(SWALLOW_MARK_PREFIX):]
    kind = "con"
    if body.startswith(SWALLOW_MARK_XID):
        kind, body = "xid", body[len(SWALLOW_MARK_XID):]

    try:
        return kind, int(body)
    except ValueError:
        return None


class WindowHandle(BaseModel):
    """Point-in-time snapshot of a window's identity.

    Queried once from the window manager and never updated afterwards; a
    fresh query produces a fresh handle.
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., description="i3/Sway container ID (con_id)")
    window_class: str = Field(default="", description="WM_CLASS class or Wayland app_id")
    instance: str = Field(default="", description="WM_CLASS instance")
    title: str = Field(default="", description="Window title")
    pid: Optional[int] = Field(default=None, description="Owning process ID")
    xid: Optional[int] = Field(default=None, description="X11 window ID, if any")
    workspace: Optional[str] = Field(default=None, description="Workspace name")
    marks: Tuple[str, ...] = Field(default=(), description="i3 marks on the container")

    def swallow_mark(self) -> Optional[str]:
        """Return the swallow mark on this window, if any."""
        for mark in self.marks:
            if parse_swallow_mark(mark) is not None:
                return mark
        return None

    def __str__(self) -> str:
        return f"Window({self.id}, class={self.window_class!r}, pid={self.pid})"


class SwallowRecord(BaseModel):
    """An active swallow: child window `child_id` is hiding parent `parent_id`."""

    model_config = ConfigDict(frozen=True)

    child_id: int = Field(..., description="Container ID of the GUI child window")
    parent_id: int = Field(..., description="Container ID of the hidden terminal")
    child_xid: Optional[int] = Field(
        default=None,
        description="X11 window ID of the child, if any (stable across i3 restarts)",
    )
    created_at: float = Field(
        default_factory=time.time,
        description="Unix timestamp when the swallow happened",
    )
    parent_workspace: Optional[str] = Field(
        default=None,
        description="Workspace the parent was on before it was hidden",
    )

    @model_validator(mode="after")
    def validate_distinct(self) -> "SwallowRecord":
        """A window cannot swallow itself."""
        if self.child_id == self.parent_id:
            raise ValueError(f"Child and parent must differ (both {self.child_id})")
        return self

    @property
    def mark(self) -> str:
        """i3 mark placed on the parent while it is swallowed."""
        if self.child_xid:
            return f"{SWALLOW_MARK_PREFIX}{SWALLOW_MARK_XID}{self.child_xid}"
        return f"{SWALLOW_MARK_PREFIX}{self.child_id}"

    def age(self, current_time: float) -> float:
        """Calculate age of this record in seconds (never negative)."""
        return max(0.0, current_time - self.created_at)

    def is_expired(self, current_time: float, timeout: float) -> bool:
        """Check if this record has exceeded the GC timeout."""
        return self.age(current_time) > timeout

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "child_id": self.child_id,
            "parent_id": self.parent_id,
            "child_xid": self.child_xid,
            "created_at": self.created_at,
            "parent_workspace": self.parent_workspace,
        }

    def __str__(self) -> str:
        return (
            f"SwallowRecord(child={self.child_id}, parent={self.parent_id}, "
            f"age={self.age(time.time()):.1f}s)"
        )


class WindowEvent(BaseModel):
    """A window lifecycle event from the window manager event stream."""

    change: Literal["created", "closed"]
    window_id: int
    window_class: str = ""
    instance: str = ""
    title: str = ""

    @classmethod
    def from_i3(cls, event: Any) -> Optional["WindowEvent"]:
        """Build from an i3ipc WindowEvent.

        Returns None for changes other than new/close, or events without a
        container.
        """
        change = {"new": "created", "close": "closed"}.get(getattr(event, "change", None))
        container = getattr(event, "container", None)
        if change is None or container is None or container.id is None:
            return None

        return cls(
            change=change,
            window_id=container.id,
            window_class=getattr(container, "app_id", None) or container.window_class or "",
            instance=container.window_instance or "",
            title=container.name or "",
        )


class SwallowConfig(BaseModel):
    """Window swallowing configuration (~/.config/window-swallowing/config.json)."""

    enabled: bool = Field(default=True, description="Master switch for swallowing")
    terminal_patterns: List[str] = Field(
        default_factory=lambda: list(DEFAULT_TERMINAL_PATTERNS),
        description="Parent window classes treated as terminals",
    )
    exception_patterns: List[str] = Field(
        default_factory=lambda: list(DEFAULT_EXCEPTION_PATTERNS),
        description="Child classes/titles that never swallow their terminal",
    )
    swallow_delay_ms: int = Field(
        default=500,
        ge=0,
        description="Delay before classifying a new window, so its metadata can settle",
    )
    restore_on_close: bool = Field(default=True, description="Restore the terminal when the child closes")
    gc_timeout: float = Field(default=30.0, gt=0, description="Seconds before a swallow is force-restored")
    gc_interval: float = Field(default=10.0, gt=0, description="Seconds between GC sweeps")
    max_ancestry_depth: int = Field(
        default=8,
        ge=1,
        le=64,
        description="How many ancestor processes to search for a terminal window",
    )
    restore_to: Literal["original", "current"] = Field(
        default="original",
        description="Workspace to restore the terminal to",
    )
    notifications_enabled: bool = Field(default=False, description="Send notify-send messages")
    query_timeout: float = Field(default=1.0, gt=0, description="Timeout for window/process queries (s)")

    @field_validator("terminal_patterns", "exception_patterns")
    @classmethod
    def validate_patterns(cls, v: List[str]) -> List[str]:
        """Reject patterns that do not compile."""
        compile_patterns(v)
        return v

    @property
    def swallow_delay(self) -> float:
        """Swallow delay in seconds."""
        return self.swallow_delay_ms / 1000
