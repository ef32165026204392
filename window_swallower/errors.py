"""
Error types for the window swallower.

Domain exceptions raised by the window system, registry and actions, plus
the structured JSON-RPC error codes returned by the IPC server.
"""

from enum import Enum
from typing import Optional


class SwallowError(Exception):
    """Base class for all window swallower errors."""


class MetadataUnavailable(SwallowError):
    """A window or process query failed or timed out.

    Non-fatal: resolution aborts for the current event and no state changes.
    """

    def __init__(self, message: str, window_id: Optional[int] = None, pid: Optional[int] = None):
        super().__init__(message)
        self.window_id = window_id
        self.pid = pid


class DuplicateChild(SwallowError):
    """A record for this child window already exists in the registry."""

    def __init__(self, child_id: int, existing_parent_id: int):
        super().__init__(
            f"Child window {child_id} is already swallowing parent {existing_parent_id}"
        )
        self.child_id = child_id
        self.existing_parent_id = existing_parent_id


class ParentAlreadySwallowed(SwallowError):
    """The parent window is already hidden on behalf of another child."""

    def __init__(self, parent_id: int, existing_child_id: int):
        super().__init__(
            f"Parent window {parent_id} is already swallowed by child {existing_child_id}"
        )
        self.parent_id = parent_id
        self.existing_child_id = existing_child_id


class ActionFailed(SwallowError):
    """A window manager command was rejected or could not be sent."""

    def __init__(self, command: str, reason: str):
        super().__init__(f"Command failed: {command!r}: {reason}")
        self.command = command
        self.reason = reason


class ErrorCode(Enum):
    """
    Error codes for the IPC server.

    JSON-RPC standard codes:
    - -32700: Parse error
    - -32600: Invalid request
    - -32601: Method not found
    - -32602: Invalid params
    - -32603: Internal error

    Custom codes (1000-1999):
    - 1000-1099: Registry errors
    """

    # JSON-RPC standard errors
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    # Registry errors (1000-1099)
    RECORD_NOT_FOUND = 1000
