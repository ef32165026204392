"""Window classifier: decides whether a parent/child pair qualifies for swallowing."""

from functools import lru_cache
from typing import Tuple

from .models import SwallowConfig, WindowHandle
from .pattern import SwallowPattern, any_match, compile_patterns


@lru_cache(maxsize=32)
def _compiled(patterns: Tuple[str, ...]) -> Tuple[SwallowPattern, ...]:
    return compile_patterns(patterns)


def is_terminal(window: WindowHandle, config: SwallowConfig) -> bool:
    """Return True if the window's class matches a configured terminal pattern."""
    return any_match(_compiled(tuple(config.terminal_patterns)), window.window_class)


def is_exception(window: WindowHandle, config: SwallowConfig) -> bool:
    """Return True if the window's class or title matches an exception pattern."""
    return any_match(
        _compiled(tuple(config.exception_patterns)),
        window.window_class,
        window.title,
    )


def should_swallow(parent: WindowHandle, child: WindowHandle, config: SwallowConfig) -> bool:
    """Decide whether `parent` should be hidden while `child` is open.

    Pure function: no I/O, no side effects.

    Args:
        parent: Candidate terminal window
        child: Newly created window
        config: Current swallowing configuration

    Returns:
        True only when swallowing is enabled, the parent is a terminal and
        the child is not an exception (e.g. an editor meant to stay in the
        terminal).

    Examples:
        >>> cfg = SwallowConfig(terminal_patterns=["Alacritty"], exception_patterns=["nvim"])
        >>> should_swallow(WindowHandle(id=1, window_class="Alacritty"),
        ...                WindowHandle(id=2, window_class="firefox"), cfg)
        True
    """
    if not config.enabled:
        return False

    if not is_terminal(parent, config):
        return False

    if is_exception(child, config):
        return False

    return True
