"""Pattern data model for window class and title matching."""

from dataclasses import dataclass
from typing import Iterable
import re
import fnmatch


@dataclass(frozen=True)
class SwallowPattern:
    """Pattern used to match a window class or title.

    Attributes:
        pattern: Pattern string with optional prefix (regex:, glob:, literal:)

    Pattern Types:
        - regex: Regular expression searched anywhere in the text (default)
        - glob: Glob pattern matched against the whole text (e.g., "glob:FFPWA-*")
        - literal: Exact match (e.g., "literal:Alacritty")

    Bare patterns are regexes, matched case-sensitively, the same way the
    shell ``[[ $class =~ $pattern ]]`` test matches.

    Examples:
        >>> SwallowPattern("Alacritty").matches("Alacritty")
        True
        >>> SwallowPattern("vim").matches("nvim")
        True
        >>> SwallowPattern("literal:vim").matches("nvim")
        False
        >>> SwallowPattern("glob:st-*").matches("st-256color")
        True
    """

    pattern: str

    def __post_init__(self):
        """Validate pattern syntax."""
        if not self.pattern:
            raise ValueError("Pattern cannot be empty")

        pattern_type, raw_pattern = self._parse_pattern()
        if not raw_pattern:
            raise ValueError(f"Pattern body cannot be empty: '{self.pattern}'")

        if pattern_type == "regex":
            try:
                re.compile(raw_pattern)
            except re.error as e:
                raise ValueError(f"Invalid regex pattern '{raw_pattern}': {e}")

    def _parse_pattern(self) -> tuple[str, str]:
        """Parse pattern into (type, raw_pattern) tuple.

        Returns:
            ("glob", "st-*") for "glob:st-*"
            ("regex", "^vim$") for "regex:^vim$"
            ("literal", "kitty") for "literal:kitty"
            ("regex", "kitty") for "kitty"
        """
        if self.pattern.startswith("glob:"):
            return ("glob", self.pattern[5:])
        elif self.pattern.startswith("literal:"):
            return ("literal", self.pattern[8:])
        elif self.pattern.startswith("regex:"):
            return ("regex", self.pattern[6:])
        else:
            return ("regex", self.pattern)

    def matches(self, text: str) -> bool:
        """Test if text matches this pattern.

        Args:
            text: Window class or title to test

        Returns:
            True if text matches pattern, False otherwise (always False for empty text)
        """
        if not text:
            return False

        pattern_type, raw_pattern = self._parse_pattern()

        if pattern_type == "literal":
            return text == raw_pattern
        elif pattern_type == "glob":
            return fnmatch.fnmatchcase(text, raw_pattern)
        else:  # regex
            return bool(re.search(raw_pattern, text))


def compile_patterns(patterns: Iterable[str]) -> tuple[SwallowPattern, ...]:
    """Build SwallowPattern objects, raising ValueError on the first invalid one."""
    return tuple(SwallowPattern(p) for p in patterns)


def any_match(patterns: Iterable[SwallowPattern], *texts: str) -> bool:
    """Return True if any pattern matches any of the given texts."""
    return any(p.matches(text) for p in patterns for text in texts)
