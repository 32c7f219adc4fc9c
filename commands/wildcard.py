"""
Wildcard Patterns
-----------------
Glob-style matching for command, module, verb, noun and parameter names.

Supported syntax:
- *      any run of characters
- ?      exactly one character
- [a-z]  one character from a set or range
- `x     the character x taken literally

Matching is case-insensitive and independent of the current locale.
"""

from functools import lru_cache
from typing import Iterable, List, Optional, Sequence
import re

from core.errors import PatternSyntaxError


WILDCARD_CHARACTERS = "*?["
ESCAPE_CHARACTER = "`"


def contains_wildcard_characters(text: Optional[str]) -> bool:
    """Check for unescaped wildcard characters."""
    if not text:
        return False

    escaped = False
    for char in text:
        if escaped:
            escaped = False
        elif char == ESCAPE_CHARACTER:
            escaped = True
        elif char in WILDCARD_CHARACTERS:
            return True
    return False


def _translate(pattern: str) -> str:
    """Convert a wildcard pattern to a regular expression."""
    out = []
    i = 0
    n = len(pattern)

    while i < n:
        char = pattern[i]
        if char == ESCAPE_CHARACTER:
            if i + 1 < n:
                out.append(re.escape(pattern[i + 1]))
                i += 2
                continue
            out.append(re.escape(char))
        elif char == "*":
            out.append(".*")
        elif char == "?":
            out.append(".")
        elif char == "[":
            end = i + 1
            members = []
            while end < n and pattern[end] != "]":
                if pattern[end] == ESCAPE_CHARACTER and end + 1 < n:
                    end += 1
                members.append(pattern[end])
                end += 1
            if end >= n:
                raise PatternSyntaxError(
                    f"The specified wildcard character pattern is not valid: {pattern}"
                )
            if not members:
                raise PatternSyntaxError(
                    f"The specified wildcard character pattern is not valid: {pattern}"
                )
            body = "".join(
                m if m == "-" else re.escape(m) for m in members
            )
            out.append(f"[{body}]")
            i = end
        else:
            out.append(re.escape(char))
        i += 1

    return "".join(out)


class WildcardPattern:
    """
    A compiled wildcard pattern.

    Use WildcardPattern.get() to share compiled instances.
    """

    def __init__(self, pattern: str):
        self.pattern = pattern
        self._regex = re.compile(_translate(pattern), re.IGNORECASE | re.DOTALL)

    @staticmethod
    @lru_cache(maxsize=512)
    def get(pattern: str) -> "WildcardPattern":
        return WildcardPattern(pattern)

    def is_match(self, text: Optional[str]) -> bool:
        if text is None:
            return False
        return self._regex.fullmatch(text) is not None

    def __repr__(self) -> str:
        return f"WildcardPattern({self.pattern!r})"


def create_patterns(values: Optional[Iterable[str]]) -> List[WildcardPattern]:
    """Compile every non-empty value."""
    if not values:
        return []
    return [WildcardPattern.get(v) for v in values if v]


def matches_any(
    text: Optional[str],
    patterns: Sequence[WildcardPattern],
    default_value: bool = True
) -> bool:
    """True if any pattern matches; default_value when there are no patterns."""
    if not patterns:
        return default_value
    if text is None:
        text = ""
    return any(p.is_match(text) for p in patterns)
