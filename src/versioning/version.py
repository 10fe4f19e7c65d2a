"""Build version model with a partial, numeric-group ordering.

A version is 1 to 4 non-negative integer groups separated by ``.`` or ``-``
(``5.2.1-7033``). Groups compare as integers after right-padding with zeros
to four groups. Strings outside that grammar are still carried around as
versions but compare as INCOMPARABLE against anything.
"""
from __future__ import annotations

import re
from enum import Enum
from typing import Optional, Tuple

VERSION_PATTERN = re.compile(r"^(\d+)(?:[.-](\d+))?(?:[.-](\d+))?(?:[.-](\d+))?$")
GROUP_COUNT = 4


class Comparison(Enum):
    """Outcome of comparing two versions."""
    LESS = -1
    EQUAL = 0
    GREATER = 1
    INCOMPARABLE = None


class Version:
    """Opaque version string; validity is only checked when comparing."""

    __slots__ = ("raw",)

    def __init__(self, raw: str):
        self.raw = str(raw)

    @classmethod
    def parse(cls, raw: str) -> "Version":
        return cls(raw)

    def groups(self) -> Optional[Tuple[int, ...]]:
        """Return the zero-padded integer groups, or None outside the grammar."""
        match = VERSION_PATTERN.match(self.raw)
        if match is None:
            return None
        values = [int(group) for group in match.groups() if group is not None]
        values.extend([0] * (GROUP_COUNT - len(values)))
        return tuple(values)

    def is_valid(self) -> bool:
        return self.groups() is not None

    def compare(self, other: "Version") -> Comparison:
        """Compare group by group, first difference wins."""
        mine = self.groups()
        theirs = other.groups()
        if mine is None or theirs is None:
            return Comparison.INCOMPARABLE
        for left, right in zip(mine, theirs):
            if left < right:
                return Comparison.LESS
            if left > right:
                return Comparison.GREATER
        return Comparison.EQUAL

    def is_greater_than(self, other: "Version") -> bool:
        return self.compare(other) is Comparison.GREATER

    def matches(self, text: Optional[str]) -> bool:
        """Case-insensitive string match used by exact cache filters."""
        return text is not None and self.raw.lower() == str(text).lower()

    def __eq__(self, other: object) -> bool:
        if isinstance(other, str):
            other = Version(other)
        if not isinstance(other, Version):
            return NotImplemented
        mine = self.groups()
        theirs = other.groups()
        if mine is None or theirs is None:
            return self.raw == other.raw
        return mine == theirs

    def __hash__(self) -> int:
        groups = self.groups()
        return hash(groups if groups is not None else self.raw)

    def __str__(self) -> str:
        return self.raw

    def __repr__(self) -> str:
        return f"Version({self.raw!r})"


def compare(left: str, right: str) -> Comparison:
    """Module-level convenience over ``Version.compare`` for plain strings."""
    return Version(left).compare(Version(right))


def equals(left: str, right: str) -> bool:
    return Version(left) == Version(right)
