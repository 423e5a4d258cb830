"""View resolution — pick the view factory for a state label.

Patterns are compiled once, when the table is built, into a closed set of
variants checked in fixed priority order:

1. ``"loading"``      exact label
2. ``"idle|done"``    alternation; any member equal to the state
3. ``"load.*"``       prefix; any state starting with ``"load"``
4. ``"/^err\\d+$/"``  regular expression, searched in the state
5. ``"*"``            catch-all

The first class with a match wins; inside a class, declaration order wins.
A regex that fails to compile is logged and left out of the table.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Union

from statefx.errors import UnresolvedViewError

logger = logging.getLogger("statefx.views")

ViewFactory = Callable[[str], Any]


@dataclass(frozen=True)
class Exact:
    label: str

    def matches(self, state: str) -> bool:
        return state == self.label


@dataclass(frozen=True)
class Alternation:
    members: tuple[str, ...]

    def matches(self, state: str) -> bool:
        return state in self.members


@dataclass(frozen=True)
class PrefixWildcard:
    prefix: str

    def matches(self, state: str) -> bool:
        return state.startswith(self.prefix)


@dataclass(frozen=True)
class RegexPattern:
    regex: re.Pattern

    def matches(self, state: str) -> bool:
        return self.regex.search(state) is not None


@dataclass(frozen=True)
class CatchAll:
    def matches(self, state: str) -> bool:
        return True


Pattern = Union[Exact, Alternation, PrefixWildcard, RegexPattern, CatchAll]

# Resolution order.
_PRIORITY = (Exact, Alternation, PrefixWildcard, RegexPattern, CatchAll)


def parse_pattern(pattern: str) -> Optional[Pattern]:
    """Classify a pattern string. Returns None for an invalid regex."""
    if pattern == "*":
        return CatchAll()
    if len(pattern) >= 2 and pattern.startswith("/") and pattern.endswith("/"):
        try:
            return RegexPattern(re.compile(pattern[1:-1]))
        except re.error as exc:
            logger.warning("Invalid view regex pattern %r: %s", pattern, exc)
            return None
    if "|" in pattern:
        return Alternation(tuple(member.strip() for member in pattern.split("|")))
    if pattern.endswith(".*"):
        return PrefixWildcard(pattern[:-2])
    return Exact(pattern)


class ViewTable:
    """Compiled mapping from state patterns to view factories."""

    def __init__(self, views: Mapping[str, ViewFactory]) -> None:
        self._entries: list[tuple[Pattern, str, ViewFactory]] = []
        for pattern, factory in views.items():
            parsed = parse_pattern(pattern)
            if parsed is not None:
                self._entries.append((parsed, pattern, factory))
        # Stable sort keeps declaration order inside each class.
        self._entries.sort(key=lambda entry: _PRIORITY.index(type(entry[0])))

    @property
    def patterns(self) -> list[str]:
        """Compiled patterns in resolution order."""
        return [raw for _, raw, _ in self._entries]

    def match(self, state: str) -> Optional[str]:
        """The raw pattern that resolves state, or None."""
        for parsed, raw, _ in self._entries:
            if parsed.matches(state):
                return raw
        return None

    def resolve(self, state: str) -> Optional[ViewFactory]:
        for parsed, _, factory in self._entries:
            if parsed.matches(state):
                return factory
        return None

    def render(self, state: str) -> Any:
        """Build the view for state. Raises UnresolvedViewError on no match."""
        factory = self.resolve(state)
        if factory is None:
            raise UnresolvedViewError(state)
        return factory(state)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"ViewTable({self.patterns!r})"


def as_view_table(views: Union[ViewTable, Mapping[str, ViewFactory]]) -> ViewTable:
    return views if isinstance(views, ViewTable) else ViewTable(views)


def resolve(views: Union[ViewTable, Mapping[str, ViewFactory]], state: str) -> Optional[ViewFactory]:
    """Return the view factory for state, or None when nothing matches."""
    return as_view_table(views).resolve(state)
