"""Exceptions raised by statefx.

Only programmer errors and configuration bugs surface as exceptions. Runtime
conditions an application is expected to hit (unhandled events, guard
rejections, failed async transitions) are logged and swallowed instead.
"""

from __future__ import annotations


class StateFxError(Exception):
    """Base class for all statefx errors."""


class ReadOnlyCellError(StateFxError, TypeError):
    """Raised when something tries to write to a derived cell."""


class UnresolvedViewError(StateFxError, LookupError):
    """No view pattern matches a reachable state."""

    def __init__(self, state: str) -> None:
        super().__init__(f"No view defined for state {state!r}")
        self.state = state


class UnknownStateError(StateFxError, ValueError):
    """A transition named a state the machine does not declare."""

    def __init__(self, state: object, declared) -> None:
        super().__init__(
            f"Unknown state {state!r}; declared states: {', '.join(declared)}"
        )
        self.state = state


class TransitionTableError(StateFxError, ValueError):
    """The transition table is malformed."""
