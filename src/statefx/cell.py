"""Cells — reactive values that track their readers.

When a Cell is read inside a computation, the computation is registered as a
subscriber. When the Cell is written with a value that differs under its
equality policy, every subscriber is handed to the scheduler for a re-run.

The default equality is strict identity, with value comparison only for
immutable scalars: writing an equal int or str is a no-op, but writing a new
list with the same items is a change.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Generic, Optional, TypeVar

if TYPE_CHECKING:
    from statefx.computation import Computation
    from statefx.graph import Graph

T = TypeVar("T")

Equals = Callable[[Any, Any], bool]

_SCALARS = (bool, int, float, complex, str, bytes)


def strict_equals(a: object, b: object) -> bool:
    """Identity, or value equality for immutable scalars of the same type."""
    if a is b:
        return True
    return type(a) is type(b) and isinstance(a, _SCALARS) and a == b


class Cell(Generic[T]):
    """A single reactive value with automatic dependency tracking."""

    __slots__ = ("_graph", "_value", "_equals", "_subscribers")

    def __init__(self, graph: Graph, value: T, equals: Optional[Equals] = None) -> None:
        self._graph = graph
        self._value = value
        self._equals: Equals = equals or strict_equals
        # dict as an insertion-ordered set
        self._subscribers: dict[Computation, None] = {}
        owner = graph.tracking.owner
        if owner is not None:
            owner.own(self)

    def get(self) -> T:
        """Read the value. If inside a computation, registers the dependency."""
        observer = self._graph.tracking.observer
        if observer is not None:
            self._subscribers[observer] = None
            observer.dependencies[self] = None
        return self._value

    def peek(self) -> T:
        """Read the value without registering a dependency."""
        return self._value

    def set(self, value: T) -> None:
        """Write a new value and schedule subscribers if it changed."""
        self._write(value)

    @property
    def value(self) -> T:
        return self.get()

    @value.setter
    def value(self, value: T) -> None:
        self.set(value)

    def update(self, fn: Callable[[T], T]) -> None:
        """Write ``fn(current)`` without tracking the read."""
        self.set(fn(self._value))

    def _write(self, value: T) -> bool:
        if self._equals(self._value, value):
            return False
        self._value = value
        self._notify()
        return True

    def _notify(self) -> None:
        """Schedule all subscribers; every one is marked before any runs."""
        with self._graph.batch():
            for subscriber in list(self._subscribers):
                self._graph.scheduler.request_rerun(subscriber)

    def _remove_subscriber(self, computation: Computation) -> None:
        """Called during dependency cleanup."""
        self._subscribers.pop(computation, None)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def dispose(self) -> None:
        """Drop all subscribers. Called when the owning scope is torn down."""
        for subscriber in list(self._subscribers):
            subscriber.dependencies.pop(self, None)
        self._subscribers.clear()

    def __repr__(self) -> str:
        return f"Cell({self._value!r})"
