"""Derived cells — read-only values recomputed from other cells.

A Derived pairs a Cell holding the last output with an internal computation
that re-evaluates the function whenever an input changes. The output goes
through the cell's equality policy, so a recompute that yields an equal value
does not wake any downstream reader.

Reading a derived cell whose computation is queued but has not run yet
recomputes it on the spot, so a reader never sees a stale output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Optional, TypeVar

from statefx.cell import Cell, Equals
from statefx.computation import Computation
from statefx.errors import ReadOnlyCellError

if TYPE_CHECKING:
    from statefx.graph import Graph

T = TypeVar("T")


class Derived(Cell[T]):
    """A derived value that auto-tracks dependencies and caches the result."""

    __slots__ = ("_computation", "_fn")

    def __init__(self, graph: Graph, fn: Callable[[], T], equals: Optional[Equals] = None) -> None:
        super().__init__(graph, None, equals)
        self._fn = fn
        # Owned through this cell, not separately.
        with graph.tracking.frame(None, None):
            self._computation = Computation(graph, self._recompute)
        self._computation.run()

    def _recompute(self) -> None:
        self._write(self._fn())

    def get(self) -> T:
        """Read the derived value, refreshing it first if an input changed."""
        if self._computation.stale:
            self._computation.run()
        return super().get()

    def peek(self) -> T:
        if self._computation.stale:
            self._computation.run()
        return self._value

    def set(self, value: T) -> None:
        raise ReadOnlyCellError(
            f"Cannot write to derived cell {getattr(self._fn, '__name__', 'derived')!r}; "
            "write to its inputs instead"
        )

    def update(self, fn) -> None:
        self.set(fn(self._value))

    @property
    def disposed(self) -> bool:
        return self._computation.disposed

    def dispose(self) -> None:
        """Disconnect from inputs and readers. The cached value is kept."""
        self._computation.dispose()
        super().dispose()

    def __repr__(self) -> str:
        name = getattr(self._fn, "__name__", "derived")
        state = "stale" if self._computation.stale else f"cached={self._value!r}"
        return f"Derived({name}, {state})"
