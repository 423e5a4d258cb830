"""Computations — re-runnable closures that subscribe to what they read.

A computation runs its function under a tracking frame. Every cell read
during the run subscribes the computation. Before each run it:

1. disposes the effects and cells it created during the previous run,
2. calls the cleanup callable the previous run returned (if any),
3. drops every subscription, so dependencies read only in older runs vanish.

A run that raises is logged and counts as completed. Whatever it subscribed
to before raising stays subscribed, and nothing is retried.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Optional

if TYPE_CHECKING:
    from statefx.cell import Cell
    from statefx.graph import Graph

logger = logging.getLogger("statefx.computation")

Cleanup = Callable[[], None]


class Computation:
    """A reactive closure re-run by the scheduler when its inputs change."""

    __slots__ = ("_graph", "_fn", "dependencies", "stale", "disposed", "_cleanup", "_owned")

    def __init__(self, graph: Graph, fn: Callable[[], Any]) -> None:
        self._graph = graph
        self._fn = fn
        self.dependencies: dict[Cell, None] = {}
        self.stale = False
        self.disposed = False
        self._cleanup: Optional[Cleanup] = None
        self._owned: list = []
        owner = graph.tracking.owner
        if owner is not None:
            owner.own(self)

    def own(self, node) -> None:
        """Adopt a cell or computation created during this run."""
        self._owned.append(node)

    def run(self) -> None:
        """Re-evaluate the function, re-tracking dependencies."""
        self.stale = False
        if self.disposed:
            return

        # Writes made during the run flush after it, never inside it.
        scheduler = self._graph.scheduler
        scheduler.begin_batch()
        try:
            self._teardown()
            with self._graph.tracking.frame(self, self):
                result = self._fn()
            if callable(result):
                self._cleanup = result
        except Exception:
            logger.exception("Computation %r raised", self)
        finally:
            if self.disposed:
                # Disposed from inside its own run; undo what followed.
                self._teardown()
            scheduler.end_batch()

    def _teardown(self) -> None:
        owned, self._owned = self._owned, []
        for node in reversed(owned):
            node.dispose()

        cleanup, self._cleanup = self._cleanup, None
        if cleanup is not None:
            try:
                cleanup()
            except Exception:
                logger.exception("Cleanup of %r raised", self)

        for dep in self.dependencies:
            dep._remove_subscriber(self)
        self.dependencies.clear()

    def dispose(self) -> None:
        """Stop this computation. Disconnects from all dependencies."""
        if self.disposed:
            return
        self.disposed = True
        self.stale = False
        self._graph.scheduler.discard(self)
        self._teardown()

    def __call__(self) -> None:
        """Calling the computation disposes it, so it doubles as a disposer."""
        self.dispose()

    def __repr__(self) -> str:
        state = "disposed" if self.disposed else "active"
        name = getattr(self._fn, "__name__", type(self._fn).__name__)
        return f"Computation({name}, {state})"
