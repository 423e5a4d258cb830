"""Graph — one independent reactive world.

A Graph owns a tracking stack and a scheduler. Cells, effects and derived
cells are created through it, and two graphs never see each other's reads or
flushes. The module-level helpers in ``statefx`` use a default graph.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional, TypeVar

from statefx._tracking import TrackingStack
from statefx.cell import Cell, Equals
from statefx.computation import Computation
from statefx.config import DEFAULT_CONFIG, EngineConfig
from statefx.derived import Derived
from statefx.scheduler import Defer, Scheduler
from statefx.scope import Scope

T = TypeVar("T")


class Graph:
    """Dependency graph: cells, computations and their scheduler.

    Re-runs are coalesced per burst only when something defers the flush:
    a running asyncio loop, a ``defer`` callable, or an enclosing
    ``batch()``. Without any of them each write flushes before ``set``
    returns, so two bare writes re-run a dependent twice.
    """

    def __init__(self, *, defer: Optional[Defer] = None, config: EngineConfig = DEFAULT_CONFIG) -> None:
        self.config = config
        self.tracking = TrackingStack()
        self.scheduler = Scheduler(defer, config)

    def cell(self, initial: T, equals: Optional[Equals] = None) -> Cell[T]:
        return Cell(self, initial, equals)

    def effect(self, fn: Callable[[], Any]) -> Computation:
        """Run fn now and again whenever a cell it read changes.

        fn may return a cleanup callable, invoked before the next run and on
        disposal. The returned computation is the disposer: call it (or its
        ``dispose`` method) to stop the effect.

        Usage:
            count = graph.cell(0)
            log = []
            stop = graph.effect(lambda: log.append(count.get()))
            # log == [0]
            count.set(1)
            # log == [0, 1] once the scheduler flushes
            stop()
        """
        computation = Computation(self, fn)
        computation.run()
        return computation

    def derived(self, fn: Callable[[], T], equals: Optional[Equals] = None) -> Derived[T]:
        return Derived(self, fn, equals)

    def scope(self) -> Scope:
        """Create a root ownership scope."""
        return Scope(self)

    def untracked(self, fn=None):
        """Read cells without subscribing, as a call or a ``with`` block."""
        if fn is None:
            return self.tracking.untracked()
        with self.tracking.untracked():
            return fn()

    @contextmanager
    def batch(self) -> Iterator[None]:
        """Defer every re-run until the outermost batch exits.

        Usage:
            with graph.batch():
                first.set("Ada")
                last.set("Lovelace")
                # effects see both writes at once
        """
        self.scheduler.begin_batch()
        try:
            yield
        finally:
            self.scheduler.end_batch()

    def flush(self) -> None:
        """Run pending re-runs now instead of waiting for the queued flush."""
        self.scheduler.flush()


_default_graph = Graph()


def default_graph() -> Graph:
    return _default_graph
