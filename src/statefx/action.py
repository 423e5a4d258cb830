"""Actions and transactions — batched cell writes.

Wrapping writes in an @action or ``with transaction()`` defers every re-run
until the outermost scope exits. This prevents glitchy intermediate states
where some dependents have updated but others haven't yet.
"""

from __future__ import annotations

import functools
from contextlib import contextmanager
from typing import Callable, Optional, ParamSpec, TypeVar

from statefx.graph import Graph, default_graph

P = ParamSpec("P")
R = TypeVar("R")


def action(fn: Optional[Callable[P, R]] = None, *, graph: Optional[Graph] = None):
    """Decorator: batch all cell writes inside fn.

    Effects only re-run after fn returns, not during.

    Usage:
        a = signal(0)
        b = signal(0)

        @action
        def swap():
            x, y = a.get(), b.get()
            a.set(y)
            b.set(x)
            # effects see both changes at once, not one at a time

        @action(graph=my_graph)
        def reset():
            ...
    """

    def decorate(fn: Callable[P, R]) -> Callable[P, R]:
        @functools.wraps(fn)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            with transaction(graph):
                return fn(*args, **kwargs)

        return wrapper

    if fn is None:
        return decorate
    return decorate(fn)


@contextmanager
def transaction(graph: Optional[Graph] = None):
    """Context manager for batching writes.

    Usage:
        with transaction():
            a.set(1)
            b.set(2)
            # effects re-run here, after both are set
    """
    with (graph or default_graph()).batch():
        yield
