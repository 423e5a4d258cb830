"""Scopes — owners with cascading disposal.

A host creates a Scope per tree node. Cells and effects created inside
``scope.run(...)`` belong to it, and ``scope.dispose()`` tears them down
together with every child scope and registered disposable. Disposing twice
is a no-op; registering a disposable on a disposed scope runs it at once.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, Optional, Protocol, TypeVar

if TYPE_CHECKING:
    from statefx.graph import Graph

logger = logging.getLogger("statefx.scope")

R = TypeVar("R")


class Owner(Protocol):
    def own(self, node) -> None: ...


class Scope:
    """Ownership node for cells, effects, child scopes and disposables."""

    def __init__(self, graph: Graph, parent: Optional[Scope] = None) -> None:
        self._graph = graph
        self._parent = parent
        self._disposables: list[Callable[[], None]] = []
        self._children: list[Scope] = []
        self._disposed = False
        if parent is not None:
            parent._children.append(self)

    @property
    def disposed(self) -> bool:
        return self._disposed

    def run(self, fn: Callable[[], R]) -> R:
        """Call fn with this scope as the owner of anything it creates."""
        with self._graph.tracking.frame(None, self):
            return fn()

    def own(self, node) -> None:
        self.add_disposable(node.dispose)

    def add_disposable(self, dispose: Callable[[], None]) -> None:
        if self._disposed:
            try:
                dispose()
            except Exception:
                logger.exception("Immediate disposable raised on disposed scope")
            return
        self._disposables.append(dispose)

    def child(self) -> Scope:
        if self._disposed:
            raise RuntimeError("Cannot create a child of a disposed scope")
        return Scope(self._graph, self)

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True

        for dispose in self._disposables:
            try:
                dispose()
            except Exception:
                logger.exception("Error during scope disposal")
        self._disposables.clear()

        for child in list(self._children):
            try:
                child.dispose()
            except Exception:
                logger.exception("Error disposing child scope")
        self._children.clear()

        if self._parent is not None and self in self._parent._children:
            self._parent._children.remove(self)
        self._parent = None

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else "active"
        return f"Scope({state}, {len(self._disposables)} disposables)"
