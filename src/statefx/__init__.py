"""statefx: fine-grained reactive cells plus a view-selecting state machine."""

from importlib.metadata import version as _version

__version__ = _version("statefx")

from statefx.action import action, transaction
from statefx.cell import Cell, strict_equals
from statefx.computation import Computation
from statefx.config import EngineConfig
from statefx.derived import Derived
from statefx.errors import (
    ReadOnlyCellError,
    StateFxError,
    TransitionTableError,
    UnknownStateError,
    UnresolvedViewError,
)
from statefx.graph import Graph, default_graph
from statefx.machine import Machine
from statefx.reactive import bind, resolve_reactive
from statefx.scope import Scope
from statefx.transitions import EventArgs, Guarded, Transition
from statefx.views import ViewTable, resolve
# textual NOT auto-imported — opt-in only


def signal(initial, equals=None) -> Cell:
    """Create a cell on the default graph.

    Writes are batched per burst inside a running asyncio loop or a
    ``batch()`` block; otherwise each write flushes its dependents at once.
    """
    return default_graph().cell(initial, equals)


def effect(fn) -> Computation:
    """Create an effect on the default graph. Returns its disposer."""
    return default_graph().effect(fn)


def derived(fn, equals=None) -> Derived:
    """Create a derived cell on the default graph."""
    return default_graph().derived(fn, equals)


def untracked(fn=None):
    return default_graph().untracked(fn)


def batch():
    return default_graph().batch()


__all__ = [
    "Cell",
    "Computation",
    "Derived",
    "EngineConfig",
    "EventArgs",
    "Graph",
    "Guarded",
    "Machine",
    "ReadOnlyCellError",
    "Scope",
    "StateFxError",
    "Transition",
    "TransitionTableError",
    "UnknownStateError",
    "UnresolvedViewError",
    "ViewTable",
    "action",
    "batch",
    "bind",
    "default_graph",
    "derived",
    "effect",
    "resolve",
    "resolve_reactive",
    "signal",
    "strict_equals",
    "transaction",
    "untracked",
]
