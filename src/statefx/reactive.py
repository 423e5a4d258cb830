"""Reactive values for host bindings.

A *reactive* is either a plain value or a zero-argument callable producing
one. Hosts accept reactives for attributes (a label's text, a widget's
visibility) and use ``bind`` to keep the attribute in sync.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, TypeVar, Union

from statefx.graph import Graph, default_graph

T = TypeVar("T")

Reactive = Union[T, Callable[[], T]]


def resolve_reactive(value: Reactive[T]) -> T:
    """Current value of a reactive: call it if callable, else return it."""
    return value() if callable(value) else value


def bind(
    target: Any,
    attribute: str,
    value: Reactive[Any],
    graph: Optional[Graph] = None,
) -> Optional[Callable[[], None]]:
    """Assign value to ``target.attribute`` and keep it assigned.

    A plain value is set once and None is returned. A callable runs inside an
    effect, so the attribute is reassigned whenever a cell it reads changes;
    the effect's disposer is returned.

    Usage:
        name = signal("Ada")
        stop = bind(label, "text", lambda: f"Hello {name.get()}")
        name.set("Grace")  # label.text == "Hello Grace" after the flush
    """
    if not callable(value):
        setattr(target, attribute, value)
        return None
    return (graph or default_graph()).effect(lambda: setattr(target, attribute, value()))
