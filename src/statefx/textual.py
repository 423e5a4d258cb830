"""Textual integration for statefx. Opt-in — requires textual.

Effects that touch widgets are guarded here, not at call sites: they skip
while the app is not running or is paused for a widget swap, and a
``NoMatches`` from a widget query that raced a swap is swallowed. Textual
runs on asyncio, so the scheduler's flushes land on the app's event loop.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Callable, Mapping, Optional

from textual.css.query import NoMatches

from statefx.graph import Graph, default_graph
from statefx.machine import Machine

# Module-owned pause state — keyed by id(app) so multiple apps work in tests.
_paused_apps: set[int] = set()


@contextmanager
def pause(app):
    """Suspend guarded effects during widget replacement."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


def effect(app, fn: Callable[[], Any], graph: Optional[Graph] = None):
    """effect() that safely bridges to Textual widgets.

    A skipped run re-subscribes to the cells the last full run read, so the
    effect fires again on the next change once the app is safe.
    """
    graph = graph or default_graph()
    last_reads: list = []

    def _guarded():
        observer = graph.tracking.observer
        if not is_safe(app):
            for cell in last_reads:
                cell.get()
            return None
        try:
            return fn()
        except NoMatches:
            return None
        finally:
            last_reads[:] = list(observer.dependencies)

    return graph.effect(_guarded)


def render_into(app, machine: Machine, views: Mapping[str, Callable[[str], Any]], mount: Callable[[Any], None]):
    """Render machine into the app, swapping views through mount.

    ``mount(view)`` replaces whatever the container shows. It runs paused, so
    guarded effects of the outgoing view don't query half-removed widgets.
    Returns the first view.
    """

    def _show(view):
        if not app.is_running:
            return
        with pause(app):
            try:
                mount(view)
            except NoMatches:
                pass

    machine.on_render = _show
    view = machine.render(views)
    _show(view)
    return view
