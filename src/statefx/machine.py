"""Machine — a state machine that drives view selection.

The current state lives in a Cell, so rendering is an ordinary effect: every
committed transition writes the cell and the scheduler re-renders once.

Commit discipline: only one commit per machine runs at a time. A proposal
made while a commit is in flight (from a subscriber, a view factory or an
auto handler) or while an async transition is still pending is queued and
replayed in request order once the machine is free again.

Failure policy: unhandled events are ignored, guard rejections and failed
async handlers are logged, and the state is left as it was. Only
configuration bugs raise: an undeclared target state, or a state with no
view.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import deque
from typing import Any, Callable, Mapping, NamedTuple, Optional, Union

from statefx.errors import StateFxError, TransitionTableError, UnknownStateError
from statefx.graph import Graph, default_graph
from statefx.transitions import EventArgs, StateSpec, Transition, build_table
from statefx.views import ViewFactory, ViewTable, as_view_table

logger = logging.getLogger("statefx.machine")


class _Proposal(NamedTuple):
    state: str
    data: Any


class Machine:
    """Holds the current state, commits transitions and renders views.

    Either pass ``states=`` or subclass and override ``states()``:

        class Fetcher(Machine):
            def states(self):
                return {
                    "idle": {"load": "loading"},
                    "loading": self.fetch,          # auto handler, may be async
                    "ready": {"reload": "loading"},
                    "failed": {"retry": "loading"},
                }

        m = Fetcher()
        view = m.render({"idle": idle_view, "loading|ready": main_view, "*": error_view})
        m.send("load")
    """

    def __init__(
        self,
        states: Optional[Mapping[str, Any]] = None,
        *,
        initial: Optional[str] = None,
        graph: Optional[Graph] = None,
        on_render: Optional[Callable[[Any], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        max_auto_steps: Optional[int] = None,
    ) -> None:
        self._graph = graph or default_graph()
        self._table: Optional[Mapping[str, StateSpec]] = None
        self._table = build_table(states if states is not None else self.states())

        if initial is None:
            initial = next(iter(self._table))
        elif initial not in self._table:
            raise TransitionTableError(f"Initial state {initial!r} is not declared")

        self.on_render = on_render
        self.on_error = on_error
        self.max_auto_steps = (
            max_auto_steps if max_auto_steps is not None else self._graph.config.max_auto_steps
        )

        self._scope = self._graph.scope()
        self._state = self._scope.run(lambda: self._graph.cell(initial))
        self._queue: deque[_Proposal] = deque()
        self._in_flight = False
        self._pending_async = 0
        self._tasks: set[asyncio.Future] = set()
        self._auto_steps = 0
        self._listeners: dict[str, list[Callable[[Any], None]]] = {}
        self._event_listeners: dict[str, list[Callable[[Any], None]]] = {}
        self._views: Optional[ViewTable] = None
        self._render_effect = None
        self._disposed = False
        self.view: Any = None

    # ─── Table ───────────────────────────────────────────────────────────────

    def states(self) -> Mapping[str, Any]:
        """Transition table. Override in subclasses or pass ``states=``."""
        if self._table is None:
            raise TransitionTableError(
                f"{type(self).__name__} has no transition table: pass states= or override states()"
            )
        return self._table

    @property
    def table(self) -> Mapping[str, StateSpec]:
        return self._table

    # ─── State ───────────────────────────────────────────────────────────────

    def get_state(self) -> str:
        """Current state. Inside an effect, subscribes to transitions."""
        return self._state.get()

    @property
    def state(self) -> str:
        return self._state.peek()

    @property
    def busy(self) -> bool:
        """True while a commit or an async transition is outstanding."""
        return self._in_flight or self._pending_async > 0

    @property
    def disposed(self) -> bool:
        return self._disposed

    # ─── Events ──────────────────────────────────────────────────────────────

    def send(self, event: str, payload: Any = None) -> None:
        """Run the current state's handler for event and apply its result."""
        if self._disposed:
            return
        current = self._state.peek()
        handler = self._table[current].handler_for(event)
        if handler is None:
            logger.debug("Event %r unhandled in state %r", event, current)
            return

        self._auto_steps = 0
        try:
            result = handler.invoke(EventArgs(event, payload, current))
            self._resolve(result)
        except StateFxError:
            raise
        except Exception:
            logger.exception("Error handling event %r in state %r", event, current)
        self._fire(self._event_listeners, event, payload)

    def listen(self, event: str, callback: Callable[[Any], None]) -> Callable[[], None]:
        """Call callback with the payload after each handled send of event.

        Fires whether or not the handler produced a transition. Returns a
        function that removes the callback.
        """
        return self._add_listener(self._event_listeners, event, callback)

    def subscribe(self, state: str, callback: Callable[[Any], None]) -> Callable[[], None]:
        """Call callback with the transition data each time state is entered.

        Returns a function that removes the callback.
        """
        if state not in self._table:
            raise UnknownStateError(state, self._table)
        return self._add_listener(self._listeners, state, callback)

    @staticmethod
    def _add_listener(
        listeners: dict[str, list[Callable[[Any], None]]], key: str, callback: Callable[[Any], None]
    ) -> Callable[[], None]:
        callbacks = listeners.setdefault(key, [])
        callbacks.append(callback)

        def _unsubscribe() -> None:
            try:
                callbacks.remove(callback)
            except ValueError:
                pass  # already removed

        return _unsubscribe

    # ─── Resolution ──────────────────────────────────────────────────────────

    def _resolve(self, result: Any) -> None:
        # A handler may hand back another handler; keep calling until a value.
        while callable(result):
            result = result()

        if inspect.isawaitable(result):
            self._defer(result)
        elif isinstance(result, Transition):
            self.apply_transition(result.state, result.data)
        elif isinstance(result, str):
            self.apply_transition(result)
        elif result:
            logger.error(
                "Transition handler in state %r returned %r; expected a state name",
                self._state.peek(), result,
            )

    def _defer(self, awaitable) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.error(
                "Async transition in state %r needs a running event loop; abandoned",
                self._state.peek(),
            )
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return

        future = asyncio.ensure_future(awaitable)
        self._pending_async += 1
        self._tasks.add(future)
        future.add_done_callback(self._settle)

    def _settle(self, future: asyncio.Future) -> None:
        self._tasks.discard(future)
        self._pending_async -= 1
        if self._disposed:
            return

        if future.cancelled():
            logger.warning("Async transition in state %r was cancelled", self._state.peek())
        elif future.exception() is not None:
            logger.error(
                "Async transition failed in state %r",
                self._state.peek(), exc_info=future.exception(),
            )
        else:
            try:
                self._resolve(future.result())
            except Exception:
                logger.exception("Async transition could not be applied")
        self._drain()

    # ─── Commit ──────────────────────────────────────────────────────────────

    def apply_transition(self, next_state: Optional[str], data: Any = None) -> None:
        """Commit next_state now, or queue it behind the outstanding commit."""
        if not next_state or self._disposed:
            return
        if next_state not in self._table:
            raise UnknownStateError(next_state, self._table)

        proposal = _Proposal(next_state, data)
        if self.busy:
            self._queue.append(proposal)
            return
        self._commit(proposal)
        self._drain()

    def _drain(self) -> None:
        while self._queue and not self.busy and not self._disposed:
            self._commit(self._queue.popleft())

    def _commit(self, proposal: _Proposal) -> None:
        current = self._state.peek()
        target = proposal.state
        if target == current:
            return
        if not self._permits(current, target):
            return

        self._in_flight = True
        try:
            self._state.set(target)
            self._notify(target, proposal.data)
            # The next auto step is queued here and committed by _drain.
            self._auto_step()
        finally:
            self._in_flight = False

    def _permits(self, current: str, target: str) -> bool:
        spec = self._table[current]
        if not spec.guarded:
            return True
        if spec.allowed is not None and target not in spec.allowed:
            logger.warning(
                "Transition %r -> %r rejected: not in allowed next states %s",
                current, target, sorted(spec.allowed),
            )
            return False
        for rule in spec.rules:
            try:
                passed = rule(current, target)
            except Exception:
                logger.exception("Guard %r raised on %r -> %r", rule, current, target)
                return False
            if not passed:
                logger.warning(
                    "Transition %r -> %r rejected by guard %s",
                    current, target, getattr(rule, "__name__", repr(rule)),
                )
                return False
        return True

    def _notify(self, state: str, data: Any) -> None:
        self._fire(self._listeners, state, data)

    @staticmethod
    def _fire(listeners: dict[str, list[Callable[[Any], None]]], key: str, value: Any) -> None:
        for callback in list(listeners.get(key, ())):
            try:
                callback(value)
            except Exception:
                logger.exception("Error in subscriber for %r", key)

    # ─── Auto-step ───────────────────────────────────────────────────────────

    def _auto_step(self) -> None:
        """Evaluate the active state's auto handler, if it has one."""
        if self._disposed:
            return
        current = self._state.peek()
        spec = self._table[current]
        if not spec.is_auto:
            return
        if self._auto_steps >= self.max_auto_steps:
            logger.warning(
                "Auto-step reached max steps (%d) in state %r - possible infinite loop",
                self.max_auto_steps, current,
            )
            return
        self._auto_steps += 1
        try:
            result = spec.handler.invoke(EventArgs(None, None, current))
            self._resolve(result)
        except StateFxError:
            raise
        except Exception:
            logger.exception("Auto-step failed in state %r", current)

    # ─── Rendering ───────────────────────────────────────────────────────────

    def render(self, views: Union[ViewTable, Mapping[str, ViewFactory]]) -> Any:
        """Resolve the view for the current state and keep it resolved.

        The first resolution happens now and raises UnresolvedViewError if no
        pattern matches. Afterwards every committed transition re-renders
        through the scheduler; the new view is passed to ``on_render`` and a
        failure goes to ``on_error``. If the current state has an auto
        handler, its chain runs once the first view is in place. Returns the
        view for the state the machine is in when this call returns.
        """
        if self._disposed:
            raise StateFxError("Cannot render a disposed machine")
        if self._render_effect is not None:
            self._render_effect.dispose()
        self._views = as_view_table(views)
        self._auto_steps = 0

        first_error: list[Exception] = []
        first_run = [True]

        def _render_pass() -> None:
            state = self._state.get()
            initial, first_run[0] = first_run[0], False
            try:
                view = self._graph.untracked(lambda: self._views.render(state))
            except Exception as exc:
                if initial:
                    first_error.append(exc)
                else:
                    self._report(exc)
                return
            self.view = view
            if not initial and self.on_render is not None:
                self.on_render(view)

        self._render_effect = self._scope.run(lambda: self._graph.effect(_render_pass))
        if first_error:
            self._render_effect.dispose()
            self._render_effect = None
            self._views = None
            raise first_error[0]
        self._auto_step()
        self._drain()
        return self.view

    def _report(self, exc: Exception) -> None:
        if self.on_error is not None:
            self.on_error(exc)
        else:
            logger.error("Render failed in state %r", self._state.peek(), exc_info=exc)

    # ─── Teardown ────────────────────────────────────────────────────────────

    def dispose(self) -> None:
        """Stop rendering and drop listeners. Pending async results are ignored."""
        if self._disposed:
            return
        self._disposed = True
        self._queue.clear()
        self._listeners.clear()
        self._event_listeners.clear()
        self._render_effect = None
        self._scope.dispose()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(state={self._state.peek()!r})"
