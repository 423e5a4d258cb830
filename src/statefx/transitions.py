"""Transition tables — the declared shape of a state machine.

A table maps every state to one of:

- a bare callable: an *auto* handler, evaluated with no arguments;
- a list of middleware: a *chain*, each called as ``mw(args, next)``;
- a mapping of event name to a next-state label, a ``fn(payload)`` or a
  middleware list;
- a guarded entry (``Guarded(...)`` or a dict with ``rules`` and/or a ``next``
  list of labels) restricting which states may follow it;
- None: a terminal state with no outgoing handler.

``build_table`` normalizes all of these once into immutable StateSpec
values and rejects anything malformed up front.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional, Sequence, Union

from statefx.errors import TransitionTableError

Rule = Callable[[str, str], bool]


@dataclass(frozen=True)
class EventArgs:
    """What a middleware or auto handler sees about the triggering send."""

    event: Optional[str]
    payload: Any
    state: str


@dataclass(frozen=True)
class Transition:
    """A next state plus data handed to that state's subscribers."""

    state: str
    data: Any = None


Middleware = Callable[[EventArgs, Callable[[], Any]], Any]


@dataclass(frozen=True)
class AutoHandler:
    fn: Callable[[], Any]

    def invoke(self, args: EventArgs) -> Any:
        return self.fn()


@dataclass(frozen=True)
class PayloadHandler:
    fn: Callable[[Any], Any]

    def invoke(self, args: EventArgs) -> Any:
        return self.fn(args.payload)


@dataclass(frozen=True)
class Target:
    state: str

    def invoke(self, args: EventArgs) -> Any:
        return self.state


@dataclass(frozen=True)
class Chain:
    middlewares: tuple[Middleware, ...]

    def invoke(self, args: EventArgs) -> Any:
        """Thread ``next`` through the chain; past the end, stay put."""

        def step(index: int) -> Any:
            if index >= len(self.middlewares):
                return args.state
            return self.middlewares[index](args, lambda: step(index + 1))

        return step(0)


Handler = Union[AutoHandler, PayloadHandler, Target, Chain]


@dataclass(frozen=True)
class EventMap:
    events: Mapping[str, Handler]


@dataclass(frozen=True)
class Guarded:
    """Declares the states allowed to follow this one and the rules to pass.

    Usage:
        {
            "draft": Guarded(next=["published", "archived"], rules=[is_reviewed]),
            "published": {"archive": "archived"},
            "archived": None,
        }

    Sending ``"published"`` in ``draft`` proposes ``published`` directly; it
    commits only if every rule returns True for ``("draft", "published")``.
    """

    next: Sequence[str] = ()
    rules: Sequence[Rule] = ()
    on: Optional[Mapping[str, Any]] = None
    auto: Any = None


@dataclass(frozen=True)
class StateSpec:
    """Normalized entry for one state."""

    handler: Union[AutoHandler, Chain, EventMap, None] = None
    allowed: Optional[frozenset] = None
    rules: tuple[Rule, ...] = field(default=())

    @property
    def is_auto(self) -> bool:
        return isinstance(self.handler, (AutoHandler, Chain))

    @property
    def guarded(self) -> bool:
        return self.allowed is not None or bool(self.rules)

    def handler_for(self, event: str) -> Optional[Handler]:
        """The handler a send of event runs in this state, or None."""
        if isinstance(self.handler, (AutoHandler, Chain)):
            return self.handler
        if isinstance(self.handler, EventMap) and event in self.handler.events:
            return self.handler.events[event]
        if self.allowed is not None and event in self.allowed:
            return Target(event)
        return None


_GUARD_KEYS = frozenset({"next", "rules", "on", "auto"})


def _is_labels(value: object) -> bool:
    return isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value)


def _is_guard_dict(value: Mapping) -> bool:
    return "rules" in value or ("next" in value and _is_labels(value["next"]))


def _chain(state: str, value: Sequence) -> Chain:
    if not all(callable(mw) for mw in value):
        raise TransitionTableError(f"State {state!r}: middleware lists may only contain callables")
    return Chain(tuple(value))


def _event_handler(state: str, event: str, value: object) -> Handler:
    if isinstance(value, str):
        return Target(value)
    if isinstance(value, (list, tuple)):
        return _chain(state, value)
    if callable(value):
        return PayloadHandler(value)
    raise TransitionTableError(
        f"State {state!r}, event {event!r}: expected a state name, a callable "
        f"or a middleware list, got {type(value).__name__}"
    )


def _handler(state: str, value: object) -> Union[AutoHandler, Chain, EventMap, None]:
    if value is None:
        return None
    if isinstance(value, Mapping):
        return EventMap(MappingProxyType({
            event: _event_handler(state, event, handler) for event, handler in value.items()
        }))
    if isinstance(value, (list, tuple)):
        return _chain(state, value)
    if callable(value):
        return AutoHandler(value)
    raise TransitionTableError(
        f"State {state!r}: expected a callable, a middleware list, an event mapping "
        f"or None, got {type(value).__name__}"
    )


def _guarded(state: str, guard: Guarded) -> StateSpec:
    if guard.on is not None and guard.auto is not None:
        raise TransitionTableError(f"State {state!r}: declare either 'on' or 'auto', not both")
    if not _is_labels(list(guard.next)):
        raise TransitionTableError(f"State {state!r}: 'next' must list state names")
    if not all(callable(rule) for rule in guard.rules):
        raise TransitionTableError(f"State {state!r}: 'rules' must be callables")
    handler = _handler(state, guard.on if guard.on is not None else guard.auto)
    return StateSpec(
        handler=handler,
        allowed=frozenset(guard.next) if guard.next else None,
        rules=tuple(guard.rules),
    )


def _normalize(state: str, value: object) -> StateSpec:
    if isinstance(value, StateSpec):
        return value
    if isinstance(value, Guarded):
        return _guarded(state, value)
    if isinstance(value, Mapping) and _is_guard_dict(value):
        unknown = set(value) - _GUARD_KEYS
        if unknown:
            raise TransitionTableError(
                f"State {state!r}: unexpected keys {sorted(unknown)} in guarded state"
            )
        return _guarded(state, Guarded(
            next=tuple(value.get("next", ())),
            rules=tuple(value.get("rules", ())),
            on=value.get("on"),
            auto=value.get("auto"),
        ))
    return StateSpec(handler=_handler(state, value))


def _targets(spec: StateSpec):
    if spec.allowed:
        yield from spec.allowed
    if isinstance(spec.handler, EventMap):
        for handler in spec.handler.events.values():
            if isinstance(handler, Target):
                yield handler.state


def build_table(states: Mapping[str, object]) -> Mapping[str, StateSpec]:
    """Normalize a declared table into an immutable state -> StateSpec map."""
    if isinstance(states, MappingProxyType) and all(
        isinstance(spec, StateSpec) for spec in states.values()
    ):
        return states
    if not isinstance(states, Mapping) or not states:
        raise TransitionTableError("A machine needs at least one declared state")

    table = {}
    for state, value in states.items():
        if not isinstance(state, str) or not state:
            raise TransitionTableError(f"State names must be non-empty strings, got {state!r}")
        table[state] = _normalize(state, value)

    for state, spec in table.items():
        for target in _targets(spec):
            if target not in table:
                raise TransitionTableError(
                    f"State {state!r} names undeclared state {target!r}"
                )
    return MappingProxyType(table)
