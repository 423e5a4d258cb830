"""Tracking frames — which computation is reading, and who owns new nodes.

Each Graph holds its own TrackingStack, so independent graphs never see each
other's readers. A frame pairs an *observer* (the computation that should be
subscribed to any cell read right now, or None) with an *owner* (the
computation or scope that new cells and effects are attached to, so they are
torn down together with it).
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator, NamedTuple, Optional

if TYPE_CHECKING:
    from statefx.computation import Computation
    from statefx.scope import Owner


class Frame(NamedTuple):
    observer: Optional[Computation]
    owner: Optional[Owner]


_EMPTY = Frame(None, None)


class TrackingStack:
    """Stack of active frames. The top frame is the one that tracks reads."""

    __slots__ = ("_frames",)

    def __init__(self) -> None:
        self._frames: list[Frame] = []

    @property
    def current(self) -> Frame:
        return self._frames[-1] if self._frames else _EMPTY

    @property
    def observer(self) -> Optional[Computation]:
        return self.current.observer

    @property
    def owner(self) -> Optional[Owner]:
        return self.current.owner

    @property
    def depth(self) -> int:
        return len(self._frames)

    @contextmanager
    def frame(self, observer: Optional[Computation], owner: Optional[Owner]) -> Iterator[None]:
        """Push a frame for the duration of the block, restoring on exit."""
        self._frames.append(Frame(observer, owner))
        try:
            yield
        finally:
            self._frames.pop()

    @contextmanager
    def untracked(self) -> Iterator[None]:
        """Suspend read tracking while keeping the current owner."""
        with self.frame(None, self.owner):
            yield
