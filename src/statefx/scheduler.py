"""Scheduler — coalesces re-run requests and flushes them once per burst.

Writes never re-run their dependents directly. They ask the scheduler, which
keeps an insertion-ordered pending set and queues a single flush:

- with an explicit ``defer`` callable, the flush is handed to it;
- inside a running asyncio loop, the flush runs on the next loop turn
  (``loop.call_soon``), so every write of a synchronous burst lands first;
- with no loop, the flush runs as soon as the outermost batch exits, or right
  away for an unbatched write.

Computations requested while a flush is running form the next round of the
same flush.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Callable, Optional

from statefx.config import DEFAULT_CONFIG, EngineConfig

if TYPE_CHECKING:
    from statefx.computation import Computation

logger = logging.getLogger("statefx.scheduler")

Defer = Callable[[Callable[[], None]], None]


def _loop_defer(callback: Callable[[], None]) -> bool:
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return False
    loop.call_soon(callback)
    return True


class Scheduler:
    """Batches computation re-runs into flushes."""

    def __init__(self, defer: Optional[Defer] = None, config: EngineConfig = DEFAULT_CONFIG) -> None:
        self._defer = defer
        self._max_rounds = config.max_flush_rounds
        # dict keeps first-insertion order, which is the run order.
        self._pending: dict[Computation, None] = {}
        self._batch_depth = 0
        self._flush_queued = False
        self._flushing = False

    @property
    def batching(self) -> bool:
        return self._batch_depth > 0

    def begin_batch(self) -> None:
        """Enter a batching scope. Nested batches are supported."""
        self._batch_depth += 1

    def end_batch(self) -> None:
        """Exit a batching scope; the outermost exit queues the flush."""
        self._batch_depth -= 1
        if self._batch_depth == 0 and self._pending:
            self._queue_flush()

    def request_rerun(self, computation: Computation) -> None:
        """Mark a computation for re-run. Repeated requests coalesce."""
        if computation.disposed or computation.stale:
            return
        computation.stale = True
        self._pending[computation] = None
        if self._batch_depth == 0:
            self._queue_flush()

    def discard(self, computation: Computation) -> None:
        self._pending.pop(computation, None)

    @property
    def pending_count(self) -> int:
        """Number of computations waiting to run. Useful for testing."""
        return len(self._pending)

    def _queue_flush(self) -> None:
        if self._flush_queued or self._flushing:
            return
        self._flush_queued = True
        if self._defer is not None:
            self._defer(self.flush)
        elif not _loop_defer(self.flush):
            self.flush()

    def flush(self) -> None:
        """Run every pending computation once, round after round."""
        self._flush_queued = False
        if self._flushing:
            return
        self._flushing = True
        rounds = 0
        try:
            while self._pending:
                if rounds >= self._max_rounds:
                    dropped = len(self._pending)
                    for computation in self._pending:
                        computation.stale = False
                    self._pending.clear()
                    logger.error(
                        "Flush exceeded %d rounds, dropping %d pending computations "
                        "(effects keep re-triggering each other)",
                        self._max_rounds, dropped,
                    )
                    break
                rounds += 1
                # Snapshot and clear — runs may request new computations.
                batch = list(self._pending)
                self._pending.clear()
                for computation in batch:
                    # A derived cell read earlier in this round may have
                    # already refreshed itself.
                    if not computation.stale:
                        continue
                    try:
                        computation.run()
                    except Exception:
                        logger.exception("Re-run of %r failed", computation)
        finally:
            self._flushing = False
