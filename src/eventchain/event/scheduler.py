"""
TurnScheduler: explicit "post to end of current turn" task queue.

Purpose
-------
Tally finalization must run strictly after the synchronous dispatch that
produced it (and every completion signal issued inside that dispatch) has
unwound. Instead of relying on a host event loop, the bus brackets every
public entry point in a *turn*; tasks posted during a turn run, in FIFO
order, when the outermost turn exits.

Execution Model
---------------
- `turn()` is re-entrant: nested turns only track depth.
- When the outermost turn exits normally, the queue is drained.
- Tasks run at depth zero. Work they start (e.g. a synthesized emit) opens
  its own turn, and anything it posts is appended to the same drain, after
  the tasks already queued.
- If a turn exits with an exception the queue is left intact; it drains at
  the next turn boundary or on an explicit `run_pending()`.
- A task that raises stops the drain; the remaining tasks stay queued.
"""

from __future__ import annotations

from collections import deque
from contextlib import contextmanager
from typing import Callable, Iterator

from eventchain.core.logging.logger import get_logger

logger = get_logger(__name__)

Task = Callable[[], None]


class TurnScheduler:
    """
    Deferred task queue drained at turn boundaries.

    Examples
    --------
    >>> scheduler = TurnScheduler()
    >>> order = []
    >>> with scheduler.turn():
    ...     scheduler.post(lambda: order.append("deferred"))
    ...     order.append("sync")
    >>> order
    ['sync', 'deferred']
    """

    def __init__(self) -> None:
        self._pending: deque[Task] = deque()
        self._depth = 0
        self._draining = False

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def in_turn(self) -> bool:
        return self._depth > 0 or self._draining

    def post(self, task: Task) -> None:
        """
        Queue `task` to run after the current turn unwinds.

        Outside any turn the task waits for the next turn boundary or
        `run_pending()`.
        """
        self._pending.append(task)

    @contextmanager
    def turn(self) -> Iterator[None]:
        self._depth += 1
        try:
            yield
        finally:
            self._depth -= 1
        if self._depth == 0:
            self.run_pending()

    def run_pending(self) -> int:
        """
        Drain the queue now.

        Returns
        -------
        int:
            Number of tasks run. Zero when called while a drain or a turn
            is already in progress (that drain will pick up the tasks).
        """
        if self._draining or self._depth > 0:
            return 0

        ran = 0
        self._draining = True
        try:
            while self._pending:
                task = self._pending.popleft()
                task()
                ran += 1
        finally:
            self._draining = False

        if ran:
            logger.debug("TurnScheduler: drained deferred tasks", extra={"task_count": ran})
        return ran

    def clear(self) -> int:
        """Drop queued tasks without running them; returns how many were dropped."""
        dropped = len(self._pending)
        self._pending.clear()
        return dropped
