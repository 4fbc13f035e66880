"""
CompletionTally: per-event aggregation of listener completion signals.

Each listener invoked for an event is expected to call its completion signal
exactly once, optionally reporting failure. The tally counts those signals per
event name and, once the count reaches the number of listeners the dispatch
saw, finalizes a (total, success, failure) triple and resets.

The tally itself is synchronous; the bus is responsible for deferring what
happens with a finalized result.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from eventchain.event.types import TallyResult


@dataclass(slots=True)
class _TallyEntry:
    count: int = 0
    error_count: int = 0


class CompletionTally:
    """
    Running completion counts, one entry per event name.

    Examples
    --------
    >>> tally = CompletionTally()
    >>> tally.record_completion("a", did_fail=False, expected=2) is None
    True
    >>> tally.record_completion("a", did_fail=True, expected=2)
    TallyResult(event_name='a', total=2, success=1, failure=1)
    """

    def __init__(self) -> None:
        self._entries: dict[str, _TallyEntry] = {}

    def record_completion(
        self,
        event_name: str,
        did_fail: bool,
        expected: int,
    ) -> Optional[TallyResult]:
        """
        Count one completion signal.

        Parameters
        ----------
        event_name:
            Event whose listener signalled.
        did_fail:
            Whether the listener reported failure.
        expected:
            Listener-list length captured when the signalling dispatch began.

        Returns
        -------
        Optional[TallyResult]:
            The finalized result when this signal completes the firing,
            otherwise None. The entry is reset to zero on finalization.
        """
        entry = self._entries.setdefault(event_name, _TallyEntry())
        entry.count += 1
        if did_fail:
            entry.error_count += 1

        if entry.count < expected:
            return None

        result = TallyResult(
            event_name=event_name,
            total=entry.count,
            success=entry.count - entry.error_count,
            failure=entry.error_count,
        )
        self._entries[event_name] = _TallyEntry()
        return result

    def pending(self, event_name: str) -> tuple[int, int]:
        """Current (count, error_count) for an event that has not finalized yet."""
        entry = self._entries.get(event_name)
        if entry is None:
            return (0, 0)
        return (entry.count, entry.error_count)

    def clear(self, event_name: str) -> None:
        self._entries.pop(event_name, None)

    def clear_all(self) -> None:
        self._entries.clear()
