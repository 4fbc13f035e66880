"""
Metrics Collection for the eventchain EventBus.

Purpose
-------
Provides metrics tracking for the event bus: emits, finalized tallies,
chain completions, capacity rejections and listener failures.

Responsibilities
----------------
- Track emits per event name
- Track finalized tallies and listener-reported failures per event name
- Track listener exceptions per event name
- Track chain completions per ChainMode and duplicate-arrival resets
- Track capacity rejections and the current listener total
- Produce immutable snapshots for safe external consumption

Design Decisions
----------------
- **Mutable recorder + immutable snapshot**: EventMetricsRecorder for tracking,
  EventMetrics (frozen) for reading
- **defaultdict for counters**: Simplifies increment logic
- **Listener count clamping**: Never allows negative listener counts
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

from eventchain.event.types import ChainMode


@dataclass(frozen=True)
class EventMetrics:
    """
    Immutable snapshot of event bus metrics.

    Attributes
    ----------
    events_emitted:
        Event name -> emit count (public emits only).
    tallies_finalized:
        Event name -> number of firings whose tally finalized.
    listener_failures:
        Event name -> completion signals that reported failure.
    listener_errors:
        Event name -> exceptions raised by listeners.
    chain_completions:
        ChainMode name -> completed cycles classified with that mode.
    malformed_resets:
        Owner event name -> cycles discarded for duplicate arrivals.
    capacity_rejections:
        Event name -> registrations refused for capacity.
    total_listeners:
        Current total number of registered listeners.
    """

    events_emitted: dict[str, int] = field(default_factory=dict)
    tallies_finalized: dict[str, int] = field(default_factory=dict)
    listener_failures: dict[str, int] = field(default_factory=dict)
    listener_errors: dict[str, int] = field(default_factory=dict)
    chain_completions: dict[str, int] = field(default_factory=dict)
    malformed_resets: dict[str, int] = field(default_factory=dict)
    capacity_rejections: dict[str, int] = field(default_factory=dict)
    total_listeners: int = 0

    def get_summary(self) -> dict[str, Any]:
        """
        Generate a formatted summary of metrics.

        Examples
        --------
        >>> metrics = EventMetrics(
        ...     tallies_finalized={"fetch": 4},
        ...     listener_failures={"fetch": 1},
        ... )
        >>> metrics.get_summary()["failure_rate"]
        25.0
        """
        total_tallies = sum(self.tallies_finalized.values())
        total_failures = sum(self.listener_failures.values())

        # Failed completion signals per finalized firing
        failure_rate = (total_failures / max(1, total_tallies)) * 100.0

        return {
            "total_events_emitted": sum(self.events_emitted.values()),
            "events_by_type": dict(self.events_emitted),
            "total_tallies_finalized": total_tallies,
            "total_listener_failures": total_failures,
            "total_listener_errors": sum(self.listener_errors.values()),
            "total_chain_completions": sum(self.chain_completions.values()),
            "chain_completions_by_mode": dict(self.chain_completions),
            "total_malformed_resets": sum(self.malformed_resets.values()),
            "total_capacity_rejections": sum(self.capacity_rejections.values()),
            "total_listeners": self.total_listeners,
            "failure_rate": round(failure_rate, 2),
        }


class EventMetricsRecorder:
    """
    Mutable metrics recorder for EventBus.

    Thread Safety
    -------------
    Not thread-safe. Used from the thread that owns the bus.

    Examples
    --------
    >>> recorder = EventMetricsRecorder()
    >>> recorder.record_emit("fetch")
    >>> recorder.increment_listener_count()
    >>> recorder.snapshot().total_listeners
    1
    """

    def __init__(self) -> None:
        self._events_emitted: defaultdict[str, int] = defaultdict(int)
        self._tallies_finalized: defaultdict[str, int] = defaultdict(int)
        self._listener_failures: defaultdict[str, int] = defaultdict(int)
        self._listener_errors: defaultdict[str, int] = defaultdict(int)
        self._chain_completions: defaultdict[str, int] = defaultdict(int)
        self._malformed_resets: defaultdict[str, int] = defaultdict(int)
        self._capacity_rejections: defaultdict[str, int] = defaultdict(int)
        self._total_listeners: int = 0

    def record_emit(self, event_name: str) -> None:
        self._events_emitted[event_name] += 1

    def record_tally(self, event_name: str, failure: int) -> None:
        """Record a finalized tally and the failures it carried."""
        self._tallies_finalized[event_name] += 1
        if failure:
            self._listener_failures[event_name] += failure

    def record_error(self, event_name: str) -> None:
        self._listener_errors[event_name] += 1

    def record_chain_completion(self, mode: ChainMode) -> None:
        self._chain_completions[mode.name] += 1

    def record_malformed_reset(self, owner_event_name: str) -> None:
        self._malformed_resets[owner_event_name] += 1

    def record_capacity_rejection(self, event_name: str) -> None:
        self._capacity_rejections[event_name] += 1

    @property
    def total_listeners(self) -> int:
        return self._total_listeners

    def increment_listener_count(self) -> None:
        self._total_listeners += 1

    def adjust_listener_count(self, delta: int) -> None:
        """
        Adjust the total listener count by a delta value.

        The count is clamped to 0 (never goes negative).

        Examples
        --------
        >>> recorder = EventMetricsRecorder()
        >>> recorder.adjust_listener_count(5)
        >>> recorder.adjust_listener_count(-7)
        >>> recorder.total_listeners
        0
        """
        self._total_listeners = max(0, self._total_listeners + delta)

    def reset_listener_count(self) -> None:
        self._total_listeners = 0

    def snapshot(self) -> EventMetrics:
        """
        Return an immutable snapshot of current metrics.

        Creates new dict instances to prevent accidental mutation leaks.
        """
        return EventMetrics(
            events_emitted=dict(self._events_emitted),
            tallies_finalized=dict(self._tallies_finalized),
            listener_failures=dict(self._listener_failures),
            listener_errors=dict(self._listener_errors),
            chain_completions=dict(self._chain_completions),
            malformed_resets=dict(self._malformed_resets),
            capacity_rejections=dict(self._capacity_rejections),
            total_listeners=self._total_listeners,
        )
