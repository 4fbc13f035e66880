"""
ListenerRegistry: Storage and lookup for EventBus listeners.

Purpose
-------
Stores, per event name, an ordered list of ListenerRecord entries and
enforces the per-event listener capacity.

Responsibilities
----------------
- Insert listeners at the front or back of an event's list
- Enforce a configurable capacity (0 = unlimited) at registration time
- Remove listeners by callback or in bulk, sparing protected listeners
- Remove a single record after a once-listener fires
- Provide introspection (counts, event names)

Design Decisions
----------------
- **Insertion order is execution order**: no sorting. Prepended listeners
  precede appended ones.
- **Identity membership**: `contains` lets a dispatch iterating a snapshot
  skip records that listener code removed mid-dispatch.
- **Empty lists are dropped**: an event whose last listener goes away has
  no key, which the bus uses to clear that event's chain and tally state.
- **No async/await**: the bus is single-threaded and synchronous.
"""

from __future__ import annotations

from typing import Optional

from eventchain.core.exceptions import CapacityExceeded
from eventchain.event.types import ListenerCallback, ListenerRecord


class ListenerRegistry:
    """
    Registry of listeners keyed by event name.

    Thread Safety
    -------------
    Not thread-safe. All access happens on the thread that owns the bus.

    Examples
    --------
    >>> registry = ListenerRegistry(max_listeners=2)
    >>> registry.add_listener("x", ListenerRecord(callback=print))
    >>> registry.get_listener_count("x")
    1
    """

    def __init__(self, max_listeners: int = 10) -> None:
        self._listeners: dict[str, list[ListenerRecord]] = {}
        self._max_listeners = 0
        self.max_listeners = max_listeners

    # ------------------------------------------------------------------ #
    # Capacity
    # ------------------------------------------------------------------ #

    @property
    def max_listeners(self) -> int:
        """Per-event capacity; 0 means unlimited."""
        return self._max_listeners

    @max_listeners.setter
    def max_listeners(self, value: int) -> None:
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValueError(f"max_listeners must be a non-negative integer, got {value!r}")
        self._max_listeners = value

    def check_capacity(self, event_name: str) -> None:
        """
        Raise CapacityExceeded if `event_name` cannot take another listener.

        Existing lists above a lowered capacity are left alone; only new
        registrations are refused.
        """
        if self._max_listeners and len(self._listeners.get(event_name, ())) >= self._max_listeners:
            raise CapacityExceeded(event_name, self._max_listeners)

    # ------------------------------------------------------------------ #
    # Modification
    # ------------------------------------------------------------------ #

    def add_listener(
        self,
        event_name: str,
        record: ListenerRecord,
        *,
        prepend: bool = False,
    ) -> None:
        """
        Register a listener record.

        Raises
        ------
        CapacityExceeded:
            If the event already holds `max_listeners` records.
        """
        self.check_capacity(event_name)

        listeners = self._listeners.setdefault(event_name, [])
        if prepend:
            listeners.insert(0, record)
        else:
            listeners.append(record)

    def remove_listeners(
        self,
        event_name: str,
        callback: Optional[ListenerCallback] = None,
        *,
        remove_all: bool = False,
    ) -> int:
        """
        Remove non-protected records for an event.

        Parameters
        ----------
        event_name:
            Event to remove from.
        callback:
            Remove records whose callback equals this one.
        remove_all:
            Remove every non-protected record regardless of callback.

        Returns
        -------
        int:
            Number of records removed.
        """
        listeners = self._listeners.get(event_name)
        if listeners is None:
            return 0

        kept = [
            record
            for record in listeners
            if record.protected or not (remove_all or record.callback == callback)
        ]
        removed = len(listeners) - len(kept)
        listeners[:] = kept

        if not listeners:
            del self._listeners[event_name]

        return removed

    def discard_record(self, event_name: str, record: ListenerRecord) -> Optional[int]:
        """
        Remove one specific record (by identity), e.g. after a once-listener fired.

        Returns
        -------
        Optional[int]:
            The index the record occupied, or None if it was already gone.
        """
        listeners = self._listeners.get(event_name)
        if listeners is None:
            return None

        for index, candidate in enumerate(listeners):
            if candidate is record:
                del listeners[index]
                if not listeners:
                    del self._listeners[event_name]
                return index
        return None

    def clear_all(self) -> int:
        """Remove all listeners (protected included) and return previous total count."""
        total = self.get_total_listener_count()
        self._listeners.clear()
        return total

    # ------------------------------------------------------------------ #
    # Lookup & Introspection
    # ------------------------------------------------------------------ #

    def get_listeners(self, event_name: str) -> list[ListenerRecord]:
        """
        Return the live listener list for an event.

        The returned list is the registry's own list (or a fresh empty one
        when none exist); callers must not mutate it.
        """
        return self._listeners.get(event_name, [])

    def contains(self, event_name: str, record: ListenerRecord) -> bool:
        """True if this exact record is still registered for the event."""
        return any(candidate is record for candidate in self._listeners.get(event_name, ()))

    def has_listeners(self, event_name: str) -> bool:
        return bool(self._listeners.get(event_name))

    def get_listener_count(self, event_name: str) -> int:
        return len(self._listeners.get(event_name, ()))

    def get_total_listener_count(self) -> int:
        return sum(len(listeners) for listeners in self._listeners.values())

    def get_event_names(self) -> list[str]:
        """Event names with at least one listener, in first-registration order."""
        return list(self._listeners.keys())
