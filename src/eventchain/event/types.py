"""
Core Event Types for the eventchain bus.

Purpose
-------
Provides the type definitions shared by the registry, tally, chain engine
and dispatcher.

Responsibilities
----------------
- Define the six chain completion modes (ChainMode)
- Define ListenerRecord, the registry's per-listener entry
- Define TallyResult, the finalized (total, success, failure) triple
- Define ChainSnapshot, a read-only view of a chain declaration
- Name the reserved event names and callback type aliases

Chain Modes
-----------
=====  =========  ==============
value  order      outcome
=====  =========  ==============
1      ordered    any (base)
2      ordered    all succeeded
3      ordered    all failed
4      unordered  any (base)
5      unordered  all succeeded
6      unordered  all failed
=====  =========  ==============

"Ordered" means the arrival sequence is element-wise identical to the
declared dependency sequence, not merely the same multiset.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Callable, Optional, Tuple

# Reserved event names
ERROR_EVENT = "error"
LISTENING_EVENT = "listening"

# Completion signal handed to every listener as its first argument.
# Call it once; pass True when the listener's work failed.
CompletionSignal = Callable[..., None]

# Listener callbacks receive the completion signal followed by the emit args.
# 'listening' listeners receive (event_name, total, success, failure) only.
ListenerCallback = Callable[..., Any]


class ChainMode(IntEnum):
    """Classification of a completed chain cycle."""

    ORDERED = 1
    ORDERED_ALL_SUCCESS = 2
    ORDERED_ALL_FAILED = 3
    UNORDERED = 4
    UNORDERED_ALL_SUCCESS = 5
    UNORDERED_ALL_FAILED = 6

    @property
    def is_ordered(self) -> bool:
        return self.value <= 3

    @property
    def base(self) -> ChainMode:
        """The 'any outcome' mode with the same ordering."""
        return ChainMode.ORDERED if self.is_ordered else ChainMode.UNORDERED

    @classmethod
    def classify(cls, ordered: bool, all_success: bool, all_failed: bool) -> ChainMode:
        """
        Pick the most specific mode for a completed cycle.

        Examples
        --------
        >>> ChainMode.classify(ordered=True, all_success=True, all_failed=False)
        <ChainMode.ORDERED_ALL_SUCCESS: 2>
        >>> ChainMode.classify(ordered=False, all_success=False, all_failed=False)
        <ChainMode.UNORDERED: 4>
        """
        if all_success:
            return cls.ORDERED_ALL_SUCCESS if ordered else cls.UNORDERED_ALL_SUCCESS
        if all_failed:
            return cls.ORDERED_ALL_FAILED if ordered else cls.UNORDERED_ALL_FAILED
        return cls.ORDERED if ordered else cls.UNORDERED


@dataclass(slots=True, frozen=True, eq=False)
class ListenerRecord:
    """
    A registered listener.

    Records compare by identity so the same callback can be registered
    twice and each registration removed independently by once-semantics.

    Attributes
    ----------
    callback:
        Callable invoked on dispatch.
    once:
        Remove the record right after its first invocation.
    protected:
        Exempt from remove_listener / remove_all_listeners.
    chain_mode:
        Chain classification this listener is bound to, or None.
    depends_on:
        Private copy of the declared dependency sequence, or None.
    """

    callback: ListenerCallback
    once: bool = False
    protected: bool = False
    chain_mode: Optional[ChainMode] = None
    depends_on: Optional[Tuple[str, ...]] = None

    @property
    def is_chain_bound(self) -> bool:
        return self.depends_on is not None

    def matches_chain(self, mode: ChainMode, sorted_dependencies: Tuple[str, ...]) -> bool:
        """True if a synthesized emission tagged `mode` for this chain should reach us."""
        if self.depends_on is None:
            return False
        return self.chain_mode == mode and tuple(sorted(self.depends_on)) == sorted_dependencies

    @property
    def name(self) -> str:
        return getattr(
            self.callback, "__qualname__", getattr(self.callback, "__name__", repr(self.callback))
        )


@dataclass(slots=True, frozen=True)
class TallyResult:
    """Outcome of one finalized firing of an event."""

    event_name: str
    total: int
    success: int
    failure: int


@dataclass(slots=True, frozen=True)
class ChainSnapshot:
    """Read-only view of one chain declaration's current cycle."""

    owner_event_name: str
    dependencies: Tuple[str, ...]
    arrivals: Tuple[str, ...]
    success_count: int


__all__ = [
    "ERROR_EVENT",
    "LISTENING_EVENT",
    "ChainMode",
    "ChainSnapshot",
    "CompletionSignal",
    "ListenerCallback",
    "ListenerRecord",
    "TallyResult",
]
