"""
eventchain EventBus: synchronous pub/sub with dependency-chain completion.

Purpose
-------
Provides the EventBus class: a publish/subscribe bus whose listeners report
completion, and which synthesizes new emissions when a declared chain of
events has fully completed.

Responsibilities
----------------
- Register listeners (plain, once, prepended, protected, chain-bound)
- Enforce the per-event listener capacity, redirecting violations to
  'error' listeners when any exist
- Emit events synchronously through the Dispatcher
- Aggregate completion signals in the CompletionTally and defer each
  finalization to the end of the current turn
- Publish every finalized tally on the 'listening' tap, then feed it to the
  ChainEngine, which delivers synthesized emissions of chain owners
- Clear an event's chain and tally state when its last listener is removed
- Metrics collection and introspection

Design Decisions
----------------
- **Instance-owned state**: registry, tally, chain table and deferred queue
  belong to one bus; independent buses share nothing.
- **Explicit turns**: every public entry point runs inside a scheduler turn;
  deferred finalizations run when the outermost turn unwinds.
- **Listener exceptions propagate**: they are logged and counted, then
  re-raised to the caller of `emit` (or of the completion signal).
- **Config-driven defaults**: max_listeners and metrics fall back to Config.

Dependencies
------------
- eventchain.core.logging.logger (structured logging)
- eventchain.core.config (Config defaults)
- eventchain.event.registry / tally / chain / dispatcher / scheduler
- eventchain.event.metrics (EventMetricsRecorder, EventMetrics)
- eventchain.event.context (event_log_context)
"""

from __future__ import annotations

from collections.abc import Iterable
from functools import partial
from typing import Any, Optional, Tuple, Union

from eventchain.core.config import Config
from eventchain.core.exceptions import CapacityExceeded, ChainDeclarationError
from eventchain.core.logging.logger import get_logger
from eventchain.event.chain import ChainEngine
from eventchain.event.context import event_log_context
from eventchain.event.dispatcher import Dispatcher
from eventchain.event.metrics import EventMetrics, EventMetricsRecorder
from eventchain.event.registry import ListenerRegistry
from eventchain.event.scheduler import TurnScheduler
from eventchain.event.tally import CompletionTally
from eventchain.event.types import (
    ERROR_EVENT,
    LISTENING_EVENT,
    ChainMode,
    ChainSnapshot,
    ListenerCallback,
    ListenerRecord,
    TallyResult,
)

logger = get_logger(__name__)


class EventBus:
    """
    Synchronous event bus with dependency-chain completion.

    Every listener receives a completion signal as its first argument and
    must call it exactly once (``done()`` or ``done(True)`` on failure).
    Once all listeners of a firing have signalled, the firing's
    (total, success, failure) tally is published on 'listening' and applied
    to every chain containing the event.

    Thread Safety
    -------------
    Not thread-safe. All calls must come from the same thread.

    Examples
    --------
    >>> def report(done):
    ...     print("ordered")
    ...     done()
    >>> bus = EventBus()
    >>> _ = bus.on("fetch", lambda done, url: done())
    >>> _ = bus.on("parse", lambda done: done())
    >>> _ = bus.chain("report", ["fetch", "parse"], report)
    >>> bus.emit("fetch", "https://example.org")
    True
    >>> bus.emit("parse")
    ordered
    True
    """

    def __init__(
        self,
        max_listeners: Optional[int] = None,
        *,
        enable_metrics: Optional[bool] = None,
        registry: Optional[ListenerRegistry] = None,
        scheduler: Optional[TurnScheduler] = None,
        metrics: Optional[EventMetricsRecorder] = None,
    ) -> None:
        """
        Initialize EventBus.

        Parameters
        ----------
        max_listeners:
            Per-event listener capacity, 0 for unlimited. Uses
            Config.MAX_LISTENERS if None.
        enable_metrics:
            Whether to collect metrics. Uses Config.METRICS_ENABLED if None.
        registry:
            Optional ListenerRegistry instance. Creates default if None.
        scheduler:
            Optional TurnScheduler instance. Creates default if None.
        metrics:
            Optional EventMetricsRecorder. Creates default if None.
        """
        if max_listeners is None:
            max_listeners = Config.MAX_LISTENERS
        if enable_metrics is None:
            enable_metrics = Config.METRICS_ENABLED

        self._metrics: Optional[EventMetricsRecorder] = (
            (metrics or EventMetricsRecorder()) if enable_metrics else None
        )
        self._registry = registry or ListenerRegistry()
        self._registry.max_listeners = max_listeners
        self._scheduler = scheduler or TurnScheduler()
        self._tally = CompletionTally()
        self._chains = ChainEngine(self._deliver_chain, metrics=self._metrics)
        self._dispatcher = Dispatcher(self._registry, self._on_signal, metrics=self._metrics)

        logger.debug(
            "EventBus initialized",
            extra={
                "max_listeners": self._registry.max_listeners,
                "metrics_enabled": self._metrics is not None,
            },
        )

    # ------------------------------------------------------------------ #
    # Capacity
    # ------------------------------------------------------------------ #

    @property
    def max_listeners(self) -> int:
        """Per-event listener capacity; 0 means unlimited."""
        return self._registry.max_listeners

    def set_max_listeners(self, n: int) -> EventBus:
        """
        Set the per-event listener capacity.

        Lists already above the new capacity are kept; only later
        registrations are refused.

        Raises
        ------
        ValueError:
            If `n` is not a non-negative integer.
        """
        self._registry.max_listeners = n
        logger.debug("EventBus: capacity changed", extra={"max_listeners": n})
        return self

    # ------------------------------------------------------------------ #
    # Registration API
    # ------------------------------------------------------------------ #

    def register(
        self,
        event_name: str,
        callback: ListenerCallback,
        *,
        depends_on: Optional[Iterable[str]] = None,
        once: bool = False,
        prepend: bool = False,
        protected: bool = False,
        chain_mode: Optional[Union[ChainMode, int]] = None,
    ) -> EventBus:
        """
        Register a listener.

        Parameters
        ----------
        event_name:
            Event to listen to. For chain-bound listeners, the chain's owner
            event: synthesized emissions are delivered under this name.
        callback:
            Called as ``callback(done, *args)``; 'listening' listeners are
            called as ``callback(event_name, total, success, failure)``.
        depends_on:
            Dependency sequence declaring a chain. Copied; later changes to
            the caller's sequence have no effect.
        once:
            Remove the listener right after its first invocation.
        prepend:
            Insert at the front of the listener list instead of the back.
        protected:
            Exempt the listener from remove_listener / remove_all_listeners.
        chain_mode:
            Which chain completion to receive. Defaults to
            ChainMode.ORDERED when `depends_on` is given.

        Returns
        -------
        EventBus:
            The bus itself, so registrations can be chained.

        Raises
        ------
        ChainDeclarationError:
            If `depends_on` / `chain_mode` do not form a valid declaration.
        CapacityExceeded:
            If the event is at capacity and no 'error' listener exists.
        TypeError:
            If `callback` is not callable.

        Examples
        --------
        >>> bus.register("report", on_report, depends_on=["fetch", "parse"],
        ...              chain_mode=ChainMode.UNORDERED_ALL_SUCCESS, once=True)
        """
        if not callable(callback):
            raise TypeError(f"callback must be callable, got {type(callback).__name__}")

        dependencies = self._normalize_dependencies(event_name, depends_on, chain_mode)
        mode: Optional[ChainMode] = None
        if dependencies is not None:
            mode = self._normalize_chain_mode(event_name, chain_mode)

        record = ListenerRecord(
            callback=callback,
            once=once,
            protected=protected,
            chain_mode=mode,
            depends_on=dependencies,
        )

        try:
            self._registry.add_listener(event_name, record, prepend=prepend)
        except CapacityExceeded as exc:
            self._handle_capacity_exceeded(exc)
            return self

        if dependencies is not None:
            self._chains.declare(event_name, dependencies)

        if self._metrics is not None:
            self._metrics.increment_listener_count()

        logger.debug(
            "EventBus: registered listener",
            extra={
                "event_name": event_name,
                "listener": record.name,
                "once": once,
                "prepend": prepend,
                "protected": protected,
                "chain_mode": mode.name if mode else None,
                "dependencies": list(dependencies) if dependencies else None,
            },
        )
        return self

    def on(self, event_name: str, callback: ListenerCallback) -> EventBus:
        """Register a plain listener."""
        return self.register(event_name, callback)

    add_listener = on

    def once(self, event_name: str, callback: ListenerCallback) -> EventBus:
        """Register a listener that is removed after its first invocation."""
        return self.register(event_name, callback, once=True)

    def prepend_listener(self, event_name: str, callback: ListenerCallback) -> EventBus:
        return self.register(event_name, callback, prepend=True)

    def prepend_once_listener(self, event_name: str, callback: ListenerCallback) -> EventBus:
        return self.register(event_name, callback, once=True, prepend=True)

    def define(
        self,
        event_name: str,
        callback: ListenerCallback,
        *,
        prepend: bool = False,
    ) -> EventBus:
        """Register a protected listener that removal calls leave in place."""
        return self.register(event_name, callback, protected=True, prepend=prepend)

    def prepend_define(self, event_name: str, callback: ListenerCallback) -> EventBus:
        return self.register(event_name, callback, protected=True, prepend=True)

    def chain(
        self,
        event_name: str,
        depends_on: Iterable[str],
        callback: ListenerCallback,
        mode: Union[ChainMode, int] = ChainMode.ORDERED,
        *,
        once: bool = False,
        prepend: bool = False,
        protected: bool = False,
    ) -> EventBus:
        """
        Register a chain-bound listener.

        `callback` runs under `event_name` whenever every event in
        `depends_on` has completed and the cycle classifies as `mode`.
        """
        return self.register(
            event_name,
            callback,
            depends_on=depends_on,
            chain_mode=mode,
            once=once,
            prepend=prepend,
            protected=protected,
        )

    def chain_once(
        self,
        event_name: str,
        depends_on: Iterable[str],
        callback: ListenerCallback,
        mode: Union[ChainMode, int] = ChainMode.ORDERED,
        *,
        prepend: bool = False,
        protected: bool = False,
    ) -> EventBus:
        return self.chain(
            event_name,
            depends_on,
            callback,
            mode,
            once=True,
            prepend=prepend,
            protected=protected,
        )

    @staticmethod
    def _normalize_dependencies(
        event_name: str,
        depends_on: Optional[Iterable[str]],
        chain_mode: Optional[Union[ChainMode, int]],
    ) -> Optional[Tuple[str, ...]]:
        if depends_on is None:
            if chain_mode is not None:
                raise ChainDeclarationError(event_name, "chain_mode requires depends_on")
            return None

        if isinstance(depends_on, (str, bytes)):
            raise ChainDeclarationError(
                event_name, "depends_on must be a sequence of event names, not a string"
            )

        dependencies = tuple(depends_on)
        if not dependencies:
            raise ChainDeclarationError(event_name, "depends_on must not be empty")
        bad = [d for d in dependencies if not isinstance(d, str)]
        if bad:
            raise ChainDeclarationError(
                event_name, f"dependency names must be strings, got {bad!r}"
            )
        return dependencies

    @staticmethod
    def _normalize_chain_mode(
        event_name: str,
        chain_mode: Optional[Union[ChainMode, int]],
    ) -> ChainMode:
        if chain_mode is None:
            return ChainMode.ORDERED
        try:
            return ChainMode(chain_mode)
        except ValueError:
            raise ChainDeclarationError(
                event_name, f"unknown chain mode {chain_mode!r}"
            ) from None

    def _handle_capacity_exceeded(self, exc: CapacityExceeded) -> None:
        if self._metrics is not None:
            self._metrics.record_capacity_rejection(exc.event_name)

        if not self._registry.has_listeners(ERROR_EVENT):
            logger.warning(
                "EventBus: listener capacity exceeded",
                extra={"event_name": exc.event_name, "max_listeners": exc.max_listeners},
            )
            raise exc

        logger.warning(
            "EventBus: listener capacity exceeded, delivering to 'error' listeners",
            extra={"event_name": exc.event_name, "max_listeners": exc.max_listeners},
        )
        self.emit(ERROR_EVENT, exc)

    # ------------------------------------------------------------------ #
    # Removal API
    # ------------------------------------------------------------------ #

    def remove_listener(self, event_name: str, callback: ListenerCallback) -> int:
        """
        Remove every non-protected registration of `callback` for an event.

        Returns
        -------
        int:
            Number of listeners removed.
        """
        return self._remove(event_name, callback, remove_all=False)

    def remove_all_listeners(self, event_name: str) -> int:
        """
        Remove every non-protected listener for an event.

        Returns
        -------
        int:
            Number of listeners removed.
        """
        return self._remove(event_name, None, remove_all=True)

    def _remove(
        self,
        event_name: str,
        callback: Optional[ListenerCallback],
        *,
        remove_all: bool,
    ) -> int:
        removed = self._registry.remove_listeners(event_name, callback, remove_all=remove_all)

        if self._metrics is not None and removed:
            self._metrics.adjust_listener_count(-removed)

        if not self._registry.has_listeners(event_name):
            self._chains.clear(event_name)
            self._tally.clear(event_name)

        if removed:
            logger.debug(
                "EventBus: removed listeners",
                extra={"event_name": event_name, "removed": removed, "remove_all": remove_all},
            )
        return removed

    def clear(self) -> None:
        """
        Remove all listeners (protected included) and all chain, tally and
        deferred state. The bus stays usable afterwards.
        """
        total = self._registry.clear_all()
        self._chains.clear_all()
        self._tally.clear_all()
        dropped = self._scheduler.clear()

        if self._metrics is not None:
            self._metrics.reset_listener_count()

        logger.debug(
            "EventBus: cleared",
            extra={"previous_listener_count": total, "dropped_tasks": dropped},
        )

    # ------------------------------------------------------------------ #
    # Emit API
    # ------------------------------------------------------------------ #

    def emit(self, event_name: str, *args: Any) -> bool:
        """
        Emit an event to its listeners, synchronously.

        Each listener is called as ``callback(done, *args)``. Tally
        finalization (and any chain completion it causes) runs after this
        call's dispatch has unwound, before `emit` returns.

        Returns
        -------
        bool:
            True if the event had listeners.
        """
        if self._metrics is not None:
            self._metrics.record_emit(event_name)

        with self._scheduler.turn():
            had_listeners = self._registry.has_listeners(event_name)
            with event_log_context(event_name, args):
                self._dispatcher.dispatch(event_name, args)
        return had_listeners

    def run_pending(self) -> int:
        """
        Run deferred finalizations now.

        Only needed after a listener exception left work queued; returns the
        number of tasks run.
        """
        return self._scheduler.run_pending()

    # ------------------------------------------------------------------ #
    # Internal: tally and chain plumbing
    # ------------------------------------------------------------------ #

    def _on_signal(self, event_name: str, did_fail: bool, expected: int) -> None:
        with self._scheduler.turn():
            result = self._tally.record_completion(event_name, did_fail, expected)
            if result is not None:
                self._scheduler.post(partial(self._finalize, result))

    def _finalize(self, result: TallyResult) -> None:
        if self._metrics is not None:
            self._metrics.record_tally(result.event_name, result.failure)

        logger.debug(
            "EventBus: tally finalized",
            extra={
                "event_name": result.event_name,
                "total": result.total,
                "success": result.success,
                "failure": result.failure,
            },
        )

        listening_args = (result.event_name, result.total, result.success, result.failure)
        with event_log_context(LISTENING_EVENT, listening_args):
            self._dispatcher.dispatch(LISTENING_EVENT, listening_args)

        self._chains.on_finalize(result)

    def _deliver_chain(
        self,
        owner_event_name: str,
        mode: ChainMode,
        sorted_dependencies: Tuple[str, ...],
    ) -> None:
        with self._scheduler.turn():
            with event_log_context(owner_event_name, (), chain_mode=mode):
                self._dispatcher.dispatch(
                    owner_event_name,
                    (),
                    chain_mode=mode,
                    sorted_dependencies=sorted_dependencies,
                )

    # ------------------------------------------------------------------ #
    # Metrics & Introspection
    # ------------------------------------------------------------------ #

    def listener_count(self, event_name: Optional[str] = None) -> int:
        """Listeners for one event, or across all events when omitted."""
        if event_name is not None:
            return self._registry.get_listener_count(event_name)
        return self._registry.get_total_listener_count()

    def has_listeners(self, event_name: str) -> bool:
        return self._registry.has_listeners(event_name)

    def event_names(self) -> list[str]:
        return self._registry.get_event_names()

    def chain_state(self, owner_event_name: str) -> list[ChainSnapshot]:
        """Current arrival state of every chain declared under an event."""
        return self._chains.snapshots(owner_event_name)

    @property
    def pending_count(self) -> int:
        """Deferred finalizations waiting for the end of the current turn."""
        return self._scheduler.pending_count

    def get_metrics(self) -> Optional[EventMetrics]:
        """Immutable metrics snapshot, or None when metrics are disabled."""
        if self._metrics is None:
            return None
        return self._metrics.snapshot()

    def get_metrics_summary(self) -> dict[str, Any]:
        metrics = self.get_metrics()
        if metrics is None:
            return {}
        return metrics.get_summary()
