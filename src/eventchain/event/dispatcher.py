"""
Dispatcher: synchronous listener invocation for the EventBus.

Purpose
-------
Invokes the listeners registered for an event, in registration order, and
hands each one a completion signal as its first argument.

Responsibilities
----------------
- Resolve the live listener list for an event
- Filter chain-bound listeners during synthesized (chain) deliveries
- Prepend the completion signal (except for the 'listening' tap)
- Remove once-listeners right after their invocation without skipping or
  revisiting neighbours
- Report listener exceptions before letting them propagate

Execution Model
---------------
- Listeners run synchronously, one after another, on the caller's stack.
- The listener list is snapshotted when the dispatch starts; its length is
  what the completion tally waits for. Listeners added mid-dispatch (at
  either end) are not invoked by it. Listeners removed mid-dispatch are
  skipped if they have not run yet.
- During a chain delivery, listeners without a dependency sequence are
  invoked as usual; chain-bound listeners only when both their chain mode
  and their (sorted) dependency sequence match the delivery.
- An exception raised by a listener aborts the remaining iteration.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Sequence, Tuple

from eventchain.core.logging.logger import get_logger
from eventchain.event.errors import report_listener_error
from eventchain.event.metrics import EventMetricsRecorder
from eventchain.event.registry import ListenerRegistry
from eventchain.event.types import LISTENING_EVENT, ChainMode, CompletionSignal

logger = get_logger(__name__)

# on_signal(event_name, did_fail, expected)
SignalSink = Callable[[str, bool, int], None]


class Dispatcher:
    """
    Invokes listeners for one event at a time.

    Examples
    --------
    >>> dispatcher = Dispatcher(registry, on_signal=tally_sink)
    >>> dispatcher.dispatch("fetch", ("https://example.org",))
    2
    """

    def __init__(
        self,
        registry: ListenerRegistry,
        on_signal: SignalSink,
        metrics: Optional[EventMetricsRecorder] = None,
    ) -> None:
        self._registry = registry
        self._on_signal = on_signal
        self._metrics = metrics

    def make_signal(self, event_name: str, expected: int) -> CompletionSignal:
        """
        Build the completion signal shared by every listener of one dispatch.

        Listeners call it once when their work is done, with ``failed=True``
        if it did not succeed.
        """
        on_signal = self._on_signal

        def done(failed: bool = False) -> None:
            on_signal(event_name, bool(failed), expected)

        done.__qualname__ = f"done[{event_name}]"
        return done

    def dispatch(
        self,
        event_name: str,
        args: Sequence[Any] = (),
        *,
        chain_mode: Optional[ChainMode] = None,
        sorted_dependencies: Optional[Tuple[str, ...]] = None,
    ) -> int:
        """
        Invoke the listeners of `event_name`.

        Parameters
        ----------
        event_name:
            Event to dispatch.
        args:
            Positional arguments passed after the completion signal.
        chain_mode:
            Set for synthesized chain deliveries: the mode being delivered.
        sorted_dependencies:
            Set with `chain_mode`: the sorted dependency sequence of the
            completed chain.

        Returns
        -------
        int:
            Number of listeners invoked.
        """
        snapshot = tuple(self._registry.get_listeners(event_name))
        length = len(snapshot)
        if not length:
            logger.debug("Dispatcher: no listeners for event", extra={"event_name": event_name})
            return 0

        if event_name == LISTENING_EVENT:
            call_args = tuple(args)
        else:
            call_args = (self.make_signal(event_name, length), *args)

        is_chain_delivery = chain_mode is not None
        invoked = 0

        for record in snapshot:
            # Removed by an earlier listener of this dispatch
            if not self._registry.contains(event_name, record):
                continue

            if (
                is_chain_delivery
                and record.is_chain_bound
                and not record.matches_chain(chain_mode, sorted_dependencies)
            ):
                continue

            try:
                record.callback(*call_args)
            except Exception as exc:
                report_listener_error(
                    logger=logger,
                    event_name=event_name,
                    listener=record,
                    exc=exc,
                    metrics=self._metrics,
                )
                raise
            invoked += 1

            if record.once and self._registry.discard_record(event_name, record) is not None:
                if self._metrics is not None:
                    self._metrics.adjust_listener_count(-1)

        logger.debug(
            "Dispatcher: listeners invoked",
            extra={
                "event_name": event_name,
                "invoked": invoked,
                "listener_count": length,
                "chain_mode": chain_mode.name if chain_mode is not None else None,
            },
        )
        return invoked
