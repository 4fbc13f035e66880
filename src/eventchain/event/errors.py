"""
Error Handling Helpers for the eventchain EventBus.

Purpose
-------
Centralized reporting for exceptions raised by listener callbacks.

The bus does not isolate listener failures: an exception aborts the
remaining iteration of that dispatch and propagates to the caller of
`emit`, exactly like an ordinary synchronous call. This helper only makes
sure the failure is logged with full context and counted before it
propagates.
"""

from __future__ import annotations

import logging
from logging import Logger
from typing import Optional

from eventchain.core.exceptions import ErrorSeverity, get_error_severity
from eventchain.event.metrics import EventMetricsRecorder
from eventchain.event.types import ListenerRecord

_SEVERITY_LEVELS = {
    ErrorSeverity.DEBUG: logging.DEBUG,
    ErrorSeverity.INFO: logging.INFO,
    ErrorSeverity.WARNING: logging.WARNING,
    ErrorSeverity.ERROR: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
}


def report_listener_error(
    *,
    logger: Logger,
    event_name: str,
    listener: ListenerRecord,
    exc: BaseException,
    metrics: Optional[EventMetricsRecorder],
) -> None:
    """
    Log a listener exception and update metrics.

    Never raises; the caller re-raises `exc` afterwards.

    Examples
    --------
    >>> try:
    ...     record.callback(signal, *args)
    ... except Exception as exc:
    ...     report_listener_error(
    ...         logger=logger,
    ...         event_name="fetch",
    ...         listener=record,
    ...         exc=exc,
    ...         metrics=metrics_recorder,
    ...     )
    ...     raise
    """
    if metrics is not None:
        metrics.record_error(event_name)

    logger.log(
        _SEVERITY_LEVELS[get_error_severity(exc)],
        "EventBus listener raised",
        extra={
            "event_name": event_name,
            "listener": listener.name,
            "chain_mode": listener.chain_mode.name if listener.chain_mode else None,
            "error": str(exc),
            "error_type": type(exc).__name__,
        },
        exc_info=exc,
    )
