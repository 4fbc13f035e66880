"""
Event Log Context Helpers for the eventchain EventBus.

Provides the LogContext used around each dispatch so every record logged
while listeners run (by the bus or by listener code) carries the event name
and the dispatch kind.

Only the number of positional arguments is recorded, never their values,
to avoid logging payload data by default.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

from eventchain.core.logging.logger import LogContext, get_log_context
from eventchain.event.types import ChainMode


def event_log_context(
    event_name: str,
    args: Sequence[Any],
    chain_mode: Optional[ChainMode] = None,
) -> LogContext:
    """
    Build a LogContext for one dispatch.

    A nested dispatch (a synthesized emit, or an emit issued by a listener)
    keeps the correlation id of the dispatch that caused it.

    Examples
    --------
    >>> with event_log_context("fetch", ("payload",)):
    ...     logger.info("dispatching")  # carries event_name="fetch"
    """
    return LogContext(
        event_name=event_name,
        operation="chain_delivery" if chain_mode is not None else "emit",
        correlation_id=get_log_context().get("correlation_id"),
        arg_count=len(args),
        chain_mode=chain_mode.name if chain_mode is not None else None,
    )
