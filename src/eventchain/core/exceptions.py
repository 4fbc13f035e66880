"""
Exception hierarchy for the eventchain bus.

Purpose
-------
Define the structured exceptions raised (or handled internally) by the event
bus: listener capacity violations, invalid chain declarations, and malformed
chain arrivals detected by the chain engine.

Design Notes
------------
- All bus exceptions inherit from `EventChainException`.
- Each exception carries:
  - `message`: human-readable description
  - `details`: additional structured context (dict)
  - `severity`: `ErrorSeverity` value for logging decisions
  - `error_code`: short, stable identifier for programmatic use
- `get_error_severity` centralizes the lookup used when choosing a log level.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional, Sequence


class ErrorSeverity(Enum):
    """Error severity levels for logging."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"  # Handled locally (e.g. capacity redirected to 'error')
    ERROR = "error"
    CRITICAL = "critical"


class EventChainException(Exception):
    """
    Base exception for all eventchain errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error
        severity: Error severity level for logging handlers
        error_code: Optional code for programmatic handling

    Example:
        >>> raise EventChainException(
        ...     "Bus torn down",
        ...     {"event_name": "order.paid"}
        ... )
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message: str = message
        self.details: Dict[str, Any] = details or {}
        self.severity: ErrorSeverity = severity or self.DEFAULT_SEVERITY
        self.error_code: str = error_code or self.__class__.__name__
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"severity={self.severity.value!r}"
            ")"
        )


class CapacityExceeded(EventChainException):
    """
    Raised when registering a listener on an event that already holds the
    configured maximum number of listeners.

    The bus delivers this to 'error' listeners when any exist; otherwise it
    propagates to the caller of `register`.

    Args:
        event_name: Event whose listener list is full
        max_listeners: The configured (non-zero) capacity
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING

    def __init__(self, event_name: str, max_listeners: int) -> None:
        self.event_name = event_name
        self.max_listeners = max_listeners
        super().__init__(
            f"Listener capacity exceeded for '{event_name}': "
            f"maximum is {max_listeners}",
            details={"event_name": event_name, "max_listeners": max_listeners},
            error_code="CAPACITY_EXCEEDED",
        )


class ChainDeclarationError(EventChainException):
    """
    Raised when a registration carries an unusable chain declaration.

    Args:
        event_name: Owner event of the declaration
        reason: What is wrong with it
    """

    DEFAULT_SEVERITY = ErrorSeverity.ERROR

    def __init__(self, event_name: str, reason: str) -> None:
        self.event_name = event_name
        self.reason = reason
        super().__init__(
            f"Invalid chain declaration for '{event_name}': {reason}",
            details={"event_name": event_name, "reason": reason},
            error_code="CHAIN_DECLARATION_ERROR",
        )


class MalformedChainArrival(EventChainException):
    """
    Signals that a chain collected as many arrivals as it has members, but
    not the same members (a member fired twice within one cycle).

    Never reaches callers: the chain engine handles it by resetting the
    declaration without emitting.

    Args:
        owner_event_name: Event the chain is declared under
        dependencies: Declared member sequence
        arrivals: Arrival sequence observed this cycle
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING

    def __init__(
        self,
        owner_event_name: str,
        dependencies: Sequence[str],
        arrivals: Sequence[str],
    ) -> None:
        self.owner_event_name = owner_event_name
        self.dependencies = tuple(dependencies)
        self.arrivals = tuple(arrivals)
        super().__init__(
            f"Chain under '{owner_event_name}' received arrivals that do not "
            "match its members",
            details={
                "owner_event_name": owner_event_name,
                "dependencies": list(self.dependencies),
                "arrivals": list(self.arrivals),
            },
            error_code="MALFORMED_CHAIN_ARRIVAL",
        )


def get_error_severity(exc: BaseException) -> ErrorSeverity:
    """
    Get the severity level of an exception for logging.

    Args:
        exc: Exception to check

    Returns:
        ErrorSeverity level.
    """
    if isinstance(exc, EventChainException):
        return exc.severity
    return ErrorSeverity.ERROR


__all__ = [
    "ErrorSeverity",
    "EventChainException",
    "CapacityExceeded",
    "ChainDeclarationError",
    "MalformedChainArrival",
    "get_error_severity",
]
