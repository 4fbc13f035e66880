"""
Core infrastructure layer for eventchain.

Purpose
-------
Provide a single import surface for the infrastructure the event bus is
built on:

- Configuration (Config)
- Logging (structured logging, logger factory, LogContext)
- Exceptions (EventChainException hierarchy)

Design Decisions
----------------
- This module is intentionally thin: no logic, no configuration, no I/O.
- Public API is explicit via __all__.
"""

from __future__ import annotations

from eventchain.core.config import Config, ConfigError, ConfigValidationError
from eventchain.core.exceptions import (
    CapacityExceeded,
    ChainDeclarationError,
    ErrorSeverity,
    EventChainException,
    MalformedChainArrival,
    get_error_severity,
)
from eventchain.core.logging import LogContext, get_logger, setup_logging, shutdown_logging

__all__ = [
    # Config
    "Config",
    "ConfigError",
    "ConfigValidationError",
    # Exceptions
    "ErrorSeverity",
    "EventChainException",
    "CapacityExceeded",
    "ChainDeclarationError",
    "MalformedChainArrival",
    "get_error_severity",
    # Logging
    "LogContext",
    "get_logger",
    "setup_logging",
    "shutdown_logging",
]
