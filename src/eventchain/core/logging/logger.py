"""
eventchain Logging Subsystem

Purpose
-------
Provide the structured logging used throughout the event bus:

- Structured JSON logs for aggregation and analysis.
- LogContext-based propagation of operation context via ContextVars.
- Correlation IDs for tracing one emit through tally finalization and
  chain completion.
- Queue-based handler pipeline (QueueHandler + QueueListener) so listener
  code never blocks on log I/O.
- Bounded log queue: overflowing records are dropped and counted, never
  blocking an emit.
- Hybrid output:
  - Console handler (JSON in production; in development, text with the
    dispatch context appended, colored on a TTY).
  - Optional rotating JSON file handler.
- Health counters (enqueued, dropped, handler errors) via get_logging_health.

Design Decisions
----------------
- The library never configures logging on import; applications (or tests)
  call setup_logging() explicitly. Without it, records flow to whatever the
  host application configured. setup_logging() sets the root handlers
  aside and shutdown_logging() puts them back.
- ContextFilter uses ContextVars to enrich records with event_name,
  operation, component and correlation_id.
- Extra fields passed via `logger.info("msg", extra={...})` are merged into JSON.

Dependencies
------------
- eventchain.core.config.Config
"""

from __future__ import annotations

import json
import logging
import queue
import sys
import uuid
from contextvars import ContextVar, Token
from dataclasses import dataclass
from datetime import datetime, timezone
from logging import Logger
from logging.handlers import (
    QueueHandler,
    QueueListener,
    TimedRotatingFileHandler,
)
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO, Tuple

from eventchain.core.config import Config


# ============================================================================
# Operation Context (ContextVars)
# ============================================================================

_log_context: ContextVar[Dict[str, Any]] = ContextVar(
    "eventchain_log_context",
    default={},
)


# ============================================================================
# Config / Environment
# ============================================================================


@dataclass(frozen=True, slots=True)
class LoggerConfig:
    """Configuration for the logging subsystem."""

    CONSOLE_FORMAT: str = "%(asctime)s | %(levelname)-8s | %(name)-30s | %(message)s"
    DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"

    DAILY_BASENAME: str = "eventchain.json.log"
    DAILY_BACKUP_COUNT: int = 1

    QUEUE_MAX_SIZE: int = 10_000

    @property
    def environment(self) -> str:
        return str(Config.ENVIRONMENT).lower()

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def logs_dir(self) -> Path:
        return Path(Config.LOGS_DIR).resolve()

    @property
    def log_level(self) -> int:
        level_name = Config.LOG_LEVEL
        if not isinstance(level_name, str):
            level_name = "INFO"
        return getattr(logging, level_name.upper(), logging.INFO)

    @property
    def use_json(self) -> bool:
        if Config.LOG_JSON is None:
            return self.is_production
        return bool(Config.LOG_JSON)

    @property
    def use_colors(self) -> bool:
        if self.is_production or self.use_json:
            return False
        return bool(Config.LOG_COLORS)

    @property
    def use_file(self) -> bool:
        return bool(Config.LOG_TO_FILE)


LOGGER_CONFIG = LoggerConfig()


# ============================================================================
# Logging Metrics / Health
# ============================================================================


@dataclass(slots=True)
class LoggingMetrics:
    records_enqueued: int = 0
    records_dropped: int = 0
    handler_errors: int = 0


@dataclass(frozen=True, slots=True)
class LoggingHealth:
    """Point-in-time view of the logging pipeline."""

    initialized: bool
    queue_size: int
    queue_max_size: int
    records_enqueued: int
    records_dropped: int
    handler_errors: int

    @property
    def degraded(self) -> bool:
        """True once any record was dropped or failed to reach its output."""
        return self.records_dropped > 0 or self.handler_errors > 0


_logging_metrics: LoggingMetrics = LoggingMetrics()
_log_queue: Optional["queue.Queue[logging.LogRecord]"] = None
_queue_listener: Optional[QueueListener] = None

# Root state replaced by setup_logging, put back by shutdown_logging
_displaced_handlers: List[logging.Handler] = []
_displaced_level: int = logging.WARNING

_INITIALIZED_FLAG = "_eventchain_logging_initialized"


# ============================================================================
# Filters & Formatters
# ============================================================================


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        context: Dict[str, Any] = _log_context.get({})

        # Explicit extra= fields win over ambient context
        if not hasattr(record, "event_name"):
            record.event_name = context.get("event_name", "N/A")
        record.operation = context.get("operation", "N/A")
        record.correlation_id = context.get("correlation_id", "N/A")
        record.component = context.get("component") or record.name.split(".", 1)[0]

        for key, value in context.items():
            if not hasattr(record, key):
                setattr(record, key, value)

        return True


def _context_value(record: logging.LogRecord, attr: str) -> Optional[Any]:
    value = getattr(record, attr, None)
    return None if value in (None, "N/A") else value


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable console output for development.

    Records logged while a dispatch is running get a trailing
    ``[event=... op=... mode=... cid=...]`` block built from the log context,
    so nested emits and chain deliveries can be told apart. Level names are
    colored when `use_colors` is set.
    """

    LEVEL_COLORS: Dict[str, str] = {
        "DEBUG": "\033[90m",
        "INFO": "\033[94m",
        "WARNING": "\033[93m",
        "ERROR": "\033[91m",
        "CRITICAL": "\033[91m\033[1m",
    }
    RESET = "\033[0m"

    # (record attribute, label) in output order
    DISPATCH_FIELDS: Tuple[Tuple[str, str], ...] = (
        ("event_name", "event"),
        ("operation", "op"),
        ("chain_mode", "mode"),
        ("correlation_id", "cid"),
    )

    def __init__(self, use_colors: bool = False) -> None:
        super().__init__(fmt=LOGGER_CONFIG.CONSOLE_FORMAT, datefmt=LOGGER_CONFIG.DATE_FORMAT)
        self.use_colors = use_colors

    def dispatch_suffix(self, record: logging.LogRecord) -> str:
        parts = [
            f"{label}={value}"
            for attr, label in self.DISPATCH_FIELDS
            if (value := _context_value(record, attr)) is not None
        ]
        return f" [{' '.join(parts)}]" if parts else ""

    def formatMessage(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        level_name = record.levelname
        color = self.LEVEL_COLORS.get(level_name) if self.use_colors else None
        if color:
            record.levelname = f"{color}{level_name}{self.RESET}"
        try:
            return super().formatMessage(record) + self.dispatch_suffix(record)
        finally:
            record.levelname = level_name


class JSONFormatter(logging.Formatter):
    """One JSON object per record; fields passed via ``extra=`` go under "extra"."""

    # Attributes every LogRecord carries, plus those added by Formatter.format
    STANDARD_ATTRS = frozenset(
        vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
    ) | {"message", "asctime", "taskName"}

    CONTEXT_ATTRS = (
        "event_name",
        "operation",
        "correlation_id",
        "component",
    )

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for attr in self.CONTEXT_ATTRS:
            value = _context_value(record, attr)
            if value is not None:
                log_data[attr] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in self.STANDARD_ATTRS
            and key not in self.CONTEXT_ATTRS
            and not key.startswith("_")
        }
        if extra:
            log_data["extra"] = extra

        return json.dumps(log_data, ensure_ascii=False, default=repr)


# ============================================================================
# Handlers
# ============================================================================


class EventChainQueueHandler(QueueHandler):
    """
    Non-blocking front of the pipeline.

    Listener code logs from inside emit; a full queue must never block it,
    so records that do not fit are dropped and counted instead.
    """

    def enqueue(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            _logging_metrics.records_dropped += 1
            if _logging_metrics.records_dropped == 1:
                sys.stderr.write("eventchain logging queue full; dropping log records.\n")
            return
        _logging_metrics.records_enqueued += 1


class _CountsHandlerErrors:
    def handleError(self, record: logging.LogRecord) -> None:
        _logging_metrics.handler_errors += 1
        super().handleError(record)  # type: ignore[misc]


class ConsoleHandler(_CountsHandlerErrors, logging.StreamHandler):
    pass


class DailyFileHandler(_CountsHandlerErrors, TimedRotatingFileHandler):
    pass


def _build_console_handler(stream: Optional[TextIO] = None) -> logging.Handler:
    stream = stream or sys.stdout
    handler = ConsoleHandler(stream)
    handler.setLevel(LOGGER_CONFIG.log_level)

    if LOGGER_CONFIG.use_json:
        handler.setFormatter(JSONFormatter())
    else:
        is_tty = getattr(stream, "isatty", None)
        handler.setFormatter(
            ConsoleFormatter(use_colors=LOGGER_CONFIG.use_colors and bool(is_tty and is_tty()))
        )
    return handler


def _build_daily_file_handler() -> logging.Handler:
    LOGGER_CONFIG.logs_dir.mkdir(parents=True, exist_ok=True)

    handler = DailyFileHandler(
        filename=str(LOGGER_CONFIG.logs_dir / LOGGER_CONFIG.DAILY_BASENAME),
        when="midnight",
        backupCount=LOGGER_CONFIG.DAILY_BACKUP_COUNT,
        encoding="utf-8",
        utc=True,
    )
    handler.setLevel(LOGGER_CONFIG.log_level)
    handler.setFormatter(JSONFormatter())
    return handler


# ============================================================================
# Global Setup
# ============================================================================


def setup_logging(stream: Optional[TextIO] = None) -> None:
    """
    Route the root logger through the eventchain queue pipeline.

    The root logger's existing handlers and level are set aside and restored
    by `shutdown_logging`. Calling it again while installed does nothing.

    Parameters
    ----------
    stream:
        Console destination; sys.stdout if None.
    """
    global _queue_listener, _logging_metrics, _log_queue, _displaced_handlers, _displaced_level

    root = logging.getLogger()
    if getattr(root, _INITIALIZED_FLAG, False):
        return

    _logging_metrics = LoggingMetrics()

    outputs = [_build_console_handler(stream)]
    if LOGGER_CONFIG.use_file:
        outputs.append(_build_daily_file_handler())

    _log_queue = queue.Queue(LOGGER_CONFIG.QUEUE_MAX_SIZE)
    _queue_listener = QueueListener(_log_queue, *outputs, respect_handler_level=True)
    _queue_listener.start()

    # Filter on the handler so records from child loggers are enriched too
    queue_handler = EventChainQueueHandler(_log_queue)
    queue_handler.setLevel(LOGGER_CONFIG.log_level)
    queue_handler.addFilter(ContextFilter())

    _displaced_handlers = list(root.handlers)
    _displaced_level = root.level
    for handler in _displaced_handlers:
        root.removeHandler(handler)
    root.setLevel(LOGGER_CONFIG.log_level)
    root.addHandler(queue_handler)
    setattr(root, _INITIALIZED_FLAG, True)

    logging.getLogger(__name__).info(
        "Logging initialized",
        extra={
            "environment": LOGGER_CONFIG.environment,
            "log_level": logging.getLevelName(LOGGER_CONFIG.log_level),
            "json": LOGGER_CONFIG.use_json,
            "file": LOGGER_CONFIG.use_file,
            "queue_max_size": LOGGER_CONFIG.QUEUE_MAX_SIZE,
        },
    )


def shutdown_logging() -> None:
    """
    Flush and close the pipeline, then restore the root logger's previous
    handlers and level. No-op when logging was never set up.
    """
    global _queue_listener, _log_queue, _displaced_handlers

    root = logging.getLogger()
    if not getattr(root, _INITIALIZED_FLAG, False):
        return

    logging.getLogger(__name__).info("Shutting down logging subsystem")

    if _queue_listener is not None:
        # stop() processes everything still queued before returning
        _queue_listener.stop()
        for handler in _queue_listener.handlers:
            handler.flush()
            handler.close()
        _queue_listener = None

    for handler in list(root.handlers):
        if isinstance(handler, EventChainQueueHandler):
            root.removeHandler(handler)
            handler.close()

    for handler in _displaced_handlers:
        root.addHandler(handler)
    root.setLevel(_displaced_level)
    _displaced_handlers = []

    setattr(root, _INITIALIZED_FLAG, False)
    _log_queue = None


def get_logging_health() -> LoggingHealth:
    return LoggingHealth(
        initialized=bool(getattr(logging.getLogger(), _INITIALIZED_FLAG, False)),
        queue_size=_log_queue.qsize() if _log_queue is not None else 0,
        queue_max_size=_log_queue.maxsize if _log_queue is not None else 0,
        records_enqueued=_logging_metrics.records_enqueued,
        records_dropped=_logging_metrics.records_dropped,
        handler_errors=_logging_metrics.handler_errors,
    )


# ============================================================================
# Public API
# ============================================================================


def get_logger(name: str) -> Logger:
    return logging.getLogger(name)


class LogContext:
    """
    Scoped logging context.

    >>> with LogContext(event_name="order.paid", operation="emit"):
    ...     logger.info("dispatching")
    """

    def __init__(
        self,
        event_name: Optional[str] = None,
        operation: Optional[str] = None,
        component: Optional[str] = None,
        correlation_id: Optional[str] = None,
        **extra: Any,
    ) -> None:
        self.context: Dict[str, Any] = {
            **_log_context.get({}),
            "correlation_id": correlation_id or self._generate_correlation_id(),
            **extra,
        }
        if event_name is not None:
            self.context["event_name"] = event_name
        if operation is not None:
            self.context["operation"] = operation
        if component is not None:
            self.context["component"] = component

        self._token: Optional[Token[Dict[str, Any]]] = None

    @staticmethod
    def _generate_correlation_id() -> str:
        return str(uuid.uuid4())[:8]

    def __enter__(self) -> "LogContext":
        self._token = _log_context.set(self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _log_context.reset(self._token)


def set_log_context(
    event_name: Optional[str] = None,
    operation: Optional[str] = None,
    component: Optional[str] = None,
    correlation_id: Optional[str] = None,
    **extra: Any,
) -> None:
    current = _log_context.get({}).copy()

    if event_name is not None:
        current["event_name"] = event_name
    if operation is not None:
        current["operation"] = operation
    if component is not None:
        current["component"] = component
    if correlation_id:
        current["correlation_id"] = correlation_id

    current.update(extra)
    _log_context.set(current)


def get_log_context() -> Dict[str, Any]:
    return dict(_log_context.get({}))


def clear_log_context() -> None:
    _log_context.set({})
