"""Structured logging and metric hooks.

Log records are emitted as JSON lines carrying the request-scoped context
(request id, table and record being accessed) set by `RequestContext`.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
table_name_var: ContextVar[str | None] = ContextVar("table_name", default=None)
entity_id_var: ContextVar[str | None] = ContextVar("entity_id", default=None)


class LogLevel(str, Enum):
    """Log levels matching Python's logging module."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class LogContext:
    """Context data attached to every log entry."""

    request_id: str | None = None
    table_name: str | None = None
    entity_id: str | None = None

    @classmethod
    def current(cls) -> "LogContext":
        """Read the context from context variables."""
        return cls(
            request_id=request_id_var.get(),
            table_name=table_name_var.get(),
            entity_id=entity_id_var.get(),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, excluding unset values."""
        result = {}
        if self.request_id:
            result["request_id"] = self.request_id
        if self.table_name:
            result["table_name"] = self.table_name
        if self.entity_id:
            result["entity_id"] = self.entity_id
        return result


@dataclass
class LogEntry:
    """A structured log entry."""

    level: LogLevel
    message: str
    timestamp: str
    logger: str
    context: dict[str, Any] = field(default_factory=dict)
    error: dict[str, Any] | None = None
    duration_ms: float | None = None

    def to_json(self) -> str:
        data: dict[str, Any] = {
            "level": self.level.value,
            "message": self.message,
            "timestamp": self.timestamp,
            "logger": self.logger,
        }
        if self.context:
            data["context"] = self.context
        if self.error:
            data["error"] = self.error
        if self.duration_ms is not None:
            data["duration_ms"] = self.duration_ms
        return json.dumps(data, default=str)


class StructuredFormatter(logging.Formatter):
    """Formats log records as JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        context = LogContext.current().to_dict()
        if hasattr(record, "context") and isinstance(record.context, dict):
            context.update(record.context)

        error = None
        if record.exc_info:
            error = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else "Unknown",
                "message": str(record.exc_info[1]) if record.exc_info[1] else "",
            }

        entry = LogEntry(
            level=LogLevel(record.levelname),
            message=record.getMessage(),
            timestamp=datetime.now(timezone.utc).isoformat(),
            logger=record.name,
            context=context,
            error=error,
            duration_ms=getattr(record, "duration_ms", None),
        )
        return entry.to_json()


class StructuredLogger:
    """Thin wrapper over `logging.Logger` taking structured context.

    Example:
        logger = get_logger(__name__)
        logger.info("Token issued", context={"scope": "FILE"})
        logger.error("Listing failed", error=exc)
    """

    def __init__(self, name: str) -> None:
        # Level and handlers are inherited from the "record_files" logger
        # configured by configure_logging().
        self.logger = logging.getLogger(name)

    def _log(
        self,
        level: LogLevel,
        message: str,
        context: dict[str, Any] | None = None,
        error: Exception | None = None,
        duration_ms: float | None = None,
    ) -> None:
        extra: dict[str, Any] = {}
        if context:
            extra["context"] = context
        if duration_ms is not None:
            extra["duration_ms"] = duration_ms

        log_func = getattr(self.logger, level.value.lower())
        if error:
            log_func(message, exc_info=(type(error), error, error.__traceback__), extra=extra)
        else:
            log_func(message, extra=extra)

    def debug(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        duration_ms: float | None = None,
    ) -> None:
        self._log(LogLevel.DEBUG, message, context, duration_ms=duration_ms)

    def info(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        duration_ms: float | None = None,
    ) -> None:
        self._log(LogLevel.INFO, message, context, duration_ms=duration_ms)

    def warning(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        error: Exception | None = None,
    ) -> None:
        self._log(LogLevel.WARNING, message, context, error)

    def error(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        error: Exception | None = None,
        duration_ms: float | None = None,
    ) -> None:
        self._log(LogLevel.ERROR, message, context, error, duration_ms)


class RequestContext:
    """Context manager binding request-scoped logging context.

    Example:
        async with RequestContext(table_name="notes", entity_id="abc-123"):
            logger.info("Listing files")
    """

    def __init__(
        self,
        request_id: str | None = None,
        table_name: str | None = None,
        entity_id: str | None = None,
    ) -> None:
        self.request_id = request_id or str(uuid.uuid4())
        self.table_name = table_name
        self.entity_id = entity_id
        self._tokens: list[tuple[ContextVar, Any]] = []

    def __enter__(self) -> "RequestContext":
        self._tokens.append((request_id_var, request_id_var.set(self.request_id)))
        if self.table_name:
            self._tokens.append((table_name_var, table_name_var.set(self.table_name)))
        if self.entity_id:
            self._tokens.append((entity_id_var, entity_id_var.set(self.entity_id)))
        return self

    def __exit__(self, *args: Any) -> None:
        # Reset in reverse order so nested sets unwind correctly
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()

    async def __aenter__(self) -> "RequestContext":
        return self.__enter__()

    async def __aexit__(self, *args: Any) -> None:
        self.__exit__(*args)


class Timer:
    """Context manager measuring wall time of a block."""

    def __init__(self) -> None:
        self.start_time: float = 0
        self.end_time: float = 0

    @property
    def duration_ms(self) -> float:
        return (self.end_time - self.start_time) * 1000

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args: Any) -> None:
        self.end_time = time.perf_counter()


MetricCallback = Callable[[str, float, dict[str, Any]], None]

_metric_callbacks: list[MetricCallback] = []


def register_metric_callback(callback: MetricCallback) -> None:
    """Register a callback receiving (name, value, labels) for every metric."""
    _metric_callbacks.append(callback)


def clear_metric_callbacks() -> None:
    """Remove all registered metric callbacks."""
    _metric_callbacks.clear()


def emit_metric(name: str, value: float, labels: dict[str, Any] | None = None) -> None:
    """Emit a metric to all registered callbacks.

    Callback failures are logged and never reach the caller.
    """
    labels = dict(labels or {})

    context = LogContext.current()
    if context.table_name:
        labels.setdefault("table_name", context.table_name)

    for callback in _metric_callbacks:
        try:
            callback(name, value, labels)
        except Exception as e:
            logging.getLogger(__name__).warning("Metric callback failed: %s", e)


def emit_counter(name: str, labels: dict[str, Any] | None = None) -> None:
    """Emit a counter metric (increment by 1)."""
    emit_metric(name, 1.0, labels)


def emit_timer(name: str, duration_ms: float, labels: dict[str, Any] | None = None) -> None:
    """Emit a timer metric."""
    emit_metric(name, duration_ms, labels)


def configure_logging(
    level: LogLevel | str = LogLevel.INFO,
    format: str = "json",
) -> None:
    """Configure the package logger.

    Args:
        level: Minimum log level
        format: Output format ("json" or "text")
    """
    level = LogLevel(level.upper() if isinstance(level, str) else level)
    root_logger = logging.getLogger("record_files")
    root_logger.setLevel(level.value)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if format == "json":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        ))
    root_logger.addHandler(handler)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger for a module (typically `__name__`)."""
    return StructuredLogger(name)
