"""Structured logging configuration.

Features:
- JSON and text format support
- Correlation ID propagation through context variables
- Service context injection
"""

import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from kvfacade.config import LogFormat, LogLevel, get_settings

# Context variables for call correlation
correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
caller_var: ContextVar[str | None] = ContextVar("caller", default=None)


def add_service_context(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Add service context to log events."""
    settings = get_settings()
    event_dict.setdefault("service", settings.app_name)
    event_dict["environment"] = settings.environment.value
    return event_dict


def add_correlation_context(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Add correlation context from context variables."""
    if correlation_id := correlation_id_var.get():
        event_dict["correlation_id"] = correlation_id
    if caller := caller_var.get():
        event_dict["caller"] = caller
    return event_dict


def add_timestamp(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Add ISO 8601 timestamp."""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def setup_logging(
    service_name: str | None = None,
    log_level: LogLevel | None = None,
    log_format: LogFormat | None = None,
) -> None:
    """Configure structured logging for the application.

    Args:
        service_name: Override service name (defaults to settings.app_name)
        log_level: Override log level (defaults to settings.log_level)
        log_format: Override log format (defaults to settings.log_format)
    """
    settings = get_settings()

    level = log_level or settings.log_level
    fmt = log_format or settings.log_format

    # Convert LogLevel enum to logging constant (handle both enum and string)
    level_str = level.value if hasattr(level, "value") else str(level).upper()
    numeric_level = getattr(logging, level_str)

    # Configure standard library logging
    logging.basicConfig(
        level=numeric_level,
        stream=sys.stdout,
        format="%(message)s",
    )

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_timestamp,
        add_service_context,
        add_correlation_context,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if service_name:
        structlog.contextvars.bind_contextvars(service=service_name)

    fmt_str = fmt.value if hasattr(fmt, "value") else str(fmt).lower()
    if fmt_str == LogFormat.JSON.value:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            ),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # redis-py logs every reconnect attempt at debug level
    logging.getLogger("redis").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (defaults to module name)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


class CallContext:
    """Scope correlation fields onto every store log line in a block.

    Usage:
        async with CallContext(correlation_id="abc123", caller="billing"):
            await store.get("invoice:42")  # log lines include correlation_id
    """

    def __init__(
        self,
        correlation_id: str | None = None,
        caller: str | None = None,
    ):
        self.correlation_id = correlation_id
        self.caller = caller
        self._tokens: list[tuple[ContextVar[Any], Any]] = []

    def __enter__(self) -> "CallContext":
        if self.correlation_id:
            self._tokens.append(
                (correlation_id_var, correlation_id_var.set(self.correlation_id))
            )
        if self.caller:
            self._tokens.append((caller_var, caller_var.set(self.caller)))
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)

    async def __aenter__(self) -> "CallContext":
        return self.__enter__()

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)


def log_store_call_start(
    logger: structlog.stdlib.BoundLogger,
    operation: str,
    key: str | None,
) -> None:
    """Log a store request about to be sent."""
    logger.debug("Store call started", store_operation=operation, key=key)


def log_store_call_end(
    logger: structlog.stdlib.BoundLogger,
    operation: str,
    key: str | None,
    outcome: str,
    duration_ms: float,
    error: str | None = None,
) -> None:
    """Log a finished store call.

    Misses (not found, empty collection) are normal results and log at
    debug. Rejected arguments, cancellations and store failures log at
    warning with the error text.
    """
    log_data: dict[str, Any] = {
        "store_operation": operation,
        "key": key,
        "outcome": outcome,
        "duration_ms": round(duration_ms, 2),
    }
    if error is None:
        logger.debug("Store call completed", **log_data)
    else:
        logger.warning("Store call failed", error=error, **log_data)
