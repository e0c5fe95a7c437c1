"""Observability module for structured logging."""

from .logging import (
    CallContext,
    caller_var,
    correlation_id_var,
    get_logger,
    log_store_call_end,
    log_store_call_start,
    setup_logging,
)

__all__ = [
    # Setup
    "setup_logging",
    "get_logger",
    # Context
    "CallContext",
    "correlation_id_var",
    "caller_var",
    # Logging helpers
    "log_store_call_start",
    "log_store_call_end",
]
