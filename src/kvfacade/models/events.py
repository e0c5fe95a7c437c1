"""Event models for facade operation diagnostics.

Events are ephemeral: they are handed to in-process subscribers and never
written to the store.
"""

from datetime import datetime, timezone
from enum import Enum
from uuid import UUID, uuid4

from pydantic import Field

from .base import FacadeBaseModel


class EventOutcome(str, Enum):
    """How a single facade operation ended."""

    OK = "OK"
    NOT_FOUND = "NOT_FOUND"
    EMPTY = "EMPTY"
    ERROR = "ERROR"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"  # local validation, no request issued


class StoreEvent(FacadeBaseModel):
    """Diagnostic event emitted once per facade operation."""

    event_id: UUID = Field(default_factory=uuid4)
    operation: str = Field(description="Facade operation name, e.g. 'zrange'")
    key: str | None = None
    outcome: EventOutcome
    duration_ms: float = Field(default=0.0, ge=0)
    error_kind: str | None = Field(default=None, description="Exception class name")
    error: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
