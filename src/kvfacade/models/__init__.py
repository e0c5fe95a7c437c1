"""Shared data models for kvfacade.

All models follow these conventions:
- Timestamps: ISO 8601 format with timezone (UTC)
- IDs: UUID v4
- Field names: lowercase snake_case
- Enums: uppercase SNAKE_CASE
"""

# Base
from .base import FacadeBaseModel

# Event models
from .events import EventOutcome, StoreEvent

# Sorted-set values
from .scored import ScoredMember

__all__ = [
    "FacadeBaseModel",
    "EventOutcome",
    "StoreEvent",
    "ScoredMember",
]
