"""Configuration management module.

This module provides:
- Environment-based configuration with validation
- The immutable store connection settings
- Cached settings access via get_settings()
"""

from .settings import (
    Environment,
    LogFormat,
    LogLevel,
    Settings,
    StoreSettings,
    get_settings,
)

__all__ = [
    # Main settings
    "Settings",
    "get_settings",
    # Enums
    "Environment",
    "LogLevel",
    "LogFormat",
    # Component settings
    "StoreSettings",
]
