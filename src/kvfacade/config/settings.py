"""Configuration management with Pydantic Settings.

Environment variables are loaded from:
1. Environment variables (highest priority)
2. .env file (development)
3. Defaults (lowest priority)

StoreSettings is the configuration surface of the store facade. It is
immutable once built and is always passed to the facade explicitly.
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Deployment environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Logging level."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Logging format."""

    JSON = "json"
    TEXT = "text"


class StoreSettings(BaseSettings):
    """Redis store connection configuration.

    Timeouts are in seconds. ``probe_timeout`` bounds the liveness probe
    issued while the facade is being constructed.
    """

    model_config = SettingsConfigDict(env_prefix="STORE_", frozen=True)

    address: str = Field(default="localhost:6379", description="Store address (host:port)")
    password: str | None = Field(default=None, description="Store password")
    db: int = Field(default=0, ge=0, description="Database index")
    pool_size: int = Field(default=10, ge=1, description="Maximum pooled connections")
    min_idle_conns: int = Field(default=0, ge=0, description="Idle connections kept warm")
    max_retries: int = Field(default=3, ge=0, description="Retries on transient failures")
    dial_timeout: float = Field(default=5.0, gt=0, description="Connect timeout")
    read_timeout: float = Field(default=3.0, gt=0, description="Socket read timeout")
    write_timeout: float = Field(default=3.0, gt=0, description="Socket write timeout")
    pool_timeout: float = Field(default=4.0, gt=0, description="Wait for a free connection")
    probe_timeout: float = Field(default=5.0, gt=0, description="Liveness probe timeout")

    @field_validator("address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        """Require a non-empty host:port address."""
        v = v.strip()
        host, sep, port = v.rpartition(":")
        if not v or not sep or not host:
            raise ValueError("address must be in host:port form")
        if not port.isdigit() or not 0 < int(port) < 65536:
            raise ValueError(f"invalid port in address: {port!r}")
        return v

    @field_validator("password")
    @classmethod
    def normalize_password(cls, v: str | None) -> str | None:
        return v or None

    @model_validator(mode="after")
    def validate_pool(self) -> "StoreSettings":
        """Idle floor cannot exceed the pool itself."""
        if self.min_idle_conns > self.pool_size:
            raise ValueError("min_idle_conns must not exceed pool_size")
        return self

    @property
    def host(self) -> str:
        return self.address.rpartition(":")[0].strip("[]")

    @property
    def port(self) -> int:
        return int(self.address.rpartition(":")[2])

    @property
    def socket_timeout(self) -> float:
        """Redis sockets share one timeout for reads and writes."""
        return max(self.read_timeout, self.write_timeout)

    @property
    def url(self) -> str:
        """Build Redis URL."""
        if self.password:
            return f"redis://:{self.password}@{self.address}/{self.db}"
        return f"redis://{self.address}/{self.db}"


class Settings(BaseSettings):
    """Main application settings.

    All settings can be overridden via environment variables.
    For nested store settings, use the STORE_ prefix (e.g., STORE_ADDRESS).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application metadata
    app_name: str = Field(default="kvfacade", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        alias="ENV",
        description="Deployment environment",
    )

    # Logging configuration
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    log_format: LogFormat = Field(default=LogFormat.JSON, description="Logging format")

    # Nested settings
    store: StoreSettings = Field(default_factory=StoreSettings)

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == Environment.DEVELOPMENT


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses LRU cache to avoid re-parsing environment variables.
    """
    return Settings()
