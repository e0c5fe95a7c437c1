"""Translation of redis-py errors into the facade taxonomy."""

from __future__ import annotations

from redis import exceptions as redis_exc

from .exceptions import (
    InvalidArgumentError,
    StoreError,
    StoreUnavailableError,
    TypeMismatchError,
)

# Substrings of server replies that mean "value is not a number"
_NUMERIC_REPLIES = (
    "not an integer",
    "not a valid float",
    "increment or decrement would overflow",
)


def translate(
    exc: redis_exc.RedisError,
    *,
    operation: str | None = None,
    key: str | None = None,
) -> StoreError:
    """Map a raw redis-py error to a facade error.

    The caller is expected to ``raise translate(exc, ...) from exc``.
    """
    message = str(exc)
    context = {"operation": operation, "key": key}

    # ReadOnlyError is a ResponseError but means a replica is being promoted
    if isinstance(
        exc,
        (
            redis_exc.ConnectionError,
            redis_exc.TimeoutError,
            redis_exc.ReadOnlyError,
        ),
    ):
        return StoreUnavailableError(f"store unavailable: {message}", **context)

    if isinstance(exc, redis_exc.ResponseError):
        lowered = message.lower()
        if message.startswith("WRONGTYPE") or any(s in lowered for s in _NUMERIC_REPLIES):
            return TypeMismatchError(message, **context)
        return InvalidArgumentError(f"store rejected request: {message}", **context)

    if isinstance(exc, redis_exc.DataError):
        return InvalidArgumentError(message, **context)

    return StoreUnavailableError(f"store request failed: {message}", **context)
