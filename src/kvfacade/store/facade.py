"""Store facade: one typed, error-classified operation set over Redis.

Operations are grouped by data model:
- Strings: set, set_with_expire, get, delete, exists, increment
- Lists: list_rpush, list_lpop, list_llen, list_lrange
- Sets: set_add, set_remove, set_members, set_is_member, set_card, set_rand_member
- Sorted sets: zadd, zrem, zcard, zrange, zrevrange, zrange_by_score,
  zrevrange_by_score, zscore, zincrby, zrank, zrevrank
- Hashes: hash_set, hash_get_all, hash_get

Each call is exactly one store request. Nil replies and redis errors are
converted to the taxonomy in ``kvfacade.store.exceptions`` inside
``StoreFacade._execute`` and nowhere else.
"""

from __future__ import annotations

import asyncio
import functools
import math
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable, Iterator, Mapping
from contextlib import asynccontextmanager, contextmanager
from contextvars import ContextVar
from typing import Any, TypeVar

import redis.asyncio as redis

from kvfacade.config import StoreSettings
from kvfacade.models import EventOutcome, ScoredMember, StoreEvent
from kvfacade.observability import (
    get_logger,
    log_store_call_end,
    log_store_call_start,
)

from .connection import ConnectionManager
from .errors import translate
from .events import EventCallback, EventEmitter
from .exceptions import (
    EmptyCollectionError,
    InvalidArgumentError,
    NotFoundError,
    OperationCancelledError,
    StoreError,
)
from .values import (
    Scalar,
    ScoreBound,
    Ttl,
    expire_kwargs,
    score_window,
    scored_mapping,
    ttl_seconds,
    validate_index,
    validate_key,
    validate_scalar,
    validate_scalars,
    validate_score_range,
)

logger = get_logger(__name__)

T = TypeVar("T")

# Absolute time.monotonic() value after which operations are abandoned
_deadline_var: ContextVar[float | None] = ContextVar("store_deadline", default=None)


@contextmanager
def deadline(seconds: float) -> Iterator[None]:
    """Bound every facade operation started inside the block.

    Nested deadlines keep the earliest expiry. When the deadline fires
    mid-request the request is aborted and OperationCancelledError raised.

    Usage:
        with deadline(0.5):
            await store.get("session:abc")
    """
    if (
        isinstance(seconds, bool)
        or not isinstance(seconds, (int, float))
        or not math.isfinite(seconds)
        or seconds < 0
    ):
        raise InvalidArgumentError(
            f"deadline must be finite non-negative seconds, got {seconds!r}"
        )
    expires_at = time.monotonic() + seconds
    current = _deadline_var.get()
    if current is not None:
        expires_at = min(current, expires_at)
    token = _deadline_var.set(expires_at)
    try:
        yield
    finally:
        _deadline_var.reset(token)


def _outcome_for(error: BaseException) -> EventOutcome:
    if isinstance(error, NotFoundError):
        return EventOutcome.NOT_FOUND
    if isinstance(error, EmptyCollectionError):
        return EventOutcome.EMPTY
    if isinstance(error, (OperationCancelledError, asyncio.CancelledError)):
        return EventOutcome.CANCELLED
    if isinstance(error, InvalidArgumentError):
        return EventOutcome.REJECTED
    return EventOutcome.ERROR


def store_operation(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    """Wrap a facade method with the closed check, key validation, logging
    and event emission. The wrapped method's first argument is the key."""
    name = func.__name__

    @functools.wraps(func)
    async def wrapper(self: "StoreFacade", key: str, *args: Any, **kwargs: Any) -> T:
        started = time.perf_counter()
        try:
            self._connection.ensure_open()
            validate_key(key, name)
            log_store_call_start(logger, name, key)
            result = await func(self, key, *args, **kwargs)
        except (StoreError, asyncio.CancelledError) as e:
            self._record(name, key, started, e)
            raise
        self._record(name, key, started, None)
        return result

    return wrapper


class StoreFacade:
    """Async facade over a pooled Redis connection.

    Create with ``await StoreFacade.connect(settings)``; the instance is
    safe to share between tasks. Close it exactly once when done, or use
    it as an async context manager.
    """

    deadline = staticmethod(deadline)

    def __init__(self, connection: ConnectionManager):
        self._connection = connection
        self._events = EventEmitter()

    @classmethod
    async def connect(
        cls,
        config: StoreSettings,
        *,
        client: redis.Redis | None = None,
    ) -> "StoreFacade":
        """Connect to the store and verify it answers a ping.

        Raises:
            StoreConnectionError: store unreachable within probe_timeout
        """
        connection = await ConnectionManager.open(config, client=client)
        return cls(connection)

    @classmethod
    @asynccontextmanager
    async def session(
        cls,
        config: StoreSettings,
        *,
        client: redis.Redis | None = None,
    ) -> AsyncIterator["StoreFacade"]:
        """Connect for the duration of an ``async with`` block."""
        facade = await cls.connect(config, client=client)
        try:
            yield facade
        finally:
            await facade.close()

    async def __aenter__(self) -> "StoreFacade":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Release all pooled connections. Safe to call more than once."""
        await self._connection.close()

    @property
    def closed(self) -> bool:
        return self._connection.closed

    @property
    def config(self) -> StoreSettings:
        return self._connection.config

    # =========================================================================
    # Diagnostics
    # =========================================================================

    def subscribe(self, callback: EventCallback) -> Callable[[], None]:
        """Receive a StoreEvent after every operation.

        Returns:
            Function that removes the subscription
        """
        return self._events.subscribe(callback)

    async def ping(self) -> bool:
        """Liveness probe through the normal error mapping."""
        return await self._execute("ping", None, lambda c: c.ping())

    async def health_check(self) -> dict[str, Any]:
        """Check store connectivity.

        Returns:
            Health status dict
        """
        return await self._connection.health_check()

    def _record(
        self,
        operation: str,
        key: str | None,
        started: float,
        error: BaseException | None,
    ) -> None:
        duration_ms = (time.perf_counter() - started) * 1000
        outcome = EventOutcome.OK if error is None else _outcome_for(error)
        success = outcome in (EventOutcome.OK, EventOutcome.NOT_FOUND, EventOutcome.EMPTY)
        log_store_call_end(
            logger,
            operation,
            key,
            outcome.value,
            duration_ms,
            error=None if success else (str(error) or type(error).__name__),
        )
        if not self._events.has_subscribers:
            return
        self._events.emit(
            StoreEvent(
                operation=operation,
                key=key,
                outcome=outcome,
                duration_ms=duration_ms,
                error_kind=type(error).__name__ if error is not None else None,
                error=str(error) if error is not None else None,
            )
        )

    async def _execute(
        self,
        operation: str,
        key: str | None,
        call: Callable[[redis.Redis], Awaitable[T]],
        *,
        on_nil: type[StoreError] | None = None,
    ) -> T:
        """Issue one request and classify its result.

        Args:
            operation: Operation name for errors and logs
            key: Logical key, if any
            call: Builds the request coroutine from the live client
            on_nil: Error raised when the store replies nil
        """
        client = self._connection.client
        expires_at = _deadline_var.get()
        remaining = None if expires_at is None else expires_at - time.monotonic()
        if remaining is not None and remaining <= 0:
            raise OperationCancelledError(
                "deadline expired before the request was sent",
                operation=operation,
                key=key,
            )

        try:
            if remaining is None:
                result = await call(client)
            else:
                result = await asyncio.wait_for(call(client), timeout=remaining)
        except asyncio.TimeoutError:
            raise OperationCancelledError(
                "deadline expired during the request", operation=operation, key=key
            ) from None
        except redis.RedisError as e:
            raise translate(e, operation=operation, key=key) from e

        if result is None and on_nil is not None:
            raise on_nil(f"{operation}: no value for {key!r}", operation=operation, key=key)
        return result

    # =========================================================================
    # String Operations
    # =========================================================================

    @store_operation
    async def set(self, key: str, value: Scalar, ttl: Ttl | None = None) -> None:
        """Upsert a string value.

        Args:
            key: Key to write
            value: String or number to store
            ttl: Seconds or timedelta; None or 0 means no expiration
        """
        validate_scalar(value, "set", key)
        seconds = ttl_seconds(ttl, "set", key)
        expiry = expire_kwargs(seconds) if seconds else {}
        await self._execute("set", key, lambda c: c.set(key, value, **expiry))

    @store_operation
    async def set_with_expire(self, key: str, value: Scalar, ttl: Ttl) -> None:
        """Upsert a string value that expires after ttl (must be positive)."""
        validate_scalar(value, "set_with_expire", key)
        seconds = ttl_seconds(ttl, "set_with_expire", key)
        if seconds <= 0:
            raise InvalidArgumentError(
                f"ttl must be positive, got {ttl!r}", operation="set_with_expire", key=key
            )
        expiry = expire_kwargs(seconds)
        await self._execute("set_with_expire", key, lambda c: c.set(key, value, **expiry))

    @store_operation
    async def get(self, key: str) -> str:
        """Get a string value.

        Raises:
            NotFoundError: key does not exist
            StoreUnavailableError: request failed
        """
        return await self._execute("get", key, lambda c: c.get(key), on_nil=NotFoundError)

    @store_operation
    async def delete(self, key: str) -> bool:
        """Delete a key. Deleting a missing key is not an error.

        Returns:
            True if the key existed
        """
        removed = await self._execute("delete", key, lambda c: c.delete(key))
        return removed > 0

    @store_operation
    async def exists(self, key: str) -> bool:
        """Check whether a key exists under any data model."""
        count = await self._execute("exists", key, lambda c: c.exists(key))
        return count > 0

    @store_operation
    async def increment(self, key: str) -> int:
        """Atomically add 1; a missing key counts as 0.

        Raises:
            TypeMismatchError: stored value is not an integer
        """
        return await self._execute("increment", key, lambda c: c.incr(key))

    # =========================================================================
    # List Operations
    # =========================================================================

    @store_operation
    async def list_rpush(self, key: str, *values: Scalar) -> int:
        """Append values at the tail in call order.

        Returns:
            Length of the list after the push
        """
        items = validate_scalars(values, "list_rpush", key)
        return await self._execute("list_rpush", key, lambda c: c.rpush(key, *items))

    @store_operation
    async def list_lpop(self, key: str) -> str:
        """Remove and return the head element.

        Raises:
            EmptyCollectionError: list is empty or missing
        """
        return await self._execute(
            "list_lpop", key, lambda c: c.lpop(key), on_nil=EmptyCollectionError
        )

    @store_operation
    async def list_llen(self, key: str) -> int:
        return await self._execute("list_llen", key, lambda c: c.llen(key))

    @store_operation
    async def list_lrange(self, key: str, start: int = 0, stop: int = -1) -> list[str]:
        """Elements from start to stop inclusive; negative indices count from
        the tail and out-of-range bounds are clamped by the store."""
        validate_index(start, "start", "list_lrange", key)
        validate_index(stop, "stop", "list_lrange", key)
        return await self._execute("list_lrange", key, lambda c: c.lrange(key, start, stop))

    # =========================================================================
    # Set Operations
    # =========================================================================

    @store_operation
    async def set_add(self, key: str, *members: Scalar) -> int:
        """Add members; existing ones are ignored.

        Returns:
            Number of members that were new
        """
        items = validate_scalars(members, "set_add", key)
        return await self._execute("set_add", key, lambda c: c.sadd(key, *items))

    @store_operation
    async def set_remove(self, key: str, *members: Scalar) -> int:
        """Remove members; absent ones are ignored.

        Returns:
            Number of members removed
        """
        items = validate_scalars(members, "set_remove", key)
        return await self._execute("set_remove", key, lambda c: c.srem(key, *items))

    @store_operation
    async def set_members(self, key: str) -> set[str]:
        members = await self._execute("set_members", key, lambda c: c.smembers(key))
        return set(members)

    @store_operation
    async def set_is_member(self, key: str, member: Scalar) -> bool:
        validate_scalar(member, "set_is_member", key)
        found = await self._execute("set_is_member", key, lambda c: c.sismember(key, member))
        return bool(found)

    @store_operation
    async def set_card(self, key: str) -> int:
        return await self._execute("set_card", key, lambda c: c.scard(key))

    @store_operation
    async def set_rand_member(self, key: str) -> str:
        """Return a random member without removing it.

        Raises:
            EmptyCollectionError: set is empty or missing
        """
        return await self._execute(
            "set_rand_member", key, lambda c: c.srandmember(key), on_nil=EmptyCollectionError
        )

    # =========================================================================
    # Sorted Set Operations
    # =========================================================================

    @store_operation
    async def zadd(
        self,
        key: str,
        members: Mapping[str, float] | Iterable[ScoredMember],
    ) -> int:
        """Insert members or update the score of existing ones.

        Args:
            key: Sorted set key
            members: member -> score mapping, or ScoredMember items

        Returns:
            Number of members that were new
        """
        mapping = scored_mapping(members, "zadd", key)
        return await self._execute("zadd", key, lambda c: c.zadd(key, mapping))

    @store_operation
    async def zrem(self, key: str, *members: Scalar) -> int:
        items = validate_scalars(members, "zrem", key)
        return await self._execute("zrem", key, lambda c: c.zrem(key, *items))

    @store_operation
    async def zcard(self, key: str) -> int:
        return await self._execute("zcard", key, lambda c: c.zcard(key))

    @store_operation
    async def zrange(self, key: str, start: int = 0, stop: int = -1) -> list[str]:
        """Members by ascending score, same indexing as list_lrange."""
        validate_index(start, "start", "zrange", key)
        validate_index(stop, "stop", "zrange", key)
        return await self._execute("zrange", key, lambda c: c.zrange(key, start, stop))

    @store_operation
    async def zrevrange(self, key: str, start: int = 0, stop: int = -1) -> list[str]:
        """Members by descending score, same indexing as list_lrange."""
        validate_index(start, "start", "zrevrange", key)
        validate_index(stop, "stop", "zrevrange", key)
        return await self._execute("zrevrange", key, lambda c: c.zrevrange(key, start, stop))

    @store_operation
    async def zrange_by_score(
        self,
        key: str,
        min_score: ScoreBound,
        max_score: ScoreBound,
        start: int = 0,
        stop: int = -1,
    ) -> list[str]:
        """Members with min_score <= score <= max_score, ascending, then the
        (start, stop) window over that subset.

        Bounds may be numbers, "-inf"/"+inf", or "("-prefixed for exclusive.

        Raises:
            InvalidArgumentError: min_score > max_score (no request is sent)
        """
        low, high = validate_score_range(min_score, max_score, "zrange_by_score", key)
        window = score_window(start, stop, "zrange_by_score", key)
        if window is None:
            return []
        limit = _limit_kwargs(window)
        return await self._execute(
            "zrange_by_score", key, lambda c: c.zrangebyscore(key, low, high, **limit)
        )

    @store_operation
    async def zrevrange_by_score(
        self,
        key: str,
        min_score: ScoreBound,
        max_score: ScoreBound,
        start: int = 0,
        stop: int = -1,
    ) -> list[str]:
        """Like zrange_by_score but ordered by descending score."""
        low, high = validate_score_range(min_score, max_score, "zrevrange_by_score", key)
        window = score_window(start, stop, "zrevrange_by_score", key)
        if window is None:
            return []
        limit = _limit_kwargs(window)
        return await self._execute(
            "zrevrange_by_score", key, lambda c: c.zrevrangebyscore(key, high, low, **limit)
        )

    @store_operation
    async def zscore(self, key: str, member: str) -> float:
        """Score of a member.

        Raises:
            NotFoundError: member or key does not exist
        """
        validate_scalar(member, "zscore", key)
        return await self._execute(
            "zscore", key, lambda c: c.zscore(key, member), on_nil=NotFoundError
        )

    @store_operation
    async def zincrby(self, key: str, member: str, delta: float) -> float:
        """Add delta to a member's score, creating it with score delta.

        Returns:
            The new score
        """
        validate_scalar(member, "zincrby", key)
        validate_scalar(delta, "zincrby", key)
        if isinstance(delta, (str, bytes)):
            raise InvalidArgumentError("delta must be a number", operation="zincrby", key=key)
        return await self._execute("zincrby", key, lambda c: c.zincrby(key, delta, member))

    @store_operation
    async def zrank(self, key: str, member: str) -> int:
        """0-based rank by ascending score.

        Raises:
            NotFoundError: member or key does not exist
        """
        validate_scalar(member, "zrank", key)
        return await self._execute(
            "zrank", key, lambda c: c.zrank(key, member), on_nil=NotFoundError
        )

    @store_operation
    async def zrevrank(self, key: str, member: str) -> int:
        """0-based rank by descending score.

        Raises:
            NotFoundError: member or key does not exist
        """
        validate_scalar(member, "zrevrank", key)
        return await self._execute(
            "zrevrank", key, lambda c: c.zrevrank(key, member), on_nil=NotFoundError
        )

    # =========================================================================
    # Hash Operations
    # =========================================================================

    @store_operation
    async def hash_set(self, key: str, mapping: Mapping[str, Scalar]) -> int:
        """Upsert each field independently; other fields are untouched.

        Returns:
            Number of fields that were new
        """
        if not isinstance(mapping, Mapping) or not mapping:
            raise InvalidArgumentError(
                "hash_set needs a non-empty field mapping", operation="hash_set", key=key
            )
        fields: dict[str, Scalar] = {}
        for field, value in mapping.items():
            validate_key(field, "hash_set", name="field")
            fields[field] = validate_scalar(value, "hash_set", key)
        return await self._execute("hash_set", key, lambda c: c.hset(key, mapping=fields))

    @store_operation
    async def hash_get_all(self, key: str) -> dict[str, str]:
        """All fields of a hash; empty dict when the key is missing."""
        return dict(await self._execute("hash_get_all", key, lambda c: c.hgetall(key)))

    @store_operation
    async def hash_get(self, key: str, field: str) -> str:
        """Value of one field.

        Raises:
            NotFoundError: field or key does not exist
        """
        validate_key(field, "hash_get", name="field")
        return await self._execute(
            "hash_get", key, lambda c: c.hget(key, field), on_nil=NotFoundError
        )


def _limit_kwargs(window: tuple[int, int]) -> dict[str, int]:
    offset, count = window
    if offset == 0 and count == -1:
        return {}
    return {"start": offset, "num": count}
