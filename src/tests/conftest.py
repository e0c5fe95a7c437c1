"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
import os
import random
import time
from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio
from redis.exceptions import ResponseError

# Set test environment before importing settings
os.environ["ENV"] = "development"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["LOG_FORMAT"] = "text"

from kvfacade.config import StoreSettings  # noqa: E402
from kvfacade.store import StoreFacade  # noqa: E402

WRONGTYPE = "WRONGTYPE Operation against a key holding the wrong kind of value"


def _encode(value: Any) -> str:
    """Mirror redis-py's argument encoding with decode_responses=True."""
    if isinstance(value, bytes):
        return value.decode()
    if isinstance(value, float):
        return repr(value)
    return str(value)


def _parse_bound(bound: str) -> tuple[float, bool]:
    exclusive = bound.startswith("(")
    text = bound[1:] if exclusive else bound
    return float(text), exclusive


def _clamp(length: int, start: int, stop: int) -> slice | None:
    """Redis inclusive index semantics for LRANGE/ZRANGE."""
    if start < 0:
        start = max(length + start, 0)
    if stop < 0:
        stop = length + stop
    if stop >= length:
        stop = length - 1
    if start > stop or start >= length:
        return None
    return slice(start, stop + 1)


class FakeRedis:
    """In-memory stand-in for redis.asyncio.Redis with decode_responses=True.

    Only the commands used by the facade are implemented. Use ``fail`` to make
    a command raise and ``slow`` to make it sleep before answering.
    """

    def __init__(self):
        self._data: dict[str, tuple[str, Any]] = {}
        self.expiry: dict[str, float] = {}
        self.calls: list[str] = []
        self.failures: dict[str, BaseException] = {}
        self.delays: dict[str, float] = {}
        self.closed = False

    # -- test hooks ------------------------------------------------------------

    def fail(self, command: str, error: BaseException) -> None:
        self.failures[command] = error

    def slow(self, command: str, seconds: float) -> None:
        self.delays[command] = seconds

    async def _call(self, command: str) -> None:
        self.calls.append(command)
        if delay := self.delays.get(command):
            await asyncio.sleep(delay)
        if error := self.failures.get(command):
            raise error

    def _purge(self, key: str) -> None:
        expires = self.expiry.get(key)
        if expires is not None and expires <= time.monotonic():
            self._data.pop(key, None)
            self.expiry.pop(key, None)

    def _get(self, key: str, kind: str) -> Any:
        self._purge(key)
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry[0] != kind:
            raise ResponseError(WRONGTYPE)
        return entry[1]

    def _get_or_create(self, key: str, kind: str, factory: Any) -> Any:
        value = self._get(key, kind)
        if value is None:
            value = factory()
            self._data[key] = (kind, value)
        return value

    def _drop_if_empty(self, key: str, value: Any) -> None:
        if not value:
            self._data.pop(key, None)

    def _sorted(self, key: str) -> list[tuple[str, float]]:
        zset = self._get(key, "zset") or {}
        return sorted(zset.items(), key=lambda item: (item[1], item[0]))

    # -- connection ------------------------------------------------------------

    async def ping(self) -> bool:
        await self._call("ping")
        return True

    async def aclose(self) -> None:
        self.closed = True

    # -- strings ---------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        await self._call("get")
        return self._get(key, "string")

    async def set(self, key: str, value: Any, ex: int | None = None, px: int | None = None) -> bool:
        await self._call("set")
        self._data[key] = ("string", _encode(value))
        self.expiry.pop(key, None)
        if ex is not None:
            self.expiry[key] = time.monotonic() + ex
        elif px is not None:
            self.expiry[key] = time.monotonic() + px / 1000
        return True

    async def delete(self, *keys: str) -> int:
        await self._call("delete")
        removed = 0
        for key in keys:
            self._purge(key)
            if self._data.pop(key, None) is not None:
                removed += 1
            self.expiry.pop(key, None)
        return removed

    async def exists(self, *keys: str) -> int:
        await self._call("exists")
        count = 0
        for key in keys:
            self._purge(key)
            count += key in self._data
        return count

    async def incr(self, key: str) -> int:
        await self._call("incr")
        current = self._get(key, "string") or "0"
        try:
            value = int(current) + 1
        except ValueError:
            raise ResponseError("value is not an integer or out of range") from None
        self._data[key] = ("string", str(value))
        return value

    # -- lists -----------------------------------------------------------------

    async def rpush(self, key: str, *values: Any) -> int:
        await self._call("rpush")
        items = self._get_or_create(key, "list", list)
        items.extend(_encode(v) for v in values)
        return len(items)

    async def lpop(self, key: str) -> str | None:
        await self._call("lpop")
        items = self._get(key, "list")
        if not items:
            return None
        value = items.pop(0)
        self._drop_if_empty(key, items)
        return value

    async def llen(self, key: str) -> int:
        await self._call("llen")
        return len(self._get(key, "list") or [])

    async def lrange(self, key: str, start: int, stop: int) -> list[str]:
        await self._call("lrange")
        items = self._get(key, "list") or []
        window = _clamp(len(items), start, stop)
        return [] if window is None else items[window]

    # -- sets ------------------------------------------------------------------

    async def sadd(self, key: str, *members: Any) -> int:
        await self._call("sadd")
        current = self._get_or_create(key, "set", set)
        before = len(current)
        current.update(_encode(m) for m in members)
        return len(current) - before

    async def srem(self, key: str, *members: Any) -> int:
        await self._call("srem")
        current = self._get(key, "set")
        if not current:
            return 0
        before = len(current)
        current.difference_update(_encode(m) for m in members)
        removed = before - len(current)
        self._drop_if_empty(key, current)
        return removed

    async def smembers(self, key: str) -> set[str]:
        await self._call("smembers")
        return set(self._get(key, "set") or set())

    async def sismember(self, key: str, member: Any) -> bool:
        await self._call("sismember")
        return _encode(member) in (self._get(key, "set") or set())

    async def scard(self, key: str) -> int:
        await self._call("scard")
        return len(self._get(key, "set") or set())

    async def srandmember(self, key: str) -> str | None:
        await self._call("srandmember")
        current = self._get(key, "set")
        if not current:
            return None
        return random.choice(sorted(current))

    # -- sorted sets -----------------------------------------------------------

    async def zadd(self, key: str, mapping: dict[str, float]) -> int:
        await self._call("zadd")
        zset = self._get_or_create(key, "zset", dict)
        added = sum(1 for member in mapping if member not in zset)
        zset.update({member: float(score) for member, score in mapping.items()})
        return added

    async def zrem(self, key: str, *members: Any) -> int:
        await self._call("zrem")
        zset = self._get(key, "zset")
        if not zset:
            return 0
        removed = sum(1 for m in members if zset.pop(_encode(m), None) is not None)
        self._drop_if_empty(key, zset)
        return removed

    async def zcard(self, key: str) -> int:
        await self._call("zcard")
        return len(self._get(key, "zset") or {})

    async def zrange(self, key: str, start: int, end: int) -> list[str]:
        await self._call("zrange")
        members = [m for m, _ in self._sorted(key)]
        window = _clamp(len(members), start, end)
        return [] if window is None else members[window]

    async def zrevrange(self, key: str, start: int, end: int) -> list[str]:
        await self._call("zrevrange")
        members = [m for m, _ in reversed(self._sorted(key))]
        window = _clamp(len(members), start, end)
        return [] if window is None else members[window]

    def _by_score(self, key: str, low: str, high: str) -> list[str]:
        low_value, low_excl = _parse_bound(low)
        high_value, high_excl = _parse_bound(high)
        result = []
        for member, score in self._sorted(key):
            above = score > low_value if low_excl else score >= low_value
            below = score < high_value if high_excl else score <= high_value
            if above and below:
                result.append(member)
        return result

    @staticmethod
    def _limit(members: list[str], start: int | None, num: int | None) -> list[str]:
        if start is None:
            return members
        members = members[start:]
        return members if num is None or num < 0 else members[:num]

    async def zrangebyscore(
        self, key: str, min: str, max: str, start: int | None = None, num: int | None = None
    ) -> list[str]:
        await self._call("zrangebyscore")
        return self._limit(self._by_score(key, min, max), start, num)

    async def zrevrangebyscore(
        self, key: str, max: str, min: str, start: int | None = None, num: int | None = None
    ) -> list[str]:
        await self._call("zrevrangebyscore")
        return self._limit(list(reversed(self._by_score(key, min, max))), start, num)

    async def zscore(self, key: str, member: str) -> float | None:
        await self._call("zscore")
        return (self._get(key, "zset") or {}).get(member)

    async def zincrby(self, key: str, amount: float, value: str) -> float:
        await self._call("zincrby")
        zset = self._get_or_create(key, "zset", dict)
        zset[value] = zset.get(value, 0.0) + float(amount)
        return zset[value]

    async def zrank(self, key: str, member: str) -> int | None:
        await self._call("zrank")
        members = [m for m, _ in self._sorted(key)]
        return members.index(member) if member in members else None

    async def zrevrank(self, key: str, member: str) -> int | None:
        await self._call("zrevrank")
        members = [m for m, _ in reversed(self._sorted(key))]
        return members.index(member) if member in members else None

    # -- hashes ----------------------------------------------------------------

    async def hset(self, key: str, mapping: dict[str, Any]) -> int:
        await self._call("hset")
        fields = self._get_or_create(key, "hash", dict)
        added = sum(1 for field in mapping if field not in fields)
        fields.update({field: _encode(value) for field, value in mapping.items()})
        return added

    async def hgetall(self, key: str) -> dict[str, str]:
        await self._call("hgetall")
        return dict(self._get(key, "hash") or {})

    async def hget(self, key: str, field: str) -> str | None:
        await self._call("hget")
        return (self._get(key, "hash") or {}).get(field)


@pytest.fixture
def fake_redis() -> FakeRedis:
    """In-memory Redis double."""
    return FakeRedis()


@pytest.fixture
def store_settings() -> StoreSettings:
    """Store settings for testing."""
    return StoreSettings(
        address="localhost:6379",
        pool_size=4,
        min_idle_conns=0,
        max_retries=0,
        probe_timeout=0.5,
    )


@pytest_asyncio.fixture
async def store(fake_redis, store_settings) -> AsyncGenerator[StoreFacade, None]:
    """Connected facade backed by FakeRedis."""
    facade = await StoreFacade.connect(store_settings, client=fake_redis)
    yield facade
    await facade.close()


@pytest.fixture
def events(store) -> list:
    """Collect every StoreEvent emitted by the store fixture."""
    received: list = []
    store.subscribe(received.append)
    return received


# =============================================================================
# Markers
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line(
        "markers", "integration: Integration tests (require a running Redis)"
    )
    config.addinivalue_line("markers", "slow: Slow tests")
