"""Connection lifecycle for the store facade.

The manager owns exactly one redis client and its blocking connection pool.
It is created by ``ConnectionManager.open`` which refuses to hand out an
instance unless the store answered a liveness probe in time.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any

import redis.asyncio as redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff

from kvfacade.config import StoreSettings
from kvfacade.observability import get_logger

from .exceptions import FacadeClosedError, StoreConnectionError

logger = get_logger(__name__)


def build_pool(config: StoreSettings) -> redis.BlockingConnectionPool:
    """Create the connection pool described by the settings.

    Only connection and timeout errors are retried; the store's own error
    replies (wrong type, syntax) are never retried.
    """
    return redis.BlockingConnectionPool(
        host=config.host,
        port=config.port,
        db=config.db,
        password=config.password,
        max_connections=config.pool_size,
        timeout=config.pool_timeout,
        socket_connect_timeout=config.dial_timeout,
        socket_timeout=config.socket_timeout,
        encoding="utf-8",
        decode_responses=True,
        retry=Retry(ExponentialBackoff(), config.max_retries),
        retry_on_error=[redis.ConnectionError, redis.TimeoutError],
    )


class ConnectionManager:
    """Owns the pooled connection to the store."""

    def __init__(
        self,
        config: StoreSettings,
        client: redis.Redis,
        pool: redis.ConnectionPool | None = None,
    ):
        self._config = config
        self._client: redis.Redis | None = client
        self._pool = pool
        self._closed = False

    @classmethod
    async def open(
        cls,
        config: StoreSettings,
        client: redis.Redis | None = None,
    ) -> "ConnectionManager":
        """Connect, probe and warm the pool.

        Args:
            config: Store settings
            client: Pre-built client to use instead of building a pool

        Raises:
            StoreConnectionError: if the probe fails or times out
        """
        pool = None
        if client is None:
            pool = build_pool(config)
            client = redis.Redis(connection_pool=pool)

        try:
            await asyncio.wait_for(client.ping(), timeout=config.probe_timeout)
        except (redis.RedisError, OSError, asyncio.TimeoutError) as e:
            await _release(client, pool)
            reason = str(e) or type(e).__name__
            logger.error(
                "Store connection failed",
                address=config.address,
                db=config.db,
                error=reason,
            )
            raise StoreConnectionError(
                f"cannot connect to store at {config.address}: {reason}"
            ) from e

        manager = cls(config, client, pool)
        await manager._warm_up()
        logger.info(
            "Store connected",
            address=config.address,
            db=config.db,
            pool_size=config.pool_size,
        )
        return manager

    async def _warm_up(self) -> None:
        """Open min_idle_conns connections up front by pinging concurrently.

        Each concurrent ping holds its own pooled connection, which stays
        idle in the pool afterwards.
        """
        count = self._config.min_idle_conns
        if count <= 1:
            return

        client = self.client
        try:
            results = await asyncio.wait_for(
                asyncio.gather(
                    *(client.ping() for _ in range(count)),
                    return_exceptions=True,
                ),
                timeout=self._config.probe_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Pool warm-up timed out", requested=count)
            return

        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            logger.warning(
                "Pool warm-up incomplete",
                requested=count,
                failed=len(failures),
                error=str(failures[0]),
            )

    @property
    def config(self) -> StoreSettings:
        return self._config

    @property
    def closed(self) -> bool:
        return self._closed

    def ensure_open(self) -> None:
        if self._closed or self._client is None:
            raise FacadeClosedError("store facade is closed")

    @property
    def client(self) -> redis.Redis:
        """Get the live client; fails fast once closed."""
        self.ensure_open()
        return self._client

    async def ping(self) -> bool:
        """Raw liveness probe; raises redis errors to the caller."""
        return bool(await self.client.ping())

    async def health_check(self) -> dict[str, Any]:
        """Check store connectivity.

        Returns:
            Health status dict. Includes ``pool`` usage counts when this
            manager built the pool itself.
        """
        result: dict[str, Any] = {
            "address": self._config.address,
            "db": self._config.db,
            "pool_size": self._config.pool_size,
        }
        if self._pool is not None:
            result["pool"] = pool_stats(self._pool)
        if self._closed:
            return {**result, "status": "unhealthy", "error": "closed"}

        started = time.perf_counter()
        try:
            await asyncio.wait_for(self.ping(), timeout=self._config.probe_timeout)
        except (redis.RedisError, OSError, asyncio.TimeoutError) as e:
            return {**result, "status": "unhealthy", "error": str(e) or type(e).__name__}

        latency_ms = (time.perf_counter() - started) * 1000
        return {**result, "status": "healthy", "latency_ms": round(latency_ms, 2)}

    async def close(self) -> None:
        """Close the client and its pool. Later calls do nothing."""
        if self._closed:
            return
        self._closed = True
        client, self._client = self._client, None
        pool, self._pool = self._pool, None
        await _release(client, pool)
        logger.info("Store connection closed", address=self._config.address)


async def _release(
    client: redis.Redis | None,
    pool: redis.ConnectionPool | None,
) -> None:
    """Close client and pool, logging rather than raising on failure."""
    try:
        if client is not None:
            await client.aclose()
        if pool is not None:
            await pool.disconnect()
    except (redis.RedisError, OSError) as e:
        logger.warning("Error while releasing store connections", error=str(e))


def pool_stats(pool: redis.ConnectionPool) -> dict[str, int]:
    """Connection counts for a pool: its limit, checked out, and idle."""
    return {
        "max_connections": pool.max_connections,
        "in_use": len(pool._in_use_connections),
        "idle": len(pool._available_connections),
    }
