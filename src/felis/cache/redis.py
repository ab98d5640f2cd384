"""Redis cache implementation for Felis.

Provides async Redis operations for cached cat listings.
Uses redis-py async client for connection pooling.

Every call is bounded by a short timeout so a degraded Redis turns into
cache misses instead of slow requests.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TYPE_CHECKING, TypeVar, cast

import redis.asyncio as redis
from redis.exceptions import RedisError

from felis.cache.base import CacheStore
from felis.config import settings
from felis.errors import CacheUnavailableError

if TYPE_CHECKING:
    from redis.asyncio import Redis

T = TypeVar("T")

# Module-level connection pool
_redis_client: Redis | None = None

# Pattern deletes walk the keyspace with SCAN, so they get a longer timeout
DEFAULT_PATTERN_TIMEOUT = 5.0
SCAN_COUNT = 100


async def get_redis() -> Redis:
    """Get or create the Redis client.

    Uses connection pooling for efficient connection management.
    """
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(  # type: ignore[no-untyped-call]
            settings.redis_url,
            encoding="utf-8",
            decode_responses=False,  # We're storing bytes
            socket_timeout=settings.cache_timeout_seconds,
            socket_connect_timeout=settings.cache_timeout_seconds,
        )
    return _redis_client


async def close_redis() -> None:
    """Close Redis connections."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None


class RedisCache(CacheStore):
    """Cache operations over a Redis client."""

    def __init__(
        self,
        client: Redis,
        timeout: float = 0.25,
        pattern_timeout: float = DEFAULT_PATTERN_TIMEOUT,
    ):
        self.client = client
        self.timeout = timeout
        self.pattern_timeout = pattern_timeout

    async def guarded(
        self, operation: str, key: str, awaitable: Awaitable[T], timeout: float | None = None
    ) -> T:
        """Run a Redis call under a timeout, translating failures."""
        try:
            return await asyncio.wait_for(awaitable, timeout or self.timeout)
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            raise CacheUnavailableError(operation, key, e) from e

    async def get(self, key: str) -> bytes | None:
        return cast(bytes | None, await self.guarded("get", key, self.client.get(key)))

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        if ttl_seconds > 0:
            await self.guarded("set", key, self.client.setex(key, ttl_seconds, value))
        else:
            await self.guarded("set", key, self.client.set(key, value))

    async def delete(self, key: str) -> bool:
        deleted = await self.guarded("delete", key, self.client.delete(key))
        return bool(deleted)

    async def delete_pattern(self, pattern: str) -> int:
        """Delete keys matching a pattern.

        Uses SCAN to avoid blocking on large keyspaces and deletes in batches.
        """
        return await self.guarded(
            "delete_pattern", pattern, self._scan_delete(pattern), self.pattern_timeout
        )

    async def _scan_delete(self, pattern: str) -> int:
        deleted = 0
        batch: list[bytes] = []
        async for key in self.client.scan_iter(match=pattern, count=SCAN_COUNT):
            batch.append(key)
            if len(batch) >= SCAN_COUNT:
                deleted += await self.client.delete(*batch)
                batch = []
        if batch:
            deleted += await self.client.delete(*batch)
        return deleted

    async def exists(self, key: str) -> bool:
        count = await self.guarded("exists", key, self.client.exists(key))
        return bool(count)

    async def ttl(self, key: str) -> int | None:
        remaining = await self.guarded("ttl", key, self.client.ttl(key))
        # -1: no expiry, -2: missing
        return remaining if remaining >= 0 else None

    async def flush(self) -> None:
        await self.guarded("flush", "*", self.client.flushdb(), self.pattern_timeout)

    async def health_check(self) -> bool:
        """Check Redis connectivity."""
        try:
            await self.guarded("ping", "", cast(Awaitable[bool], self.client.ping()))
            return True
        except CacheUnavailableError:
            return False
