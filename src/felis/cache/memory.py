"""In-process cache store.

Suitable for single-instance deployments and tests. Expiry is passive:
an entry past its deadline is dropped the next time it is touched.

For anything shared between processes, use RedisCache instead.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from fnmatch import fnmatchcase

from felis.cache.base import CacheStore


class MemoryCache(CacheStore):
    """Dictionary-backed cache with TTL."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, tuple[bytes, float | None]] = {}

    def _live(self, key: str) -> tuple[bytes, float | None] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            del self._entries[key]
            return None
        return entry

    async def get(self, key: str) -> bytes | None:
        entry = self._live(key)
        return entry[0] if entry else None

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds > 0 else None
        self._entries[key] = (value, expires_at)

    async def delete(self, key: str) -> bool:
        if self._live(key) is None:
            return False
        del self._entries[key]
        return True

    async def delete_pattern(self, pattern: str) -> int:
        matched = [key for key in list(self._entries) if fnmatchcase(key, pattern)]
        deleted = 0
        for key in matched:
            if self._live(key) is not None:
                del self._entries[key]
                deleted += 1
        return deleted

    async def exists(self, key: str) -> bool:
        return self._live(key) is not None

    async def ttl(self, key: str) -> int | None:
        entry = self._live(key)
        if entry is None or entry[1] is None:
            return None
        return max(int(entry[1] - self._clock()), 0)

    async def flush(self) -> None:
        self._entries.clear()

    def keys(self) -> list[str]:
        """Live keys, for inspection."""
        return [key for key in list(self._entries) if self._live(key) is not None]
