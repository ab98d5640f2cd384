"""Scope index: secondary index from scope tags to list cache keys.

Every list entry is registered under the scope tags its FilterSpec depends
on when it is populated. Invalidating a scope then touches only the keys
registered under that tag, instead of scanning the keyspace for patterns.

- MemoryScopeIndex: in-process, pairs with MemoryCache
- RedisScopeIndex: Redis sets, pairs with RedisCache
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable

from felis.cache.keys import CacheKeys, ScopeTag
from felis.cache.redis import RedisCache


class ScopeIndex(ABC):
    """Abstract scope index."""

    @abstractmethod
    async def add(self, key: str, tags: Iterable[ScopeTag], ttl_seconds: int) -> None:
        """Register a cache key under each tag."""
        ...

    @abstractmethod
    async def pop(self, tag: ScopeTag) -> set[str]:
        """Remove a tag and return the keys that were registered under it."""
        ...

    @abstractmethod
    async def members(self, tag: ScopeTag) -> set[str]:
        """Keys currently registered under a tag."""
        ...


class MemoryScopeIndex(ScopeIndex):
    """Dictionary-backed scope index.

    Memberships expire with the entries they describe, so the index does
    not grow without bound when entries age out instead of being purged.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._tags: dict[ScopeTag, dict[str, float]] = {}

    def _prune(self, tag: ScopeTag) -> dict[str, float]:
        now = self._clock()
        members = self._tags.get(tag, {})
        live = {key: deadline for key, deadline in members.items() if deadline > now}
        if live:
            self._tags[tag] = live
        else:
            self._tags.pop(tag, None)
        return live

    async def add(self, key: str, tags: Iterable[ScopeTag], ttl_seconds: int) -> None:
        deadline = self._clock() + ttl_seconds
        for tag in tags:
            self._prune(tag)
            self._tags.setdefault(tag, {})[key] = deadline

    async def pop(self, tag: ScopeTag) -> set[str]:
        live = self._prune(tag)
        self._tags.pop(tag, None)
        return set(live)

    async def members(self, tag: ScopeTag) -> set[str]:
        return set(self._prune(tag))


class RedisScopeIndex(ScopeIndex):
    """Scope index stored as Redis sets next to the cached entries.

    Each set's expiry is refreshed on every registration, so a set lives at
    least as long as the newest entry registered in it.
    """

    def __init__(self, cache: RedisCache, keys: CacheKeys):
        self.cache = cache
        self.keys = keys

    async def add(self, key: str, tags: Iterable[ScopeTag], ttl_seconds: int) -> None:
        tags = list(tags)
        if not tags:
            return
        async with self.cache.client.pipeline(transaction=False) as pipe:
            for tag in tags:
                index_key = self.keys.scope_index_key(tag)
                pipe.sadd(index_key, key)
                pipe.expire(index_key, ttl_seconds)
            await self.cache.guarded("index_add", key, pipe.execute())

    async def pop(self, tag: ScopeTag) -> set[str]:
        index_key = self.keys.scope_index_key(tag)
        async with self.cache.client.pipeline(transaction=True) as pipe:
            pipe.smembers(index_key)
            pipe.delete(index_key)
            members, _ = await self.cache.guarded("index_pop", index_key, pipe.execute())
        return {_decode(member) for member in members}

    async def members(self, tag: ScopeTag) -> set[str]:
        index_key = self.keys.scope_index_key(tag)
        members = await self.cache.guarded(
            "index_members", index_key, self.cache.client.smembers(index_key)
        )
        return {_decode(member) for member in members}


def _decode(value: bytes | str) -> str:
    return value.decode() if isinstance(value, bytes) else value
