"""Read-through cache for cat queries.

Implements get-or-load for single cats, owner listings and filtered lists:

1. Derive the key; on a hit, return the cached value
2. On a miss, call the loader (which queries the entity store)
3. Store the result unless the key was populated meanwhile or an
   invalidation fence covering the entry exists (anti-dogpile guard)
4. Register the entry in the scope index under its scope tags (list
   entries by the scopes their query depends on, detail entries under
   their cat, so every viewer variant is found without a keyspace scan)

A fence holds the time its invalidation ran. Only fences at or after the
moment the load started count against the result. Besides its own
fences, every entry checks the namespace fence raised by a full purge.
The check runs before the write and again after it: a fence that appears
between the two checks means an invalidation ran while the value was being
written, so the entry is removed again.

Cache faults never fail a read: any cache error is logged and treated as
a miss. Loader errors propagate unchanged.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from felis.cache.base import CacheStore
from felis.cache.index import ScopeIndex
from felis.cache.keys import CacheKeys, ScopeTag, detail_scope, owner_scope
from felis.core.canonicalize import cat_from_bytes, cat_to_bytes, cats_from_bytes, cats_to_bytes
from felis.core.model import Cat, FilterSpec
from felis.errors import KeyDerivationError
from felis.observability.metrics import get_metrics

logger = logging.getLogger(__name__)

# 5 minutes; bounds staleness when an invalidation is lost
DEFAULT_TTL = 300

ListLoader = Callable[[], Awaitable[list[Cat]]]
DetailLoader = Callable[[], Awaitable[Cat | None]]


class ReadThroughCache:
    """Get-or-load over a CacheStore, keyed by CacheKeys."""

    def __init__(
        self,
        cache: CacheStore,
        index: ScopeIndex,
        keys: CacheKeys | None = None,
        ttl: int = DEFAULT_TTL,
        clock: Callable[[], float] = time.time,
    ):
        self.cache = cache
        self.index = index
        self.keys = keys or CacheKeys()
        self.ttl = ttl
        self.clock = clock
        self.metrics = get_metrics()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def get_list(
        self, spec: FilterSpec | Mapping[str, Any] | None, loader: ListLoader
    ) -> list[Cat]:
        """Return a filtered list, from cache when possible.

        A spec that cannot be canonicalized bypasses the cache entirely.
        """
        try:
            if not isinstance(spec, FilterSpec):
                spec = FilterSpec.from_query(spec)
            key = self.keys.list_key(spec)
        except KeyDerivationError as e:
            logger.warning(f"Bypassing cache for list query: {e}")
            self.metrics.cache_bypass_total.inc()
            return await loader()

        cached = await self._read(key, "list")
        if cached is not None:
            try:
                return cats_from_bytes(cached)
            except ValidationError:
                await self._discard(key, "list")

        started = self.clock()
        result = await loader()
        tags = self.keys.scopes_for_spec(spec)
        await self._populate(
            key, cats_to_bytes(result), "list", tags, self._scope_fences(tags), started
        )
        return result

    async def get_detail(
        self, cat_id: str, viewer_id: str | None, loader: DetailLoader
    ) -> Cat | None:
        """Return a single cat, from cache when possible. Absent cats are not cached."""
        key = self.keys.detail_key(cat_id, viewer_id)

        cached = await self._read(key, "detail")
        if cached is not None:
            try:
                return cat_from_bytes(cached)
            except ValidationError:
                await self._discard(key, "detail")

        started = self.clock()
        result = await loader()
        if result is not None:
            fences = [self.keys.fence_key_for_detail(cat_id), self.keys.namespace_fence_key()]
            await self._populate(
                key, cat_to_bytes(result), "detail", {detail_scope(cat_id)}, fences, started
            )
        return result

    async def get_by_owner(self, owner_id: str, loader: ListLoader) -> list[Cat]:
        """Return the owner-scoped listing, from cache when possible."""
        key = self.keys.owner_key(owner_id)

        cached = await self._read(key, "owner")
        if cached is not None:
            try:
                return cats_from_bytes(cached)
            except ValidationError:
                await self._discard(key, "owner")

        started = self.clock()
        result = await loader()
        tags = {owner_scope(owner_id)}
        await self._populate(
            key, cats_to_bytes(result), "owner", tags, self._scope_fences(tags), started
        )
        return result

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _scope_fences(self, tags: Iterable[ScopeTag]) -> list[str]:
        fences = [self.keys.fence_key_for_scope(tag) for tag in sorted(tags)]
        fences.append(self.keys.namespace_fence_key())
        return fences

    async def _read(self, key: str, cache_type: str) -> bytes | None:
        try:
            value = await self.cache.get(key)
        except Exception as e:
            logger.warning(f"Cache read failed for {key}, falling back to store: {e}")
            self.metrics.cache_errors_total.labels(operation="get").inc()
            return None

        if value is None:
            self.metrics.cache_misses_total.labels(cache_type=cache_type).inc()
        else:
            self.metrics.cache_hits_total.labels(cache_type=cache_type).inc()
        return value

    async def _discard(self, key: str, cache_type: str) -> None:
        logger.warning(f"Discarding undecodable {cache_type} entry {key}")
        try:
            await self.cache.delete(key)
        except Exception as e:
            logger.warning(f"Cache delete failed for {key}: {e}")
            self.metrics.cache_errors_total.labels(operation="delete").inc()

    async def _fenced(self, fences: Iterable[str], since: float) -> bool:
        """True if any fence was raised at or after ``since``."""
        for fence in fences:
            raw = await self.cache.get(fence)
            if raw is None:
                continue
            try:
                raised_at = float(raw)
            except ValueError:
                return True
            if raised_at >= since:
                return True
        return False

    async def _populate(
        self,
        key: str,
        value: bytes,
        cache_type: str,
        tags: Iterable[ScopeTag],
        fences: list[str],
        started: float,
    ) -> None:
        try:
            if await self.cache.exists(key):
                logger.debug(f"Skipping write for {key}: populated concurrently")
                return
            if await self._fenced(fences, started):
                logger.debug(f"Skipping write for {key}: invalidated during load")
                self.metrics.cache_stale_writes_skipped_total.labels(cache_type=cache_type).inc()
                return

            await self.cache.set(key, value, self.ttl)
            tags = list(tags)
            if tags:
                await self.index.add(key, tags, self.ttl)

            if await self._fenced(fences, started):
                await self.cache.delete(key)
                logger.debug(f"Withdrew write for {key}: invalidated during write")
                self.metrics.cache_stale_writes_skipped_total.labels(cache_type=cache_type).inc()
        except Exception as e:
            logger.warning(f"Cache write failed for {key}: {e}")
            self.metrics.cache_errors_total.labels(operation="set").inc()
