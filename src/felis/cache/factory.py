"""Cache backend factory for Felis."""

from __future__ import annotations

from felis.cache.base import CacheStore
from felis.cache.coordinator import MutationCoordinator
from felis.cache.index import MemoryScopeIndex, RedisScopeIndex, ScopeIndex
from felis.cache.keys import CacheKeys
from felis.cache.memory import MemoryCache
from felis.cache.read_through import ReadThroughCache
from felis.cache.redis import RedisCache, get_redis
from felis.config import settings
from felis.persistence.base import EntityStore

_cache: CacheStore | None = None
_index: ScopeIndex | None = None


def get_cache_keys() -> CacheKeys:
    return CacheKeys(prefix=settings.cache_key_prefix)


async def get_cache_backend() -> tuple[CacheStore, ScopeIndex]:
    """Return the singleton CacheStore and ScopeIndex based on settings."""
    global _cache, _index
    if _cache is not None and _index is not None:
        return _cache, _index

    backend = settings.cache_backend.lower()
    if backend == "redis":
        redis_cache = RedisCache(await get_redis(), timeout=settings.cache_timeout_seconds)
        _cache, _index = redis_cache, RedisScopeIndex(redis_cache, get_cache_keys())
    elif backend == "memory":
        _cache, _index = MemoryCache(), MemoryScopeIndex()
    else:
        raise ValueError("Unsupported cache_backend. Supported values: redis, memory.")
    return _cache, _index


def reset_cache_backend() -> None:
    """Forget the singletons. Used after close_redis() and in tests."""
    global _cache, _index
    _cache = None
    _index = None


async def build_read_through() -> ReadThroughCache:
    cache, index = await get_cache_backend()
    return ReadThroughCache(cache, index, keys=get_cache_keys(), ttl=settings.cache_ttl_seconds)


async def build_coordinator(store: EntityStore) -> MutationCoordinator:
    cache, index = await get_cache_backend()
    return MutationCoordinator(
        store,
        cache,
        index,
        keys=get_cache_keys(),
        fence_ttl=settings.cache_fence_seconds,
        background=settings.invalidate_in_background,
    )
