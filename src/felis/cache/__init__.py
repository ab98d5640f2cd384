"""Cache layer for Felis.

Provides cache consistency for cat listings:
- Deterministic keys derived from typed filter specs
- Read-through caching with an anti-dogpile guard
- Dependent invalidation planned per mutation and fanned out after commit
- A scope index so invalidation never scans the keyspace for list entries
"""

from felis.cache.base import CacheStore
from felis.cache.coordinator import MutationCoordinator, MutationResult
from felis.cache.index import MemoryScopeIndex, RedisScopeIndex, ScopeIndex
from felis.cache.invalidation import (
    InvalidationExecutor,
    InvalidationPath,
    InvalidationPlan,
    InvalidationPlanner,
    InvalidationReport,
    MutationKind,
)
from felis.cache.keys import CacheKeys
from felis.cache.memory import MemoryCache
from felis.cache.read_through import ReadThroughCache
from felis.cache.redis import RedisCache, close_redis, get_redis

__all__ = [
    # Core cache
    "CacheKeys",
    "CacheStore",
    "MemoryCache",
    "RedisCache",
    "get_redis",
    "close_redis",
    # Scope index
    "ScopeIndex",
    "MemoryScopeIndex",
    "RedisScopeIndex",
    # Read path
    "ReadThroughCache",
    # Write path
    "InvalidationExecutor",
    "InvalidationPath",
    "InvalidationPlan",
    "InvalidationPlanner",
    "InvalidationReport",
    "MutationCoordinator",
    "MutationKind",
    "MutationResult",
]
