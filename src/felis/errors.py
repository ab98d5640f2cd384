"""Exception hierarchy for Felis.

Only entity store failures reach callers. Cache faults are recovered where
they happen:

- CacheUnavailableError: reads fall back to the entity store
- KeyDerivationError: the query bypasses the cache
- InvalidationError: logged after a committed write, TTL bounds staleness
"""

from __future__ import annotations


class FelisError(Exception):
    """Base class for all Felis errors."""


class CacheError(FelisError):
    """A cache store operation failed."""


class CacheUnavailableError(CacheError):
    """The cache store could not be reached or timed out."""

    def __init__(self, operation: str, key: str, cause: BaseException | None = None):
        self.operation = operation
        self.key = key
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Cache {operation} failed for {key!r}{detail}")


class KeyDerivationError(FelisError):
    """A filter specification cannot be turned into a deterministic cache key."""


class InvalidationError(CacheError):
    """A purge call failed after a successful write."""

    def __init__(self, target: str, cause: BaseException):
        self.target = target
        self.cause = cause
        super().__init__(f"Invalidation of {target!r} failed: {cause}")


class EntityStoreError(FelisError):
    """The authoritative store failed. Always propagated to the caller."""

    def __init__(self, operation: str, cause: BaseException | None = None):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Database operation failed: {operation}")


class EntityNotFoundError(FelisError):
    """The referenced entity does not exist."""

    def __init__(self, entity_type: str, identifier: str):
        self.entity_type = entity_type
        self.identifier = identifier
        super().__init__(f"{entity_type} not found: {identifier}")


class InvalidPayloadError(FelisError):
    """A create or update payload carries no usable fields."""
