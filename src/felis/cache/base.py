"""Base cache store interface.

Defines the narrow key-value contract the read and invalidation paths
depend on. Values are opaque bytes; serialization happens above this layer.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class CacheStore(ABC):
    """Abstract base class for cache backends.

    Implementations raise CacheUnavailableError when the backend cannot be
    reached or an operation times out. Callers decide how to degrade.
    """

    @abstractmethod
    async def get(self, key: str) -> bytes | None:
        """Return the cached value, or None on a miss or expired entry."""
        ...

    @abstractmethod
    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        """Store a value that expires after ttl_seconds."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a key. Returns True if it existed."""
        ...

    @abstractmethod
    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern. Returns the count deleted."""
        ...

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check whether a live (unexpired) entry exists."""
        ...

    @abstractmethod
    async def ttl(self, key: str) -> int | None:
        """Remaining lifetime in seconds, or None if the key has no expiry or is absent."""
        ...

    @abstractmethod
    async def flush(self) -> None:
        """Remove every entry."""
        ...

    async def health_check(self) -> bool:
        """Check backend connectivity."""
        try:
            await self.exists("__felis_health__")
            return True
        except Exception:
            return False
