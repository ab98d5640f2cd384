"""Interfaces to the authoritative stores.

The cache layer only ever talks to these abstractions; the SQLAlchemy
repositories in this package are the default implementations.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Protocol

from felis.core.model import Cat, CatCreate, FilterSpec


class IdentityResolver(Protocol):
    """Resolves an owner's display name while mapping rows to cats."""

    async def resolve_username(self, user_id: str) -> str | None: ...


class EntityStore(ABC):
    """Authoritative CRUD over the cat collection.

    Implementations raise EntityStoreError on backend failures.
    """

    @abstractmethod
    async def create(self, payload: CatCreate) -> Cat:
        """Insert a cat and return it with its assigned id."""
        ...

    @abstractmethod
    async def get_by_id(self, cat_id: str, viewer_id: str | None = None) -> Cat | None:
        """Fetch a cat, personalized for the viewer when given."""
        ...

    @abstractmethod
    async def get_all(self, spec: FilterSpec, viewer_id: str | None = None) -> list[Cat]:
        """Fetch a filtered, sorted page of cats."""
        ...

    @abstractmethod
    async def get_by_owner(self, owner_id: str) -> list[Cat]:
        """Fetch every cat belonging to an owner."""
        ...

    @abstractmethod
    async def update(self, cat_id: str, fields: dict[str, Any]) -> bool:
        """Apply a partial update. Returns False if the cat does not exist."""
        ...

    @abstractmethod
    async def delete(self, cat_id: str) -> bool:
        """Delete a cat. Returns False if it did not exist."""
        ...

    @abstractmethod
    async def purge_all(self) -> int:
        """Delete every cat. Returns the number deleted."""
        ...


class LikeStore(ABC):
    """Persistence of per-user likes."""

    @abstractmethod
    async def toggle(self, user_id: str, cat_id: str) -> bool:
        """Flip a like. Returns True if the cat is now liked by the user."""
        ...

    @abstractmethod
    async def is_liked(self, user_id: str, cat_id: str) -> bool:
        ...
