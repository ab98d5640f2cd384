"""Like toggling with counter maintenance.

Toggling a like flips the (user, cat) row, then writes the recomputed
total_likes through the MutationCoordinator. Passing the toggling user as
viewer keeps invalidation on the narrow counter path while still clearing
that user's personalized lists.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from felis.cache.coordinator import MutationCoordinator
from felis.errors import EntityNotFoundError
from felis.observability.logging import LogContext
from felis.persistence.base import EntityStore, LikeStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LikeToggleResult:
    liked: bool
    total_likes: int


class LikeService:
    """Flips likes and keeps the cached counters consistent."""

    def __init__(self, like_store: LikeStore, store: EntityStore, coordinator: MutationCoordinator):
        self.like_store = like_store
        self.store = store
        self.coordinator = coordinator

    async def toggle_like(self, user_id: str, cat_id: str) -> LikeToggleResult:
        """Like or unlike a cat for a user.

        Raises:
            EntityNotFoundError: if the cat does not exist.
            EntityStoreError: if either store fails.
        """
        with LogContext(viewer_id=user_id):
            return await self._toggle(user_id, cat_id)

    async def _toggle(self, user_id: str, cat_id: str) -> LikeToggleResult:
        cat = await self.store.get_by_id(cat_id)
        if cat is None:
            raise EntityNotFoundError("Cat", cat_id)

        liked = await self.like_store.toggle(user_id, cat_id)
        total = max(0, cat.total_likes + (1 if liked else -1))

        result = await self.coordinator.update(cat_id, {"total_likes": total}, viewer_id=user_id)
        if not result.success:
            # Deleted between the read and the counter write
            raise EntityNotFoundError("Cat", cat_id)

        logger.debug(f"User {user_id} {'liked' if liked else 'unliked'} cat {cat_id}")
        return LikeToggleResult(liked=liked, total_likes=total)
