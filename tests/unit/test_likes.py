"""Tests for like toggling."""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, MagicMock

import pytest

from felis.cache.coordinator import MutationResult
from felis.cache.invalidation import MutationKind
from felis.errors import EntityNotFoundError
from felis.likes import LikeService
from felis.observability.logging import viewer_id_var

if TYPE_CHECKING:
    from conftest import Harness, InMemoryLikeStore


@pytest.fixture
def service(harness: Harness, like_store: InMemoryLikeStore) -> LikeService:
    return LikeService(like_store, harness.store, harness.coordinator)


class TestLikeService:
    """Test LikeService.toggle_like."""

    @pytest.mark.asyncio
    async def test_toggle_like_and_unlike(self, harness: Harness, service: LikeService) -> None:
        """Liking increments the counter; liking again decrements it."""
        cat = await harness.create()

        liked = await service.toggle_like("V1", cat.id)
        assert liked.liked is True
        assert liked.total_likes == 1

        unliked = await service.toggle_like("V1", cat.id)
        assert unliked.liked is False
        assert unliked.total_likes == 0

    @pytest.mark.asyncio
    async def test_counter_never_negative(self, harness: Harness, service: LikeService) -> None:
        """Unliking a cat whose counter is already zero keeps it at zero."""
        cat = await harness.create()
        harness.store.likes.add(("V1", cat.id))

        result = await service.toggle_like("V1", cat.id)

        assert result.liked is False
        assert result.total_likes == 0

    @pytest.mark.asyncio
    async def test_unknown_cat(self, service: LikeService) -> None:
        """Liking a missing cat raises."""
        with pytest.raises(EntityNotFoundError):
            await service.toggle_like("V1", "missing")

    @pytest.mark.asyncio
    async def test_liker_sees_fresh_personalized_views(
        self, harness: Harness, service: LikeService
    ) -> None:
        """The toggling user's cached lists and detail are purged."""
        cat = await harness.create(is_domestic=True)
        await harness.list({"isDomestic": True, "viewerId": "V1"})
        detail = await harness.detail(cat.id, "V1")
        assert detail is not None and not detail.is_liked

        await service.toggle_like("V1", cat.id)

        (listed,) = await harness.list({"isDomestic": True, "viewerId": "V1"})
        assert listed.is_liked and listed.total_likes == 1
        detail = await harness.detail(cat.id, "V1")
        assert detail is not None and detail.is_liked

    @pytest.mark.asyncio
    async def test_other_viewers_scoped_lists_stay_cached(
        self, harness: Harness, service: LikeService
    ) -> None:
        """A like only takes the narrow path for everyone else."""
        cat = await harness.create(is_domestic=True)
        await harness.list({"isDomestic": True, "viewerId": "V2"})
        reads = harness.store.reads

        await service.toggle_like("V1", cat.id)
        reads_after_toggle = harness.store.reads

        await harness.list({"isDomestic": True, "viewerId": "V2"})
        assert harness.store.reads == reads_after_toggle
        assert reads_after_toggle > reads

    @pytest.mark.asyncio
    async def test_liker_bound_to_log_context(
        self, harness: Harness, like_store: InMemoryLikeStore
    ) -> None:
        """The counter write runs with the liking user in the log context."""
        cat = await harness.create()
        seen: list[str] = []

        async def update(*args: object, **kwargs: object) -> MutationResult:
            seen.append(viewer_id_var.get())
            return MutationResult(kind=MutationKind.UPDATE, success=True)

        coordinator = MagicMock()
        coordinator.update = AsyncMock(side_effect=update)

        await LikeService(like_store, harness.store, coordinator).toggle_like("V9", cat.id)

        assert seen == ["V9"]
        coordinator.update.assert_awaited_once_with(cat.id, {"total_likes": 1}, viewer_id="V9")
        assert viewer_id_var.get() == ""
