"""Global pytest configuration and fixtures.

Provides in-memory collaborators for the cache layer:
- InMemoryCatStore / InMemoryLikeStore: EntityStore and LikeStore doubles
- FakeClock: deterministic clock shared by caches, fences and indexes
- Harness: a ReadThroughCache and MutationCoordinator wired to the above
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from felis.cache.coordinator import MutationCoordinator
from felis.cache.index import MemoryScopeIndex
from felis.cache.keys import CacheKeys
from felis.cache.memory import MemoryCache
from felis.cache.read_through import ReadThroughCache
from felis.core.model import Cat, CatCreate, FilterSpec, OrderField, SortDirection
from felis.persistence.base import EntityStore, LikeStore

EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


class FakeClock:
    """Clock that advances a millisecond on every reading.

    Successive readings are strictly increasing, like wall time between
    two awaited calls.
    """

    def __init__(self, start: float = 1_700_000_000.0, tick: float = 0.001):
        self.now = start
        self.tick = tick

    def __call__(self) -> float:
        self.now += self.tick
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class InMemoryCatStore(EntityStore):
    """Dictionary-backed EntityStore that counts reads."""

    def __init__(self) -> None:
        self.cats: dict[str, Cat] = {}
        self.likes: set[tuple[str, str]] = set()
        self.reads = 0
        self._seq = 0

    async def create(self, payload: CatCreate) -> Cat:
        self._seq += 1
        cat = Cat(
            id=f"cat-{self._seq}",
            created_at=EPOCH + timedelta(minutes=self._seq),
            **payload.model_dump(),
        )
        self.cats[cat.id] = cat
        return cat

    async def get_by_id(self, cat_id: str, viewer_id: str | None = None) -> Cat | None:
        self.reads += 1
        cat = self.cats.get(cat_id)
        return self._personalize(cat, viewer_id) if cat else None

    async def get_all(self, spec: FilterSpec, viewer_id: str | None = None) -> list[Cat]:
        self.reads += 1
        viewer_id = viewer_id or spec.viewer_id
        predicates = spec.predicates()
        matched = [
            cat
            for cat in self.cats.values()
            if all(getattr(cat, name) == value for name, value in predicates.items())
        ]
        matched.sort(key=lambda cat: cat.created_at, reverse=True)
        if spec.order_by is not None and spec.order_by.field is not OrderField.CREATED_AT:
            field = spec.order_by.field.value
            reverse = spec.order_by.direction is SortDirection.DESC
            matched.sort(key=lambda cat: getattr(cat, field) or 0, reverse=reverse)
        elif spec.order_by is not None and spec.order_by.direction is SortDirection.ASC:
            matched.reverse()
        page = matched[spec.offset() : spec.offset() + spec.effective_limit()]
        return [self._personalize(cat, viewer_id) for cat in page]

    async def get_by_owner(self, owner_id: str) -> list[Cat]:
        self.reads += 1
        return [cat for cat in self.cats.values() if cat.owner_id == owner_id]

    async def update(self, cat_id: str, fields: dict[str, Any]) -> bool:
        cat = self.cats.get(cat_id)
        if cat is None:
            return False
        self.cats[cat_id] = cat.model_copy(update=fields)
        return True

    async def delete(self, cat_id: str) -> bool:
        self.likes = {like for like in self.likes if like[1] != cat_id}
        return self.cats.pop(cat_id, None) is not None

    async def purge_all(self) -> int:
        count = len(self.cats)
        self.cats.clear()
        self.likes.clear()
        return count

    def _personalize(self, cat: Cat, viewer_id: str | None) -> Cat:
        liked = viewer_id is not None and (viewer_id, cat.id) in self.likes
        return cat.model_copy(update={"is_liked": liked})


class InMemoryLikeStore(LikeStore):
    """LikeStore sharing its like set with an InMemoryCatStore."""

    def __init__(self, store: InMemoryCatStore):
        self.store = store

    async def toggle(self, user_id: str, cat_id: str) -> bool:
        like = (user_id, cat_id)
        if like in self.store.likes:
            self.store.likes.discard(like)
            return False
        self.store.likes.add(like)
        return True

    async def is_liked(self, user_id: str, cat_id: str) -> bool:
        return (user_id, cat_id) in self.store.likes


@dataclass
class Harness:
    clock: FakeClock
    store: InMemoryCatStore
    cache: MemoryCache
    index: MemoryScopeIndex
    keys: CacheKeys
    reader: ReadThroughCache
    coordinator: MutationCoordinator

    async def create(self, **overrides: Any) -> Cat:
        data: dict[str, Any] = {
            "owner_id": "U1",
            "name": "Misu",
            "x_coordinate": 2.17,
            "y_coordinate": 41.38,
        }
        data.update(overrides)
        result = await self.coordinator.create(CatCreate(**data))
        assert result.success and result.cat is not None
        return result.cat

    async def list(self, query: dict[str, Any] | None = None) -> list[Cat]:
        spec = FilterSpec.from_query(query)
        return await self.reader.get_list(spec, lambda: self.store.get_all(spec))

    async def detail(self, cat_id: str, viewer_id: str | None = None) -> Cat | None:
        return await self.reader.get_detail(
            cat_id, viewer_id, lambda: self.store.get_by_id(cat_id, viewer_id)
        )

    async def by_owner(self, owner_id: str) -> list[Cat]:
        return await self.reader.get_by_owner(owner_id, lambda: self.store.get_by_owner(owner_id))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryCatStore:
    return InMemoryCatStore()


@pytest.fixture
def harness(clock: FakeClock, store: InMemoryCatStore) -> Harness:
    keys = CacheKeys()
    cache = MemoryCache(clock=clock)
    index = MemoryScopeIndex(clock=clock)
    return Harness(
        clock=clock,
        store=store,
        cache=cache,
        index=index,
        keys=keys,
        reader=ReadThroughCache(cache, index, keys=keys, clock=clock),
        coordinator=MutationCoordinator(store, cache, index, keys=keys, clock=clock),
    )


@pytest.fixture
def like_store(store: InMemoryCatStore) -> InMemoryLikeStore:
    return InMemoryLikeStore(store)
