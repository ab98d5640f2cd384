"""Repository pattern for cat persistence.

CatRepository is the default EntityStore. Each write runs in its own
transaction and is committed before the method returns, so a caller that
invalidates caches afterwards never races an uncommitted write.

Rows are mapped to Cat models with two optional decorations:
- username: resolved through an IdentityResolver from the owner id
- is_liked: whether the requesting viewer liked the cat
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from sqlalchemy import ColumnElement, UnaryExpression, delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from felis.core.model import Cat, CatCreate, FilterSpec, OrderField, SortDirection
from felis.core.model.filters import PREDICATE_FIELDS
from felis.errors import EntityStoreError
from felis.persistence.base import EntityStore, IdentityResolver, LikeStore
from felis.persistence.tables import CatTable, LikeTable

logger = logging.getLogger(__name__)


def build_filter_conditions(spec: FilterSpec) -> list[ColumnElement[bool]]:
    """Equality conditions for every predicate set on the spec."""
    predicates = spec.predicates()
    return [
        getattr(CatTable, name) == predicates[name]
        for name in PREDICATE_FIELDS
        if name in predicates
    ]


def build_order_by(spec: FilterSpec) -> list[UnaryExpression[Any]]:
    """Sort clauses. Ties break on newest first; cats without an age sort last."""
    if spec.order_by is None:
        return [CatTable.created_at.desc()]

    ascending = spec.order_by.direction is SortDirection.ASC
    field = spec.order_by.field

    if field is OrderField.TOTAL_LIKES:
        column = CatTable.total_likes.asc() if ascending else CatTable.total_likes.desc()
        return [column, CatTable.created_at.desc()]
    if field is OrderField.AGE:
        column = CatTable.age.asc() if ascending else CatTable.age.desc()
        return [column.nulls_last(), CatTable.created_at.desc()]
    return [CatTable.created_at.asc() if ascending else CatTable.created_at.desc()]


class CatRepository(EntityStore):
    """SQLAlchemy-backed entity store for cats."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        identity_resolver: IdentityResolver | None = None,
    ):
        self.session_factory = session_factory
        self.identity_resolver = identity_resolver

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_by_id(self, cat_id: str, viewer_id: str | None = None) -> Cat | None:
        try:
            async with self.session_factory() as session:
                row = await session.get(CatTable, cat_id)
                if row is None:
                    return None
                liked = await self._liked_ids(session, viewer_id, [row.id])
        except SQLAlchemyError as e:
            raise EntityStoreError("get_by_id", e) from e
        return await self._to_model(row, row.id in liked)

    async def get_all(self, spec: FilterSpec, viewer_id: str | None = None) -> list[Cat]:
        viewer_id = viewer_id or spec.viewer_id
        stmt = (
            select(CatTable)
            .where(*build_filter_conditions(spec))
            .order_by(*build_order_by(spec))
            .limit(spec.effective_limit())
            .offset(spec.offset())
        )
        try:
            async with self.session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
                liked = await self._liked_ids(session, viewer_id, [row.id for row in rows])
        except SQLAlchemyError as e:
            raise EntityStoreError("get_all", e) from e
        return [await self._to_model(row, row.id in liked) for row in rows]

    async def get_by_owner(self, owner_id: str) -> list[Cat]:
        stmt = select(CatTable).where(CatTable.owner_id == owner_id)
        try:
            async with self.session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            raise EntityStoreError("get_by_owner", e) from e
        return [await self._to_model(row, False) for row in rows]

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def create(self, payload: CatCreate) -> Cat:
        row = CatTable(
            **payload.model_dump(),
            total_likes=0,
            is_user_owner=False,
        )
        try:
            async with self.session_factory() as session, session.begin():
                session.add(row)
                await session.flush()
                await session.refresh(row)
        except SQLAlchemyError as e:
            raise EntityStoreError("create", e) from e
        return await self._to_model(row, False)

    async def update(self, cat_id: str, fields: dict[str, Any]) -> bool:
        stmt = (
            update(CatTable)
            .where(CatTable.id == cat_id)
            .values(**fields, updated_at=func.now())
        )
        try:
            async with self.session_factory() as session, session.begin():
                result = await session.execute(stmt)
        except SQLAlchemyError as e:
            raise EntityStoreError("update", e) from e
        return bool(result.rowcount)

    async def delete(self, cat_id: str) -> bool:
        try:
            async with self.session_factory() as session, session.begin():
                await session.execute(delete(LikeTable).where(LikeTable.cat_id == cat_id))
                result = await session.execute(delete(CatTable).where(CatTable.id == cat_id))
        except SQLAlchemyError as e:
            raise EntityStoreError("delete", e) from e
        return bool(result.rowcount)

    async def purge_all(self) -> int:
        try:
            async with self.session_factory() as session, session.begin():
                await session.execute(delete(LikeTable))
                result = await session.execute(delete(CatTable))
        except SQLAlchemyError as e:
            raise EntityStoreError("purge_all", e) from e
        return result.rowcount or 0

    # -------------------------------------------------------------------------
    # Mapping
    # -------------------------------------------------------------------------

    async def _liked_ids(
        self, session: AsyncSession, viewer_id: str | None, cat_ids: Sequence[str]
    ) -> set[str]:
        if not viewer_id or not cat_ids:
            return set()
        stmt = select(LikeTable.cat_id).where(
            LikeTable.user_id == viewer_id, LikeTable.cat_id.in_(cat_ids)
        )
        return set((await session.execute(stmt)).scalars().all())

    async def _resolve_username(self, owner_id: str | None) -> str | None:
        if not owner_id or self.identity_resolver is None:
            return None
        try:
            return await self.identity_resolver.resolve_username(owner_id)
        except Exception as e:
            logger.warning(f"Failed to resolve username for {owner_id}: {e}")
            return None

    async def _to_model(self, row: CatTable, is_liked: bool) -> Cat:
        return Cat(
            id=row.id,
            owner_id=row.owner_id,
            username=await self._resolve_username(row.owner_id),
            protector_id=row.protector_id,
            colony_id=row.colony_id,
            total_likes=row.total_likes or 0,
            name=row.name,
            age=row.age,
            breed=row.breed,
            image_urls=list(row.image_urls or []),
            x_coordinate=row.x_coordinate,
            y_coordinate=row.y_coordinate,
            address=row.address,
            extra_info=row.extra_info,
            is_domestic=row.is_domestic,
            is_male=row.is_male,
            is_sterilized=row.is_sterilized,
            is_friendly=row.is_friendly,
            is_user_owner=bool(row.is_user_owner),
            is_liked=is_liked,
            created_at=row.created_at,
            updated_at=row.updated_at,
            confirmed_owner_at=row.confirmed_owner_at,
        )


class LikeRepository(LikeStore):
    """SQLAlchemy-backed like store."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def toggle(self, user_id: str, cat_id: str) -> bool:
        condition = (LikeTable.user_id == user_id) & (LikeTable.cat_id == cat_id)
        try:
            async with self.session_factory() as session, session.begin():
                existing = (
                    await session.execute(select(LikeTable.id).where(condition))
                ).scalar_one_or_none()
                if existing is not None:
                    await session.execute(delete(LikeTable).where(condition))
                    return False
                session.add(LikeTable(user_id=user_id, cat_id=cat_id))
                return True
        except SQLAlchemyError as e:
            raise EntityStoreError("toggle_like", e) from e

    async def is_liked(self, user_id: str, cat_id: str) -> bool:
        stmt = select(LikeTable.id).where(
            LikeTable.user_id == user_id, LikeTable.cat_id == cat_id
        )
        try:
            async with self.session_factory() as session:
                return (await session.execute(stmt)).scalar_one_or_none() is not None
        except SQLAlchemyError as e:
            raise EntityStoreError("is_liked", e) from e
