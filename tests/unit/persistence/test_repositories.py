"""Tests for the SQLAlchemy repositories with a mocked session."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from felis.core.model import CatCreate, FilterSpec
from felis.errors import EntityStoreError
from felis.persistence.repositories import (
    CatRepository,
    LikeRepository,
    build_filter_conditions,
    build_order_by,
)
from felis.persistence.tables import CatTable


def compile_clause(clause) -> str:
    return str(clause.compile(dialect=postgresql.dialect()))


def session_factory(session: MagicMock) -> MagicMock:
    """Factory whose sessions and transactions are async context managers."""
    factory = MagicMock()
    factory.return_value.__aenter__.return_value = session
    factory.return_value.__aexit__.return_value = False
    session.begin.return_value.__aenter__.return_value = session
    session.begin.return_value.__aexit__.return_value = False
    return factory


def cat_row(**overrides) -> CatTable:
    data = {
        "id": "cat-1",
        "owner_id": "U1",
        "total_likes": 3,
        "name": "Misu",
        "image_urls": [],
        "x_coordinate": 2.17,
        "y_coordinate": 41.38,
        "is_user_owner": False,
        "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
    }
    data.update(overrides)
    return CatTable(**data)


def assign_server_defaults(row: CatTable) -> None:
    """Stand-in for the values the database assigns on INSERT."""
    row.id = "cat-new"
    row.created_at = datetime(2024, 1, 1, tzinfo=timezone.utc)


def scalars_result(values: list) -> MagicMock:
    result = MagicMock()
    result.scalars.return_value.all.return_value = values
    return result


class TestStatementBuilders:
    """Test filter and sort clause construction."""

    def test_filter_conditions(self) -> None:
        """Each predicate becomes an equality test."""
        conditions = build_filter_conditions(FilterSpec(owner_id="U1", is_male=True))
        compiled = [compile_clause(c) for c in conditions]
        assert compiled[0] == "cats.owner_id = %(owner_id_1)s"
        assert compiled[1].startswith("cats.is_male")

    def test_no_conditions_for_unfiltered(self) -> None:
        """The default listing has no WHERE clause."""
        assert build_filter_conditions(FilterSpec()) == []

    def test_default_order_newest_first(self) -> None:
        """Without a sort, newest cats come first."""
        (clause,) = build_order_by(FilterSpec())
        assert compile_clause(clause) == "cats.created_at DESC"

    def test_likes_order_breaks_ties_on_creation(self) -> None:
        """Likes ordering ties break on newest first."""
        clauses = build_order_by(FilterSpec.from_query({"orderBy": {"field": "total_likes"}}))
        assert [compile_clause(c) for c in clauses] == [
            "cats.total_likes DESC",
            "cats.created_at DESC",
        ]

    def test_age_order_puts_unknown_last(self) -> None:
        """Cats without an age sort after all others."""
        clauses = build_order_by(
            FilterSpec.from_query({"orderBy": {"field": "age", "direction": "ASC"}})
        )
        assert compile_clause(clauses[0]) == "cats.age ASC NULLS LAST"


class TestCatRepository:
    """Test CatRepository with a mocked session."""

    @pytest.mark.asyncio
    async def test_get_by_id_missing(self) -> None:
        """Unknown ids return None."""
        session = MagicMock()
        session.get = AsyncMock(return_value=None)

        repo = CatRepository(session_factory(session))

        assert await repo.get_by_id("missing") is None

    @pytest.mark.asyncio
    async def test_get_by_id_maps_row(self) -> None:
        """Rows map to cats with the resolved username and like flag."""
        session = MagicMock()
        session.get = AsyncMock(return_value=cat_row())
        session.execute = AsyncMock(return_value=scalars_result(["cat-1"]))
        resolver = MagicMock()
        resolver.resolve_username = AsyncMock(return_value="ana")

        cat = await CatRepository(session_factory(session), resolver).get_by_id("cat-1", "V1")

        assert cat is not None
        assert cat.username == "ana"
        assert cat.total_likes == 3
        assert cat.is_liked is True

    @pytest.mark.asyncio
    async def test_resolver_failure_is_not_fatal(self) -> None:
        """A failing identity lookup leaves the username empty."""
        session = MagicMock()
        session.get = AsyncMock(return_value=cat_row())
        resolver = MagicMock()
        resolver.resolve_username = AsyncMock(side_effect=RuntimeError("auth down"))

        cat = await CatRepository(session_factory(session), resolver).get_by_id("cat-1")

        assert cat is not None and cat.username is None

    @pytest.mark.asyncio
    async def test_get_all(self) -> None:
        """Lists map every row."""
        session = MagicMock()
        session.execute = AsyncMock(
            return_value=scalars_result([cat_row(id="a"), cat_row(id="b")])
        )

        cats = await CatRepository(session_factory(session)).get_all(FilterSpec())

        assert [cat.id for cat in cats] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_update_reports_missing(self) -> None:
        """An update that matches no row returns False."""
        session = MagicMock()
        session.execute = AsyncMock(return_value=MagicMock(rowcount=0))

        assert await CatRepository(session_factory(session)).update("x", {"name": "n"}) is False

    @pytest.mark.asyncio
    async def test_delete(self) -> None:
        """Delete removes likes then the cat."""
        session = MagicMock()
        session.execute = AsyncMock(return_value=MagicMock(rowcount=1))

        assert await CatRepository(session_factory(session)).delete("cat-1") is True
        assert session.execute.await_count == 2

    @pytest.mark.asyncio
    async def test_create(self) -> None:
        """Create adds a row with zeroed counters."""
        session = MagicMock()
        session.flush = AsyncMock()
        session.refresh = AsyncMock(side_effect=assign_server_defaults)
        repo = CatRepository(session_factory(session))

        payload = CatCreate(owner_id="U1", name="Misu", x_coordinate=0, y_coordinate=0)
        cat = await repo.create(payload)

        (row,) = session.add.call_args.args
        assert row.total_likes == 0
        assert row.is_user_owner is False
        assert cat.name == "Misu"

    @pytest.mark.asyncio
    async def test_database_errors_wrapped(self) -> None:
        """SQLAlchemy errors surface as EntityStoreError."""
        session = MagicMock()
        session.execute = AsyncMock(side_effect=OperationalError("UPDATE", {}, Exception("gone")))

        with pytest.raises(EntityStoreError) as exc_info:
            await CatRepository(session_factory(session)).update("x", {"name": "n"})
        assert exc_info.value.operation == "update"


class TestLikeRepository:
    """Test LikeRepository with a mocked session."""

    @pytest.mark.asyncio
    async def test_toggle_adds_like(self) -> None:
        """No existing row means the cat becomes liked."""
        session = MagicMock()
        result = MagicMock()
        result.scalar_one_or_none.return_value = None
        session.execute = AsyncMock(return_value=result)

        assert await LikeRepository(session_factory(session)).toggle("U1", "cat-1") is True
        session.add.assert_called_once()

    @pytest.mark.asyncio
    async def test_toggle_removes_like(self) -> None:
        """An existing row is deleted."""
        session = MagicMock()
        result = MagicMock()
        result.scalar_one_or_none.return_value = "like-1"
        session.execute = AsyncMock(return_value=result)

        assert await LikeRepository(session_factory(session)).toggle("U1", "cat-1") is False
        assert session.execute.await_count == 2
        session.add.assert_not_called()
