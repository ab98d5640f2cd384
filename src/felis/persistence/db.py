"""Async engine, session factory and repository wiring.

The engine is created lazily from settings on first use and shared by every
repository. Repositories receive the session factory rather than a session:
each of their writes opens, commits and closes its own transaction.
"""

from __future__ import annotations

import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from felis.config import settings
from felis.persistence.base import IdentityResolver
from felis.persistence.repositories import CatRepository, LikeRepository
from felis.persistence.tables import Base

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """Return the shared engine, creating it from settings if needed."""
    global _engine
    if _engine is None:
        _engine = create_async_engine(
            settings.database_url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_pre_ping=True,
            echo=settings.database_echo,
        )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        # Rows are mapped to models after commit; keep their loaded state
        _session_factory = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_factory


def build_repositories(
    identity_resolver: IdentityResolver | None = None,
) -> tuple[CatRepository, LikeRepository]:
    """Cat and like repositories sharing the engine's session factory."""
    session_factory = get_session_factory()
    return CatRepository(session_factory, identity_resolver), LikeRepository(session_factory)


async def init_db() -> None:
    """Create the cats and likes tables if they are missing."""
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose the engine. The next get_engine() call creates a new one."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


async def health_check() -> bool:
    """True if the database answers a trivial query."""
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        return False
