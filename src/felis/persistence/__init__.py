"""Persistence layer for Felis.

This module provides:
- Store interfaces the cache layer depends on
- Async PostgreSQL engine, session factory and repository wiring
- SQLAlchemy ORM models for cats and likes
- Repositories implementing the store interfaces
"""

from felis.persistence.base import EntityStore, IdentityResolver, LikeStore
from felis.persistence.db import (
    build_repositories,
    close_db,
    get_engine,
    get_session_factory,
    health_check,
    init_db,
)
from felis.persistence.repositories import CatRepository, LikeRepository
from felis.persistence.tables import CatTable, LikeTable

__all__ = [
    # Interfaces
    "EntityStore",
    "IdentityResolver",
    "LikeStore",
    # DB
    "get_engine",
    "get_session_factory",
    "build_repositories",
    "init_db",
    "close_db",
    "health_check",
    # Tables
    "CatTable",
    "LikeTable",
    # Repositories
    "CatRepository",
    "LikeRepository",
]
