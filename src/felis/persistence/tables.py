"""SQLAlchemy ORM models for cat persistence.

The cats table carries one column per filterable and orderable attribute so
every FilterSpec predicate maps to an indexed equality test.
"""

from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class CatTable(Base):
    """Cat listings."""

    __tablename__ = "cats"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))

    # Scope references
    owner_id: Mapped[str | None] = mapped_column(String(100), index=True)
    protector_id: Mapped[str | None] = mapped_column(String(100), index=True)
    colony_id: Mapped[str | None] = mapped_column(String(100), index=True)

    # Counters
    total_likes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Descriptive fields
    name: Mapped[str | None] = mapped_column(String(100))
    age: Mapped[int | None] = mapped_column(Integer)
    breed: Mapped[str | None] = mapped_column(String(100))
    image_urls: Mapped[list[str]] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=False, default=list
    )
    x_coordinate: Mapped[float] = mapped_column(Float, nullable=False)
    y_coordinate: Mapped[float] = mapped_column(Float, nullable=False)
    address: Mapped[str | None] = mapped_column(String(200))
    extra_info: Mapped[str | None] = mapped_column(Text)

    # Filterable flags
    is_domestic: Mapped[bool | None] = mapped_column(Boolean)
    is_male: Mapped[bool | None] = mapped_column(Boolean)
    is_sterilized: Mapped[bool | None] = mapped_column(Boolean)
    is_friendly: Mapped[bool | None] = mapped_column(Boolean)
    is_user_owner: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    confirmed_owner_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("ix_cats_created_at", "created_at"),
        Index("ix_cats_total_likes_created_at", "total_likes", "created_at"),
    )


class LikeTable(Base):
    """One row per (user, cat) like."""

    __tablename__ = "likes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    cat_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("cats.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (UniqueConstraint("user_id", "cat_id", name="uq_likes_user_cat"),)
