"""Cat listing models.

A Cat is the cached aggregate: it has an owner, optional group references
(protector and colony), exact-match filterable attributes, orderable fields
and a viewer-dependent ``is_liked`` flag.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Field, model_validator

from felis.core.model import StrictModel

# Fields that place a cat in an owner or group scope
SCOPE_REFERENCE_FIELDS: tuple[str, ...] = ("owner_id", "protector_id", "colony_id")

# Fields usable as exact-match predicates
FILTERABLE_FIELDS: tuple[str, ...] = (
    "age",
    "is_domestic",
    "is_male",
    "is_sterilized",
    "is_friendly",
    "is_user_owner",
)

# Fields usable as sort keys
ORDERABLE_FIELDS: tuple[str, ...] = ("total_likes", "age", "created_at")

# Monotonic counters eligible for the narrow invalidation path
COUNTER_FIELDS: frozenset[str] = frozenset({"total_likes"})

# Columns an update may change but never clear
NON_NULLABLE_FIELDS: tuple[str, ...] = (
    "total_likes",
    "image_urls",
    "x_coordinate",
    "y_coordinate",
    "is_user_owner",
)


class Cat(StrictModel):
    """A cat listing as returned to readers."""

    id: str
    owner_id: str | None = Field(default=None, alias="userId")
    username: str | None = None
    protector_id: str | None = Field(default=None, alias="protectorId")
    colony_id: str | None = Field(default=None, alias="colonyId")
    total_likes: int = Field(default=0, alias="totalLikes")
    name: str | None = None
    age: int | None = None
    breed: str | None = None
    image_urls: list[str] = Field(default_factory=list, alias="imageUrls")
    x_coordinate: float = Field(alias="xCoordinate")
    y_coordinate: float = Field(alias="yCoordinate")
    address: str | None = None
    extra_info: str | None = Field(default=None, alias="extraInfo")
    is_domestic: bool | None = Field(default=None, alias="isDomestic")
    is_male: bool | None = Field(default=None, alias="isMale")
    is_sterilized: bool | None = Field(default=None, alias="isSterilized")
    is_friendly: bool | None = Field(default=None, alias="isFriendly")
    is_user_owner: bool = Field(default=False, alias="isUserOwner")
    is_liked: bool = Field(default=False, alias="isLiked")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime | None = Field(default=None, alias="updatedAt")
    confirmed_owner_at: datetime | None = Field(default=None, alias="confirmedOwnerAt")


class CatCreate(StrictModel):
    """Payload for creating a cat. The store assigns id, counters and timestamps."""

    model_config = {**StrictModel.model_config, "str_strip_whitespace": True}

    owner_id: str | None = Field(default=None, alias="userId", max_length=100)
    protector_id: str | None = Field(default=None, alias="protectorId", max_length=100)
    colony_id: str | None = Field(default=None, alias="colonyId", max_length=100)
    name: str | None = Field(default=None, max_length=100)
    age: int | None = Field(default=None, ge=0, le=30)
    breed: str | None = Field(default=None, max_length=100)
    image_urls: list[str] = Field(default_factory=list, alias="imageUrls")
    x_coordinate: float = Field(alias="xCoordinate", ge=-180, le=180)
    y_coordinate: float = Field(alias="yCoordinate", ge=-90, le=90)
    address: str | None = Field(default=None, max_length=200)
    extra_info: str | None = Field(default=None, alias="extraInfo", max_length=1000)
    is_domestic: bool | None = Field(default=None, alias="isDomestic")
    is_male: bool | None = Field(default=None, alias="isMale")
    is_sterilized: bool | None = Field(default=None, alias="isSterilized")
    is_friendly: bool | None = Field(default=None, alias="isFriendly")


class CatUpdate(StrictModel):
    """Partial update. Only fields explicitly set are applied."""

    model_config = {**StrictModel.model_config, "str_strip_whitespace": True}

    owner_id: str | None = Field(default=None, alias="userId", max_length=100)
    protector_id: str | None = Field(default=None, alias="protectorId", max_length=100)
    colony_id: str | None = Field(default=None, alias="colonyId", max_length=100)
    total_likes: int | None = Field(default=None, alias="totalLikes", ge=0, le=999999)
    name: str | None = Field(default=None, max_length=100)
    age: int | None = Field(default=None, ge=0, le=30)
    breed: str | None = Field(default=None, max_length=100)
    image_urls: list[str] | None = Field(default=None, alias="imageUrls")
    x_coordinate: float | None = Field(default=None, alias="xCoordinate", ge=-180, le=180)
    y_coordinate: float | None = Field(default=None, alias="yCoordinate", ge=-90, le=90)
    address: str | None = Field(default=None, max_length=200)
    extra_info: str | None = Field(default=None, alias="extraInfo", max_length=1000)
    is_domestic: bool | None = Field(default=None, alias="isDomestic")
    is_male: bool | None = Field(default=None, alias="isMale")
    is_sterilized: bool | None = Field(default=None, alias="isSterilized")
    is_friendly: bool | None = Field(default=None, alias="isFriendly")
    is_user_owner: bool | None = Field(default=None, alias="isUserOwner")

    @model_validator(mode="after")
    def _reject_cleared_required(self) -> CatUpdate:
        """Fields that are required on a cat may be omitted but not set to null."""
        cleared = [
            name
            for name in NON_NULLABLE_FIELDS
            if name in self.model_fields_set and getattr(self, name) is None
        ]
        if cleared:
            raise ValueError(f"Fields cannot be null: {', '.join(cleared)}")
        return self

    def changes(self) -> dict[str, Any]:
        """Return only the fields the caller set, keyed by attribute name."""
        return self.model_dump(exclude_unset=True)
