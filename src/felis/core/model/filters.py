"""Typed filter specification for cat list queries.

A FilterSpec names every predicate it recognizes explicitly. Anything else
is rejected at construction, so a cache key can never be derived from a
predicate the key schema does not know about.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import Field, ValidationError

from felis.core.model import StrictModel
from felis.errors import KeyDerivationError

DEFAULT_LIMIT = 12
MAX_LIMIT = 24

PREDICATE_FIELDS: tuple[str, ...] = (
    "owner_id",
    "protector_id",
    "colony_id",
    "age",
    "is_domestic",
    "is_male",
    "is_sterilized",
    "is_friendly",
    "is_user_owner",
)


class OrderField(str, Enum):
    """Fields a list can be sorted by."""

    TOTAL_LIKES = "total_likes"
    AGE = "age"
    CREATED_AT = "created_at"


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


class OrderBy(StrictModel):
    field: OrderField
    direction: SortDirection = SortDirection.DESC


class FilterSpec(StrictModel):
    """Normalized description of a list query."""

    owner_id: str | None = Field(default=None, alias="userId")
    protector_id: str | None = Field(default=None, alias="protectorId")
    colony_id: str | None = Field(default=None, alias="colonyId")
    age: int | None = None
    is_domestic: bool | None = Field(default=None, alias="isDomestic")
    is_male: bool | None = Field(default=None, alias="isMale")
    is_sterilized: bool | None = Field(default=None, alias="isSterilized")
    is_friendly: bool | None = Field(default=None, alias="isFriendly")
    is_user_owner: bool | None = Field(default=None, alias="isUserOwner")

    order_by: OrderBy | None = Field(default=None, alias="orderBy")
    page: int | None = Field(default=None, ge=1)
    limit: int | None = Field(default=None, ge=1)

    viewer_id: str | None = Field(default=None, alias="viewerId")

    @classmethod
    def from_query(cls, query: Mapping[str, Any] | None) -> "FilterSpec":
        """Build a FilterSpec from an untyped query mapping.

        Raises:
            KeyDerivationError: if the mapping names an unknown predicate or
                carries a value that does not fit the predicate's type.
        """
        if not query:
            return cls()
        try:
            return cls.model_validate(dict(query))
        except ValidationError as e:
            raise KeyDerivationError(f"Cannot canonicalize filter spec: {e}") from e

    def predicates(self) -> dict[str, Any]:
        """Set predicates keyed by attribute name, in lexicographic order."""
        values = {name: getattr(self, name) for name in PREDICATE_FIELDS}
        return {name: values[name] for name in sorted(values) if values[name] is not None}

    def is_unfiltered(self) -> bool:
        """True when the query is the plain default listing."""
        return (
            not self.predicates()
            and self.order_by is None
            and self.page is None
            and self.limit is None
        )

    def effective_limit(self) -> int:
        if self.limit is None:
            return DEFAULT_LIMIT
        return min(max(self.limit, 1), MAX_LIMIT)

    def effective_page(self) -> int:
        return max(self.page or 1, 1)

    def offset(self) -> int:
        return (self.effective_page() - 1) * self.effective_limit()

    def without_viewer(self) -> "FilterSpec":
        return self.model_copy(update={"viewer_id": None})
