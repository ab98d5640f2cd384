"""Domain models for Felis.

Cat listings and the typed filter specification used to query them.
All models use Pydantic v2; JSON uses camelCase aliases.
"""

from pydantic import BaseModel


class StrictModel(BaseModel):
    """Base model for Felis domain models.

    extra="forbid" rejects unknown fields, which is what lets filter
    canonicalization fail closed on predicates it does not recognize.
    """

    model_config = {
        "extra": "forbid",
        "populate_by_name": True,
        "validate_default": True,
    }


# ruff: noqa: E402
from felis.core.model.cat import Cat, CatCreate, CatUpdate
from felis.core.model.filters import (
    DEFAULT_LIMIT,
    MAX_LIMIT,
    PREDICATE_FIELDS,
    FilterSpec,
    OrderBy,
    OrderField,
    SortDirection,
)

__all__ = [
    "StrictModel",
    "Cat",
    "CatCreate",
    "CatUpdate",
    "FilterSpec",
    "OrderBy",
    "OrderField",
    "SortDirection",
    "PREDICATE_FIELDS",
    "DEFAULT_LIMIT",
    "MAX_LIMIT",
]
