from __future__ import annotations

from typing import Any

import orjson
from pydantic import BaseModel, TypeAdapter

from felis.core.model import Cat

ORJSON_OPTIONS = orjson.OPT_NON_STR_KEYS | orjson.OPT_UTC_Z | orjson.OPT_SORT_KEYS

_cat_list_adapter: TypeAdapter[list[Cat]] = TypeAdapter(list[Cat])


def canonical_bytes(data: Any) -> bytes:
    """Return canonical JSON bytes (sorted keys) for already-validated data."""
    return orjson.dumps(data, option=ORJSON_OPTIONS)


def canonical_bytes_from_model(model: BaseModel) -> bytes:
    """Serialize a model to canonical JSON bytes using its aliases."""
    payload = model.model_dump(mode="json", by_alias=True)
    return canonical_bytes(payload)


def cat_to_bytes(cat: Cat) -> bytes:
    return canonical_bytes_from_model(cat)


def cat_from_bytes(data: bytes) -> Cat:
    return Cat.model_validate_json(data)


def cats_to_bytes(cats: list[Cat]) -> bytes:
    return _cat_list_adapter.dump_json(cats, by_alias=True)


def cats_from_bytes(data: bytes) -> list[Cat]:
    return _cat_list_adapter.validate_json(data)
