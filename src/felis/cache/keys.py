"""Cache key schema for Felis.

Key format: {prefix}:{kind}[:{payload}][:viewer:{viewer_id}]

Where:
- prefix: "cats" by default (namespace inside a shared Redis)
- kind: an entity id (detail), "all" (default listing), "list" (filtered
  listing keyed by canonical JSON), "owner" (owner-scoped listing)
- viewer: present only for personalized results (is_liked)

Auxiliary keys live under the same prefix:
- {prefix}:scope:{tag}         scope index sets (tag -> entry keys)
- {prefix}:fence:scope:{tag}   invalidation fences for list scopes
- {prefix}:fence:detail:{id}   invalidation fences for detail entries
- {prefix}:fence:namespace     invalidation fence for every entry (purge)

Scope tags: all, owner:<id>, group:protector:<id>, group:colony:<id>,
filter:<field>=<json value>, order:<field>, viewer:<id>, detail:<id>.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import orjson

from felis.core.canonicalize import canonical_bytes
from felis.core.model import Cat, FilterSpec
from felis.core.model.cat import FILTERABLE_FIELDS, ORDERABLE_FIELDS
from felis.errors import KeyDerivationError

ScopeTag = str

ALL_SCOPE: ScopeTag = "all"

# Predicate name -> group kind, for relational references other than the owner
GROUP_PREDICATES: dict[str, str] = {"protector_id": "protector", "colony_id": "colony"}


def scope_value(value: Any) -> str:
    """Render a predicate value the same way for entities and filter specs."""
    return orjson.dumps(value).decode()


def owner_scope(owner_id: str) -> ScopeTag:
    return f"owner:{owner_id}"


def group_scope(kind: str, group_id: str) -> ScopeTag:
    return f"group:{kind}:{group_id}"


def filter_scope(field: str, value: Any) -> ScopeTag:
    return f"filter:{field}={scope_value(value)}"


def order_scope(field: str) -> ScopeTag:
    return f"order:{field}"


def viewer_scope(viewer_id: str) -> ScopeTag:
    return f"viewer:{viewer_id}"


def detail_scope(cat_id: str) -> ScopeTag:
    return f"detail:{cat_id}"


class CacheKeys:
    """Cache key generator following a consistent naming convention."""

    def __init__(self, prefix: str = "cats"):
        self.prefix = prefix

    # -------------------------------------------------------------------------
    # Entry keys
    # -------------------------------------------------------------------------

    def detail_key(self, cat_id: str, viewer_id: str | None = None) -> str:
        """Key for a single cat, optionally personalized for a viewer."""
        base = f"{self.prefix}:{cat_id}"
        return f"{base}:viewer:{viewer_id}" if viewer_id else base

    def all_key(self, viewer_id: str | None = None) -> str:
        base = f"{self.prefix}:all"
        return f"{base}:viewer:{viewer_id}" if viewer_id else base

    def list_key(self, spec: FilterSpec | Mapping[str, Any] | None) -> str:
        """Key for a list query.

        Predicates are serialized in lexicographic order, so construction
        order never affects the key. A query with no predicates, sort or
        pagination maps to the constant "all" key.

        Raises:
            KeyDerivationError: if the spec cannot be canonicalized.
        """
        if not isinstance(spec, FilterSpec):
            spec = FilterSpec.from_query(spec)

        if spec.is_unfiltered():
            return self.all_key(spec.viewer_id)

        payload: dict[str, Any] = dict(spec.predicates())
        if spec.order_by is not None:
            payload["order_by"] = {
                "field": spec.order_by.field.value,
                "direction": spec.order_by.direction.value,
            }
        if spec.page is not None:
            payload["page"] = spec.page
        if spec.limit is not None:
            payload["limit"] = spec.limit

        try:
            canonical = canonical_bytes(payload).decode()
        except (TypeError, ValueError) as e:
            raise KeyDerivationError(f"Cannot canonicalize filter spec: {e}") from e

        base = f"{self.prefix}:list:{canonical}"
        return f"{base}:viewer:{spec.viewer_id}" if spec.viewer_id else base

    def owner_key(self, owner_id: str) -> str:
        """Key for the owner-scoped listing."""
        return f"{self.prefix}:owner:{owner_id}"

    # -------------------------------------------------------------------------
    # Patterns
    # -------------------------------------------------------------------------

    def namespace_pattern(self) -> str:
        """Pattern matching every key under this prefix."""
        return f"{self.prefix}:*"

    # -------------------------------------------------------------------------
    # Auxiliary keys
    # -------------------------------------------------------------------------

    def scope_index_key(self, tag: ScopeTag) -> str:
        return f"{self.prefix}:scope:{tag}"

    def fence_key_for_scope(self, tag: ScopeTag) -> str:
        return f"{self.prefix}:fence:scope:{tag}"

    def fence_key_for_detail(self, cat_id: str) -> str:
        return f"{self.prefix}:fence:detail:{cat_id}"

    def namespace_fence_key(self) -> str:
        """Fence every reader checks; raised when the whole namespace is purged."""
        return f"{self.prefix}:fence:namespace"

    # -------------------------------------------------------------------------
    # Scopes
    # -------------------------------------------------------------------------

    @staticmethod
    def scopes_for(cat: Cat | None) -> set[ScopeTag]:
        """Scope tags a cat currently belongs to.

        Every cat participates in every sort order, so each orderable field
        contributes an order tag regardless of the cat's values.
        """
        if cat is None:
            return set()

        tags: set[ScopeTag] = set()
        if cat.owner_id is not None:
            tags.add(owner_scope(cat.owner_id))
        for field, kind in GROUP_PREDICATES.items():
            group_id = getattr(cat, field)
            if group_id is not None:
                tags.add(group_scope(kind, group_id))
        for field in FILTERABLE_FIELDS:
            value = getattr(cat, field)
            if value is not None:
                tags.add(filter_scope(field, value))
        for field in ORDERABLE_FIELDS:
            tags.add(order_scope(field))
        return tags

    @staticmethod
    def scopes_for_spec(spec: FilterSpec) -> set[ScopeTag]:
        """Scope tags a list entry for this spec depends on."""
        tags: set[ScopeTag] = set()
        predicates = spec.predicates()
        for field, value in predicates.items():
            if field == "owner_id":
                tags.add(owner_scope(value))
            elif field in GROUP_PREDICATES:
                tags.add(group_scope(GROUP_PREDICATES[field], value))
            else:
                tags.add(filter_scope(field, value))
        if not predicates:
            tags.add(ALL_SCOPE)
        if spec.order_by is not None:
            tags.add(order_scope(spec.order_by.field.value))
        if spec.viewer_id:
            tags.add(viewer_scope(spec.viewer_id))
        return tags

    def parse_key(self, key: str) -> dict[str, str] | None:
        """Parse an entry key into its components.

        Returns None if the key doesn't belong to this prefix.
        """
        if not key.startswith(f"{self.prefix}:"):
            return None

        body = key[len(self.prefix) + 1 :]
        viewer = ""
        if ":viewer:" in body:
            body, viewer = body.rsplit(":viewer:", 1)

        kind, _, payload = body.partition(":")
        if kind in {"all", "list", "owner", "scope", "fence"}:
            return {"prefix": self.prefix, "kind": kind, "payload": payload, "viewer": viewer}
        return {"prefix": self.prefix, "kind": "detail", "payload": body, "viewer": viewer}
