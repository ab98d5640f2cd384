"""Dependent cache invalidation for cat mutations.

Given what a mutation did (create, update, delete) and the cat before and
after, the planner computes every cache entry whose result could have
changed:

1. Always: the default listing and its per-viewer variants, which are
   registered under the "all" scope
2. Update/Delete: the cat's detail entry and every per-viewer variant,
   registered under the cat's "detail" scope
3. The scopes of the prior and new cat (owner, groups, filter values,
   sort orders), so a cat moving between scopes clears both sides
4. Counter-only updates take a narrow path: detail entries and the coupled
   sort orders only, leaving owner, group and filter lists cached
5. Create uses only the new cat's scopes; Delete only the prior cat's

No plan for a single cat scans the keyspace; glob patterns are reserved
for purging the whole namespace.

The executor fans the plan out as independent purge calls. Each runs in
its own error boundary; a failed purge is logged and counted, never
raised, and the TTL bounds the staleness it leaves behind.

Example:
    planner = InvalidationPlanner(CacheKeys())
    plan = planner.plan(MutationKind.UPDATE, prior=before, new=after)
    report = await InvalidationExecutor(cache, index).execute(plan)
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum

from felis.cache.base import CacheStore
from felis.cache.index import ScopeIndex
from felis.cache.keys import (
    ALL_SCOPE,
    CacheKeys,
    ScopeTag,
    detail_scope,
    order_scope,
    viewer_scope,
)
from felis.core.model import Cat
from felis.core.model.cat import COUNTER_FIELDS, ORDERABLE_FIELDS
from felis.errors import InvalidationError
from felis.observability.metrics import get_metrics

logger = logging.getLogger(__name__)

# Fields that never make a cached result differ on their own
_IGNORED_FIELDS = frozenset({"updated_at", "is_liked", "username"})


class MutationKind(str, Enum):
    """Kind of write applied to the entity store."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class InvalidationPath(str, Enum):
    """Which branch of the planner produced a plan."""

    FULL = "full"
    NARROW = "narrow"
    UNCHANGED = "unchanged"
    PURGE = "purge"


@dataclass
class InvalidationPlan:
    """Set of cache targets to purge. Order between targets is irrelevant."""

    kind: MutationKind | None
    path: InvalidationPath = InvalidationPath.FULL
    keys: set[str] = field(default_factory=set)
    patterns: set[str] = field(default_factory=set)
    scopes: set[ScopeTag] = field(default_factory=set)
    fences: set[str] = field(default_factory=set)

    @property
    def target_count(self) -> int:
        return len(self.keys) + len(self.patterns) + len(self.scopes)


@dataclass
class InvalidationReport:
    """Outcome of executing a plan."""

    attempted: int = 0
    deleted: int = 0
    errors: list[InvalidationError] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.errors)

    @property
    def ok(self) -> bool:
        return not self.errors


def changed_fields(prior: Cat, new: Cat) -> set[str]:
    """Attribute names whose values differ between two snapshots of a cat."""
    before = prior.model_dump()
    after = new.model_dump()
    return {
        name
        for name in before
        if name not in _IGNORED_FIELDS and before[name] != after.get(name)
    }


class InvalidationPlanner:
    """Computes the purge set for a mutation."""

    def __init__(
        self,
        keys: CacheKeys,
        counter_fields: Iterable[str] = COUNTER_FIELDS,
        coupled_orderings: Iterable[str] = ORDERABLE_FIELDS,
    ):
        self.keys = keys
        self.counter_fields = frozenset(counter_fields)
        # Likes and age orderings tie-break on creation time, so a rank change
        # in one is treated as a possible rank change in all of them
        self.coupled_orderings = tuple(coupled_orderings)

    def plan(
        self,
        kind: MutationKind,
        prior: Cat | None = None,
        new: Cat | None = None,
        viewer_id: str | None = None,
    ) -> InvalidationPlan:
        """Compute the purge set for a committed mutation.

        Args:
            kind: what the write did
            prior: the cat before the write (required for update/delete)
            new: the cat after the write (required for create/update)
            viewer_id: the user whose action caused the write, if any; that
                user's personalized lists are purged as well

        Raises:
            ValueError: if a snapshot the kind requires is missing.
        """
        plan = InvalidationPlan(kind=kind)
        self._add_always(plan)

        if kind is MutationKind.CREATE:
            if new is None:
                raise ValueError("create requires the new cat")
            self._add_scopes(plan, self.keys.scopes_for(new))

        elif kind is MutationKind.DELETE:
            if prior is None:
                raise ValueError("delete requires the prior cat")
            self._add_detail(plan, prior.id)
            self._add_scopes(plan, self.keys.scopes_for(prior))

        else:
            if prior is None or new is None:
                raise ValueError("update requires prior and new cats")
            self._add_detail(plan, prior.id)
            changed = changed_fields(prior, new)
            if not changed:
                plan.path = InvalidationPath.UNCHANGED
            elif changed <= self.counter_fields:
                plan.path = InvalidationPath.NARROW
                self._add_scopes(plan, {order_scope(f) for f in self.coupled_orderings})
            else:
                self._add_scopes(
                    plan, self.keys.scopes_for(prior) | self.keys.scopes_for(new)
                )

        if viewer_id:
            self._add_scopes(plan, {viewer_scope(viewer_id)})

        return plan

    def purge_all_plan(self) -> InvalidationPlan:
        """Plan that drops every entry under the key prefix."""
        return InvalidationPlan(
            kind=None,
            path=InvalidationPath.PURGE,
            patterns={self.keys.namespace_pattern()},
            fences={self.keys.namespace_fence_key()},
        )

    def _add_always(self, plan: InvalidationPlan) -> None:
        plan.keys.add(self.keys.all_key())
        self._add_scopes(plan, {ALL_SCOPE})

    def _add_detail(self, plan: InvalidationPlan, cat_id: str) -> None:
        plan.keys.add(self.keys.detail_key(cat_id))
        plan.scopes.add(detail_scope(cat_id))
        plan.fences.add(self.keys.fence_key_for_detail(cat_id))

    def _add_scopes(self, plan: InvalidationPlan, tags: Iterable[ScopeTag]) -> None:
        for tag in tags:
            plan.scopes.add(tag)
            plan.fences.add(self.keys.fence_key_for_scope(tag))
            if tag.startswith("owner:"):
                plan.keys.add(self.keys.owner_key(tag.removeprefix("owner:")))


class InvalidationExecutor:
    """Executes plans against a CacheStore and ScopeIndex."""

    def __init__(
        self,
        cache: CacheStore,
        index: ScopeIndex,
        fence_ttl: int = 5,
        clock: Callable[[], float] = time.time,
    ):
        self.cache = cache
        self.index = index
        self.fence_ttl = fence_ttl
        self.clock = clock
        self.metrics = get_metrics()

    async def execute(self, plan: InvalidationPlan) -> InvalidationReport:
        """Purge every target in the plan.

        Fences are raised first so a reader whose load overlaps this purge
        does not write its result back afterwards. A namespace purge also
        deletes the fences it raised, so they are raised again after it.
        """
        report = InvalidationReport()

        raised_at = repr(self.clock()).encode()
        await self._raise_fences(report, plan.fences, raised_at)

        await asyncio.gather(
            *(self._guarded(report, "key", key, self._delete_key(key)) for key in plan.keys),
            *(
                self._guarded(report, "pattern", pattern, self.cache.delete_pattern(pattern))
                for pattern in plan.patterns
            ),
            *(
                self._guarded(report, "scope", tag, self._purge_scope(tag))
                for tag in plan.scopes
            ),
        )

        if plan.path is InvalidationPath.PURGE:
            await self._raise_fences(report, plan.fences, raised_at)

        self.metrics.invalidations_total.labels(
            kind=plan.kind.value if plan.kind else "purge", path=plan.path.value
        ).inc()
        if report.errors:
            logger.warning(
                f"Invalidation finished with {report.failed} failures "
                f"out of {report.attempted} targets"
            )
        return report

    async def _raise_fences(
        self, report: InvalidationReport, fences: Iterable[str], raised_at: bytes
    ) -> None:
        await asyncio.gather(
            *(
                self._guarded(report, "fence", fence, self._raise_fence(fence, raised_at))
                for fence in sorted(fences)
            )
        )

    async def _raise_fence(self, fence: str, raised_at: bytes) -> int:
        await self.cache.set(fence, raised_at, self.fence_ttl)
        return 0

    async def _delete_key(self, key: str) -> int:
        return 1 if await self.cache.delete(key) else 0

    async def _purge_scope(self, tag: ScopeTag) -> int:
        deleted = 0
        for key in await self.index.pop(tag):
            if await self.cache.delete(key):
                deleted += 1
        return deleted

    async def _guarded(
        self,
        report: InvalidationReport,
        target_type: str,
        target: str,
        awaitable: Awaitable[int],
    ) -> None:
        report.attempted += 1
        try:
            report.deleted += await awaitable
        except Exception as e:
            error = InvalidationError(target, e)
            report.errors.append(error)
            self.metrics.invalidation_failures_total.labels(target_type=target_type).inc()
            logger.warning(f"Invalidation of {target_type} {target} failed: {e}")
