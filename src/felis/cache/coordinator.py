"""Write-then-invalidate coordination for cat mutations.

Every mutation is persisted first. Only after the entity store reports
success is the invalidation plan computed and fanned out; invalidating
before the commit would let a concurrent reader re-cache pre-write data
that outlives the purge.

The mutation result reflects the write alone. Invalidation failures are
logged and counted, never raised and never retried synchronously.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from felis.cache.base import CacheStore
from felis.cache.index import ScopeIndex
from felis.cache.invalidation import (
    InvalidationExecutor,
    InvalidationPlan,
    InvalidationPlanner,
    InvalidationReport,
    MutationKind,
)
from felis.cache.keys import CacheKeys
from felis.core.model import Cat, CatCreate, CatUpdate
from felis.errors import InvalidPayloadError
from felis.observability.logging import LogContext
from felis.persistence.base import EntityStore

logger = logging.getLogger(__name__)


@dataclass
class MutationResult:
    """Outcome of a coordinated mutation."""

    kind: MutationKind
    success: bool
    # New cat for create/update, removed cat for delete
    cat: Cat | None = None
    plan: InvalidationPlan | None = None
    # None when the fan-out runs in the background or nothing was written
    invalidation: InvalidationReport | None = None


class MutationCoordinator:
    """Wraps entity store writes with cache invalidation."""

    def __init__(
        self,
        store: EntityStore,
        cache: CacheStore,
        index: ScopeIndex,
        keys: CacheKeys | None = None,
        planner: InvalidationPlanner | None = None,
        fence_ttl: int = 5,
        background: bool = False,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.keys = keys or CacheKeys()
        self.planner = planner or InvalidationPlanner(self.keys)
        self.executor = InvalidationExecutor(cache, index, fence_ttl=fence_ttl, clock=clock)
        self.background = background
        self._tasks: set[asyncio.Task[InvalidationReport | None]] = set()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def mutate(
        self,
        kind: MutationKind,
        cat_id: str | None = None,
        change: CatCreate | CatUpdate | Mapping[str, Any] | None = None,
        viewer_id: str | None = None,
    ) -> MutationResult:
        """Persist a mutation, then invalidate the caches it affects.

        The acting viewer is bound to the log context for the whole mutation,
        including a background fan-out, which inherits the context.

        Raises:
            InvalidPayloadError: if the change cannot be applied.
            EntityStoreError: if the entity store fails.
        """
        with LogContext(viewer_id=viewer_id):
            if kind is MutationKind.CREATE:
                return await self._create(change, viewer_id)
            if cat_id is None:
                raise InvalidPayloadError(f"{kind.value} requires a cat id")
            if kind is MutationKind.UPDATE:
                return await self._update(cat_id, change, viewer_id)
            return await self._delete(cat_id, viewer_id)

    async def create(self, payload: CatCreate | Mapping[str, Any]) -> MutationResult:
        return await self.mutate(MutationKind.CREATE, change=payload)

    async def update(
        self,
        cat_id: str,
        change: CatUpdate | Mapping[str, Any],
        viewer_id: str | None = None,
    ) -> MutationResult:
        return await self.mutate(MutationKind.UPDATE, cat_id, change, viewer_id)

    async def delete(self, cat_id: str) -> MutationResult:
        return await self.mutate(MutationKind.DELETE, cat_id)

    async def purge_all(self) -> int:
        """Delete every cat and drop every cached entry under the prefix."""
        deleted = await self.store.purge_all()
        if deleted > 0:
            await self._dispatch(self.planner.purge_all_plan())
        return deleted

    async def drain(self) -> None:
        """Wait for background invalidations to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def _create(self, change: Any, viewer_id: str | None) -> MutationResult:
        try:
            payload = change if isinstance(change, CatCreate) else CatCreate.model_validate(change)
        except ValidationError as e:
            raise InvalidPayloadError(f"Invalid cat payload: {e}") from e

        new = await self.store.create(payload)
        logger.debug(f"Created cat {new.id}")
        return await self._after_write(MutationKind.CREATE, None, new, viewer_id)

    async def _update(self, cat_id: str, change: Any, viewer_id: str | None) -> MutationResult:
        try:
            update = change if isinstance(change, CatUpdate) else CatUpdate.model_validate(change)
        except ValidationError as e:
            raise InvalidPayloadError(f"Invalid cat update: {e}") from e
        fields = update.changes()
        if not fields:
            raise InvalidPayloadError("No valid fields to update")

        prior = await self.store.get_by_id(cat_id)
        if prior is None:
            return MutationResult(kind=MutationKind.UPDATE, success=False)

        if not await self.store.update(cat_id, fields):
            return MutationResult(kind=MutationKind.UPDATE, success=False)

        new = prior.model_copy(update=fields)
        return await self._after_write(MutationKind.UPDATE, prior, new, viewer_id)

    async def _delete(self, cat_id: str, viewer_id: str | None) -> MutationResult:
        prior = await self.store.get_by_id(cat_id)
        if prior is None:
            return MutationResult(kind=MutationKind.DELETE, success=False)

        if not await self.store.delete(cat_id):
            return MutationResult(kind=MutationKind.DELETE, success=False)

        return await self._after_write(MutationKind.DELETE, prior, None, viewer_id)

    # -------------------------------------------------------------------------
    # Invalidation
    # -------------------------------------------------------------------------

    async def _after_write(
        self,
        kind: MutationKind,
        prior: Cat | None,
        new: Cat | None,
        viewer_id: str | None,
    ) -> MutationResult:
        result = MutationResult(kind=kind, success=True, cat=new or prior)
        try:
            result.plan = self.planner.plan(kind, prior=prior, new=new, viewer_id=viewer_id)
        except Exception:
            logger.exception(f"Failed to plan invalidation for {kind.value}")
            return result

        logger.debug(
            f"Invalidating {result.plan.target_count} targets for {kind.value} "
            f"({result.plan.path.value} path)"
        )
        result.invalidation = await self._dispatch(result.plan)
        return result

    async def _dispatch(self, plan: InvalidationPlan) -> InvalidationReport | None:
        if self.background:
            task = asyncio.create_task(self._execute(plan))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            return None
        return await self._execute(plan)

    async def _execute(self, plan: InvalidationPlan) -> InvalidationReport | None:
        try:
            return await self.executor.execute(plan)
        except Exception:
            logger.exception("Invalidation fan-out failed")
            return None
