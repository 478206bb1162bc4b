"""Cache-aside resolution of single entities."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Union

from ..errors import NotFound, ProviderUnavailable
from ..models import Entity, MediaKind
from ..storage import CatalogStore
from .tmdb import TMDBClient

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class Resolved:
    """The entity was found, either in the store or upstream."""

    entity: Entity
    cached: bool


@dataclass(slots=True, frozen=True)
class Missing:
    """Neither the store nor the provider know the entity."""

    kind: MediaKind
    entity_id: int


@dataclass(slots=True, frozen=True)
class ProviderFailure:
    """The store missed and the provider could not answer."""

    kind: MediaKind
    entity_id: int
    error: ProviderUnavailable


ResolveOutcome = Union[Resolved, Missing, ProviderFailure]


class EntityResolver:
    """Serve entities from the local store, falling back to the provider.

    Cached entities are served without any freshness check. Provider records
    lacking a poster are returned but never written to the store. Concurrent
    misses for the same key share a single provider call.
    """

    def __init__(self, store: CatalogStore, provider: TMDBClient):
        self._store = store
        self._provider = provider
        self._inflight: dict[tuple[MediaKind, int], asyncio.Task[ResolveOutcome]] = {}

    async def resolve(self, kind: MediaKind, entity_id: int) -> Entity | None:
        """Return the entity, or ``None`` when it cannot be resolved.

        Provider failures are degraded to ``None`` here: single-entity
        resolution is best effort, so callers only ever see "found" or
        "missing".
        """

        outcome = await self.lookup(kind, entity_id)
        if isinstance(outcome, Resolved):
            return outcome.entity
        if isinstance(outcome, ProviderFailure):
            logger.warning(
                "Treating %s %s as missing after provider failure: %s",
                kind.value,
                entity_id,
                outcome.error,
            )
            return None
        logger.info("%s %s not found locally or upstream", kind.value, entity_id)
        return None

    async def lookup(self, kind: MediaKind, entity_id: int) -> ResolveOutcome:
        """Return the typed outcome of a cache-aside lookup."""

        cached = await self._store.get_entity(kind, entity_id)
        if cached is not None:
            return Resolved(entity=cached, cached=True)

        key = (kind, entity_id)
        task = self._inflight.get(key)
        if task is None:
            logger.info("%s %s is not cached; asking the provider", kind.value, entity_id)
            task = asyncio.ensure_future(self._fetch_and_store(kind, entity_id))
            self._inflight[key] = task
            task.add_done_callback(lambda done: self._forget(key, done))
        return await asyncio.shield(task)

    def _forget(self, key: tuple[MediaKind, int], task: asyncio.Task[ResolveOutcome]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning("Lookup of %s %s failed: %s", key[0].value, key[1], error)

    async def _fetch_and_store(self, kind: MediaKind, entity_id: int) -> ResolveOutcome:
        try:
            entity = await self._provider.fetch_entity(kind, entity_id)
        except NotFound:
            return Missing(kind=kind, entity_id=entity_id)
        except ProviderUnavailable as exc:
            return ProviderFailure(kind=kind, entity_id=entity_id, error=exc)

        if not entity.is_complete:
            logger.info(
                "%s %s has no poster; returning it without caching",
                kind.value,
                entity_id,
            )
            return Resolved(entity=entity, cached=False)

        stored = await self._store.insert_entity_if_absent(entity)
        return Resolved(entity=stored, cached=False)
