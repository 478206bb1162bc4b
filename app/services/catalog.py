"""High level catalog operations exposed to the routing layer."""

from __future__ import annotations

import asyncio
import logging

from ..config import Settings
from ..errors import NotFound, VideoNotFound
from ..models import (
    Entity,
    EntityFilter,
    EntityPage,
    Genre,
    MediaKind,
    UserList,
    VideoReference,
)
from ..storage import CatalogStore
from .my_list import ListManager
from .resolver import EntityResolver
from .tmdb import TMDBClient

logger = logging.getLogger(__name__)

REMOTE_CATEGORIES: dict[MediaKind, dict[str, str]] = {
    MediaKind.MOVIE: {"top-rated": "top_rated", "upcoming": "upcoming"},
    MediaKind.SERIES: {"top-rated": "top_rated", "upcoming": "on_the_air"},
}


def _without_incomplete(page: EntityPage) -> EntityPage:
    # Upstream pagination totals are kept as-is even though results shrink.
    return page.model_copy(
        update={"results": [entity for entity in page.results if entity.is_complete]}
    )


class CatalogService:
    """Coordinates local search, remote listings, resolution and personal lists.

    Single-entity resolution is lenient (provider failures read as "missing"),
    while remote listings propagate provider failures to the caller.
    """

    def __init__(
        self,
        settings: Settings,
        provider: TMDBClient,
        store: CatalogStore,
        *,
        resolver: EntityResolver | None = None,
        lists: ListManager | None = None,
    ):
        self._settings = settings
        self._provider = provider
        self._store = store
        self._resolver = resolver or EntityResolver(store, provider)
        self._lists = lists or ListManager(store)
        self._populate_semaphore = asyncio.Semaphore(8)

    async def resolve_entity(self, kind: MediaKind, entity_id: int) -> Entity:
        entity = await self._resolver.resolve(kind, entity_id)
        if entity is None:
            raise NotFound(f"{kind.value} {entity_id} not found", code=f"{kind.value}_not_found")
        return entity

    async def search_local(self, kind: MediaKind, filter: EntityFilter) -> EntityPage:
        """Search cached entities by title fragment and genres."""

        page_size = self._settings.local_page_size
        results, total = await self._store.find_entities(kind, filter, page_size=page_size)
        return EntityPage(
            page=filter.page_number,
            total_pages=-(-total // page_size),
            total_results=total,
            results=results,
        )

    async def popular(self, kind: MediaKind, filter: EntityFilter | None = None) -> EntityPage:
        """Return cached entities ordered by popularity."""

        base = filter or EntityFilter()
        return await self.search_local(kind, EntityFilter(page=base.page))

    async def list_remote(
        self, kind: MediaKind, category: str, filter: EntityFilter | None = None
    ) -> EntityPage:
        """Return an upstream listing such as ``top-rated`` or ``upcoming``."""

        try:
            provider_category = REMOTE_CATEGORIES[kind][category]
        except KeyError as exc:
            raise NotFound(f"Unknown {kind.value} listing {category}") from exc
        page = await self._provider.fetch_listing(kind, provider_category, filter)
        return _without_incomplete(page)

    async def list_recommendations(self, kind: MediaKind, filter: EntityFilter) -> EntityPage:
        """Return fresh recommendations for ``filter.id``; never cached."""

        if filter.id is None:
            raise ValueError("Recommendations require an entity id")
        await self.resolve_entity(kind, filter.id)
        page = await self._provider.fetch_recommendations(
            kind, filter.id, filter.model_copy(update={"id": None})
        )
        return _without_incomplete(page)

    async def genres(self, kind: MediaKind, filter: EntityFilter | None = None) -> list[Genre]:
        return await self._provider.fetch_genres(kind, filter)

    async def watch_video(self, kind: MediaKind, entity_id: int) -> VideoReference:
        """Return the embed reference of the entity's first video.

        There is no cached fallback for video data: anything other than a
        first video hosted on the configured site is ``VideoNotFound``.
        """

        await self.resolve_entity(kind, entity_id)
        videos = await self._provider.fetch_videos(kind, entity_id)
        if not videos:
            raise VideoNotFound(f"{kind.value} {entity_id} has no videos")
        first = videos[0]
        key = first.get("key")
        if first.get("site") != self._settings.video_site or not key:
            raise VideoNotFound(
                f"First video of {kind.value} {entity_id} is not hosted on "
                f"{self._settings.video_site}"
            )
        return VideoReference(
            id=entity_id,
            url=self._settings.video_embed_template.format(key=key),
        )

    async def add_to_list(self, email: str, kind: MediaKind, entity_id: int) -> UserList:
        logger.info("Add %s %s to the list of %s", kind.value, entity_id, email)
        entity = await self.resolve_entity(kind, entity_id)
        return await self._lists.add(email, entity, kind)

    async def remove_from_list(self, email: str, kind: MediaKind, entity_id: int) -> UserList:
        # Removal is keyed on the reference alone; uncached entities stay removable.
        return await self._lists.remove(email, Entity(kind=kind, id=entity_id), kind)

    async def read_list(self, email: str) -> UserList:
        return await self._lists.read(email)

    async def populate(self, kind: MediaKind, *, max_pages: int | None = None) -> int:
        """Walk the provider's discover listing and cache every entity it names.

        Returns the number of listed ids that resolved.
        """

        page_limit = self._settings.populate_page_limit
        if max_pages is not None:
            page_limit = max(1, min(max_pages, page_limit))

        async def _resolve(entity_id: int) -> Entity | None:
            async with self._populate_semaphore:
                return await self._resolver.resolve(kind, entity_id)

        resolved = 0
        page_number = 0
        while page_number < page_limit:
            page_number += 1
            listing = await self._provider.discover(kind, EntityFilter(page=page_number))
            outcomes = await asyncio.gather(
                *(_resolve(entity.id) for entity in listing.results)
            )
            resolved += sum(1 for entity in outcomes if entity is not None)
            logger.info(
                "Populated %s page %s/%s (%s resolved so far)",
                kind.value,
                page_number,
                listing.total_pages,
                resolved,
            )
            if page_number >= listing.total_pages:
                break
        return resolved
