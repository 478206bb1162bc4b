"""Gateway issuing catalog queries against The Movie Database (TMDB)."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from ..config import Settings
from ..errors import InvalidPayload, NotFound, ProviderUnavailable
from ..models import Entity, EntityFilter, EntityPage, Genre, MediaKind
from ..query import build_provider_query

logger = logging.getLogger(__name__)


class TMDBClient:
    """Thin wrapper around the TMDB v3 HTTP API.

    Every call either returns normalized models or raises one of the catalog
    errors: ``NotFound`` for a provider 404, ``ProviderUnavailable`` for
    transport failures, timeouts and other error statuses, and
    ``InvalidPayload`` for bodies that cannot be parsed.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self._settings = settings
        self._client = http_client

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json;charset=utf-8",
            "User-Agent": f"{self._settings.app_name} (cinelist)",
        }
        if self._settings.tmdb_access_token:
            headers["Authorization"] = f"Bearer {self._settings.tmdb_access_token}"
        return headers

    async def fetch_entity(
        self,
        kind: MediaKind,
        entity_id: int,
        filter: EntityFilter | None = None,
    ) -> Entity:
        """Return the provider's record for a single movie or series."""

        lookup = filter or EntityFilter(id=entity_id)
        data = await self._get(f"{kind.value}/{entity_id}", lookup)
        return Entity.from_provider(data, kind)

    async def fetch_listing(
        self, kind: MediaKind, category: str, filter: EntityFilter | None = None
    ) -> EntityPage:
        """Return a provider list such as ``movie/top_rated`` or ``tv/on_the_air``."""

        data = await self._get(f"{kind.value}/{category}", filter)
        return self._parse_page(data, kind)

    async def fetch_recommendations(
        self, kind: MediaKind, entity_id: int, filter: EntityFilter | None = None
    ) -> EntityPage:
        data = await self._get(f"{kind.value}/{entity_id}/recommendations", filter)
        return self._parse_page(data, kind)

    async def discover(self, kind: MediaKind, filter: EntityFilter | None = None) -> EntityPage:
        data = await self._get(f"discover/{kind.value}", filter)
        return self._parse_page(data, kind)

    async def fetch_videos(self, kind: MediaKind, entity_id: int) -> list[dict[str, Any]]:
        """Return the raw video descriptors published for an entity."""

        data = await self._get(f"{kind.value}/{entity_id}/videos")
        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list):
            raise InvalidPayload(f"Unexpected video list for {kind.value} {entity_id}")
        return [video for video in results if isinstance(video, dict)]

    async def fetch_genres(self, kind: MediaKind, filter: EntityFilter | None = None) -> list[Genre]:
        data = await self._get(f"genre/{kind.value}/list", filter)
        genres = data.get("genres") if isinstance(data, dict) else None
        if not isinstance(genres, list):
            raise InvalidPayload(f"Unexpected genre list for {kind.value}")
        try:
            return [Genre.model_validate(genre) for genre in genres]
        except ValidationError as exc:
            raise InvalidPayload(f"Unparsable genre list for {kind.value}: {exc}") from exc

    async def _get(self, path: str, filter: EntityFilter | None = None) -> Any:
        url = f"/{path.lstrip('/')}"
        query = build_provider_query(filter)
        if query:
            url = f"{url}?{query}"

        try:
            response = await self._client.get(url, headers=self._headers())
        except httpx.HTTPError as exc:
            logger.warning("TMDB request %s failed: %s", url, exc.__class__.__name__)
            raise ProviderUnavailable(
                f"TMDB request {path} failed: {exc.__class__.__name__}"
            ) from exc

        if response.status_code == 404:
            raise NotFound(f"TMDB has no resource at {path}")
        if response.status_code >= 400:
            logger.warning(
                "TMDB request %s returned %s: %s",
                url,
                response.status_code,
                response.text,
            )
            raise ProviderUnavailable(
                f"TMDB request {path} returned {response.status_code}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise InvalidPayload(f"TMDB returned non-JSON content for {path}") from exc

    @staticmethod
    def _parse_page(data: Any, kind: MediaKind) -> EntityPage:
        if not isinstance(data, dict) or not isinstance(data.get("results"), list):
            raise InvalidPayload(f"Unexpected {kind.value} list payload")

        results: list[Entity] = []
        for entry in data["results"]:
            try:
                results.append(Entity.from_provider(entry, kind))
            except InvalidPayload as exc:
                logger.warning("Skipping malformed %s list entry: %s", kind.value, exc)

        try:
            return EntityPage(
                page=data.get("page") or 1,
                total_pages=data.get("total_pages") or 0,
                total_results=data.get("total_results") or 0,
                results=results,
            )
        except ValidationError as exc:
            raise InvalidPayload(f"Unparsable {kind.value} page metadata: {exc}") from exc
