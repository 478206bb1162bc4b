from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

import httpx
import pytest

from app.config import Settings
from app.database import Database
from app.errors import NotFound, ProviderUnavailable, VideoNotFound
from app.models import Entity, EntityFilter, MediaKind
from app.services.catalog import CatalogService
from app.services.tmdb import TMDBClient
from app.storage import CatalogStore

EMAIL = "u1@example.com"


async def _run_with_service(
    database_url: str,
    handler: Callable[[httpx.Request], httpx.Response],
    scenario: Callable[[CatalogService, CatalogStore], Awaitable[None]],
    **settings_overrides: Any,
) -> None:
    database = Database(database_url)
    await database.create_all()
    settings = Settings(_env_file=None, **settings_overrides)
    try:
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(handler),
            base_url="https://api.example.com/3",
        ) as http_client:
            store = CatalogStore(database.session_factory)
            service = CatalogService(settings, TMDBClient(settings, http_client), store)
            await scenario(service, store)
    finally:
        await database.dispose()


def _listing(results: list[dict[str, Any]], **meta: Any) -> dict[str, Any]:
    return {
        "page": meta.get("page", 1),
        "total_pages": meta.get("total_pages", 1),
        "total_results": meta.get("total_results", len(results)),
        "results": results,
    }


def test_remote_list_drops_posterless_results_but_keeps_totals(
    database_url, movie_payload
) -> None:
    """Filtered listings under-report consistently against upstream totals."""

    requested: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(request.url.path)
        results = [
            movie_payload(index, poster_path=None if index in {3, 8, 15} else f"/{index}.jpg")
            for index in range(1, 21)
        ]
        return httpx.Response(
            200, json=_listing(results, page=1, total_pages=37, total_results=731)
        )

    async def scenario(service: CatalogService, store: CatalogStore) -> None:
        page = await service.list_remote(MediaKind.MOVIE, "top-rated", EntityFilter())

        assert len(page.results) == 17
        assert all(entity.is_complete for entity in page.results)
        assert (page.page, page.total_pages, page.total_results) == (1, 37, 731)
        # Listings never populate the cache.
        assert await store.get_entity(MediaKind.MOVIE, 1) is None

        await service.list_remote(MediaKind.SERIES, "upcoming")

    asyncio.run(_run_with_service(database_url, handler, scenario))
    assert requested == ["/3/movie/top_rated", "/3/tv/on_the_air"]


def test_remote_list_failures_propagate(database_url) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="bad gateway")

    async def scenario(service: CatalogService, store: CatalogStore) -> None:
        with pytest.raises(ProviderUnavailable):
            await service.list_remote(MediaKind.MOVIE, "upcoming")
        with pytest.raises(NotFound):
            await service.list_remote(MediaKind.MOVIE, "trending")
        # Single-entity resolution stays lenient for the same outage.
        with pytest.raises(NotFound):
            await service.resolve_entity(MediaKind.MOVIE, 1)

    asyncio.run(_run_with_service(database_url, handler, scenario))


def test_recommendations_are_fetched_fresh_and_not_persisted(
    database_url, movie_payload
) -> None:
    requested: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(request.url.path)
        if request.url.path.endswith("/recommendations"):
            return httpx.Response(
                200, json=_listing([movie_payload(100), movie_payload(101, poster_path=None)])
            )
        return httpx.Response(200, json=movie_payload(10))

    async def scenario(service: CatalogService, store: CatalogStore) -> None:
        first = await service.list_recommendations(MediaKind.MOVIE, EntityFilter(id=10))
        second = await service.list_recommendations(MediaKind.MOVIE, EntityFilter(id=10))

        assert [entity.id for entity in first.results] == [100]
        assert second == first
        assert await store.get_entity(MediaKind.MOVIE, 10) is not None
        assert await store.get_entity(MediaKind.MOVIE, 100) is None

    asyncio.run(_run_with_service(database_url, handler, scenario))
    assert requested == [
        "/3/movie/10",
        "/3/movie/10/recommendations",
        "/3/movie/10/recommendations",
    ]


@pytest.mark.parametrize(
    ("videos", "expected"),
    [
        ([{"site": "YouTube", "key": "dQw4w9WgXcQ"}], "https://www.youtube.com/embed/dQw4w9WgXcQ"),
        ([{"site": "Vimeo", "key": "1"}, {"site": "YouTube", "key": "2"}], None),
        ([], None),
    ],
)
def test_watch_video_uses_first_video_only(
    database_url, movie_payload, videos: list[dict[str, Any]], expected: str | None
) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/videos"):
            return httpx.Response(200, json={"id": 10, "results": videos})
        return httpx.Response(200, json=movie_payload(10))

    async def scenario(service: CatalogService, store: CatalogStore) -> None:
        if expected is None:
            with pytest.raises(VideoNotFound):
                await service.watch_video(MediaKind.MOVIE, 10)
            return
        reference = await service.watch_video(MediaKind.MOVIE, 10)
        assert reference.id == 10
        assert reference.url == expected

    asyncio.run(_run_with_service(database_url, handler, scenario))


def test_list_scenario_add_twice_then_remove_twice(database_url, movie_payload) -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return httpx.Response(200, json=movie_payload(42, poster_path="/x.jpg"))

    async def scenario(service: CatalogService, store: CatalogStore) -> None:
        await service.add_to_list(EMAIL, MediaKind.MOVIE, 42)
        user_list = await service.add_to_list(EMAIL, MediaKind.MOVIE, 42)
        assert [entity.id for entity in user_list.movies] == [42]

        user_list = await service.remove_from_list(EMAIL, MediaKind.MOVIE, 42)
        assert user_list.movies == []
        user_list = await service.remove_from_list(EMAIL, MediaKind.MOVIE, 42)
        assert user_list.movies == []

        assert (await service.read_list(EMAIL)).movies == []

    asyncio.run(_run_with_service(database_url, handler, scenario))
    assert calls == ["/3/movie/42"]


def test_add_unresolvable_entity_is_not_found(database_url) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    async def scenario(service: CatalogService, store: CatalogStore) -> None:
        with pytest.raises(NotFound) as excinfo:
            await service.add_to_list(EMAIL, MediaKind.SERIES, 5)
        assert excinfo.value.code == "tv_not_found"
        assert await store.list_exists(EMAIL) is False

        with pytest.raises(NotFound) as excinfo:
            await service.remove_from_list(EMAIL, MediaKind.SERIES, 5)
        assert excinfo.value.code == "my_list_not_found"

    asyncio.run(_run_with_service(database_url, handler, scenario))


def test_posterless_entity_in_list_can_be_removed(database_url, movie_payload) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=movie_payload(42, poster_path=None))

    async def scenario(service: CatalogService, store: CatalogStore) -> None:
        user_list = await service.add_to_list(EMAIL, MediaKind.MOVIE, 42)

        # Resolved but never cached, so the reference cannot be hydrated.
        assert user_list.movies == []
        assert await store.get_entity(MediaKind.MOVIE, 42) is None
        assert (await store.list_references(EMAIL))[MediaKind.MOVIE] == [42]
        assert (await service.read_list(EMAIL)).movies == []

        user_list = await service.remove_from_list(EMAIL, MediaKind.MOVIE, 42)

        assert user_list.movies == []
        assert (await store.list_references(EMAIL))[MediaKind.MOVIE] == []

        # Removing a reference that was never added is a no-op.
        await service.remove_from_list(EMAIL, MediaKind.SERIES, 9)
        assert await store.list_exists(EMAIL) is True

    asyncio.run(_run_with_service(database_url, handler, scenario))


def test_search_local_reports_local_pagination(database_url, movie_payload) -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - never called
        raise AssertionError("local search must not reach the provider")

    async def scenario(service: CatalogService, store: CatalogStore) -> None:
        for movie_id in range(1, 6):
            await store.insert_entity_if_absent(
                Entity.from_provider(
                    movie_payload(movie_id, title=f"Alien {movie_id}", popularity=movie_id),
                    MediaKind.MOVIE,
                )
            )

        page = await service.search_local(MediaKind.MOVIE, EntityFilter(query="alien", page=2))
        assert [entity.id for entity in page.results] == [3, 2]
        assert (page.page, page.total_pages, page.total_results) == (2, 3, 5)

        popular = await service.popular(MediaKind.MOVIE)
        assert [entity.id for entity in popular.results] == [5, 4]

    asyncio.run(
        _run_with_service(database_url, handler, scenario, LOCAL_PAGE_SIZE=2)
    )


def test_populate_walks_discover_pages(database_url, movie_payload) -> None:
    detail_calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/3/discover/movie":
            page = int(request.url.params["page"])
            ids = {1: [1, 2], 2: [3, 4]}.get(page, [])
            return httpx.Response(
                200,
                json=_listing([movie_payload(movie_id) for movie_id in ids], page=page, total_pages=2),
            )
        detail_calls.append(request.url.path)
        movie_id = int(request.url.path.rsplit("/", 1)[-1])
        if movie_id == 4:
            return httpx.Response(404)
        return httpx.Response(200, json=movie_payload(movie_id))

    async def scenario(service: CatalogService, store: CatalogStore) -> None:
        resolved = await service.populate(MediaKind.MOVIE)

        assert resolved == 3
        page = await service.popular(MediaKind.MOVIE)
        assert sorted(entity.id for entity in page.results) == [1, 2, 3]

        # Already cached ids are not fetched again.
        assert await service.populate(MediaKind.MOVIE, max_pages=1) == 2

    asyncio.run(_run_with_service(database_url, handler, scenario))
    assert sorted(detail_calls) == ["/3/movie/1", "/3/movie/2", "/3/movie/3", "/3/movie/4"]
