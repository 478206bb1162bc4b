"""Entry point for the FastAPI-powered catalog service."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager, contextmanager
from typing import Any, Iterator

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from .config import settings
from .database import Database
from .errors import NotFound, ProviderUnavailable, VideoNotFound
from .models import EntityFilter, MediaKind
from .services.catalog import CatalogService
from .services.tmdb import TMDBClient
from .storage import CatalogStore

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

USER_EMAIL_HEADER = "x-user-email"

app: FastAPI


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    tmdb_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.tmdb_api_url),
            timeout=httpx.Timeout(
                settings.provider_timeout_seconds,
                connect=min(5.0, settings.provider_timeout_seconds),
            ),
        )
    )
    database = Database(settings.database_url)
    await database.create_all()

    provider = TMDBClient(settings, tmdb_http_client)
    store = CatalogStore(database.session_factory)
    catalog_service = CatalogService(settings, provider, store)

    fastapi_app.state.catalog_service = catalog_service
    fastapi_app.state.database = database

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Movie and series catalog with personal lists, cached from TMDB",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_catalog_service(app: FastAPI) -> CatalogService:
    service = getattr(app.state, "catalog_service", None)
    if not isinstance(service, CatalogService):
        raise RuntimeError("Catalog service not initialised")
    return service


@contextmanager
def _catalog_errors() -> Iterator[None]:
    """Map catalog errors onto HTTP responses."""

    try:
        yield
    except NotFound as exc:
        raise HTTPException(status_code=404, detail=exc.code) from exc
    except VideoNotFound as exc:
        raise HTTPException(status_code=500, detail=exc.code) from exc
    except ProviderUnavailable as exc:
        logger.warning("Provider failure surfaced to client: %s", exc)
        raise HTTPException(status_code=502, detail=exc.code) from exc


def _resolve_kind(kind_slug: str) -> MediaKind:
    try:
        return MediaKind.from_slug(kind_slug)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail="Unsupported content type") from exc


def _require_email(request: Request) -> str:
    email = (request.headers.get(USER_EMAIL_HEADER) or "").strip().lower()
    if not email:
        raise HTTPException(status_code=401, detail="Missing user identity")
    return email


def _filter_from_request(request: Request, **extra: Any) -> EntityFilter:
    params = request.query_params
    payload: dict[str, Any] = {
        "query": params.get("query"),
        "genres": params.get("genres") or params.get("genre"),
        "language": params.get("language"),
        "page": params.get("page"),
    }
    payload.update(extra)
    try:
        return EntityFilter.model_validate(payload)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.errors()) from exc


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/my-list")
    async def read_my_list(request: Request) -> dict[str, object]:
        service = get_catalog_service(fastapi_app)
        email = _require_email(request)
        with _catalog_errors():
            user_list = await service.read_list(email)
        return user_list.to_payload()

    @fastapi_app.get("/{kind_slug}")
    async def search(request: Request, kind_slug: str) -> dict[str, object]:
        service = get_catalog_service(fastapi_app)
        kind = _resolve_kind(kind_slug)
        page = await service.search_local(kind, _filter_from_request(request))
        return page.to_payload()

    @fastapi_app.get("/{kind_slug}/popular")
    async def popular(request: Request, kind_slug: str) -> dict[str, object]:
        service = get_catalog_service(fastapi_app)
        kind = _resolve_kind(kind_slug)
        page = await service.popular(kind, _filter_from_request(request))
        return page.to_payload()

    @fastapi_app.get("/{kind_slug}/genres")
    async def genres(request: Request, kind_slug: str) -> list[dict[str, object]]:
        service = get_catalog_service(fastapi_app)
        kind = _resolve_kind(kind_slug)
        language = _filter_from_request(request).language
        with _catalog_errors():
            entries = await service.genres(kind, EntityFilter(language=language))
        return [entry.model_dump() for entry in entries]

    @fastapi_app.get("/{kind_slug}/top-rated")
    async def top_rated(request: Request, kind_slug: str) -> dict[str, object]:
        return await _remote_listing(request, kind_slug, "top-rated")

    @fastapi_app.get("/{kind_slug}/upcoming")
    async def upcoming(request: Request, kind_slug: str) -> dict[str, object]:
        return await _remote_listing(request, kind_slug, "upcoming")

    async def _remote_listing(
        request: Request, kind_slug: str, category: str
    ) -> dict[str, object]:
        service = get_catalog_service(fastapi_app)
        kind = _resolve_kind(kind_slug)
        with _catalog_errors():
            page = await service.list_remote(kind, category, _filter_from_request(request))
        return page.to_payload()

    @fastapi_app.get("/{kind_slug}/{entity_id}/detail")
    async def detail(kind_slug: str, entity_id: int) -> dict[str, object]:
        service = get_catalog_service(fastapi_app)
        kind = _resolve_kind(kind_slug)
        with _catalog_errors():
            entity = await service.resolve_entity(kind, entity_id)
        return entity.to_payload()

    @fastapi_app.get("/{kind_slug}/{entity_id}/recommendations")
    async def recommendations(
        request: Request, kind_slug: str, entity_id: int
    ) -> dict[str, object]:
        service = get_catalog_service(fastapi_app)
        kind = _resolve_kind(kind_slug)
        filter = _filter_from_request(request, id=entity_id)
        with _catalog_errors():
            page = await service.list_recommendations(kind, filter)
        return page.to_payload()

    @fastapi_app.get("/{kind_slug}/{entity_id}/watch")
    async def watch(request: Request, kind_slug: str, entity_id: int) -> dict[str, object]:
        service = get_catalog_service(fastapi_app)
        _require_email(request)
        kind = _resolve_kind(kind_slug)
        with _catalog_errors():
            reference = await service.watch_video(kind, entity_id)
        return reference.model_dump()

    @fastapi_app.post("/{kind_slug}/{entity_id}")
    async def add_to_list(
        request: Request, kind_slug: str, entity_id: int
    ) -> dict[str, object]:
        service = get_catalog_service(fastapi_app)
        email = _require_email(request)
        kind = _resolve_kind(kind_slug)
        with _catalog_errors():
            user_list = await service.add_to_list(email, kind, entity_id)
        return user_list.to_payload()

    @fastapi_app.delete("/{kind_slug}/{entity_id}")
    async def remove_from_list(
        request: Request, kind_slug: str, entity_id: int
    ) -> dict[str, object]:
        service = get_catalog_service(fastapi_app)
        email = _require_email(request)
        kind = _resolve_kind(kind_slug)
        with _catalog_errors():
            user_list = await service.remove_from_list(email, kind, entity_id)
        return user_list.to_payload()


app = create_app()
