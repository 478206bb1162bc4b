"""Translate entity filters into provider query strings and local predicates."""

from __future__ import annotations

from urllib.parse import quote

from sqlalchemy import ColumnElement, and_, select

from .db_models import EntityGenre, EntityRecord
from .models import EntityFilter, MediaKind

LOCAL_PAGE_SIZE = 50

# Popularity first, provider id as a deterministic tie-break.
LOCAL_ORDERING = (EntityRecord.popularity.desc(), EntityRecord.entity_id.asc())


def _encode(value: object) -> str:
    return quote(str(value), safe=",")


def build_provider_query(filter: EntityFilter | None) -> str:
    """Return the provider query string for ``filter``.

    Parameters are emitted in a fixed order (``query``, ``with_genres``,
    ``language``, ``page``) and empty values are omitted entirely. An empty
    filter produces an empty string; otherwise ``page`` defaults to 1.
    """

    if filter is None or filter.is_empty():
        return ""

    parts: list[str] = []
    if filter.query:
        parts.append(f"query={_encode(filter.query)}")
    if filter.genres:
        joined = ",".join(str(genre) for genre in filter.genres)
        parts.append(f"with_genres={_encode(joined)}")
    if filter.language:
        parts.append(f"language={_encode(filter.language)}")
    parts.append(f"page={filter.page_number}")
    return "&".join(parts)


def build_local_predicate(filter: EntityFilter, kind: MediaKind) -> ColumnElement[bool]:
    """Return the SQL predicate selecting cached entities matching ``filter``."""

    clauses: list[ColumnElement[bool]] = [EntityRecord.kind == kind.value]
    if filter.query:
        clauses.append(
            EntityRecord.search_title.contains(filter.query.casefold(), autoescape=True)
        )
    if filter.genres:
        genre_members = select(EntityGenre.entity_id).where(
            EntityGenre.kind == kind.value,
            EntityGenre.genre_id.in_(filter.genres),
        )
        clauses.append(EntityRecord.entity_id.in_(genre_members))
    return and_(*clauses)
