"""Pytest configuration and test helpers."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable

import pytest


# Ensure the application package is importable when running tests without an
# editable install. This mirrors the expected runtime layout where ``app`` sits
# at the project root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    """Return a throwaway SQLite database URL."""

    return f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}"


@pytest.fixture
def movie_payload() -> Callable[..., dict[str, Any]]:
    """Return a factory building TMDB-shaped movie records."""

    def build(movie_id: int = 42, **overrides: Any) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": movie_id,
            "title": f"Movie {movie_id}",
            "popularity": 10.0,
            "poster_path": f"/poster-{movie_id}.jpg",
            "genre_ids": [28],
            "original_language": "en",
            "vote_average": 7.5,
            "vote_count": 120,
            "overview": "An example movie.",
            "release_date": "2020-01-01",
        }
        payload.update(overrides)
        return payload

    return build


@pytest.fixture
def series_payload() -> Callable[..., dict[str, Any]]:
    """Return a factory building TMDB-shaped series records."""

    def build(series_id: int = 7, **overrides: Any) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": series_id,
            "name": f"Series {series_id}",
            "popularity": 5.0,
            "poster_path": f"/series-{series_id}.jpg",
            "genre_ids": [18],
            "original_language": "en",
            "vote_average": 8.0,
            "vote_count": 300,
            "overview": "An example series.",
            "first_air_date": "2019-05-01",
        }
        payload.update(overrides)
        return payload

    return build
