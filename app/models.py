"""Pydantic models describing catalog entities, filters and lists."""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterable

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .errors import InvalidPayload


class MediaKind(str, Enum):
    """Discriminator shared by movies and series; values are provider path segments."""

    MOVIE = "movie"
    SERIES = "tv"

    @property
    def title_field(self) -> str:
        return "title" if self is MediaKind.MOVIE else "name"

    @property
    def date_field(self) -> str:
        return "release_date" if self is MediaKind.MOVIE else "first_air_date"

    @property
    def slug(self) -> str:
        """Return the plural path segment used by the HTTP routes."""

        return "movies" if self is MediaKind.MOVIE else "series"

    @classmethod
    def from_slug(cls, value: str) -> "MediaKind":
        normalized = (value or "").strip().lower()
        for kind in cls:
            if normalized in {kind.slug, kind.value}:
                return kind
        raise ValueError(f"Unsupported media kind: {value}")


class Entity(BaseModel):
    """A movie or series record as resolved from the store or the provider."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    kind: MediaKind
    id: int
    title: str = Field(default="", validation_alias=AliasChoices("title", "name"))
    popularity: float = 0.0
    poster_path: str | None = None
    genre_ids: tuple[int, ...] = ()
    language: str | None = Field(
        default=None, validation_alias=AliasChoices("language", "original_language")
    )
    vote_average: float = 0.0
    vote_count: int = 0
    overview: str | None = None
    release_date: str | None = Field(
        default=None,
        validation_alias=AliasChoices("release_date", "first_air_date"),
    )

    @model_validator(mode="before")
    @classmethod
    def _collect_detail_genres(cls, data: Any) -> Any:
        # Detail payloads carry ``genres: [{id, name}]`` instead of ``genre_ids``.
        if not isinstance(data, dict) or data.get("genre_ids") is not None:
            return data
        genres = data.get("genres")
        if not isinstance(genres, list):
            return data
        genre_ids = [
            genre.get("id")
            for genre in genres
            if isinstance(genre, dict) and genre.get("id") is not None
        ]
        return {**data, "genre_ids": genre_ids}

    @field_validator("title", mode="before")
    @classmethod
    def _coerce_title(cls, value: object) -> object:
        return "" if value is None else value

    @field_validator("popularity", "vote_average", "vote_count", mode="before")
    @classmethod
    def _default_missing_numbers(cls, value: object) -> object:
        return 0 if value is None else value

    @field_validator("poster_path", "overview", "release_date", "language", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def is_complete(self) -> bool:
        """Entities without a poster are placeholders and must not be cached."""

        return bool(self.poster_path)

    @classmethod
    def from_provider(cls, payload: object, kind: MediaKind) -> "Entity":
        """Parse a provider record, raising ``InvalidPayload`` on malformed input."""

        if not isinstance(payload, dict):
            raise InvalidPayload(f"Expected an object for {kind.value}, got {type(payload).__name__}")
        try:
            return cls.model_validate({**payload, "kind": kind})
        except ValidationError as exc:
            raise InvalidPayload(
                f"Provider returned an unparsable {kind.value} payload: {exc}"
            ) from exc

    def to_payload(self) -> dict[str, object]:
        """Return the entity using the provider's field naming for its kind."""

        return {
            "id": self.id,
            "media_type": self.kind.value,
            self.kind.title_field: self.title,
            "popularity": self.popularity,
            "poster_path": self.poster_path,
            "genre_ids": list(self.genre_ids),
            "original_language": self.language,
            "vote_average": self.vote_average,
            "vote_count": self.vote_count,
            "overview": self.overview,
            self.kind.date_field: self.release_date,
        }


class EntityFilter(BaseModel):
    """Structured filter used for provider queries and local search."""

    query: str | None = None
    genres: tuple[int, ...] = ()
    language: str | None = None
    page: int | None = None
    id: int | None = None

    @field_validator("query", "language", mode="before")
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return value

    @field_validator("genres", mode="before")
    @classmethod
    def _parse_genres(cls, value: object) -> tuple[int, ...]:
        if value is None:
            return ()
        if isinstance(value, (int, str)):
            raw_values: Iterable[object] = str(value).split(",")
        elif isinstance(value, Iterable):
            raw_values = value
        else:
            raise ValueError("genres must be an integer, a string or an iterable")

        cleaned: list[int] = []
        for entry in raw_values:
            text = str(entry).strip()
            if not text:
                continue
            genre_id = int(text)
            if genre_id not in cleaned:
                cleaned.append(genre_id)
        return tuple(cleaned)

    @property
    def page_number(self) -> int:
        if self.page is None or self.page < 1:
            return 1
        return self.page

    def is_empty(self) -> bool:
        return (
            self.query is None
            and not self.genres
            and self.language is None
            and self.page is None
            and self.id is None
        )


class EntityPage(BaseModel):
    """A page of entities together with the upstream pagination metadata."""

    page: int = 1
    total_pages: int = 0
    total_results: int = 0
    results: list[Entity] = Field(default_factory=list)

    def to_payload(self) -> dict[str, object]:
        return {
            "page": self.page,
            "total_pages": self.total_pages,
            "total_results": self.total_results,
            "results": [entity.to_payload() for entity in self.results],
        }


class UserList(BaseModel):
    """A user's hydrated personal list."""

    email: str
    movies: list[Entity] = Field(default_factory=list)
    series: list[Entity] = Field(default_factory=list)

    def entities(self, kind: MediaKind) -> list[Entity]:
        return self.movies if kind is MediaKind.MOVIE else self.series

    def to_payload(self) -> dict[str, object]:
        return {
            "email": self.email,
            "movies": [entity.to_payload() for entity in self.movies],
            "series": [entity.to_payload() for entity in self.series],
        }


class VideoReference(BaseModel):
    """Playable embed reference for an entity's first video."""

    id: int
    url: str


class Genre(BaseModel):
    """Entry of the provider's genre catalogue."""

    id: int
    name: str
