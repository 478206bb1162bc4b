"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="CineList", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    tmdb_access_token: str | None = Field(default=None, alias="TMDB_ACCESS_TOKEN")
    provider_timeout_seconds: float = Field(
        default=10.0, alias="PROVIDER_TIMEOUT", gt=0, le=120
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./cinelist.db", alias="DATABASE_URL"
    )
    local_page_size: int = Field(default=50, alias="LOCAL_PAGE_SIZE", ge=1, le=500)
    populate_page_limit: int = Field(
        default=500, alias="POPULATE_PAGE_LIMIT", ge=1, le=500
    )

    video_site: str = Field(default="YouTube", alias="VIDEO_SITE")
    video_embed_template: str = Field(
        default="https://www.youtube.com/embed/{key}", alias="VIDEO_EMBED_TEMPLATE"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("video_embed_template")
    @classmethod
    def _require_key_placeholder(cls, value: str) -> str:
        """The embed template must interpolate the provider video key."""

        if "{key}" not in value:
            raise ValueError("VIDEO_EMBED_TEMPLATE must contain a {key} placeholder")
        return value

    @field_validator("tmdb_access_token", mode="before")
    @classmethod
    def _strip_blank_token(cls, value: object) -> object:
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return value

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
