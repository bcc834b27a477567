"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


ONE_WEEK_SECONDS = 7 * 24 * 60 * 60


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="MovieCat", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=8080, alias="PORT")

    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    tmdb_language: str = Field(default="en-US", alias="TMDB_LANGUAGE")

    season_check_enabled: bool = Field(default=True, alias="SEASON_CHECK_ENABLED")
    season_check_interval_seconds: int = Field(
        default=ONE_WEEK_SECONDS, alias="SEASON_CHECK_INTERVAL", ge=3_600
    )
    reconcile_concurrency: int = Field(
        default=1, alias="RECONCILE_CONCURRENCY", ge=1, le=16
    )
    notify_unstarted_series: bool = Field(
        default=False, alias="NOTIFY_UNSTARTED_SERIES"
    )
    recommendation_max_count: int = Field(
        default=10, alias="RECOMMENDATION_MAX_COUNT", ge=1, le=100
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./moviecat.db", alias="DATABASE_URL"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("tmdb_api_key", mode="before")
    @classmethod
    def _strip_blank_key(cls, value: object) -> object:
        """Treat blank API keys as missing."""

        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator("tmdb_language", mode="before")
    @classmethod
    def _normalise_language(cls, value: object) -> object:
        if value is None:
            return "en-US"
        if isinstance(value, str):
            cleaned = value.strip().replace("_", "-")
            return cleaned or "en-US"
        return value

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
