"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


PLACEHOLDER_API_KEYS: frozenset[str] = frozenset({"YOUR_TMDB_API_KEY", "changeme"})

FailureMode = Literal["isolate", "fallback"]


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="Daekho", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    tmdb_image_base_url: str = Field(
        default="https://image.tmdb.org/t/p/w500", alias="TMDB_IMAGE_BASE_URL"
    )
    tmdb_language: str | None = Field(default=None, alias="TMDB_LANGUAGE")

    firebase_api_key: str | None = Field(default=None, alias="FIREBASE_API_KEY")
    identity_api_url: HttpUrl = Field(
        default="https://identitytoolkit.googleapis.com/v1",
        alias="IDENTITY_API_URL",
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./daekho.db", alias="DATABASE_URL"
    )

    default_preferred_rating: float = Field(
        default=6.0, alias="DEFAULT_PREFERRED_RATING", ge=0, le=10
    )
    recommendation_shuffle: bool = Field(
        default=True, alias="RECOMMENDATION_SHUFFLE"
    )
    recommendation_seed: int | None = Field(
        default=None, alias="RECOMMENDATION_SEED"
    )
    recommendation_failure_mode: FailureMode = Field(
        default="isolate", alias="RECOMMENDATION_FAILURE_MODE"
    )

    http_timeout_seconds: float = Field(
        default=20.0, alias="HTTP_TIMEOUT_SECONDS", gt=0, le=300
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("tmdb_api_key", "firebase_api_key", mode="before")
    @classmethod
    def _strip_placeholder_keys(cls, value: object) -> object:
        """Treat blank and placeholder credentials as missing."""

        if value is None:
            return None
        if isinstance(value, str):
            cleaned = value.strip()
            if not cleaned or cleaned in PLACEHOLDER_API_KEYS:
                return None
            return cleaned
        return value

    @field_validator("recommendation_failure_mode", mode="before")
    @classmethod
    def _normalise_failure_mode(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("recommendation_seed", mode="before")
    @classmethod
    def _blank_seed(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


def is_api_configured(settings: Settings) -> bool:
    """Return whether a usable TMDB credential is configured."""

    key = settings.tmdb_api_key
    return bool(key and key.strip() and key.strip() not in PLACEHOLDER_API_KEYS)


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
