"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal
from urllib.parse import urlencode

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="StreamFlix API", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    catalog_api_url: HttpUrl = Field(
        default="https://api.streamflix.app", alias="CATALOG_API_URL"
    )
    catalog_timeout_seconds: float = Field(
        default=30.0, alias="CATALOG_TIMEOUT", gt=0
    )
    config_cache_seconds: int = Field(
        default=3_600, alias="CONFIG_CACHE_TTL", ge=0
    )

    realtime_host: str = Field(
        default="chilflix-410be-default-rtdb.asia-southeast1.firebasedatabase.app",
        alias="REALTIME_HOST",
    )
    realtime_namespace: str = Field(
        default="chilflix-410be-default-rtdb", alias="REALTIME_NAMESPACE"
    )
    realtime_protocol_version: str = Field(
        default="5", alias="REALTIME_PROTOCOL_VERSION"
    )
    episode_deadline_seconds: float = Field(
        default=30.0, alias="EPISODE_DEADLINE", gt=0
    )
    episode_buffer_limit: int = Field(
        default=100_000, alias="EPISODE_BUFFER_LIMIT", ge=1
    )
    realtime_close_timeout: float = Field(
        default=2.0, alias="REALTIME_CLOSE_TIMEOUT", gt=0
    )

    image_base_url: str = Field(
        default="https://image.tmdb.org/t/p", alias="IMAGE_BASE_URL"
    )
    fallback_season_count: int = Field(
        default=2, alias="FALLBACK_SEASONS", ge=1, le=50
    )
    fallback_episode_count: int = Field(
        default=6, alias="FALLBACK_EPISODES", ge=1, le=100
    )
    page_size: int = Field(default=20, alias="PAGE_SIZE", ge=1, le=500)

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("realtime_host", mode="before")
    @classmethod
    def _strip_realtime_scheme(cls, value: object) -> object:
        """Accept hosts configured with a scheme or trailing slash."""

        if not isinstance(value, str):
            return value
        host = value.strip()
        for prefix in ("wss://", "ws://", "https://", "http://"):
            if host.lower().startswith(prefix):
                host = host[len(prefix):]
                break
        return host.rstrip("/")

    @field_validator("image_base_url", mode="before")
    @classmethod
    def _strip_trailing_slash(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().rstrip("/")
        return value

    @property
    def catalog_base_url(self) -> str:
        """Return the catalog API URL without a trailing slash."""

        return str(self.catalog_api_url).rstrip("/")

    @property
    def realtime_url(self) -> str:
        """Return the WebSocket endpoint of the realtime episode store."""

        query = urlencode(
            {"ns": self.realtime_namespace, "v": self.realtime_protocol_version}
        )
        return f"wss://{self.realtime_host}/.ws?{query}"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
