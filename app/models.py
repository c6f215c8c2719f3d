"""Pydantic models describing catalog payloads."""

from __future__ import annotations

import math
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .utils import coerce_float, coerce_int, parse_season_count, round_half_up

ContentType = Literal["movie", "tv"]


class CatalogItem(BaseModel):
    """Represents a single row of the upstream ``data.json`` listing."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    key: str = Field(default="", alias="moviekey")
    name: str | None = Field(default=None, alias="moviename")
    is_tv: bool = Field(default=False, alias="isTV")
    poster: str | None = Field(default=None, alias="movieposter")
    banner: str | None = Field(default=None, alias="moviebanner")
    year: int | None = Field(default=None, alias="movieyear")
    rating: float = Field(default=0.0, alias="movierating")
    description: str | None = Field(default=None, alias="moviedesc")
    info: str | None = Field(default=None, alias="movieinfo")
    category: str | None = Field(default=None, alias="movietype")
    duration: str | None = Field(default=None, alias="movieduration")
    trailer: str | None = Field(default=None, alias="movietrailer")
    imdb: str | None = Field(default=None, alias="movieimdb")
    tmdb: str | None = None
    views: int = Field(default=0, alias="movieviews")
    link: str | None = Field(default=None, alias="movielink")

    @field_validator("key", mode="before")
    @classmethod
    def _coerce_key(cls, value: object) -> str:
        return "" if value is None else str(value)

    @field_validator(
        "name",
        "poster",
        "banner",
        "description",
        "info",
        "category",
        "duration",
        "trailer",
        "imdb",
        "tmdb",
        "link",
        mode="before",
    )
    @classmethod
    def _coerce_text(cls, value: object) -> str | None:
        if value is None:
            return None
        return str(value)

    @field_validator("is_tv", mode="before")
    @classmethod
    def _coerce_flag(cls, value: object) -> bool:
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes"}
        return bool(value)

    @field_validator("year", mode="before")
    @classmethod
    def _coerce_year(cls, value: object) -> int | None:
        return coerce_int(value)

    @field_validator("rating", mode="before")
    @classmethod
    def _coerce_rating(cls, value: object) -> float:
        return coerce_float(value) or 0.0

    @field_validator("views", mode="before")
    @classmethod
    def _coerce_views(cls, value: object) -> int:
        return coerce_int(value) or 0

    @property
    def content_type(self) -> ContentType:
        return "tv" if self.is_tv else "movie"

    @property
    def has_name(self) -> bool:
        return bool(self.name and self.name.strip())

    @property
    def season_count(self) -> int:
        return parse_season_count(self.duration)

    def matches(self, query: str) -> bool:
        """Case-insensitive match against name, category and genre text."""

        if not self.has_name:
            return False
        needle = query.lower()
        haystacks = (self.name, self.category, self.info)
        return any(text and needle in text.lower() for text in haystacks)

    def to_listing(self, image_base_url: str) -> dict[str, Any]:
        """Return the compact card used by home and search listings."""

        return {
            "name": self.name,
            "url": f"{self.key}|{self.content_type}",
            "type": self.content_type,
            "posterUrl": _image_url(image_base_url, "w500", self.poster),
            "year": self.year,
            "rating": self.rating or 0,
            "quality": "HD",
        }

    def to_search_result(self, image_base_url: str) -> dict[str, Any]:
        payload = self.to_listing(image_base_url)
        payload["description"] = self.description or ""
        payload["genre"] = self.info or ""
        return payload

    def to_detail(self, url: str, image_base_url: str) -> dict[str, Any]:
        """Return the detail payload shared by movies and shows."""

        return {
            "name": self.name if self.has_name else "Unknown Title",
            "url": url,
            "type": self.content_type,
            "posterUrl": _image_url(image_base_url, "w500", self.poster),
            "backgroundPosterUrl": _image_url(image_base_url, "original", self.banner),
            "year": self.year,
            "plot": self.description or "",
            "tags": self.info.split("/") if self.info else [],
            "rating": round_half_up(self.rating * 1000) if self.rating else 0,
            "duration": self.duration or "",
            "trailer": self.trailer or "",
            "imdb": self.imdb or "",
            "tmdb": self.tmdb or "",
            "views": self.views or 0,
        }


class Pagination(BaseModel):
    """Page window metadata returned alongside listings."""

    model_config = ConfigDict(populate_by_name=True)

    current_page: int = Field(serialization_alias="currentPage")
    total_items: int = Field(serialization_alias="totalItems")
    total_pages: int = Field(serialization_alias="totalPages")
    has_next: bool = Field(serialization_alias="hasNext")
    has_prev: bool = Field(serialization_alias="hasPrev")

    @classmethod
    def from_window(cls, page: int, limit: int, total: int) -> "Pagination":
        offset = (page - 1) * limit
        return cls(
            current_page=page,
            total_items=total,
            total_pages=math.ceil(total / limit),
            has_next=offset + limit < total,
            has_prev=page > 1,
        )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class Episode(BaseModel):
    """Client-facing episode entry of a show's detail payload."""

    name: str
    season: int
    episode: int
    description: str = ""
    poster_url: str | None = Field(default=None, serialization_alias="posterUrl")
    rating: int | None = None
    runtime: int | None = None
    url: str

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_unset=True)


class StreamLink(BaseModel):
    """A playable URL for a movie or an episode."""

    source: str = "StreamFlix"
    name: str
    url: str
    type: str = "video"
    quality: int
    headers: dict[str, str] = Field(default_factory=dict)


class RemoteConfig(BaseModel):
    """Configuration document published by the catalog service."""

    model_config = ConfigDict(extra="allow")

    movies: list[str] = Field(default_factory=list)
    tv: list[str] = Field(default_factory=list)
    premium: list[str] = Field(default_factory=list)
    download: list[str] = Field(default_factory=list)

    @field_validator("movies", "tv", "premium", "download", mode="before")
    @classmethod
    def _coerce_base_urls(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value else []
        if isinstance(value, list):
            return [str(entry) for entry in value if entry]
        raise ValueError("Base URL lists must be strings or arrays of strings")

    @classmethod
    def fallback(cls) -> "RemoteConfig":
        return cls(
            movies=["https://example.com/fallback/"],
            tv=["https://example.com/fallback/"],
            premium=["https://example.com/fallback/"],
            download=["https://example.com/fallback/"],
            latest=1,
            banner="",
            video="",
            newapp=False,
            notice=False,
            title="Fallback",
            text="Using fallback configuration",
        )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump()


def _image_url(base_url: str, size: str, path: str | None) -> str | None:
    if not path:
        return None
    return f"{base_url}/{size}/{path}"
