"""Content service combining the catalog, remote config and episode store."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from ..config import Settings
from ..models import CatalogItem, Episode, Pagination, RemoteConfig, StreamLink
from ..utils import coerce_float, paginate, parse_episode_token, round_half_up
from .catalog import CatalogClient
from .episodes import AggregateResult
from .remote_config import RemoteConfigCache

logger = logging.getLogger(__name__)


class ContentNotFoundError(KeyError):
    """Raised when a content key is not present in the catalog."""


class ContentUnavailableError(ValueError):
    """Raised for placeholder identifiers that never resolve to content."""


class EpisodeResolver(Protocol):
    async def resolve(self, content_key: str, total_seasons: int) -> AggregateResult:
        ...


class ContentService:
    """Reshape catalog payloads for API clients."""

    def __init__(
        self,
        settings: Settings,
        catalog: CatalogClient,
        config_cache: RemoteConfigCache,
        episode_resolver: EpisodeResolver,
    ) -> None:
        self._settings = settings
        self._catalog = catalog
        self._config_cache = config_cache
        self._episodes = episode_resolver

    @property
    def image_base_url(self) -> str:
        return self._settings.image_base_url

    async def home(self, page: int, limit: int) -> dict[str, Any]:
        """Return paginated movie and TV listings."""

        items = [item for item in await self._catalog.fetch_items() if item.has_name]
        movies = [item for item in items if not item.is_tv]
        shows = [item for item in items if item.is_tv]
        return {
            "movies": self._listing_section(movies, page, limit),
            "tvShows": self._listing_section(shows, page, limit),
        }

    async def search(self, query: str, page: int, limit: int) -> dict[str, Any]:
        items = await self._catalog.fetch_items()
        matches = [item for item in items if item.matches(query)]
        return {
            "results": [
                item.to_search_result(self.image_base_url)
                for item in paginate(matches, page, limit)
            ],
            "pagination": Pagination.from_window(page, limit, len(matches)).to_payload(),
            "query": query,
        }

    async def content_detail(self, raw_id: str) -> dict[str, Any]:
        """Return the detail payload for ``<key>|<type>`` identifiers.

        Shows are expanded with their episode list, resolved from the realtime
        store and replaced by placeholder episodes when nothing came back.
        """

        content_key = raw_id.partition("|")[0]
        if content_key == "error":
            raise ContentUnavailableError(
                "The StreamFlix service is currently unavailable"
            )

        item = await self._catalog.find(content_key)
        if item is None:
            raise ContentNotFoundError(content_key)

        payload = item.to_detail(raw_id, self.image_base_url)
        if not item.is_tv:
            payload["dataUrl"] = item.link or ""
            return payload

        season_count = item.season_count
        logger.info("TV Show %s has %s seasons", item.key, season_count)
        aggregate = await self._episodes.resolve(item.key, season_count)
        episodes = build_episodes(item.key, aggregate, self.image_base_url)
        if not episodes:
            logger.info("Episode stream for %s returned nothing, using fallback episodes", item.key)
            episodes = fallback_episodes(
                item.key,
                seasons=self._settings.fallback_season_count,
                episodes_per_season=self._settings.fallback_episode_count,
            )
        payload["episodes"] = [episode.to_payload() for episode in episodes]
        payload["seasonCount"] = season_count
        return payload

    async def remote_config(self) -> RemoteConfig:
        return await self._config_cache.get()

    async def stream_links(self, data: str) -> list[StreamLink]:
        """Return playable URLs for a movie path, episode path or episode token."""

        if data.startswith("error|"):
            raise ContentUnavailableError("Cannot load links for error item")
        config = await self._config_cache.get()
        return build_stream_links(data, config, referer=self._settings.catalog_base_url)

    def _listing_section(
        self, items: list[CatalogItem], page: int, limit: int
    ) -> dict[str, Any]:
        return {
            "items": [
                item.to_listing(self.image_base_url)
                for item in paginate(items, page, limit)
            ],
            "pagination": Pagination.from_window(page, limit, len(items)).to_payload(),
        }


def build_episodes(
    content_key: str, aggregate: AggregateResult, image_base_url: str
) -> list[Episode]:
    """Turn resolved episode records into client-facing episodes."""

    episodes: list[Episode] = []
    for season in sorted(aggregate):
        season_map = aggregate[season]
        for index in sorted(season_map):
            record = season_map[index]
            number = index + 1
            episodes.append(
                Episode(
                    name=record.name or f"Episode {number}",
                    season=season,
                    episode=number,
                    description=record.overview or "",
                    poster_url=(
                        f"{image_base_url}/w500/{record.still_path}"
                        if record.still_path
                        else None
                    ),
                    rating=_rating(record.vote_average),
                    runtime=record.runtime or 0,
                    url=record.link or f"{content_key}|s{season}e{number}",
                )
            )
    return episodes


def _rating(vote_average: float | None) -> int:
    scaled = coerce_float(vote_average * 100) if vote_average else None
    return round_half_up(scaled) if scaled is not None else 0


def fallback_episodes(
    content_key: str, *, seasons: int = 2, episodes_per_season: int = 6
) -> list[Episode]:
    return [
        Episode(
            name=f"Episode {episode}",
            season=season,
            episode=episode,
            description=f"Episode {episode} of Season {season}",
            url=f"{content_key}|s{season}e{episode}",
        )
        for season in range(1, seasons + 1)
        for episode in range(1, episodes_per_season + 1)
    ]


def build_stream_links(data: str, config: RemoteConfig, *, referer: str) -> list[StreamLink]:
    headers = {"Referer": referer}

    def _links(bases: list[str], label: str, quality: int, suffix: str) -> list[StreamLink]:
        return [
            StreamLink(
                name=f"StreamFlix - {label}",
                url=f"{base}{suffix}",
                quality=quality,
                headers=dict(headers),
            )
            for base in bases
        ]

    if data.startswith("tv/") and "/s" in data and data.endswith(".mkv"):
        return _links(config.premium, "Premium", 720, data) + _links(
            config.tv, "TV", 480, data
        )

    if "|s" in data and "e" in data:
        content_key, _, token = data.partition("|")
        parsed = parse_episode_token(token)
        if parsed is None:
            logger.warning("Unrecognised episode token %r", data)
            return []
        season, episode = parsed
        path = f"tv/{content_key}/s{season}/episode{episode}.mkv"
        return _links(config.premium, "Premium", 720, path)

    if not data:
        return []
    return _links(config.premium, "Premium", 720, data) + _links(
        config.movies, "Movies", 480, data
    )
