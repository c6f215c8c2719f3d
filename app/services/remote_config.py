"""Cached access to the catalog service's remote configuration."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

import httpx

from ..models import RemoteConfig

logger = logging.getLogger(__name__)


class RemoteConfigCache:
    """Fetch the remote configuration once per TTL window.

    Failures are cached as the fallback configuration for the same window so a
    dead upstream does not add a timeout to every request. ``invalidate``
    forces the next ``get`` to refetch.
    """

    _CONFIG_PATH = "/config/config-streamflixapp.json"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = http_client
        self._ttl = ttl_seconds
        self._clock = clock
        self._value: RemoteConfig | None = None
        self._fetched_at = 0.0
        self._lock = asyncio.Lock()

    @property
    def is_fresh(self) -> bool:
        if self._value is None:
            return False
        return self._clock() - self._fetched_at < self._ttl

    async def get(self) -> RemoteConfig:
        if self.is_fresh:
            assert self._value is not None
            return self._value
        async with self._lock:
            if self.is_fresh:
                assert self._value is not None
                return self._value
            self._value = await self._fetch()
            self._fetched_at = self._clock()
            return self._value

    def invalidate(self) -> None:
        self._value = None
        self._fetched_at = 0.0

    async def _fetch(self) -> RemoteConfig:
        try:
            response = await self._client.get(self._CONFIG_PATH)
            response.raise_for_status()
            return RemoteConfig.model_validate(response.json())
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Error fetching config: %s", exc)
            return RemoteConfig.fallback()
