"""Client for the upstream catalog listing."""

from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError

from ..models import CatalogItem

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36",
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "en-US,en;q=0.9",
    "Connection": "keep-alive",
}


class CatalogUnavailableError(RuntimeError):
    """Raised when the upstream catalog cannot be fetched or understood."""


class CatalogClient:
    """Thin wrapper around the catalog service's ``data.json`` export."""

    _DATA_PATH = "/data.json"

    def __init__(self, http_client: httpx.AsyncClient):
        self._client = http_client

    async def fetch_items(self) -> list[CatalogItem]:
        """Return every catalog row, skipping rows that fail validation."""

        try:
            response = await self._client.get(self._DATA_PATH)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Catalog fetch failed: %s", exc)
            raise CatalogUnavailableError(str(exc)) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise CatalogUnavailableError("Catalog returned invalid JSON") from exc

        rows = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(rows, list):
            raise CatalogUnavailableError("Catalog payload is missing the data list")

        items: list[CatalogItem] = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            try:
                items.append(CatalogItem.model_validate(row))
            except ValidationError as exc:
                logger.debug("Skipping malformed catalog row: %s", exc)
        return items

    async def find(self, content_key: str) -> CatalogItem | None:
        for item in await self.fetch_items():
            if item.key == content_key:
                return item
        return None
