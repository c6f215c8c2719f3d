"""Tests for the remote configuration cache."""

from __future__ import annotations

import httpx
import pytest

from app.services.remote_config import RemoteConfigCache


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


class FakeClock:
    def __init__(self) -> None:
        self.now = 1_000.0

    def __call__(self) -> float:
        return self.now


def config_handler(calls: list[httpx.Request], *, status: int = 200):
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if status >= 400:
            return httpx.Response(status, text="unavailable")
        return httpx.Response(
            200,
            json={
                "premium": ["https://premium.example.com/"],
                "movies": ["https://movies.example.com/"],
                "tv": ["https://tv.example.com/"],
                "download": [],
                "latest": len(calls),
            },
        )

    return handler


@pytest.mark.anyio("asyncio")
async def test_config_is_cached_within_ttl() -> None:
    calls: list[httpx.Request] = []
    clock = FakeClock()
    transport = httpx.MockTransport(config_handler(calls))
    async with httpx.AsyncClient(transport=transport, base_url="https://api.example.com") as http_client:
        cache = RemoteConfigCache(http_client, ttl_seconds=60, clock=clock)
        first = await cache.get()
        clock.now += 30
        second = await cache.get()

    assert first is second
    assert len(calls) == 1
    assert calls[0].url.path == "/config/config-streamflixapp.json"
    assert first.premium == ["https://premium.example.com/"]


@pytest.mark.anyio("asyncio")
async def test_config_refreshes_after_ttl_and_invalidate() -> None:
    calls: list[httpx.Request] = []
    clock = FakeClock()
    transport = httpx.MockTransport(config_handler(calls))
    async with httpx.AsyncClient(transport=transport, base_url="https://api.example.com") as http_client:
        cache = RemoteConfigCache(http_client, ttl_seconds=60, clock=clock)
        await cache.get()
        clock.now += 61
        refreshed = await cache.get()
        cache.invalidate()
        assert cache.is_fresh is False
        invalidated = await cache.get()

    assert len(calls) == 3
    assert refreshed.to_payload()["latest"] == 2
    assert invalidated.to_payload()["latest"] == 3


@pytest.mark.anyio("asyncio")
async def test_config_failure_uses_fallback() -> None:
    calls: list[httpx.Request] = []
    transport = httpx.MockTransport(config_handler(calls, status=500))
    async with httpx.AsyncClient(transport=transport, base_url="https://api.example.com") as http_client:
        cache = RemoteConfigCache(http_client, ttl_seconds=60, clock=FakeClock())
        config = await cache.get()
        again = await cache.get()

    assert config.premium == ["https://example.com/fallback/"]
    assert config.to_payload()["title"] == "Fallback"
    assert again is config
    assert len(calls) == 1
