from __future__ import annotations

from typing import Any

from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.main import register_exception_handlers, register_routes
from app.models import RemoteConfig, StreamLink
from app.services.catalog import CatalogUnavailableError
from app.services.content import (
    ContentNotFoundError,
    ContentService,
    ContentUnavailableError,
)


class DummyContentService(ContentService):
    """Minimal ContentService stub for route testing."""

    def __init__(self, *, fail: bool = False) -> None:
        # Deliberately skip super().__init__ to avoid touching external systems.
        self.fail = fail
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    async def home(self, page: int, limit: int) -> dict[str, Any]:  # type: ignore[override]
        self.calls.append(("home", (page, limit)))
        if self.fail:
            raise CatalogUnavailableError("upstream timeout")
        return {"movies": {"items": []}, "tvShows": {"items": []}}

    async def search(self, query: str, page: int, limit: int) -> dict[str, Any]:  # type: ignore[override]
        self.calls.append(("search", (query, page, limit)))
        return {"results": [], "query": query}

    async def content_detail(self, raw_id: str) -> dict[str, Any]:  # type: ignore[override]
        self.calls.append(("content", (raw_id,)))
        if raw_id.startswith("error"):
            raise ContentUnavailableError("The StreamFlix service is currently unavailable")
        if raw_id.startswith("missing"):
            raise ContentNotFoundError(raw_id)
        if raw_id.startswith("boom"):
            raise RuntimeError("unexpected")
        return {"name": "Dark", "url": raw_id, "episodes": []}

    async def stream_links(self, data: str) -> list[StreamLink]:  # type: ignore[override]
        self.calls.append(("links", (data,)))
        if data.startswith("error|"):
            raise ContentUnavailableError("Cannot load links for error item")
        return [StreamLink(name="StreamFlix - Premium", url=f"https://p/{data}", quality=720)]

    async def remote_config(self) -> RemoteConfig:  # type: ignore[override]
        return RemoteConfig.fallback()


def build_app(service: DummyContentService) -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)
    register_routes(app)
    app.state.content_service = service
    return app


def test_root_lists_endpoints() -> None:
    with TestClient(build_app(DummyContentService())) as client:
        payload = client.get("/").json()

    assert payload["success"] is True
    assert payload["version"] == "2.0"
    assert payload["endpoints"]["content"] == "/api/content/:id"


def test_health_reports_timestamp() -> None:
    with TestClient(build_app(DummyContentService())) as client:
        payload = client.get("/api/health").json()

    assert payload["success"] is True
    assert "T" in payload["timestamp"]


def test_home_coerces_pagination_parameters() -> None:
    service = DummyContentService()
    with TestClient(build_app(service)) as client:
        response = client.get("/api/home", params={"page": "abc", "limit": "5"})

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert service.calls == [("home", (1, 5))]


def test_home_upstream_failure_uses_error_envelope() -> None:
    with TestClient(build_app(DummyContentService(fail=True))) as client:
        response = client.get("/api/home")

    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "error": "Failed to fetch home content",
        "message": "upstream timeout",
    }


def test_search_requires_query() -> None:
    with TestClient(build_app(DummyContentService())) as client:
        response = client.get("/api/search")

    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "error": 'Query parameter "q" is required',
    }


def test_search_passes_query_and_defaults() -> None:
    service = DummyContentService()
    with TestClient(build_app(service)) as client:
        response = client.get("/api/search", params={"q": "dark"})

    assert response.status_code == 200
    assert service.calls == [("search", ("dark", 1, 20))]


def test_content_detail_success_and_failures() -> None:
    with TestClient(build_app(DummyContentService())) as client:
        ok = client.get("/api/content/show-1|tv")
        unavailable = client.get("/api/content/error|movie")
        missing = client.get("/api/content/missing|movie")

    assert ok.json() == {
        "success": True,
        "data": {"name": "Dark", "url": "show-1|tv", "episodes": []},
    }
    assert unavailable.status_code == 200
    assert unavailable.json()["error"] == "Content not available"
    assert missing.status_code == 404
    assert missing.json() == {"success": False, "error": "Content not found"}


def test_links_accept_slashed_paths() -> None:
    service = DummyContentService()
    with TestClient(build_app(service)) as client:
        response = client.get("/api/links/tv/show-1/s1/episode1.mkv")
        failure = client.get("/api/links/error|x")

    payload = response.json()
    assert payload["data"]["total"] == 1
    assert payload["data"]["links"][0]["url"] == "https://p/tv/show-1/s1/episode1.mkv"
    assert payload["data"]["links"][0]["source"] == "StreamFlix"
    assert failure.json() == {"success": False, "error": "Cannot load links for error item"}


def test_config_endpoint_returns_payload() -> None:
    with TestClient(build_app(DummyContentService())) as client:
        payload = client.get("/api/config").json()

    assert payload["success"] is True
    assert payload["data"]["title"] == "Fallback"


def test_unknown_endpoint_and_unhandled_error() -> None:
    app = build_app(DummyContentService())
    with TestClient(app, raise_server_exceptions=False) as client:
        missing = client.get("/api/nothing-here")
        crashed = client.get("/api/content/boom|tv")

    assert missing.status_code == 404
    assert missing.json() == {"success": False, "error": "Endpoint not found"}
    assert crashed.status_code == 500
    assert crashed.json() == {
        "success": False,
        "error": "Internal server error",
        "message": "unexpected",
    }
