"""Entry point for the FastAPI-powered catalog API."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import datetime, timezone
from typing import Any

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .services.catalog import DEFAULT_HEADERS, CatalogClient, CatalogUnavailableError
from .services.content import (
    ContentNotFoundError,
    ContentService,
    ContentUnavailableError,
)
from .services.episodes import EpisodeStreamResolver
from .services.remote_config import RemoteConfigCache
from .utils import coerce_positive_int

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

API_VERSION = "2.0"

app: FastAPI


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    catalog_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=settings.catalog_base_url,
            headers=DEFAULT_HEADERS,
            timeout=httpx.Timeout(settings.catalog_timeout_seconds, connect=10.0),
            follow_redirects=True,
        )
    )

    content_service = ContentService(
        settings,
        CatalogClient(catalog_http_client),
        RemoteConfigCache(
            catalog_http_client, ttl_seconds=settings.config_cache_seconds
        ),
        EpisodeStreamResolver(settings),
    )
    fastapi_app.state.content_service = content_service

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Catalog, episode and stream link API for StreamFlix content",
        version=API_VERSION,
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    register_exception_handlers(fastapi_app)
    register_routes(fastapi_app)
    return fastapi_app


def get_content_service(app: FastAPI) -> ContentService:
    service = getattr(app.state, "content_service", None)
    if not isinstance(service, ContentService):
        raise RuntimeError("Content service not initialised")
    return service


def _failure(status_code: int, error: str, message: str | None = None) -> JSONResponse:
    payload: dict[str, Any] = {"success": False, "error": error}
    if message is not None:
        payload["message"] = message
    return JSONResponse(payload, status_code=status_code)


def register_exception_handlers(fastapi_app: FastAPI) -> None:
    @fastapi_app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        _: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        if exc.status_code == 404 and exc.detail == "Not Found":
            return _failure(404, "Endpoint not found")
        detail = exc.detail
        if isinstance(detail, dict):
            return _failure(
                exc.status_code,
                str(detail.get("error") or "Request failed"),
                detail.get("message"),
            )
        return _failure(exc.status_code, str(detail))

    @fastapi_app.exception_handler(Exception)
    async def unhandled_exception_handler(_: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error: %s", exc)
        return _failure(500, "Internal server error", str(exc))


def register_routes(fastapi_app: FastAPI) -> None:
    def _upstream_failure(error: str, exc: Exception) -> HTTPException:
        logger.error("%s: %s", error, exc)
        return HTTPException(
            status_code=500, detail={"error": error, "message": str(exc)}
        )

    @fastapi_app.get("/")
    async def root() -> dict[str, Any]:
        return {
            "success": True,
            "message": settings.app_name,
            "version": API_VERSION,
            "endpoints": {
                "home": "/api/home?page=1&limit=20",
                "search": "/api/search?q=query&page=1&limit=20",
                "content": "/api/content/:id",
                "links": "/api/links/:id",
                "config": "/api/config",
                "health": "/api/health",
            },
        }

    @fastapi_app.get("/api/health")
    async def healthcheck() -> dict[str, Any]:
        return {
            "success": True,
            "message": f"{settings.app_name} is running",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @fastapi_app.get("/api/home")
    async def home(page: str | None = None, limit: str | None = None) -> dict[str, Any]:
        service = get_content_service(fastapi_app)
        resolved_page = coerce_positive_int(page, 1)
        resolved_limit = coerce_positive_int(limit, settings.page_size)
        try:
            data = await service.home(resolved_page, resolved_limit)
        except CatalogUnavailableError as exc:
            raise _upstream_failure("Failed to fetch home content", exc) from exc
        return {"success": True, "data": data}

    @fastapi_app.get("/api/search")
    async def search(
        q: str | None = None, page: str | None = None, limit: str | None = None
    ) -> dict[str, Any]:
        if not q:
            raise HTTPException(
                status_code=400, detail='Query parameter "q" is required'
            )
        service = get_content_service(fastapi_app)
        resolved_page = coerce_positive_int(page, 1)
        resolved_limit = coerce_positive_int(limit, settings.page_size)
        try:
            data = await service.search(q, resolved_page, resolved_limit)
        except CatalogUnavailableError as exc:
            raise _upstream_failure("Search failed", exc) from exc
        return {"success": True, "data": data}

    @fastapi_app.get("/api/content/{content_id:path}")
    async def content(content_id: str) -> JSONResponse:
        service = get_content_service(fastapi_app)
        try:
            data = await service.content_detail(content_id)
        except ContentUnavailableError as exc:
            return JSONResponse(
                {"success": False, "error": "Content not available", "message": str(exc)}
            )
        except ContentNotFoundError as exc:
            raise HTTPException(status_code=404, detail="Content not found") from exc
        except CatalogUnavailableError as exc:
            raise _upstream_failure("Failed to load content", exc) from exc
        return JSONResponse({"success": True, "data": data})

    @fastapi_app.get("/api/links/{data:path}")
    async def links(data: str) -> JSONResponse:
        service = get_content_service(fastapi_app)
        try:
            stream_links = await service.stream_links(data)
        except ContentUnavailableError as exc:
            return JSONResponse({"success": False, "error": str(exc)})
        payload = [link.model_dump() for link in stream_links]
        return JSONResponse(
            {"success": True, "data": {"links": payload, "total": len(payload)}}
        )

    @fastapi_app.get("/api/config")
    async def remote_config() -> dict[str, Any]:
        service = get_content_service(fastapi_app)
        config = await service.remote_config()
        return {"success": True, "data": config.to_payload()}


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
