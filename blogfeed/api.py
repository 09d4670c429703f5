"""FastAPI service exposing the cached, normalised post list."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from blogfeed.cache import PostCache
from blogfeed.config import Settings, get_settings
from blogfeed.models import Snapshot, SourceTag
from blogfeed.pagination import paginate
from blogfeed.pipeline import build_orchestrator
from blogfeed.scheduling.scheduler import RefreshScheduler
from blogfeed.scraping.http import AsyncHTTPClient

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def get_cache(request: Request) -> PostCache:
    return request.app.state.cache


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


# ---------------------------------------------------------------------------
# Response helpers
# ---------------------------------------------------------------------------


def snapshot_payload(snapshot: Snapshot) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "success": True,
        "count": snapshot.count,
        "posts": [post.model_dump(mode="json") for post in snapshot.posts],
        "refreshed": snapshot.captured_at.isoformat(),
        "source": snapshot.source.value,
    }
    if snapshot.message:
        payload["message"] = snapshot.message
    return payload


def _cached_response(
    content: Dict[str, Any], snapshot: Snapshot, settings: Settings
) -> JSONResponse:
    # cold-start empty results are not stored here or at the edge
    if snapshot.source is SourceTag.NONE:
        cache_control = "no-store"
    else:
        cache_control = settings.cache_control_header()
    return JSONResponse(content=content, headers={"Cache-Control": cache_control})


def _error_response(message: str, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": message, "error": str(exc)},
    )


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.get("/api/posts")
async def list_posts(
    cache: PostCache = Depends(get_cache),
    settings: Settings = Depends(get_app_settings),
) -> JSONResponse:
    """Every cached post. Upstream outages yield 200 with ``source: none``."""
    try:
        snapshot = await cache.get()
    except Exception as exc:
        logger.error("posts_request_failed", extra={"error": str(exc)}, exc_info=True)
        return _error_response("Failed to fetch posts", exc)
    return _cached_response(snapshot_payload(snapshot), snapshot, settings)


@router.get("/api/posts/paged")
async def list_posts_paged(
    page: int = Query(default=1),
    per_page: Optional[int] = Query(default=None, ge=1),
    cache: PostCache = Depends(get_cache),
    settings: Settings = Depends(get_app_settings),
) -> JSONResponse:
    """One page of cached posts plus ``page, per_page, total, total_pages``."""
    size = min(per_page or settings.default_page_size, settings.max_page_size)
    try:
        snapshot = await cache.get()
    except Exception as exc:
        logger.error("posts_request_failed", extra={"error": str(exc)}, exc_info=True)
        return _error_response("Failed to fetch posts", exc)

    window = paginate(snapshot.posts, page, size)
    payload = snapshot_payload(snapshot)
    payload.update(
        count=len(window.posts),
        posts=[post.model_dump(mode="json") for post in window.posts],
        page=window.page,
        per_page=window.per_page,
        total=window.total,
        total_pages=window.total_pages,
    )
    return _cached_response(payload, snapshot, settings)


@router.get("/api/posts/refresh")
async def refresh_posts(cache: PostCache = Depends(get_cache)) -> JSONResponse:
    """Force re-ingestion (cron hook); stale data is kept if upstream fails."""
    try:
        snapshot = await cache.refresh(force=True)
    except Exception as exc:
        logger.error("refresh_request_failed", extra={"error": str(exc)}, exc_info=True)
        return _error_response("Failed to refresh posts", exc)
    return JSONResponse(
        content={
            "success": True,
            "count": snapshot.count,
            "cached_at": snapshot.captured_at.isoformat(),
            "source": snapshot.source.value,
        },
        headers={"Cache-Control": "no-store"},
    )


@router.get("/health")
async def health(cache: PostCache = Depends(get_cache)) -> Dict[str, Any]:
    snapshot = cache.peek()
    return {
        "status": "ok",
        "cached": snapshot is not None,
        "fresh": cache.is_fresh(),
        "source": snapshot.source.value if snapshot else None,
    }


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(
    settings: Optional[Settings] = None,
    cache: Optional[PostCache] = None,
) -> FastAPI:
    """Build the service. Without *cache*, the lifespan wires the upstream chain."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        client: Optional[AsyncHTTPClient] = None
        if app.state.cache is None:
            client = AsyncHTTPClient(timeout=settings.request_timeout)
            app.state.cache = PostCache(
                build_orchestrator(settings, client), ttl=settings.cache_ttl
            )

        scheduler: Optional[RefreshScheduler] = None
        if settings.refresh_cron:
            scheduler = RefreshScheduler(app.state.cache, settings.refresh_cron)
            scheduler.start()

        try:
            yield
        finally:
            if scheduler is not None:
                scheduler.stop()
            if client is not None:
                await client.aclose()

    app = FastAPI(
        title="blogfeed",
        description="Normalised, cached blog posts from a REST API with feed fallback",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.cache = cache

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.include_router(router)
    return app
