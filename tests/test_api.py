"""Tests for the FastAPI service — upstream HTTP and ingestion are mocked."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from fastapi.testclient import TestClient

from blogfeed.api import create_app
from blogfeed.cache import PostCache
from blogfeed.models import IngestResult, SourceTag
from blogfeed.pipeline import EXHAUSTED_MESSAGE, build_orchestrator
from conftest import (
    REST_URL,
    block_response,
    feed_response,
    make_client,
    make_feed_xml,
)


def mocked_cache(clock, *results) -> PostCache:
    orchestrator = MagicMock()
    orchestrator.run = AsyncMock(side_effect=list(results))
    return PostCache(orchestrator, clock=clock)


@pytest.fixture()
def make_api(settings):
    clients = []

    def factory(cache: PostCache) -> TestClient:
        client = TestClient(create_app(settings, cache=cache))
        client.__enter__()
        clients.append(client)
        return client

    yield factory
    for client in clients:
        client.__exit__(None, None, None)


class TestListPosts:
    def test_returns_posts_with_cache_header(self, make_api, clock, sample_posts):
        api = make_api(mocked_cache(clock, IngestResult(posts=sample_posts, source=SourceTag.REST)))

        resp = api.get("/api/posts")

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["count"] == 25
        assert body["source"] == "rest"
        assert body["refreshed"] == clock().isoformat()
        assert "message" not in body
        first = body["posts"][0]
        assert set(first) == {"id", "title", "link", "date", "excerpt", "image"}
        assert resp.headers["cache-control"] == "public, s-maxage=43200, stale-while-revalidate=3600"

    def test_cors_allows_any_origin(self, make_api, clock, sample_posts):
        api = make_api(mocked_cache(clock, IngestResult(posts=sample_posts, source=SourceTag.REST)))
        resp = api.get("/api/posts", headers={"Origin": "https://travel.example.org"})
        assert resp.headers["access-control-allow-origin"] == "*"

    def test_exhausted_upstream_is_not_an_error(self, make_api, clock):
        api = make_api(
            mocked_cache(
                clock,
                IngestResult(posts=[], source=SourceTag.NONE, message=EXHAUSTED_MESSAGE),
            )
        )

        resp = api.get("/api/posts")

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["count"] == 0
        assert body["posts"] == []
        assert body["source"] == "none"
        assert body["message"] == EXHAUSTED_MESSAGE
        assert resp.headers["cache-control"] == "no-store"

    def test_unexpected_failure_is_500(self, make_api, clock):
        api = make_api(mocked_cache(clock, RuntimeError("boom")))

        resp = api.get("/api/posts")

        assert resp.status_code == 500
        assert resp.json() == {
            "success": False,
            "message": "Failed to fetch posts",
            "error": "boom",
        }

    def test_second_request_served_from_cache(self, make_api, clock, sample_posts):
        cache = mocked_cache(clock, IngestResult(posts=sample_posts, source=SourceTag.REST))
        api = make_api(cache)

        api.get("/api/posts")
        api.get("/api/posts")

        assert cache.orchestrator.run.await_count == 1


class TestPagedPosts:
    def _api(self, make_api, clock, posts):
        return make_api(mocked_cache(clock, IngestResult(posts=posts, source=SourceTag.FEED)))

    def test_window_and_metadata(self, make_api, clock, sample_posts):
        api = self._api(make_api, clock, sample_posts)

        body = api.get("/api/posts/paged", params={"page": 3, "per_page": 10}).json()

        assert [p["id"] for p in body["posts"]] == [21, 22, 23, 24, 25]
        assert body["count"] == 5
        assert body["page"] == 3
        assert body["per_page"] == 10
        assert body["total"] == 25
        assert body["total_pages"] == 3
        assert body["source"] == "feed"

    def test_default_page_size(self, make_api, clock, sample_posts, settings):
        api = self._api(make_api, clock, sample_posts)
        body = api.get("/api/posts/paged").json()
        assert body["page"] == 1
        assert body["per_page"] == settings.default_page_size

    def test_page_size_clamped(self, make_api, clock, sample_posts, settings):
        api = self._api(make_api, clock, sample_posts)
        body = api.get("/api/posts/paged", params={"per_page": 5000}).json()
        assert body["per_page"] == settings.max_page_size

    @pytest.mark.parametrize("page", [0, 4, 99])
    def test_out_of_range_page_is_empty(self, make_api, clock, sample_posts, page):
        api = self._api(make_api, clock, sample_posts)
        resp = api.get("/api/posts/paged", params={"page": page, "per_page": 10})
        assert resp.status_code == 200
        assert resp.json()["posts"] == []
        assert resp.json()["total"] == 25

    def test_empty_cold_result_not_edge_cached(self, make_api, clock):
        api = make_api(
            mocked_cache(
                clock,
                IngestResult(posts=[], source=SourceTag.NONE, message=EXHAUSTED_MESSAGE),
            )
        )
        resp = api.get("/api/posts/paged")
        assert resp.json()["source"] == "none"
        assert resp.headers["cache-control"] == "no-store"

    def test_zero_page_size_rejected(self, make_api, clock, sample_posts):
        api = self._api(make_api, clock, sample_posts)
        assert api.get("/api/posts/paged", params={"per_page": 0}).status_code == 422


class TestRefreshAndHealth:
    def test_refresh_forces_ingest(self, make_api, clock, sample_posts):
        cache = mocked_cache(
            clock,
            IngestResult(posts=sample_posts, source=SourceTag.REST),
            IngestResult(posts=sample_posts[:4], source=SourceTag.FEED),
        )
        api = make_api(cache)
        api.get("/api/posts")

        resp = api.get("/api/posts/refresh")

        assert resp.status_code == 200
        assert resp.json() == {
            "success": True,
            "count": 4,
            "cached_at": clock().isoformat(),
            "source": "feed",
        }
        assert resp.headers["cache-control"] == "no-store"

    def test_refresh_failure_keeps_stale(self, make_api, clock, sample_posts):
        cache = mocked_cache(
            clock,
            IngestResult(posts=sample_posts, source=SourceTag.REST),
            IngestResult(posts=[], source=SourceTag.NONE, message=EXHAUSTED_MESSAGE),
        )
        api = make_api(cache)
        api.get("/api/posts")

        body = api.get("/api/posts/refresh").json()

        assert body["count"] == 25
        assert body["source"] == "rest"

    def test_health_reports_cache_state(self, make_api, clock, sample_posts):
        api = make_api(mocked_cache(clock, IngestResult(posts=sample_posts, source=SourceTag.REST)))

        assert api.get("/health").json() == {
            "status": "ok",
            "cached": False,
            "fresh": False,
            "source": None,
        }
        api.get("/api/posts")
        assert api.get("/health").json() == {
            "status": "ok",
            "cached": True,
            "fresh": True,
            "source": "rest",
        }


class TestEndToEnd:
    def test_soft_blocked_rest_falls_back_to_feed(self, make_api, settings, clock, sleeper):
        rest_calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            if str(request.url).startswith(REST_URL):
                rest_calls.append(request)
                return block_response()
            return feed_response(make_feed_xml(5))

        orchestrator = build_orchestrator(settings, make_client(handler))
        orchestrator.primary.fetcher._sleep = sleeper
        orchestrator.primary._sleep = sleeper
        api = make_api(PostCache(orchestrator, clock=clock))

        body = api.get("/api/posts").json()

        assert body["success"] is True
        assert body["count"] == 5
        assert body["source"] == "feed"
        assert len(rest_calls) == settings.max_attempts
        for post in body["posts"]:
            assert "<" not in post["title"]
            assert len(post["excerpt"]) <= 280
