"""Shared pytest fixtures for the blogfeed test suite."""

from __future__ import annotations

import os
import random
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

import httpx
import pytest

# Ensure no real env vars bleed in during tests
os.environ.setdefault("BLOGFEED_REFRESH_CRON", "")

REST_URL = "https://blog.example.com/wp-json/wp/v2/posts"
FEED_URL = "https://blog.example.com/feed/"

# ─── Anti-Flake Guardrails ───

FROZEN_TIME = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _deterministic_seed():
    """Reset random seed before every test to prevent ordering-dependent flakes."""
    random.seed(42)
    yield


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, now: datetime = FROZEN_TIME) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class SleepRecorder:
    """Async stand-in for asyncio.sleep that records requested delays."""

    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture()
def settings():
    """Return a Settings instance with safe test defaults."""
    from blogfeed.config import Settings

    return Settings(
        rest_url=REST_URL,
        feed_url=FEED_URL,
        site_origin="https://blog.example.com",
        per_page=100,
        page_delay=0.3,
        max_attempts=3,
        retry_base_delay=1.0,
        refresh_cron="",
        log_level="DEBUG",
    )


# ---------------------------------------------------------------------------
# Upstream payload builders
# ---------------------------------------------------------------------------


def make_rest_record(i: int = 1, **overrides) -> dict:
    record = {
        "id": 1000 + i,
        "date": "2024-01-10T08:30:00",
        "date_gmt": "2024-01-10T07:30:00",
        "link": f"https://blog.example.com/post-{i}/",
        "title": {"rendered": f"Post &#8211; number {i}"},
        "excerpt": {"rendered": f"<p>Excerpt for post {i} [&hellip;]</p>\n"},
        "_embedded": {
            "wp:featuredmedia": [
                {
                    "source_url": f"https://blog.example.com/img/{i}.jpg",
                    "media_details": {
                        "sizes": {
                            "medium": {"source_url": f"https://blog.example.com/img/{i}-300.jpg"},
                            "large": {"source_url": f"https://blog.example.com/img/{i}-1024.jpg"},
                        }
                    },
                }
            ]
        },
    }
    record.update(overrides)
    return record


def make_feed_item(i: int = 1, link: Optional[str] = None) -> str:
    link = link or f"https://blog.example.com/?p={500 + i}&amp;utm_source=rss&amp;utm_medium=rss"
    return (
        "<item>"
        f"<title><![CDATA[Feed post {i}]]></title>"
        f"<link>{link}</link>"
        "<pubDate>Mon, 08 Jan 2024 09:00:00 +0000</pubDate>"
        f"<description><![CDATA[<p>Feed body {i} "
        f'<img src="https://blog.example.com/img/feed-{i}.png" /></p>]]></description>'
        "</item>"
    )


def make_feed_xml(n: int) -> str:
    items = "".join(make_feed_item(i) for i in range(1, n + 1))
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0"><channel><title>Example blog</title>'
        f"{items}</channel></rss>"
    )


BLOCK_PAGE = (
    "<!DOCTYPE html><html><head><title>Just a moment...</title></head>"
    "<body>Checking your browser. Ray ID: cf-ray 8a1b2c3d</body></html>"
)


def json_response(payload) -> httpx.Response:
    return httpx.Response(200, json=payload)


def feed_response(xml: str) -> httpx.Response:
    return httpx.Response(
        200,
        content=xml.encode("utf-8"),
        headers={"content-type": "application/rss+xml; charset=UTF-8"},
    )


def block_response() -> httpx.Response:
    return httpx.Response(
        200,
        content=BLOCK_PAGE.encode("utf-8"),
        headers={"content-type": "text/html; charset=UTF-8"},
    )


def make_client(handler: Callable[[httpx.Request], httpx.Response]):
    """Return an AsyncHTTPClient whose requests are answered by *handler*."""
    from blogfeed.scraping.http import AsyncHTTPClient

    return AsyncHTTPClient(timeout=5.0, transport=httpx.MockTransport(handler))


@pytest.fixture()
def sample_posts():
    """Return 25 canonical Posts, newest first."""
    from blogfeed.models import Post

    return [
        Post(
            id=i,
            title=f"Post {i}",
            link=f"https://blog.example.com/post-{i}/",
            date=FROZEN_TIME - timedelta(days=i),
            excerpt=f"Excerpt {i}",
        )
        for i in range(1, 26)
    ]
