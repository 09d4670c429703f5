"""Single-page RSS feed source, used when the REST source yields nothing."""

from __future__ import annotations

import logging
import random
import re
from typing import Callable, List

from blogfeed.config import Settings
from blogfeed.errors import ParseFailure
from blogfeed.models import FeedItem, PayloadKind, Post, SourceOutcome, SourceTag
from blogfeed.normalize import normalize_batch, normalize_feed_item
from blogfeed.scraping.base import BaseSource, Clock, utcnow
from blogfeed.scraping.resilient import ResilientFetcher

logger = logging.getLogger(__name__)

_FEED_ROOT_RE = re.compile(r"<(rss|channel|rdf:rdf)\b", re.IGNORECASE)
_ITEM_RE = re.compile(r"<item\b[^>]*>.*?</item\s*>", re.IGNORECASE | re.DOTALL)

# Synthetic ids sit above the 32-bit range WordPress post ids live in.
_SYNTHETIC_ID_MIN = 2**32
_SYNTHETIC_ID_MAX = 2**48


def random_post_id() -> int:
    return random.randint(_SYNTHETIC_ID_MIN, _SYNTHETIC_ID_MAX)


def split_feed_items(body: str, cap: int) -> List[FeedItem]:
    """Isolate up to *cap* ``<item>`` fragments from a feed document."""
    if not _FEED_ROOT_RE.search(body):
        raise ParseFailure("no <rss> or <channel> element in feed body")
    items: List[FeedItem] = []
    for match in _ITEM_RE.finditer(body):
        items.append(FeedItem(xml=match.group(0)))
        if len(items) >= cap:
            break
    return items


class FeedSource(BaseSource):
    """Fetches the feed once and normalises each ``<item>``."""

    tag = SourceTag.FEED

    def __init__(
        self,
        config: Settings,
        fetcher: ResilientFetcher,
        clock: Clock = utcnow,
        id_factory: Callable[[], int] = random_post_id,
    ) -> None:
        super().__init__(config, fetcher, clock)
        self._id_factory = id_factory

    def headers(self) -> dict:
        return {
            "User-Agent": self.config.feed_user_agent,
            "Accept": "application/rss+xml, application/xml;q=0.9, text/xml;q=0.8",
        }

    def decode(self, body: str) -> List[FeedItem]:
        return split_feed_items(body, self.config.feed_item_cap)

    async def fetch_posts(self) -> SourceOutcome:
        result = await self.fetcher.fetch(
            self.config.feed_url,
            kind=PayloadKind.XML,
            decode=self.decode,
            headers=self.headers(),
            label="feed",
        )
        if not result.ok:
            return SourceOutcome(reasons=list(result.reasons))

        fetched_at = self.clock()

        def normalize_one(item: FeedItem) -> Post:
            return normalize_feed_item(
                item,
                fetched_at=fetched_at,
                fallback_id=self._id_factory(),
                base_url=self.config.feed_url,
                excerpt_length=self.config.excerpt_length,
            )

        posts = normalize_batch(result.records, normalize_one)
        logger.info(
            "feed_fetched",
            extra={"items": len(result.records), "posts": len(posts)},
        )
        return SourceOutcome(posts=posts, pages=1)
