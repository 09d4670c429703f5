"""Paginated JSON REST source (WordPress ``wp/v2/posts`` with ``_embed``)."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List

from pydantic import ValidationError

from blogfeed.config import Settings
from blogfeed.errors import NoPostConstructed, ParseFailure
from blogfeed.models import PayloadKind, Post, RestRecord, SourceOutcome, SourceTag
from blogfeed.normalize import normalize_batch, normalize_rest_record
from blogfeed.scraping.base import BaseSource, Clock, utcnow
from blogfeed.scraping.resilient import ResilientFetcher, Sleeper

logger = logging.getLogger(__name__)


def decode_rest_page(body: str) -> List[Dict[str, Any]]:
    """Decode one REST page into its raw JSON objects, upstream order kept."""
    try:
        data = json.loads(body)
    except ValueError as exc:
        raise ParseFailure(f"invalid JSON: {exc}") from exc
    if not isinstance(data, list):
        raise ParseFailure(f"expected a JSON array, got {type(data).__name__}")

    return [raw for raw in data if isinstance(raw, dict)]


def parse_rest_record(raw: Dict[str, Any]) -> RestRecord:
    try:
        return RestRecord.model_validate(raw)
    except ValidationError as exc:
        raise NoPostConstructed(f"invalid REST record: {exc.error_count()} errors") from exc


class RestSource(BaseSource):
    """Walks REST pages until a short or empty page, pausing between pages."""

    tag = SourceTag.REST

    def __init__(
        self,
        config: Settings,
        fetcher: ResilientFetcher,
        clock: Clock = utcnow,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        super().__init__(config, fetcher, clock)
        self._sleep = sleep

    def headers(self) -> Dict[str, str]:
        """Crawler identity the upstream recognises for its JSON API."""
        return {
            "User-Agent": self.config.rest_user_agent,
            "Accept": "application/json",
            "Referer": self.config.site_origin.rstrip("/") + "/",
            "Origin": self.config.site_origin.rstrip("/"),
        }

    def page_params(self, page: int) -> Dict[str, Any]:
        return {"per_page": self.config.per_page, "page": page, "_embed": 1}

    async def fetch_posts(self) -> SourceOutcome:
        outcome = SourceOutcome()
        per_page = self.config.per_page
        fetched_at = self.clock()

        def normalize_one(raw: Dict[str, Any]) -> Post:
            return normalize_rest_record(
                parse_rest_record(raw),
                fetched_at=fetched_at,
                base_url=self.config.rest_url,
                excerpt_length=self.config.excerpt_length,
            )

        for page in range(1, self.config.max_pages + 1):
            if page > 1:
                await self._sleep(self.config.page_delay)

            result = await self.fetcher.fetch(
                self.config.rest_url,
                kind=PayloadKind.JSON,
                decode=decode_rest_page,
                params=self.page_params(page),
                headers=self.headers(),
                label=f"rest page {page}",
            )
            if not result.ok:
                outcome.reasons.extend(f"page {page} {r}" for r in result.reasons)
                if outcome.posts:
                    logger.warning(
                        "rest_pagination_truncated",
                        extra={"page": page, "collected": len(outcome.posts)},
                    )
                break

            outcome.pages = page
            outcome.posts.extend(normalize_batch(result.records, normalize_one))
            logger.info(
                "rest_page_fetched",
                extra={"page": page, "records": len(result.records)},
            )
            if len(result.records) < per_page:
                break
        else:
            logger.warning("rest_max_pages_reached", extra={"max_pages": self.config.max_pages})

        return outcome
