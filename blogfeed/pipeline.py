"""Fallback orchestrator: REST source → feed source → exhausted."""

from __future__ import annotations

import logging
from enum import Enum
from typing import List

from blogfeed.config import Settings
from blogfeed.models import IngestResult, SourceTag
from blogfeed.scraping.base import BaseSource
from blogfeed.scraping.feed import FeedSource
from blogfeed.scraping.http import AsyncHTTPClient
from blogfeed.scraping.resilient import ResilientFetcher
from blogfeed.scraping.rest import RestSource

logger = logging.getLogger(__name__)

EXHAUSTED_MESSAGE = (
    "No posts available: all upstream sources failed or returned no content."
)


class IngestState(str, Enum):
    TRY_PRIMARY = "try_primary"
    TRY_SECONDARY = "try_secondary"
    EXHAUSTED = "exhausted"


class FallbackOrchestrator:
    """Runs the primary source, falls back to the secondary, never raises.

    States, in order:

    1. ``TRY_PRIMARY``: paginated REST source; done if it yields any post
    2. ``TRY_SECONDARY``: single-page feed source; done if it yields any post
    3. ``EXHAUSTED``: empty result tagged ``none`` with an explanation

    An empty result is a normal outcome, not an error.
    """

    def __init__(self, primary: BaseSource, secondary: BaseSource) -> None:
        self.primary = primary
        self.secondary = secondary

    async def run(self) -> IngestResult:
        state = IngestState.TRY_PRIMARY
        reasons: List[str] = []

        while True:
            if state is IngestState.TRY_PRIMARY:
                outcome = await self.primary.collect()
                reasons.extend(f"{self.primary.tag.value}: {r}" for r in outcome.reasons)
                if outcome.posts:
                    return self._done(outcome.posts, self.primary.tag, reasons)
                state = self._transition(state, IngestState.TRY_SECONDARY)

            elif state is IngestState.TRY_SECONDARY:
                outcome = await self.secondary.collect()
                reasons.extend(f"{self.secondary.tag.value}: {r}" for r in outcome.reasons)
                if outcome.posts:
                    return self._done(outcome.posts, self.secondary.tag, reasons)
                state = self._transition(state, IngestState.EXHAUSTED)

            else:
                logger.error("ingest_exhausted", extra={"reasons": reasons})
                return IngestResult(
                    posts=[],
                    source=SourceTag.NONE,
                    message=EXHAUSTED_MESSAGE,
                    reasons=reasons,
                )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _transition(self, current: IngestState, nxt: IngestState) -> IngestState:
        logger.warning(
            "ingest_fallback",
            extra={"from_state": current.value, "to_state": nxt.value},
        )
        return nxt

    def _done(self, posts: list, source: SourceTag, reasons: List[str]) -> IngestResult:
        logger.info("ingest_done", extra={"source": source.value, "count": len(posts)})
        return IngestResult(posts=list(posts), source=source, reasons=reasons)


def build_orchestrator(config: Settings, client: AsyncHTTPClient) -> FallbackOrchestrator:
    """Wire the default REST → feed chain over one shared HTTP client."""
    fetcher = ResilientFetcher(
        client,
        max_attempts=config.max_attempts,
        base_delay=config.retry_base_delay,
    )
    return FallbackOrchestrator(
        primary=RestSource(config, fetcher),
        secondary=FeedSource(config, fetcher),
    )
