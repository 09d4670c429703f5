"""Abstract base class for the upstream post sources."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable

from blogfeed.config import Settings
from blogfeed.errors import IngestError
from blogfeed.models import SourceOutcome, SourceTag
from blogfeed.scraping.resilient import ResilientFetcher

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseSource(ABC):
    """Contract that every upstream source must implement.

    Each subclass sets ``tag`` as a class-level constant.
    ``collect()`` wraps ``fetch_posts()`` with logging and isolates the
    expected ingestion failures; programming errors still propagate.
    """

    tag: SourceTag = SourceTag.NONE

    def __init__(
        self,
        config: Settings,
        fetcher: ResilientFetcher,
        clock: Clock = utcnow,
    ) -> None:
        self.config = config
        self.fetcher = fetcher
        self.clock = clock

    # ------------------------------------------------------------------
    # Public entry point
    # ------------------------------------------------------------------

    async def collect(self) -> SourceOutcome:
        """Fetch posts, log counts, and absorb upstream failures."""
        try:
            outcome = await self.fetch_posts()
        except IngestError as exc:
            logger.error(
                "source_failed",
                extra={"source": self.tag.value, "error": exc.describe()},
            )
            return SourceOutcome(reasons=[exc.describe()])

        logger.info(
            "source_fetched",
            extra={
                "source": self.tag.value,
                "count": len(outcome.posts),
                "pages": outcome.pages,
            },
        )
        return outcome

    # ------------------------------------------------------------------
    # Abstract method
    # ------------------------------------------------------------------

    @abstractmethod
    async def fetch_posts(self) -> SourceOutcome:
        """Fetch and normalise posts from this source."""
