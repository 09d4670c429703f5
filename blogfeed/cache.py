"""In-process post cache with freshness threshold and serve-stale-on-error.

Lifecycle: the cache starts cold (no snapshot). The first successful
ingestion creates a snapshot; each later successful ingestion replaces it
wholesale. A failed or empty ingestion never replaces a populated
snapshot. Nothing is persisted, so a restart begins cold again.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Optional

from blogfeed.models import IngestResult, Snapshot, SourceTag
from blogfeed.pipeline import FallbackOrchestrator
from blogfeed.scraping.base import Clock, utcnow

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(hours=12)


class PostCache:
    """Owns the current Snapshot and decides when to re-ingest.

    Readers get the snapshot reference as-is; refreshes build a new
    Snapshot and swap the reference, so no reader sees a partial list.
    Check-freshness → ingest → swap runs under one ``asyncio.Lock``.
    While a refresh is in flight, readers holding a stale snapshot are
    served it immediately. Callers that queued behind a refresh receive
    that refresh's outcome instead of starting another ingestion.
    """

    def __init__(
        self,
        orchestrator: FallbackOrchestrator,
        ttl: timedelta = DEFAULT_TTL,
        clock: Clock = utcnow,
    ) -> None:
        self.orchestrator = orchestrator
        self.ttl = ttl
        self.clock = clock
        self._snapshot: Optional[Snapshot] = None
        self._lock = asyncio.Lock()
        # bumped after every completed ingestion
        self._generation = 0
        self._last_outcome: Optional[Snapshot] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def peek(self) -> Optional[Snapshot]:
        """Return the current snapshot without triggering ingestion."""
        return self._snapshot

    def is_fresh(self) -> bool:
        snapshot = self._snapshot
        return snapshot is not None and snapshot.is_fresh(self.clock(), self.ttl)

    async def get(self) -> Snapshot:
        """Return a fresh snapshot, refreshing from upstream when needed."""
        snapshot = self._snapshot
        if snapshot is not None:
            if snapshot.is_fresh(self.clock(), self.ttl):
                return snapshot
            if self._lock.locked():
                logger.debug("cache_stale_while_refreshing")
                return snapshot
        return await self.refresh()

    async def refresh(self, force: bool = False) -> Snapshot:
        """Re-ingest unless another caller already did while we waited."""
        generation = self._generation
        async with self._lock:
            if self._generation != generation and self._last_outcome is not None:
                logger.debug("cache_refresh_coalesced")
                return self._last_outcome

            previous = self._snapshot
            if not force and previous is not None and previous.is_fresh(self.clock(), self.ttl):
                logger.debug("cache_refresh_coalesced")
                return previous

            result = await self.orchestrator.run()
            outcome = self._apply(result, previous)
            self._generation += 1
            self._last_outcome = outcome
            return outcome

    def invalidate(self) -> None:
        """Drop the snapshot; the next get() ingests from scratch."""
        self._snapshot = None
        self._last_outcome = None

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _apply(self, result: IngestResult, previous: Optional[Snapshot]) -> Snapshot:
        now = self.clock()

        if result.posts:
            snapshot = Snapshot(
                posts=tuple(result.posts),
                captured_at=now,
                source=result.source,
            )
            self._snapshot = snapshot
            logger.info(
                "cache_refreshed",
                extra={"source": snapshot.source.value, "count": snapshot.count},
            )
            return snapshot

        if previous is not None:
            logger.warning(
                "cache_serving_stale",
                extra={
                    "source": previous.source.value,
                    "age_seconds": int(previous.age(now).total_seconds()),
                    "reasons": result.reasons,
                },
            )
            return previous

        logger.error("cache_cold_and_empty", extra={"reasons": result.reasons})
        return Snapshot(
            posts=(),
            captured_at=now,
            source=SourceTag.NONE,
            message=result.message,
        )
