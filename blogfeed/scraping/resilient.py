"""Bounded retry loop around one upstream URL, gated by the block detector."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
)

from blogfeed.errors import (
    BlockedResponse,
    EmptyResult,
    IngestError,
    NetworkFailure,
    ParseFailure,
)
from blogfeed.models import FetchResult, PayloadKind
from blogfeed.scraping.blocking import inspect_response
from blogfeed.scraping.http import AsyncHTTPClient

logger = logging.getLogger(__name__)

Decoder = Callable[[str], List[Any]]
Sleeper = Callable[[float], Awaitable[None]]

_RETRYABLE = (NetworkFailure, BlockedResponse, ParseFailure, EmptyResult)


def backoff_delay(attempt_number: int, base_delay: float) -> float:
    """Wait after failed attempt *attempt_number* (1-based): attempt × base."""
    return attempt_number * base_delay


class ResilientFetcher:
    """Fetch one URL up to ``max_attempts`` times and decode it.

    Every attempt that hits a network error, a soft block, an undecodable
    payload or zero records counts as failed. Waits grow linearly
    (``backoff_delay``) and are awaited, so other tasks on the event loop
    keep running. Exhaustion is reported through ``FetchResult.ok``;
    upstream trouble never raises out of :meth:`fetch`.
    """

    def __init__(
        self,
        client: AsyncHTTPClient,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self.client = client
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._sleep = sleep

    async def fetch(
        self,
        url: str,
        *,
        kind: PayloadKind,
        decode: Decoder,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        label: str = "",
    ) -> FetchResult:
        label = label or url
        reasons: List[str] = []
        attempts = 0
        records: List[Any] = []

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=lambda state: backoff_delay(state.attempt_number, self.base_delay),
            retry=retry_if_exception_type(_RETRYABLE),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
            reraise=False,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    try:
                        records = await self._attempt(url, kind, decode, params, headers)
                    except IngestError as exc:
                        reasons.append(f"attempt {attempts}: {exc.describe()}")
                        logger.info(
                            "fetch_attempt_failed",
                            extra={
                                "source": label,
                                "attempt": attempts,
                                "error": exc.describe(),
                            },
                        )
                        raise
        except RetryError:
            logger.warning(
                "fetch_exhausted",
                extra={"source": label, "attempts": attempts, "reasons": reasons},
            )
            return FetchResult(ok=False, attempts=attempts, reasons=reasons)

        logger.debug(
            "fetch_succeeded",
            extra={"source": label, "attempt": attempts, "records": len(records)},
        )
        return FetchResult(ok=True, records=records, attempts=attempts, reasons=reasons)

    async def _attempt(
        self,
        url: str,
        kind: PayloadKind,
        decode: Decoder,
        params: Optional[Dict[str, Any]],
        headers: Optional[Dict[str, str]],
    ) -> List[Any]:
        response = await self.client.get(url, params=params, headers=headers)

        verdict = inspect_response(
            response.status_code, response.text, kind, response.content_type
        )
        if not verdict.usable:
            raise BlockedResponse(verdict.reason or "unusable response")

        records = decode(response.text)
        if not records:
            raise EmptyResult("payload decoded to zero records")
        return records
