"""Async httpx client wrapper used by every upstream source."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from blogfeed.errors import NetworkFailure

DEFAULT_USER_AGENT = "blogfeed/1.0"


@dataclass(frozen=True)
class UpstreamResponse:
    """The parts of an HTTP response the ingestion path inspects."""

    status_code: int
    text: str
    content_type: Optional[str] = None


class AsyncHTTPClient:
    """httpx.AsyncClient wrapper that maps transport errors to NetworkFailure.

    Parameters
    ----------
    timeout:
        Per-request timeout in seconds.
    transport:
        Optional httpx transport (tests pass ``httpx.MockTransport``).
    """

    def __init__(
        self,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
            headers={"User-Agent": DEFAULT_USER_AGENT},
            transport=transport,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> UpstreamResponse:
        """GET *url*; any status is returned, only transport failures raise."""
        try:
            response = await self._client.get(url, params=params, headers=headers)
        except httpx.TimeoutException as exc:
            raise NetworkFailure(f"timeout after {self.timeout}s: {url}") from exc
        except httpx.TransportError as exc:
            raise NetworkFailure(f"{type(exc).__name__}: {exc}") from exc

        return UpstreamResponse(
            status_code=response.status_code,
            text=response.text,
            content_type=response.headers.get("content-type"),
        )

    async def aclose(self) -> None:
        """Close the underlying httpx client."""
        await self._client.aclose()

    async def __aenter__(self) -> "AsyncHTTPClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()
