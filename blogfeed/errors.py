"""Failure taxonomy for upstream ingestion.

``NetworkFailure``, ``BlockedResponse``, ``ParseFailure`` and ``EmptyResult``
describe one failed fetch attempt; the resilient fetcher absorbs them.
``NoPostConstructed`` describes one record that cannot become a Post.
"""

from __future__ import annotations


class IngestError(Exception):
    """Base class for expected, recoverable ingestion failures."""

    kind: str = "ingest_error"

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason

    def describe(self) -> str:
        return f"{self.kind}: {self.reason}"


class NetworkFailure(IngestError):
    """Connection error or timeout."""

    kind = "network"


class BlockedResponse(IngestError):
    """Response rejected by the block detector."""

    kind = "blocked"


class ParseFailure(IngestError):
    """Payload does not decode as the expected kind."""

    kind = "parse"


class EmptyResult(IngestError):
    """Payload decoded cleanly but held zero records."""

    kind = "empty"


class NoPostConstructed(IngestError):
    """A single record failed the title/link invariant."""

    kind = "no_post"
