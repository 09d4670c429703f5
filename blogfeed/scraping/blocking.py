"""Soft-block detection for upstream responses.

Edge networks answer automated clients with challenge pages that carry a
200 status. This classifier looks at status, body and declared content type
and answers "usable" only when nothing looks wrong.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from blogfeed.models import PayloadKind

SNIFF_CHARS = 2048

HTML_MARKERS = ("<html", "<!doctype")

BLOCK_FINGERPRINTS = (
    "cf-ray",
    "cf-chl",
    "cf_chl_",
    "attention required",
    "just a moment...",
    "403 forbidden",
    "access denied",
    "you have been blocked",
    "request blocked",
    "captcha",
)

_PAYLOAD_PREFIXES = {
    PayloadKind.JSON: ("[",),
    PayloadKind.XML: ("<?xml", "<rss", "<rdf:rdf", "<feed"),
}

_EXPECTED_CONTENT_TYPES = {
    PayloadKind.JSON: ("json",),
    PayloadKind.XML: ("xml", "rss", "atom"),
}


@dataclass(frozen=True)
class BlockVerdict:
    usable: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.usable


def _sniff(body: str) -> str:
    return body[:SNIFF_CHARS].lower()


def _looks_like_payload(head: str, expected: PayloadKind) -> bool:
    return head.lstrip("\ufeff \t\r\n").startswith(_PAYLOAD_PREFIXES[expected])


def inspect_response(
    status_code: int,
    body: Optional[str],
    expected: PayloadKind,
    content_type: Optional[str] = None,
) -> BlockVerdict:
    """Classify a raw response as usable content or a block artifact."""
    if status_code >= 400:
        return BlockVerdict(False, f"http {status_code}")

    head = _sniff(body or "")
    for marker in HTML_MARKERS:
        if marker in head:
            return BlockVerdict(False, f"html document instead of {expected.value}")

    # fingerprints only count outside a well-formed payload
    if not _looks_like_payload(head, expected):
        for marker in BLOCK_FINGERPRINTS:
            if marker in head:
                return BlockVerdict(False, f"block fingerprint {marker!r}")

    if content_type:
        declared = content_type.lower()
        if not any(token in declared for token in _EXPECTED_CONTENT_TYPES[expected]):
            return BlockVerdict(False, f"content-type {content_type}")

    if not head.strip():
        return BlockVerdict(False, "empty body")

    return BlockVerdict(True)
