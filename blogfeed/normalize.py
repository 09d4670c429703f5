"""Convert upstream records (REST JSON or RSS ``<item>`` fragments) into Posts.

Every function here is pure: the fetch time and, for feed items, the
synthetic fallback id are passed in, so the same input always produces the
same Post. Feed markup is read with targeted tag extraction rather than a
full XML parser; that extraction is private to this module.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from html import unescape
from typing import Callable, Iterable, List, Optional, TypeVar
from urllib.parse import parse_qsl, urlencode, urljoin, urlparse, urlunparse

from blogfeed.errors import NoPostConstructed
from blogfeed.models import FeedItem, Post, RestRecord

logger = logging.getLogger(__name__)

EXCERPT_LENGTH = 280
ELLIPSIS = "..."

_TAG_RE = re.compile(r"<[^>]*>")
_WS_RE = re.compile(r"\s+")
_SPACE_BEFORE_PUNCT_RE = re.compile(r"\s+([.,;:!?])")
_CDATA_RE = re.compile(r"<!\[CDATA\[(.*?)\]\]>", re.DOTALL)
_IMG_SRC_RE = re.compile(r"""<img\b[^>]*?\bsrc\s*=\s*["']([^"']+)["']""", re.IGNORECASE)
_ENCLOSURE_RE = re.compile(r"<enclosure\b([^>]*)/?>", re.IGNORECASE)
_URL_ATTR_RE = re.compile(r"""\burl\s*=\s*["']([^"']+)["']""", re.IGNORECASE)
_NUMERIC_SEGMENT_RE = re.compile(r"/(\d+)/?$")

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".avif")
REST_IMAGE_SIZES = ("large", "medium_large", "medium")

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Shared text passes
# ---------------------------------------------------------------------------


def clean_text(raw: Optional[str]) -> str:
    """Return plain text: entities decoded, tags stripped, whitespace collapsed."""
    if not raw:
        return ""
    text = unescape(raw)
    text = _TAG_RE.sub(" ", text)
    text = _WS_RE.sub(" ", text)
    text = _SPACE_BEFORE_PUNCT_RE.sub(r"\1", text)
    return text.strip()


def truncate(text: str, limit: int = EXCERPT_LENGTH, marker: str = ELLIPSIS) -> str:
    """Cut *text* so the result, marker included, is at most *limit* characters."""
    if len(text) <= limit:
        return text
    return text[: limit - len(marker)].rstrip() + marker


def strip_tracking_params(url: str) -> str:
    """Drop ``utm_*`` query parameters from *url*."""
    parsed = urlparse(url)
    if not parsed.query:
        return url
    kept = [
        (key, value)
        for key, value in parse_qsl(parsed.query, keep_blank_values=True)
        if not key.lower().startswith("utm_")
    ]
    return urlunparse(parsed._replace(query=urlencode(kept)))


def _absolute(url: Optional[str], base_url: str) -> str:
    url = (url or "").strip()
    if not url:
        return ""
    if base_url and not re.match(r"^https?://", url, flags=re.IGNORECASE):
        url = urljoin(base_url, url)
    return url


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_date(raw: Optional[str], fallback: datetime) -> datetime:
    """Parse an ISO-8601 or RFC 822 date; return *fallback* when unparseable."""
    value = (raw or "").strip()
    if not value:
        return _as_utc(fallback)
    try:
        return _as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        pass
    try:
        return _as_utc(parsedate_to_datetime(value))
    except (TypeError, ValueError, IndexError):
        return _as_utc(fallback)


def _require(title: str, link: str) -> None:
    if not title:
        raise NoPostConstructed("record has no title")
    if not link:
        raise NoPostConstructed("record has no link")


# ---------------------------------------------------------------------------
# REST entry point
# ---------------------------------------------------------------------------


def select_rest_image(record: RestRecord) -> Optional[str]:
    """Largest available rendition, then the media source URL, else None."""
    media = record.first_media()
    if media is None:
        return None
    sizes = media.media_details.sizes if media.media_details else {}
    for name in REST_IMAGE_SIZES:
        size = sizes.get(name)
        if size and size.source_url:
            return size.source_url
    return media.source_url or None


def normalize_rest_record(
    record: RestRecord,
    *,
    fetched_at: datetime,
    base_url: str = "",
    excerpt_length: int = EXCERPT_LENGTH,
) -> Post:
    """Build a Post from one REST record or raise NoPostConstructed."""
    title = clean_text(record.title.rendered)
    link = _absolute(record.link, base_url)
    _require(title, link)

    return Post(
        id=record.id,
        title=title,
        link=link,
        date=parse_date(record.date_gmt or record.date, fetched_at),
        excerpt=truncate(clean_text(record.excerpt.rendered), excerpt_length),
        image=select_rest_image(record),
    )


# ---------------------------------------------------------------------------
# Feed entry point
# ---------------------------------------------------------------------------


def _tag_text(fragment: str, tag: str) -> str:
    """Return the raw text of the first ``<tag>`` in *fragment*, CDATA unwrapped.

    Entities are left encoded; callers decode exactly once.
    """
    match = re.search(
        rf"<{re.escape(tag)}\b[^>]*>(.*?)</{re.escape(tag)}\s*>",
        fragment,
        flags=re.DOTALL | re.IGNORECASE,
    )
    if not match:
        return ""
    inner = match.group(1)
    cdata = _CDATA_RE.findall(inner)
    if cdata:
        return "".join(cdata).strip()
    return inner.strip()


def _is_image_url(url: str) -> bool:
    return urlparse(url).path.lower().endswith(IMAGE_EXTENSIONS)


def select_feed_image(fragment: str, base_url: str = "") -> Optional[str]:
    """Enclosure with an image extension, then the first embedded ``<img>``."""
    for attrs in _ENCLOSURE_RE.findall(fragment):
        url_match = _URL_ATTR_RE.search(attrs)
        if url_match:
            url = unescape(url_match.group(1)).strip()
            if _is_image_url(url):
                return _absolute(url, base_url)

    for tag in ("description", "content:encoded"):
        body = unescape(_tag_text(fragment, tag))
        img = _IMG_SRC_RE.search(body)
        if img:
            return _absolute(img.group(1), base_url)
    return None


def feed_link_id(link: str) -> Optional[int]:
    """Numeric id from an all-digit last path segment or the ``p``/``page_id`` query."""
    parsed = urlparse(link)
    match = _NUMERIC_SEGMENT_RE.search(parsed.path)
    if match:
        return int(match.group(1))
    for key, value in parse_qsl(parsed.query):
        if key in ("p", "page_id") and value.isdigit():
            return int(value)
    return None


def normalize_feed_item(
    item: FeedItem,
    *,
    fetched_at: datetime,
    fallback_id: int,
    base_url: str = "",
    excerpt_length: int = EXCERPT_LENGTH,
) -> Post:
    """Build a Post from one ``<item>`` fragment or raise NoPostConstructed.

    *fallback_id* is used when the link carries no numeric id; such ids are
    not stable across separate fetches of the same item.
    """
    fragment = item.xml
    title = clean_text(_tag_text(fragment, "title"))
    link = _absolute(unescape(_tag_text(fragment, "link")), base_url)
    if link:
        link = strip_tracking_params(link)
    _require(title, link)

    published = _tag_text(fragment, "pubDate") or _tag_text(fragment, "dc:date")
    description = _tag_text(fragment, "description") or _tag_text(
        fragment, "content:encoded"
    )
    post_id = feed_link_id(link)

    return Post(
        id=post_id if post_id is not None else fallback_id,
        title=title,
        link=link,
        date=parse_date(published, fetched_at),
        excerpt=truncate(clean_text(description), excerpt_length),
        image=select_feed_image(fragment, base_url),
    )


# ---------------------------------------------------------------------------
# Batch helper
# ---------------------------------------------------------------------------


def normalize_batch(items: Iterable[T], normalize_one: Callable[[T], Post]) -> List[Post]:
    """Normalise every item, silently dropping those that cannot become a Post."""
    posts: List[Post] = []
    dropped = 0
    for item in items:
        try:
            posts.append(normalize_one(item))
        except NoPostConstructed as exc:
            dropped += 1
            logger.debug("record_dropped", extra={"reason": exc.reason})
    if dropped:
        logger.info("records_dropped", extra={"dropped": dropped, "kept": len(posts)})
    return posts
