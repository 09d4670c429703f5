"""Pydantic models and enums for blogfeed."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SourceTag(str, Enum):
    """Which upstream produced a result."""

    REST = "rest"
    FEED = "feed"
    NONE = "none"


class PayloadKind(str, Enum):
    """What an upstream response is expected to contain."""

    JSON = "json"
    XML = "xml"


# ---------------------------------------------------------------------------
# Canonical record
# ---------------------------------------------------------------------------


class Post(BaseModel):
    """A normalised blog post, identical regardless of the upstream shape."""

    model_config = ConfigDict(frozen=True)

    id: int
    title: str
    link: str
    date: datetime
    excerpt: str = ""
    image: Optional[str] = None


# ---------------------------------------------------------------------------
# REST input variant
# ---------------------------------------------------------------------------


def _empty_php_array(v: Any) -> Any:
    # WordPress serialises an empty associative array as []
    if isinstance(v, list) and not v:
        return None
    return v


class Rendered(BaseModel):
    rendered: str = ""


class MediaSize(BaseModel):
    source_url: Optional[str] = None


class MediaDetails(BaseModel):
    sizes: Dict[str, MediaSize] = Field(default_factory=dict)

    @field_validator("sizes", mode="before")
    @classmethod
    def coerce_sizes(cls, v: Any) -> Any:
        v = _empty_php_array(v)
        return v if isinstance(v, dict) else {}


class FeaturedMedia(BaseModel):
    source_url: Optional[str] = None
    media_details: Optional[MediaDetails] = None

    @field_validator("media_details", mode="before")
    @classmethod
    def coerce_details(cls, v: Any) -> Any:
        v = _empty_php_array(v)
        return v if isinstance(v, dict) else None


class Embedded(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    featured_media: List[FeaturedMedia] = Field(
        default_factory=list, alias="wp:featuredmedia"
    )


class RestRecord(BaseModel):
    """One post object from the JSON REST source (``_embed=1``)."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: int
    date: Optional[str] = None
    date_gmt: Optional[str] = None
    link: Optional[str] = None
    title: Rendered = Field(default_factory=Rendered)
    excerpt: Rendered = Field(default_factory=Rendered)
    embedded: Optional[Embedded] = Field(default=None, alias="_embedded")

    @field_validator("title", "excerpt", mode="before")
    @classmethod
    def coerce_rendered(cls, v: Any) -> Any:
        if v is None:
            return {}
        if isinstance(v, str):
            return {"rendered": v}
        return v

    def first_media(self) -> Optional[FeaturedMedia]:
        if self.embedded and self.embedded.featured_media:
            return self.embedded.featured_media[0]
        return None


# ---------------------------------------------------------------------------
# Feed input variant
# ---------------------------------------------------------------------------


class FeedItem(BaseModel):
    """One isolated ``<item>...</item>`` fragment from the XML feed."""

    model_config = ConfigDict(frozen=True)

    xml: str


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


class Snapshot(BaseModel):
    """Cached, timestamped post list plus the source that produced it."""

    model_config = ConfigDict(frozen=True)

    posts: Tuple[Post, ...] = ()
    captured_at: datetime
    source: SourceTag = SourceTag.NONE
    message: Optional[str] = None

    @property
    def count(self) -> int:
        return len(self.posts)

    def age(self, now: datetime) -> timedelta:
        return now - self.captured_at

    def is_fresh(self, now: datetime, ttl: timedelta) -> bool:
        return self.age(now) < ttl


class PostPage(BaseModel):
    """A page-sized window over a snapshot's posts."""

    posts: List[Post] = Field(default_factory=list)
    page: int
    per_page: int
    total: int
    total_pages: int


# ---------------------------------------------------------------------------
# Internal results
# ---------------------------------------------------------------------------


@dataclass
class FetchResult:
    """Outcome of one resilient fetch against a single URL."""

    ok: bool
    records: List[Any] = field(default_factory=list)
    attempts: int = 0
    reasons: List[str] = field(default_factory=list)


@dataclass
class SourceOutcome:
    """Normalised posts collected from one upstream source."""

    posts: List[Post] = field(default_factory=list)
    reasons: List[str] = field(default_factory=list)
    pages: int = 0


@dataclass
class IngestResult:
    """Output of one fallback-orchestrated ingestion run."""

    posts: List[Post] = field(default_factory=list)
    source: SourceTag = SourceTag.NONE
    message: Optional[str] = None
    reasons: List[str] = field(default_factory=list)
