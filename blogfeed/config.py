"""Pydantic v2 settings for blogfeed. Every tunable can be set through a BLOGFEED_-prefixed env var."""

from __future__ import annotations

import functools
import logging
from datetime import timedelta

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_GOOGLEBOT_UA = "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"
_BROWSER_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)


class Settings(BaseSettings):
    """All configuration lives here; no hardcoded values elsewhere."""

    model_config = SettingsConfigDict(
        env_prefix="BLOGFEED_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # ── Upstream sources ─────────────────────────────────────────────────────
    rest_url: str = "https://smarttravelly.com/wp-json/wp/v2/posts"
    feed_url: str = "https://smarttravelly.com/feed/"
    site_origin: str = "https://smarttravelly.com"
    rest_user_agent: str = _GOOGLEBOT_UA
    feed_user_agent: str = _BROWSER_UA

    # ── HTTP / Retry ──────────────────────────────────────────────────────────
    request_timeout: float = 10.0
    max_attempts: int = 3
    retry_base_delay: float = 1.0

    # ── Pagination (upstream) ─────────────────────────────────────────────────
    per_page: int = 100
    page_delay: float = 0.3
    max_pages: int = 50
    feed_item_cap: int = 50

    # ── Normalisation ─────────────────────────────────────────────────────────
    excerpt_length: int = 280

    # ── Cache / Response ──────────────────────────────────────────────────────
    cache_ttl_hours: float = 12.0
    stale_while_revalidate: int = 3600
    default_page_size: int = 10
    max_page_size: int = 100

    # ── Scheduling ────────────────────────────────────────────────────────────
    refresh_cron: str = ""

    # ── Server ────────────────────────────────────────────────────────────────
    host: str = "0.0.0.0"
    port: int = 8000

    # ── Logging ───────────────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool = False

    # ── Field validators ──────────────────────────────────────────────────────

    @field_validator("per_page")
    @classmethod
    def validate_per_page(cls, v: int) -> int:
        """The REST upstream caps per_page at 100."""
        if not 1 <= v <= 100:
            raise ValueError(f"per_page must be between 1 and 100, got {v}")
        return v

    @field_validator("max_attempts", "max_pages", "feed_item_cap")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"value must be at least 1, got {v}")
        return v

    @field_validator("excerpt_length")
    @classmethod
    def validate_excerpt_length(cls, v: int) -> int:
        if v < 4:
            raise ValueError(f"excerpt_length must leave room for the ellipsis, got {v}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid:
            raise ValueError(f"log_level must be one of {valid}")
        return upper

    @field_validator("refresh_cron")
    @classmethod
    def validate_refresh_cron(cls, v: str) -> str:
        v = v.strip()
        if v and len(v.split()) != 5:
            raise ValueError(f"refresh_cron must have 5 fields, got {v!r}")
        return v

    # ── Model validators ──────────────────────────────────────────────────────

    @model_validator(mode="after")
    def validate_page_sizes(self) -> "Settings":
        """default_page_size must fit inside max_page_size."""
        if not 1 <= self.default_page_size <= self.max_page_size:
            raise ValueError(
                f"default_page_size ({self.default_page_size}) must be between 1 "
                f"and max_page_size ({self.max_page_size})"
            )
        return self

    # ── Derived values ────────────────────────────────────────────────────────

    @property
    def cache_ttl(self) -> timedelta:
        return timedelta(hours=self.cache_ttl_hours)

    def cache_control_header(self) -> str:
        """Public edge-cache directive matching the freshness threshold."""
        max_age = int(self.cache_ttl.total_seconds())
        return (
            f"public, s-maxage={max_age}, "
            f"stale-while-revalidate={self.stale_while_revalidate}"
        )

    def __repr__(self) -> str:
        return (
            f"Settings(rest_url={self.rest_url!r}, "
            f"feed_url={self.feed_url!r}, "
            f"cache_ttl_hours={self.cache_ttl_hours!r}, "
            f"refresh_cron={self.refresh_cron!r})"
        )

    def __str__(self) -> str:
        return self.__repr__()


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached Settings singleton."""
    return Settings()


def get_log_level(settings: Settings) -> int:
    return getattr(logging, settings.log_level, logging.INFO)
