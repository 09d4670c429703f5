"""Page-window view over an ordered post list."""

from __future__ import annotations

import math
from typing import Sequence

from blogfeed.models import Post, PostPage


def total_pages(total: int, per_page: int) -> int:
    return math.ceil(total / per_page) if total else 0


def paginate(posts: Sequence[Post], page: int, per_page: int) -> PostPage:
    """Return the 1-based *page* of *posts*; out-of-range pages are empty."""
    if per_page < 1:
        raise ValueError(f"per_page must be at least 1, got {per_page}")

    total = len(posts)
    window: list = []
    if page >= 1:
        start = (page - 1) * per_page
        window = list(posts[start : start + per_page])

    return PostPage(
        posts=window,
        page=page,
        per_page=per_page,
        total=total,
        total_pages=total_pages(total, per_page),
    )
