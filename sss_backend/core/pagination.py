"""Pagination helpers with hard caps."""

from __future__ import annotations

import math
import os

DEFAULT_PAGE_SIZE = 50
DEFAULT_MAX_PAGE_SIZE = 100


def get_max_page_size() -> int:
    try:
        val = int(os.getenv("API_MAX_PAGE_SIZE", str(DEFAULT_MAX_PAGE_SIZE)))
    except ValueError:
        return DEFAULT_MAX_PAGE_SIZE
    return val if val >= 1 else DEFAULT_MAX_PAGE_SIZE


def clamp_page_size(page_size: int) -> int:
    return max(1, min(page_size, get_max_page_size()))


def page_meta(*, page: int, limit: int, total: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": math.ceil(total / limit) if limit else 0,
    }
