"""Pagination helpers."""

import math
from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    items: list[T]
    current_page: int
    limit: int
    total: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool


def paginate(limit: int, offset: int, max_limit: int = 100) -> tuple[int, int]:
    """Clamp limit/offset; return (limit, offset)."""
    limit = max(1, min(limit, max_limit))
    offset = max(0, offset)
    return limit, offset


def page_window(page: int, limit: int, max_limit: int = 100) -> tuple[int, int, int]:
    """Turn a 1-based page number into (page, limit, offset)."""
    page = max(1, page)
    limit, _ = paginate(limit, 0, max_limit)
    return page, limit, (page - 1) * limit


def build_page(items: list[T], page: int, limit: int, total: int) -> Page[T]:
    total_pages = math.ceil(total / limit) if total else 0
    return Page(
        items=items,
        current_page=page,
        limit=limit,
        total=total,
        total_pages=total_pages,
        has_next_page=page * limit < total,
        has_prev_page=page > 1,
    )
