"""Pagination metadata."""

import math
from dataclasses import dataclass
from typing import Any, Optional

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 12


def _coerce(value: Any, default: int) -> int:
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


@dataclass
class Page:
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool
    next_page: Optional[int]
    prev_page: Optional[int]
    paging_counter: int

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    def slice(self, items: list) -> list:
        """The items belonging to this page (empty beyond the last page)."""
        return items[self.skip:self.skip + self.limit]

    def envelope(self) -> dict:
        """Pagination block of the HTTP response."""
        return {
            "currentPage": self.page,
            "totalPages": self.total_pages,
            "totalItems": self.total,
            "hasNextPage": self.has_next,
            "hasPrevPage": self.has_prev,
            "limit": self.limit,
        }

    def full_envelope(self) -> dict:
        """Envelope plus navigation fields, used by the search endpoint."""
        return {
            **self.envelope(),
            "nextPage": self.next_page,
            "prevPage": self.prev_page,
            "pagingCounter": self.paging_counter,
        }


def paginate(page: Any, limit: Any, total: int) -> Page:
    """Navigation metadata for ``total`` items split into pages of ``limit``.

    ``page``/``limit`` fall back to 1/12 when absent or non-numeric. ``page`` is
    not clamped: a page past the end simply has no items.
    """
    page = _coerce(page, DEFAULT_PAGE)
    limit = _coerce(limit, DEFAULT_LIMIT)
    total = max(int(total or 0), 0)
    total_pages = math.ceil(total / limit)
    has_next = page < total_pages
    # an empty result set has no neighbouring pages
    has_prev = page > 1 and total_pages > 0
    return Page(
        page=page,
        limit=limit,
        total=total,
        total_pages=total_pages,
        has_next=has_next,
        has_prev=has_prev,
        next_page=page + 1 if has_next else None,
        prev_page=page - 1 if has_prev else None,
        paging_counter=(page - 1) * limit + 1,
    )
