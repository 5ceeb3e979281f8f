# =============================================================================
# lib/pagination.py - Pagination Math
# =============================================================================
# Converts page/page_size query parameters into PostgREST range() bounds
# and builds the pagination block returned by list endpoints.
# =============================================================================

import math

from pydantic import BaseModel

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
MIN_PAGE_SIZE = 1


class PaginationMeta(BaseModel):
    """Pagination block included in list responses."""
    page: int
    page_size: int
    total: int
    total_pages: int
    has_next: bool
    has_previous: bool


def normalize_page(page: int | None) -> int:
    """Pages are 1-based; anything lower (or missing) means the first page."""
    if not page or page < 1:
        return 1
    return page


def clamp_page_size(page_size: int | None) -> int:
    """Clamp to [MIN_PAGE_SIZE, MAX_PAGE_SIZE], defaulting to DEFAULT_PAGE_SIZE."""
    if page_size is None:
        return DEFAULT_PAGE_SIZE
    return max(MIN_PAGE_SIZE, min(page_size, MAX_PAGE_SIZE))


def get_offset(page: int, page_size: int) -> tuple[int, int]:
    """
    Inclusive (start, end) row bounds for a page.

    Example:
        get_offset(2, 20) -> (20, 39)
    """
    page = normalize_page(page)
    page_size = clamp_page_size(page_size)
    start = (page - 1) * page_size
    return start, start + page_size - 1


def build_pagination(page: int, page_size: int, total: int) -> PaginationMeta:
    page = normalize_page(page)
    page_size = clamp_page_size(page_size)
    total = max(0, total or 0)
    total_pages = math.ceil(total / page_size) if total else 0

    return PaginationMeta(
        page=page,
        page_size=page_size,
        total=total,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_previous=page > 1,
    )
