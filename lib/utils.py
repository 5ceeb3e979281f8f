# =============================================================================
# lib/utils.py - Shared Utilities
# =============================================================================
# Common utilities used across the application.
# =============================================================================

import re
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID


# =============================================================================
# UUID Utilities
# =============================================================================

def normalize_uuid(value: str | UUID) -> str:
    """
    Normalize a UUID to string format.

    Handles both string and UUID objects, ensuring consistent string output.

    Example:
        note_id = normalize_uuid(uuid_obj)  # "550e8400-..."
        note_id = normalize_uuid("550e8400-...")  # "550e8400-..."
    """
    return str(value) if isinstance(value, UUID) else value


# =============================================================================
# Datetime Utilities
# =============================================================================
# Supabase returns timestamps as ISO strings and expects ISO strings back.

def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_iso(dt: datetime | None = None) -> str:
    """ISO-8601 string for `dt` (default: now), always timezone-aware."""
    dt = dt or utc_now()
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()


def days_ago_iso(days: int) -> str:
    return utc_iso(utc_now() - timedelta(days=days))


def parse_datetime(value: Any) -> datetime | None:
    """
    Parse a timestamp coming back from the database.

    Accepts datetimes and ISO strings (including a trailing "Z").
    Naive values are assumed to be UTC.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def start_of_month(dt: datetime | None = None) -> datetime:
    dt = dt or utc_now()
    return dt.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def chunked(items: list[Any], size: int) -> list[list[Any]]:
    """Split a list into consecutive chunks of at most `size` items."""
    return [items[i:i + size] for i in range(0, len(items), size)]


# =============================================================================
# Query Parameter Utilities
# =============================================================================

# Characters with meaning inside a PostgREST or=() filter
_FILTER_UNSAFE = re.compile(r"[,()%*\\]")


def clean_search_term(search: str | None) -> str | None:
    """Strip filter syntax from a free-text search term."""
    if not search:
        return None
    term = _FILTER_UNSAFE.sub(" ", search).strip()
    return term[:100] or None


def parse_tags(tags: str | list[str] | None) -> list[str]:
    """Accept "a,b" or ["a", "b"]; lowercase and drop blanks."""
    if not tags:
        return []
    if isinstance(tags, str):
        tags = tags.split(",")
    return [t.strip().lower() for t in tags if t.strip()]
