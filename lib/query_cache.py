# =============================================================================
# lib/query_cache.py - Cache-Aside Query Helpers
# =============================================================================
# Wraps database reads with the cache-aside pattern:
#
#   1. Look the key up in Redis
#   2. On a miss, run the query
#   3. Write the result back with a TTL
#
# Cache failures never fail the read; query failures always propagate.
#
# Usage:
#   from lib.query_cache import cached_query, QUERY_CACHE_TTL
#
#   user = cached_query(
#       CacheKeys.user(user_id),
#       lambda: fetch_user(user_id),
#       ttl=QUERY_CACHE_TTL["USER"],
#   )
# =============================================================================

from __future__ import annotations

import functools
import logging
from typing import Any, Callable, TypeVar

from lib.cache import CacheKeys, CacheService

logger = logging.getLogger(__name__)

T = TypeVar("T")

# TTLs in seconds, tuned per entity: counts change often, feeds rarely.
QUERY_CACHE_TTL: dict[str, int] = {
    "USER": 300,
    "ARTICLE": 600,
    "ARTICLES_LIST": 300,
    "SUMMARY": 300,
    "NOTE": 180,
    "RSS_FEED": 1800,
    "SUBSCRIPTION": 300,
    "SAVED_ARTICLES_COUNT": 60,
    "SUMMARIES_COUNT": 60,
    "NOTES_COUNT": 60,
}

DEFAULT_QUERY_TTL = 300


def cached_query(
    cache_key: str,
    query_fn: Callable[[], T],
    ttl: int = DEFAULT_QUERY_TTL,
) -> T:
    """
    Return the cached value for `cache_key`, or compute and cache it.

    Args:
        cache_key: Redis key to read/write
        query_fn: Zero-argument callable that hits the database
        ttl: Time to live for the cached value, in seconds

    Returns:
        The cached or freshly computed value. None results are returned
        but not cached, so a missing row is looked up again next time.

    Raises:
        Whatever query_fn raises
    """
    cached = CacheService.get(cache_key)
    if cached is not None:
        logger.debug(f"Cache hit: {cache_key}")
        return cached

    logger.debug(f"Cache miss: {cache_key}")

    try:
        result = query_fn()
    except Exception as e:
        logger.error(f"Query failed for {cache_key}: {e}")
        raise

    if result is not None:
        if not CacheService.set(cache_key, result, ttl):
            logger.warning(f"Failed to cache result for {cache_key}")

    return result


def invalidate_cache(cache_key: str) -> None:
    """Delete a single cached query result."""
    CacheService.delete(cache_key)
    logger.debug(f"Invalidated cache: {cache_key}")


def invalidate_cache_pattern(pattern: str) -> int:
    """Delete every cached query result matching a glob pattern."""
    deleted = CacheService.delete_pattern(pattern)
    logger.debug(f"Invalidated {deleted} keys matching {pattern}")
    return deleted


def cached(key_fn: Callable[..., str], ttl: int = DEFAULT_QUERY_TTL):
    """
    Decorator form of cached_query.

    Example:
        @cached(lambda user_id: CacheKeys.user(user_id), ttl=300)
        def load_user(user_id: str) -> dict | None:
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            return cached_query(
                key_fn(*args, **kwargs),
                lambda: func(*args, **kwargs),
                ttl=ttl,
            )
        return wrapper
    return decorator


# =============================================================================
# Entity Helpers
# =============================================================================

class QueryCache:
    """Per-entity cache-aside helpers with the right key and TTL baked in."""

    @staticmethod
    def get_user(user_id: str, query_fn: Callable[[], T]) -> T:
        return cached_query(CacheKeys.user(user_id), query_fn, QUERY_CACHE_TTL["USER"])

    @staticmethod
    def invalidate_user(user_id: str) -> None:
        invalidate_cache(CacheKeys.user(user_id))

    @staticmethod
    def get_article(article_id: str, query_fn: Callable[[], T]) -> T:
        return cached_query(CacheKeys.article(article_id), query_fn, QUERY_CACHE_TTL["ARTICLE"])

    @staticmethod
    def invalidate_articles() -> None:
        """Drop cached article lists, sources and single articles."""
        invalidate_cache_pattern(CacheKeys.articles_pattern())
        invalidate_cache_pattern(CacheKeys.article("*"))

    @staticmethod
    def get_summary(summary_id: str, query_fn: Callable[[], T]) -> T:
        return cached_query(CacheKeys.summary(summary_id), query_fn, QUERY_CACHE_TTL["SUMMARY"])

    @staticmethod
    def invalidate_summary(summary_id: str) -> None:
        invalidate_cache(CacheKeys.summary(summary_id))

    @staticmethod
    def get_note(note_id: str, query_fn: Callable[[], T]) -> T:
        return cached_query(CacheKeys.note(note_id), query_fn, QUERY_CACHE_TTL["NOTE"])

    @staticmethod
    def invalidate_note(note_id: str) -> None:
        invalidate_cache(CacheKeys.note(note_id))

    @staticmethod
    def invalidate_counts(user_id: str) -> None:
        invalidate_cache(CacheKeys.article_count(user_id))
        invalidate_cache(CacheKeys.note_count(user_id))
