# =============================================================================
# core/services/article_service.py - Articles, Saved Articles and Feeds
# =============================================================================
# Read side of the RSS aggregation (listing, filtering, search), per-user
# bookmarks, and the admin feed registry.
#
# Article lists are shared by every user, so they are cached by query
# parameters and invalidated whenever an RSS import or cleanup changes the
# table.
# =============================================================================

import hashlib
import json
import logging
from typing import Any

from app.exceptions import (
    ArticleAlreadySavedError,
    ArticleNotFoundError,
    ArticleNotSavedError,
    FeedNotFoundError,
)
from core.models.plan import PlanResource
from core.services.plan_limiter import PlanLimiter
from lib.cache import CacheKeys
from lib.pagination import build_pagination, clamp_page_size, get_offset, normalize_page
from lib.query_cache import QUERY_CACHE_TTL, QueryCache, cached_query, invalidate_cache
from lib.supabase_client import SupabaseClient
from lib.utils import clean_search_term, parse_tags

logger = logging.getLogger(__name__)


class ArticleService:
    """Article queries and bookmarks."""

    # -------------------------------------------------------------------------
    # Articles
    # -------------------------------------------------------------------------

    @staticmethod
    def get_articles(
        source: str | None = None,
        tags: str | list[str] | None = None,
        search: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> dict[str, Any]:
        """
        List articles, newest first, with optional filters.

        Args:
            source: Exact source (feed name)
            tags: Articles having any of these tags
            search: Case-insensitive match on title or excerpt
            page: 1-based page number
            page_size: Items per page (capped at 100)

        Returns:
            Dict with "articles" and "pagination"
        """
        page = normalize_page(page)
        page_size = clamp_page_size(page_size)
        tag_list = parse_tags(tags)
        term = clean_search_term(search)

        params = {"source": source, "tags": tag_list, "search": term, "page": page, "page_size": page_size}
        query_hash = hashlib.md5(json.dumps(params, sort_keys=True).encode()).hexdigest()

        def query() -> dict[str, Any]:
            client = SupabaseClient.get_client()
            start, end = get_offset(page, page_size)

            builder = client.table("articles").select("*", count="exact")
            if source:
                builder = builder.eq("source", source)
            if tag_list:
                builder = builder.overlaps("tags", tag_list)
            if term:
                builder = builder.or_(f"title.ilike.%{term}%,excerpt.ilike.%{term}%")

            response = builder.order("published_at", desc=True).range(start, end).execute()
            return {
                "articles": response.data or [],
                "pagination": build_pagination(page, page_size, response.count or 0).model_dump(),
            }

        return cached_query(CacheKeys.articles_list(query_hash), query, QUERY_CACHE_TTL["ARTICLES_LIST"])

    @staticmethod
    def get_article(article_id: str) -> dict[str, Any]:
        """
        Raises:
            ArticleNotFoundError: If the article doesn't exist
        """
        article = QueryCache.get_article(
            str(article_id), lambda: SupabaseClient.fetch_by_id("articles", article_id)
        )
        if not article:
            raise ArticleNotFoundError(str(article_id))
        return article

    @staticmethod
    def get_sources() -> list[str]:
        """Names of the active feeds, which are the article sources."""
        def query() -> list[str]:
            client = SupabaseClient.get_client()
            response = client.table("rss_feeds").select("name").eq("active", True).order("name").execute()
            return [row["name"] for row in response.data or []]

        return cached_query(CacheKeys.article_sources(), query, QUERY_CACHE_TTL["RSS_FEED"])

    # -------------------------------------------------------------------------
    # Saved Articles
    # -------------------------------------------------------------------------

    @staticmethod
    def get_saved_articles(
        user_id: str,
        source: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> dict[str, Any]:
        page = normalize_page(page)
        page_size = clamp_page_size(page_size)
        start, end = get_offset(page, page_size)
        client = SupabaseClient.get_client()

        builder = (
            client.table("saved_articles")
            .select("id, created_at, article:articles!inner(*)", count="exact")
            .eq("user_id", str(user_id))
        )
        if source:
            # Filter on the embed alias, not the table name
            builder = builder.eq("article.source", source)

        response = builder.order("created_at", desc=True).range(start, end).execute()
        return {
            "saved_articles": response.data or [],
            "pagination": build_pagination(page, page_size, response.count or 0).model_dump(),
        }

    @staticmethod
    def save_article(user_id: str, article_id: str) -> dict[str, Any]:
        """
        Bookmark an article.

        Raises:
            PlanLimitError: If the plan's saved-article limit is reached
            ArticleNotFoundError: If the article doesn't exist
            ArticleAlreadySavedError: If it is already saved
        """
        PlanLimiter.check_limit(user_id, PlanResource.SAVED_ARTICLES)
        ArticleService.get_article(article_id)

        client = SupabaseClient.get_client()
        existing = (
            client.table("saved_articles")
            .select("id")
            .eq("user_id", str(user_id))
            .eq("article_id", str(article_id))
            .limit(1)
            .execute()
        )
        if existing.data:
            raise ArticleAlreadySavedError(str(article_id))

        try:
            response = client.table("saved_articles").insert({
                "user_id": str(user_id),
                "article_id": str(article_id),
            }).execute()
        except Exception as e:
            if "23505" in str(e) or "duplicate key" in str(e):
                raise ArticleAlreadySavedError(str(article_id))
            # Cleanup deleted the article between the lookup and the insert
            if "23503" in str(e):
                raise ArticleNotFoundError(str(article_id))
            logger.error(f"Failed to save article {article_id} for user {user_id}: {e}")
            raise

        PlanLimiter.invalidate_cache(user_id, PlanResource.SAVED_ARTICLES)
        logger.info(f"User {user_id} saved article {article_id}")
        return response.data[0] if response.data else {}

    @staticmethod
    def unsave_article(user_id: str, article_id: str) -> None:
        """
        Raises:
            ArticleNotSavedError: If the article isn't in the user's list
        """
        client = SupabaseClient.get_client()
        response = (
            client.table("saved_articles")
            .delete()
            .eq("user_id", str(user_id))
            .eq("article_id", str(article_id))
            .execute()
        )
        if not response.data:
            raise ArticleNotSavedError(str(article_id))

        PlanLimiter.invalidate_cache(user_id, PlanResource.SAVED_ARTICLES)
        logger.info(f"User {user_id} removed saved article {article_id}")

    # -------------------------------------------------------------------------
    # Feeds (admin)
    # -------------------------------------------------------------------------

    @staticmethod
    def list_feeds() -> list[dict[str, Any]]:
        client = SupabaseClient.get_client()
        response = client.table("rss_feeds").select("*").order("name").execute()
        return response.data or []

    @staticmethod
    def create_feed(data: dict[str, Any]) -> dict[str, Any]:
        client = SupabaseClient.get_client()
        response = client.table("rss_feeds").insert(data).execute()
        if not response.data:
            raise Exception("Insert returned no data")

        feed = response.data[0]
        invalidate_cache(CacheKeys.article_sources())
        logger.info(f"Created RSS feed {feed['id']} ({feed['name']})")
        return feed

    @staticmethod
    def update_feed(feed_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        """
        Raises:
            FeedNotFoundError: If the feed doesn't exist
        """
        if not changes:
            feed = SupabaseClient.fetch_by_id("rss_feeds", feed_id)
            if not feed:
                raise FeedNotFoundError(str(feed_id))
            return feed

        client = SupabaseClient.get_client()
        response = client.table("rss_feeds").update(changes).eq("id", str(feed_id)).execute()
        if not response.data:
            raise FeedNotFoundError(str(feed_id))

        invalidate_cache(CacheKeys.article_sources())
        logger.info(f"Updated RSS feed {feed_id}: {sorted(changes)}")
        return response.data[0]
