# =============================================================================
# core/services/rss_cleanup_service.py - Scheduled RSS Cleanup
# =============================================================================
# Keeps the shared articles table bounded:
#
# - old articles: published before the retention window
# - orphaned articles: from a source that is no longer an active feed
#
# In both cases an article saved by at least one user is kept. The "is it
# saved" check and the delete run together in the delete_unsaved_articles
# database function (supabase/schema.sql), so a save made while cleanup runs
# can't lose its article.
# Runs daily from Celery beat (see workers/celery_app.py) and on demand from
# the admin API.
# =============================================================================

import logging
from typing import Any

from app.config import settings
from lib.query_cache import QueryCache
from lib.supabase_client import SupabaseClient
from lib.utils import days_ago_iso

logger = logging.getLogger(__name__)

DELETE_BATCH_SIZE = 500


class RSSCleanupService:

    @staticmethod
    def _delete_unsaved(**filters: Any) -> int:
        """
        Call delete_unsaved_articles until a batch comes back short.

        Returns:
            Number of deleted articles
        """
        client = SupabaseClient.get_client()
        params = {**filters, "batch_size": DELETE_BATCH_SIZE}
        deleted = 0
        while True:
            response = client.rpc("delete_unsaved_articles", params).execute()
            batch = int(response.data or 0)
            deleted += batch
            if batch < DELETE_BATCH_SIZE:
                return deleted

    @staticmethod
    def cleanup_old_articles(retention_days: int = 90) -> int:
        """
        Delete unsaved articles published more than `retention_days` ago.

        Returns:
            Number of deleted articles
        """
        cutoff = days_ago_iso(retention_days)
        deleted = RSSCleanupService._delete_unsaved(published_before=cutoff)

        logger.info(f"Old article cleanup: {deleted} deleted, cutoff {cutoff}")
        return deleted

    @staticmethod
    def cleanup_orphaned_articles() -> int:
        """
        Delete unsaved articles whose source isn't an active feed anymore.

        Does nothing when there are no active feeds, since every article
        would otherwise count as orphaned.

        Returns:
            Number of deleted articles
        """
        client = SupabaseClient.get_client()
        feeds = client.table("rss_feeds").select("name").eq("active", True).execute()
        active_sources = sorted({row["name"] for row in feeds.data or []})

        if not active_sources:
            logger.warning("No active feeds, skipping orphaned article cleanup")
            return 0

        deleted = RSSCleanupService._delete_unsaved(keep_sources=active_sources)

        logger.info(f"Orphaned article cleanup: {deleted} deleted ({len(active_sources)} active sources)")
        return deleted

    @staticmethod
    def run_cleanup(retention_days: int | None = None) -> dict[str, Any]:
        """
        Run both cleanups.

        Returns:
            Dict with old_articles_deleted, orphaned_articles_deleted, total_deleted
        """
        retention_days = retention_days or settings.RSS_RETENTION_DAYS
        logger.info(f"Starting RSS cleanup (retention {retention_days} days)")

        old_deleted = RSSCleanupService.cleanup_old_articles(retention_days)
        orphaned_deleted = RSSCleanupService.cleanup_orphaned_articles()
        total = old_deleted + orphaned_deleted

        if total:
            QueryCache.invalidate_articles()

        result = {
            "old_articles_deleted": old_deleted,
            "orphaned_articles_deleted": orphaned_deleted,
            "total_deleted": total,
        }
        logger.info(f"RSS cleanup finished: {result}")
        return result
