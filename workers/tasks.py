# =============================================================================
# workers/tasks.py - Celery Task Definitions
# =============================================================================
# Background tasks:
# - generate_summary: OpenAI summary for a user (ai_tasks queue)
# - fetch_rss_feeds: Import every active feed (beat, every 30 minutes)
# - cleanup_rss_articles: Delete stale/orphaned articles (beat, daily 02:00)
# - cleanup_expired_tokens: Delete expired auth tokens (beat, daily 03:00)
# - process_stripe_webhook: Apply a verified Stripe event (billing queue)
#
# Services are imported inside the tasks so the worker boots without
# loading the whole application at import time.
# =============================================================================

import logging
from typing import Any

from celery import current_task, shared_task

logger = logging.getLogger(__name__)


# =============================================================================
# Task State Updates
# =============================================================================

def update_progress(current: int, total: int, message: str = "Processing..."):
    """
    Update task progress for polling.

    Args:
        current: Current step number
        total: Total steps
        message: Status message
    """
    if current_task:
        current_task.update_state(
            state="PROGRESS",
            meta={
                "current": current,
                "total": total,
                "percent": int((current / total) * 100),
                "message": message,
            }
        )


def backoff_seconds(retries: int, base: int = 30) -> int:
    """Exponential retry delay: 30s, 60s, 120s..."""
    return base * (2 ** retries)


# =============================================================================
# Summaries
# =============================================================================

@shared_task(bind=True, name="workers.tasks.generate_summary", max_retries=3)
def generate_summary(
    self,
    user_id: str,
    text: str,
    style: str,
    language: str,
) -> dict[str, Any]:
    """
    Generate and store a summary.

    Returns:
        Dict with summary_id, polled through GET /summaries/status/{task_id}
    """
    from app.exceptions import RateLimitExceededError
    from core.services.summary_service import SummaryService

    logger.info(f"Generating {style} summary for user {user_id}")
    update_progress(1, 2, "Generating summary...")

    try:
        result = SummaryService.process_summary(user_id, text, style, language)
    except RateLimitExceededError as e:
        retry_after = (e.details or {}).get("retry_after", 60)
        logger.warning(f"OpenAI limit reached for user {user_id}, retrying in {retry_after}s")
        raise self.retry(exc=e, countdown=retry_after)
    except Exception as e:
        logger.error(f"Summary generation failed for user {user_id}: {e}")
        raise self.retry(exc=e, countdown=backoff_seconds(self.request.retries))

    update_progress(2, 2, "Done")
    return result


# =============================================================================
# RSS
# =============================================================================

@shared_task(bind=True, name="workers.tasks.fetch_rss_feeds", max_retries=2)
def fetch_rss_feeds(self) -> dict[str, int]:
    """Import new articles from every active feed."""
    from core.services.rss_service import RSSService

    try:
        return RSSService.process_feeds()
    except Exception as e:
        logger.error(f"RSS fetch run failed: {e}")
        raise self.retry(exc=e, countdown=backoff_seconds(self.request.retries, base=60))


@shared_task(bind=True, name="workers.tasks.cleanup_rss_articles", max_retries=0)
def cleanup_rss_articles(self, retention_days: int | None = None) -> dict[str, int]:
    """
    Delete old and orphaned articles nobody saved.

    Not retried: the next daily run picks up whatever this one missed.
    """
    from core.services.rss_cleanup_service import RSSCleanupService

    try:
        return RSSCleanupService.run_cleanup(retention_days)
    except Exception as e:
        logger.exception(f"RSS cleanup failed: {e}")
        raise


# =============================================================================
# Maintenance
# =============================================================================

@shared_task(bind=True, name="workers.tasks.cleanup_expired_tokens", max_retries=0)
def cleanup_expired_tokens(self) -> dict[str, Any]:
    """
    Delete expired refresh, verification and password reset tokens.

    Not retried: tokens left behind are picked up by the next daily run.
    """
    from core.services.token_cleanup_service import TokenCleanupService

    def progress(done: int, total: int, table: str) -> None:
        update_progress(done, total, f"Cleaned {table}")

    try:
        return TokenCleanupService.cleanup_expired_tokens(on_table_done=progress)
    except Exception as e:
        logger.exception(f"Token cleanup failed: {e}")
        raise


# =============================================================================
# Billing
# =============================================================================

@shared_task(bind=True, name="workers.tasks.process_stripe_webhook", max_retries=3)
def process_stripe_webhook(self, event: dict[str, Any]) -> dict[str, Any]:
    """
    Apply a Stripe event that the webhook route already verified.

    Returns:
        Dict with the event id, type and whether it was handled
    """
    from core.services.billing_service import BillingService

    try:
        handled = BillingService.handle_event(event)
    except Exception as e:
        logger.error(f"Stripe event {event.get('id')} ({event.get('type')}) failed: {e}")
        raise self.retry(exc=e, countdown=backoff_seconds(self.request.retries, base=10))

    return {"event_id": event.get("id"), "type": event.get("type"), "handled": handled}
