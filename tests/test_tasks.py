# =============================================================================
# tests/test_tasks.py - Celery Task Tests
# =============================================================================
# This module contains tests for:
# - Task bodies called synchronously (no broker)
# - Retry scheduling for summaries and webhooks
# - Queue routing and the beat schedule
# - Owner-tagged task ids
# =============================================================================

from unittest.mock import patch

import pytest
from celery.exceptions import Retry

from app.exceptions import RateLimitExceededError
from lib.task_owner import can_read_task, new_task_id, task_owner
from workers.config import CeleryConfig
from workers.tasks import (
    backoff_seconds,
    cleanup_expired_tokens,
    cleanup_rss_articles,
    fetch_rss_feeds,
    generate_summary,
    process_stripe_webhook,
)

from .conftest import OTHER_USER_ID, USER_ID


@pytest.fixture(autouse=True)
def no_progress_updates():
    with patch("workers.tasks.update_progress"):
        yield


class TestBackoff:
    """Test retry delays."""

    def test_exponential(self):
        assert [backoff_seconds(n) for n in range(3)] == [30, 60, 120]
        assert backoff_seconds(1, base=10) == 20


class TestGenerateSummary:
    """Test the summary task."""

    def test_success(self):
        with patch("core.services.summary_service.SummaryService.process_summary", return_value={"summary_id": "s1"}) as process:
            assert generate_summary(USER_ID, "text", "SHORT", "fr") == {"summary_id": "s1"}
        process.assert_called_once_with(USER_ID, "text", "SHORT", "fr")

    def test_rate_limit_retries_after_window(self):
        error = RateLimitExceededError("Rate limit exceeded for openai", retry_after=60)
        with patch("core.services.summary_service.SummaryService.process_summary", side_effect=error), \
             patch.object(generate_summary, "retry", side_effect=Retry()) as retry:
            with pytest.raises(Retry):
                generate_summary(USER_ID, "text", "SHORT", "fr")

        assert retry.call_args.kwargs["countdown"] == 60
        assert retry.call_args.kwargs["exc"] is error

    def test_failure_retries_with_backoff(self):
        with patch("core.services.summary_service.SummaryService.process_summary", side_effect=RuntimeError("openai")), \
             patch.object(generate_summary, "retry", side_effect=Retry()) as retry:
            with pytest.raises(Retry):
                generate_summary(USER_ID, "text", "SHORT", "fr")

        assert retry.call_args.kwargs["countdown"] == 30

    def test_called_directly_reraises(self):
        """Test that outside a worker the original error surfaces."""
        with patch("core.services.summary_service.SummaryService.process_summary", side_effect=RuntimeError("openai")):
            with pytest.raises(RuntimeError):
                generate_summary(USER_ID, "text", "SHORT", "fr")


class TestRSSTasks:
    """Test the scheduled RSS tasks."""

    def test_fetch(self):
        stats = {"feeds_processed": 2, "feeds_failed": 0, "articles_created": 5, "articles_skipped": 1}
        with patch("core.services.rss_service.RSSService.process_feeds", return_value=stats):
            assert fetch_rss_feeds() == stats

    def test_cleanup_default_retention(self):
        with patch("core.services.rss_cleanup_service.RSSCleanupService.run_cleanup", return_value={"total_deleted": 0}) as run:
            cleanup_rss_articles()
        run.assert_called_once_with(None)

    def test_cleanup_errors_not_retried(self):
        with patch("core.services.rss_cleanup_service.RSSCleanupService.run_cleanup", side_effect=RuntimeError("db")), \
             patch.object(cleanup_rss_articles, "retry") as retry:
            with pytest.raises(RuntimeError):
                cleanup_rss_articles(30)
        retry.assert_not_called()


class TestTokenCleanupTask:
    """Test the expired-token cleanup task."""

    def test_runs_service(self):
        result = {"refresh_tokens": 3, "verification_tokens": 1, "password_reset_tokens": 0,
                  "total_deleted": 4, "skipped": False}
        with patch("core.services.token_cleanup_service.TokenCleanupService.cleanup_expired_tokens",
                   return_value=result) as run:
            assert cleanup_expired_tokens() == result
        assert callable(run.call_args.kwargs["on_table_done"])

    def test_errors_not_retried(self):
        with patch("core.services.token_cleanup_service.TokenCleanupService.cleanup_expired_tokens",
                   side_effect=RuntimeError("db")), \
             patch.object(cleanup_expired_tokens, "retry") as retry:
            with pytest.raises(RuntimeError):
                cleanup_expired_tokens()
        retry.assert_not_called()


class TestStripeWebhookTask:
    """Test webhook processing."""

    def test_handled(self):
        event = {"id": "evt_1", "type": "checkout.session.completed", "data": {"object": {}}}
        with patch("core.services.billing_service.BillingService.handle_event", return_value=True):
            assert process_stripe_webhook(event) == {
                "event_id": "evt_1",
                "type": "checkout.session.completed",
                "handled": True,
            }

    def test_failure_retried(self):
        event = {"id": "evt_1", "type": "customer.subscription.updated", "data": {"object": {}}}
        with patch("core.services.billing_service.BillingService.handle_event", side_effect=ValueError("no user")), \
             patch.object(process_stripe_webhook, "retry", side_effect=Retry()) as retry:
            with pytest.raises(Retry):
                process_stripe_webhook(event)
        assert retry.call_args.kwargs["countdown"] == 10


class TestCeleryConfig:
    """Test routing and schedule."""

    def test_routes(self):
        assert CeleryConfig.task_routes["workers.tasks.generate_summary"] == {"queue": "ai_tasks"}
        assert CeleryConfig.task_routes["workers.tasks.process_stripe_webhook"] == {"queue": "billing"}

    def test_beat_schedule(self):
        schedule = CeleryConfig.beat_schedule

        assert schedule["fetch-rss-feeds"]["task"] == "workers.tasks.fetch_rss_feeds"
        assert schedule["cleanup-rss-articles"]["task"] == "workers.tasks.cleanup_rss_articles"
        assert schedule["cleanup-rss-articles"]["schedule"].hour == {2}
        assert schedule["cleanup-expired-tokens"]["task"] == "workers.tasks.cleanup_expired_tokens"
        assert schedule["cleanup-expired-tokens"]["schedule"].hour == {3}


class TestHealthcheck:
    """Test the worker ping task."""

    def test_ok(self):
        from workers.celery_app import healthcheck

        assert healthcheck() == "OK"


class TestTaskOwner:
    """Test owner-tagged task ids."""

    def test_round_trip(self):
        task_id = new_task_id(USER_ID)

        assert task_owner(task_id) == USER_ID
        assert can_read_task(task_id, USER_ID) is True

    def test_other_user_denied(self):
        assert can_read_task(new_task_id(OTHER_USER_ID), USER_ID) is False

    def test_plain_celery_id_has_no_owner(self):
        task_id = "9a1d6a8e-0000-4000-8000-000000000000"

        assert task_owner(task_id) is None
        assert can_read_task(task_id, USER_ID) is False
        assert can_read_task(task_id, USER_ID, is_admin=True) is True

    def test_ids_are_unique(self):
        assert new_task_id(USER_ID) != new_task_id(USER_ID)
