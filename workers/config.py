# =============================================================================
# workers/config.py - Celery Worker Configuration
# =============================================================================
# Broker, serialization, queue routing and the periodic schedule.
# =============================================================================

from celery.schedules import crontab

from app.config import settings


class CeleryConfig:
    """
    Celery configuration settings.

    These are applied to the Celery app via app.config_from_object().
    """

    # -------------------------------------------------------------------------
    # Broker Settings (Redis)
    # -------------------------------------------------------------------------

    broker_url = settings.REDIS_URL
    result_backend = settings.REDIS_URL

    # -------------------------------------------------------------------------
    # Task Settings
    # -------------------------------------------------------------------------

    # Acknowledge tasks after they complete (not before)
    # This prevents task loss if worker crashes mid-task
    task_acks_late = True

    # Only prefetch one task at a time
    worker_prefetch_multiplier = 1

    # Task results expire after 1 hour; clients poll summary status until then
    result_expires = 3600

    # Hard limit 5 minutes, soft limit 4 minutes
    task_time_limit = 300
    task_soft_time_limit = 240

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    task_serializer = "json"
    result_serializer = "json"
    accept_content = ["json"]

    # -------------------------------------------------------------------------
    # Task Routing
    # -------------------------------------------------------------------------

    task_queues = {
        "default": {
            "exchange": "default",
            "routing_key": "default",
        },
        "ai_tasks": {
            "exchange": "ai_tasks",
            "routing_key": "ai_tasks",
        },
        "rss": {
            "exchange": "rss",
            "routing_key": "rss",
        },
        "billing": {
            "exchange": "billing",
            "routing_key": "billing",
        },
    }

    task_routes = {
        "workers.tasks.generate_summary": {"queue": "ai_tasks"},
        "workers.tasks.fetch_rss_feeds": {"queue": "rss"},
        "workers.tasks.cleanup_rss_articles": {"queue": "rss"},
        "workers.tasks.cleanup_expired_tokens": {"queue": "default"},
        "workers.tasks.process_stripe_webhook": {"queue": "billing"},
    }

    task_default_queue = "default"

    # -------------------------------------------------------------------------
    # Periodic Tasks (celery beat)
    # -------------------------------------------------------------------------

    beat_schedule = {
        "fetch-rss-feeds": {
            "task": "workers.tasks.fetch_rss_feeds",
            "schedule": crontab(minute="0,30"),
        },
        "cleanup-rss-articles": {
            "task": "workers.tasks.cleanup_rss_articles",
            "schedule": crontab(hour=2, minute=0),
        },
        "cleanup-expired-tokens": {
            "task": "workers.tasks.cleanup_expired_tokens",
            "schedule": crontab(hour=3, minute=0),
        },
    }

    # -------------------------------------------------------------------------
    # Monitoring
    # -------------------------------------------------------------------------

    # Send task events for monitoring (Flower, etc.)
    worker_send_task_events = True
    task_send_sent_event = True

    # -------------------------------------------------------------------------
    # Timezone
    # -------------------------------------------------------------------------

    timezone = "UTC"
    enable_utc = True
