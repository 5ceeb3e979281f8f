# =============================================================================
# workers/ - Celery Background Task Workers
# =============================================================================
# This package contains the Celery configuration and task definitions for
# summaries, RSS aggregation and Stripe webhooks.
#
# Components:
# - celery_app.py: Celery application configuration
# - tasks.py: Task definitions
# - config.py: Queues, routes and the beat schedule
#
# Usage:
#   # Start worker and scheduler
#   celery -A workers.celery_app worker -Q default,ai_tasks,rss,billing --loglevel=info
#   celery -A workers.celery_app beat --loglevel=info
#
#   # Submit task (from API)
#   from workers.tasks import generate_summary
#   result = generate_summary.apply_async(args=[user_id, text, "SHORT", "en"], task_id=new_task_id(user_id))
# =============================================================================

from .celery_app import celery_app
from . import tasks

__all__ = [
    "celery_app",
    "tasks",
]
