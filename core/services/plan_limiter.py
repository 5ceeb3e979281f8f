# =============================================================================
# core/services/plan_limiter.py - Plan Quota Enforcement
# =============================================================================
# Checks a user's usage against the limits of their plan before creating
# notes, saving articles or requesting summaries.
#
# Usage counts are read through the cache-aside helpers with short TTLs;
# services invalidate the relevant count after every create/delete so a
# user never sees a stale "limit reached".
#
# Summaries are counted per calendar month and include soft-deleted ones:
# deleting a summary doesn't give the quota back.
# =============================================================================

import logging
from typing import Any

from app.exceptions import PlanLimitError, UserNotFoundError
from core.models.plan import (
    RESOURCE_LABELS,
    PlanResource,
    PlanType,
    get_plan_limit,
    parse_plan,
)
from lib.cache import CacheKeys, summary_usage_key
from lib.query_cache import QUERY_CACHE_TTL, QueryCache, cached_query, invalidate_cache
from lib.supabase_client import SupabaseClient
from lib.utils import start_of_month, utc_iso

logger = logging.getLogger(__name__)

UNLIMITED = "unlimited"


class PlanLimiter:
    """Plan-based usage limits."""

    @staticmethod
    def get_user_plan(user_id: str) -> PlanType:
        """
        Raises:
            UserNotFoundError: If the user doesn't exist
        """
        user = QueryCache.get_user(str(user_id), lambda: SupabaseClient.fetch_user(user_id))
        if not user:
            raise UserNotFoundError(str(user_id))
        return parse_plan(user.get("plan_type"))

    @staticmethod
    def count_usage(user_id: str, resource: PlanResource) -> int:
        """Count usage straight from the database."""
        client = SupabaseClient.get_client()

        if resource == PlanResource.SUMMARIES:
            query = (
                client.table("summaries")
                .select("id", count="exact")
                .eq("user_id", str(user_id))
                .gte("created_at", utc_iso(start_of_month()))
            )
        elif resource == PlanResource.SAVED_ARTICLES:
            query = (
                client.table("saved_articles")
                .select("id", count="exact")
                .eq("user_id", str(user_id))
            )
        else:
            query = (
                client.table("notes")
                .select("id", count="exact")
                .eq("user_id", str(user_id))
                .is_("deleted_at", "null")
            )

        response = query.execute()
        return response.count or 0

    @staticmethod
    def _cache_key(user_id: str, resource: PlanResource) -> tuple[str, int]:
        if resource == PlanResource.SUMMARIES:
            return summary_usage_key(str(user_id)), QUERY_CACHE_TTL["SUMMARIES_COUNT"]
        if resource == PlanResource.SAVED_ARTICLES:
            return CacheKeys.article_count(str(user_id)), QUERY_CACHE_TTL["SAVED_ARTICLES_COUNT"]
        return CacheKeys.note_count(str(user_id)), QUERY_CACHE_TTL["NOTES_COUNT"]

    @staticmethod
    def get_usage_count(user_id: str, resource: PlanResource) -> int:
        key, ttl = PlanLimiter._cache_key(user_id, resource)
        return int(cached_query(key, lambda: PlanLimiter.count_usage(user_id, resource), ttl))

    @staticmethod
    def check_limit(user_id: str, resource: PlanResource) -> None:
        """
        Raise if the user can't create one more `resource`.

        Raises:
            UserNotFoundError: If the user doesn't exist
            PlanLimitError: If the plan limit is reached
        """
        plan = PlanLimiter.get_user_plan(user_id)
        limit = get_plan_limit(plan, resource)
        if limit is None:
            return

        used = PlanLimiter.get_usage_count(user_id, resource)
        if used >= limit:
            logger.info(f"Plan limit reached for user {user_id}: {resource.value} {used}/{limit} ({plan.value})")
            raise PlanLimitError(
                resource=resource.value.replace("_", " "),
                plan=plan.value,
                limit=limit,
                label=RESOURCE_LABELS[resource],
            )

    @staticmethod
    def get_quota(user_id: str, resource: PlanResource) -> dict[str, Any]:
        plan = PlanLimiter.get_user_plan(user_id)
        limit = get_plan_limit(plan, resource)
        used = PlanLimiter.get_usage_count(user_id, resource)

        if limit is None:
            return {"resource": resource, "used": used, "limit": UNLIMITED, "remaining": UNLIMITED}

        return {
            "resource": resource,
            "used": used,
            "limit": limit,
            "remaining": max(0, limit - used),
        }

    @staticmethod
    def get_usage(user_id: str) -> dict[str, Any]:
        """Quotas for every metered resource."""
        return {
            "plan": PlanLimiter.get_user_plan(user_id),
            "quotas": [PlanLimiter.get_quota(user_id, resource) for resource in PlanResource],
        }

    @staticmethod
    def invalidate_cache(user_id: str, resource: PlanResource) -> None:
        key, _ = PlanLimiter._cache_key(user_id, resource)
        invalidate_cache(key)
