# =============================================================================
# tests/test_plan_limiter.py - Plan Quota Tests
# =============================================================================
# This module contains tests for:
# - Plan hierarchy and limits
# - Quota checks and usage reporting
# =============================================================================

from unittest.mock import patch

import pytest

from app.exceptions import PlanLimitError, UserNotFoundError
from core.models.plan import (
    PLAN_LIMITS,
    PlanResource,
    PlanType,
    get_plan_limit,
    parse_plan,
    plan_includes,
)
from core.services.plan_limiter import UNLIMITED, PlanLimiter

from .conftest import USER_ID


class TestPlans:
    """Test plan definitions."""

    def test_hierarchy(self):
        assert plan_includes(PlanType.PRO, PlanType.STARTER) is True
        assert plan_includes(PlanType.STARTER, PlanType.PRO) is False
        assert plan_includes(PlanType.FREE, PlanType.FREE) is True

    def test_free_limits(self):
        assert get_plan_limit(PlanType.FREE, PlanResource.SUMMARIES) == 5
        assert get_plan_limit(PlanType.FREE, PlanResource.SAVED_ARTICLES) == 10
        assert get_plan_limit(PlanType.FREE, PlanResource.NOTES) == 20

    def test_paid_plans_unlimited(self):
        for plan in (PlanType.PRO, PlanType.BUSINESS):
            assert all(limit is None for limit in PLAN_LIMITS[plan].values())

    def test_parse_plan(self):
        assert parse_plan("pro") == PlanType.PRO
        assert parse_plan(None) == PlanType.FREE
        assert parse_plan("ENTERPRISE") == PlanType.FREE


class TestPlanLimiter:
    """Test quota enforcement against a fake database."""

    def _user(self, plan):
        return {"id": USER_ID, "plan_type": plan}

    def test_under_limit(self, fake_db):
        fake_db.respond(count=19)

        with patch("lib.supabase_client.SupabaseClient.fetch_user", return_value=self._user("FREE")):
            PlanLimiter.check_limit(USER_ID, PlanResource.NOTES)

    def test_at_limit(self, fake_db):
        fake_db.respond(count=20)

        with patch("lib.supabase_client.SupabaseClient.fetch_user", return_value=self._user("FREE")):
            with pytest.raises(PlanLimitError) as exc_info:
                PlanLimiter.check_limit(USER_ID, PlanResource.NOTES)

        assert exc_info.value.status_code == 403
        assert exc_info.value.details["limit"] == 20

    def test_unlimited_plan_skips_count(self, fake_db):
        with patch("lib.supabase_client.SupabaseClient.fetch_user", return_value=self._user("PRO")):
            PlanLimiter.check_limit(USER_ID, PlanResource.SUMMARIES)

        fake_db.builder.execute.assert_not_called()

    def test_summaries_counted_this_month(self, fake_db):
        fake_db.respond(count=2)

        assert PlanLimiter.count_usage(USER_ID, PlanResource.SUMMARIES) == 2
        assert fake_db.calls("gte")[0][0] == "created_at"
        # Soft-deleted summaries still count
        assert fake_db.calls("is_") == []

    def test_notes_exclude_deleted(self, fake_db):
        fake_db.respond(count=4)

        assert PlanLimiter.count_usage(USER_ID, PlanResource.NOTES) == 4
        assert fake_db.calls("is_") == [("deleted_at", "null")]

    def test_unknown_user(self, fake_db):
        with patch("lib.supabase_client.SupabaseClient.fetch_user", return_value=None):
            with pytest.raises(UserNotFoundError):
                PlanLimiter.check_limit(USER_ID, PlanResource.NOTES)

    def test_usage(self, fake_db):
        fake_db.respond(count=3).respond(count=1).respond(count=7)

        with patch("lib.supabase_client.SupabaseClient.fetch_user", return_value=self._user("STARTER")):
            usage = PlanLimiter.get_usage(USER_ID)

        assert usage["plan"] == PlanType.STARTER
        quotas = {q["resource"]: q for q in usage["quotas"]}
        assert quotas[PlanResource.SUMMARIES] == {
            "resource": PlanResource.SUMMARIES, "used": 3, "limit": 20, "remaining": 17,
        }
        assert quotas[PlanResource.NOTES]["remaining"] == 93

    def test_usage_unlimited(self, fake_db):
        fake_db.respond(count=3).respond(count=1).respond(count=7)

        with patch("lib.supabase_client.SupabaseClient.fetch_user", return_value=self._user("BUSINESS")):
            usage = PlanLimiter.get_usage(USER_ID)

        assert all(q["limit"] == UNLIMITED for q in usage["quotas"])
