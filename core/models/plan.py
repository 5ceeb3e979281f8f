# =============================================================================
# core/models/plan.py - Subscription Plans and Quotas
# =============================================================================
# Plan tiers, their ordering, and the per-plan resource limits.
#
# A limit of None means unlimited.
# =============================================================================

from enum import Enum

from pydantic import BaseModel, Field


class PlanType(str, Enum):
    """Subscription tiers, from cheapest to most expensive."""
    FREE = "FREE"
    STARTER = "STARTER"
    PRO = "PRO"
    BUSINESS = "BUSINESS"


class SubscriptionStatus(str, Enum):
    """Local mirror of the Stripe subscription lifecycle."""
    NONE = "NONE"
    ACTIVE = "ACTIVE"
    TRIALING = "TRIALING"
    PAST_DUE = "PAST_DUE"
    CANCELED = "CANCELED"
    INCOMPLETE = "INCOMPLETE"


class PlanResource(str, Enum):
    """Resources metered per plan."""
    SUMMARIES = "summaries"
    SAVED_ARTICLES = "saved_articles"
    NOTES = "notes"


PLAN_HIERARCHY: dict[PlanType, int] = {
    PlanType.FREE: 0,
    PlanType.STARTER: 1,
    PlanType.PRO: 2,
    PlanType.BUSINESS: 3,
}

# Summaries are counted per calendar month; articles and notes in total.
PLAN_LIMITS: dict[PlanType, dict[PlanResource, int | None]] = {
    PlanType.FREE: {
        PlanResource.SUMMARIES: 5,
        PlanResource.SAVED_ARTICLES: 10,
        PlanResource.NOTES: 20,
    },
    PlanType.STARTER: {
        PlanResource.SUMMARIES: 20,
        PlanResource.SAVED_ARTICLES: 50,
        PlanResource.NOTES: 100,
    },
    PlanType.PRO: {
        PlanResource.SUMMARIES: None,
        PlanResource.SAVED_ARTICLES: None,
        PlanResource.NOTES: None,
    },
    PlanType.BUSINESS: {
        PlanResource.SUMMARIES: None,
        PlanResource.SAVED_ARTICLES: None,
        PlanResource.NOTES: None,
    },
}

# Human-readable names used in limit messages
RESOURCE_LABELS: dict[PlanResource, str] = {
    PlanResource.SUMMARIES: "summaries per month",
    PlanResource.SAVED_ARTICLES: "saved articles",
    PlanResource.NOTES: "notes",
}

PAID_PLANS = (PlanType.STARTER, PlanType.PRO, PlanType.BUSINESS)


def parse_plan(value: str | PlanType | None) -> PlanType:
    """Parse a stored plan value, treating anything unknown as FREE."""
    if isinstance(value, PlanType):
        return value
    try:
        return PlanType(str(value).upper())
    except ValueError:
        return PlanType.FREE


def get_plan_limit(plan: PlanType, resource: PlanResource) -> int | None:
    return PLAN_LIMITS[plan][resource]


def plan_includes(user_plan: PlanType, required_plan: PlanType) -> bool:
    """True when `user_plan` is at least as high as `required_plan`."""
    return PLAN_HIERARCHY[user_plan] >= PLAN_HIERARCHY[required_plan]


class Quota(BaseModel):
    """Usage of one resource against the plan limit."""
    resource: PlanResource
    used: int = Field(..., ge=0)
    limit: int | str = Field(..., description='Numeric limit or "unlimited"')
    remaining: int | str = Field(..., description='Remaining count or "unlimited"')


class UsageResponse(BaseModel):
    plan: PlanType
    quotas: list[Quota]
