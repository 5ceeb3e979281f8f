# =============================================================================
# core/models/admin.py - Admin Schemas
# =============================================================================
# User management, subscription listing, platform stats and token cleanup.
# =============================================================================

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from lib.pagination import PaginationMeta

from .plan import PlanType
from .user import Role, UserResponse


class AdminUserResponse(UserResponse):
    """A user row as admins see it, soft-deleted accounts included."""
    deleted_at: datetime | None = None


class AdminUserList(BaseModel):
    users: list[AdminUserResponse]
    pagination: PaginationMeta


class RoleUpdate(BaseModel):
    role: Role


class SubscriptionOwner(BaseModel):
    id: UUID
    email: str
    name: str | None = None


class AdminSubscriptionResponse(BaseModel):
    id: UUID
    stripe_subscription_id: str
    stripe_price_id: str | None = None
    status: str
    plan_type: PlanType
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    cancel_at_period_end: bool = False
    canceled_at: datetime | None = None
    created_at: datetime | None = None
    user: SubscriptionOwner | None = None


class AdminSubscriptionList(BaseModel):
    subscriptions: list[AdminSubscriptionResponse]
    pagination: PaginationMeta


class AdminStats(BaseModel):
    """
    Counts over active (not soft-deleted) accounts.

    Example:
        {"total_users": 120, "verified_users": 100, "unverified_users": 20,
         "deleted_users": 4, "by_role": {"USER": 118, "ADMIN": 2, "MODERATOR": 0},
         "by_plan": {"FREE": 90, "STARTER": 20, "PRO": 8, "BUSINESS": 2}}
    """
    total_users: int
    verified_users: int
    unverified_users: int
    deleted_users: int
    by_role: dict[str, int] = Field(default_factory=dict)
    by_plan: dict[str, int] = Field(default_factory=dict)
