# =============================================================================
# core/models/billing.py - Billing Schemas
# =============================================================================

from datetime import datetime

from pydantic import BaseModel, Field

from .plan import PlanType, SubscriptionStatus


class CheckoutRequest(BaseModel):
    plan_type: PlanType = Field(..., description="Paid plan to subscribe to")


class CheckoutResponse(BaseModel):
    session_id: str
    url: str


class PortalResponse(BaseModel):
    url: str


class SubscriptionResponse(BaseModel):
    plan_type: PlanType = PlanType.FREE
    status: SubscriptionStatus = SubscriptionStatus.NONE
    current_period_end: datetime | None = None
    cancel_at_period_end: bool = False
