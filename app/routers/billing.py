# =============================================================================
# app/routers/billing.py - Billing Endpoints
# =============================================================================
# Stripe checkout and customer portal, subscription/usage info, and the
# Stripe webhook receiver.
#
# Handlers are plain functions so the blocking Stripe SDK runs in the
# threadpool. The webhook only verifies the signature and queues the event;
# the process_stripe_webhook task applies it.
# =============================================================================

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Header, Request
from fastapi.concurrency import run_in_threadpool

from app.auth import AuthUser, get_current_user
from core.models.billing import CheckoutRequest, CheckoutResponse, PortalResponse, SubscriptionResponse
from core.models.plan import UsageResponse
from core.services.auth_service import AuthService
from core.services.billing_service import BillingService
from core.services.plan_limiter import PlanLimiter

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/checkout", response_model=CheckoutResponse)
def create_checkout(
    body: CheckoutRequest,
    user: AuthUser = Depends(get_current_user),
):
    """
    Start a Stripe Checkout for a paid plan and return its URL.

    Raises:
        400: FREE or unpriced plan
        503: Billing not configured
    """
    email = user.email or AuthService.get_current_user(str(user.id))["email"]
    return BillingService.create_checkout_session(str(user.id), email, body.plan_type)


@router.post("/portal", response_model=PortalResponse)
def create_portal(user: AuthUser = Depends(get_current_user)):
    """Stripe customer portal URL to manage or cancel the subscription."""
    return BillingService.create_billing_portal_session(str(user.id))


@router.get("/subscription", response_model=SubscriptionResponse)
def get_subscription(user: AuthUser = Depends(get_current_user)):
    return BillingService.get_subscription_status(str(user.id))


@router.get("/usage", response_model=UsageResponse)
def get_usage(user: AuthUser = Depends(get_current_user)):
    """Usage of every metered resource against the plan limits."""
    return PlanLimiter.get_usage(str(user.id))


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: Annotated[str | None, Header(alias="Stripe-Signature")] = None,
):
    """
    Receive a Stripe event.

    Raises:
        400: Missing or invalid signature
    """
    from workers.tasks import process_stripe_webhook

    payload = await request.body()
    event = await run_in_threadpool(BillingService.construct_event, payload, stripe_signature)

    await run_in_threadpool(process_stripe_webhook.delay, event)
    logger.info(f"Queued Stripe event {event.get('id')} ({event.get('type')})")
    return {"received": True}
