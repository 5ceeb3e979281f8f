# =============================================================================
# core/services/billing_service.py - Stripe Subscriptions
# =============================================================================
# Checkout, customer portal and webhook handling for paid plans.
#
# Webhooks are verified in the route, then processed by the
# process_stripe_webhook Celery task so Stripe gets its 200 right away and
# failed events are retried.
#
# Source of truth for access checks is the users row (plan_type,
# subscription_status); the subscriptions table keeps the Stripe details.
# Every change invalidates the subscription and feature-access caches.
# =============================================================================

import logging
import time
from datetime import datetime, timezone
from typing import Any

import stripe

from app.config import settings
from app.exceptions import (
    BillingError,
    BillingNotConfiguredError,
    UserNotFoundError,
)
from core.models.plan import (
    PAID_PLANS,
    PlanType,
    SubscriptionStatus,
    parse_plan,
    plan_includes,
)
from lib.cache import CacheKeys, CacheService
from lib.query_cache import QUERY_CACHE_TTL, QueryCache, cached_query, invalidate_cache, invalidate_cache_pattern
from lib.supabase_client import SupabaseClient
from lib.utils import utc_iso

logger = logging.getLogger(__name__)

FEATURE_ACCESS_TTL = 300
FEATURE_DENIED_TTL = 60
CUSTOMER_LOCK_TIMEOUT = 30

STRIPE_STATUS_MAP: dict[str, SubscriptionStatus] = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.TRIALING,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELED,
    "incomplete_expired": SubscriptionStatus.CANCELED,
    "paused": SubscriptionStatus.CANCELED,
    "incomplete": SubscriptionStatus.INCOMPLETE,
}

ACTIVE_STATUSES = (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING)


def map_stripe_status(status: str | None) -> SubscriptionStatus:
    return STRIPE_STATUS_MAP.get(status or "", SubscriptionStatus.NONE)


def _timestamp(value: int | None) -> str | None:
    if not value:
        return None
    return utc_iso(datetime.fromtimestamp(value, tz=timezone.utc))


def _to_dict(obj: Any) -> dict[str, Any]:
    """Plain dict from a StripeObject (or a dict already)."""
    if isinstance(obj, dict):
        return obj
    return obj.to_dict()


def _first_item(subscription: dict[str, Any]) -> dict[str, Any]:
    items = (subscription.get("items") or {}).get("data") or []
    return items[0] if items else {}


def _period(subscription: dict[str, Any], field: str) -> str | None:
    """
    current_period_start/end of a subscription.

    Recent Stripe API versions moved these onto the subscription items.
    """
    return _timestamp(subscription.get(field) or _first_item(subscription).get(field))


def _price_id(subscription: dict[str, Any]) -> str | None:
    return (_first_item(subscription).get("price") or {}).get("id")


def plan_for_price(price_id: str | None) -> PlanType | None:
    for plan_name, configured in settings.stripe_price_ids.items():
        if configured and configured == price_id:
            return PlanType(plan_name)
    return None


def _require_stripe() -> None:
    if not settings.billing_enabled:
        raise BillingNotConfiguredError()
    stripe.api_key = settings.STRIPE_SECRET_KEY


class BillingService:
    """Stripe billing operations."""

    # -------------------------------------------------------------------------
    # Customers and Sessions
    # -------------------------------------------------------------------------

    @staticmethod
    def _stored_customer_id(user_id: str) -> str | None:
        user = SupabaseClient.fetch_by_id("users", user_id, columns="id, stripe_customer_id")
        if not user:
            raise UserNotFoundError(str(user_id))
        return user.get("stripe_customer_id")

    @staticmethod
    def get_or_create_customer(user_id: str, email: str) -> str:
        """
        Stripe customer id of the user, created on first checkout.

        Runs under a per-user lock so two concurrent checkouts can't create
        two customers. The stored id is re-read after the lock is acquired.
        """
        _require_stripe()

        with CacheService.lock(f"stripe-customer:{user_id}", timeout=CUSTOMER_LOCK_TIMEOUT) as acquired:
            customer_id = BillingService._stored_customer_id(user_id)
            if customer_id:
                return customer_id

            if acquired or not CacheService.is_available():
                try:
                    customer = stripe.Customer.create(email=email, metadata={"user_id": str(user_id)})
                except stripe.StripeError as e:
                    logger.error(f"Failed to create Stripe customer for user {user_id}: {e}")
                    raise BillingError("Payment provider error", status_code=502) from e

                SupabaseClient.update_user(user_id, {"stripe_customer_id": customer.id})
                QueryCache.invalidate_user(str(user_id))
                logger.info(f"Created Stripe customer {customer.id} for user {user_id}")
                return customer.id

        # Another request holds the lock and is creating the customer
        time.sleep(1)
        customer_id = BillingService._stored_customer_id(user_id)
        if not customer_id:
            raise BillingError("Checkout already in progress, please retry", status_code=409)
        return customer_id

    @staticmethod
    def create_checkout_session(user_id: str, email: str, plan_type: PlanType) -> dict[str, str]:
        """
        Start a Stripe Checkout for a paid plan.

        Returns:
            Dict with session_id and url

        Raises:
            BillingNotConfiguredError: If Stripe isn't configured
            BillingError: For FREE, unpriced plans or Stripe failures
        """
        _require_stripe()
        plan_type = PlanType(plan_type)
        if plan_type not in PAID_PLANS:
            raise BillingError(f"{plan_type.value} is not a paid plan")

        price_id = settings.stripe_price_ids.get(plan_type.value)
        if not price_id:
            raise BillingError(f"No price configured for the {plan_type.value} plan")

        customer_id = BillingService.get_or_create_customer(user_id, email)
        metadata = {"user_id": str(user_id), "plan_type": plan_type.value}

        try:
            session = stripe.checkout.Session.create(
                customer=customer_id,
                mode="subscription",
                payment_method_types=["card"],
                line_items=[{"price": price_id, "quantity": 1}],
                success_url=f"{settings.FRONTEND_URL}/dashboard/billing?success=true&session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{settings.FRONTEND_URL}/dashboard/billing?canceled=true",
                metadata=metadata,
                subscription_data={"metadata": metadata},
            )
        except stripe.StripeError as e:
            logger.error(f"Checkout creation failed for user {user_id}: {e}")
            raise BillingError("Payment provider error", status_code=502) from e

        if not session.url:
            raise BillingError("Failed to create checkout session URL", status_code=502)

        logger.info(f"Checkout session {session.id} created for user {user_id} ({plan_type.value})")
        return {"session_id": session.id, "url": session.url}

    @staticmethod
    def create_billing_portal_session(user_id: str) -> dict[str, str]:
        _require_stripe()
        customer_id = BillingService._stored_customer_id(user_id)
        if not customer_id:
            raise BillingError("No Stripe customer found for this user", status_code=404)

        try:
            session = stripe.billing_portal.Session.create(
                customer=customer_id,
                return_url=f"{settings.FRONTEND_URL}/dashboard/billing",
            )
        except stripe.StripeError as e:
            logger.error(f"Portal session failed for user {user_id}: {e}")
            raise BillingError("Payment provider error", status_code=502) from e

        return {"url": session.url}

    # -------------------------------------------------------------------------
    # Webhooks
    # -------------------------------------------------------------------------

    @staticmethod
    def construct_event(payload: bytes, signature: str | None) -> dict[str, Any]:
        """
        Verify a webhook's signature.

        Raises:
            BillingNotConfiguredError: Without a webhook secret
            BillingError: If the signature or payload is invalid
        """
        if not settings.STRIPE_WEBHOOK_SECRET:
            raise BillingNotConfiguredError()
        if not signature:
            raise BillingError("Missing Stripe-Signature header")

        try:
            event = stripe.Webhook.construct_event(payload, signature, settings.STRIPE_WEBHOOK_SECRET)
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Rejected webhook with bad signature: {e}")
            raise BillingError("Invalid webhook signature") from e
        except ValueError as e:
            raise BillingError("Invalid webhook payload") from e

        return _to_dict(event)

    @staticmethod
    def handle_event(event: dict[str, Any]) -> bool:
        """
        Dispatch a verified event to its handler.

        Returns:
            True when the event type is handled
        """
        handlers = {
            "checkout.session.completed": BillingService.handle_checkout_completed,
            "customer.subscription.updated": BillingService.handle_subscription_updated,
            "customer.subscription.deleted": BillingService.handle_subscription_deleted,
            "invoice.payment_failed": BillingService.handle_payment_failed,
        }
        event_type = event.get("type")
        handler = handlers.get(event_type)
        if handler is None:
            logger.info(f"Ignoring Stripe event {event.get('id')} ({event_type})")
            return False

        logger.info(f"Processing Stripe event {event.get('id')} ({event_type})")
        handler(event["data"]["object"])
        return True

    @staticmethod
    def _retrieve_subscription(subscription_id: str) -> dict[str, Any]:
        _require_stripe()
        return _to_dict(stripe.Subscription.retrieve(subscription_id))

    @staticmethod
    def _resolve_user_id(metadata: dict[str, Any] | None, subscription_id: str) -> str:
        """User id from metadata, falling back to the stored subscription row."""
        user_id = (metadata or {}).get("user_id")
        if user_id:
            return user_id

        client = SupabaseClient.get_client()
        response = (
            client.table("subscriptions")
            .select("user_id")
            .eq("stripe_subscription_id", subscription_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            raise ValueError(
                f"Cannot process webhook: no user_id in metadata and no stored subscription {subscription_id}"
            )

        logger.warning(f"Using stored user for subscription {subscription_id}")
        return response.data[0]["user_id"]

    @staticmethod
    def handle_checkout_completed(session: dict[str, Any]) -> None:
        metadata = session.get("metadata") or {}
        user_id = metadata.get("user_id")
        plan_type = parse_plan(metadata.get("plan_type"))
        if not user_id or plan_type not in PAID_PLANS:
            raise ValueError(f"Invalid checkout metadata on session {session.get('id')}")

        subscription_id = session.get("subscription")
        if not subscription_id:
            raise ValueError(f"No subscription in checkout session {session.get('id')}")

        subscription = BillingService._retrieve_subscription(subscription_id)
        status = map_stripe_status(subscription.get("status"))
        period_end = _period(subscription, "current_period_end")

        client = SupabaseClient.get_client()
        client.table("subscriptions").upsert({
            "user_id": user_id,
            "stripe_subscription_id": subscription["id"],
            "stripe_customer_id": subscription.get("customer"),
            "stripe_price_id": _price_id(subscription),
            "status": status.value,
            "plan_type": plan_type.value,
            "current_period_start": _period(subscription, "current_period_start"),
            "current_period_end": period_end,
            "cancel_at_period_end": bool(subscription.get("cancel_at_period_end")),
            "updated_at": utc_iso(),
        }, on_conflict="stripe_subscription_id").execute()

        SupabaseClient.update_user(user_id, {
            "plan_type": plan_type.value,
            "subscription_status": status.value,
            "subscription_id": subscription["id"],
            "current_period_end": period_end,
        })

        BillingService.invalidate_cache(user_id)
        logger.info(f"User {user_id} subscribed to {plan_type.value} ({status.value})")

    @staticmethod
    def handle_subscription_updated(subscription: dict[str, Any]) -> None:
        user_id = BillingService._resolve_user_id(subscription.get("metadata"), subscription["id"])
        status = map_stripe_status(subscription.get("status"))
        period_end = _period(subscription, "current_period_end")

        metadata_plan = (subscription.get("metadata") or {}).get("plan_type")
        plan_type = plan_for_price(_price_id(subscription)) or (
            parse_plan(metadata_plan) if metadata_plan else None
        )

        changes: dict[str, Any] = {
            "status": status.value,
            "stripe_price_id": _price_id(subscription),
            "current_period_start": _period(subscription, "current_period_start"),
            "current_period_end": period_end,
            "cancel_at_period_end": bool(subscription.get("cancel_at_period_end")),
            "canceled_at": _timestamp(subscription.get("canceled_at")),
            "updated_at": utc_iso(),
        }
        user_changes: dict[str, Any] = {
            "subscription_status": status.value,
            "current_period_end": period_end,
        }
        if plan_type:
            changes["plan_type"] = plan_type.value
            user_changes["plan_type"] = plan_type.value

        client = SupabaseClient.get_client()
        client.table("subscriptions").update(changes).eq("stripe_subscription_id", subscription["id"]).execute()
        SupabaseClient.update_user(user_id, user_changes)

        BillingService.invalidate_cache(user_id)
        logger.info(f"Subscription {subscription['id']} updated for user {user_id}: {status.value}")

    @staticmethod
    def handle_subscription_deleted(subscription: dict[str, Any]) -> None:
        user_id = BillingService._resolve_user_id(subscription.get("metadata"), subscription["id"])

        client = SupabaseClient.get_client()
        client.table("subscriptions").update({
            "status": SubscriptionStatus.CANCELED.value,
            "cancel_at_period_end": False,
            "canceled_at": utc_iso(),
            "updated_at": utc_iso(),
        }).eq("stripe_subscription_id", subscription["id"]).execute()

        SupabaseClient.update_user(user_id, {
            "plan_type": PlanType.FREE.value,
            "subscription_status": SubscriptionStatus.CANCELED.value,
            "subscription_id": None,
            "current_period_end": None,
        })

        BillingService.invalidate_cache(user_id)
        logger.info(f"Subscription {subscription['id']} canceled, user {user_id} back on FREE")

    @staticmethod
    def handle_payment_failed(invoice: dict[str, Any]) -> None:
        subscription_id = invoice.get("subscription") or (
            ((invoice.get("parent") or {}).get("subscription_details") or {}).get("subscription")
        )
        if not subscription_id:
            logger.info(f"Payment failed for invoice {invoice.get('id')} without subscription, ignoring")
            return

        subscription = BillingService._retrieve_subscription(subscription_id)
        user_id = BillingService._resolve_user_id(subscription.get("metadata"), subscription_id)

        client = SupabaseClient.get_client()
        client.table("subscriptions").update({
            "status": SubscriptionStatus.PAST_DUE.value,
            "updated_at": utc_iso(),
        }).eq("stripe_subscription_id", subscription_id).execute()
        SupabaseClient.update_user(user_id, {"subscription_status": SubscriptionStatus.PAST_DUE.value})

        BillingService.invalidate_cache(user_id)
        logger.warning(f"Payment failed for user {user_id}, subscription {subscription_id} past due")

    # -------------------------------------------------------------------------
    # Access Checks
    # -------------------------------------------------------------------------

    @staticmethod
    def get_user_subscription(user_id: str) -> dict[str, Any] | None:
        """Latest active or trialing subscription row, cached."""
        def query() -> dict[str, Any] | None:
            client = SupabaseClient.get_client()
            response = (
                client.table("subscriptions")
                .select("*")
                .eq("user_id", str(user_id))
                .in_("status", [s.value for s in ACTIVE_STATUSES])
                .order("created_at", desc=True)
                .limit(1)
                .execute()
            )
            return response.data[0] if response.data else None

        return cached_query(CacheKeys.subscription(str(user_id)), query, QUERY_CACHE_TTL["SUBSCRIPTION"])

    @staticmethod
    def get_subscription_status(user_id: str) -> dict[str, Any]:
        """Plan, status and renewal info shown on the billing page."""
        user = QueryCache.get_user(str(user_id), lambda: SupabaseClient.fetch_user(user_id))
        if not user:
            raise UserNotFoundError(str(user_id))

        subscription = BillingService.get_user_subscription(user_id) or {}
        return {
            "plan_type": parse_plan(user.get("plan_type")),
            "status": user.get("subscription_status") or SubscriptionStatus.NONE.value,
            "current_period_end": user.get("current_period_end"),
            "cancel_at_period_end": bool(subscription.get("cancel_at_period_end")),
        }

    @staticmethod
    def has_feature_access(user_id: str, required_plan: PlanType) -> bool:
        """
        Whether the user's active subscription covers `required_plan`.

        FREE features are always available. Denials are cached for a
        shorter time so an upgrade shows up quickly.
        """
        required_plan = PlanType(required_plan)
        if required_plan == PlanType.FREE:
            return True

        key = CacheKeys.feature_access(str(user_id), required_plan.value)
        cached = CacheService.get(key)
        if cached is not None:
            return bool(cached)

        user = QueryCache.get_user(str(user_id), lambda: SupabaseClient.fetch_user(user_id))
        has_access = bool(
            user
            and user.get("subscription_status") in [s.value for s in ACTIVE_STATUSES]
            and plan_includes(parse_plan(user.get("plan_type")), required_plan)
        )

        CacheService.set(key, has_access, FEATURE_ACCESS_TTL if has_access else FEATURE_DENIED_TTL)
        return has_access

    @staticmethod
    def invalidate_cache(user_id: str) -> None:
        invalidate_cache(CacheKeys.subscription(str(user_id)))
        invalidate_cache_pattern(CacheKeys.feature_access_pattern(str(user_id)))
        QueryCache.invalidate_user(str(user_id))
