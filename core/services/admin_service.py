# =============================================================================
# core/services/admin_service.py - Admin User Management
# =============================================================================
# Listing and moderating accounts, listing subscriptions and platform stats.
# Deleting a user is a soft delete: deleted_at is set and every refresh
# token revoked, so the account can't log in or refresh again.
# =============================================================================

import logging
from typing import Any

from app.exceptions import ForbiddenError, UserNotFoundError
from core.models.plan import PlanType
from core.models.user import Role
from core.services.auth_service import AuthService
from lib.pagination import build_pagination, clamp_page_size, get_offset, normalize_page
from lib.query_cache import QueryCache
from lib.supabase_client import USER_PUBLIC_COLUMNS, SupabaseClient
from lib.utils import clean_search_term, normalize_uuid, utc_iso

logger = logging.getLogger(__name__)

SUBSCRIPTION_COLUMNS = (
    "id, stripe_subscription_id, stripe_price_id, status, plan_type, "
    "current_period_start, current_period_end, cancel_at_period_end, canceled_at, "
    "created_at, user:users(id, email, name)"
)


class AdminService:

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    @staticmethod
    def list_users(
        search: str | None = None,
        include_deleted: bool = False,
        page: int = 1,
        page_size: int = 20,
    ) -> dict[str, Any]:
        """
        List accounts, newest first, optionally filtered by email or name.

        Returns:
            Dict with "users" and "pagination"
        """
        page = normalize_page(page)
        page_size = clamp_page_size(page_size)
        start, end = get_offset(page, page_size)
        term = clean_search_term(search)

        client = SupabaseClient.get_client()
        builder = client.table("users").select(USER_PUBLIC_COLUMNS, count="exact")
        if not include_deleted:
            builder = builder.is_("deleted_at", "null")
        if term:
            builder = builder.or_(f"email.ilike.%{term}%,name.ilike.%{term}%")

        response = builder.order("created_at", desc=True).range(start, end).execute()
        return {
            "users": response.data or [],
            "pagination": build_pagination(page, page_size, response.count or 0).model_dump(),
        }

    @staticmethod
    def _get_target(user_id: str) -> dict[str, Any]:
        user = SupabaseClient.fetch_user(user_id)
        if not user or user.get("deleted_at"):
            raise UserNotFoundError(user_id)
        return user

    @staticmethod
    def update_role(admin_id: str, user_id: str, role: Role) -> dict[str, Any]:
        """
        Change a user's role.

        Raises:
            ForbiddenError: If an admin tries to change their own role
            UserNotFoundError: If the user doesn't exist or was deleted
        """
        user_id = normalize_uuid(user_id)
        if user_id == normalize_uuid(admin_id):
            raise ForbiddenError("You cannot change your own role")

        AdminService._get_target(user_id)
        updated = SupabaseClient.update_user(user_id, {"role": role.value, "updated_at": utc_iso()})
        if not updated:
            raise UserNotFoundError(user_id)

        QueryCache.invalidate_user(user_id)
        logger.info(f"Admin {admin_id} set role of {user_id} to {role.value}")
        return updated

    @staticmethod
    def delete_user(admin_id: str, user_id: str) -> None:
        """
        Soft-delete an account and log it out everywhere.

        Raises:
            ForbiddenError: When deleting yourself or another admin
            UserNotFoundError: If the user doesn't exist or was already deleted
        """
        user_id = normalize_uuid(user_id)
        if user_id == normalize_uuid(admin_id):
            raise ForbiddenError("You cannot delete your own account")

        target = AdminService._get_target(user_id)
        if target.get("role") == Role.ADMIN.value:
            logger.warning(f"Admin {admin_id} tried to delete admin {user_id}")
            raise ForbiddenError("Cannot delete other administrator accounts")

        now = utc_iso()
        SupabaseClient.update_user(user_id, {"deleted_at": now, "updated_at": now})
        AuthService.revoke_all_tokens(user_id)
        QueryCache.invalidate_user(user_id)
        logger.warning(f"Admin {admin_id} deleted user {user_id} ({target.get('email')})")

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    @staticmethod
    def list_subscriptions(
        status: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> dict[str, Any]:
        page = normalize_page(page)
        page_size = clamp_page_size(page_size)
        start, end = get_offset(page, page_size)

        client = SupabaseClient.get_client()
        builder = client.table("subscriptions").select(SUBSCRIPTION_COLUMNS, count="exact")
        if status:
            builder = builder.eq("status", status)

        response = builder.order("created_at", desc=True).range(start, end).execute()
        return {
            "subscriptions": response.data or [],
            "pagination": build_pagination(page, page_size, response.count or 0).model_dump(),
        }

    # -------------------------------------------------------------------------
    # Stats
    # -------------------------------------------------------------------------

    @staticmethod
    def _count_users(*filters: tuple[str, Any], deleted: bool = False) -> int:
        client = SupabaseClient.get_client()
        builder = client.table("users").select("id", count="exact")
        for column, value in filters:
            builder = builder.eq(column, value)
        if deleted:
            builder = builder.not_.is_("deleted_at", "null")
        else:
            builder = builder.is_("deleted_at", "null")
        response = builder.limit(1).execute()
        return response.count or 0

    @staticmethod
    def get_stats() -> dict[str, Any]:
        """Account counts by verification, role and plan."""
        total = AdminService._count_users()
        verified = AdminService._count_users(("email_verified", True))
        return {
            "total_users": total,
            "verified_users": verified,
            "unverified_users": total - verified,
            "deleted_users": AdminService._count_users(deleted=True),
            "by_role": {role.value: AdminService._count_users(("role", role.value)) for role in Role},
            "by_plan": {plan.value: AdminService._count_users(("plan_type", plan.value)) for plan in PlanType},
        }
