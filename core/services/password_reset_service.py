# =============================================================================
# core/services/password_reset_service.py - Password Reset Token Flow
# =============================================================================
# Three steps:
#
#   1. request_reset(email)      -> emails a single-use link (1 hour)
#   2. verify_reset_token(token) -> checks the link before showing the form
#   3. reset_password(token, pw) -> sets the password, burns the token and
#                                   logs the user out everywhere
#
# request_reset always reports success and pads early exits with a random
# delay, so the endpoint can't be used to discover registered emails.
# Only SHA-256 hashes of tokens are stored.
# =============================================================================

import logging
from datetime import timedelta

from app.exceptions import InvalidTokenError, RateLimitExceededError
from core.services.auth_service import AuthService
from core.services.email_service import EmailService
from lib.query_cache import QueryCache
from lib.rate_limiter import check_rate_limit
from lib.security import constant_delay, generate_token, hash_password, hash_token, mask_email
from lib.supabase_client import SupabaseClient
from lib.utils import parse_datetime, utc_iso, utc_now

logger = logging.getLogger(__name__)

RESET_TOKEN_TTL = timedelta(hours=1)

# Reset emails per address
REQUEST_MAX_ATTEMPTS = 3
REQUEST_WINDOW_SECONDS = 60 * 60

# Verification attempts per token
VERIFY_MAX_ATTEMPTS = 5
VERIFY_WINDOW_SECONDS = 15 * 60

RESET_REQUESTED_MESSAGE = "If an account exists for this email, a reset link has been sent."


class PasswordResetService:

    @staticmethod
    def request_reset(email: str) -> dict[str, str]:
        """
        Email a reset link if the account exists.

        Never raises and always returns the same message.
        """
        email = email.strip().lower()
        response = {"message": RESET_REQUESTED_MESSAGE}

        try:
            limit = check_rate_limit(
                f"password-reset:{email}", REQUEST_MAX_ATTEMPTS, REQUEST_WINDOW_SECONDS
            )
            if not limit.allowed:
                logger.warning(f"Password reset rate limit hit for {mask_email(email)}")
                constant_delay()
                return response

            user = SupabaseClient.fetch_user_by_email(email)
            if not user or user.get("deleted_at"):
                constant_delay()
                return response

            token = generate_token()
            client = SupabaseClient.get_client()
            client.table("password_reset_tokens").delete().eq("user_id", user["id"]).execute()
            client.table("password_reset_tokens").insert({
                "user_id": user["id"],
                "token_hash": hash_token(token),
                "expires_at": utc_iso(utc_now() + RESET_TOKEN_TTL),
            }).execute()

            EmailService.send_password_reset_email(user["email"], token)
            logger.info(f"Password reset requested for user {user['id']}")

        except Exception as e:
            logger.error(f"Password reset request failed for {mask_email(email)}: {e}")
            constant_delay()

        return response

    @staticmethod
    def verify_reset_token(token: str) -> dict:
        """
        Check that a reset token is usable.

        Returns:
            The stored token row (id, user_id, expires_at)

        Raises:
            RateLimitExceededError: Too many checks of this token; the token is deleted
            InvalidTokenError: Unknown or expired token
        """
        token_hash = hash_token(token)

        limit = check_rate_limit(
            f"password-reset-verify:{token_hash[:16]}", VERIFY_MAX_ATTEMPTS, VERIFY_WINDOW_SECONDS
        )
        client = SupabaseClient.get_client()

        if not limit.allowed:
            client.table("password_reset_tokens").delete().eq("token_hash", token_hash).execute()
            logger.warning("Reset token deleted after too many verification attempts")
            raise RateLimitExceededError(
                "Too many failed attempts. Please request a new reset link.",
                retry_after=limit.retry_after,
            )

        response = (
            client.table("password_reset_tokens")
            .select("id, user_id, expires_at")
            .eq("token_hash", token_hash)
            .limit(1)
            .execute()
        )
        if not response.data:
            raise InvalidTokenError("Invalid token")

        stored = response.data[0]
        expires_at = parse_datetime(stored.get("expires_at"))
        if expires_at is None or expires_at < utc_now():
            raise InvalidTokenError("Token expired")

        return stored

    @staticmethod
    def reset_password(token: str, new_password: str) -> str:
        """
        Set a new password using a reset token.

        Returns:
            The user id

        Raises:
            RateLimitExceededError, InvalidTokenError: see verify_reset_token
        """
        stored = PasswordResetService.verify_reset_token(token)
        user_id = stored["user_id"]

        SupabaseClient.update_user(user_id, {"password": hash_password(new_password)})

        client = SupabaseClient.get_client()
        client.table("password_reset_tokens").delete().eq("user_id", user_id).execute()

        AuthService.revoke_all_tokens(user_id)
        QueryCache.invalidate_user(user_id)

        logger.info(f"Password reset completed for user {user_id}")
        return user_id
