# =============================================================================
# core/services/verification_service.py - Email Verification
# =============================================================================
# Issues single-use email verification links. Tokens are random 32-byte
# hex strings; only their SHA-256 hash is stored, with a 24 hour expiry.
# =============================================================================

import logging
from datetime import timedelta

from app.exceptions import EmailAlreadyVerifiedError, InvalidTokenError, UserNotFoundError
from core.services.email_service import EmailService
from lib.query_cache import QueryCache
from lib.security import generate_token, hash_token, mask_email
from lib.supabase_client import SupabaseClient
from lib.utils import parse_datetime, utc_iso, utc_now

logger = logging.getLogger(__name__)

VERIFICATION_TOKEN_TTL = timedelta(hours=24)


class VerificationService:

    @staticmethod
    def create_verification_token(user_id: str, email: str) -> None:
        """Replace any pending token of the user and email a new link."""
        client = SupabaseClient.get_client()
        token = generate_token()

        client.table("verification_tokens").delete().eq("user_id", str(user_id)).execute()
        client.table("verification_tokens").insert({
            "user_id": str(user_id),
            "token_hash": hash_token(token),
            "expires_at": utc_iso(utc_now() + VERIFICATION_TOKEN_TTL),
        }).execute()

        EmailService.send_verification_email(email, token)
        logger.info(f"Verification email issued for user {user_id}")

    @staticmethod
    def verify_email(token: str) -> str:
        """
        Mark the token owner's email as verified.

        Returns:
            The verified user's id

        Raises:
            InvalidTokenError: If the token is unknown or expired
        """
        client = SupabaseClient.get_client()
        response = (
            client.table("verification_tokens")
            .select("id, user_id, expires_at")
            .eq("token_hash", hash_token(token))
            .limit(1)
            .execute()
        )
        if not response.data:
            raise InvalidTokenError("Invalid verification token")

        stored = response.data[0]
        expires_at = parse_datetime(stored.get("expires_at"))
        if expires_at and expires_at < utc_now():
            client.table("verification_tokens").delete().eq("id", stored["id"]).execute()
            raise InvalidTokenError("Verification token expired")

        user_id = stored["user_id"]
        SupabaseClient.update_user(user_id, {"email_verified": True})
        client.table("verification_tokens").delete().eq("user_id", user_id).execute()
        QueryCache.invalidate_user(user_id)

        logger.info(f"Email verified for user {user_id}")
        return user_id

    @staticmethod
    def resend_verification(email: str) -> None:
        """
        Send a fresh verification link.

        Raises:
            UserNotFoundError: If no account uses this email
            EmailAlreadyVerifiedError: If the email is already verified
        """
        user = SupabaseClient.fetch_user_by_email(email)
        if not user or user.get("deleted_at"):
            raise UserNotFoundError()
        if user.get("email_verified"):
            raise EmailAlreadyVerifiedError()

        VerificationService.create_verification_token(user["id"], user["email"])
        logger.info(f"Verification email resent to {mask_email(user['email'])}")
