# =============================================================================
# core/services/auth_service.py - Authentication Business Logic
# =============================================================================
# Handles registration, login, token refresh/rotation, logout and profile
# updates.
#
# Tokens:
# - Access token: short-lived HS256 JWT (sub, email, role, type=access)
# - Refresh token: long-lived JWT signed with a separate secret, carrying a
#   unique jti. Only its SHA-256 hash is stored in refresh_tokens.
#
# Refresh tokens rotate on every use. Presenting a token that was already
# rotated (revoked) is treated as theft: every session of the user is
# revoked.
# =============================================================================

import logging
import uuid
from datetime import timedelta
from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt

from app.config import settings
from app.exceptions import (
    AccountDeletedError,
    AccountLockedError,
    DisposableEmailError,
    EmailAlreadyInUseError,
    InvalidCredentialsError,
    InvalidTokenError,
    UserNotFoundError,
)
from core.models.user import Role
from core.services.verification_service import VerificationService
from lib.query_cache import QueryCache
from lib.rate_limiter import check_rate_limit, get_remaining_attempts, reset_rate_limit
from lib.security import (
    DUMMY_PASSWORD_HASH,
    hash_password,
    hash_token,
    is_disposable_email,
    mask_email,
    verify_password,
)
from lib.supabase_client import SupabaseClient
from lib.utils import parse_datetime, utc_iso, utc_now

logger = logging.getLogger(__name__)

# Account lockout: this many failed logins within the window locks the email
LOGIN_MAX_ATTEMPTS = 5
LOGIN_LOCKOUT_SECONDS = 15 * 60

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"
# A token rotated this recently is a concurrent refresh from the same client,
# not a replay
REFRESH_REUSE_GRACE_SECONDS = 30


class AuthService:
    """
    Service for authentication operations.

    Provides a clean interface between API routes and database.
    """

    # -------------------------------------------------------------------------
    # Tokens
    # -------------------------------------------------------------------------

    @staticmethod
    def create_access_token(user_id: str, email: str, role: str) -> str:
        now = utc_now()
        payload = {
            "sub": str(user_id),
            "email": email,
            "role": role,
            "type": ACCESS_TOKEN_TYPE,
            "iat": now,
            "exp": now + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        }
        return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)

    @staticmethod
    def decode_access_token(token: str) -> dict[str, Any]:
        """
        Verify an access token and return its claims.

        Raises:
            ExpiredSignatureError: If the token has expired
            JWTError: If the signature, claims or token type are invalid
        """
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
        if payload.get("type") != ACCESS_TOKEN_TYPE:
            raise JWTError("Not an access token")
        return payload

    @staticmethod
    def _create_refresh_token(user_id: str) -> str:
        """Sign a refresh token and store its hash."""
        now = utc_now()
        expires_at = now + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
        token = jwt.encode(
            {
                "sub": str(user_id),
                "type": REFRESH_TOKEN_TYPE,
                "jti": uuid.uuid4().hex,
                "iat": now,
                "exp": expires_at,
            },
            settings.JWT_REFRESH_SECRET,
            algorithm=settings.JWT_ALGORITHM,
        )

        client = SupabaseClient.get_client()
        client.table("refresh_tokens").insert({
            "token_hash": hash_token(token),
            "user_id": str(user_id),
            "expires_at": utc_iso(expires_at),
            "revoked": False,
        }).execute()

        return token

    @staticmethod
    def issue_tokens(user: dict[str, Any]) -> dict[str, Any]:
        """Create a fresh access/refresh pair for a user row."""
        access_token = AuthService.create_access_token(
            user["id"], user["email"], user.get("role") or Role.USER.value
        )
        refresh_token = AuthService._create_refresh_token(user["id"])
        return {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "token_type": "bearer",
            "expires_in": settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        }

    @staticmethod
    def revoke_all_tokens(user_id: str) -> None:
        """Revoke every active refresh token of a user (logout everywhere)."""
        client = SupabaseClient.get_client()
        client.table("refresh_tokens").update({"revoked": True}).eq(
            "user_id", str(user_id)
        ).eq("revoked", False).execute()
        logger.info(f"Revoked all refresh tokens for user {user_id}")

    # -------------------------------------------------------------------------
    # Registration / Login
    # -------------------------------------------------------------------------

    @staticmethod
    def register(email: str, password: str, name: str | None = None) -> dict[str, Any]:
        """
        Create an account and log the user in.

        Returns:
            Dict with "user" (public row) and "tokens"

        Raises:
            DisposableEmailError: If the email domain is a throwaway provider
            EmailAlreadyInUseError: If the email is taken
        """
        email = email.strip().lower()

        if is_disposable_email(email):
            raise DisposableEmailError()

        if SupabaseClient.fetch_user_by_email(email):
            raise EmailAlreadyInUseError()

        client = SupabaseClient.get_client()
        try:
            response = client.table("users").insert({
                "email": email,
                "password": hash_password(password),
                "name": name,
                "role": Role.USER.value,
                "email_verified": False,
                "plan_type": "FREE",
                "subscription_status": "NONE",
            }).execute()
        except Exception as e:
            # Unique constraint race with a concurrent registration
            if "23505" in str(e) or "duplicate key" in str(e):
                raise EmailAlreadyInUseError()
            logger.error(f"Failed to create user {mask_email(email)}: {e}")
            raise

        if not response.data:
            raise Exception("Insert returned no data")

        user = response.data[0]
        user.pop("password", None)
        logger.info(f"Registered user {user['id']} ({mask_email(email)})")

        try:
            VerificationService.create_verification_token(user["id"], email)
        except Exception as e:
            # The user can ask for a new link; don't fail the sign-up
            logger.error(f"Failed to send verification email to {mask_email(email)}: {e}")

        return {"user": user, "tokens": AuthService.issue_tokens(user)}

    @staticmethod
    def login(email: str, password: str, ip_address: str | None = None) -> dict[str, Any]:
        """
        Authenticate with email and password.

        Always runs a bcrypt comparison, even for unknown emails, so the
        response time doesn't reveal which emails are registered.

        Raises:
            AccountLockedError: After too many failed attempts
            InvalidCredentialsError: Wrong email or password
            AccountDeletedError: If the account was soft-deleted
        """
        email = email.strip().lower()
        lockout_key = f"login:{email}"

        if get_remaining_attempts(lockout_key, LOGIN_MAX_ATTEMPTS) <= 0:
            logger.warning(f"Login blocked for locked account {mask_email(email)}")
            raise AccountLockedError(LOGIN_LOCKOUT_SECONDS)

        user = SupabaseClient.fetch_user_by_email(email, include_password=True)
        password_hash = user.get("password") if user else None
        valid = verify_password(password, password_hash or DUMMY_PASSWORD_HASH)

        if not user or not password_hash or not valid:
            result = check_rate_limit(lockout_key, LOGIN_MAX_ATTEMPTS, LOGIN_LOCKOUT_SECONDS)
            logger.info(f"Failed login for {mask_email(email)} ({result.remaining} attempts left)")
            raise InvalidCredentialsError()

        if user.get("deleted_at"):
            raise AccountDeletedError()

        reset_rate_limit(lockout_key)

        updated = SupabaseClient.update_user(user["id"], {
            "last_login_at": utc_iso(),
            "last_login_ip": ip_address,
            "login_count": (user.get("login_count") or 0) + 1,
        }) or user
        updated.pop("password", None)
        QueryCache.invalidate_user(user["id"])

        logger.info(f"User {user['id']} logged in")
        return {"user": updated, "tokens": AuthService.issue_tokens(updated)}

    # -------------------------------------------------------------------------
    # Refresh / Logout
    # -------------------------------------------------------------------------

    @staticmethod
    def _recently_rotated(stored: dict[str, Any]) -> bool:
        used_at = parse_datetime(stored.get("used_at"))
        if used_at is None:
            return False
        return utc_now() - used_at < timedelta(seconds=REFRESH_REUSE_GRACE_SECONDS)

    @staticmethod
    def refresh(refresh_token: str) -> dict[str, Any]:
        """
        Rotate a refresh token.

        The presented token is revoked and a new pair is issued. Reusing a
        revoked token revokes every token of its owner, except within a short
        grace period after rotation: a request that lost a concurrent refresh
        is rejected without logging out the winner.

        Raises:
            InvalidTokenError: If the token is malformed, unknown, expired or replayed
            AccountDeletedError: If the account was soft-deleted
        """
        try:
            payload = jwt.decode(
                refresh_token,
                settings.JWT_REFRESH_SECRET,
                algorithms=[settings.JWT_ALGORITHM],
            )
        except ExpiredSignatureError:
            raise InvalidTokenError("Refresh token expired", status_code=401)
        except JWTError:
            raise InvalidTokenError("Invalid refresh token", status_code=401)

        if payload.get("type") != REFRESH_TOKEN_TYPE:
            raise InvalidTokenError("Invalid refresh token", status_code=401)

        client = SupabaseClient.get_client()
        response = (
            client.table("refresh_tokens")
            .select("id, user_id, expires_at, revoked, used_at")
            .eq("token_hash", hash_token(refresh_token))
            .limit(1)
            .execute()
        )
        if not response.data:
            raise InvalidTokenError("Invalid refresh token", status_code=401)

        stored = response.data[0]
        user_id = stored["user_id"]

        if stored.get("revoked"):
            if AuthService._recently_rotated(stored):
                logger.info(f"Refresh token for user {user_id} already rotated by a concurrent request")
                raise InvalidTokenError("Refresh token already used", status_code=401)
            logger.warning(f"Refresh token reuse detected for user {user_id}, revoking all sessions")
            AuthService.revoke_all_tokens(user_id)
            raise InvalidTokenError("Refresh token reuse detected", status_code=401)

        expires_at = parse_datetime(stored.get("expires_at"))
        if expires_at and expires_at < utc_now():
            raise InvalidTokenError("Refresh token expired", status_code=401)

        # Conditional update: only one concurrent refresh can win the rotation
        rotated = (
            client.table("refresh_tokens")
            .update({"revoked": True, "used_at": utc_iso()})
            .eq("id", stored["id"])
            .eq("revoked", False)
            .execute()
        )
        if not rotated.data:
            logger.info(f"Lost concurrent refresh for user {user_id}")
            raise InvalidTokenError("Refresh token already used", status_code=401)

        user = SupabaseClient.fetch_user(user_id)
        if not user:
            raise InvalidTokenError("Invalid refresh token", status_code=401)
        if user.get("deleted_at"):
            raise AccountDeletedError()

        return AuthService.issue_tokens(user)

    @staticmethod
    def logout(user_id: str, refresh_token: str | None = None) -> None:
        """Revoke one refresh token, or all of them when none is given."""
        if refresh_token is None:
            AuthService.revoke_all_tokens(user_id)
            return

        client = SupabaseClient.get_client()
        client.table("refresh_tokens").update({"revoked": True}).eq(
            "token_hash", hash_token(refresh_token)
        ).eq("user_id", str(user_id)).execute()
        logger.info(f"User {user_id} logged out")

    # -------------------------------------------------------------------------
    # Profile
    # -------------------------------------------------------------------------

    @staticmethod
    def get_current_user(user_id: str) -> dict[str, Any]:
        """
        Get a user's public profile (cached).

        Raises:
            UserNotFoundError: If the user doesn't exist or was deleted
        """
        user = QueryCache.get_user(str(user_id), lambda: SupabaseClient.fetch_user(user_id))
        if not user or user.get("deleted_at"):
            raise UserNotFoundError(str(user_id))
        return user

    @staticmethod
    def update_profile(user_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        """
        Update profile fields (name, language).

        Raises:
            UserNotFoundError: If the user doesn't exist
        """
        allowed = {k: v for k, v in changes.items() if k in ("name", "language") and v is not None}
        if not allowed:
            return AuthService.get_current_user(user_id)

        user = SupabaseClient.update_user(user_id, allowed)
        if not user:
            raise UserNotFoundError(str(user_id))

        user.pop("password", None)
        QueryCache.invalidate_user(str(user_id))
        logger.info(f"Updated profile for user {user_id}: {sorted(allowed)}")
        return user
