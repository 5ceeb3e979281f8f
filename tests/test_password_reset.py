# =============================================================================
# tests/test_password_reset.py - Password Reset Flow Tests
# =============================================================================
# This module contains tests for:
# - Reset requests (no account enumeration, per-email rate limit)
# - Token verification and brute-force protection
# - Completing a reset
# =============================================================================

from datetime import timedelta
from unittest.mock import patch

import pytest

from app.exceptions import InvalidTokenError, RateLimitExceededError
from core.services.password_reset_service import (
    REQUEST_MAX_ATTEMPTS,
    RESET_REQUESTED_MESSAGE,
    VERIFY_MAX_ATTEMPTS,
    PasswordResetService,
)
from lib.security import hash_token
from lib.utils import utc_iso, utc_now

from .conftest import USER_ID


@pytest.fixture(autouse=True)
def no_delay():
    with patch("core.services.password_reset_service.constant_delay"):
        yield


@pytest.fixture
def send_email():
    with patch("core.services.password_reset_service.EmailService.send_password_reset_email") as send:
        yield send


def _stored_token(expires_in=timedelta(minutes=30)):
    return {"id": "r1", "user_id": USER_ID, "expires_at": utc_iso(utc_now() + expires_in)}


# =============================================================================
# Request Tests
# =============================================================================

class TestRequestReset:
    """Test reset link requests."""

    def test_known_email_sends_link(self, fake_db, send_email, user_row):
        with patch("lib.supabase_client.SupabaseClient.fetch_user_by_email", return_value=user_row):
            result = PasswordResetService.request_reset("Jane@Example.com")

        assert result == {"message": RESET_REQUESTED_MESSAGE}
        token = send_email.call_args.args[1]
        assert len(token) == 64
        assert fake_db.calls("insert")[0][0]["token_hash"] == hash_token(token)

    def test_previous_tokens_replaced(self, fake_db, send_email, user_row):
        with patch("lib.supabase_client.SupabaseClient.fetch_user_by_email", return_value=user_row):
            PasswordResetService.request_reset("jane@example.com")

        assert fake_db.builder.delete.called
        assert ("user_id", USER_ID) in fake_db.calls("eq")

    def test_unknown_email_same_answer(self, fake_db, send_email):
        with patch("lib.supabase_client.SupabaseClient.fetch_user_by_email", return_value=None):
            result = PasswordResetService.request_reset("ghost@example.com")

        assert result == {"message": RESET_REQUESTED_MESSAGE}
        send_email.assert_not_called()

    def test_rate_limited_per_email(self, fake_db, send_email, user_row):
        with patch("lib.supabase_client.SupabaseClient.fetch_user_by_email", return_value=user_row):
            for _ in range(REQUEST_MAX_ATTEMPTS + 2):
                result = PasswordResetService.request_reset("jane@example.com")

        assert result == {"message": RESET_REQUESTED_MESSAGE}
        assert send_email.call_count == REQUEST_MAX_ATTEMPTS

    def test_errors_are_not_exposed(self, fake_db, send_email):
        with patch("lib.supabase_client.SupabaseClient.fetch_user_by_email", side_effect=RuntimeError("db")):
            result = PasswordResetService.request_reset("jane@example.com")

        assert result == {"message": RESET_REQUESTED_MESSAGE}


# =============================================================================
# Verification Tests
# =============================================================================

class TestVerifyResetToken:
    """Test token checks."""

    def test_valid(self, fake_db):
        fake_db.respond(data=[_stored_token()])

        assert PasswordResetService.verify_reset_token("a" * 64)["user_id"] == USER_ID

    def test_unknown(self, fake_db):
        with pytest.raises(InvalidTokenError):
            PasswordResetService.verify_reset_token("a" * 64)

    def test_expired(self, fake_db):
        fake_db.respond(data=[_stored_token(expires_in=-timedelta(minutes=1))])

        with pytest.raises(InvalidTokenError):
            PasswordResetService.verify_reset_token("a" * 64)

    def test_too_many_attempts_burns_token(self, fake_db):
        token = "b" * 64
        for _ in range(VERIFY_MAX_ATTEMPTS):
            with pytest.raises(InvalidTokenError):
                PasswordResetService.verify_reset_token(token)

        with pytest.raises(RateLimitExceededError):
            PasswordResetService.verify_reset_token(token)
        assert ("token_hash", hash_token(token)) in fake_db.calls("eq")
        assert fake_db.builder.delete.called


# =============================================================================
# Reset Tests
# =============================================================================

class TestResetPassword:
    """Test completing a reset."""

    def test_reset(self, fake_db, fast_bcrypt):
        fake_db.respond(data=[_stored_token()])

        with patch("lib.supabase_client.SupabaseClient.update_user") as update, \
             patch("core.services.password_reset_service.AuthService.revoke_all_tokens") as revoke:
            assert PasswordResetService.reset_password("a" * 64, "N3wPassword") == USER_ID

        new_hash = update.call_args.args[1]["password"]
        assert new_hash.startswith("$2")
        revoke.assert_called_once_with(USER_ID)

    def test_invalid_token_changes_nothing(self, fake_db):
        with patch("lib.supabase_client.SupabaseClient.update_user") as update:
            with pytest.raises(InvalidTokenError):
                PasswordResetService.reset_password("a" * 64, "N3wPassword")
        update.assert_not_called()
