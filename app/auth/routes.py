# =============================================================================
# app/auth/routes.py - Authentication Routes
# =============================================================================
# Registration, login, token refresh/logout, profile, email verification
# and password reset.
#
# The unauthenticated endpoints are rate limited per IP with slowapi on top
# of the per-account limits enforced in the services.
#
# Handlers are plain functions: bcrypt, the constant delay and Supabase
# calls block, so FastAPI runs them in its threadpool.
# =============================================================================

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, status

from app.auth.dependencies import get_current_user
from app.auth.models import AuthUser
from app.limiter import AUTH_LIMIT, PASSWORD_RESET_LIMIT, REGISTER_LIMIT, limiter
from core.models.user import (
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    LogoutRequest,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    ResendVerificationRequest,
    ResetPasswordRequest,
    TokenPair,
    UpdateProfileRequest,
    UserResponse,
)
from core.services.auth_service import AuthService
from core.services.password_reset_service import PasswordResetService
from core.services.verification_service import VerificationService

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Registration / Login
# =============================================================================

@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(REGISTER_LIMIT)
def register(request: Request, body: RegisterRequest):
    """
    Create an account.

    A verification email is sent; the account can be used right away.

    Raises:
        400: Disposable email domain
        409: Email already registered
    """
    return AuthService.register(body.email, body.password, body.name)


@router.post("/login", response_model=AuthResponse)
@limiter.limit(AUTH_LIMIT)
def login(request: Request, body: LoginRequest):
    """
    Log in with email and password.

    Raises:
        401: Wrong email or password
        423: Too many failed attempts, account temporarily locked
    """
    ip_address = request.client.host if request.client else None
    return AuthService.login(body.email, body.password, ip_address)


@router.post("/refresh", response_model=TokenPair)
@limiter.limit(AUTH_LIMIT)
def refresh(request: Request, body: RefreshRequest):
    """
    Exchange a refresh token for a new token pair.

    The old refresh token is revoked. Presenting a revoked token again
    revokes every session of the user.
    """
    return AuthService.refresh(body.refresh_token)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    body: LogoutRequest | None = None,
    user: AuthUser = Depends(get_current_user),
):
    """Revoke the given refresh token, or every session when none is sent."""
    AuthService.logout(str(user.id), body.refresh_token if body else None)


# =============================================================================
# Profile
# =============================================================================

@router.get("/me", response_model=UserResponse)
def get_me(user: AuthUser = Depends(get_current_user)):
    """
    Get the current authenticated user's profile.

    Raises:
        401: If not authenticated
        404: If the account was deleted
    """
    return AuthService.get_current_user(str(user.id))


@router.patch("/me", response_model=UserResponse)
def update_me(
    body: UpdateProfileRequest,
    user: AuthUser = Depends(get_current_user),
):
    """Update name and/or language."""
    return AuthService.update_profile(str(user.id), body.model_dump(exclude_unset=True))


# =============================================================================
# Email Verification
# =============================================================================

@router.get("/verify-email", response_model=MessageResponse)
def verify_email(token: Annotated[str, Query(min_length=1, max_length=128)]):
    """
    Confirm an email address with the token from the verification email.

    Raises:
        400: Invalid or expired token
    """
    VerificationService.verify_email(token)
    return MessageResponse(message="Email verified successfully")


@router.post("/resend-verification", response_model=MessageResponse)
@limiter.limit(PASSWORD_RESET_LIMIT)
def resend_verification(request: Request, body: ResendVerificationRequest):
    """
    Send a new verification email.

    Raises:
        400: Email already verified
        404: No account with this email
    """
    VerificationService.resend_verification(body.email)
    return MessageResponse(message="Verification email sent")


# =============================================================================
# Password Reset
# =============================================================================

@router.post("/forgot-password", response_model=MessageResponse)
@limiter.limit(PASSWORD_RESET_LIMIT)
def forgot_password(request: Request, body: ForgotPasswordRequest):
    """
    Request a password reset link.

    Always answers the same way, whether or not the email is registered.
    """
    return PasswordResetService.request_reset(body.email)


@router.post("/reset-password", response_model=MessageResponse)
@limiter.limit(PASSWORD_RESET_LIMIT)
def reset_password(request: Request, body: ResetPasswordRequest):
    """
    Set a new password with a reset token. Every session is logged out.

    Raises:
        400: Invalid or expired token
        429: Too many attempts with this token
    """
    PasswordResetService.reset_password(body.token, body.password)
    return MessageResponse(message="Password reset successfully")
