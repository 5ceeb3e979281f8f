# =============================================================================
# core/models/user.py - User and Auth Schemas
# =============================================================================
# Request/response contracts for registration, login, token refresh,
# profile updates, email verification and password reset.
# =============================================================================

from datetime import datetime
from enum import Enum
from typing import Annotated
from uuid import UUID

from pydantic import AfterValidator, BaseModel, EmailStr, Field

from .plan import PlanType, SubscriptionStatus

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128


class Role(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"
    MODERATOR = "MODERATOR"


class Language(str, Enum):
    FR = "fr"
    EN = "en"


def _check_password_strength(value: str) -> str:
    """At least one lowercase letter, one uppercase letter and one digit."""
    if not any(c.islower() for c in value):
        raise ValueError("Password must contain a lowercase letter")
    if not any(c.isupper() for c in value):
        raise ValueError("Password must contain an uppercase letter")
    if not any(c.isdigit() for c in value):
        raise ValueError("Password must contain a digit")
    return value


Password = Annotated[
    str,
    Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH),
    AfterValidator(_check_password_strength),
]


# =============================================================================
# Requests
# =============================================================================

class RegisterRequest(BaseModel):
    """
    Schema for creating an account.

    Example:
        {"email": "jane@example.com", "password": "Str0ngPassword", "name": "Jane"}
    """
    email: EmailStr
    password: Password
    name: str | None = Field(default=None, max_length=100)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=PASSWORD_MAX_LENGTH)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class LogoutRequest(BaseModel):
    refresh_token: str | None = Field(
        default=None,
        description="Token to revoke. When omitted, every session of the user is revoked."
    )


class UpdateProfileRequest(BaseModel):
    name: str | None = Field(default=None, max_length=100)
    language: Language | None = None


class ResendVerificationRequest(BaseModel):
    email: EmailStr


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=64, max_length=64)
    password: Password


# =============================================================================
# Responses
# =============================================================================

class UserResponse(BaseModel):
    """Public view of a user row (never includes the password hash)."""
    id: UUID
    email: str
    name: str | None = None
    role: Role = Role.USER
    email_verified: bool = False
    language: Language = Language.FR
    plan_type: PlanType = PlanType.FREE
    subscription_status: SubscriptionStatus = SubscriptionStatus.NONE
    current_period_end: datetime | None = None
    created_at: datetime | None = None


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Access token lifetime in seconds")


class AuthResponse(BaseModel):
    user: UserResponse
    tokens: TokenPair


class MessageResponse(BaseModel):
    message: str
