# =============================================================================
# app/auth/models.py - Authentication Models
# =============================================================================
# Pydantic models for authentication data.
# =============================================================================

from uuid import UUID

from pydantic import BaseModel

from core.models.user import Role


class AuthUser(BaseModel):
    """
    Authenticated user extracted from the access token.

    This is the minimal user info carried by the token itself,
    without querying the database.
    """
    id: UUID
    email: str | None = None
    role: Role = Role.USER

    class Config:
        frozen = True  # Make immutable


class TokenPayload(BaseModel):
    """Decoded access token claims."""
    sub: str  # User ID
    email: str | None = None
    role: Role = Role.USER
    type: str
    exp: int
    iat: int
