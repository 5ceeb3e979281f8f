# =============================================================================
# app/auth/dependencies.py - FastAPI Auth Dependencies
# =============================================================================
# Provides dependency injection for authentication and authorization.
#
# Access tokens are HS256 JWTs issued by AuthService. Role and plan guards
# are dependency factories:
#
#   @router.post("/feeds", dependencies=[Depends(require_role(Role.ADMIN))])
#   @router.get("/export", dependencies=[Depends(require_plan(PlanType.PRO))])
# =============================================================================

import logging
from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError
from pydantic import ValidationError

from app.auth.models import AuthUser, TokenPayload
from app.exceptions import ForbiddenError
from core.models.plan import PlanType
from core.models.user import Role
from core.services.auth_service import AuthService
from core.services.billing_service import BillingService

logger = logging.getLogger(__name__)

# HTTP Bearer token extractor
security = HTTPBearer()
security_optional = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> AuthUser:
    """
    Extract and validate the user from the access token.

    Args:
        credentials: Bearer token from Authorization header

    Returns:
        AuthUser: The authenticated user

    Raises:
        HTTPException: 401 if token is invalid or expired

    Usage:
        @router.get("/protected")
        def protected_route(user: AuthUser = Depends(get_current_user)):
            return {"user_id": user.id}
    """
    token = credentials.credentials

    try:
        claims = TokenPayload(**AuthService.decode_access_token(token))
        user_id = UUID(claims.sub)

    except ExpiredSignatureError:
        logger.warning("Access token has expired")
        raise _unauthorized("Token has expired")

    except JWTError as e:
        logger.warning(f"JWT validation failed: {e}")
        raise _unauthorized(f"Invalid token: {str(e)}")

    except (ValidationError, ValueError):
        logger.warning("Access token with malformed claims")
        raise _unauthorized("Invalid token: malformed claims")

    logger.debug(f"Authenticated user: {user_id}")
    return AuthUser(id=user_id, email=claims.email, role=claims.role)


async def get_current_user_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_optional)
) -> Optional[AuthUser]:
    """
    Optionally get the current user from the access token.

    Returns None if no token is provided, instead of raising an error.
    """
    if credentials is None:
        return None

    try:
        return await get_current_user(credentials)
    except HTTPException:
        # If token is invalid, treat as no auth rather than error
        return None


def require_role(*roles: Role):
    """
    Dependency factory allowing only the given roles.

    Raises:
        ForbiddenError: 403 for any other role
    """
    allowed = set(roles)

    async def dependency(user: AuthUser = Depends(get_current_user)) -> AuthUser:
        if user.role not in allowed:
            logger.warning(f"User {user.id} with role {user.role.value} denied (needs {sorted(r.value for r in allowed)})")
            raise ForbiddenError()
        return user

    return dependency


def require_plan(plan: PlanType):
    """
    Dependency factory requiring an active subscription of at least `plan`.

    Raises:
        ForbiddenError: 403 without access
    """
    async def dependency(user: AuthUser = Depends(get_current_user)) -> AuthUser:
        if not BillingService.has_feature_access(str(user.id), plan):
            raise ForbiddenError(f"This feature requires the {plan.value} plan or higher")
        return user

    return dependency
