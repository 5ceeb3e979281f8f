# =============================================================================
# app/auth/__init__.py - Authentication Module
# =============================================================================
# JWT bearer authentication, role and plan guards, and the /auth routes.
#
# Usage:
#   from app.auth import get_current_user, AuthUser
#
#   @router.get("/protected")
#   def protected(user: AuthUser = Depends(get_current_user)):
#       return {"user_id": user.id}
# =============================================================================

from app.auth.dependencies import (
    get_current_user,
    get_current_user_optional,
    require_plan,
    require_role,
)
from app.auth.models import AuthUser

__all__ = [
    "get_current_user",
    "get_current_user_optional",
    "require_plan",
    "require_role",
    "AuthUser",
]
