# =============================================================================
# app/limiter.py - HTTP Request Rate Limiting
# =============================================================================
# Shared slowapi limiter. Routes opt in with a decorator and must accept a
# `request: Request` parameter:
#
#   @router.post("/login")
#   @limiter.limit("10/minute")
#   async def login(request: Request, ...):
#
# Disabled when RATE_LIMIT_ENABLED is false (tests, local load testing).
# =============================================================================

from slowapi import Limiter
from slowapi.util import get_remote_address

from app.config import settings

# Per-IP limits for the unauthenticated auth endpoints
AUTH_LIMIT = "10/minute"
REGISTER_LIMIT = "5/minute"
PASSWORD_RESET_LIMIT = "5 per 15 minutes"

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["100/minute"],
    storage_uri=settings.REDIS_URL if settings.is_production else "memory://",
    enabled=settings.RATE_LIMIT_ENABLED,
)
