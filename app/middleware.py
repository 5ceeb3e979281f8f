# =============================================================================
# app/middleware.py - HTTP Middleware
# =============================================================================
# - Request id: echoes X-Request-ID or generates one, for log correlation
# - Security headers on every response (HSTS in production only)
# =============================================================================

import logging
import uuid

from fastapi import Request

from app.config import settings

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}
HSTS_VALUE = "max-age=31536000; includeSubDomains"


async def request_id_middleware(request: Request, call_next):
    """Attach a request id to request.state and the response."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    request.state.request_id = request_id

    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


async def security_headers_middleware(request: Request, call_next):
    response = await call_next(request)
    for header, value in SECURITY_HEADERS.items():
        response.headers.setdefault(header, value)
    if settings.is_production:
        response.headers["Strict-Transport-Security"] = HSTS_VALUE
    return response
