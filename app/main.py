# =============================================================================
# app/main.py - FastAPI Application Entry Point
# =============================================================================
# This is the main entry point for the NoteFlow API.
# It configures the FastAPI application with middleware, routers, and handlers.
#
# Usage:
#   uvicorn app.main:app --reload
# =============================================================================

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.config import settings
from app.exceptions import (
    NoteFlowException,
    noteflow_exception_handler,
    validation_exception_handler,
)
from app.limiter import limiter
from app.middleware import request_id_middleware, security_headers_middleware
from app.routers import admin, articles, billing, health, notes, public, summaries, tasks
from app.auth import routes as auth_routes
from lib.cache import CacheService, reset_redis

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Logs the configuration on startup. Redis is optional: its absence is
    logged and every cache call degrades to the database.
    """
    logger.info(f"Starting NoteFlow API in {settings.ENVIRONMENT} mode")
    logger.info(f"CORS origins: {settings.cors_origins_list}")

    if not CacheService.is_available():
        logger.warning("Redis unavailable at startup, running without cache")
    if not settings.billing_enabled:
        logger.warning("STRIPE_SECRET_KEY not set, billing endpoints will answer 503")

    yield

    logger.info("Shutting down NoteFlow API")
    reset_redis()


# Create FastAPI application
app = FastAPI(
    title="NoteFlow API",
    description="""
## Content aggregation, notes and AI summaries

NoteFlow aggregates RSS feeds, lets users save articles and take notes, and
generates AI summaries of any text or web page.

### Plans

| Plan | Summaries / month | Saved articles | Notes |
|------|-------------------|----------------|-------|
| **FREE** | 5 | 10 | 20 |
| **STARTER** | 20 | 50 | 100 |
| **PRO** | unlimited | unlimited | unlimited |
| **BUSINESS** | unlimited | unlimited | unlimited |

### Quick Start

```bash
# 1. Register
curl -X POST http://localhost:8000/api/v1/auth/register \\
  -H "Content-Type: application/json" \\
  -d '{"email": "me@example.com", "password": "Str0ng!pass"}'

# 2. Request a summary (with the access token from step 1)
curl -X POST http://localhost:8000/api/v1/summaries \\
  -H "Authorization: Bearer $TOKEN" \\
  -H "Content-Type: application/json" \\
  -d '{"text": "https://example.com/article", "style": "TOP3", "language": "en"}'

# 3. Poll the task
curl http://localhost:8000/api/v1/summaries/status/$TASK_ID -H "Authorization: Bearer $TOKEN"
```
""",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    openapi_tags=[
        {
            "name": "Auth",
            "description": "Registration, login, tokens, email verification and password reset",
        },
        {
            "name": "Articles",
            "description": "Aggregated RSS articles and saved articles",
        },
        {
            "name": "Notes",
            "description": "Personal notes",
        },
        {
            "name": "Summaries",
            "description": "AI summaries and share links",
        },
        {
            "name": "Public",
            "description": "Shared content, no authentication",
        },
        {
            "name": "Billing",
            "description": "Stripe subscriptions and plan usage",
        },
        {
            "name": "Admin",
            "description": "Feed management and RSS jobs (ADMIN role)",
        },
        {
            "name": "Tasks",
            "description": "Track async task progress",
        },
        {
            "name": "Health",
            "description": "API health and readiness checks",
        },
    ],
)


# =============================================================================
# Middleware
# =============================================================================

# CORS middleware - allows cross-origin requests
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list if settings.is_production else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.middleware("http")(security_headers_middleware)
app.middleware("http")(request_id_middleware)

# HTTP rate limiting (slowapi)
app.state.limiter = limiter


# =============================================================================
# Exception Handlers
# =============================================================================

app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)


@app.exception_handler(NoteFlowException)
async def handle_noteflow_exception(request: Request, exc: NoteFlowException):
    """Handle custom NoteFlow exceptions."""
    return await noteflow_exception_handler(request, exc)


@app.exception_handler(Exception)
async def handle_general_exception(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "detail": "An unexpected error occurred",
            "code": "INTERNAL_ERROR",
        }
    )


# =============================================================================
# Routers
# =============================================================================

app.include_router(
    auth_routes.router,
    prefix="/api/v1/auth",
    tags=["Auth"]
)

app.include_router(
    health.router,
    prefix="/api/v1",
    tags=["Health"]
)

app.include_router(
    articles.router,
    prefix="/api/v1/articles",
    tags=["Articles"]
)

app.include_router(
    notes.router,
    prefix="/api/v1/notes",
    tags=["Notes"]
)

app.include_router(
    summaries.router,
    prefix="/api/v1/summaries",
    tags=["Summaries"]
)

app.include_router(
    public.router,
    prefix="/api/v1/public",
    tags=["Public"]
)

app.include_router(
    billing.router,
    prefix="/api/v1/billing",
    tags=["Billing"]
)

app.include_router(
    admin.router,
    prefix="/api/v1/admin",
    tags=["Admin"]
)

app.include_router(
    tasks.router,
    prefix="/api/v1/tasks",
    tags=["Tasks"]
)


# =============================================================================
# Root Endpoint
# =============================================================================

@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint - returns API info.
    """
    return {
        "name": "NoteFlow API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/v1/health",
    }
