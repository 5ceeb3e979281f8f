# =============================================================================
# app/exceptions.py - Custom Exceptions and Handlers
# =============================================================================
# Centralized exception handling for the API.
# Errors carry a machine-readable code and, where possible, a suggestion
# telling the client how to recover.
# =============================================================================

from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class NoteFlowException(Exception):
    """
    Base exception for the NoteFlow API.

    All custom exceptions inherit from this class.
    Provides structured error responses with actionable suggestions.
    """

    def __init__(
        self,
        message: str,
        code: str = "NOTEFLOW_ERROR",
        status_code: int = 500,
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.suggestion = suggestion
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to API response dict."""
        result = {
            "detail": self.message,
            "code": self.code,
        }
        if self.suggestion:
            result["suggestion"] = self.suggestion
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Not Found
# =============================================================================

class NotFoundError(NoteFlowException):
    """Raised when a resource doesn't exist (or isn't owned by the caller)."""

    def __init__(self, resource: str, resource_id: str | None = None):
        details = {"id": resource_id} if resource_id else None
        super().__init__(
            message=f"{resource} not found",
            code=f"{resource.upper().replace(' ', '_')}_NOT_FOUND",
            status_code=404,
            details=details,
        )


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id: str | None = None):
        super().__init__("User", user_id)


class NoteNotFoundError(NotFoundError):
    def __init__(self, note_id: str):
        super().__init__("Note", note_id)


class SummaryNotFoundError(NotFoundError):
    def __init__(self, summary_id: str):
        super().__init__("Summary", summary_id)


class ArticleNotFoundError(NotFoundError):
    def __init__(self, article_id: str):
        super().__init__("Article", article_id)


class FeedNotFoundError(NotFoundError):
    def __init__(self, feed_id: str):
        super().__init__("Feed", feed_id)


class TaskNotFoundError(NotFoundError):
    def __init__(self, task_id: str):
        super().__init__("Task", task_id)


# =============================================================================
# Authentication / Authorization
# =============================================================================

class AuthenticationError(NoteFlowException):
    """Raised when credentials or tokens are rejected."""

    def __init__(
        self,
        message: str = "Authentication failed",
        code: str = "AUTHENTICATION_FAILED",
        suggestion: str | None = None,
    ):
        super().__init__(
            message=message,
            code=code,
            status_code=401,
            suggestion=suggestion,
        )


class InvalidCredentialsError(AuthenticationError):
    """Raised for a wrong email/password pair. Never says which one was wrong."""

    def __init__(self):
        super().__init__(
            message="Invalid credentials",
            code="INVALID_CREDENTIALS",
        )


class InvalidTokenError(NoteFlowException):
    """Raised when a verification, reset or refresh token is invalid or expired."""

    def __init__(self, message: str = "Invalid token", status_code: int = 400):
        super().__init__(
            message=message,
            code="INVALID_TOKEN",
            status_code=status_code,
            suggestion="Request a new link and try again",
        )


class AccountDeletedError(AuthenticationError):
    def __init__(self):
        super().__init__(
            message="This account has been deleted",
            code="ACCOUNT_DELETED",
            suggestion="Contact support if you believe this is a mistake",
        )


class AccountLockedError(NoteFlowException):
    """Raised after too many failed login attempts."""

    def __init__(self, retry_after_seconds: int):
        minutes = max(1, retry_after_seconds // 60)
        super().__init__(
            message=f"Account temporarily locked. Try again in {minutes} minutes.",
            code="ACCOUNT_LOCKED",
            status_code=423,
            suggestion="Wait for the lock to expire or reset your password",
            details={"retry_after": retry_after_seconds},
        )


class ForbiddenError(NoteFlowException):
    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(
            message=message,
            code="FORBIDDEN",
            status_code=403,
        )


# =============================================================================
# Registration / Profile
# =============================================================================

class EmailAlreadyInUseError(NoteFlowException):
    def __init__(self):
        super().__init__(
            message="Email already in use",
            code="EMAIL_IN_USE",
            status_code=409,
            suggestion="Log in instead, or reset your password",
        )


class DisposableEmailError(NoteFlowException):
    def __init__(self):
        super().__init__(
            message="Disposable email addresses are not allowed",
            code="DISPOSABLE_EMAIL",
            status_code=400,
            suggestion="Use a permanent email address",
        )


class EmailAlreadyVerifiedError(NoteFlowException):
    def __init__(self):
        super().__init__(
            message="Email already verified",
            code="EMAIL_ALREADY_VERIFIED",
            status_code=400,
        )


# =============================================================================
# Articles
# =============================================================================

class ArticleAlreadySavedError(NoteFlowException):
    def __init__(self, article_id: str):
        super().__init__(
            message="Article already saved",
            code="ARTICLE_ALREADY_SAVED",
            status_code=409,
            details={"article_id": article_id},
        )


class ArticleNotSavedError(NoteFlowException):
    def __init__(self, article_id: str):
        super().__init__(
            message="Article not in saved list",
            code="ARTICLE_NOT_SAVED",
            status_code=404,
            details={"article_id": article_id},
        )


# =============================================================================
# Plans / Rate Limits
# =============================================================================

class PlanLimitError(NoteFlowException):
    """Raised when a user hits the quota of their subscription plan."""

    def __init__(self, resource: str, plan: str, limit: int, label: str):
        super().__init__(
            message=(
                f"{resource.capitalize()} limit reached. "
                f"Your {plan} plan allows {limit} {label}."
            ),
            code="PLAN_LIMIT_REACHED",
            status_code=403,
            suggestion="Upgrade your plan to raise this limit",
            details={"resource": resource, "plan": plan, "limit": limit},
        )


class RateLimitExceededError(NoteFlowException):
    def __init__(self, message: str = "Too many requests", retry_after: int | None = None):
        super().__init__(
            message=message,
            code="RATE_LIMIT_EXCEEDED",
            status_code=429,
            suggestion="Slow down and retry later",
            details={"retry_after": retry_after} if retry_after else None,
        )


# =============================================================================
# Billing
# =============================================================================

class BillingNotConfiguredError(NoteFlowException):
    def __init__(self):
        super().__init__(
            message="Billing is not configured",
            code="BILLING_NOT_CONFIGURED",
            status_code=503,
            suggestion="Set STRIPE_SECRET_KEY and the STRIPE_PRICE_* variables",
        )


class BillingError(NoteFlowException):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(
            message=message,
            code="BILLING_ERROR",
            status_code=status_code,
        )


# =============================================================================
# Exception Handlers
# =============================================================================

async def noteflow_exception_handler(
    request: Request,
    exc: NoteFlowException
) -> JSONResponse:
    """
    Convert NoteFlowException to JSON response.

    Returns structured error with:
    - detail: Human-readable message
    - code: Machine-readable error code
    - suggestion: How to fix (if available)
    - details: Additional context
    """
    headers = None
    retry_after = exc.details.get("retry_after") if exc.details else None
    if retry_after:
        headers = {"Retry-After": str(retry_after)}

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers=headers,
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError
) -> JSONResponse:
    """
    Handle request validation errors.

    Flattens pydantic's error list into field/message pairs.
    """
    errors = [
        {
            "field": ".".join(str(part) for part in error["loc"] if part != "body"),
            "message": error["msg"],
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content={
            "detail": "Validation error",
            "code": "VALIDATION_ERROR",
            "errors": errors,
        }
    )
