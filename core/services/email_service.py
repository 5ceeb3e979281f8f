# =============================================================================
# core/services/email_service.py - Transactional Email
# =============================================================================
# Sends verification and password-reset emails through the Resend HTTP API.
#
# In development (or whenever RESEND_API_KEY is missing outside production)
# the link is logged instead of sent, so local sign-ups work without an
# email provider.
# =============================================================================

import logging

import httpx

from app.config import settings
from lib.rate_limiter import check_worker_rate_limit
from lib.security import mask_email

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
EMAIL_TIMEOUT_SECONDS = 10.0


class EmailDeliveryError(Exception):
    """Raised when the email provider rejects or fails a send."""


class EmailService:
    """Builds and sends transactional emails."""

    @staticmethod
    def send_verification_email(email: str, token: str) -> None:
        link = f"{settings.FRONTEND_URL}/verify-email?token={token}"
        EmailService._send(
            to=email,
            subject="Verify your NoteFlow account",
            html=(
                "<p>Welcome to NoteFlow!</p>"
                f'<p>Please confirm your email address: <a href="{link}">{link}</a></p>'
                "<p>This link expires in 24 hours.</p>"
            ),
            link=link,
        )

    @staticmethod
    def send_password_reset_email(email: str, token: str) -> None:
        link = f"{settings.FRONTEND_URL}/reset-password?token={token}"
        EmailService._send(
            to=email,
            subject="Reset your NoteFlow password",
            html=(
                "<p>Someone asked to reset the password of your NoteFlow account.</p>"
                f'<p><a href="{link}">Choose a new password</a></p>'
                "<p>This link expires in 1 hour. If you didn't ask for this, ignore this email.</p>"
            ),
            link=link,
        )

    @staticmethod
    def _send(to: str, subject: str, html: str, link: str) -> None:
        """
        Deliver one email.

        Raises:
            EmailDeliveryError: If the provider is unreachable, rejects the
                message, or is not configured in production
        """
        masked = mask_email(to)

        if settings.is_development or not settings.RESEND_API_KEY:
            if settings.is_production:
                raise EmailDeliveryError("RESEND_API_KEY is not configured")
            if not settings.is_development:
                logger.warning("RESEND_API_KEY not set, email not sent")
            logger.info(f"[email] {subject} -> {masked}: {link}")
            return

        if not check_worker_rate_limit("email"):
            raise EmailDeliveryError("Email rate limit reached")

        try:
            response = httpx.post(
                RESEND_API_URL,
                headers={"Authorization": f"Bearer {settings.RESEND_API_KEY}"},
                json={
                    "from": settings.EMAIL_FROM,
                    "to": [to],
                    "subject": subject,
                    "html": html,
                },
                timeout=EMAIL_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to send '{subject}' to {masked}: {e}")
            raise EmailDeliveryError(str(e)) from e

        logger.info(f"Sent '{subject}' to {masked}")
