# =============================================================================
# core/services/__init__.py - Service Layer Exports
# =============================================================================

from .plan_limiter import PlanLimiter
from .email_service import EmailService, EmailDeliveryError
from .verification_service import VerificationService
from .auth_service import AuthService
from .password_reset_service import PasswordResetService
from .rss_service import RSSService, FeedFetchError
from .rss_cleanup_service import RSSCleanupService
from .article_service import ArticleService
from .note_service import NoteService
from .ai_service import AIService, AIServiceError
from .summary_service import SummaryService
from .billing_service import BillingService
from .admin_service import AdminService
from .token_cleanup_service import TokenCleanupService

__all__ = [
    "PlanLimiter",
    "EmailService",
    "EmailDeliveryError",
    "VerificationService",
    "AuthService",
    "PasswordResetService",
    "RSSService",
    "FeedFetchError",
    "RSSCleanupService",
    "ArticleService",
    "NoteService",
    "AIService",
    "AIServiceError",
    "SummaryService",
    "BillingService",
    "AdminService",
    "TokenCleanupService",
]
