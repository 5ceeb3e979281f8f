# =============================================================================
# core/models/ - Pydantic Data Models
# =============================================================================
# This package contains Pydantic schemas for data validation:
# - plan.py: Plan tiers, subscription status and quota limits
# - user.py: Auth requests/responses and user profile
# - article.py: RSS articles, saved articles and feeds
# - note.py: Note CRUD schemas
# - summary.py: AI summary schemas and styles
# - billing.py: Stripe checkout/portal/subscription schemas
# - admin.py: User moderation, subscription list and stats schemas
#
# These models define the "contract" between API and clients.
# =============================================================================

# -----------------------------------------------------------------------------
# Plans
# -----------------------------------------------------------------------------
from .plan import (
    PAID_PLANS,
    PLAN_HIERARCHY,
    PLAN_LIMITS,
    PlanResource,
    PlanType,
    Quota,
    SubscriptionStatus,
    UsageResponse,
    parse_plan,
    plan_includes,
)

# -----------------------------------------------------------------------------
# Users / Auth
# -----------------------------------------------------------------------------
from .user import (
    AuthResponse,
    ForgotPasswordRequest,
    Language,
    LoginRequest,
    LogoutRequest,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    ResendVerificationRequest,
    ResetPasswordRequest,
    Role,
    TokenPair,
    UpdateProfileRequest,
    UserResponse,
)

# -----------------------------------------------------------------------------
# Articles / Feeds
# -----------------------------------------------------------------------------
from .article import (
    ArticleList,
    ArticleResponse,
    CleanupResult,
    FeedCreate,
    FeedFetchResult,
    FeedResponse,
    FeedUpdate,
    ParsedArticle,
    SavedArticleList,
    SavedArticleResponse,
)

# -----------------------------------------------------------------------------
# Notes
# -----------------------------------------------------------------------------
from .note import NoteCreate, NoteList, NoteResponse, NoteUpdate

# -----------------------------------------------------------------------------
# Summaries
# -----------------------------------------------------------------------------
from .summary import (
    PublicSummaryResponse,
    ShareResponse,
    SummaryCreate,
    SummaryList,
    SummaryPagination,
    SummaryResponse,
    SummaryStyle,
    SummaryTaskResponse,
)

# -----------------------------------------------------------------------------
# Billing
# -----------------------------------------------------------------------------
from .billing import (
    CheckoutRequest,
    CheckoutResponse,
    PortalResponse,
    SubscriptionResponse,
)

# -----------------------------------------------------------------------------
# Admin
# -----------------------------------------------------------------------------
from .admin import (
    AdminStats,
    AdminSubscriptionList,
    AdminSubscriptionResponse,
    AdminUserList,
    AdminUserResponse,
    RoleUpdate,
)
