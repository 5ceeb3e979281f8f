# =============================================================================
# app/routers/ - API Route Definitions
# =============================================================================
# This package contains FastAPI routers organized by feature:
# - health.py: Health check endpoints
# - articles.py: RSS articles and saved articles
# - notes.py: Note CRUD
# - summaries.py: AI summaries and share links
# - public.py: Shared summaries (no auth)
# - billing.py: Stripe checkout, portal, usage and webhook
# - admin.py: Feed registry and RSS jobs (ADMIN role)
# - tasks.py: Background task status endpoints
#
# Authentication routes live in app/auth/routes.py.
# Each router is mounted in main.py with a URL prefix.
# =============================================================================

from . import health
from . import articles
from . import notes
from . import summaries
from . import public
from . import billing
from . import admin
from . import tasks

__all__ = [
    "health",
    "articles",
    "notes",
    "summaries",
    "public",
    "billing",
    "admin",
    "tasks",
]
