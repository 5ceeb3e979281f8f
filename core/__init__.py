# =============================================================================
# core/ - Business Logic Package
# =============================================================================
# This package contains the business logic:
# - models/: Pydantic schemas for data validation
# - services/: Auth, billing, RSS, notes and summary services
#
# Code in this package should NOT import from FastAPI routers or Celery
# tasks at module level. Tasks are enqueued with local imports so the
# services stay importable from the workers.
# =============================================================================
