# =============================================================================
# tests/ - Test Suite
# =============================================================================
# This package contains all tests for the NoteFlow API:
# - test_pagination.py, test_security.py: Pure helpers
# - test_cache.py, test_rate_limiter.py: Redis-backed utilities (mocked Redis)
# - test_*_service.py / test_notes.py / test_summary.py / test_billing.py:
#   Services against a fake Supabase client
# - test_tasks.py: Celery tasks called synchronously
# - test_api.py: Routes through FastAPI's TestClient
#
# Run tests with: pytest
# =============================================================================
