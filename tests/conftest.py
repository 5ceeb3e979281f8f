# =============================================================================
# tests/conftest.py - Pytest Configuration
# =============================================================================
# This module provides pytest fixtures and configuration for all tests.
#
# Key features:
# - Sets up mock environment variables before any imports
# - Disables Redis so every cache call degrades to the database path
# - Provides a fake Supabase query builder and a FastAPI TestClient
# =============================================================================

import os

# =============================================================================
# Set up test environment BEFORE any imports
# =============================================================================
# This must happen before importing app.config which loads settings immediately

os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-service-key")
os.environ.setdefault("OPENAI_API_KEY", "test-openai-key")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-that-is-at-least-32-characters")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret-that-is-at-least-32-chars")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("REDIS_URL", "redis://localhost:6399/15")

from unittest.mock import MagicMock, patch
from uuid import UUID

import pytest

USER_ID = "11111111-1111-1111-1111-111111111111"
OTHER_USER_ID = "22222222-2222-2222-2222-222222222222"

_CHAIN_METHODS = (
    "table", "select", "insert", "update", "upsert", "delete",
    "eq", "neq", "lt", "gte", "in_", "is_", "or_", "overlaps",
    "order", "range", "limit", "rpc",
)


class FakeSupabase:
    """
    Stand-in for the Supabase client.

    Every query-builder call returns the same builder, so any chain works.
    Queue responses with `respond()`; each execute() pops the next one.
    """

    def __init__(self):
        self.builder = MagicMock(name="query")
        for name in _CHAIN_METHODS:
            getattr(self.builder, name).return_value = self.builder
        self.builder.not_ = self.builder
        self._responses: list[MagicMock] = []
        self.builder.execute.side_effect = self._execute

    def respond(self, data=None, count=None) -> "FakeSupabase":
        self._responses.append(MagicMock(data=data if data is not None else [], count=count))
        return self

    def _execute(self):
        if self._responses:
            return self._responses.pop(0)
        return MagicMock(data=[], count=0)

    def table(self, name):
        return self.builder.table(name)

    def rpc(self, name, params=None):
        return self.builder.rpc(name, params)

    def calls(self, method: str) -> list:
        """Arguments of every call to a builder method."""
        return [c.args for c in getattr(self.builder, method).call_args_list]


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def no_redis():
    """Run every test without Redis unless it installs its own client."""
    from lib import rate_limiter

    rate_limiter._memory_store.clear()
    with patch("lib.cache.get_redis", return_value=None), \
         patch("lib.rate_limiter.get_redis", return_value=None):
        yield
    rate_limiter._memory_store.clear()


@pytest.fixture
def fake_db():
    """Patch SupabaseClient.get_client with a FakeSupabase."""
    db = FakeSupabase()
    with patch("lib.supabase_client.SupabaseClient.get_client", return_value=db):
        yield db


@pytest.fixture
def fast_bcrypt(monkeypatch):
    """Cheapest bcrypt cost so password tests stay fast."""
    monkeypatch.setattr("lib.security.BCRYPT_ROUNDS", 4)


@pytest.fixture
def user_row():
    return {
        "id": USER_ID,
        "email": "jane@example.com",
        "name": "Jane",
        "role": "USER",
        "email_verified": True,
        "language": "en",
        "plan_type": "FREE",
        "subscription_status": "NONE",
        "current_period_end": None,
        "created_at": "2024-01-15T10:30:00+00:00",
        "deleted_at": None,
    }


@pytest.fixture
def auth_user():
    from app.auth.models import AuthUser

    return AuthUser(id=UUID(USER_ID), email="jane@example.com")


@pytest.fixture
def admin_user():
    from app.auth.models import AuthUser
    from core.models.user import Role

    return AuthUser(id=UUID(USER_ID), email="admin@example.com", role=Role.ADMIN)


@pytest.fixture
def client(auth_user):
    """TestClient authenticated as `auth_user`."""
    from fastapi.testclient import TestClient

    from app.auth.dependencies import get_current_user
    from app.main import app

    app.dependency_overrides[get_current_user] = lambda: auth_user
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def anon_client():
    """TestClient without authentication overrides."""
    from fastapi.testclient import TestClient

    from app.main import app

    app.dependency_overrides.clear()
    with TestClient(app) as test_client:
        yield test_client
