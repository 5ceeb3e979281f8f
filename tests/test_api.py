# =============================================================================
# tests/test_api.py - API Endpoint Tests
# =============================================================================
# This module contains tests for:
# - App wiring: root, health, middleware headers, error format
# - Authentication and role guards
# - Routes delegating to services (services are mocked)
# =============================================================================

import asyncio
import time
from unittest.mock import MagicMock, patch

import httpx
import pytest
from fastapi.security import HTTPAuthorizationCredentials
from fastapi.testclient import TestClient

from app.auth.dependencies import get_current_user, get_current_user_optional, require_plan
from app.exceptions import ForbiddenError, NoteNotFoundError, PlanLimitError
from app.main import app
from core.models.plan import PlanType
from core.models.user import Role
from core.services.admin_service import AdminService
from core.services.auth_service import AuthService
from core.services.billing_service import BillingService
from core.services.note_service import NoteService
from core.services.summary_service import SummaryService
from lib.cache import CacheService
from lib.pagination import build_pagination
from lib.task_owner import task_owner

from .conftest import OTHER_USER_ID, USER_ID

NOTE_ID = "33333333-3333-3333-3333-333333333333"


@pytest.fixture
def admin_client(admin_user):
    app.dependency_overrides[get_current_user] = lambda: admin_user
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def note_row():
    return {
        "id": NOTE_ID,
        "user_id": USER_ID,
        "title": "Meeting",
        "content": "Agenda",
        "tags": ["work"],
        "pinned": False,
        "created_at": "2024-03-01T09:00:00+00:00",
        "updated_at": "2024-03-01T09:00:00+00:00",
    }


# =============================================================================
# App Wiring
# =============================================================================

class TestAppBasics:
    """Test root, health and middleware."""

    def test_root(self, anon_client):
        response = anon_client.get("/")

        assert response.status_code == 200
        assert response.json()["name"] == "NoteFlow API"

    def test_liveness(self, anon_client):
        response = anon_client.get("/api/v1/health/live")

        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    def test_security_headers(self, anon_client):
        response = anon_client.get("/")

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert "Strict-Transport-Security" not in response.headers

    def test_request_id_echoed(self, anon_client):
        response = anon_client.get("/", headers={"X-Request-ID": "req-42"})

        assert response.headers["X-Request-ID"] == "req-42"

    def test_request_id_generated(self, anon_client):
        assert anon_client.get("/").headers["X-Request-ID"]


class TestAuthentication:
    """Test bearer token handling."""

    def test_missing_token(self, anon_client):
        response = anon_client.get("/api/v1/notes")

        assert response.status_code in (401, 403)

    def test_invalid_token(self, anon_client):
        response = anon_client.get("/api/v1/notes", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401

    def test_valid_token(self, anon_client):
        token = AuthService.create_access_token(USER_ID, "jane@example.com", "USER")

        with patch.object(NoteService, "list_notes", return_value={
            "notes": [],
            "pagination": {"page": 1, "page_size": 20, "total": 0, "total_pages": 0, "has_next": False, "has_previous": False},
        }) as list_notes:
            response = anon_client.get("/api/v1/notes", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200
        assert list_notes.call_args.args[0] == USER_ID


# =============================================================================
# Auth Routes
# =============================================================================

class TestAuthRoutes:
    """Test registration and login endpoints."""

    def test_register(self, anon_client, user_row):
        result = {
            "user": user_row,
            "tokens": {"access_token": "access", "refresh_token": "refresh", "expires_in": 900},
        }
        with patch.object(AuthService, "register", return_value=result) as register:
            response = anon_client.post("/api/v1/auth/register", json={
                "email": "jane@example.com",
                "password": "Str0ngPassword",
                "name": "Jane",
            })

        assert response.status_code == 201
        assert response.json()["tokens"]["token_type"] == "bearer"
        assert "password" not in response.json()["user"]
        register.assert_called_once_with("jane@example.com", "Str0ngPassword", "Jane")

    def test_register_invalid_email(self, anon_client):
        response = anon_client.post("/api/v1/auth/register", json={
            "email": "not-an-email",
            "password": "Str0ngPassword",
        })

        assert response.status_code == 422
        body = response.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert body["errors"][0]["field"] == "email"

    def test_login_passes_client_ip(self, anon_client, user_row):
        result = {
            "user": user_row,
            "tokens": {"access_token": "access", "refresh_token": "refresh", "expires_in": 900},
        }
        with patch.object(AuthService, "login", return_value=result) as login:
            response = anon_client.post("/api/v1/auth/login", json={
                "email": "jane@example.com",
                "password": "Str0ngPassword",
            })

        assert response.status_code == 200
        assert login.call_args.args[:2] == ("jane@example.com", "Str0ngPassword")


# =============================================================================
# Notes
# =============================================================================

class TestNoteRoutes:
    """Test note endpoints."""

    def test_create(self, client, note_row):
        with patch.object(NoteService, "create_note", return_value=note_row) as create:
            response = client.post("/api/v1/notes", json={"title": "Meeting", "content": "Agenda", "tags": ["Work"]})

        assert response.status_code == 201
        assert response.json()["id"] == NOTE_ID
        create.assert_called_once_with(USER_ID, "Meeting", "Agenda", ["work"])

    def test_create_empty_title(self, client):
        response = client.post("/api/v1/notes", json={"title": ""})

        assert response.status_code == 422

    def test_plan_limit(self, client):
        error = PlanLimitError("notes", "FREE", 50, "notes")
        with patch.object(NoteService, "create_note", side_effect=error):
            response = client.post("/api/v1/notes", json={"title": "One more"})

        assert response.status_code == 403
        assert response.json()["details"]["limit"] == 50

    def test_not_found(self, client):
        with patch.object(NoteService, "get_note", side_effect=NoteNotFoundError(NOTE_ID)):
            response = client.get(f"/api/v1/notes/{NOTE_ID}")

        assert response.status_code == 404
        assert response.json()["code"] == "NOTE_NOT_FOUND"

    def test_bad_note_id(self, client):
        assert client.get("/api/v1/notes/not-a-uuid").status_code == 422

    def test_delete(self, client):
        with patch.object(NoteService, "delete_note") as delete:
            response = client.delete(f"/api/v1/notes/{NOTE_ID}")

        assert response.status_code == 204
        delete.assert_called_once_with(NOTE_ID, USER_ID)

    def test_unexpected_error(self, client):
        with patch.object(NoteService, "get_note", side_effect=RuntimeError("boom")):
            test_client = TestClient(app, raise_server_exceptions=False)
            response = test_client.get(f"/api/v1/notes/{NOTE_ID}")

        assert response.status_code == 500
        assert response.json()["code"] == "INTERNAL_ERROR"


class TestBlockingHandlers:
    """Test that blocking service calls don't stall the event loop."""

    def test_slow_requests_overlap(self, client, note_row):
        def slow_get(note_id, user_id):
            time.sleep(0.3)
            return note_row

        async def fire(count):
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
                return await asyncio.gather(
                    *(http.get(f"/api/v1/notes/{NOTE_ID}") for _ in range(count))
                )

        with patch.object(NoteService, "get_note", side_effect=slow_get):
            started = time.monotonic()
            responses = asyncio.run(fire(5))
            elapsed = time.monotonic() - started

        assert [r.status_code for r in responses] == [200] * 5
        # Serialized on the loop this would take 1.5s
        assert elapsed < 1.0


# =============================================================================
# Summaries
# =============================================================================

class TestSummaryRoutes:
    """Test summary endpoints."""

    def test_create_is_accepted(self, client):
        with patch.object(SummaryService, "create_summary", return_value="task-1"):
            response = client.post("/api/v1/summaries", json={
                "text": "https://example.com/article",
                "style": "TOP3",
                "language": "en",
            })

        assert response.status_code == 202
        assert response.json()["task_id"] == "task-1"

    def test_text_too_short(self, client):
        assert client.post("/api/v1/summaries", json={"text": "short"}).status_code == 422

    def test_public_summary(self, anon_client):
        summary = {
            "title": "Shared",
            "summary_text": "Summary",
            "style": "SHORT",
            "language": "en",
            "created_at": "2024-03-01T09:00:00+00:00",
        }
        with patch.object(SummaryService, "get_public_summary", return_value=summary):
            response = anon_client.get("/api/v1/public/summaries/abcdefghijklmnop")

        assert response.status_code == 200
        assert response.json()["title"] == "Shared"

    def test_public_token_too_short(self, anon_client):
        assert anon_client.get("/api/v1/public/summaries/short").status_code == 422


# =============================================================================
# Admin
# =============================================================================

class TestAdminRoutes:
    """Test the admin role guard and admin endpoints."""

    def test_regular_user_forbidden(self, client):
        response = client.get("/api/v1/admin/cache/stats")

        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"

    def test_regular_user_cannot_list_users(self, client):
        with patch.object(AdminService, "list_users") as list_users:
            assert client.get("/api/v1/admin/users").status_code == 403
        list_users.assert_not_called()

    def test_admin_allowed(self, admin_client):
        with patch.object(CacheService, "get_stats", return_value={"available": False}):
            response = admin_client.get("/api/v1/admin/cache/stats")

        assert response.status_code == 200
        assert response.json() == {"available": False}

    def test_trigger_rss_fetch(self, admin_client):
        with patch("workers.tasks.fetch_rss_feeds") as task:
            task.apply_async.side_effect = lambda **kwargs: MagicMock(id=kwargs["task_id"])
            response = admin_client.post("/api/v1/admin/rss/fetch")

        assert response.status_code == 202
        assert task_owner(response.json()["task_id"]) == USER_ID

    def test_trigger_token_cleanup(self, admin_client):
        with patch("workers.tasks.cleanup_expired_tokens") as task:
            task.apply_async.side_effect = lambda **kwargs: MagicMock(id=kwargs["task_id"])
            response = admin_client.post("/api/v1/admin/cleanup-tokens")

        assert response.status_code == 202
        assert response.json()["message"] == "Token cleanup queued"
        task.apply_async.assert_called_once()

    def test_list_users(self, admin_client, user_row):
        page = {"users": [user_row], "pagination": build_pagination(1, 20, 1).model_dump()}
        with patch.object(AdminService, "list_users", return_value=page) as list_users:
            response = admin_client.get("/api/v1/admin/users?search=jane&page_size=20")

        assert response.status_code == 200
        assert response.json()["users"][0]["email"] == "jane@example.com"
        assert "password" not in response.json()["users"][0]
        list_users.assert_called_once_with("jane", False, 1, 20)

    def test_change_role(self, admin_client, user_row):
        updated = {**user_row, "id": OTHER_USER_ID, "role": "MODERATOR"}
        with patch.object(AdminService, "update_role", return_value=updated) as update:
            response = admin_client.patch(f"/api/v1/admin/users/{OTHER_USER_ID}/role", json={"role": "MODERATOR"})

        assert response.status_code == 200
        assert response.json()["role"] == "MODERATOR"
        update.assert_called_once_with(USER_ID, OTHER_USER_ID, Role.MODERATOR)

    def test_invalid_role(self, admin_client):
        response = admin_client.patch(f"/api/v1/admin/users/{OTHER_USER_ID}/role", json={"role": "ROOT"})

        assert response.status_code == 422

    def test_delete_self_forbidden(self, admin_client):
        with patch("lib.supabase_client.SupabaseClient.update_user") as update:
            response = admin_client.delete(f"/api/v1/admin/users/{USER_ID}")

        assert response.status_code == 403
        update.assert_not_called()

    def test_delete_user(self, admin_client):
        with patch.object(AdminService, "delete_user") as delete:
            response = admin_client.delete(f"/api/v1/admin/users/{OTHER_USER_ID}")

        assert response.status_code == 204
        delete.assert_called_once_with(USER_ID, OTHER_USER_ID)

    def test_stats(self, admin_client):
        stats = {
            "total_users": 3, "verified_users": 2, "unverified_users": 1, "deleted_users": 0,
            "by_role": {"USER": 2, "ADMIN": 1, "MODERATOR": 0},
            "by_plan": {"FREE": 3, "STARTER": 0, "PRO": 0, "BUSINESS": 0},
        }
        with patch.object(AdminService, "get_stats", return_value=stats):
            response = admin_client.get("/api/v1/admin/stats")

        assert response.json() == stats

    def test_subscriptions(self, admin_client):
        page = {"subscriptions": [], "pagination": build_pagination(1, 20, 0).model_dump()}
        with patch.object(AdminService, "list_subscriptions", return_value=page) as list_subs:
            response = admin_client.get("/api/v1/admin/subscriptions?status=active")

        assert response.status_code == 200
        list_subs.assert_called_once_with("active", 1, 20)


# =============================================================================
# Billing
# =============================================================================

class TestBillingWebhook:
    """Test the Stripe webhook endpoint."""

    def test_verified_event_queued(self, anon_client):
        event = {"id": "evt_1", "type": "invoice.payment_failed", "data": {"object": {}}}
        with patch.object(BillingService, "construct_event", return_value=event) as construct, \
             patch("workers.tasks.process_stripe_webhook") as task:
            response = anon_client.post(
                "/api/v1/billing/webhook",
                content=b'{"id": "evt_1"}',
                headers={"Stripe-Signature": "t=1,v1=abc"},
            )

        assert response.status_code == 200
        assert response.json() == {"received": True}
        construct.assert_called_once_with(b'{"id": "evt_1"}', "t=1,v1=abc")
        task.delay.assert_called_once_with(event)


# =============================================================================
# Task Status
# =============================================================================

class TestTaskStatus:
    """Test polling background jobs."""

    OWN_TASK = f"{USER_ID}.0f8c1f1e-2b7a-4c55-9d1e-3a6f0b2c4d5e"
    OTHER_TASK = f"{OTHER_USER_ID}.0f8c1f1e-2b7a-4c55-9d1e-3a6f0b2c4d5e"

    def _status(self, client, state, payload, task_id=OWN_TASK):
        async_result = MagicMock(status=state, result=payload)
        with patch("workers.celery_app.celery_app.AsyncResult", return_value=async_result):
            return client.get(f"/api/v1/tasks/{task_id}").json()

    def test_progress(self, client):
        body = self._status(client, "PROGRESS", {"percent": 50, "message": "Generating summary..."})

        assert body["progress"] == 50
        assert body["message"] == "Generating summary..."

    def test_success(self, client):
        body = self._status(client, "SUCCESS", {"summary_id": "s1"})

        assert body["result"] == {"summary_id": "s1"}
        assert body["progress"] == 100

    def test_failure(self, client):
        body = self._status(client, "FAILURE", RuntimeError("quota"))

        assert body["error"] == "quota"

    def test_other_users_task_hidden(self, client):
        with patch("workers.celery_app.celery_app.AsyncResult") as async_result:
            response = client.get(f"/api/v1/tasks/{self.OTHER_TASK}")

        assert response.status_code == 404
        assert response.json()["code"] == "TASK_NOT_FOUND"
        async_result.assert_not_called()

    def test_unowned_task_hidden_from_users(self, client):
        """Test that beat and webhook jobs (plain Celery ids) are admin-only."""
        with patch("workers.celery_app.celery_app.AsyncResult") as async_result:
            response = client.get("/api/v1/tasks/9a1d6a8e-0000-4000-8000-000000000000")

        assert response.status_code == 404
        async_result.assert_not_called()

    def test_admin_reads_any_task(self, admin_client):
        body = self._status(admin_client, "SUCCESS", {"total_deleted": 4}, task_id="9a1d6a8e-0000-4000-8000-000000000000")

        assert body["result"] == {"total_deleted": 4}

    def test_summary_status(self, client):
        async_result = MagicMock(status="SUCCESS", result={"summary_id": "s1"})
        with patch("workers.celery_app.celery_app.AsyncResult", return_value=async_result):
            body = client.get(f"/api/v1/summaries/status/{self.OWN_TASK}").json()

        assert body == {"task_id": self.OWN_TASK, "status": "SUCCESS", "summary_id": "s1", "error": None}

    def test_summary_status_of_other_user(self, client):
        with patch("workers.celery_app.celery_app.AsyncResult") as async_result:
            response = client.get(f"/api/v1/summaries/status/{self.OTHER_TASK}")

        assert response.status_code == 404
        async_result.assert_not_called()


# =============================================================================
# Dependencies
# =============================================================================

class TestAuthDependencies:
    """Test the optional user and plan guards."""

    def test_optional_user_without_credentials(self):
        assert asyncio.run(get_current_user_optional(None)) is None

    def test_optional_user_with_bad_token(self):
        credentials = HTTPAuthorizationCredentials(scheme="Bearer", credentials="garbage")

        assert asyncio.run(get_current_user_optional(credentials)) is None

    def test_optional_user_with_valid_token(self):
        token = AuthService.create_access_token(USER_ID, "jane@example.com", "USER")
        credentials = HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)

        user = asyncio.run(get_current_user_optional(credentials))

        assert str(user.id) == USER_ID

    def test_plan_guard_denies(self, auth_user):
        guard = require_plan(PlanType.PRO)

        with patch.object(BillingService, "has_feature_access", return_value=False):
            with pytest.raises(ForbiddenError):
                asyncio.run(guard(auth_user))

    def test_plan_guard_allows(self, auth_user):
        guard = require_plan(PlanType.PRO)

        with patch.object(BillingService, "has_feature_access", return_value=True) as access:
            assert asyncio.run(guard(auth_user)) is auth_user
        access.assert_called_once_with(USER_ID, PlanType.PRO)
