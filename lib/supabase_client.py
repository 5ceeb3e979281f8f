# =============================================================================
# lib/supabase_client.py - Supabase Client Wrapper
# =============================================================================
# This module provides the shared Supabase client and a few typed lookups
# used by several services (users by id/email, single rows by id).
#
# Services build their own queries with the PostgREST query builder:
#
#   client = SupabaseClient.get_client()
#   response = (
#       client.table("notes")
#       .select("*", count="exact")
#       .eq("user_id", user_id)
#       .is_("deleted_at", "null")
#       .execute()
#   )
#
# Usage:
#   from lib.supabase_client import SupabaseClient
#   user = SupabaseClient.fetch_user(user_id)
# =============================================================================

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from supabase import create_client, Client

from app.config import settings
from lib.utils import normalize_uuid

logger = logging.getLogger(__name__)

# Columns safe to return to clients (never the password hash)
USER_PUBLIC_COLUMNS = (
    "id, email, name, role, email_verified, language, plan_type, "
    "subscription_status, current_period_end, created_at, deleted_at"
)


class SupabaseClientError(Exception):
    """
    Error during Supabase operations.

    Carries a code and a suggestion so callers can log something actionable.
    """

    def __init__(
        self,
        message: str,
        code: str = "SUPABASE_ERROR",
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.details = details or {}

    def __str__(self) -> str:
        result = f"[{self.code}] {self.message}"
        if self.suggestion:
            result += f" Suggestion: {self.suggestion}"
        return result


def is_no_rows_error(error: Exception) -> bool:
    """PostgREST answers .single() with PGRST116 when no row matched."""
    return "PGRST116" in str(error)


class SupabaseClient:
    """
    Singleton access to the Supabase client.

    One client instance is shared across the application. All methods are
    class methods for easy access without instantiation.
    """

    _instance: Client | None = None

    @classmethod
    def get_client(cls) -> Client:
        """
        Get or create the singleton Supabase client.

        Uses service_role key which bypasses Row Level Security (RLS).
        Ownership checks are therefore done in the services.

        Raises:
            SupabaseClientError: If client creation fails
        """
        if cls._instance is None:
            try:
                cls._instance = create_client(
                    settings.SUPABASE_URL,
                    settings.SUPABASE_SERVICE_KEY
                )
                logger.info("Supabase client initialized successfully")
            except Exception as e:
                raise SupabaseClientError(
                    message=f"Failed to create Supabase client: {e}",
                    code="CLIENT_INIT_FAILED",
                    suggestion="Check SUPABASE_URL and SUPABASE_SERVICE_KEY in your .env file"
                )
        return cls._instance

    # -------------------------------------------------------------------------
    # Generic Lookups
    # -------------------------------------------------------------------------

    @classmethod
    def fetch_by_id(
        cls,
        table: str,
        row_id: str | UUID,
        columns: str = "*",
    ) -> dict[str, Any] | None:
        """
        Fetch a single row by primary key.

        Returns:
            Row dict, or None if not found

        Raises:
            SupabaseClientError: If the query fails
        """
        client = cls.get_client()
        row_id_str = normalize_uuid(row_id)

        try:
            response = (
                client.table(table)
                .select(columns)
                .eq("id", row_id_str)
                .limit(1)
                .execute()
            )
            return response.data[0] if response.data else None

        except Exception as e:
            if is_no_rows_error(e):
                return None
            raise SupabaseClientError(
                message=f"Failed to fetch {table} row: {e}",
                code="FETCH_FAILED",
                details={"table": table, "id": row_id_str}
            )

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    @classmethod
    def fetch_user(cls, user_id: str | UUID, include_password: bool = False) -> dict[str, Any] | None:
        """
        Fetch a user by ID.

        The password hash is only selected when explicitly requested.
        """
        columns = "*" if include_password else USER_PUBLIC_COLUMNS
        return cls.fetch_by_id("users", user_id, columns=columns)

    @classmethod
    def fetch_user_by_email(cls, email: str, include_password: bool = False) -> dict[str, Any] | None:
        """Fetch a user by email (case-insensitive, emails are stored lowercased)."""
        client = cls.get_client()
        columns = "*" if include_password else USER_PUBLIC_COLUMNS

        try:
            response = (
                client.table("users")
                .select(columns)
                .eq("email", email.strip().lower())
                .limit(1)
                .execute()
            )
            return response.data[0] if response.data else None

        except Exception as e:
            raise SupabaseClientError(
                message=f"Failed to fetch user by email: {e}",
                code="FETCH_USER_FAILED",
                suggestion="Check that the users table exists (see supabase/schema.sql)",
            )

    @classmethod
    def update_user(cls, user_id: str | UUID, changes: dict[str, Any]) -> dict[str, Any] | None:
        """Apply a partial update to a user row and return the updated row."""
        client = cls.get_client()
        user_id_str = normalize_uuid(user_id)

        try:
            response = (
                client.table("users")
                .update(changes)
                .eq("id", user_id_str)
                .execute()
            )
            return response.data[0] if response.data else None

        except Exception as e:
            raise SupabaseClientError(
                message=f"Failed to update user: {e}",
                code="UPDATE_USER_FAILED",
                details={"user_id": user_id_str, "fields": sorted(changes)}
            )
