# =============================================================================
# core/services/note_service.py - Note Business Logic
# =============================================================================
# Handles note CRUD. Notes are soft-deleted (deleted_at) and every query
# filters them out. Ownership is checked here because the service-role
# client bypasses RLS.
# =============================================================================

import logging
from typing import Any

from app.exceptions import NoteNotFoundError
from core.models.plan import PlanResource
from core.services.plan_limiter import PlanLimiter
from lib.pagination import build_pagination, clamp_page_size, get_offset, normalize_page
from lib.query_cache import QueryCache
from lib.supabase_client import SupabaseClient
from lib.utils import clean_search_term, parse_tags, utc_iso

logger = logging.getLogger(__name__)


class NoteService:
    """
    Service for note management operations.

    Provides a clean interface between API routes and database.
    """

    @staticmethod
    def create_note(
        user_id: str,
        title: str,
        content: str = "",
        tags: list[str] | None = None,
    ) -> dict[str, Any]:
        """
        Create a note.

        Raises:
            PlanLimitError: If the plan's note limit is reached
        """
        PlanLimiter.check_limit(user_id, PlanResource.NOTES)

        client = SupabaseClient.get_client()
        try:
            response = client.table("notes").insert({
                "user_id": str(user_id),
                "title": title,
                "content": content,
                "tags": tags or [],
                "pinned": False,
            }).execute()

            if not response.data:
                raise Exception("Insert returned no data")

        except Exception as e:
            logger.error(f"Failed to create note for user {user_id}: {e}")
            raise

        note = response.data[0]
        PlanLimiter.invalidate_cache(user_id, PlanResource.NOTES)
        logger.info(f"Created note {note['id']} for user {user_id}")
        return note

    @staticmethod
    def list_notes(
        user_id: str,
        tags: str | list[str] | None = None,
        search: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> dict[str, Any]:
        """
        List a user's notes: pinned first, then most recently updated.

        Returns:
            Dict with "notes" and "pagination"
        """
        page = normalize_page(page)
        page_size = clamp_page_size(page_size)
        start, end = get_offset(page, page_size)
        tag_list = parse_tags(tags)
        term = clean_search_term(search)

        client = SupabaseClient.get_client()
        builder = (
            client.table("notes")
            .select("*", count="exact")
            .eq("user_id", str(user_id))
            .is_("deleted_at", "null")
        )
        if tag_list:
            builder = builder.overlaps("tags", tag_list)
        if term:
            builder = builder.or_(f"title.ilike.%{term}%,content.ilike.%{term}%")

        response = (
            builder
            .order("pinned", desc=True)
            .order("updated_at", desc=True)
            .range(start, end)
            .execute()
        )
        return {
            "notes": response.data or [],
            "pagination": build_pagination(page, page_size, response.count or 0).model_dump(),
        }

    @staticmethod
    def get_note(note_id: str, user_id: str) -> dict[str, Any]:
        """
        Get a note owned by the user.

        Raises:
            NoteNotFoundError: If it doesn't exist, is deleted, or belongs to someone else
        """
        note = QueryCache.get_note(str(note_id), lambda: SupabaseClient.fetch_by_id("notes", note_id))

        # Don't reveal that someone else's note exists
        if not note or note.get("deleted_at") or str(note.get("user_id")) != str(user_id):
            raise NoteNotFoundError(str(note_id))
        return note

    @staticmethod
    def update_note(note_id: str, user_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        """
        Apply a partial update (title, content, tags).

        Raises:
            NoteNotFoundError: If the note isn't the user's
        """
        note = NoteService.get_note(note_id, user_id)
        allowed = {k: v for k, v in changes.items() if k in ("title", "content", "tags") and v is not None}
        if not allowed:
            return note

        allowed["updated_at"] = utc_iso()
        return NoteService._write(note_id, user_id, allowed)

    @staticmethod
    def toggle_pin(note_id: str, user_id: str) -> dict[str, Any]:
        note = NoteService.get_note(note_id, user_id)
        return NoteService._write(note_id, user_id, {"pinned": not note.get("pinned", False)})

    @staticmethod
    def delete_note(note_id: str, user_id: str) -> None:
        """Soft-delete a note."""
        NoteService.get_note(note_id, user_id)
        NoteService._write(note_id, user_id, {"deleted_at": utc_iso()})
        PlanLimiter.invalidate_cache(user_id, PlanResource.NOTES)
        logger.info(f"Deleted note {note_id} for user {user_id}")

    @staticmethod
    def _write(note_id: str, user_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        client = SupabaseClient.get_client()
        response = (
            client.table("notes")
            .update(changes)
            .eq("id", str(note_id))
            .eq("user_id", str(user_id))
            .execute()
        )
        QueryCache.invalidate_note(str(note_id))

        if not response.data:
            raise NoteNotFoundError(str(note_id))
        return response.data[0]
