# =============================================================================
# app/routers/notes.py - Note Endpoints
# =============================================================================
# CRUD for the user's notes. All endpoints require authentication and only
# ever touch the caller's own notes.
# =============================================================================

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status

from app.auth import AuthUser, get_current_user
from core.models.note import NoteCreate, NoteList, NoteResponse, NoteUpdate
from core.services.note_service import NoteService
from lib.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

router = APIRouter()

NoteId = Annotated[UUID, Path(description="Note ID")]


@router.post("", response_model=NoteResponse, status_code=status.HTTP_201_CREATED)
def create_note(
    body: NoteCreate,
    user: AuthUser = Depends(get_current_user),
):
    """
    Create a note.

    Raises:
        403: Note limit of the plan reached
    """
    return NoteService.create_note(str(user.id), body.title, body.content, body.tags)


@router.get("", response_model=NoteList)
def list_notes(
    tags: Annotated[str | None, Query(description="Comma-separated tags (any match)")] = None,
    search: Annotated[str | None, Query(max_length=200, description="Search in title and content")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = DEFAULT_PAGE_SIZE,
    user: AuthUser = Depends(get_current_user),
):
    """List notes: pinned first, then most recently updated."""
    return NoteService.list_notes(str(user.id), tags, search, page, page_size)


@router.get("/{note_id}", response_model=NoteResponse)
def get_note(note_id: NoteId, user: AuthUser = Depends(get_current_user)):
    return NoteService.get_note(str(note_id), str(user.id))


@router.patch("/{note_id}", response_model=NoteResponse)
def update_note(
    note_id: NoteId,
    body: NoteUpdate,
    user: AuthUser = Depends(get_current_user),
):
    """Partial update of title, content and tags."""
    return NoteService.update_note(str(note_id), str(user.id), body.model_dump(exclude_unset=True))


@router.patch("/{note_id}/pin", response_model=NoteResponse)
def toggle_pin(note_id: NoteId, user: AuthUser = Depends(get_current_user)):
    """Pin or unpin a note."""
    return NoteService.toggle_pin(str(note_id), str(user.id))


@router.delete("/{note_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_note(note_id: NoteId, user: AuthUser = Depends(get_current_user)):
    NoteService.delete_note(str(note_id), str(user.id))
