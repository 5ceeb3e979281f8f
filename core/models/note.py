# =============================================================================
# core/models/note.py - Note Schemas
# =============================================================================

from datetime import datetime
from typing import Annotated
from uuid import UUID

from pydantic import AfterValidator, BaseModel, Field

from lib.pagination import PaginationMeta

MAX_TAGS = 10


def _normalize_tags(tags: list[str]) -> list[str]:
    """Strip, lowercase and de-duplicate tags while keeping their order."""
    cleaned: list[str] = []
    for tag in tags:
        tag = tag.strip().lower()
        if tag and tag not in cleaned:
            cleaned.append(tag)
    if len(cleaned) > MAX_TAGS:
        raise ValueError(f"A note can have at most {MAX_TAGS} tags")
    return cleaned


Tags = Annotated[list[str], AfterValidator(_normalize_tags)]


class NoteCreate(BaseModel):
    """
    Schema for creating a note.

    Example:
        {"title": "Meeting notes", "content": "...", "tags": ["work"]}
    """
    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(default="", max_length=50_000)
    tags: Tags = Field(default_factory=list)


class NoteUpdate(BaseModel):
    """Partial update; omitted fields are left untouched."""
    title: str | None = Field(default=None, min_length=1, max_length=200)
    content: str | None = Field(default=None, max_length=50_000)
    tags: Tags | None = None


class NoteResponse(BaseModel):
    id: UUID
    title: str
    content: str
    tags: list[str] = Field(default_factory=list)
    pinned: bool = False
    created_at: datetime
    updated_at: datetime


class NoteList(BaseModel):
    notes: list[NoteResponse]
    pagination: PaginationMeta
