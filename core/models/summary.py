# =============================================================================
# core/models/summary.py - Summary Schemas
# =============================================================================
# A summary is generated asynchronously: POST /summaries returns a task id,
# the worker stores the result, and clients poll the task or list summaries.
# =============================================================================

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field

from lib.pagination import PaginationMeta

from .user import Language


class SummaryStyle(str, Enum):
    """Output formats the AI can produce."""
    SHORT = "SHORT"
    TWEET = "TWEET"
    THREAD = "THREAD"
    BULLET_POINT = "BULLET_POINT"
    TOP3 = "TOP3"
    MAIN_POINTS = "MAIN_POINTS"
    EDUCATIONAL = "EDUCATIONAL"


class SummaryCreate(BaseModel):
    """
    Schema for requesting a summary.

    `text` is either the content itself or an http(s) URL whose page
    content will be fetched and summarized.

    Example:
        {"text": "https://example.com/article", "style": "BULLET_POINT", "language": "en"}
    """
    text: str = Field(..., min_length=10, max_length=100_000)
    style: SummaryStyle = SummaryStyle.SHORT
    language: Language = Language.FR


class SummaryTaskResponse(BaseModel):
    task_id: str
    status: str = "PENDING"
    message: str = "Summary generation queued"


class SummaryResponse(BaseModel):
    id: UUID
    title: str | None = None
    original_text: str
    summary_text: str
    style: SummaryStyle
    source: str | None = None
    language: Language
    cover_image: str | None = None
    is_public: bool = False
    share_token: str | None = None
    created_at: datetime


class SummaryPagination(PaginationMeta):
    total_this_month: int = Field(
        ...,
        description="Summaries created this month, deleted ones included (quota usage)"
    )


class SummaryList(BaseModel):
    summaries: list[SummaryResponse]
    pagination: SummaryPagination


class ShareResponse(BaseModel):
    share_token: str
    share_url: str


class PublicSummaryResponse(BaseModel):
    """What anonymous visitors see for a shared summary."""
    title: str | None = None
    summary_text: str
    style: SummaryStyle
    source: str | None = None
    language: Language
    cover_image: str | None = None
    created_at: datetime
