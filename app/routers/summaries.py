# =============================================================================
# app/routers/summaries.py - Summary Endpoints
# =============================================================================
# Request AI summaries (processed in the background), poll their status,
# list/delete them and manage public share links.
# =============================================================================

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from pydantic import BaseModel

from app.auth import AuthUser, get_current_user
from app.exceptions import TaskNotFoundError
from core.models.summary import (
    ShareResponse,
    SummaryCreate,
    SummaryList,
    SummaryResponse,
    SummaryTaskResponse,
)
from core.services.summary_service import SummaryService
from lib.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from lib.task_owner import can_read_task

logger = logging.getLogger(__name__)

router = APIRouter()

SummaryId = Annotated[UUID, Path(description="Summary ID")]


class SummaryStatusResponse(BaseModel):
    """Generation status polled by the client after POST /summaries."""
    task_id: str
    status: str
    summary_id: str | None = None
    error: str | None = None


@router.post("", response_model=SummaryTaskResponse, status_code=status.HTTP_202_ACCEPTED)
def create_summary(
    body: SummaryCreate,
    user: AuthUser = Depends(get_current_user),
):
    """
    Queue a summary of a text or of the page at a URL.

    Poll GET /summaries/status/{task_id} for the result.

    Raises:
        403: Monthly summary limit of the plan reached
    """
    task_id = SummaryService.create_summary(str(user.id), body.text, body.style, body.language)
    return SummaryTaskResponse(task_id=task_id)


@router.get("", response_model=SummaryList)
def list_summaries(
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = DEFAULT_PAGE_SIZE,
    user: AuthUser = Depends(get_current_user),
):
    """List summaries, newest first. Pagination includes this month's usage."""
    return SummaryService.get_summaries(str(user.id), page, page_size)


@router.get("/status/{task_id}", response_model=SummaryStatusResponse)
def get_summary_status(
    task_id: Annotated[str, Path(description="Task ID returned by POST /summaries")],
    user: AuthUser = Depends(get_current_user),
):
    """
    Status of a summary generation: PENDING, STARTED, PROGRESS, RETRY,
    SUCCESS (with summary_id) or FAILURE (with error).

    Raises:
        404: The task wasn't queued by this user
    """
    from workers.celery_app import celery_app

    if not can_read_task(task_id, str(user.id)):
        raise TaskNotFoundError(task_id)

    result = celery_app.AsyncResult(task_id)
    response = SummaryStatusResponse(task_id=task_id, status=result.status)

    if result.status == "SUCCESS" and isinstance(result.result, dict):
        response.summary_id = result.result.get("summary_id")
    elif result.status == "FAILURE":
        response.error = str(result.result) if result.result else "Unknown error"

    return response


@router.get("/{summary_id}", response_model=SummaryResponse)
def get_summary(summary_id: SummaryId, user: AuthUser = Depends(get_current_user)):
    return SummaryService.get_summary(str(summary_id), str(user.id))


@router.post("/{summary_id}/share", response_model=ShareResponse)
def share_summary(summary_id: SummaryId, user: AuthUser = Depends(get_current_user)):
    """Make the summary readable by anyone with the link."""
    return SummaryService.share_summary(str(summary_id), str(user.id))


@router.delete("/{summary_id}/share", status_code=status.HTTP_204_NO_CONTENT)
def unshare_summary(summary_id: SummaryId, user: AuthUser = Depends(get_current_user)):
    """Turn sharing off; the old link stops working."""
    SummaryService.unshare_summary(str(summary_id), str(user.id))


@router.delete("/{summary_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_summary(summary_id: SummaryId, user: AuthUser = Depends(get_current_user)):
    """Delete a summary. It still counts towards this month's quota."""
    SummaryService.delete_summary(str(summary_id), str(user.id))
