# =============================================================================
# app/routers/tasks.py - Task Status Endpoints
# =============================================================================
# Polling for background jobs queued by the API: summaries and the RSS and
# token cleanup runs admins trigger by hand. Ownership comes from the task
# id (see lib/task_owner.py).
# =============================================================================

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Path
from pydantic import BaseModel

from app.auth import AuthUser, get_current_user
from app.exceptions import TaskNotFoundError
from core.models.user import Role
from lib.task_owner import can_read_task

logger = logging.getLogger(__name__)

router = APIRouter()

# Progress and message shown for states that carry no task metadata
STATE_DEFAULTS: dict[str, tuple[int, str]] = {
    "PENDING": (0, "Waiting in queue..."),
    "STARTED": (0, "Starting..."),
    "RETRY": (0, "Retrying..."),
    "SUCCESS": (100, "Complete"),
    "FAILURE": (0, "Failed"),
}


# =============================================================================
# Response Models
# =============================================================================

class TaskStatusResponse(BaseModel):
    task_id: str
    status: str
    progress: int | None = None
    message: str | None = None
    result: dict[str, Any] | None = None
    error: str | None = None


class TaskSubmitResponse(BaseModel):
    """Returned by endpoints that queue a job."""
    task_id: str
    status: str
    message: str


# =============================================================================
# Endpoints
# =============================================================================

@router.get("/{task_id}", response_model=TaskStatusResponse)
def get_task_status(
    task_id: Annotated[str, Path(description="Celery task ID")],
    user: AuthUser = Depends(get_current_user),
):
    """
    State of a background job.

    Users see the jobs queued for them; admins see every job. Any other
    id answers 404, whether or not the job exists.

    PENDING, STARTED, PROGRESS (with percent and step message), RETRY,
    SUCCESS (with the task's result) or FAILURE (with the error).

    Raises:
        404: Not one of the caller's jobs
        503: Result backend unreachable
    """
    from workers.celery_app import celery_app

    if not can_read_task(task_id, str(user.id), user.role == Role.ADMIN):
        raise TaskNotFoundError(task_id)

    try:
        result = celery_app.AsyncResult(task_id)
        state = result.status
        payload = result.result
    except Exception as e:
        logger.error(f"Task backend error for {task_id}: {e}")
        raise HTTPException(status_code=503, detail="Task backend unavailable")

    response = TaskStatusResponse(task_id=task_id, status=state)

    if state == "PROGRESS":
        info = payload if isinstance(payload, dict) else {}
        response.progress = info.get("percent", 0)
        response.message = info.get("message", "Processing...")
        return response

    response.progress, response.message = STATE_DEFAULTS.get(state, (None, None))

    if state == "SUCCESS":
        response.result = payload if isinstance(payload, dict) else {"value": payload}
    elif state == "FAILURE":
        response.error = str(payload) if payload else "Unknown error"

    return response
