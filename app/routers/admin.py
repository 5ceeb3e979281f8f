# =============================================================================
# app/routers/admin.py - Admin Endpoints
# =============================================================================
# User moderation, subscriptions and stats, the feed registry, on-demand
# RSS fetch/cleanup and token cleanup, and cache stats.
# Every endpoint requires the ADMIN role.
# =============================================================================

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status

from app.auth import AuthUser, get_current_user, require_role
from app.routers.tasks import TaskSubmitResponse
from core.models.admin import (
    AdminStats,
    AdminSubscriptionList,
    AdminUserList,
    AdminUserResponse,
    RoleUpdate,
)
from core.models.article import FeedCreate, FeedResponse, FeedUpdate
from core.models.user import Role
from core.services.admin_service import AdminService
from core.services.article_service import ArticleService
from lib.cache import CacheService
from lib.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from lib.task_owner import new_task_id

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_role(Role.ADMIN))])

UserId = Annotated[UUID, Path(description="User ID")]


# =============================================================================
# Users
# =============================================================================

@router.get("/users", response_model=AdminUserList)
def list_users(
    search: Annotated[str | None, Query(max_length=100, description="Email or name contains")] = None,
    include_deleted: bool = False,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = DEFAULT_PAGE_SIZE,
):
    return AdminService.list_users(search, include_deleted, page, page_size)


@router.patch("/users/{user_id}/role", response_model=AdminUserResponse)
def update_user_role(
    user_id: UserId,
    body: RoleUpdate,
    admin: AuthUser = Depends(get_current_user),
):
    """
    Raises:
        403: Changing your own role
        404: Unknown or deleted user
    """
    return AdminService.update_role(str(admin.id), str(user_id), body.role)


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(user_id: UserId, admin: AuthUser = Depends(get_current_user)):
    """
    Soft-delete an account and revoke its sessions.

    Raises:
        403: Deleting yourself or another admin
        404: Unknown or already deleted user
    """
    AdminService.delete_user(str(admin.id), str(user_id))


@router.get("/subscriptions", response_model=AdminSubscriptionList)
def list_subscriptions(
    subscription_status: Annotated[str | None, Query(alias="status", max_length=30)] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = DEFAULT_PAGE_SIZE,
):
    return AdminService.list_subscriptions(subscription_status, page, page_size)


@router.get("/stats", response_model=AdminStats)
def get_stats():
    return AdminService.get_stats()


# =============================================================================
# Feeds
# =============================================================================

@router.get("/feeds", response_model=list[FeedResponse])
def list_feeds():
    return ArticleService.list_feeds()


@router.post("/feeds", response_model=FeedResponse, status_code=status.HTTP_201_CREATED)
def create_feed(body: FeedCreate):
    data = body.model_dump()
    data["url"] = str(body.url)
    return ArticleService.create_feed(data)


@router.patch("/feeds/{feed_id}", response_model=FeedResponse)
def update_feed(
    feed_id: Annotated[UUID, Path(description="Feed ID")],
    body: FeedUpdate,
):
    """Rename, retag or (de)activate a feed. Deactivated feeds' articles become orphans."""
    return ArticleService.update_feed(str(feed_id), body.model_dump(exclude_unset=True))


# =============================================================================
# Background Jobs
# =============================================================================

@router.post("/rss/fetch", response_model=TaskSubmitResponse, status_code=status.HTTP_202_ACCEPTED)
def trigger_rss_fetch(admin: AuthUser = Depends(get_current_user)):
    """Queue an RSS fetch run now instead of waiting for the schedule."""
    from workers.tasks import fetch_rss_feeds

    task = fetch_rss_feeds.apply_async(task_id=new_task_id(str(admin.id)))
    logger.info(f"Admin {admin.id} queued RSS fetch: task {task.id}")
    return TaskSubmitResponse(task_id=task.id, status="PENDING", message="RSS fetch queued")


@router.post("/rss/cleanup", response_model=TaskSubmitResponse, status_code=status.HTTP_202_ACCEPTED)
def trigger_rss_cleanup(
    retention_days: Annotated[int | None, Query(ge=1, le=3650)] = None,
    admin: AuthUser = Depends(get_current_user),
):
    """Queue an RSS cleanup now, optionally with a custom retention."""
    from workers.tasks import cleanup_rss_articles

    task = cleanup_rss_articles.apply_async(args=[retention_days], task_id=new_task_id(str(admin.id)))
    logger.info(f"Admin {admin.id} queued RSS cleanup: task {task.id}")
    return TaskSubmitResponse(task_id=task.id, status="PENDING", message="RSS cleanup queued")


@router.post("/cleanup-tokens", response_model=TaskSubmitResponse, status_code=status.HTTP_202_ACCEPTED)
def trigger_token_cleanup(admin: AuthUser = Depends(get_current_user)):
    """Queue a cleanup of expired refresh, verification and reset tokens."""
    from workers.tasks import cleanup_expired_tokens

    task = cleanup_expired_tokens.apply_async(task_id=new_task_id(str(admin.id)))
    logger.info(f"Admin {admin.id} queued token cleanup: task {task.id}")
    return TaskSubmitResponse(task_id=task.id, status="PENDING", message="Token cleanup queued")


# =============================================================================
# Cache
# =============================================================================

@router.get("/cache/stats")
def cache_stats():
    return CacheService.get_stats()
