# =============================================================================
# app/routers/articles.py - Article Endpoints
# =============================================================================
# Browse aggregated RSS articles and manage the user's saved articles.
# All endpoints require authentication.
# =============================================================================

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status

from app.auth import AuthUser, get_current_user
from core.models.article import ArticleList, SavedArticleList
from core.services.article_service import ArticleService
from lib.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

router = APIRouter()


@router.get("", response_model=ArticleList)
def list_articles(
    source: Annotated[str | None, Query(max_length=200, description="Exact source name")] = None,
    tags: Annotated[str | None, Query(description="Comma-separated tags (any match)")] = None,
    search: Annotated[str | None, Query(max_length=200, description="Search in title and excerpt")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = DEFAULT_PAGE_SIZE,
    user: AuthUser = Depends(get_current_user),
):
    """
    List articles, newest first.

    Filters combine: source AND any of the tags AND the search term.
    """
    return ArticleService.get_articles(source, tags, search, page, page_size)


@router.get("/sources", response_model=list[str])
def list_sources(user: AuthUser = Depends(get_current_user)):
    """Names of the active feeds, usable as the `source` filter."""
    return ArticleService.get_sources()


@router.get("/saved", response_model=SavedArticleList)
def list_saved_articles(
    source: Annotated[str | None, Query(max_length=200)] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = DEFAULT_PAGE_SIZE,
    user: AuthUser = Depends(get_current_user),
):
    """The user's saved articles, most recently saved first."""
    return ArticleService.get_saved_articles(str(user.id), source, page, page_size)


@router.post("/{article_id}/save", status_code=status.HTTP_201_CREATED)
def save_article(
    article_id: Annotated[UUID, Path(description="Article ID")],
    user: AuthUser = Depends(get_current_user),
):
    """
    Save an article.

    Raises:
        403: Saved-article limit of the plan reached
        404: Article not found
        409: Already saved
    """
    ArticleService.save_article(str(user.id), str(article_id))
    return {"article_id": str(article_id), "saved": True}


@router.delete("/{article_id}/save", status_code=status.HTTP_204_NO_CONTENT)
def unsave_article(
    article_id: Annotated[UUID, Path(description="Article ID")],
    user: AuthUser = Depends(get_current_user),
):
    """Remove an article from the saved list."""
    ArticleService.unsave_article(str(user.id), str(article_id))
