# =============================================================================
# core/models/article.py - Article and Feed Schemas
# =============================================================================
# Articles are aggregated from RSS feeds and shared by every user; users
# bookmark them through saved_articles.
# =============================================================================

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, HttpUrl

from lib.pagination import PaginationMeta


@dataclass
class ParsedArticle:
    """One feed item after parsing and sanitizing."""
    title: str
    url: str
    excerpt: str
    source: str
    published_at: datetime
    image_url: str | None = None
    tags: list[str] = field(default_factory=list)

    def to_row(self) -> dict:
        return {
            "title": self.title,
            "url": self.url,
            "excerpt": self.excerpt,
            "source": self.source,
            "published_at": self.published_at.isoformat(),
            "image_url": self.image_url,
            "tags": self.tags,
        }


class ArticleResponse(BaseModel):
    id: UUID
    title: str
    url: str
    excerpt: str | None = None
    image_url: str | None = None
    source: str
    tags: list[str] = Field(default_factory=list)
    published_at: datetime
    created_at: datetime | None = None


class ArticleList(BaseModel):
    articles: list[ArticleResponse]
    pagination: PaginationMeta


class SavedArticleResponse(BaseModel):
    id: UUID
    article: ArticleResponse
    created_at: datetime


class SavedArticleList(BaseModel):
    saved_articles: list[SavedArticleResponse]
    pagination: PaginationMeta


# =============================================================================
# Feeds
# =============================================================================

class FeedCreate(BaseModel):
    """
    Schema for registering an RSS feed (admin only).

    Example:
        {"name": "Le Monde Tech", "url": "https://www.lemonde.fr/pixels/rss_full.xml", "tags": ["tech"]}
    """
    name: str = Field(..., min_length=1, max_length=200)
    url: HttpUrl
    description: str | None = Field(default=None, max_length=500)
    tags: list[str] = Field(default_factory=list)
    active: bool = True


class FeedUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=500)
    tags: list[str] | None = None
    active: bool | None = None


class FeedResponse(BaseModel):
    id: UUID
    name: str
    url: str
    description: str | None = None
    tags: list[str] = Field(default_factory=list)
    active: bool
    last_fetch_at: datetime | None = None
    created_at: datetime | None = None


class FeedFetchResult(BaseModel):
    """Stats returned by one RSS fetch run."""
    feeds_processed: int = 0
    feeds_failed: int = 0
    articles_created: int = 0
    articles_skipped: int = 0


class CleanupResult(BaseModel):
    old_articles_deleted: int = 0
    orphaned_articles_deleted: int = 0
    total_deleted: int = 0
