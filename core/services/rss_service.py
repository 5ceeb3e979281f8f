# =============================================================================
# core/services/rss_service.py - RSS Fetching and Import
# =============================================================================
# Fetches the active feeds, parses them with feedparser, sanitizes every
# entry and imports new articles.
#
# Pipeline per feed:
#   validate URL -> fetch (httpx, retried) -> parse -> sanitize
#   -> skip items older than RSS_MAX_ARTICLE_AGE_DAYS -> insert new URLs
#   -> refresh image_url of known URLs -> stamp last_fetch_at
#
# One failing feed never stops the run.
# =============================================================================

import html
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any

import feedparser
import httpx
from bs4 import BeautifulSoup
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.config import settings
from core.models.article import ParsedArticle
from lib.query_cache import QueryCache
from lib.rate_limiter import wait_for_rate_limit
from lib.security import UnsafeURLError, validate_external_url
from lib.supabase_client import SupabaseClient
from lib.utils import chunked, utc_iso, utc_now

logger = logging.getLogger(__name__)

USER_AGENT = "NoteFlow RSS Reader"
DEFAULT_SOURCE = "Unknown Source"
EXCERPT_MAX_LENGTH = 500
MAX_FEED_BYTES = 5 * 1024 * 1024
URL_LOOKUP_BATCH = 100

_JS_PROTOCOL = re.compile(r"javascript\s*:", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"\bon\w+\s*=", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")


class FeedFetchError(Exception):
    """Raised when a feed can't be downloaded or parsed."""


# =============================================================================
# Sanitizing
# =============================================================================

def strip_html(value: str | None) -> str:
    """
    Reduce feed HTML to plain text.

    Drops <script>/<style> blocks and tags, decodes entities (including
    &nbsp;), removes javascript: URLs and inline event handlers, and
    collapses whitespace.
    """
    if not value:
        return ""

    soup = BeautifulSoup(value, "html.parser")
    for element in soup(["script", "style"]):
        element.decompose()

    text = html.unescape(soup.get_text(" "))
    text = text.replace("\xa0", " ")
    text = _JS_PROTOCOL.sub("", text)
    text = _EVENT_HANDLER.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


def sanitize_title(value: str | None) -> str:
    return strip_html(value)


def build_excerpt(value: str | None, max_length: int = EXCERPT_MAX_LENGTH) -> str:
    """Plain-text excerpt, truncated with an ellipsis to max_length characters."""
    text = strip_html(value)
    if len(text) > max_length:
        return text[:max_length - 3].rstrip() + "..."
    return text


def _is_http_url(value: Any) -> bool:
    return isinstance(value, str) and value.lower().startswith(("http://", "https://"))


def _first_img_src(markup: str | None) -> str | None:
    if not markup:
        return None
    img = BeautifulSoup(markup, "html.parser").find("img", src=True)
    return img["src"] if img else None


def extract_image_url(entry: Any) -> str | None:
    """
    Find the best image for a feed entry.

    Checked in order: image enclosures, media:content, media:thumbnail,
    the first <img> of the full content, the first <img> of the summary,
    and the itunes/entry image. Only http(s) URLs are returned.
    """
    candidates: list[str | None] = []

    for enclosure in entry.get("enclosures", []) or []:
        if str(enclosure.get("type", "")).startswith("image/"):
            candidates.append(enclosure.get("href") or enclosure.get("url"))

    for media in entry.get("media_content", []) or []:
        medium = media.get("medium") or ""
        media_type = media.get("type") or ""
        if medium == "image" or media_type.startswith("image/") or not (medium or media_type):
            candidates.append(media.get("url"))

    for thumbnail in entry.get("media_thumbnail", []) or []:
        candidates.append(thumbnail.get("url"))

    for content in entry.get("content", []) or []:
        candidates.append(_first_img_src(content.get("value")))

    candidates.append(_first_img_src(entry.get("summary")))

    image = entry.get("image")
    if isinstance(image, dict):
        candidates.append(image.get("href") or image.get("url"))

    for candidate in candidates:
        if _is_http_url(candidate):
            return candidate
    return None


def parse_published(entry: Any) -> datetime:
    """Entry publication time (UTC); now when the feed doesn't say."""
    for attr in ("published_parsed", "updated_parsed"):
        parsed = entry.get(attr)
        if parsed:
            try:
                return datetime(*parsed[:6], tzinfo=timezone.utc)
            except (TypeError, ValueError):
                continue
    return utc_now()


# =============================================================================
# Fetching
# =============================================================================

def _check_request_url(request: httpx.Request) -> None:
    """Re-validate every hop so a redirect can't point at an internal host."""
    try:
        validate_external_url(str(request.url))
    except UnsafeURLError as e:
        raise FeedFetchError(str(e)) from e


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(httpx.TransportError),
    reraise=True,
)
def fetch_feed_content(url: str) -> bytes:
    """
    Download a feed document.

    Transport errors (timeouts, resets) are retried up to three times.

    Raises:
        FeedFetchError: For unsafe URLs, HTTP errors or oversized feeds
        httpx.TransportError: When every retry failed
    """
    with httpx.Client(
        timeout=settings.RSS_FETCH_TIMEOUT_SECONDS,
        headers={"User-Agent": USER_AGENT},
        follow_redirects=True,
        event_hooks={"request": [_check_request_url]},
    ) as client:
        response = client.get(url)

    if response.status_code >= 400:
        raise FeedFetchError(f"HTTP {response.status_code} fetching {url}")
    if len(response.content) > MAX_FEED_BYTES:
        raise FeedFetchError(f"Feed too large: {len(response.content)} bytes")
    return response.content


class RSSService:
    """RSS feed parsing and article import."""

    @staticmethod
    def parse_feed(url: str) -> list[ParsedArticle]:
        """
        Fetch and parse one feed.

        Raises:
            FeedFetchError: If the URL is unsafe or the feed can't be fetched/parsed
        """
        try:
            validate_external_url(url)
        except UnsafeURLError as e:
            raise FeedFetchError(f"Refusing to fetch {url}: {e}") from e

        try:
            content = fetch_feed_content(url)
        except httpx.HTTPError as e:
            raise FeedFetchError(f"Failed to fetch {url}: {e}") from e

        parsed = feedparser.parse(content)
        if parsed.bozo and not parsed.entries:
            raise FeedFetchError(f"Invalid feed at {url}: {parsed.get('bozo_exception')}")

        source = sanitize_title(parsed.feed.get("title")) or DEFAULT_SOURCE
        articles: list[ParsedArticle] = []

        for entry in parsed.entries:
            link = entry.get("link")
            if not _is_http_url(link):
                continue

            content_html = ""
            if entry.get("content"):
                content_html = entry["content"][0].get("value", "")

            articles.append(ParsedArticle(
                title=sanitize_title(entry.get("title")) or link,
                url=link,
                excerpt=build_excerpt(entry.get("summary") or content_html),
                source=source,
                published_at=parse_published(entry),
                image_url=extract_image_url(entry),
            ))

        logger.info(f"Parsed {len(articles)} articles from {url}")
        return articles

    @staticmethod
    def get_active_feeds() -> list[dict[str, Any]]:
        client = SupabaseClient.get_client()
        response = (
            client.table("rss_feeds")
            .select("id, name, url, tags")
            .eq("active", True)
            .execute()
        )
        return response.data or []

    @staticmethod
    def import_articles(articles: list[ParsedArticle]) -> tuple[int, int]:
        """
        Insert articles whose URL is new; refresh image_url of known ones.

        Returns:
            (created, skipped) counts
        """
        if not articles:
            return 0, 0

        client = SupabaseClient.get_client()
        by_url = {article.url: article for article in articles}

        existing: dict[str, dict[str, Any]] = {}
        for urls in chunked(list(by_url), URL_LOOKUP_BATCH):
            response = (
                client.table("articles")
                .select("id, url, image_url")
                .in_("url", urls)
                .execute()
            )
            for row in response.data or []:
                existing[row["url"]] = row

        new_rows = [a.to_row() for url, a in by_url.items() if url not in existing]
        if new_rows:
            # on_conflict keeps a concurrent run from failing the whole batch
            client.table("articles").upsert(
                new_rows, on_conflict="url", ignore_duplicates=True
            ).execute()

        for url, row in existing.items():
            image_url = by_url[url].image_url
            if image_url and image_url != row.get("image_url"):
                client.table("articles").update({"image_url": image_url}).eq("id", row["id"]).execute()

        return len(new_rows), len(existing)

    @staticmethod
    def process_feed(feed: dict[str, Any]) -> tuple[int, int]:
        """Fetch one feed and import its recent articles."""
        cutoff = utc_now() - timedelta(days=settings.RSS_MAX_ARTICLE_AGE_DAYS)
        articles = RSSService.parse_feed(feed["url"])

        recent: list[ParsedArticle] = []
        too_old = 0
        for article in articles:
            if article.published_at < cutoff:
                too_old += 1
                continue
            # Articles are attributed to the feed name so cleanup can match them
            article.source = feed["name"]
            article.tags = list(feed.get("tags") or [])
            recent.append(article)

        created, skipped = RSSService.import_articles(recent)

        client = SupabaseClient.get_client()
        client.table("rss_feeds").update({"last_fetch_at": utc_iso()}).eq("id", feed["id"]).execute()

        logger.info(f"Feed {feed['name']}: {created} new, {skipped} known, {too_old} too old")
        return created, skipped + too_old

    @staticmethod
    def process_feeds() -> dict[str, int]:
        """
        Import every active feed.

        Returns:
            Stats dict (feeds_processed, feeds_failed, articles_created, articles_skipped)
        """
        stats = {
            "feeds_processed": 0,
            "feeds_failed": 0,
            "articles_created": 0,
            "articles_skipped": 0,
        }

        feeds = RSSService.get_active_feeds()
        logger.info(f"Processing {len(feeds)} active RSS feeds")

        for feed in feeds:
            if not wait_for_rate_limit("rss", max_retries=3):
                logger.warning(f"Skipping feed {feed['name']}: RSS rate limit")
                stats["feeds_failed"] += 1
                continue

            try:
                created, skipped = RSSService.process_feed(feed)
            except Exception as e:
                logger.error(f"Failed to process feed {feed.get('name')} ({feed.get('url')}): {e}")
                stats["feeds_failed"] += 1
                continue

            stats["feeds_processed"] += 1
            stats["articles_created"] += created
            stats["articles_skipped"] += skipped

        if stats["articles_created"]:
            QueryCache.invalidate_articles()

        logger.info(f"RSS run finished: {stats}")
        return stats
