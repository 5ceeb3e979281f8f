# =============================================================================
# core/services/summary_service.py - Summary Business Logic
# =============================================================================
# Summaries are generated in the background:
#
#   POST /summaries -> create_summary() checks the plan quota and enqueues
#   the Celery task -> workers.tasks.generate_summary -> process_summary()
#   calls OpenAI and stores the row.
#
# Deleting is a soft delete so the monthly quota keeps counting the summary.
# =============================================================================

import logging
import secrets
from typing import Any
from urllib.parse import urlparse

from app.config import settings
from app.exceptions import SummaryNotFoundError
from core.models.plan import PlanResource
from core.models.summary import SummaryStyle
from core.models.user import Language
from core.services.ai_service import AIService, is_url
from core.services.plan_limiter import PlanLimiter
from lib.cache import summary_usage_key
from lib.pagination import build_pagination, clamp_page_size, get_offset, normalize_page
from lib.query_cache import QueryCache, invalidate_cache
from lib.rate_limiter import with_rate_limit
from lib.supabase_client import SupabaseClient
from lib.task_owner import new_task_id
from lib.utils import parse_datetime, start_of_month, utc_iso

logger = logging.getLogger(__name__)

SHARE_TOKEN_BYTES = 24
PUBLIC_COLUMNS = "title, summary_text, style, source, language, cover_image, created_at"


@with_rate_limit("openai")
def _generate(user_id: str, content: str, style: SummaryStyle, language: Language) -> tuple[str, str | None]:
    """Summary and title for `content`, counted against the user's OpenAI window."""
    ai = AIService()
    summary_text = ai.generate_summary(content, style, language)
    title = ai.generate_title(content, language)
    return summary_text, title


class SummaryService:
    """
    Service for summary operations.

    Ownership is checked on every read and write: the service-role client
    bypasses row level security.
    """

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    @staticmethod
    def create_summary(
        user_id: str,
        text: str,
        style: SummaryStyle = SummaryStyle.SHORT,
        language: Language = Language.FR,
    ) -> str:
        """
        Queue a summary generation.

        Returns:
            Celery task id to poll

        Raises:
            PlanLimitError: If the monthly summary quota is used up
        """
        PlanLimiter.check_limit(user_id, PlanResource.SUMMARIES)

        from workers.tasks import generate_summary

        task = generate_summary.apply_async(
            args=[str(user_id), text, SummaryStyle(style).value, Language(language).value],
            task_id=new_task_id(str(user_id)),
        )
        logger.info(f"Queued {SummaryStyle(style).value} summary for user {user_id}: task {task.id}")
        return task.id

    @staticmethod
    def process_summary(
        user_id: str,
        text: str,
        style: SummaryStyle,
        language: Language,
    ) -> dict[str, Any]:
        """
        Generate and store a summary. Runs inside the Celery worker.

        When `text` is a URL, the page's readable text is summarized and its
        og:image becomes the cover.

        Returns:
            Dict with "summary_id"

        Raises:
            AIServiceError: If the URL or the model fails
            RateLimitExceededError: If the user's OpenAI window is full
        """
        style = SummaryStyle(style)
        language = Language(language)

        content = text
        source = None
        cover_image = None
        if is_url(text):
            url = text.strip()
            logger.info(f"Fetching summary source {url}")
            page = AIService.extract_url_content(url)
            content = page.text
            cover_image = page.image_url
            source = urlparse(url).hostname

        summary_text, title = _generate(str(user_id), content, style, language)

        client = SupabaseClient.get_client()
        response = client.table("summaries").insert({
            "user_id": str(user_id),
            "title": title,
            "original_text": text,
            "summary_text": summary_text,
            "style": style.value,
            "source": source,
            "language": language.value,
            "cover_image": cover_image,
            "is_public": False,
        }).execute()

        if not response.data:
            raise Exception("Insert returned no data")

        summary = response.data[0]
        # The quota key is the month the row was created in
        created_at = parse_datetime(summary.get("created_at"))
        invalidate_cache(summary_usage_key(str(user_id), created_at))

        logger.info(f"Summary {summary['id']} generated for user {user_id}")
        return {"summary_id": summary["id"]}

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    @staticmethod
    def get_summaries(user_id: str, page: int = 1, page_size: int = 20) -> dict[str, Any]:
        """
        List a user's summaries, newest first.

        Returns:
            Dict with "summaries" and "pagination"; pagination also carries
            total_this_month, which counts deleted summaries too.
        """
        page = normalize_page(page)
        page_size = clamp_page_size(page_size)
        start, end = get_offset(page, page_size)
        client = SupabaseClient.get_client()

        response = (
            client.table("summaries")
            .select("*", count="exact")
            .eq("user_id", str(user_id))
            .is_("deleted_at", "null")
            .order("created_at", desc=True)
            .range(start, end)
            .execute()
        )

        month = (
            client.table("summaries")
            .select("id", count="exact")
            .eq("user_id", str(user_id))
            .gte("created_at", utc_iso(start_of_month()))
            .execute()
        )

        pagination = build_pagination(page, page_size, response.count or 0).model_dump()
        pagination["total_this_month"] = month.count or 0
        return {"summaries": response.data or [], "pagination": pagination}

    @staticmethod
    def get_summary(summary_id: str, user_id: str) -> dict[str, Any]:
        """
        Raises:
            SummaryNotFoundError: If missing, deleted or owned by someone else
        """
        summary = QueryCache.get_summary(
            str(summary_id), lambda: SupabaseClient.fetch_by_id("summaries", summary_id)
        )
        if not summary or summary.get("deleted_at") or str(summary.get("user_id")) != str(user_id):
            raise SummaryNotFoundError(str(summary_id))
        return summary

    @staticmethod
    def get_public_summary(share_token: str) -> dict[str, Any]:
        """
        Shared summary for anonymous visitors.

        Raises:
            SummaryNotFoundError: If the token is unknown or sharing was turned off
        """
        client = SupabaseClient.get_client()
        response = (
            client.table("summaries")
            .select(PUBLIC_COLUMNS)
            .eq("share_token", share_token)
            .eq("is_public", True)
            .is_("deleted_at", "null")
            .limit(1)
            .execute()
        )
        if not response.data:
            raise SummaryNotFoundError(share_token)
        return response.data[0]

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    @staticmethod
    def delete_summary(summary_id: str, user_id: str) -> None:
        """Soft-delete. The monthly quota still counts the summary."""
        SummaryService.get_summary(summary_id, user_id)
        SummaryService._write(summary_id, user_id, {"deleted_at": utc_iso(), "is_public": False})
        logger.info(f"Deleted summary {summary_id} for user {user_id}")

    @staticmethod
    def share_summary(summary_id: str, user_id: str) -> dict[str, str]:
        """
        Make a summary public. An already shared summary keeps its token.

        Returns:
            Dict with share_token and share_url
        """
        summary = SummaryService.get_summary(summary_id, user_id)
        token = summary.get("share_token") if summary.get("is_public") else None

        if not token:
            token = secrets.token_urlsafe(SHARE_TOKEN_BYTES)
            SummaryService._write(summary_id, user_id, {"share_token": token, "is_public": True})
            logger.info(f"Shared summary {summary_id}")

        return {"share_token": token, "share_url": f"{settings.FRONTEND_URL}/share/{token}"}

    @staticmethod
    def unshare_summary(summary_id: str, user_id: str) -> None:
        SummaryService.get_summary(summary_id, user_id)
        SummaryService._write(summary_id, user_id, {"share_token": None, "is_public": False})
        logger.info(f"Unshared summary {summary_id}")

    @staticmethod
    def _write(summary_id: str, user_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        client = SupabaseClient.get_client()
        response = (
            client.table("summaries")
            .update(changes)
            .eq("id", str(summary_id))
            .eq("user_id", str(user_id))
            .execute()
        )
        QueryCache.invalidate_summary(str(summary_id))

        if not response.data:
            raise SummaryNotFoundError(str(summary_id))
        return response.data[0]
