# =============================================================================
# core/services/token_cleanup_service.py - Expired Token Cleanup
# =============================================================================
# Deletes expired rows from the three token tables:
#
# - refresh_tokens
# - verification_tokens
# - password_reset_tokens
#
# Rows are deleted in batches (select ids, then delete by id) so one run
# never holds a long lock on a large table. A Redis lock keeps two workers
# (or a worker and an admin request) from cleaning at the same time.
# Runs daily from Celery beat and on demand from the admin API.
# =============================================================================

import logging
from typing import Any, Callable

from lib.cache import CacheService
from lib.supabase_client import SupabaseClient
from lib.utils import utc_iso

logger = logging.getLogger(__name__)

TOKEN_TABLES = ("refresh_tokens", "verification_tokens", "password_reset_tokens")

BATCH_SIZE = 1000
LOCK_NAME = "cleanup-tokens"
# Longer than a full run is expected to take
LOCK_TIMEOUT = 10 * 60


class TokenCleanupService:

    @staticmethod
    def _cleanup_table(table: str, cutoff: str) -> int:
        """Delete a table's rows that expired before `cutoff`. Returns the count."""
        client = SupabaseClient.get_client()
        deleted = 0
        while True:
            response = (
                client.table(table)
                .select("id")
                .lt("expires_at", cutoff)
                .order("id")
                .limit(BATCH_SIZE)
                .execute()
            )
            ids = [row["id"] for row in response.data or []]
            if not ids:
                return deleted

            client.table(table).delete().in_("id", ids).execute()
            deleted += len(ids)
            if len(ids) < BATCH_SIZE:
                return deleted

    @staticmethod
    def cleanup_expired_tokens(
        on_table_done: Callable[[int, int, str], None] | None = None,
    ) -> dict[str, Any]:
        """
        Delete every expired token.

        Args:
            on_table_done: Called after each table with (done, total, table)

        Returns:
            Dict with a count per table, total_deleted and skipped (True when
            another run held the lock)
        """
        with CacheService.lock(LOCK_NAME, timeout=LOCK_TIMEOUT, blocking_timeout=0) as acquired:
            if not acquired and CacheService.is_available():
                logger.info("Token cleanup already running elsewhere, skipping")
                return {**{table: 0 for table in TOKEN_TABLES}, "total_deleted": 0, "skipped": True}

            cutoff = utc_iso()
            result: dict[str, Any] = {}
            for index, table in enumerate(TOKEN_TABLES, start=1):
                result[table] = TokenCleanupService._cleanup_table(table, cutoff)
                if on_table_done:
                    on_table_done(index, len(TOKEN_TABLES), table)

        result["total_deleted"] = sum(result[table] for table in TOKEN_TABLES)
        result["skipped"] = False
        logger.info(f"Token cleanup finished: {result}")
        return result
