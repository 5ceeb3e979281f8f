# =============================================================================
# lib/ - Standalone Utility Modules
# =============================================================================
# This package contains reusable utilities:
# - supabase_client.py: Shared Supabase client and user lookups
# - cache.py: Redis JSON cache with graceful degradation
# - query_cache.py: Cache-aside wrapper for database reads
# - rate_limiter.py: Fixed-window auth limiter, sliding-window worker limiter
# - security.py: Password/token hashing, disposable emails, URL guards
# - pagination.py: Page/offset math for list endpoints
# - utils.py: Shared utilities (UUID and datetime helpers)
#
# These modules are self-contained and can be tested in isolation.
# =============================================================================

from lib.supabase_client import SupabaseClient, SupabaseClientError
from lib.cache import CacheKeys, CacheService
from lib.query_cache import QUERY_CACHE_TTL, QueryCache, cached_query
from lib.utils import normalize_uuid

__all__ = [
    # Supabase
    "SupabaseClient",
    "SupabaseClientError",
    # Cache
    "CacheKeys",
    "CacheService",
    "QUERY_CACHE_TTL",
    "QueryCache",
    "cached_query",
    # Utils
    "normalize_uuid",
]
