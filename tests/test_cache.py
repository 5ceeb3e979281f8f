# =============================================================================
# tests/test_cache.py - Cache Tests
# =============================================================================
# This module contains tests for:
# - CacheService JSON operations over a mocked Redis client
# - Graceful degradation when Redis is down or failing
# - cache-aside helpers (cached_query, cached, QueryCache)
# =============================================================================

import json
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
import redis

from lib.cache import CacheKeys, CacheService, summary_usage_key
from lib.query_cache import QUERY_CACHE_TTL, QueryCache, cached, cached_query


@pytest.fixture
def redis_client():
    client = MagicMock(name="redis")
    with patch("lib.cache.get_redis", return_value=client):
        yield client


# =============================================================================
# Cache Key Tests
# =============================================================================

class TestCacheKeys:
    """Test key builders."""

    def test_keys_are_versioned(self):
        assert CacheKeys.user("u1") == "v1:user:u1"
        assert CacheKeys.feature_access("u1", "PRO") == "v1:feature-access:u1:PRO"

    def test_summary_usage_key_uses_month(self):
        """Test that the usage key follows the month the summary was created in."""
        when = datetime(2024, 3, 31, 23, 59, tzinfo=timezone.utc)
        assert summary_usage_key("u1", when) == "v1:summary-usage:u1:2024-03"


# =============================================================================
# CacheService Tests
# =============================================================================

class TestCacheService:
    """Test JSON operations against a mocked client."""

    def test_get_hit(self, redis_client):
        redis_client.get.return_value = json.dumps({"id": "u1"})

        assert CacheService.get("k") == {"id": "u1"}

    def test_get_miss(self, redis_client):
        redis_client.get.return_value = None

        assert CacheService.get("k") is None

    def test_get_corrupt_value_is_a_miss(self, redis_client):
        redis_client.get.return_value = "{not json"

        assert CacheService.get("k") is None

    def test_set_uses_ttl(self, redis_client):
        assert CacheService.set("k", {"a": 1}, ttl=60) is True
        redis_client.setex.assert_called_once_with("k", 60, json.dumps({"a": 1}))

    def test_redis_error_is_swallowed(self, redis_client):
        """Test that a failing Redis degrades to a miss instead of raising."""
        redis_client.get.side_effect = redis.ConnectionError("down")
        redis_client.setex.side_effect = redis.ConnectionError("down")

        assert CacheService.get("k") is None
        assert CacheService.set("k", 1) is False

    def test_delete_pattern_batches_scan(self, redis_client):
        redis_client.scan_iter.return_value = iter(["a", "b", "c"])
        redis_client.delete.return_value = 3

        assert CacheService.delete_pattern("v1:articles:*") == 3
        redis_client.delete.assert_called_once_with("a", "b", "c")

    def test_increment_sets_ttl_on_create(self, redis_client):
        redis_client.incr.return_value = 1

        assert CacheService.increment("counter", ttl=30) == 1
        redis_client.expire.assert_called_once_with("counter", 30)

    def test_decrement_missing_counter_is_noop(self, redis_client):
        redis_client.exists.return_value = 0

        assert CacheService.decrement("counter") is None
        redis_client.decr.assert_not_called()

    def test_decrement_never_goes_negative(self, redis_client):
        redis_client.exists.return_value = 1
        redis_client.decr.return_value = -1

        assert CacheService.decrement("counter") is None
        redis_client.delete.assert_called_once_with("counter")

    def test_lock_acquired(self, redis_client):
        lock = MagicMock()
        lock.acquire.return_value = True
        redis_client.lock.return_value = lock

        with CacheService.lock("job") as acquired:
            assert acquired is True
        lock.release.assert_called_once()

    def test_stats(self, redis_client):
        redis_client.info.return_value = {"keyspace_hits": 3, "keyspace_misses": 1}
        redis_client.dbsize.return_value = 10

        stats = CacheService.get_stats()

        assert stats["available"] is True
        assert stats["hit_rate"] == 75.0

    def test_ttl(self, redis_client):
        redis_client.ttl.return_value = 42

        assert CacheService.get_ttl("k") == 42

    def test_ttl_on_error(self, redis_client):
        redis_client.ttl.side_effect = redis.ConnectionError("down")

        assert CacheService.get_ttl("k") == -2


class TestCacheWithoutRedis:
    """Test behaviour when Redis is unreachable (the default in tests)."""

    def test_operations_degrade(self):
        assert CacheService.get("k") is None
        assert CacheService.set("k", 1) is False
        assert CacheService.delete_pattern("*") == 0
        assert CacheService.increment("k") == 0
        assert CacheService.is_available() is False
        assert CacheService.get_stats() == {"available": False}

    def test_lock_body_still_runs(self):
        ran = []
        with CacheService.lock("job") as acquired:
            ran.append(acquired)
        assert ran == [False]


# =============================================================================
# Cache-Aside Tests
# =============================================================================

class TestCachedQuery:
    """Test cached_query and its wrappers."""

    def test_hit_skips_query(self):
        query = MagicMock()
        with patch("lib.query_cache.CacheService.get", return_value={"id": 1}):
            assert cached_query("k", query) == {"id": 1}
        query.assert_not_called()

    def test_miss_runs_query_and_caches(self):
        with patch("lib.query_cache.CacheService.get", return_value=None), \
             patch("lib.query_cache.CacheService.set", return_value=True) as cache_set:
            assert cached_query("k", lambda: [1, 2], ttl=42) == [1, 2]
        cache_set.assert_called_once_with("k", [1, 2], 42)

    def test_none_result_not_cached(self):
        with patch("lib.query_cache.CacheService.get", return_value=None), \
             patch("lib.query_cache.CacheService.set") as cache_set:
            assert cached_query("k", lambda: None) is None
        cache_set.assert_not_called()

    def test_falsy_results_are_cached(self):
        """Test that 0 and [] are real values, not misses."""
        with patch("lib.query_cache.CacheService.get", return_value=0):
            assert cached_query("k", lambda: 99) == 0

    def test_query_errors_propagate(self):
        def boom():
            raise RuntimeError("db down")

        with pytest.raises(RuntimeError):
            cached_query("k", boom)

    def test_works_without_redis(self):
        """Test that every call falls through to the query."""
        calls = []

        def query():
            calls.append(1)
            return {"ok": True}

        assert cached_query("k", query) == {"ok": True}
        assert cached_query("k", query) == {"ok": True}
        assert len(calls) == 2

    def test_decorator(self):
        @cached(lambda user_id: CacheKeys.user(user_id), ttl=5)
        def load(user_id):
            return {"id": user_id}

        with patch("lib.query_cache.CacheService.set", return_value=True) as cache_set:
            assert load("u1") == {"id": "u1"}
        cache_set.assert_called_once_with("v1:user:u1", {"id": "u1"}, 5)

    def test_entity_helper_uses_entity_ttl(self):
        with patch("lib.query_cache.CacheService.set", return_value=True) as cache_set:
            QueryCache.get_note("n1", lambda: {"id": "n1"})
        cache_set.assert_called_once_with("v1:note:n1", {"id": "n1"}, QUERY_CACHE_TTL["NOTE"])

    def test_invalidate_articles(self):
        with patch("lib.query_cache.CacheService.delete_pattern", return_value=0) as delete_pattern:
            QueryCache.invalidate_articles()
        patterns = [c.args[0] for c in delete_pattern.call_args_list]
        assert "v1:articles:*" in patterns
        assert "v1:article:*" in patterns

    def test_invalidate_counts(self):
        with patch("lib.query_cache.CacheService.delete", return_value=True) as delete:
            QueryCache.invalidate_counts("u1")
        keys = [c.args[0] for c in delete.call_args_list]
        assert keys == [CacheKeys.article_count("u1"), CacheKeys.note_count("u1")]
