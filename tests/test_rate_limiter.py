# =============================================================================
# tests/test_rate_limiter.py - Rate Limiter Tests
# =============================================================================
# This module contains tests for:
# - The fixed-window attempt limiter (in-memory fallback)
# - The sliding-window worker limiter over a mocked Lua script
# - wait_for_rate_limit backoff and the with_rate_limit decorator
# =============================================================================

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock, patch

import pytest
import redis

from app.exceptions import RateLimitExceededError
from lib.rate_limiter import (
    WORKER_RATE_LIMITS,
    check_rate_limit,
    check_worker_rate_limit,
    get_remaining_attempts,
    get_worker_rate_limit_count,
    reset_rate_limit,
    reset_worker_rate_limit,
    wait_for_rate_limit,
    with_rate_limit,
)


@pytest.fixture
def redis_client():
    client = MagicMock(name="redis")
    pipe = MagicMock(name="pipeline")
    client.pipeline.return_value = pipe
    with patch("lib.rate_limiter.get_redis", return_value=client):
        yield client, pipe


# =============================================================================
# Fixed-Window Tests
# =============================================================================

class TestFixedWindow:
    """Test the attempt limiter without Redis."""

    def test_allows_up_to_max(self):
        results = [check_rate_limit("login:a@x.com", 2, 60) for _ in range(3)]

        assert [r.allowed for r in results] == [True, True, False]
        assert results[0].remaining == 1
        assert results[2].remaining == 0
        assert 0 < results[2].retry_after <= 60

    def test_keys_are_independent(self):
        check_rate_limit("login:a@x.com", 1, 60)

        assert check_rate_limit("login:b@x.com", 1, 60).allowed is True

    def test_remaining_and_reset(self):
        check_rate_limit("login:a@x.com", 5, 60)
        check_rate_limit("login:a@x.com", 5, 60)
        assert get_remaining_attempts("login:a@x.com", 5) == 3

        reset_rate_limit("login:a@x.com")
        assert get_remaining_attempts("login:a@x.com", 5) == 5

    def test_expired_windows_are_pruned(self):
        """Test that keys whose window ended are dropped on the next check."""
        from lib import rate_limiter

        now = time.time()
        with patch("lib.rate_limiter.time.time", return_value=now):
            for i in range(100):
                check_rate_limit(f"forgot:user{i}@x.com", 3, 60)
        assert len(rate_limiter._memory_store) == 100

        with patch("lib.rate_limiter.time.time", return_value=now + 61):
            check_rate_limit("forgot:late@x.com", 3, 60)

        assert list(rate_limiter._memory_store) == ["v1:ratelimit:forgot:late@x.com"]

    def test_redis_counter(self, redis_client):
        client, pipe = redis_client
        pipe.execute.return_value = [1, -1]

        result = check_rate_limit("login:a@x.com", 5, 900)

        assert result.allowed is True
        assert result.remaining == 4
        client.expire.assert_called_once_with("v1:ratelimit:login:a@x.com", 900)

    def test_redis_error_falls_back_to_memory(self, redis_client):
        _, pipe = redis_client
        pipe.execute.side_effect = redis.ConnectionError("down")

        assert check_rate_limit("login:a@x.com", 1, 60).allowed is True
        assert check_rate_limit("login:a@x.com", 1, 60).allowed is False


# =============================================================================
# Sliding-Window Tests
# =============================================================================

class TestSlidingWindow:
    """Test the worker limiter."""

    def test_allows_when_redis_down(self):
        """Test that a cache outage never blocks a worker."""
        assert check_worker_rate_limit("openai", "u1") is True
        assert get_worker_rate_limit_count("openai", "u1") is None

    def test_under_limit_records_call(self, redis_client):
        client, pipe = redis_client
        script = client.register_script.return_value
        script.return_value = [1, 4]

        assert check_worker_rate_limit("openai", "u1") is True

        kwargs = script.call_args.kwargs
        assert kwargs["keys"] == ["worker:ratelimit:openai:u1"]
        window_start, now, member, max_requests, window = kwargs["args"]
        assert now - window_start == pytest.approx(60)
        assert member.startswith(f"{now}:")
        assert (max_requests, window) == (50, 60)
        client.pipeline.assert_not_called()
        pipe.execute.assert_not_called()

    def test_at_limit_rejects(self, redis_client):
        client, _ = redis_client
        limit = WORKER_RATE_LIMITS["openai"].max_requests
        client.register_script.return_value.return_value = [0, limit]

        assert check_worker_rate_limit("openai", "u1") is False

    def test_redis_error_allows(self, redis_client):
        client, _ = redis_client
        client.register_script.return_value.side_effect = redis.TimeoutError("slow")

        assert check_worker_rate_limit("rss") is True

    def test_concurrent_callers_share_last_slot(self, redis_client):
        """Test that only one of many simultaneous callers gets the final slot."""
        client, _ = redis_client
        limit = WORKER_RATE_LIMITS["openai"].max_requests
        recorded = [f"old-{i}" for i in range(limit - 1)]
        store_lock = threading.Lock()
        barrier = threading.Barrier(20)

        def run_script(keys, args):
            # Redis runs a script without interleaving other commands
            with store_lock:
                if len(recorded) >= int(args[3]):
                    return [0, len(recorded)]
                recorded.append(args[2])
                return [1, len(recorded)]

        client.register_script.return_value.side_effect = run_script

        def worker():
            barrier.wait()
            return check_worker_rate_limit("openai", "u1")

        with ThreadPoolExecutor(max_workers=20) as pool:
            results = list(pool.map(lambda _: worker(), range(20)))

        assert results.count(True) == 1
        assert len(recorded) == limit

    def test_pdf_limit(self, redis_client):
        client, _ = redis_client
        client.register_script.return_value.return_value = [1, 1]

        assert check_worker_rate_limit("pdf", "u1") is True
        args = client.register_script.return_value.call_args.kwargs["args"]
        assert (args[3], args[4]) == (20, 60)

    def test_reset(self, redis_client):
        client, _ = redis_client

        reset_worker_rate_limit("openai", "u1")

        client.delete.assert_called_once_with("worker:ratelimit:openai:u1")

    def test_unknown_service(self):
        with pytest.raises(ValueError):
            check_worker_rate_limit("smtp")


class TestWaitForRateLimit:
    """Test exponential backoff."""

    def test_retries_with_backoff(self):
        sleeps = []
        with patch("lib.rate_limiter.check_worker_rate_limit", side_effect=[False, False, True]):
            assert wait_for_rate_limit("rss", sleep=sleeps.append) is True
        assert sleeps == [1, 2]

    def test_gives_up_after_initial_check_plus_retries(self):
        sleeps = []
        with patch("lib.rate_limiter.check_worker_rate_limit", return_value=False) as check:
            assert wait_for_rate_limit("rss", max_retries=3, sleep=sleeps.append) is False
        assert check.call_count == 4
        assert sleeps == [1, 2, 4]

    def test_zero_retries_checks_once(self):
        sleeps = []
        with patch("lib.rate_limiter.check_worker_rate_limit", return_value=False) as check:
            assert wait_for_rate_limit("rss", max_retries=0, sleep=sleeps.append) is False
        assert check.call_count == 1
        assert sleeps == []


class TestWithRateLimit:
    """Test the decorator."""

    def test_passes_through(self):
        @with_rate_limit("openai")
        def call(user_id, text):
            return text.upper()

        assert call("u1", "hi") == "HI"

    def test_first_argument_is_identifier(self):
        @with_rate_limit("openai")
        def call(user_id):
            return user_id

        with patch("lib.rate_limiter.check_worker_rate_limit", return_value=True) as check:
            call("user-42")
        check.assert_called_once_with("openai", "user-42")

    def test_raises_when_limited(self):
        @with_rate_limit("openai")
        def call(user_id):
            return "never"

        with patch("lib.rate_limiter.check_worker_rate_limit", return_value=False):
            with pytest.raises(RateLimitExceededError) as exc_info:
                call("u1")

        assert exc_info.value.status_code == 429
        assert exc_info.value.details["retry_after"] == 60

    def test_unknown_service_fails_at_decoration(self):
        with pytest.raises(ValueError):
            with_rate_limit("smtp")
