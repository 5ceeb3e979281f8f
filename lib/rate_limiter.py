# =============================================================================
# lib/rate_limiter.py - Rate Limiting Utilities
# =============================================================================
# Two limiters live here:
#
# 1. check_rate_limit() - fixed-window attempt counter used by the auth
#    flows (login lockout, password reset requests, token verification).
#    Falls back to an in-process store when Redis is unreachable so the
#    security limits keep working on a single instance.
#
# 2. check_worker_rate_limit() - sliding-window limiter used by Celery
#    workers before calling external services (OpenAI, RSS hosts, email, PDF).
#    Backed by a Redis sorted set of request timestamps, trimmed, counted
#    and appended by one Lua script. When Redis is unavailable it allows the call: a worker must not stall on a cache
#    outage.
#
# HTTP request throttling lives in app/limiter.py (slowapi).
# =============================================================================

from __future__ import annotations

import functools
import logging
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable

import redis

from app.exceptions import RateLimitExceededError
from lib.cache import CacheKeys, get_redis

logger = logging.getLogger(__name__)


# =============================================================================
# Fixed-Window Attempt Limiter
# =============================================================================

@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a rate limit check."""
    allowed: bool
    remaining: int
    reset_at: float  # Unix timestamp when the window resets

    @property
    def retry_after(self) -> int:
        return max(0, int(self.reset_at - time.time()))


_memory_store: dict[str, tuple[int, float]] = {}
_memory_lock = threading.Lock()


def _key(key: str) -> str:
    return CacheKeys.rate_limit(key)


def _prune_memory(now: float) -> None:
    """Drop windows that have ended. Caller holds _memory_lock."""
    expired = [key for key, (_, reset_at) in _memory_store.items() if reset_at <= now]
    for key in expired:
        del _memory_store[key]


def _check_memory(key: str, max_attempts: int, window_seconds: int) -> RateLimitResult:
    now = time.time()
    with _memory_lock:
        _prune_memory(now)
        count, reset_at = _memory_store.get(key, (0, now + window_seconds))
        if reset_at <= now:
            count, reset_at = 0, now + window_seconds
        count += 1
        _memory_store[key] = (count, reset_at)

    return RateLimitResult(
        allowed=count <= max_attempts,
        remaining=max(0, max_attempts - count),
        reset_at=reset_at,
    )


def check_rate_limit(key: str, max_attempts: int, window_seconds: int) -> RateLimitResult:
    """
    Count one attempt against `key` and report whether it is allowed.

    Args:
        key: Identifier of what is being limited (e.g. "login:user@x.com")
        max_attempts: Attempts allowed per window
        window_seconds: Window length

    Returns:
        RateLimitResult
    """
    client = get_redis()
    if client is None:
        return _check_memory(_key(key), max_attempts, window_seconds)

    redis_key = _key(key)
    try:
        pipe = client.pipeline()
        pipe.incr(redis_key)
        pipe.ttl(redis_key)
        count, ttl = pipe.execute()

        if count == 1 or ttl < 0:
            client.expire(redis_key, window_seconds)
            ttl = window_seconds

        return RateLimitResult(
            allowed=count <= max_attempts,
            remaining=max(0, max_attempts - count),
            reset_at=time.time() + ttl,
        )
    except redis.RedisError as e:
        logger.warning(f"Rate limit check fell back to memory for {key}: {e}")
        return _check_memory(redis_key, max_attempts, window_seconds)


def reset_rate_limit(key: str) -> None:
    """Clear the attempts counted against `key` (e.g. after a successful login)."""
    redis_key = _key(key)
    with _memory_lock:
        _memory_store.pop(redis_key, None)

    client = get_redis()
    if client is None:
        return
    try:
        client.delete(redis_key)
    except redis.RedisError as e:
        logger.warning(f"Failed to reset rate limit for {key}: {e}")


def get_remaining_attempts(key: str, max_attempts: int) -> int:
    """Attempts left in the current window, without counting a new one."""
    redis_key = _key(key)
    client = get_redis()

    count = 0
    if client is not None:
        try:
            count = int(client.get(redis_key) or 0)
        except redis.RedisError as e:
            logger.warning(f"Failed to read rate limit for {key}: {e}")
    else:
        with _memory_lock:
            stored = _memory_store.get(redis_key)
        if stored and stored[1] > time.time():
            count = stored[0]

    return max(0, max_attempts - count)


# =============================================================================
# Sliding-Window Worker Limiter
# =============================================================================

@dataclass(frozen=True)
class WorkerRateLimit:
    max_requests: int
    window_seconds: int


WORKER_RATE_LIMITS: dict[str, WorkerRateLimit] = {
    # OpenAI: stay well under the account's requests-per-minute quota
    "openai": WorkerRateLimit(max_requests=50, window_seconds=60),
    # RSS: be polite to feed hosts
    "rss": WorkerRateLimit(max_requests=100, window_seconds=300),
    # Email provider hourly quota
    "email": WorkerRateLimit(max_requests=100, window_seconds=3600),
    # PDF text extraction
    "pdf": WorkerRateLimit(max_requests=20, window_seconds=60),
}


def _worker_key(service: str, identifier: str) -> str:
    return f"worker:ratelimit:{service}:{identifier}"


def _get_limit(service: str) -> WorkerRateLimit:
    try:
        return WORKER_RATE_LIMITS[service]
    except KeyError:
        raise ValueError(
            f"Unknown rate-limited service: {service}. "
            f"Expected one of: {', '.join(WORKER_RATE_LIMITS)}"
        ) from None


# Trim, count and conditionally add in one server-side step so concurrent
# workers can't both take the last slot.
# KEYS[1] = sorted set; ARGV = window_start, now, member, max_requests, window_seconds
_SLIDING_WINDOW_SCRIPT = """
redis.call('ZREMRANGEBYSCORE', KEYS[1], 0, ARGV[1])
local count = redis.call('ZCARD', KEYS[1])
if count >= tonumber(ARGV[4]) then
    return {0, count}
end
redis.call('ZADD', KEYS[1], ARGV[2], ARGV[3])
redis.call('EXPIRE', KEYS[1], ARGV[5])
return {1, count + 1}
"""


def check_worker_rate_limit(service: str, identifier: str = "global") -> bool:
    """
    Record a call to `service` and report whether it fits in the window.

    The window slides: a call is allowed when fewer than max_requests
    calls were recorded in the last window_seconds. Rejected calls are
    not recorded, so a blocked caller doesn't extend its own wait. The
    check and the insert run as one Lua script.

    Returns:
        True if the call may proceed
    """
    limit = _get_limit(service)
    client = get_redis()
    if client is None:
        return True

    key = _worker_key(service, identifier)
    now = time.time()

    try:
        script = client.register_script(_SLIDING_WINDOW_SCRIPT)
        allowed, count = script(
            keys=[key],
            args=[
                now - limit.window_seconds,
                now,
                f"{now}:{uuid.uuid4().hex[:8]}",
                limit.max_requests,
                limit.window_seconds,
            ],
        )
    except redis.RedisError as e:
        logger.warning(f"Worker rate limit check failed for {service}, allowing: {e}")
        return True

    if not allowed:
        logger.warning(
            f"Worker rate limit hit for {service}:{identifier} "
            f"({count}/{limit.max_requests} in {limit.window_seconds}s)"
        )
        return False
    return True


def get_worker_rate_limit_count(service: str, identifier: str = "global") -> int | None:
    """Calls recorded in the current window, or None when Redis is down."""
    limit = _get_limit(service)
    client = get_redis()
    if client is None:
        return None

    key = _worker_key(service, identifier)
    try:
        return client.zcount(key, time.time() - limit.window_seconds, "+inf")
    except redis.RedisError as e:
        logger.warning(f"Failed to read worker rate limit for {service}: {e}")
        return None


def reset_worker_rate_limit(service: str, identifier: str = "global") -> None:
    _get_limit(service)
    client = get_redis()
    if client is None:
        return
    try:
        client.delete(_worker_key(service, identifier))
    except redis.RedisError as e:
        logger.warning(f"Failed to reset worker rate limit for {service}: {e}")


def wait_for_rate_limit(
    service: str,
    identifier: str = "global",
    max_retries: int = 5,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """
    Block until the worker limiter allows a call, backing off exponentially.

    Checks once, then retries up to max_retries times, waiting 1s, 2s,
    4s... before each retry: max_retries + 1 checks in total, and no
    sleep after the last rejected one.

    Returns:
        True once allowed, False when every check was rejected
    """
    for attempt in range(max_retries + 1):
        if check_worker_rate_limit(service, identifier):
            return True
        if attempt == max_retries:
            break
        delay = 2 ** attempt
        logger.info(f"Rate limited on {service}, retrying in {delay}s ({attempt + 1}/{max_retries})")
        sleep(delay)

    logger.error(f"Gave up waiting for {service} rate limit after {max_retries} retries")
    return False


def with_rate_limit(service: str):
    """
    Decorator that checks the worker limiter before each call.

    The first positional argument is used as the identifier, so limits
    apply per user (or per feed) rather than globally.

    Raises:
        RateLimitExceededError: when the limit is reached

    Example:
        @with_rate_limit("openai")
        def summarize(user_id: str, text: str) -> str:
            ...
    """
    _get_limit(service)

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            identifier = str(args[0]) if args else "global"
            if not check_worker_rate_limit(service, identifier):
                raise RateLimitExceededError(
                    f"Rate limit exceeded for {service}",
                    retry_after=WORKER_RATE_LIMITS[service].window_seconds,
                )
            return func(*args, **kwargs)
        return wrapper
    return decorator
