# =============================================================================
# lib/cache.py - Redis Cache Service
# =============================================================================
# Thin JSON cache over Redis shared by the API and the Celery workers.
#
# The cache is an optimisation, never a source of truth: every operation
# logs and swallows Redis errors so an outage degrades to cache misses
# instead of failed requests.
#
# Usage:
#   from lib.cache import CacheService, CacheKeys
#   CacheService.set(CacheKeys.user(user_id), user, ttl=300)
#   user = CacheService.get(CacheKeys.user(user_id))
# =============================================================================

from __future__ import annotations

import json
import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator

import redis

from app.config import settings

logger = logging.getLogger(__name__)

DEFAULT_TTL = 3600
SCAN_COUNT = 100
DELETE_BATCH_SIZE = 1000

# After a failed connection we wait this long before trying again,
# so a dead Redis doesn't add a connect timeout to every request.
RECONNECT_BACKOFF_SECONDS = 30

_client: redis.Redis | None = None
_last_failure: float = 0.0


def get_redis() -> redis.Redis | None:
    """
    Get the shared Redis client, or None when Redis is unreachable.

    The client is created lazily and verified with a PING.
    """
    global _client, _last_failure

    if _client is not None:
        return _client

    if _last_failure and time.monotonic() - _last_failure < RECONNECT_BACKOFF_SECONDS:
        return None

    try:
        client = redis.Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        client.ping()
        _client = client
        _last_failure = 0.0
        logger.info("Redis cache connected")
    except redis.RedisError as e:
        _last_failure = time.monotonic()
        logger.warning(f"Redis unavailable, caching disabled: {e}")
        return None

    return _client


def reset_redis() -> None:
    """Drop the shared client (used on shutdown and in tests)."""
    global _client, _last_failure
    if _client is not None:
        try:
            _client.close()
        except redis.RedisError:
            logger.debug("Error closing Redis client", exc_info=True)
    _client = None
    _last_failure = 0.0


# =============================================================================
# Cache Keys
# =============================================================================

CACHE_VERSION = "v1"


class CacheKeys:
    """
    Builders for every cache key used by the application.

    Keys are prefixed with a version so a format change can be rolled out
    by bumping CACHE_VERSION instead of flushing Redis.
    """

    @staticmethod
    def user(user_id: str) -> str:
        return f"{CACHE_VERSION}:user:{user_id}"

    @staticmethod
    def subscription(user_id: str) -> str:
        return f"{CACHE_VERSION}:subscription:{user_id}"

    @staticmethod
    def feature_access(user_id: str, plan: str) -> str:
        return f"{CACHE_VERSION}:feature-access:{user_id}:{plan}"

    @staticmethod
    def feature_access_pattern(user_id: str) -> str:
        return f"{CACHE_VERSION}:feature-access:{user_id}:*"

    @staticmethod
    def article(article_id: str) -> str:
        return f"{CACHE_VERSION}:article:{article_id}"

    @staticmethod
    def articles_list(query_hash: str) -> str:
        return f"{CACHE_VERSION}:articles:list:{query_hash}"

    @staticmethod
    def articles_pattern() -> str:
        return f"{CACHE_VERSION}:articles:*"

    @staticmethod
    def article_sources() -> str:
        return f"{CACHE_VERSION}:articles:sources"

    @staticmethod
    def article_count(user_id: str) -> str:
        return f"{CACHE_VERSION}:article-count:{user_id}"

    @staticmethod
    def note(note_id: str) -> str:
        return f"{CACHE_VERSION}:note:{note_id}"

    @staticmethod
    def note_count(user_id: str) -> str:
        return f"{CACHE_VERSION}:note-count:{user_id}"

    @staticmethod
    def summary(summary_id: str) -> str:
        return f"{CACHE_VERSION}:summary:{summary_id}"

    @staticmethod
    def summary_usage(user_id: str, year: int, month: int) -> str:
        return f"{CACHE_VERSION}:summary-usage:{user_id}:{year}-{month:02d}"

    @staticmethod
    def rate_limit(identifier: str) -> str:
        return f"{CACHE_VERSION}:ratelimit:{identifier}"


def summary_usage_key(user_id: str, when: datetime | None = None) -> str:
    """
    Monthly summary-usage key for the month containing `when`.

    Callers that count a summary created at a known time (the worker)
    pass that time, so a job finishing after midnight on the 1st still
    counts towards the month the summary was requested in.
    """
    when = when or datetime.now(timezone.utc)
    return CacheKeys.summary_usage(user_id, when.year, when.month)


# =============================================================================
# Cache Service
# =============================================================================

class CacheService:
    """
    JSON cache operations over Redis.

    All methods are static and safe to call when Redis is down.
    """

    @staticmethod
    def get(key: str) -> Any | None:
        client = get_redis()
        if client is None:
            return None

        try:
            raw = client.get(key)
            if raw is None:
                return None
            return json.loads(raw)
        except (redis.RedisError, ValueError) as e:
            logger.warning(f"Cache get failed for {key}: {e}")
            return None

    @staticmethod
    def set(key: str, value: Any, ttl: int = DEFAULT_TTL) -> bool:
        client = get_redis()
        if client is None:
            return False

        try:
            client.setex(key, ttl, json.dumps(value, default=str))
            return True
        except (redis.RedisError, TypeError) as e:
            logger.warning(f"Cache set failed for {key}: {e}")
            return False

    @staticmethod
    def delete(key: str) -> bool:
        client = get_redis()
        if client is None:
            return False

        try:
            client.delete(key)
            return True
        except redis.RedisError as e:
            logger.warning(f"Cache delete failed for {key}: {e}")
            return False

    @staticmethod
    def delete_pattern(pattern: str) -> int:
        """
        Delete every key matching a glob pattern.

        Walks the keyspace with SCAN so large databases are never blocked
        the way KEYS would block them.

        Returns:
            Number of keys deleted
        """
        client = get_redis()
        if client is None:
            return 0

        deleted = 0
        batch: list[str] = []
        try:
            for key in client.scan_iter(match=pattern, count=SCAN_COUNT):
                batch.append(key)
                if len(batch) >= DELETE_BATCH_SIZE:
                    deleted += client.delete(*batch)
                    batch = []
            if batch:
                deleted += client.delete(*batch)
        except redis.RedisError as e:
            logger.warning(f"Cache delete_pattern failed for {pattern}: {e}")

        if deleted:
            logger.debug(f"Deleted {deleted} cache keys matching {pattern}")
        return deleted

    @staticmethod
    def exists(key: str) -> bool:
        client = get_redis()
        if client is None:
            return False

        try:
            return client.exists(key) > 0
        except redis.RedisError as e:
            logger.warning(f"Cache exists failed for {key}: {e}")
            return False

    @staticmethod
    def get_ttl(key: str) -> int:
        """Remaining TTL in seconds; -2 when the key is missing or Redis is down."""
        client = get_redis()
        if client is None:
            return -2

        try:
            return client.ttl(key)
        except redis.RedisError as e:
            logger.warning(f"Cache ttl failed for {key}: {e}")
            return -2

    @staticmethod
    def increment(key: str, ttl: int = DEFAULT_TTL) -> int:
        """
        Increment a counter, setting its TTL when it is first created.

        Returns:
            New value, or 0 when Redis is unavailable
        """
        client = get_redis()
        if client is None:
            return 0

        try:
            value = client.incr(key)
            if value == 1:
                client.expire(key, ttl)
            return value
        except redis.RedisError as e:
            logger.warning(f"Cache increment failed for {key}: {e}")
            return 0

    @staticmethod
    def decrement(key: str) -> int | None:
        """
        Decrement an existing counter.

        A missing counter is left alone (the next read recounts from the
        database), so a decrement never creates a negative value.
        """
        client = get_redis()
        if client is None:
            return None

        try:
            if not client.exists(key):
                return None
            value = client.decr(key)
            if value < 0:
                client.delete(key)
                return None
            return value
        except redis.RedisError as e:
            logger.warning(f"Cache decrement failed for {key}: {e}")
            return None

    @staticmethod
    @contextmanager
    def lock(name: str, timeout: int = 10, blocking_timeout: float = 5) -> Iterator[bool]:
        """
        Distributed lock built on redis-py's Lock.

        Yields True when the lock was acquired. When Redis is unavailable
        the body still runs and the context yields False.

        Usage:
            with CacheService.lock(f"stripe-customer:{user_id}") as acquired:
                ...
        """
        client = get_redis()
        if client is None:
            yield False
            return

        lock = client.lock(f"lock:{name}", timeout=timeout, blocking_timeout=blocking_timeout)
        acquired = False
        try:
            acquired = bool(lock.acquire())
        except redis.RedisError as e:
            logger.warning(f"Could not acquire lock {name}: {e}")

        try:
            yield acquired
        finally:
            if acquired:
                try:
                    lock.release()
                except redis.exceptions.LockError:
                    logger.warning(f"Lock {name} expired before release")
                except redis.RedisError as e:
                    logger.warning(f"Error releasing lock {name}: {e}")

    @staticmethod
    def get_stats() -> dict[str, Any]:
        client = get_redis()
        if client is None:
            return {"available": False}

        try:
            info = client.info()
            hits = info.get("keyspace_hits", 0)
            misses = info.get("keyspace_misses", 0)
            total = hits + misses
            return {
                "available": True,
                "keys": client.dbsize(),
                "used_memory": info.get("used_memory_human"),
                "connected_clients": info.get("connected_clients"),
                "hits": hits,
                "misses": misses,
                "hit_rate": round(hits / total * 100, 2) if total else 0.0,
            }
        except redis.RedisError as e:
            logger.warning(f"Cache stats failed: {e}")
            return {"available": False, "error": str(e)}

    @staticmethod
    def is_available() -> bool:
        client = get_redis()
        if client is None:
            return False
        try:
            return bool(client.ping())
        except redis.RedisError:
            return False
