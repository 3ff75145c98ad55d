# =============================================================================
# Rate Limiters — Pacing for Embedding Calls
# =============================================================================
#
# The embedding service enforces its own request limits. Ingestion calls
# `acquire()` before every embedding request and blocks until a slot is
# free. The limiter is injected into the ingestion orchestrator, so the
# pacing policy can change without touching embedding code.
#
# ARCHITECTURE:
#   RateLimiter (Protocol)
#   ├── TokenBucketRateLimiter        — in-process, thread-safe
#   │   default: capacity 1, one token per 0.3 s → one call every 300 ms
#   └── RedisSlidingWindowRateLimiter — shared across worker processes
#       sorted set of call timestamps per key; when Redis is unreachable
#       the call is allowed through with a warning
# =============================================================================

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Callable
from typing import Protocol

import redis

from tutor.config import Settings

logger = logging.getLogger(__name__)


class RateLimiter(Protocol):
    """Blocks the caller until one more call is allowed."""

    def acquire(self) -> None:
        ...


# ---------------------------------------------------------------------------
# Implementation 1: In-Process Token Bucket
# ---------------------------------------------------------------------------


class TokenBucketRateLimiter:
    """
    Classic token bucket.

    Tokens refill continuously at `rate` per second up to `capacity`.
    Each acquire() takes one token, sleeping for the deficit if the bucket
    is empty. The bucket starts full, so the first `capacity` calls pass
    immediately.

    `clock` and `sleep` are injectable for tests.
    """

    def __init__(
        self,
        rate: float,
        capacity: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if rate <= 0:
            raise ValueError(f"rate must be positive, got {rate}")
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")

        self._rate = rate
        self._capacity = capacity
        self._clock = clock
        self._sleep = sleep
        self._tokens = capacity
        self._last = clock()
        self._lock = threading.Lock()

    def acquire(self) -> None:
        with self._lock:
            now = self._clock()
            self._tokens = min(
                self._capacity, self._tokens + (now - self._last) * self._rate,
            )
            self._last = now

            if self._tokens < 1:
                wait = (1 - self._tokens) / self._rate
                logger.debug("Rate limiter sleeping %.3fs", wait)
                self._sleep(wait)
                self._tokens = 1.0
                self._last = self._clock()

            self._tokens -= 1


# ---------------------------------------------------------------------------
# Implementation 2: Redis Sliding Window
# ---------------------------------------------------------------------------


class RedisSlidingWindowRateLimiter:
    """
    Sliding-window counter in a Redis sorted set.

    Each call adds a member scored by its timestamp. Members older than the
    window are pruned first, then the remaining count is compared with
    `limit`. Over the limit, the call's own member is removed again and the
    caller sleeps `poll_interval` before retrying.
    """

    def __init__(
        self,
        client: redis.Redis,
        key: str,
        limit: int,
        window_seconds: float = 1.0,
        poll_interval: float = 0.05,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if limit < 1:
            raise ValueError(f"limit must be at least 1, got {limit}")
        if window_seconds <= 0:
            raise ValueError(f"window_seconds must be positive, got {window_seconds}")

        self._client = client
        self._key = key
        self._limit = limit
        self._window = window_seconds
        self._poll_interval = poll_interval
        self._clock = clock
        self._sleep = sleep

    def acquire(self) -> None:
        while True:
            now = self._clock()
            member = f"{now}:{uuid.uuid4().hex}"

            try:
                pipe = self._client.pipeline()
                pipe.zremrangebyscore(self._key, 0, now - self._window)
                pipe.zcard(self._key)
                pipe.zadd(self._key, {member: now})
                pipe.expire(self._key, int(self._window) + 10)
                results = pipe.execute()

                if results[1] < self._limit:
                    return

                self._client.zrem(self._key, member)
            except redis.RedisError as e:
                logger.warning(
                    "Rate limiter unavailable (Redis error): %s. "
                    "Allowing call through.",
                    e,
                )
                return

            self._sleep(self._poll_interval)


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------


def build_rate_limiter(settings: Settings) -> RateLimiter:
    """
    Build the embedding limiter selected by `embedding_rate_limiter`.

    Both variants allow one call per `embedding_min_interval_seconds`:
    the token bucket refills at 1/interval, the Redis window admits one
    call per interval. An interval of zero or less disables pacing.
    """
    interval = settings.embedding_min_interval_seconds
    if interval <= 0:
        return _Unlimited()

    rate = 1.0 / interval

    if settings.embedding_rate_limiter == "redis":
        logger.info(
            "Using Redis sliding-window rate limiter (1 call per %.2fs)", interval,
        )
        return RedisSlidingWindowRateLimiter(
            client=redis.Redis.from_url(settings.rate_limit_redis_url),
            key=f"ratelimit:embedding:{settings.embedding_model}",
            limit=1,
            window_seconds=interval,
        )

    logger.info("Using in-process token bucket rate limiter (%.2f calls/s)", rate)
    return TokenBucketRateLimiter(rate=rate)


class _Unlimited:
    """Pacing disabled (embedding_min_interval_seconds <= 0)."""

    def acquire(self) -> None:
        return None
