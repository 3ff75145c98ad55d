# =============================================================================
# Unit Tests — Embedding Rate Limiters
# =============================================================================
#
# Time is simulated with a fake clock whose sleep() advances the clock, so
# no test actually waits. Redis is a MagicMock.
# =============================================================================

from unittest.mock import MagicMock, patch

import pytest
import redis

from tutor.config import Settings
from tutor.services.rate_limiter import (
    RedisSlidingWindowRateLimiter,
    TokenBucketRateLimiter,
    build_rate_limiter,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class TestTokenBucketRateLimiter:
    def test_first_call_passes_immediately(self):
        clock = FakeClock()
        limiter = TokenBucketRateLimiter(rate=2.0, clock=clock, sleep=clock.sleep)

        limiter.acquire()

        assert clock.sleeps == []

    def test_back_to_back_calls_are_spaced(self):
        clock = FakeClock()
        limiter = TokenBucketRateLimiter(rate=2.0, clock=clock, sleep=clock.sleep)

        for _ in range(3):
            limiter.acquire()

        assert clock.sleeps == pytest.approx([0.5, 0.5])
        assert clock.now == pytest.approx(1.0)

    def test_no_wait_after_idle_period(self):
        clock = FakeClock()
        limiter = TokenBucketRateLimiter(rate=2.0, clock=clock, sleep=clock.sleep)

        limiter.acquire()
        clock.now += 1.0
        limiter.acquire()

        assert clock.sleeps == []

    def test_partial_refill_waits_for_remainder(self):
        clock = FakeClock()
        limiter = TokenBucketRateLimiter(rate=1.0, clock=clock, sleep=clock.sleep)

        limiter.acquire()
        clock.now += 0.25
        limiter.acquire()

        assert clock.sleeps == pytest.approx([0.75])

    def test_invalid_rate(self):
        with pytest.raises(ValueError):
            TokenBucketRateLimiter(rate=0)

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            TokenBucketRateLimiter(rate=1.0, capacity=0.5)


class TestRedisSlidingWindowRateLimiter:
    def _limiter(self, client, clock, limit=2):
        return RedisSlidingWindowRateLimiter(
            client=client,
            key="ratelimit:test",
            limit=limit,
            clock=clock,
            sleep=clock.sleep,
        )

    def test_under_limit_passes(self):
        client = MagicMock()
        client.pipeline.return_value.execute.return_value = [0, 1, 1, True]
        clock = FakeClock()

        self._limiter(client, clock).acquire()

        assert clock.sleeps == []
        client.zrem.assert_not_called()

    def test_over_limit_waits_then_passes(self):
        client = MagicMock()
        client.pipeline.return_value.execute.side_effect = [
            [0, 2, 1, True],
            [1, 1, 1, True],
        ]
        clock = FakeClock()

        self._limiter(client, clock).acquire()

        assert clock.sleeps == [0.05]
        client.zrem.assert_called_once()

    def test_redis_error_allows_call(self):
        client = MagicMock()
        client.pipeline.return_value.execute.side_effect = redis.ConnectionError("down")
        clock = FakeClock()

        self._limiter(client, clock).acquire()

        assert clock.sleeps == []

    def test_invalid_limit(self):
        with pytest.raises(ValueError):
            RedisSlidingWindowRateLimiter(client=MagicMock(), key="k", limit=0)

    def test_invalid_window(self):
        with pytest.raises(ValueError, match="window_seconds"):
            RedisSlidingWindowRateLimiter(client=MagicMock(), key="k", limit=1, window_seconds=0)

    def test_prunes_members_older_than_window(self):
        client = MagicMock()
        pipe = client.pipeline.return_value
        pipe.execute.return_value = [0, 0, 1, True]
        clock = FakeClock()
        limiter = RedisSlidingWindowRateLimiter(
            client=client, key="ratelimit:test", limit=1, window_seconds=0.3,
            clock=clock, sleep=clock.sleep,
        )

        limiter.acquire()

        _, low, high = pipe.zremrangebyscore.call_args.args
        assert low == 0
        assert high == pytest.approx(clock() - 0.3)


class TestBuildRateLimiter:
    def test_local_builds_token_bucket(self):
        limiter = build_rate_limiter(Settings(embedding_min_interval_seconds=0.3))
        assert isinstance(limiter, TokenBucketRateLimiter)

    def test_zero_interval_disables_pacing(self):
        limiter = build_rate_limiter(Settings(embedding_min_interval_seconds=0))
        assert not isinstance(limiter, TokenBucketRateLimiter)
        limiter.acquire()

    def test_redis_builds_sliding_window(self):
        with patch("tutor.services.rate_limiter.redis.Redis.from_url") as from_url:
            limiter = build_rate_limiter(
                Settings(
                    embedding_rate_limiter="redis",
                    rate_limit_redis_url="redis://cache:6379/2",
                )
            )

        assert isinstance(limiter, RedisSlidingWindowRateLimiter)
        from_url.assert_called_once_with("redis://cache:6379/2")
        assert limiter._limit == 1
        assert limiter._window == pytest.approx(0.3)

    def test_redis_window_follows_interval(self):
        with patch("tutor.services.rate_limiter.redis.Redis.from_url"):
            limiter = build_rate_limiter(
                Settings(embedding_rate_limiter="redis", embedding_min_interval_seconds=2.5)
            )

        assert limiter._limit == 1
        assert limiter._window == pytest.approx(2.5)

    def test_zero_interval_disables_redis_pacing(self):
        with patch("tutor.services.rate_limiter.redis.Redis.from_url") as from_url:
            limiter = build_rate_limiter(
                Settings(embedding_rate_limiter="redis", embedding_min_interval_seconds=0)
            )

        assert not isinstance(limiter, RedisSlidingWindowRateLimiter)
        from_url.assert_not_called()
