# File: sparkle_api/services/rate_limit.py

"""
Fixed-window counters in Redis: failed-login throttling and per-key request
limits. With no Redis configured every check passes.
"""

from dataclasses import dataclass

from sparkle_api.core.config import settings
from sparkle_api.core.redis import get_redis


@dataclass(frozen=True)
class LoginAttemptStatus:
    allowed: bool
    remaining_attempts: int


@dataclass(frozen=True)
class RateLimitStatus:
    allowed: bool
    remaining: int
    reset_in: int


def check_login_attempts(identifier: str) -> LoginAttemptStatus:
    """
    Count one login attempt for ``identifier``.

    The counter starts expiring on the first attempt, so an identifier is
    locked out for the rest of LOCKOUT_DURATION once it passes the limit.
    """
    max_attempts = settings.max_login_attempts
    redis = get_redis()
    if redis is None:
        return LoginAttemptStatus(allowed=True, remaining_attempts=max_attempts)

    key = f"login_attempts:{identifier}"
    attempts = redis.incr(key)
    if attempts == 1:
        redis.expire(key, settings.lockout_duration_seconds)

    return LoginAttemptStatus(
        allowed=attempts <= max_attempts,
        remaining_attempts=max(0, max_attempts - attempts),
    )


def reset_login_attempts(identifier: str) -> None:
    redis = get_redis()
    if redis is not None:
        redis.delete(f"login_attempts:{identifier}")


class RateLimiter:
    def __init__(self, name: str, window_ms: int, max_requests: int) -> None:
        self.name = name
        self.window_seconds = max(1, window_ms // 1000)
        self.max_requests = max_requests

    def _key(self, key: str) -> str:
        return f"ratelimit:{self.name}:{key}"

    def hit(self, key: str) -> RateLimitStatus:
        redis = get_redis()
        if redis is None:
            return RateLimitStatus(allowed=True, remaining=self.max_requests, reset_in=0)

        redis_key = self._key(key)
        count = redis.incr(redis_key)
        if count == 1:
            redis.expire(redis_key, self.window_seconds)
        ttl = redis.ttl(redis_key)

        return RateLimitStatus(
            allowed=count <= self.max_requests,
            remaining=max(0, self.max_requests - count),
            reset_in=ttl if ttl and ttl > 0 else self.window_seconds,
        )

    def reset(self, key: str) -> None:
        redis = get_redis()
        if redis is not None:
            redis.delete(self._key(key))


registration_limiter = RateLimiter("register", window_ms=15 * 60 * 1000, max_requests=5)

api_limiter = RateLimiter(
    "api",
    window_ms=settings.rate_limit_window,
    max_requests=settings.rate_limit_max_requests,
)
