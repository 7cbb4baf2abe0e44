"""
Rate limiter factory.
Configures which rate limit backend to use.
"""

from typing import Optional

from event_admission.core.config import get_settings
from event_admission.db.session import SessionLocal
from event_admission.services.interfaces.rate_limiter import RateLimiter
from event_admission.services.rate_limit_service import DatabaseRateLimiter
from event_admission.services.redis_rate_limiter import RedisRateLimiter


def build_rate_limiter() -> RateLimiter:
    """
    Build the configured rate limiter.

    Backend selection via RATE_LIMIT_BACKEND:
    - "database" (default): DatabaseRateLimiter, same store as registrations
    - "redis": RedisRateLimiter, fails open if Redis is down
    """
    backend = get_settings().RATE_LIMIT_BACKEND

    if backend == "redis":
        return RedisRateLimiter()
    if backend == "database":
        return DatabaseRateLimiter(SessionLocal)
    raise ValueError(f"Unknown RATE_LIMIT_BACKEND: {backend!r}")


# Singleton instance
_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """Get rate limiter singleton. Also used as a FastAPI dependency."""
    global _limiter
    if _limiter is None:
        _limiter = build_rate_limiter()
    return _limiter
