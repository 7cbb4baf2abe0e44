"""Abstract rate limiter contract shared by the database and Redis backends."""

from .rate_limiter import RateLimiter, RateLimitResult

__all__ = ['RateLimiter', 'RateLimitResult']
