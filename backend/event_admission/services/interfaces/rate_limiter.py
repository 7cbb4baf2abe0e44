"""
Rate limiter strategy interface.
Allows swapping between storage backends for the sliding window.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RateLimitResult:
    """
    Verdict for a single attempt.

    Attributes:
        allowed: Whether the attempt may proceed
        current_count: Attempts in the window, including this one when allowed
        max_requests: Budget for the action
        reset_in_ms: Milliseconds until the oldest counted attempt leaves the window
        message: Human-readable summary, safe to show to the caller
    """

    allowed: bool
    current_count: int
    max_requests: int
    reset_in_ms: int
    message: str

    @property
    def retry_after_seconds(self) -> int:
        return math.ceil(self.reset_in_ms / 1000)


class RateLimiter(ABC):
    """
    Interface for sliding-window rate limiters.

    Implementations:
    - DatabaseRateLimiter: records in the primary database (authoritative)
    - RedisRateLimiter: sorted sets updated by a Lua script
    """

    @abstractmethod
    async def check_and_record(
        self,
        actor_id,
        action,
        now_ms: Optional[int] = None,
    ) -> RateLimitResult:
        """
        Decide whether an attempt is allowed and record it if so.

        A rejected attempt is never counted and leaves stored state untouched.

        Args:
            actor_id: Who is attempting the action
            action: A RateLimitAction (or its string value)
            now_ms: Current time in epoch milliseconds, defaults to wall clock

        Returns:
            RateLimitResult verdict
        """
        pass

    @abstractmethod
    async def sweep_expired(self, now_ms: Optional[int] = None, batch_size: int = 100) -> int:
        """
        Delete state whose window has fully expired.

        Args:
            now_ms: Current time in epoch milliseconds
            batch_size: Maximum records to delete in one call

        Returns:
            Number of records deleted
        """
        pass
