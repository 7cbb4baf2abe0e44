"""
Redis-backed sliding window rate limiter.
Implements the RateLimiter interface with a sorted set per (actor, action).

The whole check-and-record runs inside one Lua script, so it is atomic per
key without any client-side locking. Keys carry a PEXPIRE equal to the
window, which makes the maintenance sweep unnecessary for this backend.

Circuit Breaker Pattern:
  On Redis failure, the limiter "fails open" (allows the attempt).
  This prevents Redis outages from blocking all registrations.
  The database remains authoritative for capacity; throttling is advisory.

  Tradeoff: During a Redis outage, abusive clients are not throttled.
  This is acceptable because:
  - Temporary degradation is better than a total registration outage
  - Capacity reconciliation still holds regardless of request volume
  - Redis failures should be rare and are counted in metrics
"""

import os
import time
import uuid
from typing import Optional

import redis.asyncio as redis

from event_admission.core import clock
from event_admission.core.logging import get_logger
from event_admission.core.metrics import (
    rate_limit_latency,
    record_rate_limit_decision,
    redis_circuit_breaker_open,
    redis_connection_errors,
)
from event_admission.core.rate_limits import (
    RateLimitAction,
    RateLimitActionConfig,
    get_rate_limit_actions,
    resolve_action,
)
from event_admission.infrastructure.redis_client import get_redis
from event_admission.services.interfaces.rate_limiter import RateLimiter, RateLimitResult
from event_admission.services.rate_limit_service import allowed_result, rejected_result

logger = get_logger(__name__)

# Load Lua script
SCRIPT_PATH = os.path.join(os.path.dirname(__file__), '../infrastructure/sliding_window.lua')
with open(SCRIPT_PATH, 'r') as f:
    SLIDING_WINDOW_SCRIPT = f.read()


class RedisRateLimiter(RateLimiter):
    """
    Redis-based rate limiting.

    Use when:
    - Attempt volume is high enough that rate limit writes would contend
      with registration writes in the primary database
    - Throttling may degrade (fail open) during a Redis outage
    """

    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        actions: Optional[dict[RateLimitAction, RateLimitActionConfig]] = None,
        key_prefix: str = "ratelimit",
    ):
        self.client = client
        self.actions = actions or get_rate_limit_actions()
        self.key_prefix = key_prefix
        self._script = None

    async def _get_script(self):
        if self.client is None:
            self.client = await get_redis()
            if self.client is None:
                raise ConnectionError("Redis is disabled or unreachable")
        if self._script is None:
            self._script = self.client.register_script(SLIDING_WINDOW_SCRIPT)
        return self._script

    def _key(self, actor_id, action: RateLimitAction) -> str:
        return f"{self.key_prefix}:{actor_id}:{action.value}"

    async def check_and_record(
        self,
        actor_id,
        action,
        now_ms: Optional[int] = None,
    ) -> RateLimitResult:
        action = resolve_action(action)
        config = self.actions[action]
        now_ms = clock.now_ms() if now_ms is None else now_ms
        started = time.perf_counter()

        try:
            script = await self._get_script()
            allowed, count, oldest_ms = await script(
                keys=[self._key(actor_id, action)],
                args=[now_ms, config.window_ms, config.max_requests, uuid.uuid4().hex],
            )
        except Exception as e:
            # Circuit breaker: On Redis failure, fail open
            redis_connection_errors.inc()
            redis_circuit_breaker_open.set(1)
            logger.error("rate_limit_backend_unavailable", action=action.value, error=str(e))
            return RateLimitResult(
                allowed=True,
                current_count=0,
                max_requests=config.max_requests,
                reset_in_ms=0,
                message="Rate limiter unavailable, request allowed",
            )

        redis_circuit_breaker_open.set(0)
        rate_limit_latency.observe(time.perf_counter() - started)

        if int(allowed):
            result = allowed_result(int(count), config)
        else:
            result = rejected_result(int(count), int(oldest_ms) + config.window_ms - now_ms, config)
            logger.warning(
                "rate_limit_exceeded",
                actor_id=str(actor_id),
                action=action.value,
                current_count=result.current_count,
                reset_in_ms=result.reset_in_ms,
            )

        record_rate_limit_decision(action.value, result.allowed)
        return result

    async def sweep_expired(self, now_ms: Optional[int] = None, batch_size: int = 100) -> int:
        """No-op - keys expire on their own via PEXPIRE."""
        return 0
