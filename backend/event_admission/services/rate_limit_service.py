"""
Database-backed sliding window rate limiter.

ALGORITHM: True Sliding Window
==============================

Each (actor, action) pair owns one record holding the epoch-millisecond
timestamps of its recent attempts. On every attempt:

  1. No record yet -> create it with [now] and allow
  2. Keep only timestamps > now - window (stale entries are dropped at read
     time, the list is the window itself, not a counter)
  3. count >= max_requests -> reject. The record is NOT modified, so a
     rejected attempt never counts against the caller. The reset hint is
     oldest_kept + window - now, clamped at zero
  4. Otherwise write back kept + [now] and allow with count + 1

Because only allowed attempts are appended and the list is filtered on every
write, the stored list never exceeds max_requests entries.

CONCURRENCY
===========

Each check runs as its own transaction on its own session, so a verdict is
committed before the guarded operation starts. Two races are possible:

  - Two first attempts both insert: the unique (actor_id, action) constraint
    rejects one, which rolls back and retries against the new record
  - Two attempts both update: the write is a compare-and-swap on `version`;
    the loser sees rowcount == 0, rolls back and retries with fresh data

MAINTENANCE
===========

Records are never deleted on the hot path. `sweep_expired` removes records
whose expires_at has passed, a bounded batch at a time, from a background
task started with the application. Correctness never depends on it.
"""

import asyncio
import math
import time
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from event_admission.core import clock
from event_admission.core.config import get_settings
from event_admission.core.errors import ConcurrencyConflictError, RateLimitExceededError
from event_admission.core.logging import get_logger
from event_admission.core.metrics import (
    rate_limit_latency,
    rate_limit_records_swept,
    record_db_retry,
    record_rate_limit_decision,
)
from event_admission.core.rate_limits import (
    RateLimitAction,
    RateLimitActionConfig,
    get_rate_limit_actions,
    resolve_action,
)
from event_admission.models.rate_limit import RateLimitRecord
from event_admission.services.interfaces.rate_limiter import RateLimiter, RateLimitResult

logger = get_logger(__name__)


def allowed_result(count: int, config: RateLimitActionConfig) -> RateLimitResult:
    return RateLimitResult(
        allowed=True,
        current_count=count,
        max_requests=config.max_requests,
        reset_in_ms=config.window_ms,
        message=f"Request allowed ({count}/{config.max_requests})",
    )


def rejected_result(count: int, reset_in_ms: int, config: RateLimitActionConfig) -> RateLimitResult:
    reset_in_ms = max(0, reset_in_ms)
    window_seconds = math.ceil(config.window_ms / 1000)
    retry_seconds = math.ceil(reset_in_ms / 1000)
    return RateLimitResult(
        allowed=False,
        current_count=count,
        max_requests=config.max_requests,
        reset_in_ms=reset_in_ms,
        message=(
            f"Rate limit exceeded for {config.description}. "
            f"Maximum {config.max_requests} requests per {window_seconds} seconds. "
            f"Try again in {retry_seconds} seconds."
        ),
    )


def evaluate_sliding_window(
    timestamps: list[int],
    now_ms: int,
    config: RateLimitActionConfig,
) -> tuple[RateLimitResult, Optional[list[int]]]:
    """
    Apply the sliding window to stored timestamps.

    Returns the verdict and, when allowed, the timestamp list to persist.
    The list is None on rejection: nothing should be written.
    """
    window_start = now_ms - config.window_ms
    recent = [ts for ts in timestamps if ts > window_start]
    current_count = len(recent)

    if current_count >= config.max_requests:
        oldest = min(recent)
        return rejected_result(current_count, oldest + config.window_ms - now_ms, config), None

    return allowed_result(current_count + 1, config), recent + [now_ms]


async def enforce_rate_limit(limiter: RateLimiter, actor_id, action) -> RateLimitResult:
    """Check the limit and raise RateLimitExceededError when the attempt is rejected."""
    result = await limiter.check_and_record(actor_id, action)
    if not result.allowed:
        raise RateLimitExceededError(result)
    return result


class DatabaseRateLimiter(RateLimiter):
    """
    Rate limiter persisted in the primary database.

    Use when:
    - Limits must survive restarts and be shared by every worker
    - Redis is not deployed, or must not be trusted for abuse protection
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        actions: Optional[dict[RateLimitAction, RateLimitActionConfig]] = None,
        max_retries: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.actions = actions or get_rate_limit_actions()
        self.max_retries = max_retries or get_settings().MAX_TRANSACTION_RETRIES

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

        async with self.session_factory() as session:
            result = await self._check_and_record(session, str(actor_id), action, config, now_ms)

        rate_limit_latency.observe(time.perf_counter() - started)
        record_rate_limit_decision(action.value, result.allowed)
        if not result.allowed:
            logger.warning(
                "rate_limit_exceeded",
                actor_id=str(actor_id),
                action=action.value,
                current_count=result.current_count,
                reset_in_ms=result.reset_in_ms,
            )
        return result

    async def _check_and_record(
        self,
        session: AsyncSession,
        actor_id: str,
        action: RateLimitAction,
        config: RateLimitActionConfig,
        now_ms: int,
    ) -> RateLimitResult:
        window_start = now_ms - config.window_ms
        expires_at = now_ms + config.window_ms

        for attempt in range(1, self.max_retries + 1):
            result = await session.execute(
                select(RateLimitRecord).where(
                    RateLimitRecord.actor_id == actor_id,
                    RateLimitRecord.action == action.value,
                )
            )
            record = result.scalar_one_or_none()

            if record is None:
                session.add(
                    RateLimitRecord(
                        actor_id=actor_id,
                        action=action.value,
                        request_timestamps=[now_ms],
                        window_start=window_start,
                        expires_at=expires_at,
                    )
                )
                try:
                    await session.commit()
                except IntegrityError:
                    # A concurrent first attempt created the record
                    await session.rollback()
                    record_db_retry("rate_limit_insert")
                    logger.info("rate_limit_retry", actor_id=actor_id, action=action.value, attempt=attempt)
                    continue
                return allowed_result(1, config)

            verdict, timestamps = evaluate_sliding_window(record.request_timestamps or [], now_ms, config)
            if timestamps is None:
                await session.rollback()
                return verdict

            update_result = await session.execute(
                update(RateLimitRecord)
                .where(
                    RateLimitRecord.id == record.id,
                    RateLimitRecord.version == record.version,
                )
                .values(
                    request_timestamps=timestamps,
                    window_start=window_start,
                    expires_at=expires_at,
                    version=RateLimitRecord.version + 1,
                )
                .execution_options(synchronize_session=False)
            )
            if update_result.rowcount == 0:
                await session.rollback()
                record_db_retry("rate_limit_update")
                logger.info("rate_limit_retry", actor_id=actor_id, action=action.value, attempt=attempt)
                continue

            await session.commit()
            return verdict

        raise ConcurrencyConflictError("rate_limit_check", self.max_retries)

    async def sweep_expired(self, now_ms: Optional[int] = None, batch_size: int = 100) -> int:
        now_ms = clock.now_ms() if now_ms is None else now_ms

        async with self.session_factory() as session:
            result = await session.execute(
                select(RateLimitRecord.id)
                .where(RateLimitRecord.expires_at < now_ms)
                .order_by(RateLimitRecord.expires_at.asc())
                .limit(batch_size)
            )
            expired_ids = list(result.scalars().all())
            if expired_ids:
                await session.execute(
                    delete(RateLimitRecord)
                    .where(RateLimitRecord.id.in_(expired_ids))
                    .execution_options(synchronize_session=False)
                )
                await session.commit()

        if expired_ids:
            rate_limit_records_swept.inc(len(expired_ids))
        logger.info("rate_limit_sweep_completed", deleted=len(expired_ids), batch_size=batch_size)
        return len(expired_ids)


async def run_rate_limit_sweeper(
    limiter: RateLimiter,
    interval_seconds: int,
    batch_size: int,
) -> None:
    """Periodically garbage-collect expired rate limit state until cancelled."""
    while True:
        try:
            await limiter.sweep_expired(batch_size=batch_size)
        except Exception as e:
            logger.error("rate_limit_sweep_failed", error=str(e))
        await asyncio.sleep(interval_seconds)
