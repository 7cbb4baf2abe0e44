"""
Tests for the Redis sliding window limiter.

Uses fakeredis with Lua support, so the real script runs in-process.
"""

from unittest.mock import AsyncMock, MagicMock

import fakeredis.aioredis
import pytest
import pytest_asyncio

from event_admission.core.metrics import redis_circuit_breaker_open
from event_admission.core.rate_limits import RateLimitAction
from event_admission.services.redis_rate_limiter import RedisRateLimiter

T0 = 1_700_000_000_000
REGISTRATION = RateLimitAction.REGISTRATION_ATTEMPT


@pytest_asyncio.fixture
async def redis_client():
    client = fakeredis.aioredis.FakeRedis(decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def limiter(redis_client) -> RedisRateLimiter:
    return RedisRateLimiter(client=redis_client)


@pytest.mark.asyncio
async def test_allows_up_to_max_then_rejects(limiter: RedisRateLimiter):
    for i in range(5):
        result = await limiter.check_and_record(42, REGISTRATION, now_ms=T0 + i)
        assert result.allowed is True
        assert result.current_count == i + 1

    rejected = await limiter.check_and_record(42, REGISTRATION, now_ms=T0 + 10)

    assert rejected.allowed is False
    assert rejected.current_count == 5
    assert rejected.reset_in_ms == 60_000 - 10


@pytest.mark.asyncio
async def test_rejection_does_not_record(limiter: RedisRateLimiter, redis_client):
    for _ in range(5):
        await limiter.check_and_record(42, REGISTRATION, now_ms=T0)
    await limiter.check_and_record(42, REGISTRATION, now_ms=T0 + 1)

    assert await redis_client.zcard("ratelimit:42:registration_attempt") == 5


@pytest.mark.asyncio
async def test_window_slides(limiter: RedisRateLimiter):
    for _ in range(5):
        await limiter.check_and_record(42, REGISTRATION, now_ms=T0)

    assert (await limiter.check_and_record(42, REGISTRATION, now_ms=T0 + 59_999)).allowed is False

    result = await limiter.check_and_record(42, REGISTRATION, now_ms=T0 + 60_001)
    assert result.allowed is True
    assert result.current_count == 1


@pytest.mark.asyncio
async def test_key_expires_with_window(limiter: RedisRateLimiter, redis_client):
    await limiter.check_and_record(42, REGISTRATION, now_ms=T0)

    ttl = await redis_client.pttl("ratelimit:42:registration_attempt")
    assert 0 < ttl <= 60_000


@pytest.mark.asyncio
async def test_actions_are_independent(limiter: RedisRateLimiter):
    for _ in range(5):
        await limiter.check_and_record(42, REGISTRATION, now_ms=T0)

    result = await limiter.check_and_record(42, "checkin_attempt", now_ms=T0)
    assert result.allowed is True


@pytest.mark.asyncio
async def test_sweep_is_a_noop(limiter: RedisRateLimiter):
    assert await limiter.sweep_expired(now_ms=T0) == 0


@pytest.mark.asyncio
async def test_fails_open_when_redis_errors():
    client = MagicMock()
    client.register_script.return_value = AsyncMock(side_effect=ConnectionError("redis down"))
    limiter = RedisRateLimiter(client=client)

    result = await limiter.check_and_record(42, REGISTRATION, now_ms=T0)

    assert result.allowed is True
    assert result.current_count == 0
    assert "unavailable" in result.message
    assert redis_circuit_breaker_open._value.get() == 1


@pytest.mark.asyncio
async def test_circuit_closes_after_recovery(limiter: RedisRateLimiter):
    redis_circuit_breaker_open.set(1)

    await limiter.check_and_record(42, REGISTRATION, now_ms=T0)

    assert redis_circuit_breaker_open._value.get() == 0
