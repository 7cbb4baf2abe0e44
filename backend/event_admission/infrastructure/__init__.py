"""Redis connection management and the Lua scripts run against it."""

from .redis_client import get_redis, close_redis, RedisClient

__all__ = ['get_redis', 'close_redis', 'RedisClient']
