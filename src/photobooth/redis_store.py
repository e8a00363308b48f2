"""Shared Redis connection used by metrics, analytics, contest and share."""

from __future__ import annotations

import logging
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from .config import Settings

logger = logging.getLogger(__name__)

TEST_KEY = "redis:test:key"


class RedisStore:
    """Owns the connection pool and tracks whether Redis is usable.

    Services never raise when Redis is down; they check `is_ready()` and
    degrade instead.
    """

    def __init__(self, settings: Settings, client: Optional[aioredis.Redis] = None):
        self.settings = settings
        self._pool: Optional[aioredis.ConnectionPool] = None
        self._client: Optional[aioredis.Redis] = client
        self._ready = client is not None

    @property
    def verbose(self) -> bool:
        return self.settings.redis_verbose_logging

    async def connect(self) -> bool:
        """Create the pool and run a write/read round trip on a test key."""
        if self._client is None:
            logger.info(
                f"Connecting to Redis at {self.settings.redis_host}:{self.settings.redis_port} "
                f"(db {self.settings.redis_db_index})"
            )
            self._pool = aioredis.ConnectionPool.from_url(
                self.settings.redis_url,
                decode_responses=True,
            )
            self._client = aioredis.Redis(connection_pool=self._pool)

        try:
            await self._client.set(TEST_KEY, "ok", ex=60)
            value = await self._client.get(TEST_KEY)
            self._ready = value == "ok"
        except (RedisError, OSError) as e:
            logger.warning(f"Redis unavailable, continuing without it: {e}")
            self._ready = False

        if self._ready:
            logger.info("Redis connection test passed")
        return self._ready

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.disconnect()
            self._pool = None
        self._ready = False

    def is_ready(self) -> bool:
        return self._ready and self._client is not None

    @property
    def client(self) -> aioredis.Redis:
        if self._client is None:
            raise RuntimeError("Redis client not initialized")
        return self._client

    async def ping(self) -> bool:
        if self._client is None:
            return False
        try:
            return bool(await self._client.ping())
        except (RedisError, OSError) as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    def mark_unavailable(self, error: Exception) -> None:
        """Record a connection-level failure seen by a service."""
        if self._ready:
            logger.warning(f"Redis marked unavailable: {error}")
        self._ready = False
