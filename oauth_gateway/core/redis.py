"""
Redis connection for flow sessions

One pool per process, opened in the lifespan. When Redis is unreachable at
startup the gateway still serves; session reads and writes then fail per
request until the server comes back.
"""

import json
from typing import Any, Optional

import redis.asyncio as redis_async
from loguru import logger
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import RedisError

LOG_PREFIX = "[Redis]"


class RedisClient:
    """Process-wide Redis connection, addressed through classmethods"""

    _pool: Optional[ConnectionPool] = None
    _client: Optional[redis_async.Redis] = None

    @classmethod
    async def init(cls, redis_url: str, pool_size: int = 10) -> None:
        if cls._pool:
            return
        cls._pool = ConnectionPool.from_url(redis_url, max_connections=pool_size, decode_responses=True)
        cls._client = redis_async.Redis(connection_pool=cls._pool)

        try:
            await cls._client.ping()
        except RedisError as e:
            # The URL may carry a password, only the failure is logged
            logger.error(f"{LOG_PREFIX} Ping failed: {type(e).__name__}")
            logger.warning(f"{LOG_PREFIX} Flow sessions will fail until Redis is reachable")
            return
        logger.info(f"{LOG_PREFIX} Connected (pool_size={pool_size})")

    @classmethod
    async def close(cls) -> None:
        if cls._client:
            await cls._client.aclose()
            cls._client = None
        if cls._pool:
            await cls._pool.disconnect()
            cls._pool = None

    @classmethod
    def get_client(cls) -> Optional[redis_async.Redis]:
        return cls._client

    @classmethod
    async def get(cls, key: str) -> Optional[str]:
        if not cls._client:
            return None
        result = await cls._client.get(key)
        return str(result) if result is not None else None

    @classmethod
    async def set(cls, key: str, value: Any, expire: int = 600) -> bool:
        """SET key value EX expire; non-string values are stored as JSON. False when not connected."""
        if not cls._client:
            return False
        if not isinstance(value, str):
            value = json.dumps(value, separators=(",", ":"))
        await cls._client.set(key, value, ex=expire)
        return True

    @classmethod
    async def delete(cls, key: str) -> bool:
        if not cls._client:
            return False
        return bool(await cls._client.delete(key))
