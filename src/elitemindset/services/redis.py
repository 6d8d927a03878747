import logging
from typing import Dict, Mapping

from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

logger = logging.getLogger(__name__)


class RedisCrudService:
    """Async hash operations against a Redis instance."""

    def __init__(self, url: str) -> None:
        """Create a Redis client for the given URL (e.g. redis://localhost:6379/0)."""
        self._url = url
        self._client: Redis | None = None

    async def connect(self) -> None:
        """Establish connection to Redis. Idempotent."""
        if self._client is not None:
            return
        self._client = Redis.from_url(
            self._url,
            decode_responses=True,
        )
        try:
            await self._client.ping()
            logger.info("Redis connection established: %s", self._url.split("@")[-1])
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.warning("Redis ping failed: %s", e)
            await self._client.aclose()
            self._client = None
            raise

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.debug("Redis connection closed")

    @property
    def client(self) -> Redis | None:
        """Return the underlying Redis client, or None if not connected."""
        return self._client

    async def increment_hash(
        self,
        key: str,
        counter_field: str,
        mapping: Mapping[str, str] | None = None,
        ttl_seconds: int | None = None,
    ) -> int | None:
        """Atomically increment a hash counter, set extra fields and refresh TTL.

        Runs HINCRBY, HSET and EXPIRE in one MULTI/EXEC transaction. Returns the
        new counter value, or None if not connected or on error.
        """
        if self._client is None:
            return None
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.hincrby(key, counter_field, 1)
                if mapping:
                    pipe.hset(key, mapping=dict(mapping))
                if ttl_seconds is not None and ttl_seconds > 0:
                    pipe.expire(key, ttl_seconds)
                results = await pipe.execute()
            return int(results[0])
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.warning("Redis increment %s failed: %s", key, e)
            return None

    async def get_hash(self, key: str) -> Dict[str, str] | None:
        """Return all fields of the hash at key, or None if missing or on error."""
        if self._client is None:
            return None
        try:
            data = await self._client.hgetall(key)
            return dict(data) if data else None
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.warning("Redis hgetall %s failed: %s", key, e)
            return None

    async def set_hash(
        self,
        key: str,
        mapping: Mapping[str, str],
        ttl_seconds: int | None = None,
    ) -> bool:
        """Overwrite fields of the hash at key and refresh TTL. Returns True on success."""
        if self._client is None:
            return False
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.hset(key, mapping=dict(mapping))
                if ttl_seconds is not None and ttl_seconds > 0:
                    pipe.expire(key, ttl_seconds)
                await pipe.execute()
            return True
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.warning("Redis hset %s failed: %s", key, e)
            return False


def get_redis_crud_service(redis_url: str | None) -> RedisCrudService | None:
    """Return a Redis CRUD service if redis_url is configured, else None."""
    if not redis_url or not redis_url.strip():
        return None
    return RedisCrudService(redis_url.strip())
