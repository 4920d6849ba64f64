from typing import Optional

from redis.asyncio import Redis
import structlog

from neuroflow.domain.context.memory.cache_memory_store import KeyValueStore

logger = structlog.get_logger(__name__)


class RedisKeyValueStore(KeyValueStore):
    """
    Key-value store backed by Redis.

    Values are stored as UTF-8 strings with a native expiry (SET ... EX ttl).
    Connection errors propagate; the semantic cache treats them as misses.
    """

    def __init__(self, redis_url: str, client: Optional[Redis] = None):
        self.redis_url = redis_url
        self._client = client

    async def _get_client(self) -> Redis:
        """Initializes and returns the Redis client, ensuring a single instance."""
        if self._client is None:
            logger.info("Initializing Redis client", redis_url=self.redis_url)
            self._client = Redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True
            )
        return self._client

    async def get(self, key: str) -> Optional[str]:
        client = await self._get_client()
        return await client.get(key)

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None:
        client = await self._get_client()
        await client.set(key, value, ex=ttl_seconds)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
