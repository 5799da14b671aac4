# localedge/services/redis_client.py
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from localedge.config import settings
from localedge.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

# Delete only when the stored token is ours, so an expired holder cannot
# release a lock that somebody else acquired since.
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class FastRedisClient:
    """Pooled async Redis client for short-lived coordination keys."""

    def __init__(self):
        self.pool = None
        self.client = None
        self._initialized = False

    @property
    def configured(self) -> bool:
        return settings.redis_url() is not None

    @property
    def available(self) -> bool:
        return self._initialized

    async def initialize(self):
        """Initialize connection pool on startup"""
        if self._initialized:
            return

        redis_url = settings.redis_url()
        if not redis_url:
            raise RuntimeError("Redis is not configured")

        try:
            self.pool = ConnectionPool.from_url(
                redis_url,
                max_connections=20,
                retry_on_timeout=True,
                socket_connect_timeout=10,
                socket_timeout=10,
                health_check_interval=30,
                decode_responses=True,
            )
            self.client = redis.Redis(connection_pool=self.pool)

            await self.client.ping()
            self._initialized = True
            logger.info("Redis client initialized", max_connections=20)

        except Exception as e:
            logger.error("Failed to initialize Redis client", error=str(e))
            self._initialized = False
            raise RuntimeError("Redis initialization failed") from e

    async def close(self):
        """Clean shutdown"""
        try:
            if self.client:
                await self.client.aclose()
            if self.pool:
                await self.pool.disconnect()
            logger.info("Redis client closed")
        except Exception as e:
            logger.error("Error closing Redis client", error=str(e))
        finally:
            self._initialized = False

    async def ping(self) -> bool:
        if not self._initialized:
            return False
        try:
            return bool(await self.client.ping())
        except Exception as e:
            logger.error("Redis ping failed", error=str(e))
            return False

    async def set_if_absent(self, key: str, value: str, ttl_s: int) -> bool | None:
        """
        SET NX with expiry.

        Returns True when the key was set, False when it already existed and
        None when Redis is unreachable.
        """
        if not self._initialized:
            return None
        try:
            result = await self.client.set(key, value, nx=True, ex=ttl_s)
            return bool(result)
        except Exception as e:
            logger.error("Redis SET NX failed", key=key[:40], error=str(e))
            return None

    async def delete_if_equals(self, key: str, value: str) -> bool:
        if not self._initialized:
            return False
        try:
            result = await self.client.eval(_RELEASE_SCRIPT, 1, key, value)
            return bool(result)
        except Exception as e:
            logger.error("Redis release failed", key=key[:40], error=str(e))
            return False


# Global instance
fast_redis = FastRedisClient()
