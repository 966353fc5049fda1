# app/services/redis_client.py
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class RedisStoreError(Exception):
    """Raised when a Redis command cannot be completed."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class FastRedisClient:
    """Pooled async Redis client for the processed-mark store."""

    def __init__(self, redis_url: str | None = None, max_connections: int = 10):
        self.redis_url = redis_url
        self.max_connections = max_connections
        self.pool = None
        self.client = None
        self._initialized = False

    async def initialize(self):
        """Initialize connection pool on startup"""
        if self._initialized:
            return

        if not self.redis_url:
            raise RedisStoreError("Redis URL not configured", operation="initialize")

        try:
            logger.info("Attempting Redis connection", url_preview=self.redis_url[:12] + "...")

            self.pool = ConnectionPool.from_url(
                self.redis_url,
                max_connections=self.max_connections,
                retry_on_timeout=True,
                retry_on_error=[redis.ConnectionError, redis.TimeoutError],
                socket_connect_timeout=10,
                socket_timeout=10,
                health_check_interval=30,
                decode_responses=True,  # Auto-decode strings
            )

            self.client = redis.Redis(connection_pool=self.pool)

            # Test connection
            result = await self.client.ping()
            logger.info("Redis ping successful", result=result)

            self._initialized = True
            logger.info("Redis client initialized", max_connections=self.max_connections)

        except Exception as e:
            logger.error("Failed to initialize Redis client", error=str(e))
            self._initialized = False
            raise RedisStoreError("Redis initialization failed", operation="initialize") from e

    async def close(self):
        """Clean shutdown"""
        try:
            if self.client:
                await self.client.aclose()
            if self.pool:
                await self.pool.disconnect()
            self._initialized = False
            logger.info("Redis client closed")
        except Exception as e:
            logger.error("Error closing Redis client", error=str(e))

    async def _ensure_initialized(self):
        """Ensure Redis is initialized before issuing a command"""
        if not self._initialized:
            logger.warning("Redis not initialized, attempting to initialize")
            await self.initialize()

    async def ping(self) -> bool:
        """Test Redis connection"""
        try:
            await self._ensure_initialized()
            result = await self.client.ping()
            return bool(result)
        except Exception as e:
            logger.error("Redis ping failed", error=str(e))
            return False

    async def get(self, key: str) -> str | None:
        """Get value; raises RedisStoreError when Redis is unreachable."""
        try:
            await self._ensure_initialized()
            result = await self.client.get(key)
            return result if result else None
        except RedisStoreError:
            raise
        except Exception as e:
            logger.error("Redis GET failed", key=key[:30], error=str(e))
            raise RedisStoreError(f"GET failed: {e}", operation="get") from e

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        """Set value with TTL; raises RedisStoreError when Redis is unreachable."""
        try:
            await self._ensure_initialized()

            if ttl_s:
                result = await self.client.setex(key, ttl_s, value)
            else:
                result = await self.client.set(key, value)
            return bool(result)
        except RedisStoreError:
            raise
        except Exception as e:
            logger.error("Redis SET failed", key=key[:30], error=str(e))
            raise RedisStoreError(f"SET failed: {e}", operation="set") from e

    async def delete(self, key: str) -> bool:
        """Delete key; raises RedisStoreError when Redis is unreachable."""
        try:
            await self._ensure_initialized()
            result = await self.client.delete(key)
            return result > 0
        except RedisStoreError:
            raise
        except Exception as e:
            logger.error("Redis DELETE failed", key=key[:30], error=str(e))
            raise RedisStoreError(f"DELETE failed: {e}", operation="delete") from e
