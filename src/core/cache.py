"""
Redis utility abstractions for caching patient views
"""

import logging
from typing import Optional, Dict, Any

import redis.asyncio as redis
import orjson
from redis.exceptions import RedisError, ConnectionError

from .config import get_redis_config, RedisConfig

logger = logging.getLogger(__name__)


class CacheManager:
    """
    Redis cache manager with connection pooling and orjson serialization.
    Reads and writes degrade to misses when Redis misbehaves.
    """

    def __init__(self, config: Optional[RedisConfig] = None):
        self.config = config or get_redis_config()
        self._pool: Optional[redis.ConnectionPool] = None
        self._client: Optional[redis.Redis] = None
        self._initialized = False

    async def initialize(self) -> None:
        """Initialize Redis connection pool and client"""
        if self._initialized:
            return

        logger.info(f"Initializing Redis connection to {self.config.host}:{self.config.port}")

        try:
            pool_kwargs = {
                "host": self.config.host,
                "port": self.config.port,
                "db": self.config.db,
                "max_connections": self.config.max_connections,
                "socket_timeout": self.config.socket_timeout,
                "socket_connect_timeout": self.config.socket_connect_timeout,
                "decode_responses": self.config.decode_responses,
                "retry_on_timeout": True,
                "retry_on_error": [ConnectionError],
            }

            if self.config.password:
                pool_kwargs["password"] = self.config.password

            self._pool = redis.ConnectionPool(**pool_kwargs)
            self._client = redis.Redis(connection_pool=self._pool)

            await self._client.ping()
            logger.info("Redis connection established successfully")

            self._initialized = True

        except Exception as e:
            logger.error(f"Failed to initialize Redis: {e}")
            raise

    async def cleanup(self) -> None:
        """Cleanup Redis connections"""
        if self._pool:
            await self._pool.disconnect()
            self._initialized = False
            logger.info("Redis connections closed")

    @property
    def client(self) -> redis.Redis:
        """Get the Redis client instance"""
        if not self._initialized:
            raise RuntimeError("Cache manager not initialized. Call initialize() first.")
        return self._client

    async def health_check(self) -> Dict[str, Any]:
        """Perform Redis health check"""
        try:
            if not self._initialized:
                return {"status": "error", "message": "Redis not initialized"}

            if not await self._client.ping():
                return {"status": "unhealthy", "message": "Ping failed"}

            info = await self._client.info()
            return {
                "status": "healthy",
                "version": info.get("redis_version"),
                "connected_clients": info.get("connected_clients", 0),
                "used_memory_human": info.get("used_memory_human", "0B"),
            }

        except Exception as e:
            logger.error(f"Redis health check failed: {e}")
            return {
                "status": "unhealthy",
                "error": str(e)
            }

    def serialize(self, data: Any) -> bytes:
        """Serialize data using orjson"""
        return orjson.dumps(data)

    def deserialize(self, data: Optional[bytes]) -> Any:
        """Deserialize data using orjson"""
        if data is None:
            return None
        return orjson.loads(data)

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache with automatic deserialization"""
        try:
            raw_data = await self._client.get(key)
            return self.deserialize(raw_data) if raw_data else None
        except RedisError as e:
            logger.warning(f"Redis get failed for key {key}: {e}")
            return None
        except orjson.JSONDecodeError as e:
            logger.error(f"Cache get error for key {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        """Set value in cache with automatic serialization"""
        try:
            ttl = ttl_seconds or self.config.default_ttl_seconds
            await self._client.setex(key, ttl, self.serialize(value))
            return True
        except RedisError as e:
            logger.warning(f"Redis set failed for key {key}: {e}")
            return False
        except orjson.JSONEncodeError as e:
            logger.error(f"Cache set error for key {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        """Delete key from cache"""
        try:
            return await self._client.delete(key) > 0
        except RedisError as e:
            logger.warning(f"Redis delete failed for key {key}: {e}")
            return False


class CacheKeyBuilder:
    """Utility class for building consistent cache keys"""

    @staticmethod
    def patient_view_key(patient_id: str) -> str:
        """Generate cache key for a refreshed patient view"""
        return f"pathway:view:{patient_id}"


class PatientViewCache:
    """Caches the patient view rebuilt after each transition"""

    def __init__(self, cache_manager: CacheManager, ttl_seconds: Optional[int] = None):
        self.cache_manager = cache_manager
        self.ttl_seconds = ttl_seconds

    async def get_view(self, patient_id: str) -> Optional[Dict[str, Any]]:
        return await self.cache_manager.get(CacheKeyBuilder.patient_view_key(patient_id))

    async def store_view(self, patient_id: str, view: Dict[str, Any]) -> bool:
        return await self.cache_manager.set(CacheKeyBuilder.patient_view_key(patient_id), view, self.ttl_seconds)

    async def invalidate(self, patient_id: str) -> bool:
        return await self.cache_manager.delete(CacheKeyBuilder.patient_view_key(patient_id))

