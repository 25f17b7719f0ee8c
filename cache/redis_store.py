"""
Redis-backed trajectory cache.

Snapshots are stored as JSON strings under a "trajectory:" key prefix. Unlike
session data there is no default expiry: a snapshot lives until the next
successful clean replaces it or the user clears it.
"""

from datetime import timedelta
from typing import Optional

from redis.exceptions import RedisError

from cache.store import TrajectoryCache
from errors.exceptions import cache_unavailable

KEY_PREFIX = "trajectory:"


class RedisTrajectoryCache(TrajectoryCache):
    """
    Redis-backed trajectory cache.

    Attributes:
        redis_url: Redis connection URL (e.g., "redis://localhost:6379/0")
        ttl: Optional expiry applied on every save
        client: Redis async client instance (initialized via connect())
    """

    def __init__(self, redis_url: str, ttl: Optional[timedelta] = None):
        self.redis_url = redis_url
        self.ttl = ttl
        self.client = None

    async def connect(self) -> None:
        """Create the async Redis client from the configured URL."""
        import redis.asyncio as redis
        self.client = redis.from_url(self.redis_url, decode_responses=True)

    async def close(self) -> None:
        if self.client:
            await self.client.aclose()
            self.client = None

    def _get_key(self, device_id: str) -> str:
        return f"{KEY_PREFIX}{device_id}"

    def _require_client(self, device_id: str):
        if not self.client:
            raise cache_unavailable(
                "Redis client not connected", details={"device_id": device_id}
            )
        return self.client

    async def _read(self, device_id: str) -> Optional[str]:
        client = self._require_client(device_id)
        try:
            return await client.get(self._get_key(device_id))
        except RedisError as e:
            raise cache_unavailable(f"Redis read failed: {e}", details={"device_id": device_id}) from e

    async def _write(self, device_id: str, payload: str) -> None:
        client = self._require_client(device_id)
        key = self._get_key(device_id)
        try:
            if self.ttl is not None:
                await client.setex(key, int(self.ttl.total_seconds()), payload)
            else:
                await client.set(key, payload)
        except RedisError as e:
            raise cache_unavailable(f"Redis write failed: {e}", details={"device_id": device_id}) from e

    async def _delete(self, device_id: str) -> None:
        client = self._require_client(device_id)
        try:
            await client.delete(self._get_key(device_id))
        except RedisError as e:
            raise cache_unavailable(f"Redis delete failed: {e}", details={"device_id": device_id}) from e

    async def health_check(self) -> bool:
        """PING Redis; connectivity problems result in False."""
        if not self.client:
            return False
        try:
            return await self.client.ping() is True
        except (RedisError, OSError):
            return False
