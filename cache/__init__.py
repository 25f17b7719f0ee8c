"""
Local trajectory cache.

Keeps the last cleaned trajectory per device as a fallback for refresh
cycles whose history comes back empty.
"""

from datetime import timedelta

from config.settings import CacheBackend
from cache.file_store import FileTrajectoryCache
from cache.redis_store import RedisTrajectoryCache
from cache.store import TrajectoryCache, deserialize_trajectory, serialize_trajectory


async def create_trajectory_cache(settings) -> TrajectoryCache:
    """
    Build the cache backend selected by the settings.

    The redis backend is connected before it is returned, with the snapshot
    expiry from cache_ttl_seconds when one is set. Without a redis_url
    (allowed in development) the file backend is used instead.
    """
    if settings.cache_backend == CacheBackend.REDIS and settings.redis_url:
        ttl = timedelta(seconds=settings.cache_ttl_seconds) if settings.cache_ttl_seconds else None
        cache = RedisTrajectoryCache(settings.redis_url, ttl=ttl)
        await cache.connect()
        return cache
    return FileTrajectoryCache(settings.cache_dir)


__all__ = [
    "FileTrajectoryCache",
    "RedisTrajectoryCache",
    "TrajectoryCache",
    "create_trajectory_cache",
    "deserialize_trajectory",
    "serialize_trajectory",
]
