"""Cache service for analytics reports and other cached data."""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, NamedTuple

from cachetools import TLRUCache
from redis import asyncio as aioredis

from score_analytics.config import settings

logger = logging.getLogger(__name__)


class CacheBackend(ABC):
    """Abstract base class for cache backends."""

    name: str = "unknown"
    # True when other processes see the same entries
    shared: bool = False

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Get a value from cache by key."""
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Set a value in cache with optional TTL."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete a value from cache by key."""
        pass

    @abstractmethod
    async def clear_prefix(self, prefix: str) -> int:
        """Clear all keys starting with a prefix and return how many were removed."""
        pass

    @abstractmethod
    async def clear_all(self) -> None:
        """Clear all cache entries."""
        pass


class _Entry(NamedTuple):
    value: Any
    ttl: int


class InMemoryCacheBackend(CacheBackend):
    """In-memory cache backend using TLRUCache (per-item TTL)."""

    name = "memory"

    def __init__(self, max_size: int = 1000, ttl: int = 300, timer=time.monotonic):
        """
        Initialize in-memory cache.

        Args:
            max_size: Maximum number of items to cache
            ttl: Default time to live in seconds
            timer: Clock used for expiry
        """
        self.default_ttl = ttl
        self.cache: TLRUCache[str, _Entry] = TLRUCache(
            maxsize=max_size, ttu=lambda _key, entry, now: now + entry.ttl, timer=timer
        )
        logger.info(f"Initialized in-memory cache with max_size={max_size}, ttl={ttl}")

    async def get(self, key: str) -> Any | None:
        entry = self.cache.get(key)
        return entry.value if entry is not None else None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        self.cache[key] = _Entry(value, ttl or self.default_ttl)

    async def delete(self, key: str) -> None:
        self.cache.pop(key, None)

    async def clear_prefix(self, prefix: str) -> int:
        keys_to_delete = [key for key in list(self.cache.keys()) if key.startswith(prefix)]
        for key in keys_to_delete:
            self.cache.pop(key, None)
        return len(keys_to_delete)

    async def clear_all(self) -> None:
        self.cache.clear()


class RedisCacheBackend(CacheBackend):
    """Redis cache backend. Values must be str or bytes."""

    name = "redis"
    shared = True

    def __init__(self, url: str, ttl: int = 300, connect_timeout: float = 5.0):
        self.default_ttl = ttl
        self.client = aioredis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=connect_timeout,
            socket_timeout=connect_timeout,
        )
        logger.info(f"Initialized redis cache at {url}, ttl={ttl}")

    async def get(self, key: str) -> Any | None:
        return await self.client.get(key)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        await self.client.set(key, value, ex=ttl or self.default_ttl)

    async def delete(self, key: str) -> None:
        await self.client.delete(key)

    async def clear_prefix(self, prefix: str) -> int:
        deleted = 0
        async for key in self.client.scan_iter(match=f"{prefix}*", count=500):
            deleted += await self.client.delete(key)
        return deleted

    async def clear_all(self) -> None:
        await self.client.flushdb()


class CacheService:
    """
    Best-effort cache facade.

    Backend errors are logged and never propagate: a failed read is a miss,
    a failed write or invalidation is skipped.
    """

    def __init__(self, backend: CacheBackend | None = None):
        """Initialize cache service with an explicit or configured backend."""
        self._backend = backend

    def _get_backend(self) -> CacheBackend:
        """Get cache backend based on configuration."""
        if self._backend is None:
            backend_type = settings.cache_backend.lower()
            if backend_type == "memory":
                self._backend = InMemoryCacheBackend(max_size=settings.cache_max_size, ttl=settings.cache_ttl)
            elif backend_type == "redis":
                self._backend = RedisCacheBackend(
                    settings.redis_url, ttl=settings.cache_ttl, connect_timeout=settings.redis_connect_timeout
                )
            else:
                raise ValueError(f"Unsupported cache backend: {backend_type}")
        return self._backend

    @property
    def store_name(self) -> str:
        return self._get_backend().name

    @property
    def shared(self) -> bool:
        return self._get_backend().shared

    async def get(self, key: str) -> Any | None:
        """Get a value from cache by key."""
        try:
            return await self._get_backend().get(key)
        except Exception as e:
            logger.error(f"Error getting cache key {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Set a value in cache with optional TTL. Returns False if the write failed."""
        try:
            await self._get_backend().set(key, value, ttl)
            return True
        except Exception as e:
            logger.error(f"Error setting cache key {key}: {e}")
            return False

    async def delete(self, key: str) -> None:
        """Delete a value from cache by key."""
        try:
            await self._get_backend().delete(key)
        except Exception as e:
            logger.error(f"Error deleting cache key {key}: {e}")

    async def clear_prefix(self, prefix: str) -> int:
        """Clear all keys starting with a prefix."""
        try:
            cleared = await self._get_backend().clear_prefix(prefix)
        except Exception as e:
            logger.error(f"Error clearing cache prefix {prefix}: {e}")
            return 0
        if cleared:
            logger.info(f"Cleared {cleared} cache keys with prefix {prefix}")
        return cleared

    async def clear_all(self) -> None:
        """Clear all cache entries."""
        try:
            await self._get_backend().clear_all()
            logger.info("Cleared all cache entries")
        except Exception as e:
            logger.error(f"Error clearing all cache: {e}")


# Global cache service instance
cache_service = CacheService()
