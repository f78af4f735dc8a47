"""Caching for file repository state with Redis backend and in-memory fallback.

Two caches back the file repository:
- repository state: the folder each file-picker client is currently
  browsing, used to infer the upload target
- folder ids: drive path to item id, used to build breadcrumbs for
  id-addressed Graph folders (personal and group drives)
"""

import json
import time
from collections import OrderedDict
from typing import Any

from lms_o365.config import get_settings
from lms_o365.core.logging import get_logger

logger = get_logger(__name__)


class InMemoryCache:
    """In-memory LRU cache with per-entry expiry.

    Used as a fallback when Redis is unavailable or not configured.
    """

    def __init__(self, maxsize: int = 1000, default_ttl: int = 3600):
        self._entries: OrderedDict[str, tuple[float, Any]] = OrderedDict()
        self._maxsize = maxsize
        self._default_ttl = default_ttl
        self._hits = 0
        self._misses = 0

    async def get(self, key: str) -> Any | None:
        """Get a live value, dropping it if it has expired."""
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        expires_at, value = entry
        if expires_at <= time.monotonic():
            del self._entries[key]
            self._misses += 1
            return None

        self._entries.move_to_end(key)
        self._hits += 1
        return value

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store a value, evicting the least recently used entry when full."""
        lifetime = ttl if ttl is not None else self._default_ttl
        if key in self._entries:
            self._entries.move_to_end(key)
        elif len(self._entries) >= self._maxsize:
            self._entries.popitem(last=False)
        self._entries[key] = (time.monotonic() + lifetime, value)

    async def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    async def invalidate_prefix(self, prefix: str) -> int:
        """Drop every entry whose key starts with prefix."""
        doomed = [k for k in self._entries if k.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    @property
    def stats(self) -> dict:
        total = self._hits + self._misses
        return {
            "type": "in_memory",
            "size": len(self._entries),
            "maxsize": self._maxsize,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate_percent": round(self._hits / total * 100, 2) if total else 0,
        }


class RedisCache:
    """Redis-backed cache storing JSON values under a key prefix."""

    def __init__(self, redis_url: str, prefix: str = "", default_ttl: int = 3600):
        self._redis_url = redis_url
        self._prefix = prefix
        self._default_ttl = default_ttl
        self._client = None
        self._hits = 0
        self._misses = 0

    async def _get_client(self):
        """Get or create Redis client (lazy initialization)."""
        if self._client is None:
            from redis.asyncio import Redis as AsyncRedis

            self._client = AsyncRedis.from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._client

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get(self, key: str) -> Any | None:
        from redis.exceptions import RedisError

        try:
            client = await self._get_client()
            raw = await client.get(self._key(key))
        except RedisError as e:
            logger.warning("redis_cache_get_error", prefix=self._prefix, error=str(e))
            self._misses += 1
            return None

        if raw is None:
            self._misses += 1
            return None
        self._hits += 1
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        from redis.exceptions import RedisError

        lifetime = ttl if ttl is not None else self._default_ttl
        try:
            client = await self._get_client()
            await client.setex(self._key(key), lifetime, json.dumps(value, default=str))
        except RedisError as e:
            logger.warning("redis_cache_set_error", prefix=self._prefix, error=str(e))

    async def delete(self, key: str) -> bool:
        from redis.exceptions import RedisError

        try:
            client = await self._get_client()
            return await client.delete(self._key(key)) > 0
        except RedisError as e:
            logger.warning("redis_cache_delete_error", prefix=self._prefix, error=str(e))
            return False

    async def invalidate_prefix(self, prefix: str) -> int:
        """Delete keys under ``self._prefix + prefix`` using SCAN."""
        from redis.exceptions import RedisError

        pattern = f"{self._key(prefix)}*"
        deleted = 0
        try:
            client = await self._get_client()
            async for key in client.scan_iter(match=pattern, count=100):
                deleted += await client.delete(key)
        except RedisError as e:
            logger.warning("redis_cache_invalidate_error", prefix=pattern, error=str(e))
            return deleted

        logger.info("cache_invalidated", prefix=pattern, keys_deleted=deleted)
        return deleted

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def stats(self) -> dict:
        total = self._hits + self._misses
        return {
            "type": "redis",
            "prefix": self._prefix,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate_percent": round(self._hits / total * 100, 2) if total else 0,
            "ttl_seconds": self._default_ttl,
        }


class FallbackCache:
    """Cache that writes through to memory and prefers Redis for reads.

    The first Redis failure switches the instance to memory-only.
    """

    def __init__(
        self,
        redis_url: str | None = None,
        prefix: str = "",
        default_ttl: int = 3600,
        maxsize: int = 1000,
    ):
        self._prefix = prefix
        self._memory = InMemoryCache(maxsize=maxsize, default_ttl=default_ttl)
        self._redis = (
            RedisCache(redis_url=redis_url, prefix=prefix, default_ttl=default_ttl)
            if redis_url
            else None
        )
        self._using_fallback = False

    @property
    def _redis_active(self) -> bool:
        return self._redis is not None and not self._using_fallback

    def _fall_back(self, operation: str, error: Exception) -> None:
        logger.warning(
            "cache_fallback_triggered",
            prefix=self._prefix,
            operation=operation,
            error=str(error),
        )
        self._using_fallback = True

    async def get(self, key: str) -> Any | None:
        if self._redis_active:
            try:
                value = await self._redis.get(key)
            except Exception as e:
                self._fall_back("get", e)
            else:
                if value is not None:
                    return value
        return await self._memory.get(key)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        await self._memory.set(key, value, ttl)
        if self._redis_active:
            try:
                await self._redis.set(key, value, ttl)
            except Exception as e:
                self._fall_back("set", e)

    async def delete(self, key: str) -> bool:
        deleted = await self._memory.delete(key)
        if self._redis_active:
            try:
                deleted = await self._redis.delete(key) or deleted
            except Exception as e:
                self._fall_back("delete", e)
        return deleted

    async def invalidate_prefix(self, prefix: str) -> int:
        count = await self._memory.invalidate_prefix(prefix)
        if self._redis_active:
            try:
                count = await self._redis.invalidate_prefix(prefix)
            except Exception as e:
                self._fall_back("invalidate", e)
        return count

    async def close(self) -> None:
        if self._redis:
            await self._redis.close()

    @property
    def stats(self) -> dict:
        if self._redis_active:
            return {**self._redis.stats, "fallback_active": False}
        return {
            **self._memory.stats,
            "fallback_active": self._using_fallback,
            "redis_configured": self._redis is not None,
        }


class RepositoryCache:
    """Per-user file repository state on top of two FallbackCaches.

    Keys are namespaced by user so one user's client ids never collide with
    another's.
    """

    def __init__(self, state: FallbackCache, folders: FallbackCache):
        self.state = state
        self.folders = folders

    async def get_current_path(self, user_id: int, client_id: str) -> str | None:
        """Get the folder a file-picker client last listed."""
        return await self.state.get(f"{user_id}:curpath:{client_id}")

    async def set_current_path(self, user_id: int, client_id: str, path: str) -> None:
        await self.state.set(f"{user_id}:curpath:{client_id}", path)

    async def get_folder_id(self, user_id: int, scope: str, drive_path: str) -> str | None:
        """Look up the item id for a drive path.

        Args:
            user_id: Owner of the cache entry
            scope: "my" for the personal drive, or the group object id
            drive_path: Path below the drive root, e.g. "/Documents/Reports"
        """
        return await self.folders.get(f"{user_id}:{scope}:{drive_path}")

    async def set_folder_id(
        self, user_id: int, scope: str, drive_path: str, item_id: str
    ) -> None:
        await self.folders.set(f"{user_id}:{scope}:{drive_path}", item_id)

    async def clear_user(self, user_id: int) -> None:
        """Forget every cached path and folder id for a user."""
        await self.state.invalidate_prefix(f"{user_id}:")
        await self.folders.invalidate_prefix(f"{user_id}:")

    async def close(self) -> None:
        await self.state.close()
        await self.folders.close()


_repository_cache: RepositoryCache | None = None


def get_repository_cache() -> RepositoryCache:
    """Get or create the file repository cache."""
    global _repository_cache
    if _repository_cache is None:
        settings = get_settings()
        redis_url = settings.redis_url if settings.is_redis_configured else None
        _repository_cache = RepositoryCache(
            state=FallbackCache(
                redis_url=redis_url,
                prefix="repo:",
                default_ttl=settings.repository_state_ttl,
            ),
            folders=FallbackCache(
                redis_url=redis_url,
                prefix="folders:",
                default_ttl=settings.folder_cache_ttl,
            ),
        )
        logger.info(
            "repository_cache_init",
            cache_type="redis" if redis_url else "in_memory",
            state_ttl_seconds=settings.repository_state_ttl,
            folder_ttl_seconds=settings.folder_cache_ttl,
        )
    return _repository_cache


async def close_caches() -> None:
    """Close cache connections on shutdown."""
    if _repository_cache is not None:
        await _repository_cache.close()


def reset_caches() -> None:
    """Reset all cache instances. Primarily for testing."""
    global _repository_cache
    _repository_cache = None
