"""Existence-only key stores with TTL, used for idempotency tracking."""

from abc import ABC, abstractmethod

from redis.exceptions import RedisError

from sitereport.logging_config import get_logger
from sitereport.services.errors import StorageUnavailableError
from sitereport.services.ttl_cache import TTLCache

logger = get_logger("cache_store")

PRESENCE_MARKER = "1"


class CacheStore(ABC):
    @abstractmethod
    async def has(self, key: str) -> bool:
        """Return True if the key is present and not expired."""

    @abstractmethod
    async def set(self, key: str, ttl_seconds: int) -> None:
        """Record the key for ttl_seconds."""

    @abstractmethod
    async def add(self, key: str, ttl_seconds: int) -> bool:
        """Record the key only if absent. Returns True if this call recorded it."""


class InMemoryCacheStore(CacheStore):
    def __init__(self, limit: int = 5000, cache: TTLCache | None = None):
        self._cache: TTLCache[str] = cache if cache is not None else TTLCache(limit=limit)

    async def has(self, key: str) -> bool:
        return key in self._cache

    async def set(self, key: str, ttl_seconds: int) -> None:
        self._cache.set(key, PRESENCE_MARKER, ttl_seconds)

    async def add(self, key: str, ttl_seconds: int) -> bool:
        # No await between check and write, so this is atomic on the event loop.
        if key in self._cache:
            return False
        self._cache.set(key, PRESENCE_MARKER, ttl_seconds)
        return True


class RedisCacheStore(CacheStore):
    def __init__(self, client, prefix: str = "seen:"):
        self._client = client
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def has(self, key: str) -> bool:
        try:
            return bool(await self._client.exists(self._key(key)))
        except RedisError as exc:
            logger.error("Idempotency store read failed", extra={"context": {"error": str(exc)}})
            raise StorageUnavailableError(str(exc)) from exc

    async def set(self, key: str, ttl_seconds: int) -> None:
        try:
            await self._client.set(self._key(key), PRESENCE_MARKER, ex=ttl_seconds)
        except RedisError as exc:
            logger.error("Idempotency store write failed", extra={"context": {"error": str(exc)}})
            raise StorageUnavailableError(str(exc)) from exc

    async def add(self, key: str, ttl_seconds: int) -> bool:
        try:
            was_set = await self._client.set(self._key(key), PRESENCE_MARKER, ex=ttl_seconds, nx=True)
        except RedisError as exc:
            logger.error("Idempotency store write failed", extra={"context": {"error": str(exc)}})
            raise StorageUnavailableError(str(exc)) from exc
        return bool(was_set)
