"""Per-reporter workflow session storage.

Two interchangeable backends implement SessionStore: an in-process bounded
TTL cache (lost on restart) and Redis (shared by all instances). The workflow
engine only talks to the abstract interface.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional

from pydantic import ValidationError
from redis.exceptions import RedisError, WatchError

from sitereport.logging_config import get_logger
from sitereport.models.session import Session, utc_now
from sitereport.services.errors import StaleSessionError, StorageUnavailableError
from sitereport.services.ttl_cache import TTLCache

logger = get_logger("session_store")

DEFAULT_SESSION_TTL_SECONDS = 3600
DEFAULT_IN_MEMORY_LIMIT = 50_000


class KeyedLocks:
    """asyncio locks created on demand per key and dropped when unused."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                del self._holders[key]
                self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)


class SessionStore(ABC):
    ttl_seconds: int

    @abstractmethod
    async def get(self, key: str) -> Optional[Session]:
        """Live session for the key, or None if unset or expired."""

    @abstractmethod
    async def save(self, session: Session) -> Session:
        """Upsert the session, refreshing timestamps, version and TTL.

        Raises StaleSessionError if the stored version moved since `session`
        was loaded.
        """

    @abstractmethod
    async def delete(self, key: str) -> bool:
        pass

    @abstractmethod
    async def discard(self, session: Session) -> bool:
        """Delete the stored session only while it is still at `session.version`.

        Returns False when nothing is stored. Raises StaleSessionError if the
        record was written after `session` was loaded.
        """

    @abstractmethod
    async def list(self) -> list[tuple[str, Session]]:
        """Snapshot of live sessions. Entries changed during the scan may be missing."""

    @abstractmethod
    async def _put(self, session: Session) -> None:
        """Unconditional write."""

    @abstractmethod
    def lock(self, key: str):
        """Async context manager serializing transitions for one reporter."""

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None

    async def create(self, key: str, raw_identifier: str) -> Session:
        """Start a brand-new session, replacing whatever is stored under the key."""
        session = Session.new(key, raw_identifier).touched()
        await self._put(session)
        logger.info(
            "Session created",
            extra={"context": {"reporter_key": key, "workflow_id": session.workflow_id}},
        )
        return session

    async def patch(self, key: str, **changes) -> Session:
        current = await self.get(key)
        if current is None:
            current = await self.create(key, changes.get("raw_identifier") or key)
        return await self.save(current.with_changes(**changes))


class InMemorySessionStore(SessionStore):
    def __init__(
        self,
        limit: int = DEFAULT_IN_MEMORY_LIMIT,
        ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS,
        cache: TTLCache | None = None,
    ):
        self.ttl_seconds = ttl_seconds
        self._cache: TTLCache[Session] = (
            cache if cache is not None else TTLCache(limit=limit, default_ttl_seconds=ttl_seconds)
        )
        self._locks = KeyedLocks()

    async def get(self, key: str) -> Optional[Session]:
        return self._cache.get(key)

    async def save(self, session: Session) -> Session:
        current = self._cache.get(session.reporter_key)
        if current is not None and current.version != session.version:
            raise StaleSessionError(session.reporter_key, session.version, current.version)
        updated = session.touched()
        self._cache.set(session.reporter_key, updated, self.ttl_seconds)
        return updated

    async def delete(self, key: str) -> bool:
        return self._cache.delete(key)

    async def discard(self, session: Session) -> bool:
        current = self._cache.get(session.reporter_key)
        if current is None:
            return False
        if current.version != session.version:
            raise StaleSessionError(session.reporter_key, session.version, current.version)
        return self._cache.delete(session.reporter_key)

    async def list(self) -> list[tuple[str, Session]]:
        return self._cache.entries()

    async def _put(self, session: Session) -> None:
        self._cache.set(session.reporter_key, session, self.ttl_seconds)

    def lock(self, key: str):
        return self._locks.hold(key)

    async def size(self) -> int:
        return self._cache.size()


class RedisSessionStore(SessionStore):
    def __init__(
        self,
        client,
        prefix: str = "sessions:",
        ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS,
        lock_timeout_seconds: float = 60.0,
    ):
        self._client = client
        self._prefix = prefix
        self._lock_prefix = f"{prefix.rstrip(':')}-lock:"
        self.ttl_seconds = ttl_seconds
        self.lock_timeout_seconds = lock_timeout_seconds

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def _decode(self, raw, redis_key: str) -> Optional[Session]:
        if not raw:
            return None
        try:
            return Session.model_validate_json(raw)
        except ValidationError as exc:
            logger.error(
                "Unreadable session record ignored",
                extra={"context": {"redis_key": redis_key, "error": str(exc)}},
            )
            return None

    async def get(self, key: str) -> Optional[Session]:
        redis_key = self._key(key)
        try:
            raw = await self._client.get(redis_key)
        except RedisError as exc:
            raise StorageUnavailableError(f"session read failed: {exc}") from exc
        return self._decode(raw, redis_key)

    async def save(self, session: Session) -> Session:
        redis_key = self._key(session.reporter_key)
        updated = session.touched()
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                await pipe.watch(redis_key)
                current = self._decode(await pipe.get(redis_key), redis_key)
                if current is not None and current.version != session.version:
                    raise StaleSessionError(session.reporter_key, session.version, current.version)
                pipe.multi()
                pipe.set(redis_key, updated.model_dump_json(), ex=self.ttl_seconds)
                await pipe.execute()
        except WatchError as exc:
            raise StaleSessionError(session.reporter_key, session.version, -1) from exc
        except RedisError as exc:
            raise StorageUnavailableError(f"session write failed: {exc}") from exc
        return updated

    async def delete(self, key: str) -> bool:
        try:
            return (await self._client.delete(self._key(key))) > 0
        except RedisError as exc:
            raise StorageUnavailableError(f"session delete failed: {exc}") from exc

    async def discard(self, session: Session) -> bool:
        redis_key = self._key(session.reporter_key)
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                await pipe.watch(redis_key)
                current = self._decode(await pipe.get(redis_key), redis_key)
                if current is None:
                    return False
                if current.version != session.version:
                    raise StaleSessionError(session.reporter_key, session.version, current.version)
                pipe.multi()
                pipe.delete(redis_key)
                await pipe.execute()
        except WatchError as exc:
            raise StaleSessionError(session.reporter_key, session.version, -1) from exc
        except RedisError as exc:
            raise StorageUnavailableError(f"session delete failed: {exc}") from exc
        return True

    async def list(self) -> list[tuple[str, Session]]:
        try:
            redis_keys = [k async for k in self._client.scan_iter(match=f"{self._prefix}*")]
            if not redis_keys:
                return []
            values = await self._client.mget(redis_keys)
        except RedisError as exc:
            raise StorageUnavailableError(f"session scan failed: {exc}") from exc

        result: list[tuple[str, Session]] = []
        for redis_key, raw in zip(redis_keys, values):
            session = self._decode(raw, redis_key)
            if session is not None:
                result.append((redis_key[len(self._prefix):], session))
        return result

    async def _put(self, session: Session) -> None:
        try:
            await self._client.set(
                self._key(session.reporter_key),
                session.model_dump_json(),
                ex=self.ttl_seconds,
            )
        except RedisError as exc:
            raise StorageUnavailableError(f"session write failed: {exc}") from exc

    @asynccontextmanager
    async def lock(self, key: str) -> AsyncIterator[None]:
        redis_lock = self._client.lock(
            f"{self._lock_prefix}{key}",
            timeout=self.lock_timeout_seconds,
            blocking_timeout=self.lock_timeout_seconds,
        )
        try:
            acquired = await redis_lock.acquire()
        except RedisError as exc:
            raise StorageUnavailableError(f"session lock failed: {exc}") from exc
        if not acquired:
            raise StorageUnavailableError(f"timed out waiting for session lock {key}")
        heartbeat = asyncio.create_task(self._keep_lock_alive(redis_lock, key))
        try:
            yield
        finally:
            heartbeat.cancel()
            try:
                await heartbeat
            except asyncio.CancelledError:
                pass
            try:
                await redis_lock.release()
            except RedisError as exc:
                logger.warning(
                    "Session lock release failed",
                    extra={"context": {"reporter_key": key, "error": str(exc)}},
                )

    async def _keep_lock_alive(self, redis_lock, key: str) -> None:
        # Finalization can outlast the lock timeout; reset the TTL while it is held.
        interval = self.lock_timeout_seconds / 3
        while True:
            await asyncio.sleep(interval)
            try:
                await redis_lock.reacquire()
            except RedisError as exc:
                logger.error(
                    "Session lock lost while held",
                    extra={"context": {"reporter_key": key, "error": str(exc)}},
                )
                return

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError as exc:
            logger.warning("Session store ping failed", extra={"context": {"error": str(exc)}})
            return False

    async def close(self) -> None:
        await self._client.aclose()


async def sweep_idle_sessions(
    store: SessionStore,
    idle_timeout_seconds: float,
    now: datetime | None = None,
) -> list[str]:
    """Delete sessions with no activity for longer than idle_timeout_seconds.

    Each candidate is re-read under its lock so a session touched after the
    scan survives.
    """
    now = now or utc_now()
    evicted: list[str] = []
    for key, session in await store.list():
        if session.idle_seconds(now) <= idle_timeout_seconds:
            continue
        async with store.lock(key):
            current = await store.get(key)
            if current is None or current.idle_seconds(now) <= idle_timeout_seconds:
                continue
            await store.delete(key)
        evicted.append(key)
        logger.warning(
            "Workflow timed out",
            extra={
                "context": {
                    "reporter_key": key,
                    "workflow_id": current.workflow_id,
                    "last_state": current.state.value,
                    "idle_seconds": round(current.idle_seconds(now), 1),
                    "descriptions_collected": len(current.description_items),
                }
            },
        )
    return evicted
