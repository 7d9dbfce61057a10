from sitereport.logging_config import get_logger
from sitereport.services.cache_store import CacheStore

logger = get_logger("idempotency")

DEFAULT_IDEMPOTENCY_TTL_SECONDS = 6 * 60 * 60


class IdempotencyFilter:
    """Remembers inbound event ids for a bounded window so redeliveries are skipped.

    `admit` is the check-and-mark used by the engine: it records the id before
    any side effect runs. A crash after admission therefore drops the event
    rather than replaying it.
    """

    def __init__(self, store: CacheStore, ttl_seconds: int = DEFAULT_IDEMPOTENCY_TTL_SECONDS):
        self.store = store
        self.ttl_seconds = ttl_seconds

    async def has_seen(self, event_id: str) -> bool:
        return await self.store.has(event_id)

    async def mark_seen(self, event_id: str) -> None:
        await self.store.set(event_id, self.ttl_seconds)

    async def admit(self, event_id: str | None) -> bool:
        if not event_id:
            return False
        admitted = await self.store.add(event_id, self.ttl_seconds)
        if not admitted:
            logger.info("Duplicate event skipped", extra={"context": {"event_id": event_id}})
        return admitted
