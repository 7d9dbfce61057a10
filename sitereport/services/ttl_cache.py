import time
from collections import OrderedDict
from typing import Callable, Generic, Iterator, Optional, TypeVar

V = TypeVar("V")


class TTLCache(Generic[V]):
    """Capacity-bounded in-process map with per-entry expiry.

    When full, inserting a new key drops expired entries first and then the
    oldest-inserted entry. Overwriting a key counts as a fresh insertion.
    Expired entries are pruned lazily by reads and by enumeration.
    """

    def __init__(
        self,
        limit: int = 5000,
        default_ttl_seconds: float = 6 * 60 * 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        if limit < 1:
            raise ValueError("limit must be positive")
        self.limit = limit
        self.default_ttl_seconds = default_ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, tuple[V, float]] = OrderedDict()

    def get(self, key: str) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def set(self, key: str, value: V, ttl_seconds: Optional[float] = None) -> None:
        ttl = ttl_seconds if ttl_seconds and ttl_seconds > 0 else self.default_ttl_seconds
        if key in self._entries:
            del self._entries[key]
        elif len(self._entries) >= self.limit:
            self._prune()
            if len(self._entries) >= self.limit:
                self._entries.popitem(last=False)
        self._entries[key] = (value, self._clock() + ttl)

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def size(self) -> int:
        self._prune()
        return len(self._entries)

    def keys(self) -> list[str]:
        return [key for key, _ in self.entries()]

    def entries(self) -> list[tuple[str, V]]:
        """Snapshot of live entries, oldest first."""
        self._prune()
        return [(key, value) for key, (value, _) in self._entries.items()]

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def __len__(self) -> int:
        return self.size()

    def _prune(self) -> None:
        now = self._clock()
        expired = [key for key, (_, expires_at) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
