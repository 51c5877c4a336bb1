"""
Ephemeral entity cache with a fixed time-to-live.
"""

import time
from dataclasses import dataclass
from operator import attrgetter
from typing import Any, Callable, Dict, Generic, Iterable, Optional, TypeVar, TYPE_CHECKING

from shared.logging import get_logger
from .sweeper import PeriodicSweeper

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector

T = TypeVar("T")

DEFAULT_TTL = 5 * 60
DEFAULT_SWEEP_INTERVAL = 10 * 60


@dataclass
class CacheEntry(Generic[T]):
    """Cached entity with its monotonic insertion time."""
    key: str
    value: T
    cached_at: float


class EntityCache(Generic[T]):
    """Keyed store of small denormalized records.

    Entries are valid while ``now - cached_at < ttl``. A miss (absent or
    expired) returns ``None`` and is never an error: callers fall back to the
    source of truth. Expired entries are evicted on read and by :meth:`sweep`,
    which can run periodically via :meth:`start` / :meth:`stop`.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL,
        *,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        id_getter: Callable[[T], Any] = attrgetter("id"),
        name: str = "entities",
        metrics: Optional["MetricsCollector"] = None,
    ):
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self.ttl = ttl
        self.name = name
        self.metrics = metrics
        self.logger = get_logger(f"feed.cache.{name}")
        self._clock = clock
        self._id_getter = id_getter
        self._entries: Dict[str, CacheEntry[T]] = {}
        self._hits = 0
        self._misses = 0
        self._sweeper = PeriodicSweeper(f"cache.{name}", sweep_interval, self.sweep)

    def put(self, entity: T) -> None:
        """Insert or overwrite ``entity``."""
        self._store(entity, self._clock())

    def put_many(self, entities: Iterable[T]) -> int:
        """Insert a batch sharing one timestamp; returns how many were stored."""
        now = self._clock()
        count = 0
        for entity in entities:
            self._store(entity, now)
            count += 1
        return count

    def get(self, entity_id: str) -> Optional[T]:
        """Return the cached entity, or ``None`` on a miss."""
        key = str(entity_id)
        entry = self._entries.get(key)
        if entry is None:
            self._record_access(hit=False)
            return None

        if not self._is_valid(entry, self._clock()):
            del self._entries[key]
            self._record_access(hit=False)
            if self.metrics:
                self.metrics.record_cache_eviction(self.name, "expired_on_read")
            return None

        self._record_access(hit=True)
        return entry.value

    def invalidate(self, entity_id: str) -> bool:
        """Drop one entry regardless of age; returns whether it existed."""
        removed = self._entries.pop(str(entity_id), None) is not None
        if removed:
            self.logger.debug("Invalidated cache entry", key=str(entity_id))
            if self.metrics:
                self.metrics.record_cache_eviction(self.name, "invalidated")
        return removed

    def clear(self) -> None:
        self._entries.clear()

    def sweep(self) -> int:
        """Remove all expired entries; never touches valid ones."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if not self._is_valid(entry, now)]
        for key in expired:
            del self._entries[key]

        if expired and self.metrics:
            self.metrics.record_cache_eviction(self.name, "swept", len(expired))
        return len(expired)

    def size(self) -> int:
        return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        """Hit/miss counters for observability."""
        total = self._hits + self._misses
        return {
            "name": self.name,
            "size": len(self._entries),
            "ttl_seconds": self.ttl,
            "hits": self._hits,
            "misses": self._misses,
            "hit_ratio": (self._hits / total) if total else 0.0,
        }

    def start(self) -> None:
        """Start the periodic expiry sweep."""
        self._sweeper.start()

    async def stop(self) -> None:
        """Stop the periodic expiry sweep."""
        await self._sweeper.stop()

    def _store(self, entity: T, now: float) -> None:
        key = str(self._id_getter(entity))
        self._entries[key] = CacheEntry(key=key, value=entity, cached_at=now)

    def _is_valid(self, entry: CacheEntry[T], now: float) -> bool:
        return now - entry.cached_at < self.ttl

    def _record_access(self, hit: bool) -> None:
        if hit:
            self._hits += 1
        else:
            self._misses += 1
        if self.metrics:
            self.metrics.record_cache_access(self.name, hit)
