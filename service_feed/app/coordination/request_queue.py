"""
Deduplicating request queue.

Concurrent callers asking for the same key share a single underlying request.
Only in-flight requests are tracked here; caching of results is the entity
cache's job.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar, Union, TYPE_CHECKING

from shared.errors import InvariantViolationError
from shared.logging import get_logger
from .sweeper import PeriodicSweeper

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector

T = TypeVar("T")

DEFAULT_DEDUP_WINDOW = 1.0
DEFAULT_SWEEP_INTERVAL = 30.0


@dataclass
class InFlightRequest:
    """A request that has been issued and has not settled yet."""
    key: str
    started_at: float
    pending: Optional["asyncio.Task[Any]"] = None


def _retrieve_outcome(task: "asyncio.Task[Any]") -> None:
    # Every caller may have been cancelled before the shared task failed.
    if not task.cancelled():
        task.exception()


class RequestQueue:
    """Coalesces concurrent identical requests by key."""

    def __init__(
        self,
        dedup_window: float = DEFAULT_DEDUP_WINDOW,
        *,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        metrics: Optional["MetricsCollector"] = None,
        name: str = "requests",
    ):
        if dedup_window <= 0:
            raise ValueError("dedup_window must be positive")
        self.dedup_window = dedup_window
        self.name = name
        self.metrics = metrics
        self.logger = get_logger(f"feed.queue.{name}")
        self._clock = clock
        self._in_flight: Dict[str, InFlightRequest] = {}
        self._sweeper = PeriodicSweeper(f"queue.{name}", sweep_interval, self.sweep)

    async def dedupe(self, key: str, request_fn: Callable[[], Awaitable[T]]) -> T:
        """Return the shared outcome for ``key``, issuing ``request_fn`` only if needed."""
        now = self._clock()
        existing = self._in_flight.get(key)

        if existing is not None and self._is_fresh(existing, now):
            self.logger.debug("Deduplicating request", key=key)
            self._record("joined")
            return await asyncio.shield(existing.pending)

        record = InFlightRequest(key=key, started_at=now)
        self._register(record, now)
        record.pending = asyncio.get_running_loop().create_task(self._run(record, request_fn))
        record.pending.add_done_callback(_retrieve_outcome)
        self._record("issued")
        return await asyncio.shield(record.pending)

    async def batch(
        self,
        requests: Sequence[Tuple[str, Callable[[], Awaitable[T]]]],
    ) -> List[Union[T, BaseException]]:
        """Run each ``(key, fn)`` through :meth:`dedupe` and wait for all of them.

        Failed slots hold their exception; the other slots still resolve.
        """
        return await asyncio.gather(
            *(self.dedupe(key, fn) for key, fn in requests),
            return_exceptions=True,
        )

    def sweep(self) -> int:
        """Drop records older than twice the dedup window."""
        now = self._clock()
        limit = self.dedup_window * 2
        expired = [key for key, record in self._in_flight.items() if now - record.started_at > limit]
        for key in expired:
            del self._in_flight[key]

        if expired:
            self.logger.warning("Swept stale in-flight requests", count=len(expired), keys=expired)
        self._update_gauge()
        return len(expired)

    def size(self) -> int:
        return len(self._in_flight)

    def contains(self, key: str) -> bool:
        return key in self._in_flight

    def start(self) -> None:
        """Start the periodic in-flight sweep."""
        self._sweeper.start()

    async def stop(self) -> None:
        """Stop the periodic in-flight sweep."""
        await self._sweeper.stop()

    def _is_fresh(self, record: InFlightRequest, now: float) -> bool:
        return now - record.started_at < self.dedup_window

    def _register(self, record: InFlightRequest, now: float) -> None:
        existing = self._in_flight.get(record.key)
        if existing is not None and existing is not record and self._is_fresh(existing, now):
            raise InvariantViolationError(
                "Duplicate in-flight registration",
                details={"key": record.key, "started_at": existing.started_at},
            )
        # A record past the dedup window is replaced; its callers keep their task.
        self._in_flight[record.key] = record
        self._update_gauge()

    async def _run(self, record: InFlightRequest, request_fn: Callable[[], Awaitable[T]]) -> T:
        try:
            return await request_fn()
        finally:
            if self._in_flight.get(record.key) is record:
                del self._in_flight[record.key]
                self._update_gauge()

    def _record(self, outcome: str) -> None:
        if self.metrics:
            self.metrics.record_dedup(outcome)

    def _update_gauge(self) -> None:
        if self.metrics:
            self.metrics.set_gauge("inflight_requests", len(self._in_flight), queue=self.name)
