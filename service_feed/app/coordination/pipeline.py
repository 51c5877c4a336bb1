"""
Wiring of the coordination primitives into one explicitly constructed unit.
"""

import time
from typing import Any, Callable, Dict, Optional, TYPE_CHECKING

from shared.logging import get_logger
from .collection_store import CollectionStore
from .entity_cache import EntityCache
from .optimistic import MutationCoordinator
from .request_queue import RequestQueue

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.config import BaseConfig
    from shared.metrics import MetricsCollector


class CoordinationPipeline:
    """Queue, entity cache, collection store and mutation coordinator.

    Built once at application start and handed to the services that need it.
    """

    def __init__(
        self,
        *,
        dedup_window: float = 1.0,
        request_sweep_interval: float = 30.0,
        entity_ttl: float = 300.0,
        entity_sweep_interval: float = 600.0,
        clock: Callable[[], float] = time.monotonic,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.logger = get_logger("feed.pipeline")
        self.queue = RequestQueue(
            dedup_window,
            sweep_interval=request_sweep_interval,
            clock=clock,
            metrics=metrics,
        )
        self.profile_cache = EntityCache(
            entity_ttl,
            sweep_interval=entity_sweep_interval,
            clock=clock,
            name="profiles",
            metrics=metrics,
        )
        self.collections = CollectionStore(metrics=metrics)
        self.mutations = MutationCoordinator(self.collections, metrics=metrics)
        self.started = False

    @classmethod
    def from_config(
        cls,
        config: "BaseConfig",
        *,
        clock: Callable[[], float] = time.monotonic,
        metrics: Optional["MetricsCollector"] = None,
    ) -> "CoordinationPipeline":
        return cls(
            dedup_window=config.dedup_window_seconds,
            request_sweep_interval=config.request_sweep_interval_seconds,
            entity_ttl=config.entity_cache_ttl_seconds,
            entity_sweep_interval=config.entity_cache_sweep_interval_seconds,
            clock=clock,
            metrics=metrics,
        )

    def start(self) -> None:
        """Start the periodic sweeps (requires a running event loop)."""
        self.queue.start()
        self.profile_cache.start()
        self.started = True
        self.logger.info("Coordination pipeline started")

    async def stop(self) -> None:
        await self.queue.stop()
        await self.profile_cache.stop()
        self.started = False
        self.logger.info("Coordination pipeline stopped")

    def stats(self) -> Dict[str, Any]:
        return {
            "in_flight_requests": self.queue.size(),
            "profile_cache": self.profile_cache.stats(),
            "collections": self.collections.size(),
            "sweepers_running": self.started,
        }
