"""
Optimistic mutation coordinator.

Protocol per mutation: hold the collection against refetches, snapshot,
apply the local change synchronously, await the remote call, then either
invalidate (commit) or restore the snapshot and invalidate (rollback). The
remote call may have partially applied, so rolled-back state is refetched
on the next read.

Known ordering hazard: when two mutations overlap on one collection, the
second snapshot already contains the first optimistic edit. If the first
mutation then fails, restoring its snapshot also discards the second edit.
Only one outstanding mutation per collection is guaranteed to roll back
cleanly; overlapping rollbacks are logged as warnings.
"""

import asyncio
import time
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, Optional, TYPE_CHECKING

from shared.errors import MutationError
from shared.logging import get_logger
from .collection_store import CollectionStore, collection_label

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


OptimisticUpdate = Callable[[Any], Any]
RemoteCall = Callable[[], Awaitable[Any]]


class MutationCoordinator:
    """Applies optimistic updates to a :class:`CollectionStore`."""

    def __init__(self, store: CollectionStore, metrics: Optional["MetricsCollector"] = None):
        self.store = store
        self.metrics = metrics
        self.logger = get_logger("feed.mutations")
        self._outstanding: Dict[str, int] = defaultdict(int)

    async def mutate(
        self,
        collection_key: str,
        optimistic_update: OptimisticUpdate,
        remote_call: RemoteCall,
    ) -> None:
        """Run one optimistic mutation; returns once committed or rolled back.

        Raises:
            MutationError: the remote call failed and the snapshot was restored.
        """
        self.store.begin_mutation(collection_key)
        snapshot = self.store.snapshot(collection_key)

        # Visible to readers before the remote call is issued.
        self.store.replace(collection_key, optimistic_update(self.store.get(collection_key)))
        self._outstanding[collection_key] += 1
        started = time.perf_counter()

        try:
            await remote_call()
        except asyncio.CancelledError:
            self._rollback(snapshot, reason="cancelled")
            self._record(collection_key, "cancelled", started)
            raise
        except Exception as exc:
            self._rollback(snapshot, reason=str(exc))
            self._record(collection_key, "rolled_back", started)
            raise MutationError(
                collection_key,
                f"Mutation on {collection_key} failed: {exc}",
                details={"error": str(exc), "error_type": type(exc).__name__},
            ) from exc
        else:
            # The remote response may already be older than newer local edits.
            self.store.invalidate(collection_key)
            self._record(collection_key, "committed", started)
            self.logger.debug("Mutation committed", collection_key=collection_key)
        finally:
            self.store.end_mutation(collection_key)
            self._outstanding[collection_key] -= 1
            if not self._outstanding[collection_key]:
                del self._outstanding[collection_key]

    def outstanding(self, collection_key: str) -> int:
        """Number of mutations on ``collection_key`` that have not settled."""
        return self._outstanding.get(collection_key, 0)

    def _rollback(self, snapshot, reason: str) -> None:
        overlapping = self._outstanding[snapshot.collection_key] - 1
        if overlapping > 0:
            self.logger.warning(
                "Rolling back with overlapping mutations outstanding; their optimistic edits are discarded too",
                collection_key=snapshot.collection_key,
                overlapping=overlapping,
            )
        self.store.restore(snapshot)
        self.store.invalidate(snapshot.collection_key)
        self.logger.info(
            "Mutation rolled back",
            collection_key=snapshot.collection_key,
            reason=reason,
        )

    def _record(self, collection_key: str, outcome: str, started: float) -> None:
        if self.metrics:
            self.metrics.record_mutation(
                collection_label(collection_key),
                outcome,
                time.perf_counter() - started,
            )
