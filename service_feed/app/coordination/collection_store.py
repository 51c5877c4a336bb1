"""
Client-side collection state with per-key refetch generations.
"""

import copy
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set, TYPE_CHECKING

from shared.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


_MISSING = object()


def collection_label(collection_key: str) -> str:
    """Low-cardinality label for metrics ("feed:user-1" -> "feed")."""
    return collection_key.split(":", 1)[0]


@dataclass
class OptimisticSnapshot:
    """Pre-mutation state of one collection, owned by a single mutation."""
    collection_key: str
    previous_state: Any
    generation: int

    @property
    def was_absent(self) -> bool:
        return self.previous_state is _MISSING


class CollectionStore:
    """Holds rendered collections (e.g. a viewer's feed) keyed by collection key.

    Reads return deep copies. Writes go through :meth:`replace`,
    :meth:`restore` and :meth:`apply_refetch` only. Each key carries a
    monotonically increasing generation: a refetch result is applied only if
    its generation is still the latest one.
    """

    def __init__(self, metrics: Optional["MetricsCollector"] = None):
        self.metrics = metrics
        self.logger = get_logger("feed.collections")
        self._states: Dict[str, Any] = {}
        self._generations: Dict[str, int] = {}
        self._stale: Set[str] = set()
        self._mutating: Dict[str, int] = {}

    def get(self, collection_key: str, default: Any = None) -> Any:
        if collection_key not in self._states:
            return default
        return copy.deepcopy(self._states[collection_key])

    def contains(self, collection_key: str) -> bool:
        return collection_key in self._states

    def replace(self, collection_key: str, state: Any) -> None:
        self._states[collection_key] = state

    def generation(self, collection_key: str) -> int:
        return self._generations.get(collection_key, 0)

    def snapshot(self, collection_key: str) -> OptimisticSnapshot:
        previous = self._states.get(collection_key, _MISSING)
        return OptimisticSnapshot(
            collection_key=collection_key,
            previous_state=previous if previous is _MISSING else copy.deepcopy(previous),
            generation=self.generation(collection_key),
        )

    def restore(self, snapshot: OptimisticSnapshot) -> None:
        """Put the snapshot back verbatim, including "no state at all"."""
        if snapshot.was_absent:
            self._states.pop(snapshot.collection_key, None)
        else:
            self._states[snapshot.collection_key] = copy.deepcopy(snapshot.previous_state)

    def begin_refetch(self, collection_key: str) -> int:
        """Start a refetch; returns the generation its result must match."""
        return self._bump(collection_key)

    def cancel_refetch(self, collection_key: str) -> int:
        """Make any in-flight refetch for ``collection_key`` stale."""
        return self._bump(collection_key)

    def begin_mutation(self, collection_key: str) -> int:
        """Hold ``collection_key`` for a mutation; no refetch applies until it ends."""
        self._mutating[collection_key] = self._mutating.get(collection_key, 0) + 1
        return self.cancel_refetch(collection_key)

    def end_mutation(self, collection_key: str) -> int:
        """Release a hold; refetches started while it was held stay stale."""
        remaining = self._mutating.get(collection_key, 0) - 1
        if remaining > 0:
            self._mutating[collection_key] = remaining
        else:
            self._mutating.pop(collection_key, None)
        return self.cancel_refetch(collection_key)

    def is_mutating(self, collection_key: str) -> bool:
        return collection_key in self._mutating

    def apply_refetch(self, collection_key: str, generation: int, state: Any) -> bool:
        """Apply a refetch result unless a newer generation has started.

        Results are also dropped while a mutation holds the key: the server
        copy they carry may predate the optimistic edit.
        """
        current = self.generation(collection_key)
        if generation != current or collection_key in self._mutating:
            self.logger.debug(
                "Dropping stale refetch result",
                collection_key=collection_key,
                generation=generation,
                current_generation=current,
            )
            if self.metrics:
                self.metrics.record_stale_result(collection_label(collection_key))
            return False

        self._states[collection_key] = state
        self._stale.discard(collection_key)
        return True

    def invalidate(self, collection_key: str) -> None:
        """Mark a collection for refetch on its next read."""
        self._stale.add(collection_key)

    def invalidate_all(self) -> int:
        self._stale.update(self._states.keys())
        return len(self._states)

    def is_stale(self, collection_key: str) -> bool:
        return collection_key in self._stale

    def keys(self) -> List[str]:
        return list(self._states.keys())

    def size(self) -> int:
        return len(self._states)

    def _bump(self, collection_key: str) -> int:
        generation = self.generation(collection_key) + 1
        self._generations[collection_key] = generation
        return generation
