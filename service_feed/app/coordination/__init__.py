"""
Request coordination package.

Sits between UI-facing handlers and the backend collaborator:

- request_queue: coalesce concurrent identical requests by key.
- entity_cache: short-lived keyed cache of denormalized records.
- collection_store: rendered collection state with refetch generations.
- optimistic: snapshot/apply/commit-or-rollback around remote mutations.
- pipeline: explicit construction and lifecycle of the above.

All bookkeeping is synchronous; the only suspension points are the remote
calls themselves.
"""

from .collection_store import CollectionStore, OptimisticSnapshot
from .entity_cache import CacheEntry, EntityCache
from .optimistic import MutationCoordinator
from .pipeline import CoordinationPipeline
from .request_queue import InFlightRequest, RequestQueue

__all__ = [
    "CacheEntry",
    "CollectionStore",
    "CoordinationPipeline",
    "EntityCache",
    "InFlightRequest",
    "MutationCoordinator",
    "OptimisticSnapshot",
    "RequestQueue",
]
