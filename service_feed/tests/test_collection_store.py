"""
Unit tests for the collection store.
"""

import pytest

from shared.metrics import MetricsCollector
from service_feed.app.coordination.collection_store import CollectionStore, collection_label


class TestCollectionStore:
    """Test cases for CollectionStore."""

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("feed-test")

    @pytest.fixture
    def store(self, metrics):
        return CollectionStore(metrics)

    def test_get_returns_copy(self, store):
        store.replace("feed:u1", [{"id": "post-1", "likes": 1}])

        view = store.get("feed:u1")
        view[0]["likes"] = 99

        assert store.get("feed:u1") == [{"id": "post-1", "likes": 1}]

    def test_get_default_for_unknown_key(self, store):
        assert store.get("feed:nobody") is None
        assert store.get("feed:nobody", []) == []
        assert not store.contains("feed:nobody")

    def test_snapshot_restore_is_exact(self, store):
        store.replace("feed:u1", [{"id": "post-1", "tags": ["a"]}])
        snapshot = store.snapshot("feed:u1")

        store.replace("feed:u1", [])
        store.restore(snapshot)

        assert store.get("feed:u1") == [{"id": "post-1", "tags": ["a"]}]

    def test_snapshot_is_isolated_from_later_edits(self, store):
        state = [{"id": "post-1", "tags": ["a"]}]
        store.replace("feed:u1", state)
        snapshot = store.snapshot("feed:u1")

        state[0]["tags"].append("b")
        store.restore(snapshot)

        assert store.get("feed:u1") == [{"id": "post-1", "tags": ["a"]}]

    def test_restore_of_absent_state_removes_key(self, store):
        snapshot = store.snapshot("feed:u1")
        assert snapshot.was_absent

        store.replace("feed:u1", ["optimistic"])
        store.restore(snapshot)

        assert not store.contains("feed:u1")

    def test_refetch_applies_when_generation_current(self, store):
        generation = store.begin_refetch("feed:u1")

        assert store.apply_refetch("feed:u1", generation, ["fresh"]) is True
        assert store.get("feed:u1") == ["fresh"]

    def test_stale_refetch_is_dropped(self, store, metrics):
        store.replace("feed:u1", ["optimistic"])
        generation = store.begin_refetch("feed:u1")
        store.cancel_refetch("feed:u1")

        assert store.apply_refetch("feed:u1", generation, ["old server copy"]) is False
        assert store.get("feed:u1") == ["optimistic"]
        assert metrics.sample("stale_results_dropped_total", collection="feed") == 1

    def test_newer_refetch_wins(self, store):
        first = store.begin_refetch("feed:u1")
        second = store.begin_refetch("feed:u1")

        assert store.apply_refetch("feed:u1", second, ["second"]) is True
        assert store.apply_refetch("feed:u1", first, ["first"]) is False
        assert store.get("feed:u1") == ["second"]

    def test_generations_are_per_key(self, store):
        generation = store.begin_refetch("feed:u1")
        store.cancel_refetch("feed:u2")

        assert store.apply_refetch("feed:u1", generation, ["mine"]) is True

    def test_invalidate_marks_stale_until_refetched(self, store):
        store.replace("feed:u1", [])
        store.invalidate("feed:u1")
        assert store.is_stale("feed:u1")

        generation = store.begin_refetch("feed:u1")
        store.apply_refetch("feed:u1", generation, ["fresh"])
        assert not store.is_stale("feed:u1")

    def test_invalidate_all(self, store):
        store.replace("feed:u1", [])
        store.replace("feed:u2", [])

        assert store.invalidate_all() == 2
        assert store.is_stale("feed:u1")
        assert store.is_stale("feed:u2")
        assert sorted(store.keys()) == ["feed:u1", "feed:u2"]
        assert store.size() == 2

    def test_collection_label(self):
        assert collection_label("feed:user-1") == "feed"
        assert collection_label("plain") == "plain"

    def test_refetch_is_dropped_while_mutation_holds_key(self, store, metrics):
        store.replace("feed:u1", ["optimistic"])
        store.begin_mutation("feed:u1")
        generation = store.begin_refetch("feed:u1")

        assert store.is_mutating("feed:u1")
        assert store.apply_refetch("feed:u1", generation, ["server copy"]) is False
        assert store.get("feed:u1") == ["optimistic"]
        assert metrics.sample("stale_results_dropped_total", collection="feed") == 1

    def test_refetch_started_during_mutation_stays_stale_after_it_ends(self, store):
        store.begin_mutation("feed:u1")
        generation = store.begin_refetch("feed:u1")
        store.end_mutation("feed:u1")

        assert not store.is_mutating("feed:u1")
        assert store.apply_refetch("feed:u1", generation, ["server copy"]) is False

        fresh = store.begin_refetch("feed:u1")
        assert store.apply_refetch("feed:u1", fresh, ["fresh"]) is True

    def test_overlapping_holds_release_together(self, store):
        store.begin_mutation("feed:u1")
        store.begin_mutation("feed:u1")
        store.end_mutation("feed:u1")
        assert store.is_mutating("feed:u1")

        store.end_mutation("feed:u1")
        assert not store.is_mutating("feed:u1")
