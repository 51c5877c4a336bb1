"""
Integration tests for the feed coordination flow against the mock backend.
"""

import asyncio

import httpx
import pytest

from mocks.backend.server import MockBackendServer
from shared.errors import ReactionUpdateError
from shared.metrics import MetricsCollector
from service_feed.app.adapters.backend_client import BackendClient
from service_feed.app.coordination.pipeline import CoordinationPipeline
from service_feed.app.domain.models import FeedUser, ReactionType
from service_feed.app.domain.reactions import find_post
from service_feed.app.profiles.service import ProfileService
from service_feed.app.timeline.service import GENERIC_REACTION_MESSAGE, TimelineService


class TestFeedFlow:
    """Integration tests for profile reads and reaction toggles."""

    @pytest.fixture
    def backend_server(self):
        return MockBackendServer()

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("feed-integration")

    @pytest.fixture
    def pipeline(self, metrics):
        return CoordinationPipeline(metrics=metrics)

    @pytest.fixture
    def backend(self, backend_server):
        return BackendClient(
            "http://backend.test",
            "anon-key",
            transport=httpx.ASGITransport(app=backend_server.app),
        )

    @pytest.fixture
    def profiles(self, backend, pipeline):
        return ProfileService(backend, pipeline.profile_cache, pipeline.queue)

    @pytest.fixture
    def timeline(self, backend, pipeline):
        return TimelineService(backend, pipeline.collections, pipeline.queue, pipeline.mutations)

    @pytest.fixture
    def viewer(self):
        return FeedUser(id="u1", name="Alice", username="alice")

    @pytest.mark.asyncio
    async def test_concurrent_profile_reads_hit_backend_once(self, profiles, backend_server, metrics):
        results = await asyncio.gather(*(profiles.get_profile("u2") for _ in range(5)))

        assert all(result.username == "mikechen" for result in results)
        assert backend_server.count_requests("GET", "profiles") == 1
        assert metrics.sample("dedup_requests_total", outcome="joined") == 4

        await profiles.get_profile("u2")
        assert backend_server.count_requests("GET", "profiles") == 1

    @pytest.mark.asyncio
    async def test_concurrent_feed_loads_share_one_fetch(self, timeline, backend_server):
        feeds = await asyncio.gather(*(timeline.load_feed("u1", force=True) for _ in range(3)))

        assert backend_server.count_requests("GET", "posts") == 1
        assert all([post.id for post in feed] == ["post-0", "post-1", "post-2"] for feed in feeds)

    @pytest.mark.asyncio
    async def test_reaction_round_trip(self, timeline, viewer, backend_server):
        await timeline.load_feed("u1")

        liked = await timeline.toggle_reaction(viewer, "post-2", ReactionType.LIKE)
        assert liked.user_reaction == ReactionType.LIKE

        refreshed = find_post(await timeline.load_feed("u1"), "post-2")
        assert refreshed.user_reaction == ReactionType.LIKE
        assert backend_server.count_requests("GET", "posts") == 2

        cleared = await timeline.toggle_reaction(viewer, "post-2", ReactionType.LIKE)
        assert cleared.user_reaction is None
        assert not [row for row in backend_server.tables["reactions"] if row["user_id"] == "u1"]

    @pytest.mark.asyncio
    async def test_rejected_reaction_restores_feed(self, timeline, viewer, backend_server, metrics):
        before = await timeline.load_feed("u1")
        backend_server.fail("POST", "reactions", 500, "insert failed")

        with pytest.raises(ReactionUpdateError) as exc_info:
            await timeline.toggle_reaction(viewer, "post-0", ReactionType.CELEBRATE)

        assert exc_info.value.user_message == GENERIC_REACTION_MESSAGE
        assert await timeline.load_feed("u1") == before
        assert metrics.sample("mutations_total", collection="feed", outcome="rolled_back") == 1

    @pytest.mark.asyncio
    async def test_save_and_share_round_trip(self, timeline, viewer, backend_server):
        await timeline.load_feed("u1")

        await timeline.toggle_save(viewer, "post-1")
        await timeline.share_post(viewer, "post-1")

        refreshed = find_post(await timeline.load_feed("u1"), "post-1")
        assert refreshed.user_saved is True
        assert refreshed.user_shared is True
        assert (refreshed.saves, refreshed.shares) == (1, 1)

    @pytest.mark.asyncio
    async def test_paging_through_feed(self, backend, pipeline, backend_server):
        timeline = TimelineService(backend, pipeline.collections, pipeline.queue, pipeline.mutations, page_size=2)

        first = await timeline.load_feed("u1")
        assert [post.id for post in first] == ["post-0", "post-1"]
        assert timeline.has_more("u1") is True

        extended = await timeline.load_more("u1")
        assert [post.id for post in extended] == ["post-0", "post-1", "post-2"]
        assert timeline.has_more("u1") is False

        refreshed = await timeline.load_feed("u1", force=True)
        assert len(refreshed) == 3
        assert backend_server.count_requests("GET", "posts") == 3

    @pytest.mark.asyncio
    async def test_pipeline_start_stop(self, pipeline):
        pipeline.start()
        assert pipeline.stats()["sweepers_running"] is True

        await pipeline.stop()
        assert pipeline.stats()["sweepers_running"] is False
