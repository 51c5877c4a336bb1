"""
Unit tests for the in-process change feed.
"""

import pytest

from service_feed.app.adapters.change_feed import ChangeFeed


class TestChangeFeed:
    """Test cases for ChangeFeed."""

    @pytest.fixture
    def feed(self):
        return ChangeFeed()

    @pytest.mark.asyncio
    async def test_publish_reaches_sync_and_async_handlers(self, feed):
        received = []

        async def async_handler(event):
            received.append(("async", event["id"]))

        feed.subscribe_to_changes("profiles", lambda event: received.append(("sync", event["id"])))
        feed.subscribe_to_changes("profiles", async_handler)

        delivered = await feed.publish("profiles", {"id": "u1"})

        assert delivered == 2
        assert received == [("sync", "u1"), ("async", "u1")]

    @pytest.mark.asyncio
    async def test_topics_are_isolated(self, feed):
        received = []
        feed.subscribe_to_changes("posts", received.append)

        assert await feed.publish("profiles", {"id": "u1"}) == 0
        assert received == []

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_delivery(self, feed):
        received = []
        unsubscribe = feed.subscribe_to_changes("posts", received.append)

        assert unsubscribe() is True
        assert unsubscribe() is False
        assert feed.subscriber_count("posts") == 0
        assert await feed.publish("posts", {"id": "post-1"}) == 0
        assert received == []

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_block_others(self, feed):
        received = []

        def broken(event):
            raise RuntimeError("handler failed")

        feed.subscribe_to_changes("posts", broken)
        feed.subscribe_to_changes("posts", received.append)

        assert await feed.publish("posts", {"id": "post-1"}) == 1
        assert received == [{"id": "post-1"}]

    @pytest.mark.asyncio
    async def test_subscription_tracks_event_count(self, feed):
        feed.subscribe_to_changes("posts", lambda event: None)
        await feed.publish("posts", {})
        await feed.publish("posts", {})

        subscription = next(iter(feed.subscriptions.values()))
        assert subscription.event_count == 2
        assert subscription.last_event_at is not None
