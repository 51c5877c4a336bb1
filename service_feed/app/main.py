"""
Feed coordination service.

Exposes the request-coordination layer (deduplicated reads, cached profile
summaries, optimistic reaction toggles) to UI collaborators over HTTP.
"""

import time
from typing import Any, Callable, Dict, List, Optional

import httpx
from fastapi import Header
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.errors import NotFoundError
from shared.logging import set_viewer_context

from service_feed.app.adapters.backend_client import BackendClient
from service_feed.app.adapters.change_feed import ChangeFeed
from service_feed.app.coordination.pipeline import CoordinationPipeline
from service_feed.app.domain.models import FeedUser, Post, ProfileSummary, ReactionType
from service_feed.app.profiles.service import ProfileService
from service_feed.app.timeline.service import TimelineService


class ProfileBatchRequest(BaseModel):
    ids: List[str] = Field(..., min_length=1, max_length=100)


class ReactionRequest(BaseModel):
    reaction_type: ReactionType


class FeedPageResponse(BaseModel):
    posts: List[Post]
    has_more: bool


class ChangeEventRequest(BaseModel):
    topic: str
    event: Dict[str, Any] = Field(default_factory=dict)


class FeedService(BaseService):
    """Feed coordination service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        backend_transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__("feed", 8000, config=config)

        self.backend = BackendClient(
            self.config.backend_url,
            self.config.backend_api_key,
            timeout=self.config.backend_timeout_seconds,
            transport=backend_transport,
        )
        self.pipeline = CoordinationPipeline.from_config(self.config, clock=clock, metrics=self.metrics)
        self.change_feed = ChangeFeed()
        self.profile_service = ProfileService(self.backend, self.pipeline.profile_cache, self.pipeline.queue)
        self.timeline_service = TimelineService(
            self.backend,
            self.pipeline.collections,
            self.pipeline.queue,
            self.pipeline.mutations,
            page_size=self.config.feed_page_size,
        )
        self._unsubscribers: List[Callable[[], bool]] = []

        self._setup_feed_routes()
        self.app.state.feed_service = self

    async def startup(self) -> None:
        self.pipeline.start()
        self._unsubscribers = [
            self.change_feed.subscribe_to_changes("profiles", self.profile_service.handle_change),
            self.change_feed.subscribe_to_changes("posts", self.timeline_service.handle_change),
            self.change_feed.subscribe_to_changes("reactions", self.timeline_service.handle_change),
        ]

    async def shutdown(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        await self.pipeline.stop()

    async def _check_dependencies(self) -> Dict[str, str]:
        return {"coordination": "running" if self.pipeline.started else "stopped"}

    async def _viewer(self, viewer_id: str) -> FeedUser:
        profile = await self.profile_service.get_profile(viewer_id)
        if profile is None:
            return FeedUser(id=viewer_id, name="You", username="you")
        return FeedUser.from_profile(profile)

    @staticmethod
    def _require(post: Optional[Post], post_id: str) -> Post:
        if post is None:
            raise NotFoundError("Post not found in feed", details={"post_id": post_id})
        return post

    def _setup_feed_routes(self):
        """Set up feed routes."""

        @self.app.get("/api/v1/profiles/{user_id}", response_model=ProfileSummary)
        async def get_profile(user_id: str):
            """Profile summary, served from cache when fresh."""
            profile = await self.profile_service.get_profile(user_id)
            if profile is None:
                raise NotFoundError("Profile not found", details={"user_id": user_id})
            return profile

        @self.app.post("/api/v1/profiles/batch", response_model=List[ProfileSummary])
        async def get_profiles(request: ProfileBatchRequest):
            """Profile summaries for many users (unknown ids are omitted)."""
            profiles = await self.profile_service.get_profiles(request.ids)
            return [profiles[user_id] for user_id in dict.fromkeys(request.ids) if user_id in profiles]

        @self.app.get("/api/v1/feed", response_model=List[Post])
        async def get_feed(
            x_user_id: str = Header(..., alias="X-User-Id"),
            refresh: bool = False,
        ):
            """The viewer's feed."""
            set_viewer_context(x_user_id)
            return await self.timeline_service.load_feed(x_user_id, force=refresh)

        @self.app.post("/api/v1/feed/posts/{post_id}/reactions", response_model=Post)
        async def toggle_reaction(
            post_id: str,
            request: ReactionRequest,
            x_user_id: str = Header(..., alias="X-User-Id"),
        ):
            """Toggle the viewer's reaction; responds after commit or rollback."""
            set_viewer_context(x_user_id)
            await self.timeline_service.load_feed(x_user_id)
            viewer = await self._viewer(x_user_id)
            post = await self.timeline_service.toggle_reaction(viewer, post_id, request.reaction_type)
            return self._require(post, post_id)

        @self.app.get("/api/v1/feed/more", response_model=FeedPageResponse)
        async def get_more(x_user_id: str = Header(..., alias="X-User-Id")):
            """The viewer's feed extended by the next page of older posts."""
            set_viewer_context(x_user_id)
            posts = await self.timeline_service.load_more(x_user_id)
            return FeedPageResponse(posts=posts, has_more=self.timeline_service.has_more(x_user_id))

        @self.app.post("/api/v1/feed/posts/{post_id}/save", response_model=Post)
        async def toggle_save(post_id: str, x_user_id: str = Header(..., alias="X-User-Id")):
            """Bookmark or un-bookmark a post."""
            set_viewer_context(x_user_id)
            await self.timeline_service.load_feed(x_user_id)
            viewer = await self._viewer(x_user_id)
            return self._require(await self.timeline_service.toggle_save(viewer, post_id), post_id)

        @self.app.post("/api/v1/feed/posts/{post_id}/share", response_model=Post)
        async def share_post(post_id: str, x_user_id: str = Header(..., alias="X-User-Id")):
            """Share a post."""
            set_viewer_context(x_user_id)
            await self.timeline_service.load_feed(x_user_id)
            viewer = await self._viewer(x_user_id)
            return self._require(await self.timeline_service.share_post(viewer, post_id), post_id)

        @self.app.post("/api/v1/changes", status_code=202)
        async def publish_change(request: ChangeEventRequest):
            """Receive a backend change event and fan it out."""
            delivered = await self.change_feed.publish(request.topic, request.event)
            return {"topic": request.topic, "delivered": delivered}

        @self.app.get("/api/v1/coordination/stats")
        async def coordination_stats():
            """Sizes of the coordination structures."""
            return JSONResponse(content=self.pipeline.stats())


def create_app(config: Optional[ServiceConfig] = None, **kwargs):
    """Create FastAPI application."""
    service = FeedService(config, **kwargs)
    return service.app


if __name__ == "__main__":
    service = FeedService(get_config("feed", 8000))
    service.run()
