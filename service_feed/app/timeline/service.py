"""
Viewer feeds: generation-checked loading and optimistic post updates.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type

from shared.errors import ExternalServiceError, FeedUpdateError, MutationError, NotFoundError, ReactionUpdateError
from shared.logging import get_logger

from service_feed.app.adapters.backend_client import BackendClient, MutationParams
from service_feed.app.coordination.collection_store import CollectionStore
from service_feed.app.coordination.optimistic import MutationCoordinator
from service_feed.app.coordination.request_queue import RequestQueue
from service_feed.app.domain.engagement import share_post, toggle_save
from service_feed.app.domain.models import FeedUser, Post, ReactionType
from service_feed.app.domain.reactions import find_post, toggle_reaction


RATE_LIMITED_MESSAGE = "Please wait a moment before reacting again"
GENERIC_REACTION_MESSAGE = "Failed to update reaction. Please try again."
RATE_LIMITED_UPDATE_MESSAGE = "Please wait a moment before trying again"
GENERIC_SAVE_MESSAGE = "Failed to save post. Please try again."
GENERIC_SHARE_MESSAGE = "Failed to share post. Please try again."


class TimelineService:
    """Owns the rendered feed collections and the mutations applied to them."""

    def __init__(
        self,
        backend: BackendClient,
        store: CollectionStore,
        queue: RequestQueue,
        coordinator: MutationCoordinator,
        *,
        page_size: int = 20,
    ) -> None:
        self.backend = backend
        self.store = store
        self.queue = queue
        self.coordinator = coordinator
        self.page_size = page_size
        self.logger = get_logger("feed.timeline")
        self._has_more: Dict[str, bool] = {}

    @staticmethod
    def collection_key(viewer_id: str) -> str:
        return f"feed:{viewer_id}"

    def has_more(self, viewer_id: str) -> bool:
        """Whether older posts remain past the loaded pages."""
        return self._has_more.get(self.collection_key(viewer_id), True)

    async def load_feed(self, viewer_id: str, *, force: bool = False) -> List[Post]:
        """Return the viewer's feed, refetching when missing, stale or forced.

        A refetch covers every page already loaded, so refreshing never
        shrinks the feed.
        """
        key = self.collection_key(viewer_id)
        if not force and self.store.contains(key) and not self.store.is_stale(key):
            return self.store.get(key)

        limit = max(self.page_size, len(self.store.get(key, [])))
        return await self._fetch_page(viewer_id, f"collection:{key}", offset=0, limit=limit)

    async def load_more(self, viewer_id: str) -> List[Post]:
        """Append the next page of older posts to the viewer's feed."""
        key = self.collection_key(viewer_id)
        current = self.store.get(key)
        if current is None:
            return await self.load_feed(viewer_id)
        if not self.has_more(viewer_id):
            return current

        offset = len(current)
        return await self._fetch_page(
            viewer_id,
            f"collection:{key}:offset:{offset}",
            offset=offset,
            limit=self.page_size,
        )

    async def toggle_reaction(
        self,
        viewer: FeedUser,
        post_id: str,
        reaction_type: ReactionType,
    ) -> Optional[Post]:
        """Toggle the viewer's reaction on a post; returns the post once settled.

        Raises:
            NotFoundError: the post is not part of the viewer's loaded feed.
            ReactionUpdateError: the backend rejected the change (rolled back).
        """
        reaction_type = ReactionType(reaction_type)
        post = self._loaded_post(viewer.id, post_id)
        previous = post.user_reaction
        operation = "remove" if previous == reaction_type else "set"

        async def remote_call() -> None:
            await self._apply_reaction(viewer.id, post_id, previous, None if operation == "remove" else reaction_type)

        return await self._mutate_post(
            viewer,
            post_id,
            lambda posts: toggle_reaction(posts, post_id, reaction_type, viewer),
            remote_call,
            dedup_key=f"reaction:{post_id}:{viewer.id}:{operation}:{reaction_type.value}",
            error_class=ReactionUpdateError,
            messages=(RATE_LIMITED_MESSAGE, GENERIC_REACTION_MESSAGE),
        )

    async def toggle_save(self, viewer: FeedUser, post_id: str) -> Optional[Post]:
        """Bookmark or un-bookmark a post for the viewer."""
        post = self._loaded_post(viewer.id, post_id)
        match = {"post_id": post_id, "user_id": viewer.id}
        if post.user_saved:
            operation = "remove"
            params = MutationParams(table="saved_posts", operation="delete", match=match)
        else:
            operation = "set"
            params = MutationParams(table="saved_posts", operation="insert", values=match)

        return await self._mutate_post(
            viewer,
            post_id,
            lambda posts: toggle_save(posts, post_id),
            lambda: self.backend.apply_mutation(params),
            dedup_key=f"save:{post_id}:{viewer.id}:{operation}",
            error_class=FeedUpdateError,
            messages=(RATE_LIMITED_UPDATE_MESSAGE, GENERIC_SAVE_MESSAGE),
        )

    async def share_post(self, viewer: FeedUser, post_id: str) -> Optional[Post]:
        """Record a share of a post by the viewer."""
        self._loaded_post(viewer.id, post_id)
        params = MutationParams(table="post_shares", operation="insert", values={"post_id": post_id, "user_id": viewer.id})

        return await self._mutate_post(
            viewer,
            post_id,
            lambda posts: share_post(posts, post_id),
            lambda: self.backend.apply_mutation(params),
            dedup_key=f"share:{post_id}:{viewer.id}",
            error_class=FeedUpdateError,
            messages=(RATE_LIMITED_UPDATE_MESSAGE, GENERIC_SHARE_MESSAGE),
        )

    def handle_change(self, event: Dict[str, Any]) -> None:
        """Backend rows changed underneath us; refetch every loaded feed lazily."""
        invalidated = self.store.invalidate_all()
        self.logger.debug("Invalidated feeds from change event", collections=invalidated, table=event.get("table"))

    async def _fetch_page(self, viewer_id: str, dedup_key: str, *, offset: int, limit: int) -> List[Post]:
        """Fetch one page and apply it under the generation that issued the fetch.

        Callers that join an in-flight fetch share its apply step and never
        stamp its rows with a newer generation of their own.
        """
        key = self.collection_key(viewer_id)

        async def fetch_and_apply() -> bool:
            generation = self.store.begin_refetch(key)
            rows = await self.backend.fetch_posts(limit, offset=offset)
            page = [Post.from_row(row, viewer_id) for row in rows]
            if offset:
                loaded = self.store.get(key, [])[:offset]
                seen = {post.id for post in loaded}
                page = loaded + [post for post in page if post.id not in seen]

            if not self.store.apply_refetch(key, generation, page):
                return False
            self._has_more[key] = len(rows) >= limit
            return True

        try:
            await self.queue.dedupe(dedup_key, fetch_and_apply)
        except ExternalServiceError as exc:
            self.logger.warning("Feed refetch failed; serving current state", collection_key=key, error=str(exc))

        # A dropped result means a mutation or a newer refetch owns the collection.
        return self.store.get(key, [])

    def _loaded_post(self, viewer_id: str, post_id: str) -> Post:
        post = find_post(self.store.get(self.collection_key(viewer_id)), post_id)
        if post is None:
            raise NotFoundError("Post not found in feed", details={"post_id": post_id})
        return post

    async def _mutate_post(
        self,
        viewer: FeedUser,
        post_id: str,
        optimistic_update: Callable[[Any], Any],
        remote_call: Callable[[], Awaitable[Any]],
        *,
        dedup_key: str,
        error_class: Type[FeedUpdateError],
        messages: Tuple[str, str],
    ) -> Optional[Post]:
        key = self.collection_key(viewer.id)
        try:
            await self.coordinator.mutate(
                key,
                optimistic_update,
                lambda: self.queue.dedupe(dedup_key, remote_call),
            )
        except MutationError as exc:
            rate_limited_message, generic_message = messages
            message = rate_limited_message if self._is_rate_limited(exc) else generic_message
            self.logger.warning(
                "Post update rolled back",
                post_id=post_id,
                update=dedup_key.split(":", 1)[0],
                error=exc.message,
            )
            raise error_class(key, message, details=exc.details) from exc

        return find_post(self.store.get(key), post_id)

    async def _apply_reaction(
        self,
        user_id: str,
        post_id: str,
        previous: Optional[ReactionType],
        new: Optional[ReactionType],
    ) -> None:
        match = {"target_id": post_id, "target_type": "post", "user_id": user_id}
        if previous is not None:
            await self.backend.apply_mutation(MutationParams(table="reactions", operation="delete", match=match))
        if new is not None:
            await self.backend.apply_mutation(MutationParams(
                table="reactions",
                operation="insert",
                values={**match, "reaction_type": new.value},
            ))

    @staticmethod
    def _is_rate_limited(exc: MutationError) -> bool:
        cause = exc.__cause__
        status_code = getattr(cause, "details", {}).get("status_code") if cause is not None else None
        text = str(cause or exc).lower()
        return status_code == 429 or "rate limit" in text
