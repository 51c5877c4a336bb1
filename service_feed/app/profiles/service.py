"""
Profile lookups: entity cache first, queue-coordinated backend fetch on miss.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from shared.errors import ExternalServiceError
from shared.logging import get_logger

from service_feed.app.adapters.backend_client import BackendClient
from service_feed.app.coordination.entity_cache import EntityCache
from service_feed.app.coordination.request_queue import RequestQueue
from service_feed.app.domain.models import ProfileSummary


class ProfileService:
    """Read path for avatars, author chips and contributor strips."""

    def __init__(
        self,
        backend: BackendClient,
        cache: EntityCache[ProfileSummary],
        queue: RequestQueue,
    ) -> None:
        self.backend = backend
        self.cache = cache
        self.queue = queue
        self.logger = get_logger("feed.profiles")

    async def get_profile(self, user_id: str) -> Optional[ProfileSummary]:
        """Return the profile summary, or ``None`` if unknown or unavailable."""
        cached = self.cache.get(user_id)
        if cached is not None:
            return cached

        try:
            return await self.queue.dedupe(f"profile:{user_id}", lambda: self._load_profile(user_id))
        except ExternalServiceError as exc:
            self.logger.warning("Profile fetch failed; leaving cache empty", user_id=user_id, error=str(exc))
            return None

    async def get_profiles(self, user_ids: Sequence[str]) -> Dict[str, ProfileSummary]:
        """Resolve many profiles with at most one backend round trip."""
        found: Dict[str, ProfileSummary] = {}
        missing: List[str] = []
        for user_id in dict.fromkeys(user_ids):
            cached = self.cache.get(user_id)
            if cached is not None:
                found[user_id] = cached
            else:
                missing.append(user_id)

        if not missing:
            return found

        key = "profiles:" + ",".join(sorted(missing))
        try:
            loaded = await self.queue.dedupe(key, lambda: self._load_profiles(missing))
        except ExternalServiceError as exc:
            self.logger.warning(
                "Batch profile fetch failed; returning cached profiles only",
                requested=len(missing),
                error=str(exc),
            )
            return found

        for profile in loaded:
            if profile.id in missing:
                found[profile.id] = profile
        return found

    def handle_change(self, event: Dict[str, Any]) -> None:
        """Invalidate a profile named by a backend change event."""
        record = event.get("new") or event.get("old") or {}
        user_id = record.get("id")
        if user_id is not None:
            self.cache.invalidate(str(user_id))

    async def _load_profile(self, user_id: str) -> Optional[ProfileSummary]:
        row = await self.backend.fetch_profile(user_id)
        if row is None:
            return None
        profile = ProfileSummary.from_row(row)
        self.cache.put(profile)
        return profile

    async def _load_profiles(self, user_ids: Sequence[str]) -> List[ProfileSummary]:
        rows = await self.backend.fetch_profiles(user_ids)
        profiles = [ProfileSummary.from_row(row) for row in rows]
        self.cache.put_many(profiles)
        self.logger.debug("Loaded profiles", requested=len(user_ids), loaded=len(profiles))
        return profiles
