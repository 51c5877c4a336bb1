"""
Test helper functions and factory methods for the feed coordination services.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class ControlledRequest:
    """An async producer whose completion the test decides.

    Counts invocations so tests can assert how many underlying calls a
    coordination primitive actually issued.
    """

    def __init__(self, result: Any = None):
        self.result = result
        self.calls = 0
        self._release = asyncio.Event()
        self._error: Optional[BaseException] = None

    async def __call__(self) -> Any:
        self.calls += 1
        await self._release.wait()
        if self._error is not None:
            raise self._error
        return self.result

    def resolve(self, result: Any = None) -> None:
        if result is not None:
            self.result = result
        self._release.set()

    def reject(self, error: BaseException) -> None:
        self._error = error
        self._release.set()


async def settle(rounds: int = 5) -> None:
    """Let scheduled tasks run a few event-loop steps."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def failing(error: BaseException) -> Callable[[], Awaitable[Any]]:
    """Zero-argument async producer that always raises ``error``."""
    async def _fail():
        raise error
    return _fail


class FeedDataFactory:
    """Factory for feed rows and models used across tests."""

    @staticmethod
    def profile_row(user_id: str = "u1", username: str = "alice", display_name: str = "Alice", **extra) -> Dict[str, Any]:
        row = {
            "id": user_id,
            "username": username,
            "display_name": display_name,
            "avatar_url": None,
            "is_verified": False,
        }
        row.update(extra)
        return row

    @staticmethod
    def reaction_row(target_id: str, user_id: str, reaction_type: str = "like", **extra) -> Dict[str, Any]:
        row = {
            "id": f"reaction-{target_id}-{user_id}",
            "target_id": target_id,
            "target_type": "post",
            "user_id": user_id,
            "reaction_type": reaction_type,
            "created_at": "2024-01-01T12:00:00+00:00",
            "user": {"id": user_id, "username": user_id, "display_name": user_id.upper()},
        }
        row.update(extra)
        return row

    @staticmethod
    def post_row(post_id: str = "post-1", author_id: str = "u2", reactions: Optional[List[Dict[str, Any]]] = None, **extra) -> Dict[str, Any]:
        row = {
            "id": post_id,
            "author_id": author_id,
            "content": f"Content of {post_id}",
            "shares": 0,
            "saves": 0,
            "views": 0,
            "created_at": datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc).isoformat(),
            "author": {"id": author_id, "username": author_id, "display_name": author_id.upper()},
            "reactions": reactions or [],
        }
        row.update(extra)
        return row
