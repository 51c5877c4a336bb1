"""
Feed domain models.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ReactionType(str, Enum):
    """Reactions a viewer can leave on a post."""
    LIKE = "like"
    LOVE = "love"
    CELEBRATE = "celebrate"
    SUPPORT = "support"
    INSIGHTFUL = "insightful"
    CURIOUS = "curious"


class ProfileSummary(BaseModel):
    """Denormalized profile record kept in the entity cache."""

    id: str
    username: str = ""
    display_name: str = ""
    avatar_url: Optional[str] = None
    is_verified: bool = False

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ProfileSummary":
        """Build a summary from a backend ``profiles`` row, tolerating nulls."""
        return cls(
            id=str(row["id"]),
            username=row.get("username") or "",
            display_name=row.get("display_name") or "",
            avatar_url=row.get("avatar_url"),
            is_verified=bool(row.get("is_verified") or False),
        )


class FeedUser(BaseModel):
    """Author or reacting user as rendered in the feed."""

    id: str
    name: str
    username: str
    avatar: Optional[str] = None

    @classmethod
    def from_profile(cls, profile: ProfileSummary) -> "FeedUser":
        return cls(
            id=profile.id,
            name=profile.display_name or profile.username or profile.id[:6],
            username=profile.username,
            avatar=profile.avatar_url,
        )


class Reaction(BaseModel):
    id: str
    type: ReactionType
    user: FeedUser
    created_at: datetime


class Post(BaseModel):
    """One entry of a viewer's rendered feed."""

    id: str
    author: FeedUser
    content: str = ""
    reactions: List[Reaction] = Field(default_factory=list)
    user_reaction: Optional[ReactionType] = None
    user_saved: bool = False
    user_shared: bool = False
    shares: int = 0
    saves: int = 0
    views: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_row(cls, row: Dict[str, Any], viewer_id: Optional[str] = None) -> "Post":
        """Map a backend ``posts`` row with embedded author and reactions."""
        author = FeedUser.from_profile(ProfileSummary.from_row(row.get("author") or {"id": row["author_id"]}))

        reactions: List[Reaction] = []
        user_reaction: Optional[ReactionType] = None
        for reaction_row in row.get("reactions") or []:
            reaction_type = ReactionType(reaction_row.get("reaction_type") or ReactionType.LIKE.value)
            user_row = reaction_row.get("user") or {"id": reaction_row["user_id"]}
            reactions.append(Reaction(
                id=str(reaction_row["id"]),
                type=reaction_type,
                user=FeedUser.from_profile(ProfileSummary.from_row(user_row)),
                created_at=reaction_row.get("created_at") or datetime.now(timezone.utc),
            ))
            if viewer_id is not None and str(reaction_row["user_id"]) == viewer_id:
                user_reaction = reaction_type

        return cls(
            id=str(row["id"]),
            author=author,
            content=row.get("content") or "",
            reactions=reactions,
            user_reaction=user_reaction,
            user_saved=_has_viewer_row(row.get("saved_posts"), viewer_id),
            user_shared=_has_viewer_row(row.get("post_shares"), viewer_id),
            shares=int(row.get("shares") or 0),
            saves=int(row.get("saves") or 0),
            views=int(row.get("views") or 0),
            created_at=row.get("created_at") or datetime.now(timezone.utc),
        )


def _has_viewer_row(rows: Optional[List[Dict[str, Any]]], viewer_id: Optional[str]) -> bool:
    if viewer_id is None:
        return False
    return any(str(row.get("user_id")) == viewer_id for row in rows or [])
