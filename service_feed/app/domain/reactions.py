"""
Pure reaction helpers used as optimistic updates.
"""

import uuid
from collections import Counter
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .models import FeedUser, Post, Reaction, ReactionType


def toggle_reaction(
    posts: Optional[Sequence[Post]],
    post_id: str,
    reaction_type: ReactionType,
    viewer: FeedUser,
) -> List[Post]:
    """Toggle ``viewer``'s reaction on one post.

    Same type as the current reaction clears it; any other type replaces it.
    Returns a new list; the input posts are not modified.
    """
    reaction_type = ReactionType(reaction_type)
    toggled: List[Post] = []
    for post in posts or []:
        if post.id != post_id:
            toggled.append(post)
            continue

        others = [r for r in post.reactions if r.user.id != viewer.id]
        if post.user_reaction == reaction_type:
            toggled.append(post.model_copy(update={"user_reaction": None, "reactions": others}))
        else:
            mine = Reaction(
                id=f"reaction-{uuid.uuid4()}",
                type=reaction_type,
                user=viewer,
                created_at=datetime.now(timezone.utc),
            )
            toggled.append(post.model_copy(update={"user_reaction": reaction_type, "reactions": others + [mine]}))

    return toggled


def reaction_counts(reactions: Iterable[Reaction]) -> Dict[ReactionType, int]:
    return dict(Counter(reaction.type for reaction in reactions))


def most_common_reactions(reactions: Iterable[Reaction], limit: int = 3) -> List[Tuple[ReactionType, int]]:
    """Reaction types ordered by count, most frequent first."""
    return Counter(reaction.type for reaction in reactions).most_common(limit)


def find_post(posts: Optional[Sequence[Post]], post_id: str) -> Optional[Post]:
    for post in posts or []:
        if post.id == post_id:
            return post
    return None
