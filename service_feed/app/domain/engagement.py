"""
Pure save and share updates used as optimistic updates.
"""

from typing import List, Optional, Sequence

from .models import Post


def toggle_save(posts: Optional[Sequence[Post]], post_id: str) -> List[Post]:
    """Flip the viewer's bookmark on one post and adjust its save count."""
    updated: List[Post] = []
    for post in posts or []:
        if post.id != post_id:
            updated.append(post)
            continue
        saved = not post.user_saved
        saves = post.saves + 1 if saved else max(post.saves - 1, 0)
        updated.append(post.model_copy(update={"user_saved": saved, "saves": saves}))
    return updated


def share_post(posts: Optional[Sequence[Post]], post_id: str) -> List[Post]:
    """Record one more share of a post by the viewer. Shares are not undone."""
    updated: List[Post] = []
    for post in posts or []:
        if post.id != post_id:
            updated.append(post)
            continue
        updated.append(post.model_copy(update={"user_shared": True, "shares": post.shares + 1}))
    return updated
