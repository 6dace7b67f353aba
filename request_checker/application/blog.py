import logging
import random
import string
import time
from typing import Any, Callable, Dict, List, Optional

from request_checker.domain.entities import BlogPost
from request_checker.domain.errors import NotFound
from request_checker.domain.ports import DocumentStore

logger = logging.getLogger(__name__)

BLOG_COLLECTION = "blogPosts"

_ID_ALPHABET = string.digits + string.ascii_lowercase


def _now_ms() -> int:
    return int(time.time() * 1000)


def generate_post_id(now_ms: Optional[int] = None, rng: Optional[random.Random] = None) -> str:
    """Build an id of the form ``{milliseconds}_{7 base36 chars}``."""
    rng = rng or random
    suffix = "".join(rng.choice(_ID_ALPHABET) for _ in range(7))
    return f"{now_ms if now_ms is not None else _now_ms()}_{suffix}"


class BlogService:
    """Blog posts stored one document per post."""

    def __init__(self, store: DocumentStore, clock: Callable[[], int] = _now_ms):
        self.store = store
        self.clock = clock

    def list_posts(self, include_drafts: bool = False) -> List[BlogPost]:
        """Return posts newest first. Drafts are only included for admins."""
        posts = [BlogPost.from_document(post_id, data)
                 for post_id, data in self.store.list(BLOG_COLLECTION)]
        if not include_drafts:
            posts = [p for p in posts if p.is_published]
        return sorted(posts, key=lambda p: p.created_at or 0, reverse=True)

    def get_post(self, post_id: str) -> BlogPost:
        data = self.store.get(BLOG_COLLECTION, post_id)
        if data is None:
            raise NotFound(f"Blog post {post_id} not found")
        return BlogPost.from_document(post_id, data)

    def save_post(self, body: Dict[str, Any], post_id: Optional[str] = None) -> str:
        """Create or update a post and return its id.

        ``createdAt`` is only written when neither the URL nor the body names an
        existing id, so edits keep their original position in the list.
        """
        existing_id = post_id or body.get("id")
        target_id = existing_id or generate_post_id(self.clock())
        now = self.clock()

        data: Dict[str, Any] = {
            "title": body.get("title"),
            "content": body.get("content"),
            "isPublished": bool(body.get("isPublished", False)),
            "updatedAt": now,
        }
        if body.get("imageUrl"):
            data["imageUrl"] = body["imageUrl"]
        if not existing_id:
            data["createdAt"] = now

        self.store.set(BLOG_COLLECTION, target_id, data, merge=True)
        logger.info(f"Saved blog post {target_id}")
        return target_id

    def delete_post(self, post_id: str) -> None:
        if not post_id:
            raise ValueError("ID is required")
        self.store.delete(BLOG_COLLECTION, post_id)
        logger.info(f"Deleted blog post {post_id}")
