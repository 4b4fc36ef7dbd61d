"""Content store adapter: posts that StoryChief stories are written into.

A Post is the local content entity. Its integer id is the story's
external_id: assigned on first create, then the sole lookup key for every
later update and delete.

Provides:
- Post / PostDraft: entity and write request
- ContentStore: protocol every backend implements
- InMemoryContentStore: default backend (process-local, thread-safe)
- get_content_store(): backend selected by STORYHOOK_STORE
"""

from __future__ import annotations

import logging
import os
import re
import threading
import time
import unicodedata
from dataclasses import asdict, dataclass, field
from typing import Any, Protocol, runtime_checkable

from storyhook.content.sanitizer import maybe_sanitize
from storyhook.webhooks.errors import NotFoundError

logger = logging.getLogger(__name__)

_SITE_URL = os.environ.get("STORYHOOK_SITE_URL", "http://localhost:8000").rstrip("/")
_STORE_BACKEND = os.environ.get("STORYHOOK_STORE", "memory")

STATUS_PUBLISH = "publish"
STATUS_DRAFT = "draft"

DEFAULT_POST_TYPE = "post"


@dataclass
class PostDraft:
    """A create (id is None) or update (id set) request for the store."""

    post_type: str | None = None
    title: str = ""
    content: str = ""
    excerpt: str = ""
    status: str = STATUS_PUBLISH
    slug: str | None = None  # None -> derived from title
    meta: dict[str, Any] = field(default_factory=dict)
    id: int | None = None


@dataclass
class Post:
    """A stored content entity."""

    id: int
    post_type: str
    title: str
    content: str
    excerpt: str
    status: str
    slug: str
    meta: dict[str, Any] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@runtime_checkable
class ContentStore(Protocol):
    """What a content backend must implement."""

    def upsert(self, draft: PostDraft) -> int:
        """Create (draft.id is None) or update a post. Returns the post id."""
        ...

    def get_post(self, post_id: int) -> Post | None: ...

    def get_status(self, post_id: int) -> str | None:
        """Status of an existing post, None if it does not exist."""
        ...

    def delete(self, post_id: int) -> bool:
        """Delete a post. Returns False if there was nothing to delete."""
        ...

    def get_permalink(self, post_id: int) -> str | None: ...


# ── Helpers shared by backends ────────────────────────────────────────────


def slugify(text: str) -> str:
    """Lowercase, ASCII-fold and hyphenate text for use in a URL."""
    s = unicodedata.normalize("NFKD", text or "")
    s = s.encode("ascii", "ignore").decode("ascii")
    s = re.sub(r"<[^>]+>", "", s)
    s = re.sub(r"[^\w\s-]", "", s).strip().lower()
    s = re.sub(r"[\s_-]+", "-", s)
    return s.strip("-")


def unique_slug(base: str, taken: set[str], fallback: str) -> str:
    """Return base, or base-2, base-3 ... if base is already taken."""
    slug = slugify(base) or fallback
    if slug not in taken:
        return slug
    suffix = 2
    while f"{slug}-{suffix}" in taken:
        suffix += 1
    return f"{slug}-{suffix}"


def build_permalink(post_id: int, status: str, slug: str) -> str:
    """Pretty URL for published posts, query-string URL for drafts."""
    if status == STATUS_PUBLISH and slug:
        return f"{_SITE_URL}/{slug}/"
    return f"{_SITE_URL}/?p={post_id}"


# ── In-memory backend ─────────────────────────────────────────────────────


class InMemoryContentStore:
    """Process-local content store.

    Ids are allocated from a monotonically increasing counter and never
    reused. Concurrent writes to the same id are last-write-wins.
    """

    def __init__(self) -> None:
        self._posts: dict[int, Post] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._posts)

    def _taken_slugs(self, post_type: str, exclude_id: int | None) -> set[str]:
        return {
            p.slug
            for p in self._posts.values()
            if p.post_type == post_type and p.id != exclude_id
        }

    def upsert(self, draft: PostDraft) -> int:
        content = maybe_sanitize(draft.content)
        with self._lock:
            if draft.id is None:
                post_id = self._next_id
                self._next_id += 1
                post_type = draft.post_type or DEFAULT_POST_TYPE
                slug = unique_slug(
                    draft.slug or draft.title,
                    self._taken_slugs(post_type, None),
                    fallback=str(post_id),
                )
                self._posts[post_id] = Post(
                    id=post_id,
                    post_type=post_type,
                    title=draft.title,
                    content=content,
                    excerpt=draft.excerpt,
                    status=draft.status,
                    slug=slug,
                    meta=dict(draft.meta),
                )
                logger.info("Created post %d (type=%s, status=%s)", post_id, post_type, draft.status)
                return post_id

            post = self._posts.get(draft.id)
            if post is None:
                raise NotFoundError()
            if draft.post_type:
                post.post_type = draft.post_type
            post.title = draft.title
            post.content = content
            post.excerpt = draft.excerpt
            post.status = draft.status
            if draft.slug:
                post.slug = unique_slug(
                    draft.slug,
                    self._taken_slugs(post.post_type, post.id),
                    fallback=str(post.id),
                )
            post.meta.update(draft.meta)
            post.updated_at = time.time()
            logger.info("Updated post %d (status=%s)", post.id, post.status)
            return post.id

    def get_post(self, post_id: int) -> Post | None:
        return self._posts.get(post_id)

    def get_status(self, post_id: int) -> str | None:
        post = self._posts.get(post_id)
        return post.status if post else None

    def delete(self, post_id: int) -> bool:
        with self._lock:
            removed = self._posts.pop(post_id, None)
        if removed is None:
            logger.info("Delete of missing post %d ignored", post_id)
            return False
        logger.info("Deleted post %d", post_id)
        return True

    def get_permalink(self, post_id: int) -> str | None:
        post = self._posts.get(post_id)
        if post is None:
            return None
        return build_permalink(post.id, post.status, post.slug)


# Module-level singleton
_store: ContentStore | None = None


def get_content_store() -> ContentStore:
    """Get or create the singleton content store (STORYHOOK_STORE=memory|postgres)."""
    global _store
    if _store is None:
        if _STORE_BACKEND == "postgres":
            from storyhook.content.postgres import PostgresContentStore

            _store = PostgresContentStore()
        else:
            _store = InMemoryContentStore()
        logger.info("Content store backend: %s", type(_store).__name__)
    return _store


def set_content_store(store: ContentStore | None) -> None:
    """Replace the singleton (None resets to lazy creation)."""
    global _store
    _store = store
