"""Post store abstraction with two interchangeable backends.

Stores
------
- **SqlPostStore** — SQLAlchemy-backed store (SQLite by default, any SQL URL).
- **InMemoryPostStore** — list-backed store for tests and local experiments.

Both order posts newest first by their creation order key and answer
``get_page`` by reading one row past the window to learn whether more
posts exist.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.models.post import NewPost, PageResult, StoredPost, is_hosted_url
from backend.app.models.post_record import PostMediaRecord, PostRecord

logger = logging.getLogger(__name__)


class PostStoreError(Exception):
    """Raised when the store cannot complete a read or write."""


class UnresolvedMediaError(ValueError):
    """Raised when a post still references media that is not hosted."""


def _check_resolved(post: NewPost) -> None:
    for url in post.media_urls:
        if not is_hosted_url(url):
            raise UnresolvedMediaError(f"refusing to store unresolved media reference {url!r}")


def _check_window(offset: int, limit: int) -> None:
    if offset < 0:
        raise ValueError(f"offset must be >= 0, got {offset}")
    if limit < 1:
        raise ValueError(f"limit must be >= 1, got {limit}")


# SQL integers are signed 64-bit; no row can sit past this offset.
_MAX_SQL_OFFSET = 2**63 - 1


# ---------------------------------------------------------------------------
# Store protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class PostStore(Protocol):
    """The two operations the request pipeline needs from persistence."""

    def put(self, post: NewPost) -> StoredPost:
        """Persist one fully resolved post and return it with its order key."""
        ...

    def get_page(self, offset: int, limit: int) -> PageResult:
        """Return posts in ``[offset, offset + limit)``, newest first."""
        ...


# ---------------------------------------------------------------------------
# SQL store
# ---------------------------------------------------------------------------


def _to_stored(record: PostRecord) -> StoredPost:
    return StoredPost(
        id=record.id,
        sender=record.sender,
        body=record.body,
        media_urls=tuple(m.url for m in record.media),
        created_at=record.created_at,
    )


class SqlPostStore:
    """Posts persisted through SQLAlchemy, one session per operation."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or (lambda: datetime.now(UTC))

    def put(self, post: NewPost) -> StoredPost:
        _check_resolved(post)
        record = PostRecord(
            sender=post.sender,
            body=post.body,
            created_at=self._clock(),
            media=[
                PostMediaRecord(position=i, url=url)
                for i, url in enumerate(post.media_urls)
            ],
        )
        db = self._session_factory()
        try:
            db.add(record)
            db.commit()
            stored = _to_stored(record)
        except SQLAlchemyError as exc:
            db.rollback()
            raise PostStoreError(f"failed to store post: {exc}") from exc
        finally:
            db.close()
        logger.info(
            "post_record_created: id=%d body_len=%d media_count=%d",
            stored.id,
            len(stored.body),
            len(stored.media_urls),
        )
        return stored

    def get_page(self, offset: int, limit: int) -> PageResult:
        _check_window(offset, limit)
        if offset + limit + 1 > _MAX_SQL_OFFSET:
            return PageResult(posts=[], has_more=False)
        query = (
            select(PostRecord)
            .order_by(PostRecord.id.desc())
            .offset(offset)
            .limit(limit + 1)
        )
        db = self._session_factory()
        try:
            records = list(db.scalars(query).all())
            posts = [_to_stored(r) for r in records[:limit]]
        except (SQLAlchemyError, OverflowError) as exc:
            raise PostStoreError(f"failed to read posts: {exc}") from exc
        finally:
            db.close()
        return PageResult(posts=posts, has_more=len(records) > limit)


# ---------------------------------------------------------------------------
# In-memory store (tests)
# ---------------------------------------------------------------------------


class InMemoryPostStore:
    """Keeps posts in a list. Ids start at 1 and increase by one per put."""

    def __init__(self, *, clock: Callable[[], datetime] | None = None) -> None:
        self._posts: list[StoredPost] = []
        self._lock = threading.Lock()
        self._clock = clock or (lambda: datetime.now(UTC))

    def put(self, post: NewPost) -> StoredPost:
        _check_resolved(post)
        with self._lock:
            stored = StoredPost(
                id=len(self._posts) + 1,
                sender=post.sender,
                body=post.body,
                media_urls=post.media_urls,
                created_at=self._clock(),
            )
            self._posts.append(stored)
        return stored

    def get_page(self, offset: int, limit: int) -> PageResult:
        _check_window(offset, limit)
        with self._lock:
            newest_first = list(reversed(self._posts))
        window = newest_first[offset:offset + limit + 1]
        return PageResult(posts=window[:limit], has_more=len(window) > limit)

    def __len__(self) -> int:
        return len(self._posts)
