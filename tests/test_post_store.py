"""Tests for the SQL and in-memory post stores."""

from collections.abc import Iterator
from datetime import UTC, datetime

import pytest
from backend.app.db.base import Base
from backend.app.models.post import NewPost
from backend.app.models.post_record import PostMediaRecord, PostRecord  # noqa: F401
from backend.app.services.post_store import (
    InMemoryPostStore,
    PostStore,
    PostStoreError,
    SqlPostStore,
    UnresolvedMediaError,
)
from pydantic import ValidationError
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

_NOW = datetime(2026, 6, 1, 12, 0, 0, tzinfo=UTC)
SENDER = "+15550001111"


@pytest.fixture()
def engine() -> Iterator[Engine]:
    """In-memory SQLite engine shared across threads, schema created."""
    eng = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture(params=["sql", "memory"])
def store(request: pytest.FixtureRequest, engine: Engine) -> PostStore:
    if request.param == "sql":
        factory = sessionmaker(bind=engine, expire_on_commit=False)
        return SqlPostStore(factory, clock=lambda: _NOW)
    return InMemoryPostStore(clock=lambda: _NOW)


def _post(n: int, media: tuple[str, ...] = ()) -> NewPost:
    return NewPost(sender=SENDER, body=f"post {n}", media_urls=media)


def _fill(store: PostStore, count: int) -> None:
    for n in range(count):
        store.put(_post(n))


# ---------------------------------------------------------------------------
# put
# ---------------------------------------------------------------------------


class TestPut:
    def test_returns_stored_post(self, store: PostStore) -> None:
        stored = store.put(_post(1, ("https://i.imgur.com/a.jpg",)))
        assert stored.body == "post 1"
        assert stored.sender == SENDER
        assert stored.media_urls == ("https://i.imgur.com/a.jpg",)
        assert stored.id >= 1

    def test_ids_increase(self, store: PostStore) -> None:
        first = store.put(_post(1))
        second = store.put(_post(2))
        assert second.id > first.id

    def test_media_order_preserved(self, store: PostStore) -> None:
        urls = tuple(f"https://i.imgur.com/{c}.jpg" for c in "zyxwv")
        store.put(_post(1, urls))
        page = store.get_page(0, 10)
        assert page.posts[0].media_urls == urls

    def test_rejects_unresolved_media(self, store: PostStore) -> None:
        post = NewPost.model_construct(sender=SENDER, body="raw", media_urls=("file:///tmp/x.jpg",))
        with pytest.raises(UnresolvedMediaError):
            store.put(post)
        assert store.get_page(0, 10).posts == []

    def test_new_post_model_refuses_unresolved_media(self) -> None:
        with pytest.raises(ValidationError):
            NewPost(sender=SENDER, body="raw", media_urls=("",))


# ---------------------------------------------------------------------------
# get_page
# ---------------------------------------------------------------------------


class TestGetPage:
    def test_empty_store(self, store: PostStore) -> None:
        page = store.get_page(0, 10)
        assert page.posts == []
        assert page.has_more is False

    def test_newest_first(self, store: PostStore) -> None:
        _fill(store, 3)
        bodies = [p.body for p in store.get_page(0, 10).posts]
        assert bodies == ["post 2", "post 1", "post 0"]

    def test_25_posts_in_pages_of_10(self, store: PostStore) -> None:
        _fill(store, 25)
        first = store.get_page(0, 10)
        assert len(first.posts) == 10
        assert first.has_more is True
        second = store.get_page(10, 10)
        assert len(second.posts) == 10
        assert second.has_more is True
        last = store.get_page(20, 10)
        assert len(last.posts) == 5
        assert last.has_more is False
        assert last.posts[-1].body == "post 0"

    def test_exact_multiple_has_no_more(self, store: PostStore) -> None:
        _fill(store, 10)
        page = store.get_page(0, 10)
        assert len(page.posts) == 10
        assert page.has_more is False

    def test_past_the_end(self, store: PostStore) -> None:
        _fill(store, 3)
        page = store.get_page(30, 10)
        assert page.posts == []
        assert page.has_more is False

    def test_offset_beyond_integer_range(self, store: PostStore) -> None:
        _fill(store, 3)
        page = store.get_page(2**63, 10)
        assert page.posts == []
        assert page.has_more is False

    def test_repeated_reads_are_identical(self, store: PostStore) -> None:
        _fill(store, 12)
        assert store.get_page(0, 5) == store.get_page(0, 5)

    def test_invalid_window(self, store: PostStore) -> None:
        with pytest.raises(ValueError):
            store.get_page(-1, 10)
        with pytest.raises(ValueError):
            store.get_page(0, 0)


# ---------------------------------------------------------------------------
# SQL failures surface as PostStoreError
# ---------------------------------------------------------------------------


class TestSqlFailures:
    def test_read_failure(self, engine: Engine) -> None:
        store = SqlPostStore(sessionmaker(bind=engine))
        with engine.begin() as conn:
            conn.execute(text("DROP TABLE post_media"))
            conn.execute(text("DROP TABLE posts"))
        with pytest.raises(PostStoreError):
            store.get_page(0, 10)

    def test_write_failure(self, engine: Engine) -> None:
        store = SqlPostStore(sessionmaker(bind=engine))
        with engine.begin() as conn:
            conn.execute(text("DROP TABLE post_media"))
            conn.execute(text("DROP TABLE posts"))
        with pytest.raises(PostStoreError):
            store.put(_post(1))

    def test_records_written_to_both_tables(self, engine: Engine) -> None:
        store = SqlPostStore(sessionmaker(bind=engine), clock=lambda: _NOW)
        store.put(_post(1, ("https://i.imgur.com/a.jpg", "https://i.imgur.com/b.jpg")))
        with engine.connect() as conn:
            assert conn.execute(text("SELECT COUNT(*) FROM posts")).scalar() == 1
            rows = conn.execute(
                text("SELECT position, url FROM post_media ORDER BY position")
            ).fetchall()
        assert [tuple(r) for r in rows] == [
            (0, "https://i.imgur.com/a.jpg"),
            (1, "https://i.imgur.com/b.jpg"),
        ]
