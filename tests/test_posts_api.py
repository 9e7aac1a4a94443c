"""End-to-end tests for POST /posts and GET /posts.

Every test builds its own app around an in-memory store and a recording
media host, so no network or database file is touched.
"""

import hashlib
import re
from pathlib import Path

import pytest
from backend.app.core.errors import BAD_REQUEST_MESSAGE, INTERNAL_ERROR_MESSAGE, NOT_FOUND_MESSAGE
from backend.app.db.base import Base
from backend.app.main import create_app
from backend.app.models.post import MediaItem, NewPost
from backend.app.services.media_host import MediaUploadError
from backend.app.services.post_store import InMemoryPostStore, PostStoreError, SqlPostStore
from backend.app.services.poster import Poster
from backend.app.services.renderer import JinjaRenderer
from backend.app.services.signature import TwilioSignatureProvider, compute_signature
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

TOKEN = "twilio-secret"
SENDER = "+15550001111"
BASE = "http://testserver"
TEMPLATES = str(Path(__file__).resolve().parents[1] / "templates")


class RecordingHost:
    host_name = "recording"

    def __init__(self, fail_at: int | None = None) -> None:
        self.fail_at = fail_at
        self.uploaded: list[MediaItem] = []

    def upload(self, item: MediaItem) -> str:
        if self.fail_at is not None and len(self.uploaded) == self.fail_at:
            raise MediaUploadError("upstream said no")
        self.uploaded.append(item)
        return f"https://i.imgur.com/hosted{len(self.uploaded)}.jpg"


class CountingSignatureProvider(TwilioSignatureProvider):
    def __init__(self) -> None:
        self.calls = 0

    def validate(self, **kwargs):  # type: ignore[no-untyped-def, override]
        self.calls += 1
        return super().validate(**kwargs)


class FailingStore(InMemoryPostStore):
    def put(self, post: NewPost):  # type: ignore[no-untyped-def, override]
        raise PostStoreError("disk on fire")


def _make_poster(**overrides: object) -> Poster:
    defaults: dict[str, object] = {
        "store": InMemoryPostStore(),
        "media_host": RecordingHost(),
        "renderer": JinjaRenderer(TEMPLATES),
        "signature_provider": TwilioSignatureProvider(),
        "allowed_sender": SENDER,
        "auth_token": TOKEN,
        "page_size": 10,
    }
    defaults.update(overrides)
    return Poster(**defaults)  # type: ignore[arg-type]


def _client(poster: Poster, *, max_body_bytes: int = 32 * 1024) -> TestClient:
    return TestClient(create_app(poster, max_body_bytes=max_body_bytes))


def _post_form(client: TestClient, params: dict[str, str], *, path: str = "/posts", sign: bool = True):  # type: ignore[no-untyped-def]
    headers = {}
    if sign:
        headers["X-Twilio-Signature"] = compute_signature(TOKEN, BASE + path, list(params.items()))
    return client.post(path, data=params, headers=headers)


def _multipart(fields: list[tuple[str, str]], files: list[tuple[str, str, bytes]]) -> tuple[bytes, str]:
    """Build a multipart body with a fixed boundary so it can be hashed."""
    boundary = "testboundary1234"
    chunks: list[bytes] = []
    for name, value in fields:
        chunks.append(
            f'--{boundary}\r\nContent-Disposition: form-data; name="{name}"\r\n\r\n{value}\r\n'.encode()
        )
    for name, filename, content in files:
        chunks.append(
            (
                f"--{boundary}\r\n"
                f'Content-Disposition: form-data; name="{name}"; filename="{filename}"\r\n'
                f"Content-Type: image/jpeg\r\n\r\n"
            ).encode()
            + content
            + b"\r\n"
        )
    chunks.append(f"--{boundary}--\r\n".encode())
    return b"".join(chunks), f"multipart/form-data; boundary={boundary}"


def _post_multipart(
    client: TestClient,
    fields: list[tuple[str, str]],
    files: list[tuple[str, str, bytes]],
):  # type: ignore[no-untyped-def]
    body, content_type = _multipart(fields, files)
    path = f"/posts?bodySHA256={hashlib.sha256(body).hexdigest()}"
    headers = {
        "Content-Type": content_type,
        "X-Twilio-Signature": compute_signature(TOKEN, BASE + path),
    }
    return client.post(path, content=body, headers=headers)


def _seed(store: InMemoryPostStore, count: int) -> None:
    for n in range(count):
        store.put(NewPost(sender=SENDER, body=f"seeded post {n}"))


def _article_ids(html: str) -> list[int]:
    return [int(m) for m in re.findall(r'id="post-(\d+)"', html)]


# ---------------------------------------------------------------------------
# Successful writes
# ---------------------------------------------------------------------------


class TestCreatePost:
    def test_text_post_is_stored_and_rendered(self) -> None:
        store = InMemoryPostStore()
        client = _client(_make_poster(store=store))
        resp = _post_form(client, {"Body": "hello from my phone", "From": SENDER})
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/html")
        assert "hello from my phone" in resp.text
        assert len(store) == 1

    def test_multipart_media_uploaded_in_order(self) -> None:
        store = InMemoryPostStore()
        host = RecordingHost()
        client = _client(_make_poster(store=store, media_host=host))
        resp = _post_multipart(
            client,
            [("Body", "two pictures"), ("From", SENDER)],
            [("media", "a.jpg", b"AAAA"), ("media", "b.jpg", b"BBBB")],
        )
        assert resp.status_code == 200
        assert [m.content for m in host.uploaded] == [b"AAAA", b"BBBB"]
        stored = store.get_page(0, 10).posts
        assert len(stored) == 1
        assert stored[0].media_urls == (
            "https://i.imgur.com/hosted1.jpg",
            "https://i.imgur.com/hosted2.jpg",
        )
        html = resp.text
        assert html.index("hosted1.jpg") < html.index("hosted2.jpg")

    def test_mms_links_uploaded(self) -> None:
        host = RecordingHost()
        client = _client(_make_poster(media_host=host))
        resp = _post_form(
            client,
            {
                "Body": "mms",
                "From": SENDER,
                "NumMedia": "1",
                "MediaUrl0": "https://api.twilio.com/media/ME1",
                "MediaContentType0": "image/jpeg",
            },
        )
        assert resp.status_code == 200
        assert host.uploaded[0].source_url == "https://api.twilio.com/media/ME1"

    def test_response_renders_requested_page(self) -> None:
        store = InMemoryPostStore()
        _seed(store, 15)
        client = _client(_make_poster(store=store))
        resp = _post_form(client, {"Body": "newest", "From": SENDER}, path="/posts?page=1")
        assert resp.status_code == 200
        assert "newest" not in resp.text
        assert len(_article_ids(resp.text)) == 6

    def test_user_text_is_escaped(self) -> None:
        client = _client(_make_poster())
        resp = _post_form(client, {"Body": "<script>alert(1)</script>", "From": SENDER})
        assert resp.status_code == 200
        assert "<script>alert(1)</script>" not in resp.text
        assert "&lt;script&gt;" in resp.text


# ---------------------------------------------------------------------------
# Authorization happens before ingestion and upload
# ---------------------------------------------------------------------------


class TestAuthorization:
    def test_missing_signature_rejected(self) -> None:
        store, host = InMemoryPostStore(), RecordingHost()
        client = _client(_make_poster(store=store, media_host=host))
        resp = _post_form(client, {"Body": "hi", "From": SENDER}, sign=False)
        assert resp.status_code == 403
        assert resp.text == BAD_REQUEST_MESSAGE
        assert len(store) == 0

    def test_bad_signature_rejected(self) -> None:
        store = InMemoryPostStore()
        client = _client(_make_poster(store=store))
        resp = client.post(
            "/posts",
            data={"Body": "hi", "From": SENDER},
            headers={"X-Twilio-Signature": "bm90IGEgc2lnbmF0dXJl"},
        )
        assert resp.status_code == 403
        assert len(store) == 0

    def test_wrong_sender_rejected_without_uploads(self) -> None:
        store, host = InMemoryPostStore(), RecordingHost()
        client = _client(_make_poster(store=store, media_host=host))
        resp = _post_form(
            client,
            {
                "Body": "spam",
                "From": "+15559999999",
                "NumMedia": "1",
                "MediaUrl0": "https://api.twilio.com/media/ME1",
            },
        )
        assert resp.status_code == 403
        assert len(store) == 0
        assert host.uploaded == []

    def test_unconfigured_auth_rejects_everything(self) -> None:
        store = InMemoryPostStore()
        client = _client(_make_poster(store=store, auth_token=None))
        resp = _post_form(client, {"Body": "hi", "From": SENDER})
        assert resp.status_code == 403
        assert len(store) == 0

    def test_malformed_multipart_rejected_as_auth_failure(self) -> None:
        store = InMemoryPostStore()
        client = _client(_make_poster(store=store))
        resp = client.post(
            "/posts",
            content=b"--nope\r\ngarbage",
            headers={
                "Content-Type": "multipart/form-data; boundary=other",
                "X-Twilio-Signature": "abc",
            },
        )
        assert resp.status_code in (400, 403)
        assert resp.text == BAD_REQUEST_MESSAGE
        assert len(store) == 0


# ---------------------------------------------------------------------------
# Size limit
# ---------------------------------------------------------------------------


class TestBodySizeLimit:
    def test_declared_oversize_body_rejected_before_auth(self) -> None:
        provider = CountingSignatureProvider()
        store = InMemoryPostStore()
        client = _client(_make_poster(store=store, signature_provider=provider), max_body_bytes=256)
        resp = _post_form(client, {"Body": "x" * 1024, "From": SENDER})
        assert resp.status_code == 413
        assert resp.text == BAD_REQUEST_MESSAGE
        assert provider.calls == 0
        assert len(store) == 0

    def test_streamed_oversize_body_rejected_before_auth(self) -> None:
        provider = CountingSignatureProvider()
        client = _client(_make_poster(signature_provider=provider), max_body_bytes=256)

        def chunks():  # type: ignore[no-untyped-def]
            for _ in range(8):
                yield b"Body=" + b"x" * 100 + b"&"

        resp = client.post(
            "/posts",
            content=chunks(),
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        assert resp.status_code == 413
        assert provider.calls == 0

    def test_body_under_limit_accepted(self) -> None:
        client = _client(_make_poster(), max_body_bytes=32 * 1024)
        resp = _post_form(client, {"Body": "y" * 1000, "From": SENDER})
        assert resp.status_code == 200


# ---------------------------------------------------------------------------
# Validation and upstream failures
# ---------------------------------------------------------------------------


class TestFailures:
    def test_missing_body_field_is_bad_request(self) -> None:
        store, host = InMemoryPostStore(), RecordingHost()
        client = _client(_make_poster(store=store, media_host=host))
        resp = _post_form(client, {"From": SENDER})
        assert resp.status_code == 400
        assert resp.text == BAD_REQUEST_MESSAGE
        assert len(store) == 0

    def test_empty_file_part_is_bad_request(self) -> None:
        store, host = InMemoryPostStore(), RecordingHost()
        client = _client(_make_poster(store=store, media_host=host))
        resp = _post_multipart(
            client,
            [("Body", "one empty"), ("From", SENDER)],
            [("media", "a.jpg", b"AAAA"), ("media", "b.jpg", b"")],
        )
        assert resp.status_code == 400
        assert host.uploaded == []
        assert len(store) == 0

    def test_upload_failure_stores_nothing(self) -> None:
        store, host = InMemoryPostStore(), RecordingHost(fail_at=1)
        client = _client(_make_poster(store=store, media_host=host))
        resp = _post_multipart(
            client,
            [("Body", "second upload fails"), ("From", SENDER)],
            [("m", "a.jpg", b"AAAA"), ("m", "b.jpg", b"BBBB"), ("m", "c.jpg", b"CCCC")],
        )
        assert resp.status_code == 500
        assert resp.text == INTERNAL_ERROR_MESSAGE
        assert "upstream said no" not in resp.text
        assert len(store) == 0
        assert len(host.uploaded) == 1

    def test_store_failure_is_internal_error(self) -> None:
        client = _client(_make_poster(store=FailingStore()))
        resp = _post_form(client, {"Body": "hi", "From": SENDER})
        assert resp.status_code == 500
        assert resp.text == INTERNAL_ERROR_MESSAGE
        assert "disk on fire" not in resp.text


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


class TestListPosts:
    @pytest.fixture()
    def client(self) -> TestClient:
        store = InMemoryPostStore()
        _seed(store, 25)
        return _client(_make_poster(store=store))

    def test_first_page(self, client: TestClient) -> None:
        resp = client.get("/posts")
        assert resp.status_code == 200
        assert _article_ids(resp.text) == list(range(25, 15, -1))
        assert 'href="/posts?page=1"' in resp.text
        assert "newer" not in resp.text

    def test_last_page(self, client: TestClient) -> None:
        resp = client.get("/posts?page=2")
        assert _article_ids(resp.text) == [5, 4, 3, 2, 1]
        assert 'href="/posts?page=1"' in resp.text
        assert "older" not in resp.text

    @pytest.mark.parametrize("raw", ["", "abc", "-3", "1.5"])
    def test_bad_page_param_means_first_page(self, client: TestClient, raw: str) -> None:
        assert client.get(f"/posts?page={raw}").text == client.get("/posts").text

    @pytest.mark.parametrize("raw", ["99999999999999999999", "922337203685477580", "3_000"])
    def test_huge_page_on_sql_store(self, raw: str) -> None:
        engine = create_engine(
            "sqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(engine)
        store = SqlPostStore(sessionmaker(bind=engine, expire_on_commit=False))
        store.put(NewPost(sender=SENDER, body="only post"))
        resp = _client(_make_poster(store=store)).get(f"/posts?page={raw}")
        engine.dispose()
        assert resp.status_code == 200
        assert resp.text != INTERNAL_ERROR_MESSAGE

    def test_repeated_reads_identical(self, client: TestClient) -> None:
        assert client.get("/posts?page=1").text == client.get("/posts?page=1").text

    def test_empty_store(self) -> None:
        resp = _client(_make_poster()).get("/posts")
        assert resp.status_code == 200
        assert _article_ids(resp.text) == []


class TestRoutes:
    def test_root_redirects_permanently(self) -> None:
        client = _client(_make_poster())
        resp = client.get("/", follow_redirects=False)
        assert resp.status_code == 301
        assert resp.headers["location"] == "/posts"

    def test_unknown_route_fixed_response(self) -> None:
        client = _client(_make_poster())
        resp = client.get("/wp-admin/setup.php")
        assert resp.status_code == 404
        assert resp.text == NOT_FOUND_MESSAGE

    def test_shutdown_closes_media_host(self) -> None:
        closed: list[bool] = []

        class ClosingHost(RecordingHost):
            def close(self) -> None:
                closed.append(True)

        with TestClient(create_app(_make_poster(media_host=ClosingHost()))) as client:
            assert client.get("/health").status_code == 200
            assert closed == []
        assert closed == [True]

    def test_wrong_method_fixed_response(self) -> None:
        client = _client(_make_poster())
        resp = client.put("/posts")
        assert resp.status_code == 405
        assert resp.text == NOT_FOUND_MESSAGE
        assert "Method Not Allowed" not in resp.text

    def test_missing_poster_is_internal_error(self) -> None:
        client = TestClient(create_app(), raise_server_exceptions=False)
        resp = client.get("/posts")
        assert resp.status_code == 500
        assert resp.text == INTERNAL_ERROR_MESSAGE
