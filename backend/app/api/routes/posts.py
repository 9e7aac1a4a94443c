"""POST /posts and GET /posts — publish a post, list posts as HTML.

Write pipeline, each stage failing straight to a generic response::

    body read (size limited) → signature gate → ingestion → media upload
    → store → render the requested page
"""

import logging
import uuid

from fastapi import APIRouter, Depends, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse, PlainTextResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.formparsers import MultiPartException

from backend.app.api.deps import get_poster
from backend.app.core.body_limit import BodyTooLargeError
from backend.app.core.errors import (
    NormalizedError,
    normalize_auth_failure,
    normalize_render_error,
    normalize_size_error,
    normalize_upstream_error,
    normalize_validation_error,
)
from backend.app.core.logging import (
    EVENT_DB_READ_FAILED,
    EVENT_DB_WRITE_FAILED,
    EVENT_MEDIA_UPLOAD_FAILURE,
)
from backend.app.services.ingestion import parse_post
from backend.app.services.media_host import MediaUploadError
from backend.app.services.pagination import get_page_num
from backend.app.services.post_store import PostStoreError
from backend.app.services.poster import Poster
from backend.app.services.renderer import RenderError

logger = logging.getLogger(__name__)

router = APIRouter()


def _error_response(error: NormalizedError) -> PlainTextResponse:
    return PlainTextResponse(error.user_message, status_code=error.http_status)


def _signing_url(request: Request, public_base_url: str | None) -> str:
    """The URL the sender signed: the public one when behind a proxy."""
    if not public_base_url:
        return str(request.url)
    url = public_base_url.rstrip("/") + request.url.path
    if request.url.query:
        url += "?" + request.url.query
    return url


def _render_page(poster: Poster, page: int, correlation_id: str) -> Response:
    try:
        html, _ = poster.get_posts(page)
    except PostStoreError as exc:
        return _error_response(
            normalize_upstream_error(
                exc, event_name=EVENT_DB_READ_FAILED,
                operation="get_page", correlation_id=correlation_id,
            )
        )
    except RenderError as exc:
        return _error_response(normalize_render_error(exc, correlation_id=correlation_id))
    return HTMLResponse(html)


@router.get("/posts", response_class=HTMLResponse)
def list_posts(
    page: str | None = Query(default=None),
    poster: Poster = Depends(get_poster),
) -> Response:
    """Render one page of posts, newest first."""
    return _render_page(poster, get_page_num(page), str(uuid.uuid4()))


@router.post("/posts", response_class=HTMLResponse)
async def create_post(request: Request, poster: Poster = Depends(get_poster)) -> Response:
    """Publish a post from the allowed sender, then render the requested page."""
    correlation_id = str(uuid.uuid4())

    # 1. Read the body; the size limiter aborts oversized bodies mid-read
    try:
        raw_body = await request.body()
    except BodyTooLargeError as exc:
        return _error_response(
            normalize_size_error(exc.limit_bytes, correlation_id=correlation_id)
        )
    if poster.log_request_bodies:
        logger.debug(
            "request_body: correlation_id=%s body=%s",
            correlation_id,
            raw_body.decode("utf-8", errors="replace"),
        )

    try:
        form = await request.form()
    except (MultiPartException, StarletteHTTPException) as exc:
        logger.info("form_decode_failed: correlation_id=%s detail=%s", correlation_id, exc)
        form = None

    try:
        fields = form.multi_items() if form is not None else []
        params = [(k, v) for k, v in fields if isinstance(v, str)] if form is not None else None

        # 2. Authorize before anything is parsed into a post or uploaded
        decision = poster.is_request_authorized(
            url=_signing_url(request, poster.public_base_url),
            raw_body=raw_body,
            headers=request.headers,
            params=params,
        )
        if not decision:
            return _error_response(
                normalize_auth_failure(decision.reason, correlation_id=correlation_id)
            )

        # 3. Parse into a candidate, all or nothing
        candidate, errors = parse_post(fields, sender=poster.allowed_sender or "")
        if errors:
            return _error_response(
                normalize_validation_error(errors, correlation_id=correlation_id)
            )
        assert candidate is not None  # guaranteed when errors is empty
    finally:
        if form is not None:
            await form.close()

    # 4. Upload media and store the resolved post
    try:
        await run_in_threadpool(poster.create_post, candidate, correlation_id=correlation_id)
    except MediaUploadError as exc:
        return _error_response(
            normalize_upstream_error(
                exc, event_name=EVENT_MEDIA_UPLOAD_FAILURE,
                operation="upload_media", correlation_id=correlation_id,
            )
        )
    except PostStoreError as exc:
        return _error_response(
            normalize_upstream_error(
                exc, event_name=EVENT_DB_WRITE_FAILED,
                operation="put_post", correlation_id=correlation_id,
            )
        )

    # 5. Behave like GET /posts against the updated store
    page = get_page_num(request.query_params.get("page"))
    return await run_in_threadpool(_render_page, poster, page, correlation_id)

