"""Media host abstraction and the sequential uploader.

Hosts
-----
- **ImgurMediaHost** — uploads through the Imgur API with ``httpx``
  (requires ``IMGUR_CLIENT_ID``).
- **MockMediaHost** — deterministic stub for tests and when no client id is
  configured.

:func:`upload_media` resolves a post's media items one at a time, in
attachment order, and stops at the first failure. Items uploaded before a
failure are not deleted from the host.
"""

from __future__ import annotations

import hashlib
import logging
import time
from collections.abc import Sequence
from typing import Protocol, runtime_checkable

import httpx

from backend.app.core.logging import (
    EVENT_MEDIA_UPLOAD_FAILURE,
    EVENT_MEDIA_UPLOAD_START,
    EVENT_MEDIA_UPLOAD_SUCCESS,
    log_event,
)
from backend.app.core.settings import Settings
from backend.app.models.post import MediaItem, is_hosted_url

logger = logging.getLogger(__name__)

IMGUR_UPLOAD_URL = "https://api.imgur.com/3/image"


class MediaUploadError(Exception):
    """Raised when the media host does not return a usable hosted URL."""


# ---------------------------------------------------------------------------
# Host protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class MediaHost(Protocol):
    """Minimal interface every media host must satisfy."""

    @property
    def host_name(self) -> str: ...

    def upload(self, item: MediaItem) -> str:
        """Upload *item* and return its permanent hosted URL."""
        ...


# ---------------------------------------------------------------------------
# Mock host (tests + unconfigured fallback)
# ---------------------------------------------------------------------------


class MockMediaHost:
    """Returns a URL derived from the item's bytes or source link."""

    host_name: str = "mock"

    def upload(self, item: MediaItem) -> str:
        source = item.content if item.content is not None else (item.source_url or "").encode()
        digest = hashlib.sha256(source).hexdigest()[:16]
        return f"https://media.example.com/{digest}"


# ---------------------------------------------------------------------------
# Imgur host
# ---------------------------------------------------------------------------


class ImgurMediaHost:
    """Uploads images and videos anonymously to Imgur."""

    host_name: str = "imgur"

    def __init__(
        self,
        client_id: str,
        *,
        timeout_seconds: float = 30,
        client: httpx.Client | None = None,
    ) -> None:
        self._client = client or httpx.Client(timeout=timeout_seconds)
        self._headers = {"Authorization": f"Client-ID {client_id}"}

    def upload(self, item: MediaItem) -> str:
        field = "video" if item.content_type.startswith("video/") else "image"
        try:
            if item.content is not None:
                response = self._client.post(
                    IMGUR_UPLOAD_URL,
                    headers=self._headers,
                    data={"type": "file"},
                    files={field: (item.filename or "upload", item.content, item.content_type)},
                )
            else:
                response = self._client.post(
                    IMGUR_UPLOAD_URL,
                    headers=self._headers,
                    data={field: item.source_url, "type": "url"},
                )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise MediaUploadError(
                f"imgur returned HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise MediaUploadError(f"imgur request failed: {exc}") from exc
        except ValueError as exc:
            raise MediaUploadError("imgur returned a non-JSON body") from exc

        link = (payload.get("data") or {}).get("link") if isinstance(payload, dict) else None
        if not isinstance(link, str) or not is_hosted_url(link):
            raise MediaUploadError("imgur response did not include a media link")
        return link

    def close(self) -> None:
        self._client.close()


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def get_media_host(settings: Settings) -> MediaHost:
    """Return the configured media host, or the mock if none is configured."""
    if settings.imgur_client_id:
        return ImgurMediaHost(
            settings.imgur_client_id,
            timeout_seconds=settings.upload_timeout_seconds,
        )
    logger.warning("media_host_not_configured: using mock host (set IMGUR_CLIENT_ID)")
    return MockMediaHost()


# ---------------------------------------------------------------------------
# Sequential uploader
# ---------------------------------------------------------------------------


def upload_media(
    items: Sequence[MediaItem],
    host: MediaHost,
    *,
    correlation_id: str = "N/A",
) -> tuple[str, ...]:
    """Upload *items* in order and return their hosted URLs in the same order.

    Raises:
        MediaUploadError: on the first item the host fails to resolve.
    """
    urls: list[str] = []
    for position, item in enumerate(items):
        log_event(
            logger, "info", EVENT_MEDIA_UPLOAD_START,
            host=host.host_name,
            position=position,
            content_type=item.content_type,
            size=item.size,
            correlation_id=correlation_id,
        )
        start = time.monotonic()
        try:
            url = host.upload(item)
        except MediaUploadError as exc:
            log_event(
                logger, "error", EVENT_MEDIA_UPLOAD_FAILURE,
                host=host.host_name,
                position=position,
                uploaded_before_failure=len(urls),
                correlation_id=correlation_id,
                detail=str(exc),
            )
            raise
        if not is_hosted_url(url):
            raise MediaUploadError(f"{host.host_name} returned an unusable URL at position {position}")
        urls.append(url)
        log_event(
            logger, "info", EVENT_MEDIA_UPLOAD_SUCCESS,
            host=host.host_name,
            position=position,
            latency_ms=int((time.monotonic() - start) * 1000),
            correlation_id=correlation_id,
        )
    return tuple(urls)
