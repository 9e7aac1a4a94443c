"""The Poster: everything a request handler needs, built once at start-up.

A :class:`Poster` is immutable after construction and shared by every
request. It creates posts (upload media, then store) and renders pages of
posts (read a window, compute navigation, render).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from backend.app.core.logging import EVENT_POST_STORED, log_event
from backend.app.core.settings import DEFAULT_PAGE_SIZE, Settings
from backend.app.models.post import NewPost, PageResult, PostCandidate, StoredPost
from backend.app.services.media_host import MediaHost, upload_media
from backend.app.services.pagination import PaginationState, navigation, page_window
from backend.app.services.post_store import PostStore
from backend.app.services.renderer import Renderer
from backend.app.services.signature import GateDecision, SignatureProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Poster:
    store: PostStore
    media_host: MediaHost
    renderer: Renderer
    signature_provider: SignatureProvider
    allowed_sender: str | None
    auth_token: str | None
    page_size: int = DEFAULT_PAGE_SIZE
    public_base_url: str | None = None
    log_request_bodies: bool = False

    def is_request_authorized(
        self,
        *,
        url: str,
        raw_body: bytes,
        headers: Mapping[str, str],
        params: Sequence[tuple[str, str]] | None,
    ) -> GateDecision:
        """Check the request signature and sender against the allow-list."""
        return self.signature_provider.validate(
            url=url,
            raw_body=raw_body,
            headers=headers,
            params=params,
            allowed_sender=self.allowed_sender,
            secret=self.auth_token,
        )

    def create_post(self, candidate: PostCandidate, *, correlation_id: str = "N/A") -> StoredPost:
        """Upload the candidate's media, then store the resolved post.

        Raises:
            MediaUploadError: if any upload fails; nothing is stored.
            PostStoreError: if the write fails; uploaded media stay hosted.
        """
        media_urls = upload_media(candidate.media, self.media_host, correlation_id=correlation_id)
        post = NewPost(sender=candidate.sender, body=candidate.body, media_urls=media_urls)
        stored = self.store.put(post)
        log_event(
            logger, "info", EVENT_POST_STORED,
            post_id=stored.id,
            body_len=len(stored.body),
            media_count=len(stored.media_urls),
            correlation_id=correlation_id,
        )
        return stored

    def close(self) -> None:
        """Release collaborators that hold connections, such as the Imgur client."""
        close = getattr(self.media_host, "close", None)
        if callable(close):
            close()

    def read_page(self, page: int) -> tuple[PageResult, PaginationState]:
        offset, limit = page_window(page, self.page_size)
        result = self.store.get_page(offset, limit)
        return result, navigation(page, result.has_more)

    def get_posts(self, page: int) -> tuple[str, PaginationState]:
        """Render *page* of posts to HTML.

        Raises:
            PostStoreError: if the read fails.
            RenderError: if the template fails.
        """
        result, state = self.read_page(page)
        html = self.renderer.render(result.posts, state.next_page, state.prev_page)
        return html, state


def build_poster(settings: Settings) -> Poster:
    """Wire the production collaborators from *settings*."""
    from backend.app.db.session import SessionLocal
    from backend.app.services.media_host import get_media_host
    from backend.app.services.post_store import SqlPostStore
    from backend.app.services.renderer import JinjaRenderer
    from backend.app.services.signature import TwilioSignatureProvider

    if not settings.is_auth_configured:
        logger.error(
            "auth_not_configured: ALLOWED_SENDER and TWILIO_AUTH_TOKEN must be set; "
            "all writes will be rejected"
        )
    return Poster(
        store=SqlPostStore(SessionLocal),
        media_host=get_media_host(settings),
        renderer=JinjaRenderer(settings.templates_path),
        signature_provider=TwilioSignatureProvider(),
        allowed_sender=settings.allowed_sender,
        auth_token=settings.twilio_auth_token,
        page_size=settings.page_size,
        public_base_url=settings.public_base_url,
        log_request_bodies=settings.is_dev,
    )
