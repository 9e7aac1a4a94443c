"""ASGI middleware capping the number of request body bytes read.

The ceiling applies to every request before any handler parses the body.
A declared ``Content-Length`` over the limit is refused without reading;
otherwise bytes are counted as they arrive and :class:`BodyTooLargeError`
is raised from ``receive`` as soon as the limit is crossed, so the rest of
the body is never buffered.
"""

from __future__ import annotations

from starlette.responses import PlainTextResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from backend.app.core.errors import normalize_size_error


class BodyTooLargeError(Exception):
    """Raised when a request body exceeds the configured byte ceiling."""

    def __init__(self, limit_bytes: int) -> None:
        super().__init__(f"request body exceeds {limit_bytes} bytes")
        self.limit_bytes = limit_bytes


class BodySizeLimitMiddleware:
    def __init__(self, app: ASGIApp, *, max_body_bytes: int) -> None:
        self.app = app
        self.max_body_bytes = max_body_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        declared = _content_length(scope)
        if declared is not None and declared > self.max_body_bytes:
            error = normalize_size_error(self.max_body_bytes)
            response = PlainTextResponse(error.user_message, status_code=error.http_status)
            await response(scope, receive, send)
            return

        received = 0
        limit = self.max_body_bytes

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > limit:
                    raise BodyTooLargeError(limit)
            return message

        await self.app(scope, limited_receive, send)


def _content_length(scope: Scope) -> int | None:
    for name, value in scope.get("headers", []):
        if name == b"content-length":
            try:
                return int(value)
            except ValueError:
                return None
    return None
