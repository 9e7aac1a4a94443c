"""FastAPI application entry point."""

import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, RedirectResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from backend.app.api.routes.health import router as health_router
from backend.app.api.routes.posts import router as posts_router
from backend.app.core.body_limit import BodySizeLimitMiddleware, BodyTooLargeError
from backend.app.core.errors import (
    NOT_FOUND_MESSAGE,
    normalize_size_error,
    normalize_unknown_error,
)
from backend.app.core.logging import (
    EVENT_APP_START,
    EVENT_CONFIG_LOADED,
    EVENT_REQUEST_HANDLED,
    log_event,
    setup_logging,
)
from backend.app.core.settings import settings
from backend.app.services.poster import Poster

_level = logging.DEBUG if settings.is_dev else getattr(logging, settings.log_level.upper(), logging.INFO)
setup_logging(level=_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    log_event(logger, "info", EVENT_APP_START)
    log_event(logger, "info", EVENT_CONFIG_LOADED, **settings.safe_dump())
    if getattr(app.state, "poster", None) is None:
        from backend.app.db.engine import init_db
        from backend.app.db.migrations import run_migrations
        from backend.app.services.poster import build_poster

        init_db()
        run_migrations()
        setup_logging(level=_level)
        app.state.poster = build_poster(settings)
    logger.info("Posting API ready")
    yield
    logger.info("Posting API shutting down")
    if app.state.poster is not None:
        app.state.poster.close()


def create_app(poster: Poster | None = None, *, max_body_bytes: int | None = None) -> FastAPI:
    """Build the app. Tests pass a ready :class:`Poster`; production builds one at start-up."""
    app = FastAPI(
        title="Posting API",
        version="0.1.0",
        description="Publish posts sent from one allowed phone number and list them as HTML.",
        lifespan=lifespan,
    )
    app.state.poster = poster

    limit = max_body_bytes if max_body_bytes is not None else settings.body_size_limit_bytes
    app.add_middleware(BodySizeLimitMiddleware, max_body_bytes=limit)

    @app.middleware("http")
    async def log_request(
        request: Request, call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        start = time.monotonic()
        response = await call_next(request)
        log_event(
            logger, "info", EVENT_REQUEST_HANDLED,
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        return response

    @app.exception_handler(BodyTooLargeError)
    async def body_too_large_handler(request: Request, exc: BodyTooLargeError) -> PlainTextResponse:
        error = normalize_size_error(exc.limit_bytes)
        return PlainTextResponse(error.user_message, status_code=error.http_status)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException,
    ) -> PlainTextResponse:
        """Unmatched routes and methods get a fixed answer that reveals nothing."""
        return PlainTextResponse(
            NOT_FOUND_MESSAGE, status_code=exc.status_code, headers=exc.headers,
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> PlainTextResponse:
        """Catch-all handler: log details, return safe generic message."""
        error = normalize_unknown_error(exc, operation=f"{request.method} {request.url.path}")
        return PlainTextResponse(error.user_message, status_code=error.http_status)

    @app.get("/", include_in_schema=False)
    def root() -> RedirectResponse:
        return RedirectResponse("/posts", status_code=301)

    app.include_router(health_router, tags=["health"])
    app.include_router(posts_router, tags=["posts"])
    return app


app = create_app()
