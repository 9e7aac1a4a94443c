"""Centralized error normalization for client-facing responses.

Every failure surfaced to an HTTP client must pass through this module to
ensure:
- Only two generic messages ever leave the server (bad post / internal error)
- No upstream error text, stack traces, or secrets in responses
- Detailed info logged for debugging
"""

import logging
from dataclasses import dataclass

from backend.app.core.logging import (
    EVENT_AUTH_REJECTED,
    EVENT_BODY_TOO_LARGE,
    EVENT_POST_REJECTED,
    EVENT_RENDER_FAILED,
    log_event,
)

logger = logging.getLogger(__name__)

BAD_REQUEST_MESSAGE = "🚮 bad post!"
INTERNAL_ERROR_MESSAGE = "🔥 internal error"
NOT_FOUND_MESSAGE = "🙅 nothing to see here"


@dataclass(frozen=True)
class NormalizedError:
    """Standardized error representation for HTTP responses."""

    user_message: str
    error_category: str
    http_status: int = 500


def normalize_auth_failure(
    reason: str,
    *,
    correlation_id: str | None = None,
) -> NormalizedError:
    """A write request that did not come from the allowed sender."""
    log_event(
        logger, "warning", EVENT_AUTH_REJECTED,
        reason=reason,
        correlation_id=correlation_id or "N/A",
    )
    return NormalizedError(
        user_message=BAD_REQUEST_MESSAGE,
        error_category="auth",
        http_status=403,
    )


def normalize_size_error(
    limit_bytes: int,
    *,
    correlation_id: str | None = None,
) -> NormalizedError:
    log_event(
        logger, "warning", EVENT_BODY_TOO_LARGE,
        limit_bytes=limit_bytes,
        correlation_id=correlation_id or "N/A",
    )
    return NormalizedError(
        user_message=BAD_REQUEST_MESSAGE,
        error_category="size",
        http_status=413,
    )


def normalize_validation_error(
    messages: list[str],
    *,
    correlation_id: str | None = None,
) -> NormalizedError:
    """Normalize ingestion failures; the reasons are logged, never returned."""
    log_event(
        logger, "warning", EVENT_POST_REJECTED,
        reasons="; ".join(messages),
        correlation_id=correlation_id or "N/A",
    )
    return NormalizedError(
        user_message=BAD_REQUEST_MESSAGE,
        error_category="validation",
        http_status=400,
    )


def normalize_upstream_error(
    exc: Exception,
    *,
    event_name: str,
    operation: str,
    correlation_id: str | None = None,
) -> NormalizedError:
    """Normalize a media host or post store failure."""
    log_event(
        logger, "error", event_name,
        operation=operation,
        error_category="upstream",
        correlation_id=correlation_id or "N/A",
        detail=f"{type(exc).__name__}: {exc}",
    )
    return NormalizedError(
        user_message=INTERNAL_ERROR_MESSAGE,
        error_category="upstream",
        http_status=500,
    )


def normalize_render_error(
    exc: Exception,
    *,
    correlation_id: str | None = None,
) -> NormalizedError:
    log_event(
        logger, "error", EVENT_RENDER_FAILED,
        error_category="render",
        correlation_id=correlation_id or "N/A",
        detail=f"{type(exc).__name__}: {exc}",
    )
    return NormalizedError(
        user_message=INTERNAL_ERROR_MESSAGE,
        error_category="render",
        http_status=500,
    )


def normalize_unknown_error(
    exc: Exception,
    *,
    operation: str,
    correlation_id: str | None = None,
) -> NormalizedError:
    """Normalize an unexpected error into a safe generic message."""
    log_event(
        logger, "exception", "unknown_error",
        operation=operation,
        error_category="unknown",
        correlation_id=correlation_id or "N/A",
        detail=f"{type(exc).__name__}: {exc}",
    )
    return NormalizedError(
        user_message=INTERNAL_ERROR_MESSAGE,
        error_category="unknown",
        http_status=500,
    )
