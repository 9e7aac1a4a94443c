"""Structured logging baseline and event taxonomy.

Event taxonomy (minimum set)::

    app_start              — application process starting
    config_loaded          — settings resolved successfully
    db_initialized         — engine created, DB URL resolved
    db_migration_started   — alembic upgrade beginning
    db_migration_succeeded — alembic upgrade completed
    db_migration_failed    — alembic upgrade error (with traceback)
    request_handled        — one HTTP request finished
    auth_rejected          — signature gate refused a write
    body_too_large         — request body crossed the size ceiling
    post_rejected          — ingestion parser refused a form
    media_upload_start     — media host call initiated
    media_upload_success   — media host returned a hosted URL
    media_upload_failure   — media host call failed
    post_stored            — post written to the store
    db_write_failed        — store write error
    db_read_failed         — store read error
    render_failed          — template execution error

Rules:
    - Never log auth tokens or client ids.
    - Log record IDs and content *lengths*, not raw content.
      Raw request bodies are logged only when ``POSTER_ENV=DEV``.

Usage::

    from backend.app.core.logging import log_event
    log_event(logger, "warning", "auth_rejected", reason="bad_signature")
"""

import logging
import sys

# Canonical event names for grep-ability and observability.
EVENT_APP_START = "app_start"
EVENT_CONFIG_LOADED = "config_loaded"
EVENT_DB_INITIALIZED = "db_initialized"
EVENT_DB_MIGRATION_STARTED = "db_migration_started"
EVENT_DB_MIGRATION_SUCCEEDED = "db_migration_succeeded"
EVENT_DB_MIGRATION_FAILED = "db_migration_failed"
EVENT_REQUEST_HANDLED = "request_handled"
EVENT_AUTH_REJECTED = "auth_rejected"
EVENT_BODY_TOO_LARGE = "body_too_large"
EVENT_POST_REJECTED = "post_rejected"
EVENT_MEDIA_UPLOAD_START = "media_upload_start"
EVENT_MEDIA_UPLOAD_SUCCESS = "media_upload_success"
EVENT_MEDIA_UPLOAD_FAILURE = "media_upload_failure"
EVENT_POST_STORED = "post_stored"
EVENT_DB_WRITE_FAILED = "db_write_failed"
EVENT_DB_READ_FAILED = "db_read_failed"
EVENT_RENDER_FAILED = "render_failed"


_HANDLER_ATTR = "_sms_poster"


def setup_logging(level: int = logging.INFO) -> None:
    """Configure root logger with a simple structured format.

    Safe to call multiple times — only adds the handler once and
    restores it if Alembic's ``fileConfig()`` removes it.
    """
    root = logging.getLogger()
    root.setLevel(level)

    # Check if our handler is already attached
    for h in root.handlers:
        if getattr(h, _HANDLER_ATTR, False):
            return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    setattr(handler, _HANDLER_ATTR, True)
    root.addHandler(handler)


def log_event(
    logger: logging.Logger,
    level: str,
    event_name: str,
    **kwargs: object,
) -> None:
    """Emit a structured log line with consistent ``event_name: key=value`` format.

    Parameters
    ----------
    logger:
        The logger instance (provides the component via ``logger.name``).
    level:
        Log level name — ``"debug"``, ``"info"``, ``"warning"``, ``"error"``,
        or ``"exception"``.
    event_name:
        Canonical event name (e.g. ``"db_write_failed"``).
    **kwargs:
        Arbitrary key-value pairs appended as ``key=value``.
    """
    parts = " ".join(f"{k}={v}" for k, v in kwargs.items())
    message = f"{event_name}: {parts}" if parts else event_name
    log_fn = getattr(logger, level, logger.info)
    log_fn(message)
