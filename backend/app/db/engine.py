"""SQLAlchemy engine configuration for the post store."""

import logging

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url

from backend.app.core.logging import EVENT_DB_INITIALIZED, log_event
from backend.app.core.settings import settings

logger = logging.getLogger(__name__)


def build_engine(database_url: str, *, echo: bool = False) -> Engine:
    """Create an engine for *database_url*, SQLite or a networked database."""
    connect_args: dict[str, object] = {}
    if make_url(database_url).get_backend_name() == "sqlite":
        connect_args["check_same_thread"] = False  # required for SQLite
    return create_engine(database_url, echo=echo, connect_args=connect_args)


engine = build_engine(settings.database_url, echo=settings.debug)

log_event(
    logger, "info", EVENT_DB_INITIALIZED,
    url=engine.url.render_as_string(hide_password=True),
)


class DatabaseInitError(Exception):
    """Raised when the database cannot be initialized."""


def init_db() -> None:
    """Verify the post store is reachable by executing a simple query.

    Called at startup. Raises :class:`DatabaseInitError` with actionable
    guidance on failure.
    """
    safe_url = engine.url.render_as_string(hide_password=True)
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("db_init_verified: url=%s", safe_url)
    except Exception as exc:
        msg = (
            f"Cannot open database at '{safe_url}': {exc}. "
            f"Check file permissions or set APP_DB_PATH / STORE_URL."
        )
        logger.error("db_init_failed: %s", msg)
        raise DatabaseInitError(msg) from exc
