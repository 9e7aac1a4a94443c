"""Application settings loaded from environment / .env file.

Config precedence (highest to lowest):
    1. Environment variables
    2. ``.env`` file in project root
    3. Defaults defined in this module

Settings are read once at process start and never mutated afterwards.
Secrets (auth token, client id) are never exposed in ``safe_dump()`` or logs.
"""

from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Project root is three levels up from this file (backend/app/core/settings.py)
_PROJECT_ROOT = Path(__file__).resolve().parents[3]
_DEFAULT_DB_PATH = str(_PROJECT_ROOT / "data" / "posts.db")
_DEFAULT_TEMPLATES_PATH = str(_PROJECT_ROOT / "templates")

DEFAULT_BODY_SIZE_LIMIT_BYTES = 32 * 1024  # 32KiB
DEFAULT_PAGE_SIZE = 10


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(_PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
    )

    debug: bool = False
    log_level: str = "INFO"
    poster_env: str = "PROD"

    # Sender authentication (Twilio request signing)
    allowed_sender: str | None = None
    twilio_auth_token: str | None = None
    public_base_url: str | None = None

    # Media host
    imgur_client_id: str | None = None
    upload_timeout_seconds: int = 30

    # Post store: override via APP_DB_PATH, or STORE_URL for a networked DB
    app_db_path: str = _DEFAULT_DB_PATH
    store_url: str | None = None

    page_size: int = DEFAULT_PAGE_SIZE
    body_size_limit_bytes: int = DEFAULT_BODY_SIZE_LIMIT_BYTES
    templates_path: str = _DEFAULT_TEMPLATES_PATH

    @property
    def database_url(self) -> str:
        """Connection URL for the post store, SQLite file by default."""
        if self.store_url:
            return self.store_url
        return f"sqlite:///{self.app_db_path}"

    @property
    def is_dev(self) -> bool:
        """True when verbose request logging is enabled (``POSTER_ENV=DEV``)."""
        return self.poster_env.upper() == "DEV"

    @property
    def is_auth_configured(self) -> bool:
        return bool(self.allowed_sender and self.twilio_auth_token)

    @model_validator(mode="after")
    def _validate_limits(self) -> "Settings":
        if self.page_size < 1:
            raise ValueError(f"PAGE_SIZE must be positive, got {self.page_size}")
        if self.body_size_limit_bytes < 1:
            raise ValueError(
                f"BODY_SIZE_LIMIT_BYTES must be positive, got {self.body_size_limit_bytes}"
            )
        return self

    @model_validator(mode="after")
    def _validate_db_path(self) -> "Settings":
        """Ensure the DB path parent directory exists or can be created."""
        if self.store_url:
            return self
        parent = Path(self.app_db_path).parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            msg = (
                f"Cannot create database directory '{parent}': {exc}. "
                f"Set APP_DB_PATH to a writable location."
            )
            raise ValueError(msg) from exc
        return self

    def safe_dump(self) -> dict[str, object]:
        """Return settings dict with secrets masked — safe for logging."""
        return {
            "debug": self.debug,
            "log_level": self.log_level,
            "poster_env": self.poster_env,
            "app_db_path": self.app_db_path,
            "is_store_url_set": bool(self.store_url),
            "page_size": self.page_size,
            "body_size_limit_bytes": self.body_size_limit_bytes,
            "templates_path": self.templates_path,
            "public_base_url": self.public_base_url,
            "upload_timeout_seconds": self.upload_timeout_seconds,
            "is_auth_configured": self.is_auth_configured,
            "is_imgur_configured": bool(self.imgur_client_id),
        }


settings = Settings()
