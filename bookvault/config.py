"""Runtime configuration for the app, read from the process environment."""
import os
from typing import NamedTuple, Optional


class Settings(NamedTuple):
    database_url: str
    storage_url: str
    storage_anon_key: str
    storage_service_key: str
    storage_bucket: str
    admin_email: str
    session_secret: str
    session_ttl_seconds: int
    max_upload_bytes: int
    max_page_limit: int
    log_level: str


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def load_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./bookvault.db"),
        storage_url=os.getenv("STORAGE_URL", "http://localhost:54321").rstrip("/"),
        storage_anon_key=os.getenv("STORAGE_ANON_KEY", ""),
        storage_service_key=os.getenv("STORAGE_SERVICE_KEY", ""),
        storage_bucket=os.getenv("STORAGE_BUCKET", "books"),
        admin_email=os.getenv("ADMIN_EMAIL", "").strip().lower(),
        session_secret=os.getenv("SESSION_SECRET", "dev-secret"),
        session_ttl_seconds=_env_int("SESSION_TTL_SECONDS", 60 * 60 * 24),
        max_upload_bytes=_env_int("MAX_UPLOAD_BYTES", 50 * 1024 * 1024),
        max_page_limit=_env_int("MAX_PAGE_LIMIT", 100),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


state: Optional[Settings] = None


def get_settings() -> Settings:
    global state
    if state is None:
        state = load_settings()
    return state


def set_settings(value: Optional[Settings]):
    """Replace the process-wide settings; ``None`` forces a reload from env."""
    global state
    state = value
