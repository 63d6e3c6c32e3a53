"""
Configuration helpers for the AutoHub backend.

Routers and services read a frozen Settings object instead of touching
os.environ directly. A local ``.env`` file is honoured when present.
"""

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
import os
from urllib.parse import urlparse

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    """Typed view of environment variables."""

    app_env: str
    port: int
    cors_origins: tuple[str, ...]
    api_public_base_url: str
    client_public_base_url: str
    storage_dir: Path
    db_url: str
    email_subscriptions_enabled: bool
    email_confirm_mode: str
    mailing_address: str
    smtp_host: str
    smtp_port: int
    smtp_user: str
    smtp_password: str
    smtp_from: str
    smtp_tls_reject_unauthorized: bool
    smtp_disabled: bool

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


def normalize_origin(value: str) -> str:
    trimmed = (value or "").strip()
    if not trimmed or trimmed == "*":
        return trimmed
    parsed = urlparse(trimmed)
    if parsed.scheme and parsed.netloc:
        return f"{parsed.scheme}://{parsed.netloc}"
    return trimmed


def is_loopback_origin(origin: str) -> bool:
    parsed = urlparse(origin or "")
    host = (parsed.hostname or "").lower()
    return host in {"localhost", "127.0.0.1"} and parsed.scheme in {"http", "https"}


@lru_cache
def get_settings() -> Settings:
    """Read the current environment and build a Settings instance."""
    load_dotenv()

    def _int(value: str | None, default: int = 0) -> int:
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    def _bool(value: str | None, default: bool = False) -> bool:
        if value is None:
            return default
        return value.strip().lower() in {"1", "true", "yes", "on"}

    app_env = (os.getenv("APP_ENV") or os.getenv("NODE_ENV") or "development").strip().lower()
    if app_env == "prod":
        app_env = "production"
    port = _int(os.getenv("PORT"), 4000)
    raw_origins = os.getenv("CORS_ORIGIN", "http://localhost:5173")
    cors_origins = tuple(o for o in (normalize_origin(x) for x in raw_origins.split(",")) if o)
    client_base = (os.getenv("CLIENT_PUBLIC_BASE_URL") or "").strip().rstrip("/")
    if not client_base:
        client_base = next((o for o in cors_origins if o != "*"), "http://localhost:5173")

    confirm_mode = (os.getenv("EMAIL_CONFIRM_MODE") or os.getenv("EMAIL_CONFIRMATION_SEND_MODE") or "").strip().lower()
    if confirm_mode not in {"sync", "async"}:
        confirm_mode = "async" if app_env == "production" else "sync"

    return Settings(
        app_env=app_env,
        port=port,
        cors_origins=cors_origins,
        api_public_base_url=(os.getenv("API_PUBLIC_BASE_URL") or f"http://localhost:{port}").strip().rstrip("/"),
        client_public_base_url=client_base,
        storage_dir=Path(os.getenv("MEDIA_DIR") or Path.cwd() / "storage").resolve(),
        db_url=os.getenv("DB_URL", ""),
        email_subscriptions_enabled=os.getenv("EMAIL_SUBSCRIPTIONS_ENABLED", "true").strip().lower() != "false",
        email_confirm_mode=confirm_mode,
        mailing_address=os.getenv("MAILING_ADDRESS", "").strip(),
        smtp_host=os.getenv("SMTP_HOST", ""),
        smtp_port=_int(os.getenv("SMTP_PORT"), 587),
        smtp_user=os.getenv("SMTP_USER", ""),
        smtp_password=os.getenv("SMTP_PASS", os.getenv("SMTP_PASSWORD", "")),
        smtp_from=os.getenv("SMTP_FROM", os.getenv("SMTP_USER", "")),
        smtp_tls_reject_unauthorized=os.getenv("SMTP_TLS_REJECT_UNAUTHORIZED", "true").strip().lower() != "false",
        smtp_disabled=_bool(os.getenv("DISABLE_SMTP")) or app_env == "test",
    )
