"""Application settings and environment helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Iterable, List, Optional

from dotenv import load_dotenv

from .errors import ConfigurationError

load_dotenv(override=False)

_PROJECT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_DATABASE_URL = f"sqlite:///{_PROJECT_ROOT / 'data' / 'app.db'}"

SESSION_COOKIE_NAME = "session"
DEFAULT_SESSION_MAX_AGE = 24 * 60 * 60
_SAMESITE_VALUES = {"lax", "strict", "none"}

_local_dev_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]


def _require_env(name: str) -> str:
    """Return a required environment variable or raise an error."""

    value = os.getenv(name)
    if not value:
        raise ConfigurationError(f"Missing required environment variable: {name}")
    return value


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer") from exc


def _split_csv(raw: str | None) -> List[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


def _unique(values: Iterable[str]) -> List[str]:
    seen = set()
    ordered: List[str] = []
    for value in values:
        if value not in seen:
            seen.add(value)
            ordered.append(value)
    return ordered


@dataclass(frozen=True)
class Settings:
    # Google OAuth
    google_client_id: str
    google_client_secret: str
    client_url: str
    secret_key: str
    oauth_redirect_url: str = "http://127.0.0.1:4000/auth/google/callback"
    google_metadata_url: str = "https://accounts.google.com/.well-known/openid-configuration"
    broker_timeout_seconds: float = 10.0

    # Storage
    database_url: str = DEFAULT_DATABASE_URL
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_timeout: float = 30.0
    db_reset: bool = False

    # Sessions and cookies
    environment: str = "production"
    session_max_age_seconds: int = DEFAULT_SESSION_MAX_AGE
    cookie_samesite: str = "lax"
    cookie_domain: Optional[str] = None

    additional_origins: List[str] = field(default_factory=list)
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        for name in ("google_client_id", "google_client_secret", "client_url", "secret_key"):
            if not getattr(self, name):
                raise ConfigurationError(f"Missing required setting: {name}")
        if self.cookie_samesite not in _SAMESITE_VALUES:
            raise ConfigurationError(
                f"COOKIE_SAMESITE must be one of {sorted(_SAMESITE_VALUES)}, got {self.cookie_samesite!r}"
            )
        # Browsers drop SameSite=None cookies that are not Secure.
        if self.cookie_samesite == "none" and not self.cookie_secure:
            raise ConfigurationError("COOKIE_SAMESITE=none requires a non-development environment")
        if self.session_max_age_seconds <= 60:
            raise ConfigurationError("SESSION_MAX_AGE_SECONDS must be greater than 60")

    @property
    def is_development(self) -> bool:
        return self.environment.strip().lower() in {"dev", "development", "local"}

    @property
    def cookie_secure(self) -> bool:
        return not self.is_development

    @property
    def allowed_cors_origins(self) -> List[str]:
        origins = [self.client_url.rstrip("/"), *self.additional_origins]
        if self.is_development:
            origins.extend(_local_dev_origins)
        return _unique(origins)


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    """Build settings from the environment, failing fast on missing values."""

    return Settings(
        google_client_id=_require_env("GOOGLE_CLIENT_ID"),
        google_client_secret=_require_env("GOOGLE_CLIENT_SECRET"),
        client_url=_require_env("CLIENT_URL"),
        secret_key=_require_env("SECRET_KEY"),
        oauth_redirect_url=os.getenv(
            "OAUTH_REDIRECT_URL", "http://127.0.0.1:4000/auth/google/callback"
        ),
        broker_timeout_seconds=float(_env_int("BROKER_TIMEOUT_SECONDS", 10)),
        database_url=os.getenv("DATABASE_URL") or DEFAULT_DATABASE_URL,
        db_pool_size=_env_int("DB_POOL_SIZE", 5),
        db_max_overflow=_env_int("DB_MAX_OVERFLOW", 10),
        db_pool_timeout=float(_env_int("DB_POOL_TIMEOUT", 30)),
        db_reset=_env_bool("DB_RESET", False),
        environment=os.getenv("APP_ENV", "production"),
        session_max_age_seconds=_env_int("SESSION_MAX_AGE_SECONDS", DEFAULT_SESSION_MAX_AGE),
        cookie_samesite=os.getenv("COOKIE_SAMESITE", "lax").strip().lower(),
        cookie_domain=os.getenv("COOKIE_DOMAIN") or None,
        additional_origins=_split_csv(os.getenv("ADDITIONAL_ALLOWED_ORIGINS")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


__all__ = [
    "DEFAULT_DATABASE_URL",
    "DEFAULT_SESSION_MAX_AGE",
    "SESSION_COOKIE_NAME",
    "Settings",
    "load_settings",
]
