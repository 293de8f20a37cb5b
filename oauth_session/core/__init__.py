"""Core configuration and infrastructure helpers."""

from .config import SESSION_COOKIE_NAME, Settings, load_settings
from .database import build_engine, session_scope
from .errors import (
    ApiError,
    BrokerAuthError,
    ConfigurationError,
    ConsistencyError,
    MissingClaimError,
    StoreUnavailableError,
)
from .time import utcnow

__all__ = [
    "ApiError",
    "BrokerAuthError",
    "ConfigurationError",
    "ConsistencyError",
    "MissingClaimError",
    "SESSION_COOKIE_NAME",
    "Settings",
    "StoreUnavailableError",
    "build_engine",
    "load_settings",
    "session_scope",
    "utcnow",
]
