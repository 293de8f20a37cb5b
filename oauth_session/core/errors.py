"""Error taxonomy shared by the auth flow and the stores."""

from __future__ import annotations


class ApiError(Exception):
    """Error carrying the HTTP status it should be reported with."""

    status_code: int = 500
    default_message: str = "Internal Server Error"

    def __init__(self, message: str | None = None, *, status_code: int | None = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ConfigurationError(ApiError):
    """Missing or invalid settings. Raised at startup, never per request."""

    default_message = "Invalid configuration"


class BrokerAuthError(ApiError):
    """The identity provider refused, failed or timed out."""

    status_code = 401
    default_message = "Authentication with identity provider failed"


class MissingClaimError(ApiError):
    """Verified claims lack a field the user record is keyed on."""

    status_code = 400
    default_message = "Identity provider did not return an email address"


class StoreUnavailableError(ApiError):
    status_code = 503
    default_message = "Storage temporarily unavailable"


class ConsistencyError(ApiError):
    """Session principal points at a user row that no longer matches."""

    status_code = 401
    default_message = "User not logged in"


__all__ = [
    "ApiError",
    "BrokerAuthError",
    "ConfigurationError",
    "ConsistencyError",
    "MissingClaimError",
    "StoreUnavailableError",
]
