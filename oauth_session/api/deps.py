"""Request-scoped dependencies: stores, broker and the authentication context."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from ..core.config import Settings
from ..services.broker import IdentityBroker
from ..services.principal import SessionPrincipal, deserialize
from ..services.users import UserStore

PRINCIPAL_KEY = "principal"
NEW_USER_KEY = "new_user"


@dataclass(frozen=True)
class AuthContext:
    principal: Optional[SessionPrincipal] = None

    @property
    def is_authenticated(self) -> bool:
        return self.principal is not None


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_user_store(request: Request) -> UserStore:
    return request.app.state.user_store


def get_broker(request: Request) -> IdentityBroker:
    return request.app.state.broker


def get_auth_context(request: Request) -> AuthContext:
    """Derive the caller's identity from the session. Anything unreadable is anonymous."""

    return AuthContext(principal=deserialize(request.session.get(PRINCIPAL_KEY)))


__all__ = [
    "AuthContext",
    "NEW_USER_KEY",
    "PRINCIPAL_KEY",
    "get_auth_context",
    "get_broker",
    "get_settings",
    "get_user_store",
]
