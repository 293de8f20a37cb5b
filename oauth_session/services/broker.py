"""Identity broker: the external provider that authenticates users.

The auth routes only depend on :class:`IdentityBroker`, so another provider
can be added by implementing its two methods.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Protocol

import httpx
from authlib.common.errors import AuthlibBaseError
from authlib.integrations.starlette_client import OAuth, OAuthError
from joserfc.errors import JoseError
from starlette.requests import Request
from starlette.responses import Response

from ..core.config import Settings
from ..core.errors import BrokerAuthError

logger = logging.getLogger(__name__)

GOOGLE_SCOPE = "openid email profile"
# Always show the account chooser and consent screen; never reuse a stale provider session.
GOOGLE_PROMPT = "select_account consent"


class IdentityBroker(Protocol):
    name: str

    async def authorize_redirect(self, request: Request) -> Response:
        """Redirect the user agent to the provider's authorization endpoint."""

    async def exchange_callback(self, request: Request) -> Dict[str, Any]:
        """Verify the callback and return claims, or raise BrokerAuthError."""


class GoogleBroker:
    name = "google"

    def __init__(self, settings: Settings):
        self._redirect_uri = settings.oauth_redirect_url
        self._timeout = settings.broker_timeout_seconds
        self._oauth = OAuth()
        self._oauth.register(
            name=self.name,
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            server_metadata_url=settings.google_metadata_url,
            client_kwargs={"scope": GOOGLE_SCOPE, "timeout": self._timeout},
        )
        self._client = self._oauth.create_client(self.name)

    async def authorize_redirect(self, request: Request) -> Response:
        try:
            return await self._client.authorize_redirect(
                request, self._redirect_uri, prompt=GOOGLE_PROMPT
            )
        except (OAuthError, httpx.HTTPError) as exc:
            raise BrokerAuthError(f"Identity provider unavailable: {exc}", status_code=502) from exc

    async def exchange_callback(self, request: Request) -> Dict[str, Any]:
        try:
            return await asyncio.wait_for(self._exchange(request), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise BrokerAuthError("Identity provider did not respond in time") from exc
        except (OAuthError, AuthlibBaseError, JoseError, httpx.HTTPError) as exc:
            # ID token validation failures surface as authlib or joserfc errors.
            raise BrokerAuthError(str(exc) or exc.__class__.__name__) from exc

    async def _exchange(self, request: Request) -> Dict[str, Any]:
        token = await self._client.authorize_access_token(request)
        userinfo = token.get("userinfo") or await self._client.userinfo(token=token)
        if not userinfo:
            raise BrokerAuthError("Identity provider returned no claims")
        return dict(userinfo)


__all__ = ["GOOGLE_PROMPT", "GOOGLE_SCOPE", "GoogleBroker", "IdentityBroker"]
