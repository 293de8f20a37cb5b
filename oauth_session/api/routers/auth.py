"""OAuth authentication routes."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from ...core.config import Settings
from ...core.errors import ApiError, BrokerAuthError, ConsistencyError, MissingClaimError
from ...core.session_middleware import (
    commit_session,
    destroy_session,
    discard_session,
    rotate_session,
)
from ...models import User
from ...services.broker import IdentityBroker
from ...services.principal import SessionPrincipal, principal_from_claims, serialize
from ...services.users import UserStore, canonical_email
from ..deps import (
    NEW_USER_KEY,
    PRINCIPAL_KEY,
    AuthContext,
    get_auth_context,
    get_broker,
    get_settings,
    get_user_store,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

LOGOUT_PATH = "/auth/logout"


def _not_logged_in() -> JSONResponse:
    return JSONResponse({"success": False, "message": "User not logged in"}, status_code=401)


def _resolve_user(users: UserStore, principal: SessionPrincipal) -> User:
    user = users.find_by_email(principal.email)
    if user is None:
        raise ConsistencyError(f"No user row for session principal {principal.email}")
    if user.provider_sub and user.provider_sub != principal.subject:
        raise ConsistencyError(f"Subject mismatch for {principal.email}")
    return user


@router.get("/google")
async def google_login(request: Request, broker: IdentityBroker = Depends(get_broker)):
    response = await broker.authorize_redirect(request)
    # The callback needs the OAuth state, so it must be stored before the redirect leaves.
    await commit_session(request)
    return response


@router.get("/google/callback")
async def google_callback(
    request: Request,
    broker: IdentityBroker = Depends(get_broker),
    users: UserStore = Depends(get_user_store),
    settings: Settings = Depends(get_settings),
):
    try:
        claims = await broker.exchange_callback(request)
    except BrokerAuthError as exc:
        logger.warning("Google callback rejected by identity provider: %s", exc.message)
        return RedirectResponse(LOGOUT_PATH, status_code=302)

    email = canonical_email(claims.get("email"))
    if not email:
        raise MissingClaimError()
    principal = principal_from_claims(claims, provider=broker.name)
    if principal is None:
        raise MissingClaimError("Identity provider did not return a subject identifier")

    result = await run_in_threadpool(
        users.upsert,
        email,
        claims.get("picture"),
        claims,
        subject=principal.subject,
        provider=broker.name,
    )

    try:
        await rotate_session(request)
        request.session[PRINCIPAL_KEY] = serialize(principal)
        request.session[NEW_USER_KEY] = result.created
        await commit_session(request)
    except (ApiError, SQLAlchemyError):
        discard_session(request)
        raise

    return RedirectResponse(settings.client_url, status_code=302)


@router.get("/login/check-auth")
def check_auth(
    request: Request,
    auth: AuthContext = Depends(get_auth_context),
    users: UserStore = Depends(get_user_store),
):
    """Report the signed-in user. Read-only: never creates a user row."""

    if not auth.is_authenticated:
        return _not_logged_in()

    try:
        user = _resolve_user(users, auth.principal)
    except ConsistencyError as exc:
        logger.warning("Dropping session principal: %s", exc.message)
        request.session.pop(PRINCIPAL_KEY, None)
        request.session.pop(NEW_USER_KEY, None)
        return _not_logged_in()

    new_user = bool(request.session.get(NEW_USER_KEY))
    return JSONResponse(
        {
            "success": True,
            "message": "User registered successfully" if new_user else "User logged in successfully",
            "newUser": new_user,
            "user": user.to_public_dict(),
        }
    )


@router.get("/logout")
async def logout(request: Request, settings: Settings = Depends(get_settings)):
    try:
        await destroy_session(request)
    except (ApiError, SQLAlchemyError):
        logger.exception("Failed to invalidate session during logout")
    return RedirectResponse(settings.client_url, status_code=302)


__all__ = ["LOGOUT_PATH", "router"]
