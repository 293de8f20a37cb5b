"""ASGI middleware exposing a database-backed session as ``request.session``.

Only the session id travels to the client, signed with the app secret. The
dict itself is loaded from and written to :class:`SessionStore`.
"""

from __future__ import annotations

import copy
import logging
import typing
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import itsdangerous
from itsdangerous.exc import BadSignature
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import MutableHeaders
from starlette.requests import HTTPConnection, Request
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..services.sessions import SessionStore, new_session_id
from .errors import ApiError

logger = logging.getLogger(__name__)

STATE_KEY = "oauth_session.state"


@dataclass
class SessionState:
    store: SessionStore
    session_id: Optional[str] = None
    committed: Dict[str, Any] = field(default_factory=dict)
    had_cookie: bool = False
    load_failed: bool = False
    # Set once the request has already written the session itself.
    flushed: bool = False


class ServerSessionMiddleware:
    def __init__(
        self,
        app: ASGIApp,
        store: SessionStore,
        secret_key: str,
        session_cookie: str = "session",
        path: str = "/",
        same_site: typing.Literal["lax", "strict", "none"] = "lax",
        https_only: bool = False,
        domain: str | None = None,
    ) -> None:
        self.app = app
        self.store = store
        self.signer = itsdangerous.TimestampSigner(str(secret_key))
        self.session_cookie = session_cookie
        self.max_age = store.max_age_seconds
        self.path = path
        self.security_flags = "httponly; samesite=" + same_site
        if https_only:
            self.security_flags += "; secure"
        if domain is not None:
            self.security_flags += f"; domain={domain}"

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        state = SessionState(store=self.store)
        data: Dict[str, Any] = {}
        connection = HTTPConnection(scope)

        if self.session_cookie in connection.cookies:
            state.had_cookie = True
            session_id = self._unsign(connection.cookies[self.session_cookie])
            if session_id:
                try:
                    loaded = await run_in_threadpool(self.store.load, session_id)
                except ApiError:
                    logger.exception("Session lookup failed; treating request as anonymous")
                    state.load_failed = True
                    loaded = None
                if loaded is not None:
                    state.session_id = session_id
                    state.committed = copy.deepcopy(loaded)
                    data = loaded

        scope["session"] = data
        scope[STATE_KEY] = state

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                await self._persist(scope, message)
            await send(message)

        await self.app(scope, receive, send_wrapper)

    def _unsign(self, raw: str) -> Optional[str]:
        try:
            return self.signer.unsign(raw.encode("utf-8"), max_age=self.max_age).decode("utf-8")
        except (BadSignature, UnicodeError):
            return None

    async def _persist(self, scope: Scope, message: Message) -> None:
        state: SessionState = scope[STATE_KEY]
        data = scope["session"]
        if state.load_failed:
            return

        try:
            if data:
                if state.session_id is None:
                    state.session_id = new_session_id()
                    await run_in_threadpool(self.store.save, state.session_id, dict(data))
                elif data != state.committed:
                    await run_in_threadpool(self.store.save, state.session_id, dict(data))
                elif not state.flushed:
                    await run_in_threadpool(self.store.touch, state.session_id)
                self._set_cookie(message, state.session_id)
            elif state.session_id is not None:
                await run_in_threadpool(self.store.destroy, state.session_id)
                state.session_id = None
                self._expire_cookie(message)
            elif state.had_cookie:
                self._expire_cookie(message)
        except ApiError:
            logger.exception("Failed to persist session at response time")

    def _set_cookie(self, message: Message, session_id: str) -> None:
        signed = self.signer.sign(session_id.encode("utf-8")).decode("utf-8")
        header_value = "{session_cookie}={data}; path={path}; Max-Age={max_age}; {security_flags}".format(
            session_cookie=self.session_cookie,
            data=signed,
            path=self.path,
            max_age=self.max_age,
            security_flags=self.security_flags,
        )
        MutableHeaders(scope=message).append("Set-Cookie", header_value)

    def _expire_cookie(self, message: Message) -> None:
        header_value = "{session_cookie}=null; path={path}; expires=Thu, 01 Jan 1970 00:00:00 GMT; {security_flags}".format(
            session_cookie=self.session_cookie,
            path=self.path,
            security_flags=self.security_flags,
        )
        MutableHeaders(scope=message).append("Set-Cookie", header_value)


def _state(request: Request) -> SessionState:
    try:
        return request.scope[STATE_KEY]
    except KeyError as exc:
        raise AssertionError("ServerSessionMiddleware must be installed") from exc


async def commit_session(request: Request) -> str:
    """Write ``request.session`` now instead of at response time.

    Returns the session id. Errors propagate so the caller never responds
    as if the write had happened.
    """

    state = _state(request)
    if state.session_id is None:
        state.session_id = new_session_id()
    data = dict(request.session)
    await run_in_threadpool(state.store.save, state.session_id, data)
    state.committed = copy.deepcopy(data)
    state.load_failed = False
    state.flushed = True
    return state.session_id


async def rotate_session(request: Request) -> None:
    """Drop the current id so the next commit issues a fresh one."""

    state = _state(request)
    old_id, state.session_id = state.session_id, None
    state.committed = {}
    if old_id is not None:
        await run_in_threadpool(state.store.destroy, old_id)


def discard_session(request: Request) -> None:
    """Forget everything this request put in the session without writing it.

    Used after a failed bind so the error response never carries a session
    cookie for a principal that was not persisted.
    """

    state = _state(request)
    request.session.clear()
    state.committed = {}
    state.session_id = None
    state.had_cookie = True
    state.flushed = True


async def destroy_session(request: Request) -> None:
    state = _state(request)
    request.session.clear()
    state.committed = {}
    old_id, state.session_id = state.session_id, None
    state.had_cookie = True
    if old_id is not None:
        await run_in_threadpool(state.store.destroy, old_id)


__all__ = [
    "STATE_KEY",
    "ServerSessionMiddleware",
    "SessionState",
    "commit_session",
    "destroy_session",
    "discard_session",
    "rotate_session",
]
