"""Shared fixtures: a temp SQLite database, a fake identity broker and a test client."""

from __future__ import annotations

from typing import Any, Dict, Optional

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel
from starlette.requests import Request
from starlette.responses import RedirectResponse

from oauth_session.app import create_app
from oauth_session.core import BrokerAuthError, Settings, build_engine
from oauth_session.services import SessionStore, UserStore

CLIENT_URL = "http://client.example.test"
STATE_KEY = "_state_google_teststate"


class FakeBroker:
    """Stands in for Google: records OAuth state on initiate, returns canned claims."""

    name = "google"

    def __init__(self) -> None:
        self.claims: Dict[str, Any] = {
            "sub": "google-sub-1",
            "email": "a@x.com",
            "picture": "u",
            "name": "Ada",
        }
        self.error: Optional[BrokerAuthError] = None
        self.exchanges = 0

    async def authorize_redirect(self, request: Request) -> RedirectResponse:
        request.session[STATE_KEY] = {"data": {"redirect_uri": "http://testserver/auth/google/callback"}}
        return RedirectResponse(
            "https://accounts.example.test/o/oauth2/v2/auth?state=teststate&prompt=select_account+consent",
            status_code=302,
        )

    async def exchange_callback(self, request: Request) -> Dict[str, Any]:
        self.exchanges += 1
        request.session.pop(STATE_KEY, None)
        if self.error is not None:
            raise self.error
        return dict(self.claims)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        google_client_id="test-client-id",
        google_client_secret="test-client-secret",
        client_url=CLIENT_URL,
        secret_key="test-secret-key-for-testing-purposes-only",
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        environment="development",
    )


@pytest.fixture
def engine(settings):
    engine = build_engine(settings)
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def user_store(engine) -> UserStore:
    return UserStore(engine)


@pytest.fixture
def session_store(engine, settings) -> SessionStore:
    return SessionStore(engine, settings.session_max_age_seconds)


@pytest.fixture
def broker() -> FakeBroker:
    return FakeBroker()


@pytest.fixture
def app(settings, broker, engine):
    return create_app(settings, broker=broker, engine=engine)


@pytest.fixture
def client(app):
    with TestClient(app, follow_redirects=False) as c:
        yield c


@pytest.fixture
def login(client):
    """Run initiate + callback and return the callback response."""

    def _login():
        start = client.get("/auth/google")
        assert start.status_code == 302
        return client.get("/auth/google/callback", params={"code": "abc", "state": "teststate"})

    return _login
