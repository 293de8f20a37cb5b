"""FastAPI application factory and configuration."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import SQLModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import models  # noqa: F401 - ensure models are registered with SQLModel
from .api import register_routes
from .core import SESSION_COOKIE_NAME, ApiError, Settings, build_engine, load_settings
from .core.database import UNAVAILABLE_ERRORS
from .core.logging import configure_logging
from .core.session_middleware import ServerSessionMiddleware
from .services import SessionStore, UserStore
from .services.broker import GoogleBroker, IdentityBroker

logger = logging.getLogger(__name__)


def _envelope(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"success": False, "message": message}, status_code=status_code)


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc)
        return _envelope(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        message = "Not found" if exc.status_code == 404 else str(exc.detail)
        return _envelope(exc.status_code, message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _envelope(422, "Invalid request")

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.error("Database error on %s %s", request.method, request.url.path, exc_info=exc)
        if isinstance(exc, UNAVAILABLE_ERRORS):
            return _envelope(503, "Storage temporarily unavailable")
        return _envelope(500, "Internal Server Error")

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return _envelope(500, "Internal Server Error")


def create_app(
    settings: Optional[Settings] = None,
    *,
    broker: Optional[IdentityBroker] = None,
    engine: Optional[Engine] = None,
) -> FastAPI:
    settings = settings or load_settings()
    engine = engine or build_engine(settings)
    session_store = SessionStore(engine, settings.session_max_age_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.db_reset:
            SQLModel.metadata.drop_all(engine)
        SQLModel.metadata.create_all(engine)
        purged = session_store.purge_expired()
        if purged:
            logger.info("Purged %d expired sessions", purged)
        yield
        engine.dispose()

    app = FastAPI(title="OAuth Session API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.user_store = UserStore(engine)
    app.state.session_store = session_store
    app.state.broker = broker or GoogleBroker(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "HEAD", "PUT", "PATCH", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Accept", "Cookie"],
        expose_headers=["Set-Cookie"],
    )
    app.add_middleware(
        ServerSessionMiddleware,
        store=session_store,
        secret_key=settings.secret_key,
        session_cookie=SESSION_COOKIE_NAME,
        https_only=settings.cookie_secure,
        same_site=settings.cookie_samesite,
        domain=settings.cookie_domain,
    )

    _register_error_handlers(app)
    register_routes(app)
    return app


def run(host: str = "0.0.0.0", port: int = 4000) -> None:
    import uvicorn

    settings = load_settings()
    configure_logging(settings.log_level)
    logger.info("Starting OAuth session API on %s:%d (env=%s)", host, port, settings.environment)
    uvicorn.run(
        "oauth_session.app:create_app",
        factory=True,
        host=host,
        port=port,
        proxy_headers=True,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
