"""Database configuration and session helpers."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import DisconnectionError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlmodel import Session, create_engine

from .config import Settings
from .errors import StoreUnavailableError

# Errors meaning "the store cannot be reached right now", as opposed to bad SQL.
UNAVAILABLE_ERRORS = (OperationalError, PoolTimeoutError, DisconnectionError)


def build_engine(settings: Settings) -> Engine:
    """Create the shared engine and connection pool for the configured database."""

    url = make_url(settings.database_url)
    if url.get_backend_name() == "sqlite":
        if url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            pool_timeout=settings.db_pool_timeout,
        )
    return create_engine(
        url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        pool_pre_ping=True,
    )


@contextmanager
def session_scope(engine: Engine) -> Iterator[Session]:
    """Yield a session, translating pool and connection failures."""

    try:
        with Session(engine) as session:
            yield session
    except UNAVAILABLE_ERRORS as exc:
        raise StoreUnavailableError() from exc


__all__ = ["UNAVAILABLE_ERRORS", "build_engine", "session_scope"]
