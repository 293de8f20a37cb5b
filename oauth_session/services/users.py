"""Durable user records keyed by canonical email."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlmodel import select

from ..core.database import session_scope
from ..core.errors import ConfigurationError, MissingClaimError
from ..core.time import utcnow
from ..models import User

logger = logging.getLogger(__name__)

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def canonical_email(email: Optional[str]) -> str:
    """Emails are compared and stored stripped and lower-cased."""

    return (email or "").strip().lower()


@dataclass(frozen=True)
class UpsertResult:
    user: User
    created: bool


class UserStore:
    def __init__(self, engine: Engine):
        dialect = engine.dialect.name
        if dialect not in _INSERT_BY_DIALECT:
            raise ConfigurationError(f"Unsupported database dialect for user upsert: {dialect}")
        self._engine = engine
        self._insert = _INSERT_BY_DIALECT[dialect]

    def upsert(
        self,
        email: str,
        image_url: Optional[str],
        profile: Dict[str, Any],
        *,
        subject: Optional[str] = None,
        provider: str = "google",
    ) -> UpsertResult:
        """Insert or update the row for ``email`` in a single statement.

        The database's unique constraint on ``email`` arbitrates concurrent
        first logins: exactly one caller sees ``created=True``.
        """

        normalized = canonical_email(email)
        if not normalized:
            raise MissingClaimError()

        now = utcnow()
        table = User.__table__
        stmt = self._insert(User).values(
            email=normalized,
            image_url=image_url,
            user_profile=json.dumps(profile, separators=(",", ":"), sort_keys=True, default=str),
            provider=provider,
            provider_sub=subject,
            sign_in_count=1,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.email],
            set_={
                "image_url": stmt.excluded.image_url,
                "user_profile": stmt.excluded.user_profile,
                "provider": stmt.excluded.provider,
                "provider_sub": func.coalesce(stmt.excluded.provider_sub, table.c.provider_sub),
                "sign_in_count": table.c.sign_in_count + 1,
                "updated_at": stmt.excluded.updated_at,
            },
        ).returning(User)

        with session_scope(self._engine) as session:
            user = session.scalars(stmt, execution_options={"populate_existing": True}).one()
            created = user.sign_in_count == 1
            session.commit()
            session.refresh(user)

        logger.info(
            "%s user id=%s email=%s", "Created" if created else "Updated", user.id, user.email
        )
        return UpsertResult(user=user, created=created)

    def find_by_email(self, email: str) -> Optional[User]:
        normalized = canonical_email(email)
        if not normalized:
            return None
        with session_scope(self._engine) as session:
            return session.exec(select(User).where(User.email == normalized)).first()

    def count(self) -> int:
        with session_scope(self._engine) as session:
            return session.exec(select(func.count()).select_from(User)).one()


__all__ = ["UpsertResult", "UserStore", "canonical_email"]
