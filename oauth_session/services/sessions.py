"""Server-side session persistence.

Sessions live in the ``sessions`` table and are addressed by an opaque id
that the client only ever sees signed inside the ``session`` cookie. Keeping
state on the server means logout and user bans take effect immediately,
at the cost of one write per request that carries a live session.
"""

from __future__ import annotations

import json
import logging
import secrets
from datetime import timedelta
from typing import Any, Dict, Optional

from sqlalchemy import delete
from sqlalchemy.engine import Engine

from ..core.database import session_scope
from ..core.time import as_utc, utcnow
from ..models import SessionRecord

logger = logging.getLogger(__name__)


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


def _dumps(data: Dict[str, Any]) -> str:
    return json.dumps(data, separators=(",", ":"), sort_keys=True, default=str)


class SessionStore:
    def __init__(self, engine: Engine, max_age_seconds: int):
        self._engine = engine
        self.max_age_seconds = max_age_seconds

    def _expiry(self):
        return utcnow() + timedelta(seconds=self.max_age_seconds)

    def create(self, data: Dict[str, Any]) -> str:
        session_id = new_session_id()
        self.save(session_id, data)
        return session_id

    def load(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Return the stored dict, or None when the id is unknown or expired."""

        with session_scope(self._engine) as session:
            record = session.get(SessionRecord, session_id)
            if record is None:
                return None
            if as_utc(record.expires_at) <= utcnow():
                session.delete(record)
                session.commit()
                logger.debug("Dropped expired session %s...", session_id[:8])
                return None
            raw = record.data

        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Session %s... holds undecodable data; starting empty", session_id[:8])
            return {}
        return data if isinstance(data, dict) else {}

    def save(self, session_id: str, data: Dict[str, Any]) -> None:
        """Write ``data`` and push the expiry out by the max age."""

        now = utcnow()
        with session_scope(self._engine) as session:
            record = session.get(SessionRecord, session_id)
            if record is None:
                record = SessionRecord(id=session_id, created_at=now, expires_at=self._expiry())
            record.data = _dumps(data)
            record.updated_at = now
            record.expires_at = self._expiry()
            session.add(record)
            session.commit()

    def touch(self, session_id: str) -> bool:
        with session_scope(self._engine) as session:
            record = session.get(SessionRecord, session_id)
            if record is None:
                return False
            record.updated_at = utcnow()
            record.expires_at = self._expiry()
            session.add(record)
            session.commit()
            return True

    def destroy(self, session_id: str) -> None:
        with session_scope(self._engine) as session:
            session.execute(delete(SessionRecord).where(SessionRecord.id == session_id))
            session.commit()

    def purge_expired(self) -> int:
        with session_scope(self._engine) as session:
            result = session.execute(delete(SessionRecord).where(SessionRecord.expires_at <= utcnow()))
            session.commit()
            return result.rowcount or 0


__all__ = ["SessionStore", "new_session_id"]
