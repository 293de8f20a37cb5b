"""Database model for users signed in through the identity provider."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import Column, DateTime, Text
from sqlmodel import Field as ORMField, SQLModel

from ..core.time import as_utc, utcnow

logger = logging.getLogger(__name__)


class User(SQLModel, table=True):
    """One row per canonical (lower-cased) email."""

    __tablename__ = "users"

    id: Optional[int] = ORMField(default=None, primary_key=True)
    email: str = ORMField(index=True, unique=True, nullable=False)
    image_url: Optional[str] = None
    # Full claims payload from the provider, kept as serialized JSON.
    user_profile: Optional[str] = ORMField(default=None, sa_column=Column(Text))
    provider: str = ORMField(default="google")
    provider_sub: Optional[str] = ORMField(default=None, index=True)
    sign_in_count: int = ORMField(default=1, nullable=False)
    created_at: datetime = ORMField(
        default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False)
    )
    updated_at: datetime = ORMField(
        default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False)
    )

    @property
    def profile(self) -> Dict[str, Any]:
        """Stored claims, or an empty dict when the stored document is unusable."""

        if not self.user_profile:
            return {}
        try:
            data = json.loads(self.user_profile)
        except (TypeError, ValueError):
            logger.warning("Malformed user_profile for user id=%s; ignoring it", self.id)
            return {}
        if not isinstance(data, dict):
            logger.warning("user_profile for user id=%s is not an object; ignoring it", self.id)
            return {}
        return data

    def to_public_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "image_url": self.image_url,
            "user_profile": self.profile,
            "created_at": as_utc(self.created_at).isoformat() if self.created_at else None,
            "updated_at": as_utc(self.updated_at).isoformat() if self.updated_at else None,
        }


__all__ = ["User"]
