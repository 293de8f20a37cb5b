"""Database model for server-side session state."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Text
from sqlmodel import Field as ORMField, SQLModel

from ..core.time import utcnow


class SessionRecord(SQLModel, table=True):
    """Session dict addressed by the opaque id carried in the cookie."""

    __tablename__ = "sessions"

    id: str = ORMField(primary_key=True, max_length=64)
    data: str = ORMField(default="{}", sa_column=Column(Text, nullable=False))
    created_at: datetime = ORMField(
        default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False)
    )
    updated_at: datetime = ORMField(
        default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False)
    )
    expires_at: datetime = ORMField(
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True)
    )


__all__ = ["SessionRecord"]
