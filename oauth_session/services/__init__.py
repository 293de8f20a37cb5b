"""Service layer: stores, session principal codec and identity broker."""

from .sessions import SessionStore
from .users import UpsertResult, UserStore, canonical_email

__all__ = [
    "SessionStore",
    "UpsertResult",
    "UserStore",
    "canonical_email",
]
