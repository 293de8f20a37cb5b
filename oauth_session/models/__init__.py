"""Database model exports."""

from .session import SessionRecord
from .user import User

__all__ = [
    "SessionRecord",
    "User",
]
