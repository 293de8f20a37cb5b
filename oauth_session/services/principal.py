"""Convert between verified identities and the compact value kept in a session."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from .users import canonical_email

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionPrincipal:
    """Weak reference to a user: resolved by email, checked against the subject."""

    provider: str
    subject: str
    email: str


def principal_from_claims(claims: Mapping[str, Any], provider: str = "google") -> Optional[SessionPrincipal]:
    email = canonical_email(claims.get("email"))
    subject = claims.get("sub") or claims.get("id")
    if not email or not subject:
        return None
    return SessionPrincipal(provider=provider, subject=str(subject), email=email)


def serialize(principal: SessionPrincipal) -> str:
    payload = {"p": principal.provider, "s": principal.subject, "e": principal.email}
    return json.dumps(payload, separators=(",", ":"), sort_keys=True)


def deserialize(token: Any) -> Optional[SessionPrincipal]:
    """Return the principal, or None for anything malformed. Never raises."""

    if not isinstance(token, str) or not token:
        return None
    try:
        data = json.loads(token)
    except (ValueError, RecursionError):
        logger.debug("Discarding undecodable session principal")
        return None
    if not isinstance(data, dict):
        return None
    provider, subject, email = data.get("p"), data.get("s"), data.get("e")
    if not all(isinstance(value, str) and value for value in (provider, subject, email)):
        return None
    return SessionPrincipal(provider=provider, subject=subject, email=email)


__all__ = ["SessionPrincipal", "deserialize", "principal_from_claims", "serialize"]
