"""
Bearer-token identity for the admission API.

Users and sessions are owned by the external auth service; this module only
verifies the HS256 JWTs it issues. ``sub`` carries the participant id and the
optional ``permissions`` claim carries role grants such as
``registrations:manage``.
"""

from dataclasses import dataclass, field
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from event_admission.core.config import get_settings

MANAGE_REGISTRATIONS = "registrations:manage"

_bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Actor:
    """Authenticated caller extracted from a bearer token."""

    participant_id: int
    permissions: frozenset[str] = field(default_factory=frozenset)

    def can_manage(self, event) -> bool:
        return event.organizer_id == self.participant_id or MANAGE_REGISTRATIONS in self.permissions


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_actor(token: str) -> Actor:
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.PyJWTError:
        raise _credentials_exception()

    try:
        participant_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise _credentials_exception()
    if participant_id <= 0:
        raise _credentials_exception()

    return Actor(
        participant_id=participant_id,
        permissions=frozenset(payload.get("permissions") or ()),
    )


async def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> Actor:
    if credentials is None:
        raise _credentials_exception()
    return decode_actor(credentials.credentials)


async def get_optional_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> Optional[Actor]:
    if credentials is None:
        return None
    return decode_actor(credentials.credentials)
