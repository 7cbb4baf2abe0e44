"""
Audit trail writer for registration state changes.
"""

from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from event_admission.core.logging import get_logger
from event_admission.models.audit import RegistrationEvent

logger = get_logger(__name__)

# Audit event kinds
PARTICIPANT_REGISTERED = "participant_registered"
REGISTRATION_WAITLISTED = "registration_waitlisted"
PARTICIPANT_WITHDRAWN = "participant_withdrawn"
PARTICIPANT_DROPPED = "participant_dropped"
PARTICIPANT_CHECKED_IN = "participant_checked_in"
PARTICIPANT_CHECKIN_UNDONE = "participant_checkin_undone"


def log_registration_event(
    db: AsyncSession,
    kind: str,
    event_id: int,
    participant_id: int,
    details: Optional[dict[str, Any]] = None,
) -> RegistrationEvent:
    """
    Append an audit entry to the caller's open transaction.

    The row commits or rolls back together with the change it describes.
    Nothing is awaited here, so the audit write never adds a round trip to
    the critical section.
    """
    entry = RegistrationEvent(
        kind=kind,
        event_id=event_id,
        participant_id=participant_id,
        details=details or {},
    )
    db.add(entry)
    logger.info(kind, event_id=event_id, participant_id=participant_id, **(details or {}))
    return entry
