"""
Registration model: one participant's claim on an event.

Key design decisions:
- Unique constraint on (event_id, participant_id): at most one row per pair
- Composite index on (event_id, status, registered_at) serves the capacity
  reconciliation scan and FIFO waitlist promotion without a sort
- `registered_at` is the fairness key; ties fall back to the row id
- `dropped` and `withdrawn` rows are kept as tombstones, self-withdrawal
  deletes the row outright
"""

import enum

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    ForeignKey,
    Index,
    UniqueConstraint,
    CheckConstraint,
)
from event_admission.db.base import Base, TimestampMixin


class RegistrationStatus(str, enum.Enum):
    REGISTERED = "registered"
    CHECKED_IN = "checked_in"
    WAITLIST = "waitlist"
    DROPPED = "dropped"
    WITHDRAWN = "withdrawn"


# Statuses that occupy one of the event's capacity slots
ACTIVE_STATUSES = (RegistrationStatus.REGISTERED.value, RegistrationStatus.CHECKED_IN.value)

# Statuses of a live claim (anything else is a tombstone)
LIVE_STATUSES = ACTIVE_STATUSES + (RegistrationStatus.WAITLIST.value,)


class Registration(Base, TimestampMixin):
    __tablename__ = "registrations"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    participant_id = Column(Integer, nullable=False, index=True)
    status = Column(String(20), nullable=False, default=RegistrationStatus.REGISTERED.value)
    registered_at = Column(DateTime(timezone=True), nullable=False)
    checked_in_at = Column(DateTime(timezone=True), nullable=True)
    roster_ref = Column(String(100), nullable=True)
    notes = Column(String(500), nullable=True)

    __table_args__ = (
        UniqueConstraint("event_id", "participant_id", name="uq_event_participant_registration"),
        CheckConstraint(
            "status IN ('registered', 'checked_in', 'waitlist', 'dropped', 'withdrawn')",
            name="check_registration_status",
        ),
        Index("ix_registrations_event_status_registered", "event_id", "status", "registered_at"),
    )

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_STATUSES

    def __repr__(self) -> str:
        return (
            f"<Registration(id={self.id}, event={self.event_id}, "
            f"participant={self.participant_id}, status={self.status})>"
        )
