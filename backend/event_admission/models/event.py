"""
Event model with capacity and lifecycle phase.

Key design decisions:
- Events are created and edited by the external event CRUD service; the
  admission core only reads them, except for `version`
- `capacity` is nullable: NULL means unbounded registration
- There is no denormalized "registered count" column. The registration
  table is the single source of truth and counts are re-derived inside
  every transaction
- `version` is the per-event optimistic lock. Every transaction that mutates
  this event's registrations bumps it with a compare-and-swap, which
  serializes concurrent writers per event without a global lock
"""

import enum

from sqlalchemy import Column, Integer, String, DateTime, Index, CheckConstraint
from event_admission.db.base import Base, TimestampMixin


class EventPhase(str, enum.Enum):
    DRAFT = "draft"
    OPEN = "open"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Self-service withdrawal is refused once the event is under way
WITHDRAWAL_LOCKED_PHASES = frozenset({EventPhase.ACTIVE.value, EventPhase.COMPLETED.value})


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    organizer_id = Column(Integer, nullable=False, index=True)
    capacity = Column(Integer, nullable=True)
    phase = Column(String(20), nullable=False, default=EventPhase.DRAFT.value)
    start_time = Column(DateTime(timezone=True), nullable=True)
    registration_deadline = Column(DateTime(timezone=True), nullable=True)
    check_in_window_minutes = Column(Integer, nullable=True)

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("capacity IS NULL OR capacity > 0", name="check_event_capacity_positive"),
        CheckConstraint(
            "phase IN ('draft', 'open', 'active', 'completed', 'cancelled')",
            name="check_event_phase",
        ),
        CheckConstraint(
            "check_in_window_minutes IS NULL OR check_in_window_minutes > 0",
            name="check_event_check_in_window_positive",
        ),
        Index("ix_events_phase_start", "phase", "start_time"),
    )

    @property
    def is_bounded(self) -> bool:
        return self.capacity is not None

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, phase={self.phase}, capacity={self.capacity}, version={self.version})>"
