"""
Append-only audit trail of registration state changes.

Rows are written in the same transaction as the change they describe and
are never updated. Downstream collaborators (notifications, activity feeds)
read this table; the admission core only writes to it.
"""

from sqlalchemy import Column, Integer, String, JSON, DateTime, ForeignKey, Index, func

from event_admission.db.base import Base


class RegistrationEvent(Base):
    __tablename__ = "registration_events"

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(String(50), nullable=False)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False)
    participant_id = Column(Integer, nullable=False)
    details = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index("ix_registration_events_event_created", "event_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<RegistrationEvent(kind={self.kind}, event={self.event_id}, participant={self.participant_id})>"
