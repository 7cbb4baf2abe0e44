"""
Sliding-window rate limit state per (actor, action).

`request_timestamps` holds epoch milliseconds of recently recorded attempts.
It is rewritten on every allowed attempt with stale entries dropped, so it
never holds more than the action's max_requests entries. `expires_at`
(indexed) lets the maintenance sweep find dead records cheaply.
"""

from sqlalchemy import Column, Integer, BigInteger, String, JSON, UniqueConstraint

from event_admission.db.base import Base


class RateLimitRecord(Base):
    __tablename__ = "rate_limits"

    id = Column(Integer, primary_key=True, index=True)
    actor_id = Column(String(64), nullable=False)
    action = Column(String(32), nullable=False)
    request_timestamps = Column(JSON, nullable=False, default=list)
    window_start = Column(BigInteger, nullable=False)
    expires_at = Column(BigInteger, nullable=False, index=True)

    # Compare-and-swap token for concurrent attempts by the same actor
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("actor_id", "action", name="uq_rate_limit_actor_action"),
    )

    def __repr__(self) -> str:
        return f"<RateLimitRecord(actor={self.actor_id}, action={self.action}, count={len(self.request_timestamps or [])})>"
