"""
Check-in service: a time-boxed transition on top of an active registration.

State machine:

    registered  --check_in (window open, event open)-->  checked_in
    checked_in  --undo_check_in (window not closed)-->   registered
    dropped / withdrawn / waitlist: check-in always rejected, each with
    its own error

Window: opens `check_in_window_minutes` before `start_time` and closes at
`start_time`, both bounds inclusive. Without a start time the window is
unbounded. Undo skips the phase check so a mis-click can be reverted right
up to the closing boundary.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from event_admission.core import clock
from event_admission.core.config import get_settings
from event_admission.core.errors import (
    AlreadyCheckedInError,
    DroppedError,
    NotCheckedInError,
    NotRegisteredError,
    OnWaitlistError,
    PermissionDeniedError,
    WindowClosedError,
    WindowNotOpenError,
    WithdrawnError,
    WrongEventPhaseError,
)
from event_admission.core.logging import get_logger
from event_admission.core.metrics import checkin_transitions
from event_admission.core.security import Actor
from event_admission.models.event import Event, EventPhase
from event_admission.models.registration import Registration, RegistrationStatus
from event_admission.schemas.checkin import (
    CheckedInParticipant,
    CheckInResponse,
    CheckInStatsResponse,
    CheckInStatusResponse,
)
from event_admission.services import audit_service
from event_admission.services.event_service import (
    claim_event_version,
    get_event,
    run_in_event_transaction,
)
from event_admission.services.registration_service import get_registration

logger = get_logger(__name__)

# Registration statuses that can never check in, mapped to their error
_INELIGIBLE_STATUS_ERRORS = {
    RegistrationStatus.CHECKED_IN.value: AlreadyCheckedInError,
    RegistrationStatus.DROPPED.value: DroppedError,
    RegistrationStatus.WITHDRAWN.value: WithdrawnError,
    RegistrationStatus.WAITLIST.value: OnWaitlistError,
}


@dataclass(frozen=True)
class CheckInWindow:
    opens_at: Optional[datetime]
    closes_at: Optional[datetime]

    def has_opened(self, now: datetime) -> bool:
        return self.opens_at is None or now >= self.opens_at

    def has_closed(self, now: datetime) -> bool:
        return self.closes_at is not None and now > self.closes_at

    def is_open(self, now: datetime) -> bool:
        return self.has_opened(now) and not self.has_closed(now)


def get_check_in_window(event: Event) -> CheckInWindow:
    start_time = clock.ensure_utc(event.start_time)
    if start_time is None:
        return CheckInWindow(opens_at=None, closes_at=None)

    minutes = event.check_in_window_minutes or get_settings().DEFAULT_CHECK_IN_WINDOW_MINUTES
    return CheckInWindow(opens_at=start_time - timedelta(minutes=minutes), closes_at=start_time)


async def check_in(
    db: AsyncSession,
    event_id: int,
    participant_id: int,
    now: Optional[datetime] = None,
) -> CheckInResponse:
    """Check a registered participant in while the window is open."""

    async def work(event: Event) -> CheckInResponse:
        current = now or clock.utcnow()

        registration = await get_registration(db, event_id, participant_id)
        if registration is None:
            raise NotRegisteredError()
        error_class = _INELIGIBLE_STATUS_ERRORS.get(registration.status)
        if error_class is not None:
            raise error_class()

        if event.phase != EventPhase.OPEN.value:
            raise WrongEventPhaseError(
                f"Cannot check in to event with phase: {event.phase}. "
                "Check-in is only available before the event starts."
            )

        window = get_check_in_window(event)
        if not window.has_opened(current):
            raise WindowNotOpenError(details={"opens_at": window.opens_at.isoformat()})
        if window.has_closed(current):
            raise WindowClosedError()

        await claim_event_version(db, event)
        registration.status = RegistrationStatus.CHECKED_IN.value
        registration.checked_in_at = current
        await db.flush()

        audit_service.log_registration_event(
            db,
            audit_service.PARTICIPANT_CHECKED_IN,
            event_id,
            participant_id,
            {"registration_id": registration.id},
        )
        return CheckInResponse(status=registration.status, checked_in_at=current)

    outcome = await run_in_event_transaction(db, event_id, "check_in", work)
    checkin_transitions.labels(transition="checked_in").inc()
    return outcome


async def undo_check_in(
    db: AsyncSession,
    event_id: int,
    participant_id: int,
    now: Optional[datetime] = None,
) -> CheckInResponse:
    """Revert a check-in until the window closes."""

    async def work(event: Event) -> CheckInResponse:
        current = now or clock.utcnow()

        registration = await get_registration(db, event_id, participant_id)
        if registration is None:
            raise NotRegisteredError()
        if registration.status != RegistrationStatus.CHECKED_IN.value:
            raise NotCheckedInError()

        if get_check_in_window(event).has_closed(current):
            raise WindowClosedError("Check-in window has closed, cannot undo check-in")

        await claim_event_version(db, event)
        registration.status = RegistrationStatus.REGISTERED.value
        registration.checked_in_at = None
        await db.flush()

        audit_service.log_registration_event(
            db,
            audit_service.PARTICIPANT_CHECKIN_UNDONE,
            event_id,
            participant_id,
            {"registration_id": registration.id},
        )
        return CheckInResponse(status=registration.status, checked_in_at=None)

    outcome = await run_in_event_transaction(db, event_id, "undo_check_in", work)
    checkin_transitions.labels(transition="undone").inc()
    return outcome


async def get_check_in_status(
    db: AsyncSession,
    event_id: int,
    participant_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> CheckInStatusResponse:
    now = now or clock.utcnow()
    event = await get_event(db, event_id)
    window = get_check_in_window(event)

    registration = None
    if participant_id is not None:
        registration = await get_registration(db, event_id, participant_id)

    return CheckInStatusResponse(
        is_registered=registration is not None,
        is_checked_in=registration is not None and registration.status == RegistrationStatus.CHECKED_IN.value,
        check_in_open=window.is_open(now),
        check_in_opens_at=window.opens_at,
        check_in_closes_at=window.closes_at,
        registration_status=registration.status if registration else None,
    )


async def get_check_in_stats(db: AsyncSession, event_id: int, actor: Actor) -> CheckInStatsResponse:
    """Organizer view of check-in progress, most recent check-ins first."""
    event = await get_event(db, event_id)
    if not actor.can_manage(event):
        raise PermissionDeniedError()

    result = await db.execute(
        select(Registration)
        .where(Registration.event_id == event_id)
        .execution_options(populate_existing=True)
    )
    registrations = list(result.scalars().all())

    def count(status: RegistrationStatus) -> int:
        return sum(1 for r in registrations if r.status == status.value)

    checked_in = [r for r in registrations if r.status == RegistrationStatus.CHECKED_IN.value]
    checked_in_list = sorted(
        (
            CheckedInParticipant(
                participant_id=r.participant_id,
                checked_in_at=clock.ensure_utc(r.checked_in_at or r.created_at),
            )
            for r in checked_in
        ),
        key=lambda entry: entry.checked_in_at,
        reverse=True,
    )

    total = len(registrations)
    return CheckInStatsResponse(
        total=total,
        checked_in=len(checked_in),
        registered=count(RegistrationStatus.REGISTERED),
        dropped=count(RegistrationStatus.DROPPED),
        waitlist=count(RegistrationStatus.WAITLIST),
        checked_in_percentage=round(len(checked_in) / total * 100) if total else 0,
        checked_in_list=checked_in_list,
    )
