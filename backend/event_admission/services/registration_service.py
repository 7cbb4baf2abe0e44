"""
Registration service with capacity-bounded admission and a FIFO waitlist.

CONCURRENCY STRATEGY: Optimistic Insert, then Reconcile
=======================================================

Problem:
  Checking "is there a free slot?" before inserting is a time-of-check /
  time-of-use race. Many registrations can all see the last free slot and
  all insert, leaving the event over capacity.

Solution:
  Stop trying to prevent overcapacity and instead repair it inside the
  same transaction as every write:

  1. Insert the new registration as `registered` straight away, claiming a
     provisional slot
  2. If the event has a capacity, re-read the whole active set
     (registered + checked_in) ordered by (registered_at, id)
  3. Everything beyond the first `capacity` rows is moved to `waitlist`.
     This includes rows written by OTHER participants' transactions, not
     just our own. Whatever interleaving produced the overflow, the next
     transaction to commit restores the invariant
  4. Report whether our own row ended up active or waitlisted

  There is no stored "registered count". The registrations table is the
  only source of truth and counts are always re-derived inside the
  transaction.

  Each transaction also claims the event version before its first write
  (see event_service), so writers for the same event are serialized by
  optimistic locking and retried on conflict.

Freeing a slot (withdraw, drop) promotes the earliest waitlisted row in the
same transaction, so the waitlist is strictly first come, first served.
"""

import time
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from event_admission.core import clock
from event_admission.core.errors import (
    AlreadyRegisteredError,
    AppError,
    DeadlinePassedError,
    DroppedError,
    EventLockedError,
    NotRegisteredError,
    PermissionDeniedError,
    RegistrationClosedError,
    WithdrawnError,
)
from event_admission.core.logging import get_logger
from event_admission.core.metrics import (
    record_registration,
    registration_latency,
    waitlist_demotions,
    waitlist_promotions,
)
from event_admission.core.security import Actor
from event_admission.models.event import Event, EventPhase, WITHDRAWAL_LOCKED_PHASES
from event_admission.models.registration import (
    ACTIVE_STATUSES,
    Registration,
    RegistrationStatus,
)
from event_admission.schemas.registration import (
    EventSummary,
    RegistrationCreate,
    RegistrationResponse,
    RegistrationStats,
    RegistrationStatusResponse,
    UserRegistrationStatus,
    WithdrawalResponse,
)
from event_admission.services import audit_service
from event_admission.services.cache_service import get_cached_stats, set_cached_stats
from event_admission.services.event_service import (
    claim_event_version,
    get_event,
    run_in_event_transaction,
)

logger = get_logger(__name__)

WAITLISTED_MESSAGE = "Event reached capacity during registration. You've been added to the waitlist."


async def get_registration(
    db: AsyncSession,
    event_id: int,
    participant_id: int,
) -> Optional[Registration]:
    result = await db.execute(
        select(Registration)
        .where(
            Registration.event_id == event_id,
            Registration.participant_id == participant_id,
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_active_registrations(db: AsyncSession, event_id: int) -> list[Registration]:
    """Active set in arrival order. Uses ix_registrations_event_status_registered."""
    result = await db.execute(
        select(Registration)
        .where(
            Registration.event_id == event_id,
            Registration.status.in_(ACTIVE_STATUSES),
        )
        .order_by(Registration.registered_at.asc(), Registration.id.asc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def get_waitlist_position(db: AsyncSession, registration: Registration) -> int:
    """1-based FIFO position of a waitlisted registration."""
    result = await db.execute(
        select(func.count())
        .select_from(Registration)
        .where(
            Registration.event_id == registration.event_id,
            Registration.status == RegistrationStatus.WAITLIST.value,
            or_(
                Registration.registered_at < registration.registered_at,
                and_(
                    Registration.registered_at == registration.registered_at,
                    Registration.id <= registration.id,
                ),
            ),
        )
    )
    return result.scalar_one()


async def reconcile_capacity(db: AsyncSession, event: Event) -> list[Registration]:
    """
    Move every active registration beyond the event's capacity to the waitlist.

    Returns the demoted registrations, which may belong to any participant.
    """
    if not event.is_bounded:
        return []

    active = await get_active_registrations(db, event.id)
    excess = active[event.capacity:]
    if not excess:
        return []

    for registration in excess:
        registration.status = RegistrationStatus.WAITLIST.value
        registration.checked_in_at = None
    await db.flush()

    waitlist_demotions.inc(len(excess))
    logger.warning(
        "capacity_reconciled",
        event_id=event.id,
        capacity=event.capacity,
        active_before=len(active),
        demoted_registration_ids=[r.id for r in excess],
    )
    return excess


async def promote_from_waitlist(db: AsyncSession, event: Event) -> Optional[Registration]:
    """Promote the earliest waitlisted registration if a slot is free."""
    if not event.is_bounded:
        return None

    active_count = (
        await db.execute(
            select(func.count())
            .select_from(Registration)
            .where(
                Registration.event_id == event.id,
                Registration.status.in_(ACTIVE_STATUSES),
            )
        )
    ).scalar_one()
    if active_count >= event.capacity:
        return None

    result = await db.execute(
        select(Registration)
        .where(
            Registration.event_id == event.id,
            Registration.status == RegistrationStatus.WAITLIST.value,
        )
        .order_by(Registration.registered_at.asc(), Registration.id.asc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    next_in_line = result.scalar_one_or_none()
    if next_in_line is None:
        return None

    next_in_line.status = RegistrationStatus.REGISTERED.value
    await db.flush()

    waitlist_promotions.inc()
    logger.info(
        "waitlist_promoted",
        event_id=event.id,
        registration_id=next_in_line.id,
        participant_id=next_in_line.participant_id,
    )
    return next_in_line


def is_registration_open(event: Event, now: datetime) -> bool:
    if event.phase != EventPhase.OPEN.value:
        return False
    deadline = clock.ensure_utc(event.registration_deadline)
    return deadline is None or now <= deadline


def _ensure_registration_open(event: Event, now: datetime) -> None:
    if event.phase != EventPhase.OPEN.value:
        raise RegistrationClosedError()
    deadline = clock.ensure_utc(event.registration_deadline)
    if deadline is not None and now > deadline:
        raise DeadlinePassedError()


def _ensure_not_registered(existing: Optional[Registration]) -> None:
    if existing is None:
        return
    if existing.status == RegistrationStatus.DROPPED.value:
        raise DroppedError()
    if existing.status == RegistrationStatus.WITHDRAWN.value:
        raise WithdrawnError()
    raise AlreadyRegisteredError()


async def register(
    db: AsyncSession,
    event_id: int,
    participant_id: int,
    payload: Optional[RegistrationCreate] = None,
    now: Optional[datetime] = None,
) -> RegistrationResponse:
    """Register a participant, landing on the waitlist if the event is full."""
    payload = payload or RegistrationCreate()
    started = time.perf_counter()

    async def work(event: Event) -> RegistrationResponse:
        registered_at = now or clock.utcnow()

        # Step 1: Preconditions, all before any write
        _ensure_registration_open(event, registered_at)
        _ensure_not_registered(await get_registration(db, event_id, participant_id))

        # Step 2: Claim the event, then insert optimistically
        await claim_event_version(db, event)
        registration = Registration(
            event_id=event_id,
            participant_id=participant_id,
            status=RegistrationStatus.REGISTERED.value,
            registered_at=registered_at,
            roster_ref=payload.roster_ref,
            notes=payload.notes,
        )
        db.add(registration)
        await db.flush()

        # Step 3: Repair overcapacity for everyone, not just this caller
        demoted = await reconcile_capacity(db, event)
        others = [r.id for r in demoted if r.id != registration.id]

        # Step 4: Report where our own registration ended up
        if registration.status == RegistrationStatus.WAITLIST.value:
            position = await get_waitlist_position(db, registration)
            audit_service.log_registration_event(
                db,
                audit_service.REGISTRATION_WAITLISTED,
                event_id,
                participant_id,
                {
                    "registration_id": registration.id,
                    "waitlist_position": position,
                    "demoted_registration_ids": others,
                },
            )
            return RegistrationResponse(
                registration_id=registration.id,
                status=RegistrationStatus.WAITLIST.value,
                waitlist_position=position,
                message=WAITLISTED_MESSAGE,
            )

        audit_service.log_registration_event(
            db,
            audit_service.PARTICIPANT_REGISTERED,
            event_id,
            participant_id,
            {
                "registration_id": registration.id,
                "roster_ref": payload.roster_ref,
                "demoted_registration_ids": others,
            },
        )
        return RegistrationResponse(
            registration_id=registration.id,
            status=RegistrationStatus.REGISTERED.value,
        )

    try:
        outcome = await run_in_event_transaction(db, event_id, "register", work)
    except AppError as e:
        record_registration("rejected")
        logger.info("registration_rejected", event_id=event_id, participant_id=participant_id, reason=e.code)
        raise

    record_registration(outcome.status)
    registration_latency.observe(time.perf_counter() - started)
    return outcome


async def withdraw(
    db: AsyncSession,
    event_id: int,
    participant_id: int,
) -> WithdrawalResponse:
    """Delete a participant's own registration and hand the slot to the waitlist."""

    async def work(event: Event) -> WithdrawalResponse:
        registration = await get_registration(db, event_id, participant_id)
        if registration is None or not registration.is_live:
            raise NotRegisteredError()
        if event.phase in WITHDRAWAL_LOCKED_PHASES:
            raise EventLockedError()

        await claim_event_version(db, event)
        previous_status = registration.status
        registration_id = registration.id
        await db.delete(registration)
        await db.flush()

        promoted = None
        if previous_status in ACTIVE_STATUSES:
            promoted = await promote_from_waitlist(db, event)

        audit_service.log_registration_event(
            db,
            audit_service.PARTICIPANT_WITHDRAWN,
            event_id,
            participant_id,
            {
                "registration_id": registration_id,
                "previous_status": previous_status,
                "promoted_participant_id": promoted.participant_id if promoted else None,
                "promoted_registration_id": promoted.id if promoted else None,
            },
        )
        return WithdrawalResponse(promoted_participant_id=promoted.participant_id if promoted else None)

    return await run_in_event_transaction(db, event_id, "withdraw", work)


async def drop(
    db: AsyncSession,
    event_id: int,
    participant_id: int,
    actor: Actor,
) -> WithdrawalResponse:
    """
    Organizer removal of a participant.

    Unlike withdraw, the row is kept as a `dropped` tombstone (so the
    participant cannot simply register again) and no phase restriction applies.
    """

    async def work(event: Event) -> WithdrawalResponse:
        if not actor.can_manage(event):
            raise PermissionDeniedError()
        registration = await get_registration(db, event_id, participant_id)
        if registration is None or not registration.is_live:
            raise NotRegisteredError("Participant is not registered for this event")

        await claim_event_version(db, event)
        previous_status = registration.status
        registration.status = RegistrationStatus.DROPPED.value
        registration.checked_in_at = None
        await db.flush()

        promoted = None
        if previous_status in ACTIVE_STATUSES:
            promoted = await promote_from_waitlist(db, event)

        audit_service.log_registration_event(
            db,
            audit_service.PARTICIPANT_DROPPED,
            event_id,
            participant_id,
            {
                "registration_id": registration.id,
                "previous_status": previous_status,
                "dropped_by": actor.participant_id,
                "promoted_participant_id": promoted.participant_id if promoted else None,
                "promoted_registration_id": promoted.id if promoted else None,
            },
        )
        return WithdrawalResponse(promoted_participant_id=promoted.participant_id if promoted else None)

    return await run_in_event_transaction(db, event_id, "drop", work)


async def count_registrations(db: AsyncSession, event_id: int) -> dict:
    result = await db.execute(
        select(Registration.status, func.count())
        .where(Registration.event_id == event_id)
        .group_by(Registration.status)
    )
    counts = {status: count for status, count in result.all()}
    registered = counts.get(RegistrationStatus.REGISTERED.value, 0)
    checked_in = counts.get(RegistrationStatus.CHECKED_IN.value, 0)
    return {
        "registered": registered + checked_in,
        "checked_in": checked_in,
        "waitlist": counts.get(RegistrationStatus.WAITLIST.value, 0),
        "total": sum(counts.values()),
    }


async def get_status(
    db: AsyncSession,
    event_id: int,
    participant_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> RegistrationStatusResponse:
    """Registration overview for an event, plus the caller's own standing."""
    now = now or clock.utcnow()
    event = await get_event(db, event_id)

    stats = await get_cached_stats(event_id)
    if stats is None:
        stats = await count_registrations(db, event_id)
        await set_cached_stats(event_id, stats)
    registration_stats = RegistrationStats(**stats)

    user_status = None
    if participant_id is not None:
        registration = await get_registration(db, event_id, participant_id)
        if registration is not None:
            position = None
            if registration.status == RegistrationStatus.WAITLIST.value:
                position = await get_waitlist_position(db, registration)
            user_status = UserRegistrationStatus(
                status=registration.status,
                registered_at=clock.ensure_utc(registration.registered_at),
                roster_ref=registration.roster_ref,
                waitlist_position=position,
            )

    return RegistrationStatusResponse(
        event=EventSummary.model_validate(event),
        registration_stats=registration_stats,
        user_status=user_status,
        is_registration_open=is_registration_open(event, now),
        is_full=event.capacity is not None and registration_stats.registered >= event.capacity,
    )
