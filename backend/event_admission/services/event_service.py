"""
Event lookup and the per-event transaction runner.

CONCURRENCY STRATEGY: Optimistic Locking on the Event Version
=============================================================

Problem:
  Registration, withdrawal, drop and check-in all read a set of
  registrations, decide, then write. Two of these running at once for the
  same event can each decide on a snapshot the other is about to change.

Solution:
  Every such transaction claims the event's `version` before its first
  write:

  1. Read the event (and its current version), check preconditions
  2. UPDATE events SET version = version + 1
     WHERE id = :event_id AND version = :seen_version
  3. If rows_affected == 0, someone else committed a change to this event
     since step 1 -> roll back and retry with fresh data

  After a successful claim the transaction holds the event row's write lock
  until it commits, so no other registration write for the same event can
  commit in between. Transactions for different events never contend.
"""

from typing import Awaitable, Callable, TypeVar

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from event_admission.core.config import get_settings
from event_admission.core.errors import ConcurrencyConflictError, EventNotFoundError
from event_admission.core.logging import get_logger
from event_admission.core.metrics import record_db_retry
from event_admission.models.event import Event

logger = get_logger(__name__)

T = TypeVar("T")


class EventVersionConflict(Exception):
    """Another transaction changed the event between read and claim."""


async def get_event(db: AsyncSession, event_id: int) -> Event:
    """Get a single event by ID, always re-reading the row."""
    result = await db.execute(
        select(Event)
        .where(Event.id == event_id)
        .execution_options(populate_existing=True)
    )
    event = result.scalar_one_or_none()

    if not event:
        raise EventNotFoundError(f"Event {event_id} not found")
    return event


async def claim_event_version(db: AsyncSession, event: Event) -> None:
    """Compare-and-swap the event version. Raises EventVersionConflict on a lost race."""
    seen_version = event.version
    result = await db.execute(
        update(Event)
        .where(Event.id == event.id, Event.version == seen_version)
        .values(version=Event.version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise EventVersionConflict()
    set_committed_value(event, "version", seen_version + 1)


async def run_in_event_transaction(
    db: AsyncSession,
    event_id: int,
    operation: str,
    work: Callable[[Event], Awaitable[T]],
) -> T:
    """
    Run `work` as one transaction against a freshly read event.

    `work` must call claim_event_version before its first write. Lost races
    are retried up to MAX_TRANSACTION_RETRIES times; any other exception
    rolls the transaction back and propagates.
    """
    max_attempts = get_settings().MAX_TRANSACTION_RETRIES

    for attempt in range(1, max_attempts + 1):
        try:
            event = await get_event(db, event_id)
            outcome = await work(event)
        except EventVersionConflict:
            await db.rollback()
            record_db_retry(operation)
            logger.info(
                "transaction_retry",
                operation=operation,
                event_id=event_id,
                attempt=attempt,
                reason="version_conflict",
            )
            continue
        except Exception:
            await db.rollback()
            raise

        await db.commit()
        return outcome

    logger.error("transaction_retries_exhausted", operation=operation, event_id=event_id, attempts=max_attempts)
    raise ConcurrencyConflictError(operation, max_attempts)
