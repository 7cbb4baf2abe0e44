"""
Registration endpoints: register, withdraw, organizer drop, status.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from event_admission.core.rate_limits import RateLimitAction
from event_admission.core.security import Actor, get_current_actor, get_optional_actor
from event_admission.db.session import get_db
from event_admission.schemas.registration import (
    RegistrationCreate,
    RegistrationResponse,
    RegistrationStatusResponse,
    WithdrawalResponse,
)
from event_admission.services import registration_service
from event_admission.services.cache_service import invalidate_registration_stats
from event_admission.services.interfaces.rate_limiter import RateLimiter
from event_admission.services.rate_limit_service import enforce_rate_limit
from event_admission.services.strategy_factory import get_rate_limiter

router = APIRouter(prefix="/events/{event_id}/registrations", tags=["Registrations"])


@router.post("", response_model=RegistrationResponse, status_code=status.HTTP_201_CREATED)
async def register_endpoint(
    event_id: int = Path(..., gt=0),
    payload: Optional[RegistrationCreate] = None,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    """
    Register the caller for an event.

    The attempt is counted against the caller's rate limit before anything
    else, so attempts that go on to fail a business rule still use up quota.
    When the event is full
    the caller lands on the waitlist and the response carries their
    position.
    """
    await enforce_rate_limit(limiter, actor.participant_id, RateLimitAction.REGISTRATION_ATTEMPT)
    response = await registration_service.register(db, event_id, actor.participant_id, payload)
    await invalidate_registration_stats(event_id)
    return response


@router.delete("/me", response_model=WithdrawalResponse)
async def withdraw_endpoint(
    event_id: int = Path(..., gt=0),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Withdraw the caller's own registration. Frees the slot for the waitlist."""
    response = await registration_service.withdraw(db, event_id, actor.participant_id)
    await invalidate_registration_stats(event_id)
    return response


@router.delete("/{participant_id}", response_model=WithdrawalResponse)
async def drop_endpoint(
    event_id: int = Path(..., gt=0),
    participant_id: int = Path(..., gt=0),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Organizer removal. Requires being the organizer or holding registrations:manage."""
    response = await registration_service.drop(db, event_id, participant_id, actor)
    await invalidate_registration_stats(event_id)
    return response


@router.get("/status", response_model=RegistrationStatusResponse)
async def registration_status_endpoint(
    event_id: int = Path(..., gt=0),
    actor: Optional[Actor] = Depends(get_optional_actor),
    db: AsyncSession = Depends(get_db),
):
    """Event counts plus, when authenticated, the caller's own standing."""
    participant_id = actor.participant_id if actor else None
    return await registration_service.get_status(db, event_id, participant_id)
