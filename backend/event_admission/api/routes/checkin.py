"""
Check-in endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from event_admission.core.rate_limits import RateLimitAction
from event_admission.core.security import Actor, get_current_actor, get_optional_actor
from event_admission.db.session import get_db
from event_admission.schemas.checkin import CheckInResponse, CheckInStatsResponse, CheckInStatusResponse
from event_admission.services import checkin_service
from event_admission.services.cache_service import invalidate_registration_stats
from event_admission.services.interfaces.rate_limiter import RateLimiter
from event_admission.services.rate_limit_service import enforce_rate_limit
from event_admission.services.strategy_factory import get_rate_limiter

router = APIRouter(prefix="/events/{event_id}/check-in", tags=["Check-in"])


@router.post("", response_model=CheckInResponse)
async def check_in_endpoint(
    event_id: int = Path(..., gt=0),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    """Check the caller in. Only allowed inside the event's check-in window."""
    await enforce_rate_limit(limiter, actor.participant_id, RateLimitAction.CHECKIN_ATTEMPT)
    response = await checkin_service.check_in(db, event_id, actor.participant_id)
    await invalidate_registration_stats(event_id)
    return response


@router.delete("", response_model=CheckInResponse)
async def undo_check_in_endpoint(
    event_id: int = Path(..., gt=0),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Undo the caller's check-in while the window has not closed."""
    response = await checkin_service.undo_check_in(db, event_id, actor.participant_id)
    await invalidate_registration_stats(event_id)
    return response


@router.get("/status", response_model=CheckInStatusResponse)
async def check_in_status_endpoint(
    event_id: int = Path(..., gt=0),
    actor: Optional[Actor] = Depends(get_optional_actor),
    db: AsyncSession = Depends(get_db),
):
    participant_id = actor.participant_id if actor else None
    return await checkin_service.get_check_in_status(db, event_id, participant_id)


@router.get("/stats", response_model=CheckInStatsResponse)
async def check_in_stats_endpoint(
    event_id: int = Path(..., gt=0),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Organizer view of check-in progress."""
    return await checkin_service.get_check_in_stats(db, event_id, actor)
