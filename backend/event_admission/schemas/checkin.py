"""
Pydantic schemas for check-in responses.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class CheckInResponse(BaseModel):
    success: bool = True
    status: str
    checked_in_at: Optional[datetime] = None


class CheckInStatusResponse(BaseModel):
    is_registered: bool
    is_checked_in: bool
    check_in_open: bool
    check_in_opens_at: Optional[datetime] = None
    check_in_closes_at: Optional[datetime] = None
    registration_status: Optional[str] = None


class CheckedInParticipant(BaseModel):
    participant_id: int
    checked_in_at: datetime


class CheckInStatsResponse(BaseModel):
    total: int
    checked_in: int
    registered: int
    dropped: int
    waitlist: int
    checked_in_percentage: int
    checked_in_list: list[CheckedInParticipant]
