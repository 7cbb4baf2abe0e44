"""
Pydantic schemas for registration request/response validation.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class RegistrationCreate(BaseModel):
    roster_ref: Optional[str] = Field(None, min_length=1, max_length=100)
    notes: Optional[str] = Field(None, max_length=500)


class RegistrationResponse(BaseModel):
    registration_id: int
    status: str
    waitlist_position: Optional[int] = None
    message: Optional[str] = None


class WithdrawalResponse(BaseModel):
    success: bool = True
    promoted_participant_id: Optional[int] = None


class RegistrationStats(BaseModel):
    registered: int  # active slots: registered + checked in
    checked_in: int
    waitlist: int
    total: int


class UserRegistrationStatus(BaseModel):
    status: str
    registered_at: datetime
    roster_ref: Optional[str] = None
    waitlist_position: Optional[int] = None


class EventSummary(BaseModel):
    id: int
    title: str
    phase: str
    capacity: Optional[int]
    start_time: Optional[datetime]
    registration_deadline: Optional[datetime]

    model_config = {"from_attributes": True}


class RegistrationStatusResponse(BaseModel):
    event: EventSummary
    registration_stats: RegistrationStats
    user_status: Optional[UserRegistrationStatus] = None
    is_registration_open: bool
    is_full: bool
