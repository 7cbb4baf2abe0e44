from event_admission.schemas.registration import (
    RegistrationCreate, RegistrationResponse, WithdrawalResponse,
    RegistrationStats, UserRegistrationStatus, EventSummary, RegistrationStatusResponse,
)
from event_admission.schemas.checkin import (
    CheckInResponse, CheckInStatusResponse, CheckedInParticipant, CheckInStatsResponse,
)

__all__ = [
    "RegistrationCreate", "RegistrationResponse", "WithdrawalResponse",
    "RegistrationStats", "UserRegistrationStatus", "EventSummary", "RegistrationStatusResponse",
    "CheckInResponse", "CheckInStatusResponse", "CheckedInParticipant", "CheckInStatsResponse",
]
