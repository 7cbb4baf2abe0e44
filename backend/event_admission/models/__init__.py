from event_admission.models.event import Event, EventPhase
from event_admission.models.registration import Registration, RegistrationStatus
from event_admission.models.rate_limit import RateLimitRecord
from event_admission.models.audit import RegistrationEvent

__all__ = [
    "Event", "EventPhase",
    "Registration", "RegistrationStatus",
    "RateLimitRecord",
    "RegistrationEvent",
]
