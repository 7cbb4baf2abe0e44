"""
Rate limit action table.

Each sensitive mutation has its own independently tunable budget. The table
is compiled from settings once per process and is never persisted.
"""

import enum
from dataclasses import dataclass
from functools import lru_cache

from event_admission.core.config import get_settings


class RateLimitAction(str, enum.Enum):
    REGISTRATION_ATTEMPT = "registration_attempt"
    CHECKIN_ATTEMPT = "checkin_attempt"
    RESULT_REPORT = "result_report"


@dataclass(frozen=True)
class RateLimitActionConfig:
    max_requests: int
    window_ms: int
    description: str

    def __post_init__(self) -> None:
        if self.max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if self.window_ms < 1:
            raise ValueError("window_ms must be >= 1")


@lru_cache()
def get_rate_limit_actions() -> dict[RateLimitAction, RateLimitActionConfig]:
    settings = get_settings()
    return {
        RateLimitAction.REGISTRATION_ATTEMPT: RateLimitActionConfig(
            max_requests=settings.RATE_LIMIT_REGISTRATION_MAX_REQUESTS,
            window_ms=settings.RATE_LIMIT_REGISTRATION_WINDOW_MS,
            description="Event registration attempts",
        ),
        RateLimitAction.CHECKIN_ATTEMPT: RateLimitActionConfig(
            max_requests=settings.RATE_LIMIT_CHECKIN_MAX_REQUESTS,
            window_ms=settings.RATE_LIMIT_CHECKIN_WINDOW_MS,
            description="Event check-in attempts",
        ),
        RateLimitAction.RESULT_REPORT: RateLimitActionConfig(
            max_requests=settings.RATE_LIMIT_RESULT_REPORT_MAX_REQUESTS,
            window_ms=settings.RATE_LIMIT_RESULT_REPORT_WINDOW_MS,
            description="Match result reporting attempts",
        ),
    }


def resolve_action(action) -> RateLimitAction:
    """Coerce a string to a known action. Unknown kinds are a programming error."""
    return RateLimitAction(action)
