"""
Typed errors raised by the admission core.

Every business-rule failure has its own class with a stable, machine-readable
``code`` and an HTTP status. The API layer renders them as
``{"error": {"code", "message", ...}}`` so clients can branch on the code
and show the message directly.

Infrastructure failures (version conflicts that exhaust the retry budget,
storage errors) are deliberately collapsed into one generic "try again"
response at the API boundary; the real cause is only logged.
"""

import math
from typing import Any, Optional


class AppError(Exception):
    """Base class for expected, user-facing failures."""

    code: str = "app_error"
    status_code: int = 400
    message: str = "Request could not be processed"

    def __init__(self, message: Optional[str] = None, *, details: Optional[dict[str, Any]] = None):
        self.message = message or self.message
        self.details = details
        super().__init__(self.message)


# Lookup errors

class EventNotFoundError(AppError):
    code = "event_not_found"
    status_code = 404
    message = "Event not found"


class NotRegisteredError(AppError):
    code = "not_registered"
    status_code = 404
    message = "You are not registered for this event"


# Registration errors

class AlreadyRegisteredError(AppError):
    code = "already_registered"
    status_code = 409
    message = "You are already registered for this event"


class RegistrationClosedError(AppError):
    code = "registration_closed"
    status_code = 409
    message = "Event registration is not open"


class DeadlinePassedError(AppError):
    code = "deadline_passed"
    status_code = 409
    message = "Registration deadline has passed"


class EventLockedError(AppError):
    code = "event_locked"
    status_code = 409
    message = "Cannot withdraw from an active or completed event"


class PermissionDeniedError(AppError):
    code = "permission_denied"
    status_code = 403
    message = "You don't have permission to manage registrations for this event"


# Check-in errors

class AlreadyCheckedInError(AppError):
    code = "already_checked_in"
    status_code = 409
    message = "You are already checked in"


class DroppedError(AppError):
    code = "dropped"
    status_code = 409
    message = "You have been dropped from this event"


class WithdrawnError(AppError):
    code = "withdrawn"
    status_code = 409
    message = "You have withdrawn from this event"


class OnWaitlistError(AppError):
    code = "on_waitlist"
    status_code = 409
    message = "Cannot check in - you are on the waitlist. You will be notified if a spot opens up."


class WrongEventPhaseError(AppError):
    code = "wrong_event_phase"
    status_code = 409
    message = "Check-in is only available for events open for registration"


class WindowNotOpenError(AppError):
    code = "window_not_open"
    status_code = 409
    message = "Check-in has not started yet"


class WindowClosedError(AppError):
    code = "window_closed"
    status_code = 409
    message = "Check-in window has closed"


class NotCheckedInError(AppError):
    code = "not_checked_in"
    status_code = 409
    message = "You are not checked in"


# Throttling

class RateLimitExceededError(AppError):
    code = "rate_limited"
    status_code = 429
    message = "Too many requests"

    def __init__(self, result):
        self.current_count = result.current_count
        self.max_requests = result.max_requests
        self.reset_in_ms = result.reset_in_ms
        self.retry_after_seconds = math.ceil(result.reset_in_ms / 1000)
        super().__init__(
            result.message,
            details={
                "current_count": result.current_count,
                "max_requests": result.max_requests,
                "retry_after_seconds": self.retry_after_seconds,
            },
        )


# Infrastructure

class ConcurrencyConflictError(Exception):
    """Raised when a transaction keeps losing its version compare-and-swap."""

    def __init__(self, operation: str, attempts: int):
        self.operation = operation
        self.attempts = attempts
        super().__init__(f"{operation} failed after {attempts} conflicting attempts")
