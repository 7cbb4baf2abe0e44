"""
Exception handlers mapping domain errors to typed JSON responses.

Response shape for every handled error:

    {"error": {"code": "...", "message": "...", "request_id": "...", "details": {...}}}

Business-rule and rate-limit errors keep their specific code and message.
Infrastructure failures all collapse into one generic "try again" response;
the real cause is logged server-side only.
"""

import structlog
from fastapi import Request
from fastapi.responses import JSONResponse

from event_admission.core.errors import AppError, ConcurrencyConflictError, RateLimitExceededError
from event_admission.core.logging import get_logger

logger = get_logger(__name__)

TRY_AGAIN_MESSAGE = "Something went wrong. Please try again."


def _request_id() -> str | None:
    return structlog.contextvars.get_contextvars().get("request_id")


def _error_body(code: str, message: str, details: dict | None = None) -> dict:
    error = {"code": code, "message": message, "request_id": _request_id()}
    if details:
        error["details"] = details
    return {"error": error}


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    logger.info("app_error_handled", error_code=exc.code, status_code=exc.status_code)

    headers = None
    if isinstance(exc, RateLimitExceededError):
        headers = {"Retry-After": str(exc.retry_after_seconds)}

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.code, exc.message, exc.details),
        headers=headers,
    )


async def concurrency_conflict_handler(request: Request, exc: ConcurrencyConflictError) -> JSONResponse:
    logger.error("transaction_conflict_exhausted", operation=exc.operation, attempts=exc.attempts)
    return JSONResponse(
        status_code=503,
        content=_error_body("try_again", TRY_AGAIN_MESSAGE),
        headers={"Retry-After": "1"},
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unhandled_exception",
        error_type=type(exc).__name__,
        error=str(exc),
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content=_error_body("internal_error", TRY_AGAIN_MESSAGE),
    )


def setup_exception_handlers(app) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(ConcurrencyConflictError, concurrency_conflict_handler)
    app.add_exception_handler(Exception, general_exception_handler)
