"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from event_admission.api.routes import checkin, registrations

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(registrations.router)
api_router.include_router(checkin.router)
