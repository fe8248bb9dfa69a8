"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter

from eventhub.api.routes import bookings, events, notifications, resources

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(events.router)
api_router.include_router(bookings.router)
api_router.include_router(resources.router)
api_router.include_router(notifications.router)
