"""
Main API router that includes all endpoint routers.
"""
from fastapi import APIRouter

from app.api.v1.endpoints import health, notifications, sms_records


# Create main API router
api_router = APIRouter()

# Include all endpoint routers with appropriate tags
api_router.include_router(
    health.router,
    tags=["Health"]
)
api_router.include_router(
    notifications.router,
    tags=["Notifications"]
)
api_router.include_router(
    sms_records.router,
    prefix="/sms",
    tags=["SMS Records"]
)
