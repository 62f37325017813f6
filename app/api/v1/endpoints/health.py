"""
Health check endpoint.
"""
from fastapi import APIRouter

from app.core.config import settings
from app.schemas.notification import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health():
    """Report service status and which external dependencies are configured."""
    return HealthResponse(
        status="ok",
        service=settings.PROJECT_NAME,
        version=settings.VERSION,
        configured={
            "smsGateway": settings.sms_gateway_configured,
            "database": bool(settings.DATABASE_URL),
            "email": settings.email_configured,
        },
    )
