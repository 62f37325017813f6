"""
Dependencies for API endpoints.
"""
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.db.repositories.deliveries import DeliveryRecordRepository
from app.db.repositories.students import StudentRepository
from app.services.notifications.service import NotificationService
from app.services.sms.dispatcher import BatchDispatcher
from app.services.sms.gateway import SMSGatewayClient, get_gateway_client
from app.services.sms.retry_engine import RetryCoordinator


async def get_delivery_repository(session: AsyncSession = Depends(get_db)) -> DeliveryRecordRepository:
    """Get delivery record repository."""
    return DeliveryRecordRepository(session)


async def get_student_repository(session: AsyncSession = Depends(get_db)) -> StudentRepository:
    """Get student repository."""
    return StudentRepository(session)


async def get_batch_dispatcher(
    gateway: SMSGatewayClient = Depends(get_gateway_client),
    repository: DeliveryRecordRepository = Depends(get_delivery_repository),
) -> BatchDispatcher:
    """Get batch dispatcher wired to the gateway and record store."""
    return BatchDispatcher(gateway, repository)


async def get_retry_coordinator(
    gateway: SMSGatewayClient = Depends(get_gateway_client),
    repository: DeliveryRecordRepository = Depends(get_delivery_repository),
) -> RetryCoordinator:
    """Get retry coordinator wired to the gateway and record store."""
    return RetryCoordinator(gateway, repository)


async def get_notification_service(
    student_repository: StudentRepository = Depends(get_student_repository),
    dispatcher: BatchDispatcher = Depends(get_batch_dispatcher),
) -> NotificationService:
    """Get notification service."""
    return NotificationService(student_repository, dispatcher)
