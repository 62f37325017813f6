"""
API endpoints for result and announcement notifications.
"""
import logging
from fastapi import APIRouter, Depends, HTTPException

from app.api.v1.dependencies import get_notification_service
from app.core.exceptions import EduNotifyException
from app.schemas.notification import (
    BroadcastRequest,
    CustomNotificationRequest,
    NotificationResult,
    SMSTestRequest,
    SMSTestResponse,
)
from app.services.notifications.service import NotificationService

router = APIRouter()
logger = logging.getLogger("edunotify.endpoint")


@router.post("/notify-results", response_model=NotificationResult)
async def notify_results(
    service: NotificationService = Depends(get_notification_service),
):
    """
    Publish pending results and notify the affected students by SMS.

    Each student receives one message with their CGPA. Per-student failures
    are reported in `failureDetails` and never fail the request.
    """
    try:
        return await service.notify_results()
    except EduNotifyException:
        raise
    except Exception as e:
        logger.error(f"Error sending result notifications: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error sending result notifications: {str(e)}")


@router.post("/notify-custom", response_model=NotificationResult)
async def notify_custom(
    request: CustomNotificationRequest,
    service: NotificationService = Depends(get_notification_service),
):
    """
    Send a custom announcement to selected students.

    - **studentIds**: Students to notify (inactive or phoneless ones are skipped)
    - **title**: Announcement title
    - **message**: Announcement body
    """
    try:
        return await service.notify_custom(request.student_ids, request.title, request.message)
    except EduNotifyException:
        raise
    except Exception as e:
        logger.error(f"Error sending custom notification: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error sending custom notification: {str(e)}")


@router.post("/broadcast", response_model=NotificationResult)
async def broadcast(
    request: BroadcastRequest,
    service: NotificationService = Depends(get_notification_service),
):
    """
    Send one message to selected students in a single gateway request.

    No delivery records are kept for broadcasts.
    """
    try:
        return await service.broadcast(request.student_ids, request.message)
    except EduNotifyException:
        raise
    except Exception as e:
        logger.error(f"Error sending broadcast: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error sending broadcast: {str(e)}")


@router.post("/test-sms", response_model=SMSTestResponse, response_model_exclude_none=True)
async def test_sms(
    request: SMSTestRequest,
    service: NotificationService = Depends(get_notification_service),
):
    """
    Send a single SMS to check gateway configuration.
    """
    try:
        return await service.send_test_sms(request.phone, request.message)
    except EduNotifyException:
        raise
    except Exception as e:
        logger.error(f"Error sending test SMS: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error sending test SMS: {str(e)}")
