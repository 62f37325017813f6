"""
API endpoints for SMS delivery records and retries.
"""
import logging
from typing import List, Optional
from fastapi import APIRouter, Body, Depends, HTTPException, Query, Path

from app.api.v1.dependencies import get_delivery_repository, get_retry_coordinator
from app.core.exceptions import EduNotifyException, ValidationError
from app.db.repositories.deliveries import DeliveryRecordRepository
from app.schemas.delivery import (
    DeliveryRecordResponse,
    DeliveryStatistics,
    DeliveryStatus,
    RetrySummary,
    SendResult,
)
from app.schemas.notification import RetryFailedRequest
from app.services.sms.retry_engine import RetryCoordinator
from app.utils.datetime import parse_datetime

router = APIRouter()
logger = logging.getLogger("edunotify.endpoint")


@router.get("/records", response_model=List[DeliveryRecordResponse])
async def list_records(
    status: Optional[DeliveryStatus] = Query(None, description="Filter by delivery status"),
    recipient_id: Optional[str] = Query(None, alias="recipientId", description="Filter by recipient"),
    limit: int = Query(100, ge=1, le=1000),
    repository: DeliveryRecordRepository = Depends(get_delivery_repository),
):
    """
    List SMS delivery records, newest first.
    """
    filters = {
        "status": status.value if status else None,
        "recipient_id": recipient_id,
    }
    try:
        return await repository.list(filters=filters, limit=limit)
    except EduNotifyException:
        raise
    except Exception as e:
        logger.error(f"Error listing SMS records: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error listing SMS records: {str(e)}")


@router.get("/records/{record_id}", response_model=DeliveryRecordResponse)
async def get_record(
    record_id: str = Path(..., description="Delivery record ID"),
    repository: DeliveryRecordRepository = Depends(get_delivery_repository),
):
    """
    Get a single SMS delivery record.
    """
    try:
        return await repository.get_record(record_id)
    except EduNotifyException:
        raise
    except Exception as e:
        logger.error(f"Error fetching SMS record {record_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error fetching SMS record: {str(e)}")


@router.post("/records/{record_id}/retry", response_model=SendResult, response_model_exclude_none=True)
async def retry_record(
    record_id: str = Path(..., description="Delivery record ID"),
    coordinator: RetryCoordinator = Depends(get_retry_coordinator),
):
    """
    Retry one failed SMS.

    Records that already reached the retry ceiling are refused without
    contacting the gateway.
    """
    try:
        return await coordinator.retry_one(record_id)
    except EduNotifyException:
        raise
    except Exception as e:
        logger.error(f"Error retrying SMS record {record_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error retrying SMS record: {str(e)}")


@router.post("/retry-failed", response_model=RetrySummary)
async def retry_failed(
    request: Optional[RetryFailedRequest] = Body(None),
    coordinator: RetryCoordinator = Depends(get_retry_coordinator),
):
    """
    Retry all failed SMS under the retry ceiling, optionally for one recipient.
    """
    recipient_id = request.recipient_id if request else None
    try:
        return await coordinator.retry_all_failed(recipient_id=recipient_id)
    except EduNotifyException:
        raise
    except Exception as e:
        logger.error(f"Error retrying failed SMS: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error retrying failed SMS: {str(e)}")


@router.get("/statistics", response_model=DeliveryStatistics)
async def get_statistics(
    date_from: Optional[str] = Query(None, alias="dateFrom", description="ISO date or datetime"),
    date_to: Optional[str] = Query(None, alias="dateTo", description="ISO date or datetime"),
    repository: DeliveryRecordRepository = Depends(get_delivery_repository),
):
    """
    Count SMS delivery records by status.
    """
    try:
        parsed_from = parse_datetime(date_from)
        parsed_to = parse_datetime(date_to)
        if (date_from and parsed_from is None) or (date_to and parsed_to is None):
            raise ValidationError(message="Dates must be ISO 8601 formatted")

        stats = await repository.get_statistics(date_from=parsed_from, date_to=parsed_to)
        return DeliveryStatistics(**stats)
    except EduNotifyException:
        raise
    except Exception as e:
        logger.error(f"Error computing SMS statistics: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error computing SMS statistics: {str(e)}")
