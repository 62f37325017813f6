"""
Pydantic schemas for notification API operations.
"""
from typing import Dict, List, Optional
from pydantic import Field, field_validator

from app.schemas.delivery import CamelModel, RecipientOutcome


def _not_blank(v: str) -> str:
    if not v or not v.strip():
        raise ValueError("must not be blank")
    return v.strip()


class NotificationResult(CamelModel):
    """Summary returned by the notification endpoints."""
    success: bool = Field(True, description="False only when the request as a whole failed")
    results_published: int = Field(0, description="Results moved from pending to published")
    students_notified: int = Field(0, description="Students an SMS was attempted for")
    sms_sent: int = Field(0, description="SMS accepted by the gateway")
    sms_failed: int = Field(0, description="SMS that could not be sent")
    total: int = Field(0, description="Recipients in the batch")
    success_details: List[RecipientOutcome] = Field(default_factory=list)
    failure_details: List[RecipientOutcome] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list, description="Non-fatal errors, e.g. record write failures")
    message: Optional[str] = None


class CustomNotificationRequest(CamelModel):
    """Schema for a custom announcement to selected students."""
    student_ids: List[str] = Field(..., min_length=1, description="Students to notify")
    title: str = Field(..., description="Announcement title")
    message: str = Field(..., description="Announcement body")

    @field_validator("title", "message")
    def validate_text(cls, v):
        """Reject blank title or message."""
        return _not_blank(v)


class BroadcastRequest(CamelModel):
    """Schema for one message sent to many students in a single gateway call."""
    student_ids: List[str] = Field(..., min_length=1, description="Students to notify")
    message: str = Field(..., description="Message text")

    @field_validator("message")
    def validate_message(cls, v):
        """Reject blank message."""
        return _not_blank(v)


class SMSTestRequest(CamelModel):
    """Schema for a single test SMS."""
    phone: str = Field(..., description="Destination phone number")
    message: str = Field(..., description="Message text")

    @field_validator("phone", "message")
    def validate_text(cls, v):
        """Reject blank phone or message."""
        return _not_blank(v)


class SMSTestResponse(CamelModel):
    """Schema for test SMS response."""
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    phone_number: Optional[str] = Field(None, description="Normalized destination number")
    gateway_message_id: Optional[str] = None


class RetryFailedRequest(CamelModel):
    """Schema for retrying failed records."""
    recipient_id: Optional[str] = Field(None, description="Only retry this recipient's records")


class HealthResponse(CamelModel):
    """Schema for service health."""
    status: str
    service: str
    version: str
    configured: Dict[str, bool]
