"""
Pydantic schemas for SMS delivery records and dispatch results.
"""
from typing import List, Optional, Dict, Any
from datetime import datetime
from enum import Enum
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class DeliveryStatus(str, Enum):
    """Possible delivery record statuses."""
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    RETRY = "retry"


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys for the admin UI."""

    class Config:
        """Pydantic config."""
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class SendResult(CamelModel):
    """Outcome of a single gateway request."""
    success: bool = Field(..., description="Whether the gateway accepted the message")
    gateway_message_id: Optional[str] = Field(None, description="ID returned by the gateway")
    status: Optional[str] = Field(None, description="Gateway-reported status")
    error: Optional[str] = Field(None, description="Error text when the send failed")

    @classmethod
    def ok(cls, gateway_message_id: Optional[str] = None, status: str = "sent") -> "SendResult":
        return cls(success=True, gateway_message_id=gateway_message_id, status=status)

    @classmethod
    def fail(cls, error: str) -> "SendResult":
        return cls(success=False, error=error)


class Recipient(CamelModel):
    """A student or other addressable entity with a phone number."""
    id: str = Field(..., description="Recipient ID in the student registry")
    first_name: str = Field("", description="First name")
    last_name: str = Field("", description="Last name")
    phone_number: Optional[str] = Field(None, description="Phone number as stored, not normalized")
    variables: Dict[str, Any] = Field(default_factory=dict, description="Extra template values, e.g. cgpa")

    @property
    def label(self) -> str:
        name = f"{self.first_name} {self.last_name}".strip()
        return name or self.id


class RecipientOutcome(CamelModel):
    """Result of dispatching to one recipient."""
    recipient_id: str
    recipient_label: str
    phone: Optional[str] = Field(None, description="Phone number as supplied by the caller")
    success: bool
    error: Optional[str] = None
    gateway_message_id: Optional[str] = None
    record_id: Optional[str] = None


class DispatchProgress(CamelModel):
    """Progress report emitted after each recipient."""
    current: int
    total: int
    recipient_label: str


class BatchResult(CamelModel):
    """Aggregated result of a batch dispatch."""
    total: int = 0
    sent: int = 0
    failed: int = 0
    per_recipient: List[RecipientOutcome] = Field(default_factory=list)
    persistence_errors: List[str] = Field(default_factory=list)
    cancelled: bool = False


class RetrySummary(CamelModel):
    """Aggregated result of retrying failed records."""
    total: int = 0
    successful: int = 0
    failed: int = 0
    errors: List[str] = Field(default_factory=list)
    persistence_errors: List[str] = Field(default_factory=list, description="Record writes that failed")


class DeliveryRecordResponse(CamelModel):
    """Schema for delivery record response."""
    id: str = Field(..., description="Record ID")
    recipient_id: str = Field(..., description="Recipient ID")
    phone_number: str = Field(..., description="Normalized destination number")
    message: str = Field(..., description="Rendered message text")
    status: DeliveryStatus = Field(..., description="Current delivery status")
    attempts: int = Field(..., description="Number of send attempts")
    last_attempt_at: Optional[datetime] = Field(None, description="Time of the most recent attempt")
    error_message: Optional[str] = Field(None, description="Failure reason if applicable")
    gateway_message_id: Optional[str] = Field(None, description="ID from SMS gateway")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")


class DeliveryStatistics(CamelModel):
    """Counts of delivery records by status."""
    total: int = 0
    sent: int = 0
    failed: int = 0
    pending: int = 0
    retry: int = 0
