"""
Database model for SMS delivery records.
"""
from sqlalchemy import Column, String, DateTime, Integer, Text, Index

from app.models.base import Base


class DeliveryRecord(Base):
    """Audit row tracking one recipient's SMS send history."""

    __tablename__ = "sms_records"

    # Recipient lives in the student registry
    recipient_id = Column(String, nullable=False, index=True)
    phone_number = Column(String, nullable=False)  # Always gateway format (234XXXXXXXXXX)
    message = Column(Text, nullable=False)

    status = Column(String, nullable=False, default="pending", index=True)
    attempts = Column(Integer, nullable=False, default=1)
    last_attempt_at = Column(DateTime(timezone=True), nullable=True)

    error_message = Column(Text, nullable=True)
    gateway_message_id = Column(String, nullable=True, index=True)

    __table_args__ = (
        Index("ix_sms_records_created_at", "created_at"),
    )
