"""
Base database model with common fields.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import declarative_base


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _Base:
    """Common columns for all models."""

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    created_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utc_now, onupdate=_utc_now, nullable=False)


Base = declarative_base(cls=_Base)
