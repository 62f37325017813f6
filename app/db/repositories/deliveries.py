"""
Delivery record repository: the audit trail of SMS send attempts.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError, PersistenceError
from app.db.repositories.base import BaseRepository
from app.models.delivery import DeliveryRecord
from app.schemas.delivery import DeliveryStatus
from app.utils.datetime import utc_now
from app.utils.ids import generate_prefixed_id, IDPrefix

logger = logging.getLogger("edunotify.db")


class DeliveryRecordRepository(BaseRepository[DeliveryRecord]):
    """
    Repository for delivery records.

    Every write commits immediately so that earlier records in a batch
    survive a later failure. Write errors roll the session back and surface
    as PersistenceError.
    """

    def __init__(self, session: AsyncSession):
        """Initialize with session and DeliveryRecord model."""
        super().__init__(session=session, model=DeliveryRecord)

    async def create_record(
        self,
        *,
        recipient_id: str,
        phone_number: str,
        message: str,
        status: DeliveryStatus = DeliveryStatus.PENDING,
        gateway_message_id: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> str:
        """
        Create a delivery record for a first attempt.

        Args:
            recipient_id: Recipient ID
            phone_number: Normalized destination number
            message: Rendered message text
            status: Initial status; sent/failed when created after the attempt
            gateway_message_id: Gateway ID for a successful send
            error_message: Failure reason

        Returns:
            str: ID of the created record

        Raises:
            PersistenceError: If the record could not be written
        """
        status = DeliveryStatus(status)
        if status == DeliveryStatus.FAILED and not error_message:
            error_message = "Unknown error"
        if status == DeliveryStatus.SENT:
            error_message = None

        now = utc_now()
        record = DeliveryRecord(
            id=generate_prefixed_id(IDPrefix.SMS_RECORD),
            recipient_id=recipient_id,
            phone_number=phone_number,
            message=message,
            status=status.value,
            attempts=1,
            last_attempt_at=now,
            gateway_message_id=gateway_message_id,
            error_message=error_message,
            created_at=now,
            updated_at=now,
        )

        try:
            self.session.add(record)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error creating SMS record for recipient {recipient_id}: {e}")
            raise PersistenceError(
                message=f"Failed to create SMS record: {e}",
                details={"recipient_id": recipient_id}
            )

        return record.id

    async def update_record(
        self,
        record_id: str,
        *,
        status: DeliveryStatus,
        gateway_message_id: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> None:
        """
        Record the outcome of another send attempt.

        ``attempts`` is incremented in the UPDATE statement itself, so two
        retries racing on the same record both count. The call is not
        idempotent: each call is one attempt.

        Raises:
            NotFoundError: If the record does not exist
            PersistenceError: If the update could not be written
        """
        status = DeliveryStatus(status)
        if status == DeliveryStatus.FAILED and not error_message:
            error_message = "Unknown error"
        if status == DeliveryStatus.SENT:
            error_message = None

        now = utc_now()
        statement = (
            update(DeliveryRecord)
            .where(DeliveryRecord.id == record_id)
            .values(
                status=status.value,
                attempts=DeliveryRecord.attempts + 1,
                last_attempt_at=now,
                gateway_message_id=gateway_message_id,
                error_message=error_message,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        await self._execute_write(statement, record_id, "update")

    async def mark_retrying(self, record_id: str) -> None:
        """
        Flag a record as being retried without counting an attempt.

        Raises:
            NotFoundError: If the record does not exist
            PersistenceError: If the update could not be written
        """
        await self.set_status(record_id, DeliveryStatus.RETRY)

    async def set_status(
        self,
        record_id: str,
        status: DeliveryStatus,
        error_message: Optional[str] = None,
    ) -> None:
        """
        Overwrite a record's status, leaving ``attempts`` untouched.

        Used when an attempt's outcome could not be written in full, so the
        record does not stay in ``retry``.

        Raises:
            NotFoundError: If the record does not exist
            PersistenceError: If the update could not be written
        """
        status = DeliveryStatus(status)
        values = {"status": status.value, "updated_at": utc_now()}
        if error_message is not None or status == DeliveryStatus.SENT:
            values["error_message"] = error_message
        statement = (
            update(DeliveryRecord)
            .where(DeliveryRecord.id == record_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self._execute_write(statement, record_id, f"set {status.value} on")

    async def _execute_write(self, statement, record_id: str, action: str) -> None:
        try:
            result = await self.session.execute(statement)
            if result.rowcount == 0:
                await self.session.rollback()
                raise NotFoundError(message=f"SMS record {record_id} not found")
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error trying to {action} SMS record {record_id}: {e}")
            raise PersistenceError(
                message=f"Failed to {action} SMS record {record_id}: {e}",
                details={"record_id": record_id}
            )

    async def get_record(self, record_id: str) -> DeliveryRecord:
        """
        Get a record by ID.

        Raises:
            NotFoundError: If the record does not exist
        """
        record = await self.get_by_id(record_id)
        if record is None:
            raise NotFoundError(message=f"SMS record {record_id} not found")
        return record

    async def list_by_status(self, status: DeliveryStatus, limit: Optional[int] = None) -> List[DeliveryRecord]:
        """List records in a given status, newest first."""
        return await self.list(filters={"status": DeliveryStatus(status).value}, limit=limit)

    async def list_by_recipient(self, recipient_id: str, limit: Optional[int] = None) -> List[DeliveryRecord]:
        """List a recipient's records, newest first."""
        return await self.list(filters={"recipient_id": recipient_id}, limit=limit)

    async def list_retryable(
        self,
        *,
        max_attempts: int,
        recipient_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[DeliveryRecord]:
        """
        List failed records still under the retry ceiling.

        Args:
            max_attempts: Records with this many attempts or more are excluded
            recipient_id: Restrict to one recipient
            limit: Maximum number of records to return

        Returns:
            List[DeliveryRecord]: Retry candidates, newest first
        """
        query = select(DeliveryRecord).where(
            DeliveryRecord.status == DeliveryStatus.FAILED.value,
            DeliveryRecord.attempts < max_attempts,
        )
        if recipient_id:
            query = query.where(DeliveryRecord.recipient_id == recipient_id)
        query = query.order_by(DeliveryRecord.created_at.desc())
        if limit is not None:
            query = query.limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def find_latest(self, recipient_id: str, message: str) -> Optional[DeliveryRecord]:
        """Find the most recent record for a recipient and message text."""
        query = (
            select(DeliveryRecord)
            .where(
                DeliveryRecord.recipient_id == recipient_id,
                DeliveryRecord.message == message,
            )
            .order_by(DeliveryRecord.created_at.desc())
            .limit(1)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_statistics(
        self,
        *,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> Dict[str, int]:
        """
        Count records by status, optionally within a creation window.

        Returns:
            Dict[str, int]: total plus one count per status
        """
        query = select(DeliveryRecord.status, func.count()).group_by(DeliveryRecord.status)
        if date_from:
            query = query.where(DeliveryRecord.created_at >= date_from)
        if date_to:
            query = query.where(DeliveryRecord.created_at <= date_to)

        result = await self.session.execute(query)
        stats = {status.value: 0 for status in DeliveryStatus}
        for status, count in result.all():
            stats[status] = count
        stats["total"] = sum(stats.values())
        return stats
