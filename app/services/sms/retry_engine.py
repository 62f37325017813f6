# app/services/sms/retry_engine.py
import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional

from app.core.config import settings
from app.core.exceptions import NotFoundError, PersistenceError
from app.db.repositories.deliveries import DeliveryRecordRepository
from app.schemas.delivery import DeliveryStatus, RetrySummary, SendResult
from app.services.sms.gateway import SMSGatewayClient

logger = logging.getLogger("edunotify.retry")

MAX_ATTEMPTS_ERROR = "Maximum retry attempts reached"
RECORD_NOT_FOUND_ERROR = "SMS record not found"


class RetryCoordinator:
    """
    Resends failed SMS records that are still under the retry ceiling.

    Retries reuse the stored phone number and message and update the
    existing record in place.
    """

    def __init__(
        self,
        gateway: SMSGatewayClient,
        repository: DeliveryRecordRepository,
        *,
        max_attempts: Optional[int] = None,
        delay_between_retries: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize retry coordinator with required dependencies.

        Args:
            gateway: Gateway client for resending
            repository: Delivery record store
            max_attempts: Retry ceiling, defaults to RETRY_MAX_ATTEMPTS
            delay_between_retries: Pause between retries in seconds
            sleep: Coroutine used for pacing
        """
        self.gateway = gateway
        self.repository = repository
        self.max_attempts = max_attempts or settings.RETRY_MAX_ATTEMPTS
        self.delay_between_retries = (
            settings.DELAY_BETWEEN_SMS if delay_between_retries is None else delay_between_retries
        )
        self._sleep = sleep

    async def retry_one(
        self,
        record_id: str,
        persistence_errors: Optional[List[str]] = None,
    ) -> SendResult:
        """
        Retry a single record.

        Args:
            record_id: Delivery record ID
            persistence_errors: Collects "record_id: error" for record
                writes that failed; the send outcome is unaffected

        Returns:
            SendResult: Outcome of the resend, or a failure without any
            gateway call when the record is missing or at the ceiling
        """
        try:
            record = await self.repository.get_record(record_id)
        except NotFoundError:
            return SendResult.fail(RECORD_NOT_FOUND_ERROR)

        if record.attempts >= self.max_attempts:
            logger.info(f"Not retrying SMS record {record_id}: {record.attempts} attempts made")
            return SendResult.fail(MAX_ATTEMPTS_ERROR)

        phone_number = record.phone_number
        message = record.message
        logger.info(f"Retrying SMS record {record_id} (attempt {record.attempts + 1})")

        try:
            await self.repository.mark_retrying(record_id)
        except (PersistenceError, NotFoundError) as e:
            logger.error(f"Could not mark SMS record {record_id} for retry: {e.message}")

        result = await self.gateway.send(phone_number, message)
        status = DeliveryStatus.SENT if result.success else DeliveryStatus.FAILED

        try:
            await self.repository.update_record(
                record_id,
                status=status,
                gateway_message_id=result.gateway_message_id,
                error_message=result.error,
            )
        except Exception as e:
            error = getattr(e, "message", None) or str(e) or type(e).__name__
            logger.error(f"Could not record retry outcome for SMS record {record_id}: {error}")
            if persistence_errors is not None:
                persistence_errors.append(f"{record_id}: {error}")
            await self._restore_status(record_id, status, result.error)

        if result.success:
            logger.info(f"Successfully retried SMS record {record_id}")
        else:
            logger.warning(f"Retry of SMS record {record_id} failed: {result.error}")
        return result

    async def _restore_status(self, record_id: str, status: DeliveryStatus, error: Optional[str]) -> None:
        """Take the record out of ``retry`` after its outcome failed to save."""
        try:
            await self.repository.set_status(record_id, status, error_message=error)
        except Exception as e:
            logger.error(f"SMS record {record_id} left in retry status: {e}")

    async def retry_all_failed(self, recipient_id: Optional[str] = None) -> RetrySummary:
        """
        Retry every failed record under the ceiling, one at a time.

        Args:
            recipient_id: Restrict the sweep to one recipient

        Returns:
            RetrySummary: Counts plus the errors of failed retries
        """
        candidates = await self.repository.list_retryable(
            max_attempts=self.max_attempts,
            recipient_id=recipient_id,
        )
        summary = RetrySummary(total=len(candidates))

        if not candidates:
            logger.debug("No SMS records to retry")
            return summary

        logger.info(f"Found {len(candidates)} SMS records to retry")
        record_ids = [record.id for record in candidates]

        for index, record_id in enumerate(record_ids):
            try:
                result = await self.retry_one(record_id, summary.persistence_errors)
            except Exception as e:
                logger.error(f"Error retrying SMS record {record_id}: {e}", exc_info=True)
                result = SendResult.fail(str(e) or type(e).__name__)

            if result.success:
                summary.successful += 1
            else:
                summary.failed += 1
                if result.error:
                    summary.errors.append(f"{record_id}: {result.error}")

            if index < len(record_ids) - 1:
                await self._sleep(self.delay_between_retries)

        logger.info(f"Retry sweep complete: {summary.successful} succeeded, {summary.failed} failed")
        return summary


class RetrySweeper:
    """
    Background task that periodically retries failed records.

    Each cycle opens its own database session.
    """

    def __init__(self, gateway: SMSGatewayClient, interval: Optional[float] = None):
        self.gateway = gateway
        self.interval = interval or settings.RETRY_INTERVAL_SECONDS
        self._running = False

    async def start(self) -> None:
        """Start the retry sweep loop."""
        if self._running:
            return

        self._running = True
        logger.info("Starting retry sweeper")

        while self._running:
            try:
                await self.sweep()
            except Exception as e:
                logger.error(f"Error in retry sweeper: {e}", exc_info=True)

            await asyncio.sleep(self.interval)

    async def stop(self) -> None:
        """Stop the retry sweep loop."""
        self._running = False
        logger.info("Retry sweeper stopped")

    async def sweep(self) -> RetrySummary:
        """Run one retry pass over all failed records."""
        from app.db.session import get_repository_context

        async with get_repository_context(DeliveryRecordRepository) as repository:
            coordinator = RetryCoordinator(self.gateway, repository)
            return await coordinator.retry_all_failed()
