"""
Batch SMS dispatcher: personalizes, normalizes, sends and records per recipient.
"""
import asyncio
import logging
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings
from app.core.exceptions import ValidationError, PersistenceError, NotFoundError
from app.db.repositories.deliveries import DeliveryRecordRepository
from app.schemas.delivery import (
    BatchResult,
    DeliveryStatus,
    DispatchProgress,
    Recipient,
    RecipientOutcome,
    SendResult,
)
from app.services.sms.gateway import SMSGatewayClient
from app.utils.phone import normalize_phone_number

logger = logging.getLogger("edunotify.sms")

INVALID_PHONE_ERROR = "invalid phone number format"

# Matches {{name}} as well as {name}
PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*(\w+)\s*\}\}|\{(\w+)\}")

ProgressCallback = Callable[[DispatchProgress], Any]


def render_message(template: str, recipient: Recipient, max_length: int = 160) -> str:
    """
    Substitute recipient placeholders in a template and truncate the result.

    Recognized placeholders are the recipient's names (``firstName``,
    ``lastName``, ``fullName`` and their snake_case forms) plus any key in
    ``recipient.variables``. Unknown placeholders are left as they are.

    Args:
        template: Message template
        recipient: Recipient supplying the values
        max_length: Maximum length of the rendered message

    Returns:
        str: Rendered message, at most ``max_length`` characters
    """
    full_name = f"{recipient.first_name} {recipient.last_name}".strip()
    values: Dict[str, Any] = {
        "firstName": recipient.first_name,
        "first_name": recipient.first_name,
        "lastName": recipient.last_name,
        "last_name": recipient.last_name,
        "fullName": full_name,
        "full_name": full_name,
        "name": full_name,
    }
    values.update({k: v for k, v in recipient.variables.items() if v is not None})

    def _replace(match: re.Match) -> str:
        key = match.group(1) or match.group(2)
        if key in values:
            return str(values[key])
        return match.group(0)

    return PLACEHOLDER_PATTERN.sub(_replace, template)[:max_length]


class BatchDispatcher:
    """
    Sequential bulk SMS dispatch.

    Recipients are processed one at a time, in list order, with a fixed
    pause between them to stay under the gateway's rate limits. A failure
    for one recipient is recorded and the loop moves on.
    """

    def __init__(
        self,
        gateway: SMSGatewayClient,
        repository: DeliveryRecordRepository,
        *,
        delay_between_messages: Optional[float] = None,
        max_length: Optional[int] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize batch dispatcher.

        Args:
            gateway: Gateway client used for every send
            repository: Delivery record store
            delay_between_messages: Pause between recipients in seconds
            max_length: Maximum rendered message length
            sleep: Coroutine used for pacing
        """
        self.gateway = gateway
        self.repository = repository
        self.delay_between_messages = (
            settings.DELAY_BETWEEN_SMS if delay_between_messages is None else delay_between_messages
        )
        self.max_length = max_length or settings.SMS_MAX_LENGTH
        self._sleep = sleep

    async def dispatch_batch(
        self,
        recipients: Sequence[Recipient],
        template: str,
        *,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BatchResult:
        """
        Send a personalized SMS to every recipient.

        Args:
            recipients: Recipients in dispatch order
            template: Message template with placeholders
            on_progress: Called after each recipient with a DispatchProgress
            cancel_event: When set, dispatch stops before the next recipient

        Returns:
            BatchResult: Counts and per-recipient outcomes

        Raises:
            ValidationError: If the recipient list or template is empty
        """
        if not recipients:
            raise ValidationError(message="Recipient list cannot be empty")
        if not template or not template.strip():
            raise ValidationError(message="Message template cannot be empty")

        total = len(recipients)
        result = BatchResult(total=total)
        logger.info(f"Dispatching SMS to {total} recipients")

        for index, recipient in enumerate(recipients):
            if cancel_event is not None and cancel_event.is_set():
                logger.warning(f"Batch cancelled after {index} of {total} recipients")
                result.cancelled = True
                break

            try:
                outcome = await self._dispatch_one(recipient, template, result.persistence_errors)
            except Exception as e:
                logger.error(f"Unexpected error sending SMS to {recipient.label}: {e}", exc_info=True)
                outcome = RecipientOutcome(
                    recipient_id=recipient.id,
                    recipient_label=recipient.label,
                    phone=recipient.phone_number,
                    success=False,
                    error=str(e) or type(e).__name__,
                )

            result.per_recipient.append(outcome)
            if outcome.success:
                result.sent += 1
            else:
                result.failed += 1

            self._report_progress(on_progress, index + 1, total, recipient.label)

            if index < total - 1:
                await self._sleep(self.delay_between_messages)

        logger.info(
            f"Batch complete: {result.sent} sent, {result.failed} failed out of {total}"
            + (f", {len(result.persistence_errors)} record errors" if result.persistence_errors else "")
        )
        return result

    async def dispatch_broadcast(self, recipients: Sequence[Recipient], message: str) -> BatchResult:
        """
        Send one unpersonalized SMS to all recipients in a single gateway call.

        No delivery records are created. Recipients with invalid numbers are
        reported as failures and left out of the request.
        """
        if not recipients:
            raise ValidationError(message="Recipient list cannot be empty")
        if not message or not message.strip():
            raise ValidationError(message="Message cannot be empty")

        text = message[:self.max_length]
        result = BatchResult(total=len(recipients))
        deliverable: List[tuple] = []

        for recipient in recipients:
            phone = normalize_phone_number(recipient.phone_number or "")
            if phone is None:
                result.failed += 1
                result.per_recipient.append(self._invalid_phone_outcome(recipient))
            else:
                deliverable.append((recipient, phone))

        if deliverable:
            phones = list(dict.fromkeys(phone for _, phone in deliverable))
            send_result = await self.gateway.send_batch(phones, text)
            for recipient, _ in deliverable:
                result.per_recipient.append(RecipientOutcome(
                    recipient_id=recipient.id,
                    recipient_label=recipient.label,
                    phone=recipient.phone_number,
                    success=send_result.success,
                    error=send_result.error,
                    gateway_message_id=send_result.gateway_message_id,
                ))
            if send_result.success:
                result.sent += len(deliverable)
            else:
                result.failed += len(deliverable)

        logger.info(f"Broadcast complete: {result.sent} sent, {result.failed} failed")
        return result

    async def _dispatch_one(
        self,
        recipient: Recipient,
        template: str,
        persistence_errors: List[str],
    ) -> RecipientOutcome:
        message = render_message(template, recipient, self.max_length)
        phone = normalize_phone_number(recipient.phone_number or "")

        if phone is None:
            logger.warning(f"Skipping {recipient.label}: invalid phone number {recipient.phone_number!r}")
            return self._invalid_phone_outcome(recipient)

        send_result = await self.gateway.send(phone, message)
        record_id = await self._record_outcome(recipient.id, phone, message, send_result, persistence_errors)

        if not send_result.success:
            logger.warning(f"SMS to {recipient.label} failed: {send_result.error}")

        return RecipientOutcome(
            recipient_id=recipient.id,
            recipient_label=recipient.label,
            phone=recipient.phone_number,
            success=send_result.success,
            error=send_result.error,
            gateway_message_id=send_result.gateway_message_id,
            record_id=record_id,
        )

    async def _record_outcome(
        self,
        recipient_id: str,
        phone: str,
        message: str,
        send_result: SendResult,
        persistence_errors: List[str],
    ) -> Optional[str]:
        """Create or update the delivery record; failures are logged and collected."""
        status = DeliveryStatus.SENT if send_result.success else DeliveryStatus.FAILED
        try:
            existing = await self.repository.find_latest(recipient_id, message)
            if existing is not None:
                await self.repository.update_record(
                    existing.id,
                    status=status,
                    gateway_message_id=send_result.gateway_message_id,
                    error_message=send_result.error,
                )
                return existing.id

            return await self.repository.create_record(
                recipient_id=recipient_id,
                phone_number=phone,
                message=message,
                status=status,
                gateway_message_id=send_result.gateway_message_id,
                error_message=send_result.error,
            )
        except (PersistenceError, NotFoundError) as e:
            error = e.message
        except SQLAlchemyError as e:
            await self.repository.session.rollback()
            error = str(e)
        except Exception as e:
            # The gateway outcome stands whatever the store does
            error = str(e) or type(e).__name__

        logger.error(f"Could not record SMS outcome for recipient {recipient_id}: {error}")
        persistence_errors.append(f"{recipient_id}: {error}")
        return None

    @staticmethod
    def _invalid_phone_outcome(recipient: Recipient) -> RecipientOutcome:
        return RecipientOutcome(
            recipient_id=recipient.id,
            recipient_label=recipient.label,
            phone=recipient.phone_number,
            success=False,
            error=INVALID_PHONE_ERROR,
        )

    @staticmethod
    def _report_progress(
        on_progress: Optional[ProgressCallback],
        current: int,
        total: int,
        label: str,
    ) -> None:
        if on_progress is None:
            return
        try:
            on_progress(DispatchProgress(current=current, total=total, recipient_label=label))
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")
