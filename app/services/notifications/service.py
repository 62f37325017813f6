"""
Notification service: result publishing and announcements over SMS.
"""
import logging
from typing import Any, Dict, List, Sequence

from app.core.config import settings
from app.core.exceptions import NotFoundError, ValidationError
from app.db.repositories.students import StudentRepository
from app.models.student import Result, Student
from app.schemas.delivery import BatchResult, DispatchProgress, Recipient
from app.schemas.notification import NotificationResult, SMSTestResponse
from app.services.sms.dispatcher import BatchDispatcher
from app.utils.phone import PhoneValidationError, format_phone

logger = logging.getLogger("edunotify.notifications")


def _log_progress(progress: DispatchProgress) -> None:
    logger.debug(f"SMS progress {progress.current}/{progress.total}: {progress.recipient_label}")


def student_to_recipient(student: Student, **variables: Any) -> Recipient:
    """Build a dispatch recipient from a student registry entry."""
    return Recipient(
        id=student.id,
        first_name=student.first_name,
        last_name=student.last_name,
        phone_number=student.phone,
        variables={"studentId": student.student_id, **variables},
    )


class NotificationService:
    """Sends result and custom notifications to students."""

    def __init__(self, student_repository: StudentRepository, dispatcher: BatchDispatcher):
        self.student_repository = student_repository
        self.dispatcher = dispatcher

    async def notify_results(self) -> NotificationResult:
        """
        Publish pending results and text each affected student.

        Returns:
            NotificationResult: Publish count plus SMS outcomes
        """
        results = await self.student_repository.get_pending_results()
        if not results:
            logger.info("No unpublished results found for notification")
            return NotificationResult(message="No unpublished results found")

        by_student: Dict[str, List[Result]] = {}
        for result in results:
            by_student.setdefault(result.student_id, []).append(result)

        published = await self.student_repository.publish_results([r.id for r in results])

        recipients = []
        for student_results in by_student.values():
            student = student_results[0].student
            recipients.append(student_to_recipient(
                student,
                cgpa=f"{student.cgpa:.2f}" if student.cgpa is not None else "N/A",
                semester=student_results[0].semester or "latest",
                academicYear=student_results[0].academic_year or "",
                courses=len(student_results),
            ))

        batch = await self.dispatcher.dispatch_batch(
            recipients,
            settings.RESULTS_SMS_TEMPLATE,
            on_progress=_log_progress,
        )

        return self._summarize(
            batch,
            results_published=published,
            message=f"Processed {len(results)} results, notified {len(recipients)} students",
        )

    async def notify_custom(self, student_ids: Sequence[str], title: str, message: str) -> NotificationResult:
        """
        Send a custom announcement to the selected students.

        Raises:
            NotFoundError: If none of the students is active with a phone number
        """
        students = await self.student_repository.get_active_by_ids(student_ids)
        if not students:
            raise NotFoundError(message="No active students with phone numbers found")

        logger.info(f"Sending custom notification to {len(students)} students")
        recipients = [student_to_recipient(s, title=title, message=message) for s in students]

        # Substituted values are not re-expanded, braces in the body go out as typed
        batch = await self.dispatcher.dispatch_batch(
            recipients,
            settings.CUSTOM_SMS_TEMPLATE,
            on_progress=_log_progress,
        )
        return self._summarize(batch)

    async def broadcast(self, student_ids: Sequence[str], message: str) -> NotificationResult:
        """
        Send one message to the selected students in a single gateway call.

        Raises:
            NotFoundError: If none of the students is active with a phone number
        """
        students = await self.student_repository.get_active_by_ids(student_ids)
        if not students:
            raise NotFoundError(message="No active students with phone numbers found")

        batch = await self.dispatcher.dispatch_broadcast(
            [student_to_recipient(s) for s in students],
            message,
        )
        return self._summarize(batch)

    async def send_test_sms(self, phone: str, message: str) -> SMSTestResponse:
        """
        Send a single SMS without creating a delivery record.

        Raises:
            ValidationError: If the phone number cannot be normalized
        """
        try:
            phone_number = format_phone(phone)
        except PhoneValidationError as e:
            raise ValidationError(message=e.message, details=e.details)

        result = await self.dispatcher.gateway.send(phone_number, message[:self.dispatcher.max_length])
        if result.success:
            return SMSTestResponse(
                success=True,
                message="Test SMS sent successfully",
                phone_number=phone_number,
                gateway_message_id=result.gateway_message_id,
            )
        return SMSTestResponse(success=False, error=result.error, phone_number=phone_number)

    @staticmethod
    def _summarize(batch: BatchResult, **extra: Any) -> NotificationResult:
        return NotificationResult(
            success=True,
            students_notified=batch.total,
            sms_sent=batch.sent,
            sms_failed=batch.failed,
            total=batch.total,
            success_details=[o for o in batch.per_recipient if o.success],
            failure_details=[o for o in batch.per_recipient if not o.success],
            errors=batch.persistence_errors,
            **extra,
        )
