"""
Student repository: read access to the student registry and result publishing.
"""
import logging
from typing import List, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.db.repositories.base import BaseRepository
from app.models.student import Student, Result
from app.utils.datetime import utc_now

logger = logging.getLogger("edunotify.db")

ACTIVE_STATUS = "Active"


class StudentRepository(BaseRepository[Student]):
    """Student repository for database operations."""

    def __init__(self, session: AsyncSession):
        """Initialize with session and Student model."""
        super().__init__(session=session, model=Student)

    async def get_active_by_ids(self, student_ids: Sequence[str]) -> List[Student]:
        """
        Get active students among the given IDs that have a phone number.

        Args:
            student_ids: Student IDs

        Returns:
            List[Student]: Matching students ordered by last then first name
        """
        if not student_ids:
            return []

        query = (
            select(Student)
            .where(
                Student.id.in_(list(student_ids)),
                Student.status == ACTIVE_STATUS,
                Student.phone.is_not(None),
            )
            .order_by(Student.last_name, Student.first_name)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_pending_results(self) -> List[Result]:
        """
        Get unpublished results for active students with a phone number.

        Returns:
            List[Result]: Results with their student loaded
        """
        query = (
            select(Result)
            .join(Result.student)
            .where(
                Result.status == "pending",
                Student.status == ACTIVE_STATUS,
                Student.phone.is_not(None),
            )
            .options(selectinload(Result.student))
            .order_by(Student.last_name, Student.first_name, Result.course_code)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def publish_results(self, result_ids: Sequence[str]) -> int:
        """
        Mark results as published.

        Args:
            result_ids: Result IDs to publish

        Returns:
            int: Number of results published
        """
        if not result_ids:
            return 0

        now = utc_now()
        statement = (
            update(Result)
            .where(Result.id.in_(list(result_ids)), Result.status == "pending")
            .values(status="published", published_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(statement)
        await self.session.commit()
        logger.info(f"Published {result.rowcount} results")
        return result.rowcount
