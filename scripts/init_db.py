#!/usr/bin/env python
"""
Create database tables and optionally seed sample students for development.

Usage:
    python scripts/init_db.py            # Create tables
    python scripts/init_db.py --seed     # Create tables and add sample data
"""
import sys
import asyncio
from pathlib import Path

# Add parent directory to path to allow importing app
sys.path.append(str(Path(__file__).parent.parent))

from app.core.config import settings
from app.db.session import initialize_database, get_session, close_database_connections
from app.models.student import Student, Result

SAMPLE_STUDENTS = [
    {"student_id": "MAP/ND/001", "first_name": "Adaeze", "last_name": "Okafor", "phone": "08031111111", "cgpa": 3.52},
    {"student_id": "MAP/ND/002", "first_name": "Tunde", "last_name": "Bakare", "phone": "0803 333 3333", "cgpa": 2.87},
    {"student_id": "MAP/ND/003", "first_name": "Hauwa", "last_name": "Musa", "phone": "+2349051234567", "cgpa": None},
]


async def seed() -> None:
    """Add sample students with one pending result each."""
    async with get_session() as session:
        for data in SAMPLE_STUDENTS:
            student = Student(**data)
            session.add(student)
            await session.flush()
            session.add(Result(
                student_id=student.id,
                course_code="COM 101",
                course_title="Introduction to Computing",
                credit_units=3,
                total_score=65,
                grade="B",
                academic_year="2025/2026",
                semester="First Semester",
            ))
    print(f"🌱 Seeded {len(SAMPLE_STUDENTS)} students")


async def main(with_seed: bool) -> None:
    print(f"🗄️ Creating tables on {settings.DATABASE_URL.split('@')[-1]}")
    await initialize_database(create_tables=True)
    if with_seed:
        await seed()
    await close_database_connections()
    print("✅ Database ready")


if __name__ == "__main__":
    asyncio.run(main("--seed" in sys.argv[1:]))
