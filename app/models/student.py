"""
Database models for students and their course results.

Only the columns the notification pipeline reads are modelled here; the
registry and grading services own the full schema.
"""
from sqlalchemy import Column, String, DateTime, Float, Integer, ForeignKey
from sqlalchemy.orm import relationship

from app.models.base import Base


class Student(Base):
    """Student registry entry."""

    __tablename__ = "students"

    student_id = Column(String, unique=True, index=True, nullable=False)  # Matric number
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    status = Column(String, nullable=False, default="Active", index=True)
    cgpa = Column(Float, nullable=True)

    results = relationship("Result", back_populates="student")


class Result(Base):
    """A student's result for one course."""

    __tablename__ = "results"

    student_id = Column(String, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    course_code = Column(String, nullable=False)
    course_title = Column(String, nullable=True)
    credit_units = Column(Integer, nullable=False, default=0)
    total_score = Column(Float, nullable=True)
    grade = Column(String, nullable=True)
    academic_year = Column(String, nullable=True)
    semester = Column(String, nullable=True)
    status = Column(String, nullable=False, default="pending", index=True)
    published_at = Column(DateTime(timezone=True), nullable=True)

    student = relationship("Student", back_populates="results")
