import os
from collections.abc import AsyncGenerator
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock

# Settings are read at import time, keep tests off the real database
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.main import app
from app.core.config import settings
from app.db.base import Base
from app.db.repositories.deliveries import DeliveryRecordRepository
from app.db.session import get_db
from app.models.student import Student, Result
from app.schemas.delivery import SendResult
from app.services.sms.gateway import SMSGatewayClient, get_gateway_client


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_STUDENTS = [
    {
        "id": "student-1",
        "student_id": "MAP/ND/001",
        "first_name": "Ada",
        "last_name": "Obi",
        "phone": "08031111111",
        "cgpa": 3.52,
    },
    {
        "id": "student-2",
        "student_id": "MAP/ND/002",
        "first_name": "Bola",
        "last_name": "Ade",
        "phone": "invalid",
        "cgpa": 2.1,
    },
    {
        "id": "student-3",
        "student_id": "MAP/ND/003",
        "first_name": "Chidi",
        "last_name": "Eze",
        "phone": "+234 803 333 3333",
        "cgpa": None,
    },
]


@pytest_asyncio.fixture()
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await engine.dispose()


@pytest_asyncio.fixture()
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def delivery_repository(db_session) -> DeliveryRecordRepository:
    return DeliveryRecordRepository(db_session)


@pytest.fixture
def fake_gateway() -> AsyncMock:
    gateway = AsyncMock(spec=SMSGatewayClient)
    gateway.send.return_value = SendResult.ok(gateway_message_id="gw-1")
    gateway.send_batch.return_value = SendResult.ok(gateway_message_id="gw-batch")
    return gateway


@pytest.fixture
def no_sleep() -> AsyncMock:
    return AsyncMock(return_value=None)


@pytest.fixture
def seed_students(session_factory):
    async def _seed(
        students: Optional[List[Dict[str, Any]]] = None,
        *,
        with_results: bool = False,
    ) -> None:
        """Insert students, each with one pending result when requested."""
        async with session_factory() as session:
            for data in students or TEST_STUDENTS:
                session.add(Student(**data))
                if with_results:
                    session.add(Result(
                        student_id=data["id"],
                        course_code="COM 101",
                        course_title="Introduction to Computing",
                        credit_units=3,
                        total_score=70,
                        grade="A",
                        academic_year="2025/2026",
                        semester="First Semester",
                    ))
            await session.commit()

    return _seed


@pytest_asyncio.fixture()
async def async_client(session_factory, fake_gateway, monkeypatch) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db():
        async with session_factory() as session:
            yield session
            await session.commit()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway_client] = lambda: fake_gateway
    monkeypatch.setattr(settings, "DELAY_BETWEEN_SMS", 0.0)

    transport = ASGITransport(app=app)
    async with AsyncClient(base_url="http://testserver", transport=transport) as client:
        yield client

    app.dependency_overrides.clear()
