"""
Pytest fixtures for the payout ledger test suite.

Provides:
- A fresh in-memory SQLite database per test (sqlite+aiosqlite)
- Factories for teachers, classes and payment strategies
- Fake payment executors for recording calls and injecting failures
"""

import os

# Settings are read once at import; keep the module-level engine off Postgres
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ["TZ"] = "Europe/Kyiv"

from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from payout_ledger.core.actor import Actor
from payout_ledger.core.database import Base, enable_sqlite_savepoints
from payout_ledger.core.exceptions import PaymentExecutionError
from payout_ledger.models import (
    ClassStatus,
    PaymentMethod,
    Teacher,
    TeacherPaymentStrategy,
    TeacherPaymentUnit,
    TeacherPayoutRecord,
    TeachingClass,
)
from payout_ledger.services.payment_executor import ExecutePaymentRequest, PaymentResult

BRANCH_ID = 10
CENTER_ID = 1


class RecordingPaymentExecutor:
    """Accepts every payment and remembers the requests."""

    def __init__(self):
        self.calls: List[Tuple[ExecutePaymentRequest, Actor]] = []
        self._next_id = 1000

    async def execute(self, request: ExecutePaymentRequest, actor: Actor) -> PaymentResult:
        self.calls.append((request, actor))
        self._next_id += 1
        return PaymentResult(payment_id=self._next_id)


class FailingPaymentExecutor:
    """Refuses every payment."""

    def __init__(self):
        self.calls: List[ExecutePaymentRequest] = []

    async def execute(self, request: ExecutePaymentRequest, actor: Actor) -> PaymentResult:
        self.calls.append(request)
        raise PaymentExecutionError("Insufficient funds", reference_id=request.reference_id)


@pytest.fixture
async def engine():
    """In-memory database shared by every session of one test; sessions take turns on its one connection."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_savepoints(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def recording_executor() -> RecordingPaymentExecutor:
    return RecordingPaymentExecutor()


@pytest.fixture
def failing_executor() -> FailingPaymentExecutor:
    return FailingPaymentExecutor()


@pytest.fixture
def staff_actor() -> Actor:
    return Actor.user(7, "Olena Admin")


@pytest.fixture
async def teacher(session_factory) -> Teacher:
    """A teacher committed in its own session."""
    async with session_factory() as session:
        teacher = Teacher(full_name="Iryna Kovalenko")
        session.add(teacher)
        await session.commit()
        return teacher


@pytest.fixture
def make_class(session_factory, teacher):
    """
    Factory creating a class, optionally with a payment strategy.

    Everything is committed in a separate session so tests start with an
    empty identity map.
    """

    async def _make_class(
        per: Optional[TeacherPaymentUnit] = TeacherPaymentUnit.SESSION,
        amount: str = "200.00",
        start_date: date = date(2024, 1, 1),
        end_date: Optional[date] = None,
        status: ClassStatus = ClassStatus.ACTIVE,
        initial_payment_amount: Optional[str] = None,
        initial_payment_method: Optional[PaymentMethod] = None,
        name: str = "Robotics",
    ) -> TeachingClass:
        async with session_factory() as session:
            teaching_class = TeachingClass(
                name=name,
                teacher_id=teacher.id,
                branch_id=BRANCH_ID,
                center_id=CENTER_ID,
                status=status,
                start_date=start_date,
                end_date=end_date,
            )
            session.add(teaching_class)
            await session.flush()

            if per is not None:
                session.add(
                    TeacherPaymentStrategy(
                        class_id=teaching_class.id,
                        per=per,
                        amount=Decimal(amount),
                        initial_payment_amount=(
                            Decimal(initial_payment_amount) if initial_payment_amount else None
                        ),
                        initial_payment_method=initial_payment_method,
                    )
                )
            await session.commit()
            return teaching_class

    return _make_class


async def count_payouts(session: AsyncSession, **criteria) -> int:
    """
    Number of payout records visible to ``session`` matching column equality criteria.

    Counting goes through the test's own session: the in-memory database has a
    single connection, which holds one transaction at a time.
    """
    query = select(func.count(TeacherPayoutRecord.id))
    for column, value in criteria.items():
        query = query.where(getattr(TeacherPayoutRecord, column) == value)
    result = await session.execute(query)
    return result.scalar() or 0
