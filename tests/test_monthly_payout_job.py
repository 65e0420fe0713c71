"""
Tests for the monthly payout batch and its scheduler.

Verifies:
- Previous-month billing with proration
- Skipping inactive, non-monthly and already billed classes
- Per-class failure isolation
- Cron registration
"""

from datetime import date

import pytest
from sqlalchemy import select

from conftest import count_payouts
from payout_ledger.models import ClassStatus, PayoutStatus, TeacherPaymentUnit, TeacherPayoutRecord
from payout_ledger.utils.money import Money
from payout_ledger.workers.monthly_payout_job import MonthlyPayoutJob
from payout_ledger.workers.payout_scheduler import MONTHLY_PAYOUT_JOB_ID, PayoutScheduler


@pytest.fixture
def job(session_factory) -> MonthlyPayoutJob:
    # One class at a time: every test session shares a single SQLite connection
    return MonthlyPayoutJob(session_factory=session_factory, concurrency=1)


async def month_payouts(session_factory):
    async with session_factory() as session:
        result = await session.execute(
            select(TeacherPayoutRecord)
            .where(TeacherPayoutRecord.unit_type == TeacherPaymentUnit.MONTH)
            .order_by(TeacherPayoutRecord.class_id)
        )
        return list(result.scalars().all())


class TestMonthlyPayoutJob:
    """Tests for MonthlyPayoutJob.run."""

    async def test_bills_previous_month_prorated(self, job, make_class, session_factory):
        teaching_class = await make_class(
            per=TeacherPaymentUnit.MONTH, amount="3000.00", start_date=date(2024, 1, 10)
        )

        created = await job.run(today=date(2024, 2, 1))

        assert created == 1
        [payout] = await month_payouts(session_factory)
        assert payout.class_id == teaching_class.id
        assert (payout.month, payout.year) == (1, 2024)
        assert payout.total_amount == Money("2129.03")
        assert payout.status == PayoutStatus.PENDING
        assert payout.idempotency_key == (
            f"month:{teaching_class.id}:{teaching_class.teacher_id}:2024-01"
        )

    async def test_full_month(self, job, make_class, session_factory):
        await make_class(per=TeacherPaymentUnit.MONTH, amount="3000.00", start_date=date(2023, 6, 1))

        await job.run(today=date(2024, 3, 1))

        [payout] = await month_payouts(session_factory)
        assert (payout.month, payout.year) == (2, 2024)
        assert payout.total_amount == Money("3000.00")

    async def test_january_run_bills_december(self, job, make_class, session_factory):
        await make_class(per=TeacherPaymentUnit.MONTH, amount="3000.00", start_date=date(2023, 6, 1))

        await job.run(today=date(2024, 1, 1))

        [payout] = await month_payouts(session_factory)
        assert (payout.month, payout.year) == (12, 2023)

    async def test_second_run_creates_nothing(self, job, make_class, db):
        await make_class(per=TeacherPaymentUnit.MONTH, amount="3000.00", start_date=date(2023, 6, 1))

        assert await job.run(today=date(2024, 2, 1)) == 1
        assert await job.run(today=date(2024, 2, 1)) == 0
        assert await count_payouts(db) == 1

    async def test_skips_ineligible_classes(self, job, make_class, db):
        await make_class(
            per=TeacherPaymentUnit.MONTH, amount="3000.00", status=ClassStatus.PAUSED,
            start_date=date(2023, 6, 1),
        )
        await make_class(per=TeacherPaymentUnit.SESSION, start_date=date(2023, 6, 1))
        await make_class(per=TeacherPaymentUnit.MONTH, amount="3000.00", start_date=date(2024, 2, 5))
        await make_class(
            per=TeacherPaymentUnit.MONTH, amount="3000.00",
            start_date=date(2023, 6, 1), end_date=date(2023, 12, 20),
        )

        assert await job.run(today=date(2024, 2, 1)) == 0
        assert await count_payouts(db) == 0

    async def test_class_ending_mid_month(self, job, make_class, session_factory):
        await make_class(
            per=TeacherPaymentUnit.MONTH, amount="3000.00",
            start_date=date(2023, 6, 1), end_date=date(2024, 1, 15),
        )

        assert await job.run(today=date(2024, 2, 1)) == 1
        [payout] = await month_payouts(session_factory)
        assert payout.total_amount == Money("1451.61")

    async def test_failing_class_does_not_stop_batch(self, job, make_class, session_factory, caplog):
        broken = await make_class(per=TeacherPaymentUnit.MONTH, amount="-100.00", start_date=date(2023, 6, 1))
        healthy = await make_class(per=TeacherPaymentUnit.MONTH, amount="3000.00", start_date=date(2023, 6, 1))

        assert await job.run(today=date(2024, 2, 1)) == 1

        [payout] = await month_payouts(session_factory)
        assert payout.class_id == healthy.id
        assert f"Failed to process monthly payout for class {broken.id}" in caplog.text


class FakeJob:
    def __init__(self, error=None):
        self.runs = 0
        self.error = error

    async def run(self, today=None):
        self.runs += 1
        if self.error:
            raise self.error
        return 3


class TestPayoutScheduler:
    """Tests for the cron wiring."""

    def test_monthly_job_registered(self):
        scheduler = PayoutScheduler(job=FakeJob())
        scheduler.register_jobs()

        job = scheduler.scheduler.get_job(MONTHLY_PAYOUT_JOB_ID)

        assert job is not None
        trigger = str(job.trigger)
        assert "day='1'" in trigger
        assert "hour='0'" in trigger
        assert "minute='0'" in trigger

    async def test_run_calls_job(self):
        fake = FakeJob()
        await PayoutScheduler(job=fake)._run_monthly_payouts()

        assert fake.runs == 1

    async def test_run_failure_is_logged(self, caplog):
        fake = FakeJob(error=RuntimeError("database unavailable"))
        await PayoutScheduler(job=fake)._run_monthly_payouts()

        assert fake.runs == 1
        assert "Monthly payout run failed" in caplog.text
