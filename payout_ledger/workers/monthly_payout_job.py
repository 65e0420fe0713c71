"""
Monthly batch that bills MONTH-paid classes for the previous calendar month.
"""

import asyncio
import logging
from datetime import date
from decimal import Decimal
from typing import Callable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from payout_ledger.core.actor import SYSTEM_ACTOR
from payout_ledger.core.database import AsyncSessionLocal
from payout_ledger.core.settings import settings
from payout_ledger.models import (
    ClassStatus,
    TeacherPaymentStrategy,
    TeacherPaymentUnit,
    TeacherPayoutRecord,
    TeachingClass,
)
from payout_ledger.services.payment_executor import PaymentExecutor
from payout_ledger.services.payout_service import PayoutScope, TeacherPayoutService
from payout_ledger.services.payout_triggers import month_idempotency_key
from payout_ledger.utils.proration import prorate, was_active_in_month
from payout_ledger.utils.timezone import local_today, previous_month

logger = logging.getLogger(__name__)

PaymentExecutorFactory = Callable[[AsyncSession], PaymentExecutor]


class MonthlyPayoutJob:
    """
    Creates one prorated MONTH payout per active class for the previous month.

    Classes are processed concurrently, each in its own session, with at most
    ``concurrency`` in flight. A failure on one class is logged and does not
    stop the rest of the batch.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker = AsyncSessionLocal,
        concurrency: int = settings.payout_batch_concurrency,
        payment_executor_factory: Optional[PaymentExecutorFactory] = None,
    ):
        self.session_factory = session_factory
        self.concurrency = max(concurrency, 1)
        self.payment_executor_factory = payment_executor_factory

    async def run(self, today: Optional[date] = None) -> int:
        """Bill the month before ``today``. Returns the number of payouts created."""
        month, year = previous_month(today or local_today())
        logger.info(f"Starting monthly teacher payout job for {month}/{year}")

        class_ids = await self._load_class_ids()
        logger.info(f"Found {len(class_ids)} active classes with monthly payment")

        semaphore = asyncio.Semaphore(self.concurrency)

        async def process(class_id: int) -> bool:
            async with semaphore:
                return await self.process_class(class_id, month, year)

        results = await asyncio.gather(*(process(class_id) for class_id in class_ids))
        created = sum(1 for result in results if result)

        logger.info(f"Monthly teacher payout job completed: {created} payouts created for {month}/{year}")
        return created

    async def process_class(self, class_id: int, month: int, year: int) -> bool:
        """Bill one class for the given month. Returns True when a payout was created."""
        async with self.session_factory() as db:
            try:
                return await self._process_class(db, class_id, month, year) is not None
            except Exception as e:
                logger.exception(f"Failed to process monthly payout for class {class_id}: {e}")
                return False

    async def _load_class_ids(self) -> List[int]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(TeachingClass.id)
                .join(TeacherPaymentStrategy, TeacherPaymentStrategy.class_id == TeachingClass.id)
                .where(
                    TeachingClass.status == ClassStatus.ACTIVE,
                    TeacherPaymentStrategy.per == TeacherPaymentUnit.MONTH,
                )
                .order_by(TeachingClass.id)
            )
            return list(result.scalars().all())

    async def _process_class(
        self, db: AsyncSession, class_id: int, month: int, year: int
    ) -> Optional[TeacherPayoutRecord]:
        result = await db.execute(
            select(TeachingClass)
            .options(selectinload(TeachingClass.payment_strategy))
            .where(TeachingClass.id == class_id)
        )
        teaching_class = result.scalar_one_or_none()
        if teaching_class is None or teaching_class.payment_strategy is None:
            return None

        if not was_active_in_month(teaching_class.start_date, teaching_class.end_date, month, year):
            logger.debug(f"Class {class_id} was not active during {month}/{year}")
            return None

        executor = (
            self.payment_executor_factory(db) if self.payment_executor_factory else None
        )
        service = TeacherPayoutService(db, payment_executor=executor)

        existing = await service.repository.find_month_payout(
            teaching_class.teacher_id, class_id, month, year
        )
        if existing is not None:
            logger.debug(f"Payout already exists for class {class_id}, {month}/{year}")
            return None

        proration = prorate(
            teaching_class.payment_strategy.amount,
            teaching_class.start_date,
            teaching_class.end_date,
            month,
            year,
        )
        if proration.days_active <= 0:
            return None

        scope = PayoutScope(
            teacher_id=teaching_class.teacher_id,
            class_id=class_id,
            branch_id=teaching_class.branch_id,
            center_id=teaching_class.center_id,
            month=month,
            year=year,
        )
        payout = await service.create_payout(
            scope,
            unit_type=TeacherPaymentUnit.MONTH,
            unit_price=proration.prorated_amount,
            unit_count=Decimal(1),
            actor=SYSTEM_ACTOR,
            idempotency_key=month_idempotency_key(class_id, teaching_class.teacher_id, month, year),
        )

        logger.info(
            f"Created monthly payout for class {class_id}: {proration.prorated_amount} "
            f"({proration.days_active}/{proration.days_in_month} days)"
        )
        return payout
