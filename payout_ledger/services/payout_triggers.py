"""Adapters turning class and session events into payout records.

Handlers run inside the transaction of the business event that triggered
them, on the caller's session, and each ledger call is wrapped in a savepoint.
On success the payout stays staged until the caller commits. On failure only
the payout work is rolled back and logged; the session completion or class
update that triggered it goes on.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from payout_ledger.core.actor import SYSTEM_ACTOR, Actor
from payout_ledger.models import (
    ATTENDED_STATUSES,
    FINISHED_CLASS_STATUSES,
    SESSION_BASED_UNITS,
    ClassStatus,
    PaymentMethod,
    SessionAttendance,
    TeacherPaymentStrategy,
    TeacherPaymentUnit,
    TeacherPayoutRecord,
    TeachingClass,
)
from payout_ledger.services.payout_service import PayoutScope, TeacherPayoutService
from payout_ledger.utils.money import Money
from payout_ledger.utils.proration import prorate, was_active_in_month
from payout_ledger.utils.timezone import local_today

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionFinishedEvent:
    session_id: int
    class_id: int
    teacher_id: int
    branch_id: int
    center_id: int
    start_time: datetime
    end_time: datetime


@dataclass(frozen=True)
class PaymentStrategyData:
    """Payment strategy as carried by a class-created event."""

    per: TeacherPaymentUnit
    amount: Decimal
    initial_payment_amount: Optional[Decimal] = None
    initial_payment_method: Optional[PaymentMethod] = None


@dataclass(frozen=True)
class ClassCreatedEvent:
    class_id: int
    teacher_id: int
    branch_id: int
    center_id: int
    payment_strategy: Optional[PaymentStrategyData]


@dataclass(frozen=True)
class ClassStatusChangedEvent:
    class_id: int
    new_status: ClassStatus
    changed_on: Optional[date] = None  # Local date; defaults to today


def session_idempotency_key(session_id: int) -> str:
    return f"session:{session_id}"


def class_idempotency_key(class_id: int) -> str:
    return f"class:{class_id}"


def month_idempotency_key(class_id: int, teacher_id: int, month: int, year: int) -> str:
    return f"month:{class_id}:{teacher_id}:{year}-{month:02d}"


def session_hours(start_time: datetime, end_time: datetime) -> Decimal:
    """Session length in hours, rounded half-up to two decimals."""
    seconds = Decimal(int((end_time - start_time).total_seconds()))
    return (seconds / Decimal(3600)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


class PayoutTriggers:
    """Creates payouts in response to session and class events."""

    def __init__(
        self,
        db: AsyncSession,
        payout_service: Optional[TeacherPayoutService] = None,
        actor: Actor = SYSTEM_ACTOR,
    ):
        self.db = db
        self.payout_service = payout_service or TeacherPayoutService(db)
        self.actor = actor

    async def handle_session_finished(
        self, event: SessionFinishedEvent
    ) -> Optional[TeacherPayoutRecord]:
        """Create a SESSION, HOUR or STUDENT payout for a finished session."""
        try:
            logger.info(f"Processing payouts for finished session: {event.session_id}")
            async with self.db.begin_nested():
                return await self._create_session_payout(event)
        except Exception as e:
            logger.exception(f"Failed to create payout for session {event.session_id}: {e}")
            return None

    async def handle_class_created(
        self, event: ClassCreatedEvent
    ) -> Optional[TeacherPayoutRecord]:
        """Open the CLASS payout for a class paid as a whole."""
        try:
            strategy = event.payment_strategy
            if strategy is None or strategy.per != TeacherPaymentUnit.CLASS:
                return None

            scope = PayoutScope(
                teacher_id=event.teacher_id,
                class_id=event.class_id,
                branch_id=event.branch_id,
                center_id=event.center_id,
            )
            async with self.db.begin_nested():
                payout = await self.payout_service.create_class_payout(
                    scope,
                    total_amount=strategy.amount,
                    actor=self.actor,
                    initial_payment=strategy.initial_payment_amount,
                    payment_method=strategy.initial_payment_method,
                    idempotency_key=class_idempotency_key(event.class_id),
                )
            logger.info(f"Opened CLASS payout {payout.id} for class {event.class_id}")
            return payout
        except Exception as e:
            logger.exception(f"Failed to create class payout for class {event.class_id}: {e}")
            return None

    async def handle_class_status_changed(
        self, event: ClassStatusChangedEvent
    ) -> Optional[TeacherPayoutRecord]:
        """Bill the last, partial month when a MONTH-paid class finishes."""
        if event.new_status not in FINISHED_CLASS_STATUSES:
            return None
        try:
            async with self.db.begin_nested():
                return await self._create_final_month_payout(event)
        except Exception as e:
            logger.exception(f"Failed to create final month payout for class {event.class_id}: {e}")
            return None

    async def count_attended_students(self, session_id: int) -> int:
        result = await self.db.execute(
            select(func.count(SessionAttendance.id)).where(
                SessionAttendance.session_id == session_id,
                SessionAttendance.status.in_(ATTENDED_STATUSES),
            )
        )
        return result.scalar() or 0

    async def calculate_unit_count(
        self, event: SessionFinishedEvent, unit_type: TeacherPaymentUnit
    ) -> Decimal:
        if unit_type == TeacherPaymentUnit.SESSION:
            return Decimal(1)
        if unit_type == TeacherPaymentUnit.HOUR:
            return session_hours(event.start_time, event.end_time)
        if unit_type == TeacherPaymentUnit.STUDENT:
            return Decimal(await self.count_attended_students(event.session_id))
        return Decimal(0)

    async def _load_strategy(self, class_id: int) -> Optional[TeacherPaymentStrategy]:
        result = await self.db.execute(
            select(TeacherPaymentStrategy).where(TeacherPaymentStrategy.class_id == class_id)
        )
        return result.scalar_one_or_none()

    async def _create_session_payout(
        self, event: SessionFinishedEvent
    ) -> Optional[TeacherPayoutRecord]:
        strategy = await self._load_strategy(event.class_id)
        if strategy is None:
            logger.debug(f"No payment strategy found for class: {event.class_id}")
            return None

        # MONTH and CLASS payouts are created by the class adapters and the monthly job
        if strategy.per not in SESSION_BASED_UNITS:
            logger.debug(f"Skipping payout for non-session-based unit type: {strategy.per.value}")
            return None

        unit_count = await self.calculate_unit_count(event, strategy.per)
        if unit_count <= 0:
            logger.debug(f"No payout needed for session {event.session_id} (unit_count: {unit_count})")
            return None

        scope = PayoutScope(
            teacher_id=event.teacher_id,
            class_id=event.class_id,
            branch_id=event.branch_id,
            center_id=event.center_id,
            session_id=event.session_id,
        )
        return await self.payout_service.create_payout(
            scope,
            unit_type=strategy.per,
            unit_price=Money.from_value(strategy.amount),
            unit_count=unit_count,
            actor=self.actor,
            idempotency_key=session_idempotency_key(event.session_id),
        )

    async def _create_final_month_payout(
        self, event: ClassStatusChangedEvent
    ) -> Optional[TeacherPayoutRecord]:
        result = await self.db.execute(
            select(TeachingClass)
            .options(selectinload(TeachingClass.payment_strategy))
            .where(TeachingClass.id == event.class_id)
        )
        teaching_class = result.scalar_one_or_none()
        if teaching_class is None:
            logger.warning(f"Class {event.class_id} not found")
            return None

        strategy = teaching_class.payment_strategy
        if strategy is None or strategy.per != TeacherPaymentUnit.MONTH:
            return None

        finished_on = event.changed_on or local_today()
        month, year = finished_on.month, finished_on.year
        class_end = finished_on
        if teaching_class.end_date is not None and teaching_class.end_date < finished_on:
            class_end = teaching_class.end_date

        if not was_active_in_month(teaching_class.start_date, class_end, month, year):
            logger.debug(f"Class {teaching_class.id} was not active during {month}/{year}")
            return None

        existing = await self.payout_service.repository.find_month_payout(
            teaching_class.teacher_id, teaching_class.id, month, year
        )
        if existing is not None:
            logger.debug(f"Month payout already exists for class {teaching_class.id}, {month}/{year}")
            return None

        proration = prorate(strategy.amount, teaching_class.start_date, class_end, month, year)
        if proration.days_active <= 0:
            return None

        scope = PayoutScope(
            teacher_id=teaching_class.teacher_id,
            class_id=teaching_class.id,
            branch_id=teaching_class.branch_id,
            center_id=teaching_class.center_id,
            month=month,
            year=year,
        )
        payout = await self.payout_service.create_payout(
            scope,
            unit_type=TeacherPaymentUnit.MONTH,
            unit_price=proration.prorated_amount,
            unit_count=Decimal(1),
            actor=self.actor,
            idempotency_key=month_idempotency_key(teaching_class.id, teaching_class.teacher_id, month, year),
        )
        logger.info(
            f"Created final MONTH payout {payout.id} for class {teaching_class.id}: "
            f"{proration.prorated_amount} ({proration.days_active}/{proration.days_in_month} days)"
        )
        return payout
