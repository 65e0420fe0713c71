"""Persistence for teacher payout records."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from payout_ledger.core.exceptions import PayoutAlreadyExists
from payout_ledger.models import PayoutStatus, TeacherPaymentUnit, TeacherPayoutRecord

logger = logging.getLogger(__name__)


@dataclass
class PayoutFilters:
    """Optional filters for listing payouts."""

    teacher_id: Optional[int] = None
    class_id: Optional[int] = None
    status: Optional[PayoutStatus] = None
    unit_type: Optional[TeacherPaymentUnit] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None


class PayoutRecordRepository:
    """
    Record store for payouts.

    Writes only flush; committing is up to the ledger service so the record
    update and the payment it accompanies land in one transaction.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_id(
        self, payout_id: int, for_update: bool = False
    ) -> Optional[TeacherPayoutRecord]:
        """Load a payout, optionally locking its row until the transaction ends."""
        query = select(TeacherPayoutRecord).where(TeacherPayoutRecord.id == payout_id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def find_by_idempotency_key(self, key: str) -> Optional[TeacherPayoutRecord]:
        result = await self.db.execute(
            select(TeacherPayoutRecord).where(TeacherPayoutRecord.idempotency_key == key)
        )
        return result.scalar_one_or_none()

    async def find_class_payout(
        self, class_id: int, teacher_id: Optional[int] = None
    ) -> Optional[TeacherPayoutRecord]:
        """The CLASS payout of a class (at most one per teacher)."""
        query = select(TeacherPayoutRecord).where(
            TeacherPayoutRecord.class_id == class_id,
            TeacherPayoutRecord.unit_type == TeacherPaymentUnit.CLASS,
        )
        if teacher_id is not None:
            query = query.where(TeacherPayoutRecord.teacher_id == teacher_id)
        result = await self.db.execute(query.order_by(TeacherPayoutRecord.id).limit(1))
        return result.scalar_one_or_none()

    async def find_month_payout(
        self, teacher_id: int, class_id: int, month: int, year: int
    ) -> Optional[TeacherPayoutRecord]:
        result = await self.db.execute(
            select(TeacherPayoutRecord).where(
                TeacherPayoutRecord.teacher_id == teacher_id,
                TeacherPayoutRecord.class_id == class_id,
                TeacherPayoutRecord.unit_type == TeacherPaymentUnit.MONTH,
                TeacherPayoutRecord.month == month,
                TeacherPayoutRecord.year == year,
            )
        )
        return result.scalar_one_or_none()

    async def find_by_teacher(self, teacher_id: int) -> List[TeacherPayoutRecord]:
        result = await self.db.execute(
            select(TeacherPayoutRecord)
            .where(TeacherPayoutRecord.teacher_id == teacher_id)
            .order_by(TeacherPayoutRecord.created_at.desc(), TeacherPayoutRecord.id.desc())
        )
        return list(result.scalars().all())

    async def find_pending(self) -> List[TeacherPayoutRecord]:
        result = await self.db.execute(
            select(TeacherPayoutRecord)
            .where(TeacherPayoutRecord.status == PayoutStatus.PENDING)
            .order_by(TeacherPayoutRecord.id)
        )
        return list(result.scalars().all())

    async def list_payouts(
        self,
        filters: PayoutFilters,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[TeacherPayoutRecord], int]:
        """Filtered, paginated listing. Returns (records, total count)."""
        conditions = []

        if filters.teacher_id is not None:
            conditions.append(TeacherPayoutRecord.teacher_id == filters.teacher_id)

        if filters.class_id is not None:
            conditions.append(TeacherPayoutRecord.class_id == filters.class_id)

        if filters.status:
            conditions.append(TeacherPayoutRecord.status == filters.status)

        if filters.unit_type:
            conditions.append(TeacherPayoutRecord.unit_type == filters.unit_type)

        if filters.date_from:
            conditions.append(TeacherPayoutRecord.created_at >= filters.date_from)

        if filters.date_to:
            conditions.append(TeacherPayoutRecord.created_at <= filters.date_to)

        query = (
            select(TeacherPayoutRecord)
            .options(
                selectinload(TeacherPayoutRecord.teacher),
                selectinload(TeacherPayoutRecord.teaching_class),
            )
            .where(*conditions)
            .order_by(TeacherPayoutRecord.created_at.desc(), TeacherPayoutRecord.id.desc())
            .limit(limit)
            .offset(offset)
        )
        count_query = select(func.count(TeacherPayoutRecord.id)).where(*conditions)

        result = await self.db.execute(query)
        records = list(result.scalars().all())

        count_result = await self.db.execute(count_query)
        total = count_result.scalar() or 0

        return records, total

    async def create(self, record: TeacherPayoutRecord) -> TeacherPayoutRecord:
        """
        Insert a new record.

        Raises PayoutAlreadyExists when the storage layer rejects the row
        because the idempotency key or month scope is already taken (e.g. a
        concurrent retry won the race). The insert runs in a savepoint, so a
        conflict rolls back only the insert and the rest of the session's
        transaction stays intact.
        """
        try:
            async with self.db.begin_nested():
                self.db.add(record)
                await self.db.flush()
        except IntegrityError:
            existing = await self._find_conflicting(record)
            if existing is None:
                raise
            logger.info(
                f"Payout insert hit existing record {existing.id} "
                f"(idempotency_key={record.idempotency_key})"
            )
            raise PayoutAlreadyExists(record.idempotency_key, existing.id)
        return record

    async def save(self, record: TeacherPayoutRecord) -> TeacherPayoutRecord:
        """Flush a full-record update."""
        self.db.add(record)
        await self.db.flush()
        return record

    async def _find_conflicting(
        self, record: TeacherPayoutRecord
    ) -> Optional[TeacherPayoutRecord]:
        if record.idempotency_key:
            existing = await self.find_by_idempotency_key(record.idempotency_key)
            if existing is not None:
                return existing
        if record.unit_type == TeacherPaymentUnit.MONTH and record.month and record.year:
            return await self.find_month_payout(
                record.teacher_id, record.class_id, record.month, record.year
            )
        if record.unit_type == TeacherPaymentUnit.CLASS:
            return await self.find_class_payout(record.class_id, record.teacher_id)
        return None
