"""Teacher payout ledger: record creation, installments and settlement."""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import AsyncIterator, Dict, List, Optional, Tuple

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from payout_ledger.core.actor import Actor
from payout_ledger.core.exceptions import (
    InvalidPayoutAmount,
    InvalidPayoutType,
    PayoutAlreadyExists,
    PayoutAmountExceedsRemaining,
    PayoutInvalidStatusTransition,
    PayoutNotFound,
)
from payout_ledger.models import (
    AuditLog,
    PaymentMethod,
    PaymentReason,
    PayoutStatus,
    TeacherPaymentUnit,
    TeacherPayoutRecord,
    WalletOwnerType,
)
from payout_ledger.services.audit_service import get_audit_logs, log_audit
from payout_ledger.services.payment_executor import (
    DatabasePaymentExecutor,
    ExecutePaymentRequest,
    PaymentExecutor,
    PaymentResult,
)
from payout_ledger.services.payout_repository import PayoutFilters, PayoutRecordRepository
from payout_ledger.utils.money import Money, MoneyLike

logger = logging.getLogger(__name__)

AUDIT_ENTITY = "teacher_payout"

# Allowed status moves; PAID is terminal
VALID_TRANSITIONS: Dict[PayoutStatus, frozenset] = {
    PayoutStatus.PENDING: frozenset({PayoutStatus.PAID}),
    PayoutStatus.INSTALLMENT: frozenset({PayoutStatus.INSTALLMENT, PayoutStatus.PAID}),
    PayoutStatus.PAID: frozenset(),
}

PAYMENT_REASONS: Dict[TeacherPaymentUnit, PaymentReason] = {
    TeacherPaymentUnit.SESSION: PaymentReason.TEACHER_SESSION_PAYOUT,
    TeacherPaymentUnit.HOUR: PaymentReason.TEACHER_HOUR_PAYOUT,
    TeacherPaymentUnit.STUDENT: PaymentReason.TEACHER_STUDENT_PAYOUT,
    TeacherPaymentUnit.MONTH: PaymentReason.TEACHER_MONTHLY_PAYOUT,
    TeacherPaymentUnit.CLASS: PaymentReason.TEACHER_CLASS_PAYOUT,
}

SINGLE_UNIT_TYPES = frozenset({TeacherPaymentUnit.MONTH, TeacherPaymentUnit.CLASS})


@dataclass(frozen=True)
class PayoutScope:
    """Who is paid, for which class, and where the money comes from."""

    teacher_id: int
    class_id: int
    branch_id: int
    center_id: int
    session_id: Optional[int] = None
    month: Optional[int] = None
    year: Optional[int] = None


class PayoutProgress(BaseModel):
    """Read-only progress view of one payout."""

    payout_id: int
    unit_type: TeacherPaymentUnit
    total_amount: Decimal
    total_paid: Decimal
    remaining: Decimal
    progress_percent: Decimal
    last_payment: Optional[Decimal] = None
    status: PayoutStatus


class UnitTypeSummary(BaseModel):
    """Aggregated progress of one unit type."""

    unit_type: TeacherPaymentUnit
    payout_count: int
    total_amount: Decimal
    total_paid: Decimal
    remaining: Decimal
    progress_percent: Decimal


class TeacherPayoutSummary(BaseModel):
    """All payouts of a teacher, overall and per unit type."""

    teacher_id: int
    payout_count: int
    total_amount: Decimal
    total_paid: Decimal
    remaining: Decimal
    progress_percent: Decimal
    by_unit_type: List[UnitTypeSummary]


def progress_percent(total_paid: Money, total_amount: Money) -> Decimal:
    """Paid share in percent, two decimals; 0 when nothing is owed."""
    if total_amount.is_zero():
        return Decimal("0.00")
    percent = total_paid.amount * Decimal(100) / total_amount.amount
    return percent.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def parse_amount(value: MoneyLike, payout_id: Optional[int] = None) -> Money:
    """Money from caller input; anything that is not a finite amount is InvalidPayoutAmount."""
    try:
        return Money.from_value(value)
    except (TypeError, ValueError):
        raise InvalidPayoutAmount(value, payout_id)


def _parse_count(value) -> Decimal:
    try:
        count = Decimal(str(value))
    except InvalidOperation:
        raise InvalidPayoutAmount(value)
    if not count.is_finite():
        raise InvalidPayoutAmount(value)
    return count


def _snapshot(payout: TeacherPayoutRecord) -> dict:
    return {
        "status": payout.status.value,
        "total_paid": str(payout.total_paid),
        "payment_id": payout.payment_id,
    }


class TeacherPayoutService:
    """
    Owns the payout state machine.

    Each mutating call runs in one transaction on ``db``: the payout row is
    locked, preconditions are checked, the payment executor is called and the
    record is updated, then everything commits together. Any exception rolls
    the whole transaction back and is re-raised unchanged.

    When the call is made inside a savepoint (``db.begin_nested()``), the
    transaction belongs to the caller: the service only flushes, and commit or
    rollback is left to whoever opened the savepoint.
    """

    def __init__(self, db: AsyncSession, payment_executor: Optional[PaymentExecutor] = None):
        self.db = db
        self.repository = PayoutRecordRepository(db)
        self.payment_executor = payment_executor or DatabasePaymentExecutor(db)

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[None]:
        if self.db.in_nested_transaction():
            yield
            await self.db.flush()
            return
        try:
            yield
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_payout(
        self,
        scope: PayoutScope,
        unit_type: TeacherPaymentUnit,
        unit_price: MoneyLike,
        unit_count: Decimal,
        actor: Actor,
        idempotency_key: Optional[str] = None,
    ) -> TeacherPayoutRecord:
        """
        Create a payout record, or return the stored one for a known key.

        CLASS payouts start in INSTALLMENT, every other unit type in PENDING.
        For MONTH payouts the caller checks that the month is not billed yet;
        the unique constraint on (teacher, class, month, year) is the backstop
        and a collision returns the existing record.
        """
        price = parse_amount(unit_price)
        count = _parse_count(unit_count)
        self._validate_new_payout(scope, unit_type, price, count)

        async with self._transaction():
            if idempotency_key:
                existing = await self.repository.find_by_idempotency_key(idempotency_key)
                if existing is not None:
                    logger.info(
                        f"Payout with idempotency key '{idempotency_key}' already exists: {existing.id}"
                    )
                    return existing

            try:
                payout = await self._insert_payout(
                    scope, unit_type, price, count, actor, idempotency_key
                )
            except PayoutAlreadyExists as e:
                # Lost a race with a concurrent insert; only the insert was rolled back
                return await self.get_payout(e.payout_id)

        logger.info(
            f"Created {unit_type.value} payout {payout.id} for teacher {scope.teacher_id}: "
            f"{count} x {price} = {payout.total_amount} (class {scope.class_id})"
        )
        return payout

    async def create_class_payout(
        self,
        scope: PayoutScope,
        total_amount: MoneyLike,
        actor: Actor,
        initial_payment: Optional[MoneyLike] = None,
        payment_method: Optional[PaymentMethod] = None,
        idempotency_key: Optional[str] = None,
    ) -> TeacherPayoutRecord:
        """
        Create the CLASS payout and apply an optional initial installment.

        Creation and the initial payment commit together: if the payment is
        refused, no record is created either.
        """
        total = parse_amount(total_amount)
        initial = parse_amount(initial_payment) if initial_payment is not None else Money.zero()
        self._validate_new_payout(scope, TeacherPaymentUnit.CLASS, total, Decimal(1))

        if initial.is_negative():
            raise InvalidPayoutAmount(initial.amount)
        if initial.is_positive() and payment_method is None:
            raise InvalidPayoutAmount(initial.amount)

        async with self._transaction():
            if idempotency_key:
                existing = await self.repository.find_by_idempotency_key(idempotency_key)
                if existing is not None:
                    logger.info(
                        f"Class payout with idempotency key '{idempotency_key}' already exists: {existing.id}"
                    )
                    return existing

            try:
                payout = await self._insert_payout(
                    scope, TeacherPaymentUnit.CLASS, total, Decimal(1), actor, idempotency_key
                )
            except PayoutAlreadyExists as e:
                return await self.get_payout(e.payout_id)

            if initial.is_positive():
                payout = await self._apply_installment(payout, initial, payment_method, actor)

        logger.info(
            f"Created CLASS payout {payout.id} for teacher {scope.teacher_id}: "
            f"total {total}, initial payment {initial} (class {scope.class_id})"
        )
        return payout

    # ------------------------------------------------------------------
    # Payment
    # ------------------------------------------------------------------

    async def pay_installment(
        self,
        payout_id: int,
        amount: MoneyLike,
        payment_method: PaymentMethod,
        actor: Actor,
    ) -> TeacherPayoutRecord:
        """Pay part of a CLASS payout; reaching the total marks it PAID."""
        installment = parse_amount(amount, payout_id)

        async with self._transaction():
            payout = await self._get_for_update(payout_id)
            payout = await self._apply_installment(payout, installment, payment_method, actor)

        logger.info(
            f"Installment {installment} paid on payout {payout.id}: "
            f"{payout.total_paid}/{payout.total_amount} ({payout.status.value})"
        )
        return payout

    async def pay_class_installment(
        self,
        class_id: int,
        amount: MoneyLike,
        payment_method: PaymentMethod,
        actor: Actor,
        teacher_id: Optional[int] = None,
    ) -> TeacherPayoutRecord:
        """Pay an installment on the CLASS payout of a class."""
        payout = await self.repository.find_class_payout(class_id, teacher_id)
        if payout is None:
            raise PayoutNotFound(class_id=class_id)
        return await self.pay_installment(payout.id, amount, payment_method, actor)

    async def approve_and_pay(
        self,
        payout_id: int,
        payment_method: PaymentMethod,
        actor: Actor,
        target_status: PayoutStatus = PayoutStatus.PAID,
    ) -> TeacherPayoutRecord:
        """Pay the full outstanding amount and mark the payout PAID."""
        async with self._transaction():
            payout = await self._get_for_update(payout_id)

            if (
                target_status != PayoutStatus.PAID
                or target_status not in VALID_TRANSITIONS[payout.status]
            ):
                raise PayoutInvalidStatusTransition(
                    payout.id, payout.status.value, target_status.value
                )

            before = _snapshot(payout)
            total = payout.total_amount
            outstanding = payout.remaining

            if outstanding.is_positive():
                payment = await self._execute_payment(payout, outstanding, payment_method, actor)
                payout.payment_id = payment.payment_id
                payout.payment_method = payment_method
                payout.last_payment_amount = outstanding

            payout.total_paid = total
            payout.status = PayoutStatus.PAID
            await self.repository.save(payout)

            await log_audit(
                self.db,
                action_type="PAY",
                entity_type=AUDIT_ENTITY,
                entity_id=payout.id,
                entity_name=self._entity_name(payout),
                description=f"Payout approved and paid: {outstanding} ({payment_method.value})",
                actor=actor,
                changes={"before": before, "after": _snapshot(payout)},
            )

        logger.info(
            f"Payout {payout.id} approved and paid by {actor.name}: {outstanding} "
            f"({payment_method.value})"
        )
        return payout

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_payout(self, payout_id: int) -> TeacherPayoutRecord:
        payout = await self.repository.find_by_id(payout_id)
        if payout is None:
            raise PayoutNotFound(payout_id)
        return payout

    async def list_payouts(
        self,
        filters: PayoutFilters,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[TeacherPayoutRecord], int]:
        return await self.repository.list_payouts(filters, limit=limit, offset=offset)

    async def get_class_payout(
        self, class_id: int, teacher_id: Optional[int] = None
    ) -> Optional[TeacherPayoutRecord]:
        return await self.repository.find_class_payout(class_id, teacher_id)

    async def get_pending_payouts(self) -> List[TeacherPayoutRecord]:
        return await self.repository.find_pending()

    async def get_payout_history(
        self,
        payout_id: int,
        action_type: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[AuditLog], int]:
        """Audit entries of one payout, newest first."""
        await self.get_payout(payout_id)
        return await get_audit_logs(
            self.db,
            entity_type=AUDIT_ENTITY,
            entity_id=payout_id,
            action_type=action_type,
            limit=limit,
            offset=offset,
        )

    async def get_progress(self, payout_id: int) -> PayoutProgress:
        payout = await self.get_payout(payout_id)
        return self._progress(payout)

    async def get_class_progress(self, class_id: int) -> Optional[PayoutProgress]:
        payout = await self.repository.find_class_payout(class_id)
        if payout is None:
            return None
        return self._progress(payout)

    async def get_teacher_summary(self, teacher_id: int) -> TeacherPayoutSummary:
        """Progress across all of a teacher's payouts, grouped by unit type."""
        payouts = await self.repository.find_by_teacher(teacher_id)

        groups: Dict[TeacherPaymentUnit, List[TeacherPayoutRecord]] = {}
        for payout in payouts:
            groups.setdefault(payout.unit_type, []).append(payout)

        by_unit_type = []
        for unit_type in TeacherPaymentUnit:
            records = groups.get(unit_type)
            if not records:
                continue
            total, paid = self._totals(records)
            by_unit_type.append(
                UnitTypeSummary(
                    unit_type=unit_type,
                    payout_count=len(records),
                    total_amount=total.amount,
                    total_paid=paid.amount,
                    remaining=total.subtract(paid).amount,
                    progress_percent=progress_percent(paid, total),
                )
            )

        total, paid = self._totals(payouts)
        return TeacherPayoutSummary(
            teacher_id=teacher_id,
            payout_count=len(payouts),
            total_amount=total.amount,
            total_paid=paid.amount,
            remaining=total.subtract(paid).amount,
            progress_percent=progress_percent(paid, total),
            by_unit_type=by_unit_type,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _validate_new_payout(
        self,
        scope: PayoutScope,
        unit_type: TeacherPaymentUnit,
        unit_price: Money,
        unit_count: Decimal,
    ) -> None:
        if unit_price.is_negative():
            raise InvalidPayoutAmount(unit_price.amount)
        if unit_count < 0:
            raise InvalidPayoutAmount(unit_count)
        if unit_type in SINGLE_UNIT_TYPES and unit_count != 1:
            raise ValueError(f"{unit_type.value} payouts have exactly one unit, got {unit_count}")
        if unit_type == TeacherPaymentUnit.MONTH and (scope.month is None or scope.year is None):
            raise ValueError("MONTH payouts need month and year")

    async def _insert_payout(
        self,
        scope: PayoutScope,
        unit_type: TeacherPaymentUnit,
        unit_price: Money,
        unit_count: Decimal,
        actor: Actor,
        idempotency_key: Optional[str],
    ) -> TeacherPayoutRecord:
        initial_status = (
            PayoutStatus.INSTALLMENT
            if unit_type == TeacherPaymentUnit.CLASS
            else PayoutStatus.PENDING
        )
        payout = TeacherPayoutRecord(
            idempotency_key=idempotency_key,
            teacher_id=scope.teacher_id,
            class_id=scope.class_id,
            session_id=scope.session_id,
            month=scope.month if unit_type == TeacherPaymentUnit.MONTH else None,
            year=scope.year if unit_type == TeacherPaymentUnit.MONTH else None,
            unit_type=unit_type,
            unit_price=unit_price,
            unit_count=unit_count,
            total_paid=Money.zero(),
            status=initial_status,
            branch_id=scope.branch_id,
            center_id=scope.center_id,
        )
        payout = await self.repository.create(payout)

        await log_audit(
            self.db,
            action_type="CREATE",
            entity_type=AUDIT_ENTITY,
            entity_id=payout.id,
            entity_name=self._entity_name(payout),
            description=f"Payout created: {unit_count} x {unit_price} = {payout.total_amount}",
            actor=actor,
            changes={"after": _snapshot(payout)},
        )
        return payout

    async def _apply_installment(
        self,
        payout: TeacherPayoutRecord,
        amount: Money,
        payment_method: PaymentMethod,
        actor: Actor,
    ) -> TeacherPayoutRecord:
        if payout.unit_type != TeacherPaymentUnit.CLASS:
            raise InvalidPayoutType(
                payout.id, payout.unit_type.value, TeacherPaymentUnit.CLASS.value
            )

        if PayoutStatus.INSTALLMENT not in VALID_TRANSITIONS[payout.status]:
            raise PayoutInvalidStatusTransition(
                payout.id, payout.status.value, PayoutStatus.INSTALLMENT.value
            )

        if not amount.is_positive():
            raise InvalidPayoutAmount(amount.amount, payout.id)

        total = payout.total_amount
        if amount.greater_than(payout.remaining):
            raise PayoutAmountExceedsRemaining(
                payout.id, amount.amount, total.amount, payout.total_paid.amount
            )

        before = _snapshot(payout)
        payment = await self._execute_payment(payout, amount, payment_method, actor)

        payout.total_paid = payout.total_paid.add(amount)
        payout.last_payment_amount = amount
        payout.payment_id = payment.payment_id
        payout.payment_method = payment_method
        payout.status = (
            PayoutStatus.PAID
            if payout.total_paid == total
            else PayoutStatus.INSTALLMENT
        )
        await self.repository.save(payout)

        await log_audit(
            self.db,
            action_type="INSTALLMENT",
            entity_type=AUDIT_ENTITY,
            entity_id=payout.id,
            entity_name=self._entity_name(payout),
            description=(
                f"Installment {amount} paid ({payment_method.value}), "
                f"{payout.total_paid}/{total}"
            ),
            actor=actor,
            changes={"before": before, "after": _snapshot(payout)},
        )
        return payout

    async def _execute_payment(
        self,
        payout: TeacherPayoutRecord,
        amount: Money,
        payment_method: PaymentMethod,
        actor: Actor,
    ) -> PaymentResult:
        request = ExecutePaymentRequest(
            amount=amount,
            sender_id=payout.branch_id,
            sender_type=WalletOwnerType.BRANCH,
            receiver_id=payout.teacher_id,
            receiver_type=WalletOwnerType.TEACHER,
            reason=PAYMENT_REASONS[payout.unit_type],
            payment_method=payment_method,
            reference_id=str(payout.id),
        )
        return await self.payment_executor.execute(request, actor)

    async def _get_for_update(self, payout_id: int) -> TeacherPayoutRecord:
        payout = await self.repository.find_by_id(payout_id, for_update=True)
        if payout is None:
            raise PayoutNotFound(payout_id)
        return payout

    def _progress(self, payout: TeacherPayoutRecord) -> PayoutProgress:
        total = payout.total_amount
        return PayoutProgress(
            payout_id=payout.id,
            unit_type=payout.unit_type,
            total_amount=total.amount,
            total_paid=payout.total_paid.amount,
            remaining=payout.remaining.amount,
            progress_percent=progress_percent(payout.total_paid, total),
            last_payment=payout.last_payment_amount.amount if payout.last_payment_amount else None,
            status=payout.status,
        )

    @staticmethod
    def _totals(payouts: List[TeacherPayoutRecord]) -> Tuple[Money, Money]:
        total = Money.zero()
        paid = Money.zero()
        for payout in payouts:
            total = total.add(payout.total_amount)
            paid = paid.add(payout.total_paid)
        return total, paid

    @staticmethod
    def _entity_name(payout: TeacherPayoutRecord) -> str:
        return f"{payout.unit_type.value} payout, class {payout.class_id}"
