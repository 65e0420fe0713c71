"""Boundary to the payment subsystem that actually moves money."""

import logging
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from payout_ledger.core.actor import Actor
from payout_ledger.core.exceptions import PaymentExecutionError
from payout_ledger.models import Payment, PaymentMethod, PaymentReason, WalletOwnerType
from payout_ledger.utils.money import Money

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutePaymentRequest:
    """One branch-to-teacher transfer."""

    amount: Money
    sender_id: int
    sender_type: WalletOwnerType
    receiver_id: int
    receiver_type: WalletOwnerType
    reason: PaymentReason
    payment_method: PaymentMethod
    reference_id: str


@dataclass(frozen=True)
class PaymentResult:
    payment_id: int


class PaymentExecutor(Protocol):
    """
    Executes a transfer atomically: returns a payment id or raises.

    Implementations run inside the ledger's open transaction; anything they
    write must go through the ledger session so a later rollback undoes it.
    """

    async def execute(self, request: ExecutePaymentRequest, actor: Actor) -> PaymentResult:
        ...


class DatabasePaymentExecutor:
    """Records the transfer as a Payment row in the caller's session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def execute(self, request: ExecutePaymentRequest, actor: Actor) -> PaymentResult:
        if not request.amount.is_positive():
            raise PaymentExecutionError(
                f"Payment amount must be positive, got {request.amount}",
                reference_id=request.reference_id,
            )

        payment = Payment(
            amount=request.amount,
            sender_id=request.sender_id,
            sender_type=request.sender_type,
            receiver_id=request.receiver_id,
            receiver_type=request.receiver_type,
            reason=request.reason,
            payment_method=request.payment_method,
            reference_id=request.reference_id,
            actor_type=actor.actor_type.value,
            actor_id=actor.user_id,
        )
        self.db.add(payment)
        await self.db.flush()

        logger.info(
            f"Payment {payment.id}: {request.amount} from {request.sender_type.value} "
            f"{request.sender_id} to {request.receiver_type.value} {request.receiver_id} "
            f"({request.reason.value}, ref {request.reference_id})"
        )
        return PaymentResult(payment_id=payment.id)
