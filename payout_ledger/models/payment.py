"""Payment model written by the database payment executor."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Enum as SQLEnum, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from payout_ledger.core.database import Base
from payout_ledger.utils.money import Money, MoneyType


class PaymentMethod(str, Enum):
    """Cash source used to pay a teacher."""

    CASH = "CASH"  # Branch cashbox
    WALLET = "WALLET"  # Branch wallet


class WalletOwnerType(str, Enum):
    """Kind of party on either side of a payment."""

    BRANCH = "BRANCH"
    TEACHER = "TEACHER"


class PaymentReason(str, Enum):
    """Why money moved."""

    TEACHER_SESSION_PAYOUT = "TEACHER_SESSION_PAYOUT"
    TEACHER_HOUR_PAYOUT = "TEACHER_HOUR_PAYOUT"
    TEACHER_STUDENT_PAYOUT = "TEACHER_STUDENT_PAYOUT"
    TEACHER_MONTHLY_PAYOUT = "TEACHER_MONTHLY_PAYOUT"
    TEACHER_CLASS_PAYOUT = "TEACHER_CLASS_PAYOUT"


class Payment(Base):
    """Completed money movement from a branch to a teacher."""

    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    amount: Mapped[Money] = mapped_column(MoneyType, nullable=False)
    sender_id: Mapped[int] = mapped_column(Integer, nullable=False)
    sender_type: Mapped[WalletOwnerType] = mapped_column(
        SQLEnum(WalletOwnerType, name="payment_sender_type"), nullable=False
    )
    receiver_id: Mapped[int] = mapped_column(Integer, nullable=False)
    receiver_type: Mapped[WalletOwnerType] = mapped_column(
        SQLEnum(WalletOwnerType, name="payment_receiver_type"), nullable=False
    )
    reason: Mapped[PaymentReason] = mapped_column(SQLEnum(PaymentReason), nullable=False)
    payment_method: Mapped[PaymentMethod] = mapped_column(
        SQLEnum(PaymentMethod), nullable=False
    )
    reference_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    # Who requested the movement
    actor_type: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, amount={self.amount}, reason={self.reason}, "
            f"reference_id='{self.reference_id}')>"
        )
