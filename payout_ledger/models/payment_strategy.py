"""Teacher payment strategy model."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Enum as SQLEnum, ForeignKey, Integer, Numeric, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payout_ledger.core.database import Base
from payout_ledger.models.payment import PaymentMethod


class TeacherPaymentUnit(str, Enum):
    """Billing granularity for teacher compensation."""

    SESSION = "SESSION"
    HOUR = "HOUR"
    STUDENT = "STUDENT"
    MONTH = "MONTH"
    CLASS = "CLASS"


# Units paid per finished session
SESSION_BASED_UNITS = frozenset(
    {TeacherPaymentUnit.SESSION, TeacherPaymentUnit.HOUR, TeacherPaymentUnit.STUDENT}
)


class TeacherPaymentStrategy(Base):
    """How the teacher of a class is paid."""

    __tablename__ = "teacher_payment_strategies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    class_id: Mapped[int] = mapped_column(
        ForeignKey("classes.id"), nullable=False, unique=True
    )
    per: Mapped[TeacherPaymentUnit] = mapped_column(
        SQLEnum(TeacherPaymentUnit), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False
    )  # Per unit, or the whole contract for CLASS
    initial_payment_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2), nullable=True
    )  # CLASS only, paid when the class is created
    initial_payment_method: Mapped[Optional[PaymentMethod]] = mapped_column(
        SQLEnum(PaymentMethod), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    teaching_class: Mapped["TeachingClass"] = relationship(
        "TeachingClass", back_populates="payment_strategy"
    )

    def __repr__(self) -> str:
        return (
            f"<TeacherPaymentStrategy(id={self.id}, class_id={self.class_id}, "
            f"per={self.per}, amount={self.amount})>"
        )
