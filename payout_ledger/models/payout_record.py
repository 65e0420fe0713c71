"""Teacher payout record model."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payout_ledger.core.database import Base
from payout_ledger.models.payment import PaymentMethod
from payout_ledger.models.payment_strategy import TeacherPaymentUnit
from payout_ledger.utils.money import Money, MoneyType


class PayoutStatus(str, Enum):
    """Payout status enum."""

    PENDING = "PENDING"  # Earned, waiting for approval
    INSTALLMENT = "INSTALLMENT"  # CLASS payout being paid in parts
    PAID = "PAID"  # Terminal


class TeacherPayoutRecord(Base):
    """Money owed and paid to a teacher for one unit of work."""

    __tablename__ = "teacher_payout_records"
    __table_args__ = (
        UniqueConstraint(
            "teacher_id", "class_id", "unit_type", "month", "year",
            name="uq_payout_teacher_class_period",
        ),
        Index(
            "uq_payout_class_per_teacher",
            "class_id", "teacher_id",
            unique=True,
            postgresql_where=text("unit_type = 'CLASS'"),
            sqlite_where=text("unit_type = 'CLASS'"),
        ),
        Index("idx_payout_teacher_status", "teacher_id", "status"),
    )
    # Server timestamps are loaded on flush
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    idempotency_key: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, unique=True
    )

    # Scope
    teacher_id: Mapped[int] = mapped_column(ForeignKey("teachers.id"), nullable=False)
    class_id: Mapped[int] = mapped_column(
        ForeignKey("classes.id"), nullable=False, index=True
    )
    session_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("class_sessions.id"), nullable=True
    )
    month: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Pricing
    unit_type: Mapped[TeacherPaymentUnit] = mapped_column(
        SQLEnum(TeacherPaymentUnit), nullable=False
    )
    unit_price: Mapped[Money] = mapped_column(
        MoneyType, nullable=False
    )  # Total amount for CLASS payouts
    unit_count: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    # Progress
    total_paid: Mapped[Money] = mapped_column(
        MoneyType, nullable=False, default=Money.zero
    )
    last_payment_amount: Mapped[Optional[Money]] = mapped_column(MoneyType, nullable=True)
    status: Mapped[PayoutStatus] = mapped_column(
        SQLEnum(PayoutStatus), default=PayoutStatus.PENDING, nullable=False, index=True
    )

    # Routing (denormalized from the class)
    branch_id: Mapped[int] = mapped_column(Integer, nullable=False)
    center_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # Last successful payment
    payment_method: Mapped[Optional[PaymentMethod]] = mapped_column(
        SQLEnum(PaymentMethod), nullable=True
    )
    payment_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    teacher: Mapped["Teacher"] = relationship(
        "Teacher", back_populates="payout_records"
    )
    teaching_class: Mapped["TeachingClass"] = relationship("TeachingClass")

    @property
    def total_amount(self) -> Money:
        """Full amount owed: unit price for CLASS, price times count otherwise."""
        if self.unit_type == TeacherPaymentUnit.CLASS:
            return self.unit_price
        return self.unit_price.multiply(self.unit_count)

    @property
    def remaining(self) -> Money:
        return self.total_amount.subtract(self.total_paid)

    @property
    def is_paid(self) -> bool:
        return self.status == PayoutStatus.PAID

    def __repr__(self) -> str:
        return (
            f"<TeacherPayoutRecord(id={self.id}, teacher_id={self.teacher_id}, "
            f"unit_type={self.unit_type}, total_paid={self.total_paid}, "
            f"status={self.status})>"
        )
