"""Teaching class model."""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Date, DateTime, Enum as SQLEnum, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payout_ledger.core.database import Base


class ClassStatus(str, Enum):
    """Class lifecycle status enum."""

    NOT_STARTED = "NOT_STARTED"
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    FINISHED = "FINISHED"
    CANCELED = "CANCELED"


# Statuses that close a class for monthly billing
FINISHED_CLASS_STATUSES = frozenset({ClassStatus.FINISHED, ClassStatus.CANCELED})


class TeachingClass(Base):
    """A class taught by one teacher at a branch."""

    __tablename__ = "classes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    teacher_id: Mapped[int] = mapped_column(ForeignKey("teachers.id"), nullable=False)
    branch_id: Mapped[int] = mapped_column(Integer, nullable=False)
    center_id: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[ClassStatus] = mapped_column(
        SQLEnum(ClassStatus), default=ClassStatus.NOT_STARTED, nullable=False
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    teacher: Mapped["Teacher"] = relationship("Teacher", back_populates="classes")
    payment_strategy: Mapped[Optional["TeacherPaymentStrategy"]] = relationship(
        "TeacherPaymentStrategy", back_populates="teaching_class", uselist=False
    )
    sessions: Mapped[list["ClassSession"]] = relationship(
        "ClassSession", back_populates="teaching_class"
    )

    def __repr__(self) -> str:
        return (
            f"<TeachingClass(id={self.id}, name='{self.name}', "
            f"teacher_id={self.teacher_id}, status={self.status})>"
        )
