"""Class session model."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payout_ledger.core.database import Base


class ClassSession(Base):
    """A single taught session of a class."""

    __tablename__ = "class_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    class_id: Mapped[int] = mapped_column(ForeignKey("classes.id"), nullable=False)
    teacher_id: Mapped[int] = mapped_column(ForeignKey("teachers.id"), nullable=False)
    branch_id: Mapped[int] = mapped_column(Integer, nullable=False)
    center_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # All UTC
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    teaching_class: Mapped["TeachingClass"] = relationship(
        "TeachingClass", back_populates="sessions"
    )
    attendance_records: Mapped[list["SessionAttendance"]] = relationship(
        "SessionAttendance", back_populates="session"
    )

    def __repr__(self) -> str:
        return (
            f"<ClassSession(id={self.id}, class_id={self.class_id}, "
            f"start={self.start_time}, end={self.end_time})>"
        )
