"""Attendance model."""

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SQLEnum, ForeignKey, Integer, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payout_ledger.core.database import Base


class AttendanceStatus(str, Enum):
    """Attendance status enum."""

    PRESENT = "PRESENT"
    LATE = "LATE"
    ABSENT = "ABSENT"
    EXCUSED = "EXCUSED"


# Statuses counted as attended for per-student payouts
ATTENDED_STATUSES = (AttendanceStatus.PRESENT, AttendanceStatus.LATE)


class SessionAttendance(Base):
    """Attendance of one student at one session."""

    __tablename__ = "attendance"
    __table_args__ = (
        UniqueConstraint(
            "session_id", "student_id",
            name="attendance_session_student_unique"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    session_id: Mapped[int] = mapped_column(
        ForeignKey("class_sessions.id"), nullable=False
    )
    student_id: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[AttendanceStatus] = mapped_column(
        SQLEnum(AttendanceStatus), nullable=False
    )
    marked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    session: Mapped["ClassSession"] = relationship(
        "ClassSession", back_populates="attendance_records"
    )

    def __repr__(self) -> str:
        return (
            f"<SessionAttendance(id={self.id}, session_id={self.session_id}, "
            f"student_id={self.student_id}, status={self.status})>"
        )
