"""Teacher model."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payout_ledger.core.database import Base


class Teacher(Base):
    """Teacher who receives payouts."""

    __tablename__ = "teachers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    classes: Mapped[list["TeachingClass"]] = relationship(
        "TeachingClass", back_populates="teacher"
    )
    payout_records: Mapped[list["TeacherPayoutRecord"]] = relationship(
        "TeacherPayoutRecord", back_populates="teacher"
    )

    def __repr__(self) -> str:
        return f"<Teacher(id={self.id}, name='{self.full_name}', active={self.active})>"
