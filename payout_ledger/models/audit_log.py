"""Audit log model."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, JSON, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from payout_ledger.core.database import Base


class AuditLog(Base):
    """Audit trail of ledger mutations."""

    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    # Who made the change
    user_type: Mapped[str] = mapped_column(String(50), nullable=False, default="system")  # 'system', 'user'
    user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    user_name: Mapped[str] = mapped_column(String(200), nullable=False)

    # What happened
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)  # 'CREATE', 'INSTALLMENT', 'PAY'
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    entity_name: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Details
    description: Mapped[str] = mapped_column(Text, nullable=False)
    changes_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)  # {"before": {...}, "after": {...}}

    __table_args__ = (
        Index("idx_audit_timestamp", "timestamp"),
        Index("idx_audit_entity_type_id", "entity_type", "entity_id"),
        Index("idx_audit_action_entity", "action_type", "entity_type"),
    )

    def __repr__(self) -> str:
        return (
            f"<AuditLog(id={self.id}, user='{self.user_name}', "
            f"action='{self.action_type}', entity='{self.entity_type}', "
            f"entity_id={self.entity_id}, timestamp={self.timestamp})>"
        )
