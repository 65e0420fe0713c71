"""Database models for the teacher payout ledger."""

from payout_ledger.models.attendance import ATTENDED_STATUSES, AttendanceStatus, SessionAttendance
from payout_ledger.models.audit_log import AuditLog
from payout_ledger.models.class_session import ClassSession
from payout_ledger.models.payment import Payment, PaymentMethod, PaymentReason, WalletOwnerType
from payout_ledger.models.payment_strategy import (
    SESSION_BASED_UNITS,
    TeacherPaymentStrategy,
    TeacherPaymentUnit,
)
from payout_ledger.models.payout_record import PayoutStatus, TeacherPayoutRecord
from payout_ledger.models.teacher import Teacher
from payout_ledger.models.teaching_class import FINISHED_CLASS_STATUSES, ClassStatus, TeachingClass

__all__ = [
    "Teacher",
    "TeachingClass",
    "ClassStatus",
    "FINISHED_CLASS_STATUSES",
    "TeacherPaymentStrategy",
    "TeacherPaymentUnit",
    "SESSION_BASED_UNITS",
    "ClassSession",
    "SessionAttendance",
    "AttendanceStatus",
    "ATTENDED_STATUSES",
    "Payment",
    "PaymentMethod",
    "PaymentReason",
    "WalletOwnerType",
    "TeacherPayoutRecord",
    "PayoutStatus",
    "AuditLog",
]
