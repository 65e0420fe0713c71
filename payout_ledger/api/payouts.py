"""Teacher payout API endpoints."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict

from payout_ledger.api.dependencies import CurrentActor, PayoutService
from payout_ledger.models import PaymentMethod, PayoutStatus, TeacherPaymentUnit, TeacherPayoutRecord
from payout_ledger.services.payout_repository import PayoutFilters
from payout_ledger.services.payout_service import PayoutProgress, TeacherPayoutSummary

router = APIRouter(prefix="/api/payouts/teachers", tags=["payouts"])


# === PYDANTIC MODELS ===

class PayoutResponse(BaseModel):
    """Response model for a payout record."""
    id: int
    idempotency_key: Optional[str] = None
    teacher_id: int
    class_id: int
    session_id: Optional[int] = None
    month: Optional[int] = None
    year: Optional[int] = None
    unit_type: TeacherPaymentUnit
    unit_price: Decimal
    unit_count: Decimal
    total_amount: Decimal
    total_paid: Decimal
    remaining: Decimal
    last_payment_amount: Optional[Decimal] = None
    status: PayoutStatus
    payment_method: Optional[PaymentMethod] = None
    payment_id: Optional[int] = None
    branch_id: int
    center_id: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, payout: TeacherPayoutRecord) -> "PayoutResponse":
        return cls(
            id=payout.id,
            idempotency_key=payout.idempotency_key,
            teacher_id=payout.teacher_id,
            class_id=payout.class_id,
            session_id=payout.session_id,
            month=payout.month,
            year=payout.year,
            unit_type=payout.unit_type,
            unit_price=payout.unit_price.amount,
            unit_count=payout.unit_count,
            total_amount=payout.total_amount.amount,
            total_paid=payout.total_paid.amount,
            remaining=payout.remaining.amount,
            last_payment_amount=(
                payout.last_payment_amount.amount if payout.last_payment_amount else None
            ),
            status=payout.status,
            payment_method=payout.payment_method,
            payment_id=payout.payment_id,
            branch_id=payout.branch_id,
            center_id=payout.center_id,
            created_at=payout.created_at,
            updated_at=payout.updated_at,
        )


class PayoutListResponse(BaseModel):
    """Response model for payout list with pagination."""
    items: List[PayoutResponse]
    total: int
    limit: int
    offset: int


class AuditLogResponse(BaseModel):
    """Response model for one audit entry of a payout."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    timestamp: datetime
    user_type: str
    user_id: Optional[int] = None
    user_name: str
    action_type: str
    description: str
    changes_json: Optional[dict] = None


class AuditLogListResponse(BaseModel):
    """Response model for a payout's audit trail with pagination."""
    items: List[AuditLogResponse]
    total: int
    limit: int
    offset: int


class PayoutStatusUpdateRequest(BaseModel):
    """Request model for approving and paying a payout."""
    status: PayoutStatus
    payment_method: PaymentMethod


class InstallmentRequest(BaseModel):
    """Request model for paying an installment on a class payout."""
    amount: Decimal
    payment_method: PaymentMethod
    teacher_id: Optional[int] = None


# === ENDPOINTS ===

@router.get("", response_model=PayoutListResponse)
async def list_payouts(
    service: PayoutService,
    teacher_id: Optional[int] = None,
    class_id: Optional[int] = None,
    payout_status: Optional[PayoutStatus] = Query(None, alias="status"),
    unit_type: Optional[TeacherPaymentUnit] = None,
    date_from: Optional[datetime] = Query(None, description="Created from"),
    date_to: Optional[datetime] = Query(None, description="Created until"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """List payouts with filters and pagination."""
    filters = PayoutFilters(
        teacher_id=teacher_id,
        class_id=class_id,
        status=payout_status,
        unit_type=unit_type,
        date_from=date_from,
        date_to=date_to,
    )
    records, total = await service.list_payouts(filters, limit=limit, offset=offset)
    return PayoutListResponse(
        items=[PayoutResponse.from_record(record) for record in records],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/classes/{class_id}/progress", response_model=PayoutProgress)
async def get_class_progress(class_id: int, service: PayoutService):
    """Installment progress of a class payout."""
    progress = await service.get_class_progress(class_id)
    if progress is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No class payout found for class {class_id}",
        )
    return progress


@router.patch("/classes/{class_id}/pay-installment", response_model=PayoutResponse)
async def pay_class_installment(
    class_id: int,
    request: InstallmentRequest,
    service: PayoutService,
    actor: CurrentActor,
):
    """Pay an installment on the class payout."""
    payout = await service.pay_class_installment(
        class_id,
        request.amount,
        request.payment_method,
        actor,
        teacher_id=request.teacher_id,
    )
    return PayoutResponse.from_record(payout)


@router.get("/{teacher_id}/progress/summary", response_model=TeacherPayoutSummary)
async def get_teacher_summary(teacher_id: int, service: PayoutService):
    """Payout progress across all of a teacher's payouts."""
    return await service.get_teacher_summary(teacher_id)


@router.get("/{payout_id}", response_model=PayoutResponse)
async def get_payout(payout_id: int, service: PayoutService):
    """Get a payout by ID."""
    payout = await service.get_payout(payout_id)
    return PayoutResponse.from_record(payout)


@router.patch("/{payout_id}/status", response_model=PayoutResponse)
async def update_payout_status(
    payout_id: int,
    request: PayoutStatusUpdateRequest,
    service: PayoutService,
    actor: CurrentActor,
):
    """Approve a payout and pay the outstanding amount."""
    payout = await service.approve_and_pay(
        payout_id,
        request.payment_method,
        actor,
        target_status=request.status,
    )
    return PayoutResponse.from_record(payout)


@router.get("/{payout_id}/audit", response_model=AuditLogListResponse)
async def get_payout_audit(
    payout_id: int,
    service: PayoutService,
    action_type: Optional[str] = Query(None, description="CREATE, INSTALLMENT or PAY"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """Audit trail of a payout, newest first."""
    logs, total = await service.get_payout_history(
        payout_id, action_type=action_type, limit=limit, offset=offset
    )
    return AuditLogListResponse(
        items=[AuditLogResponse.model_validate(log) for log in logs],
        total=total,
        limit=limit,
        offset=offset,
    )
