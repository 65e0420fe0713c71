"""
Typed exceptions for the payout ledger.

Every error carries a machine-readable ``code``, the HTTP status the API layer
should answer with, and the structured context (payout id, attempted amount,
current totals) a caller needs to act on it.

    PayoutError
    +-- PayoutNotFound
    +-- InvalidPayoutType
    +-- InvalidPayoutAmount
    +-- PayoutAmountExceedsRemaining
    +-- PayoutInvalidStatusTransition
    +-- PayoutAlreadyExists
    PaymentExecutionError

``PayoutAlreadyExists`` is raised by the record store when an idempotency key
or month scope is already taken. The ledger service converts it into a
successful return of the stored record, so callers of ``create_payout`` never
see it.
"""

from decimal import Decimal
from typing import Any, Dict, Optional


class PayoutError(Exception):
    """Base exception for all payout ledger errors."""

    code: str = "PAYOUT_ERROR"
    http_status: int = 400

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context = context
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for API responses (Decimals become strings)."""
        context = {
            key: str(value) if isinstance(value, Decimal) else value
            for key, value in self.context.items()
        }
        return {"code": self.code, "message": self.message, "context": context}


class PayoutNotFound(PayoutError):
    """Payout record does not exist."""

    code = "PAYOUT_NOT_FOUND"
    http_status = 404

    def __init__(self, payout_id: Optional[int] = None, class_id: Optional[int] = None):
        self.payout_id = payout_id
        self.class_id = class_id
        if class_id is not None and payout_id is None:
            message = f"No class payout found for class {class_id}"
        else:
            message = f"Payout not found: {payout_id}"
        super().__init__(message, payout_id=payout_id, class_id=class_id)


class InvalidPayoutType(PayoutError):
    """Operation is not allowed for the payout's unit type."""

    code = "INVALID_PAYOUT_TYPE"

    def __init__(self, payout_id: int, unit_type: str, expected: str):
        self.payout_id = payout_id
        self.unit_type = unit_type
        super().__init__(
            f"Payout {payout_id} has unit type {unit_type}, expected {expected}",
            payout_id=payout_id,
            unit_type=unit_type,
            expected=expected,
        )


class InvalidPayoutAmount(PayoutError):
    """Amount is zero, negative or otherwise unusable."""

    code = "INVALID_PAYOUT_AMOUNT"

    def __init__(self, amount: Decimal, payout_id: Optional[int] = None):
        self.payout_id = payout_id
        self.amount = amount
        super().__init__(
            f"Invalid payout amount {amount}" + (f" for payout {payout_id}" if payout_id else ""),
            payout_id=payout_id,
            amount=amount,
        )


class PayoutAmountExceedsRemaining(PayoutError):
    """Installment would push total paid above the payout total."""

    code = "PAYOUT_AMOUNT_EXCEEDS_REMAINING"
    http_status = 409

    def __init__(
        self,
        payout_id: int,
        amount: Decimal,
        total_amount: Decimal,
        total_paid: Decimal,
    ):
        self.payout_id = payout_id
        self.amount = amount
        self.total_amount = total_amount
        self.total_paid = total_paid
        self.remaining = total_amount - total_paid
        super().__init__(
            f"Amount {amount} exceeds remaining {self.remaining} on payout {payout_id}",
            payout_id=payout_id,
            amount=amount,
            total_amount=total_amount,
            total_paid=total_paid,
            remaining=self.remaining,
        )


class PayoutInvalidStatusTransition(PayoutError):
    """Illegal status move, including any mutation of a PAID record."""

    code = "PAYOUT_INVALID_STATUS_TRANSITION"
    http_status = 409

    def __init__(self, payout_id: int, current_status: str, target_status: str):
        self.payout_id = payout_id
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            f"Payout {payout_id} cannot move from {current_status} to {target_status}",
            payout_id=payout_id,
            current_status=current_status,
            target_status=target_status,
        )


class PayoutAlreadyExists(PayoutError):
    """A record with the same idempotency key or month scope is stored."""

    code = "PAYOUT_ALREADY_EXISTS"
    http_status = 409

    def __init__(self, idempotency_key: Optional[str] = None, payout_id: Optional[int] = None):
        self.idempotency_key = idempotency_key
        self.payout_id = payout_id
        super().__init__(
            f"Payout already exists (key={idempotency_key}, id={payout_id})",
            idempotency_key=idempotency_key,
            payout_id=payout_id,
        )


class PaymentExecutionError(Exception):
    """Money movement was refused by the payment executor."""

    code = "PAYMENT_EXECUTION_FAILED"

    def __init__(self, message: str, reference_id: Optional[str] = None):
        self.reference_id = reference_id
        super().__init__(message)
