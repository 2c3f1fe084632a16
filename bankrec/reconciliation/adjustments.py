"""
Adjustment ledger - manual balance corrections attached to a reconciliation.

Adjustments can only be added, edited or removed while the reconciliation
is in progress.
"""

from datetime import date
from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..exceptions import ErrorCode, NotFoundError, ValidationError
from ..models import (
    AdjustmentRecord,
    AdjustmentStatus,
    AdjustmentType,
    AuditAction,
)
from ..utils.audit_logger import AuditLogger
from ..utils.money import to_cents
from .state import ensure_open, get_open_reconciliation, get_reconciliation


def _parse_type(value: Any) -> AdjustmentType:
    try:
        return AdjustmentType(value)
    except ValueError:
        raise ValidationError(
            "Invalid adjustment type",
            context={"adjustment_type": str(value), "allowed": [t.value for t in AdjustmentType]},
        ) from None


def _parse_status(value: Any) -> AdjustmentStatus:
    try:
        return AdjustmentStatus(value)
    except ValueError:
        raise ValidationError(
            "Invalid adjustment status",
            context={"status": str(value), "allowed": [s.value for s in AdjustmentStatus]},
        ) from None


def _parse_amount(value: Any) -> int:
    if value is None:
        raise ValidationError("amount is required", code=ErrorCode.MISSING_FIELD)
    try:
        return to_cents(value)
    except ValueError:
        raise ValidationError("Invalid amount", context={"amount": str(value)}) from None


class AdjustmentLedger:
    """Add, edit, remove and list adjustments of one reconciliation."""

    def __init__(self, session: Session):
        self.session = session
        self.audit = AuditLogger(session)

    def add(
        self,
        reconciliation_id: str,
        adjustment_date: date,
        description: str,
        adjustment_type: Any,
        amount: Any,
        status: Any = AdjustmentStatus.PENDING,
    ) -> AdjustmentRecord:
        reconciliation = get_open_reconciliation(self.session, reconciliation_id)
        if adjustment_date is None:
            raise ValidationError("adjustment_date is required", code=ErrorCode.MISSING_FIELD)
        if not description or not description.strip():
            raise ValidationError("description is required", code=ErrorCode.MISSING_FIELD)

        adjustment = AdjustmentRecord(
            reconciliation_id=reconciliation.id,
            adjustment_date=adjustment_date,
            description=description.strip(),
            adjustment_type=_parse_type(adjustment_type),
            amount_cents=_parse_amount(amount),
            status=_parse_status(status),
        )
        reconciliation.adjustments.append(adjustment)
        self.session.flush()

        self.audit.log(
            AuditAction.ADJUSTMENT_ADDED,
            "Adjustment added",
            reconciliation_id=reconciliation.id,
            entity_ids=[adjustment.id],
            details={
                "adjustment_type": adjustment.adjustment_type.value,
                "amount_cents": adjustment.amount_cents,
            },
        )
        return adjustment

    def get(self, adjustment_id: str) -> AdjustmentRecord:
        adjustment = self.session.get(AdjustmentRecord, adjustment_id)
        if adjustment is None:
            raise NotFoundError("Adjustment", adjustment_id)
        return adjustment

    def update(
        self,
        adjustment_id: str,
        adjustment_date: Optional[date] = None,
        description: Optional[str] = None,
        adjustment_type: Any = None,
        amount: Any = None,
        status: Any = None,
    ) -> AdjustmentRecord:
        adjustment = self.get(adjustment_id)
        ensure_open(adjustment.reconciliation)

        if adjustment_date is not None:
            adjustment.adjustment_date = adjustment_date
        if description is not None:
            if not description.strip():
                raise ValidationError("description cannot be blank")
            adjustment.description = description.strip()
        if adjustment_type is not None:
            adjustment.adjustment_type = _parse_type(adjustment_type)
        if amount is not None:
            adjustment.amount_cents = _parse_amount(amount)
        if status is not None:
            adjustment.status = _parse_status(status)

        self.session.flush()
        self.audit.log(
            AuditAction.ADJUSTMENT_UPDATED,
            "Adjustment updated",
            reconciliation_id=adjustment.reconciliation_id,
            entity_ids=[adjustment.id],
            details={"amount_cents": adjustment.amount_cents, "status": adjustment.status.value},
        )
        return adjustment

    def delete(self, adjustment_id: str) -> None:
        adjustment = self.get(adjustment_id)
        reconciliation = adjustment.reconciliation
        ensure_open(reconciliation)

        reconciliation.adjustments.remove(adjustment)
        self.session.flush()
        self.audit.log(
            AuditAction.ADJUSTMENT_REMOVED,
            "Adjustment removed",
            reconciliation_id=reconciliation.id,
            entity_ids=[adjustment_id],
        )

    def list(self, reconciliation_id: str) -> List[AdjustmentRecord]:
        get_reconciliation(self.session, reconciliation_id)
        query = (
            select(AdjustmentRecord)
            .where(AdjustmentRecord.reconciliation_id == reconciliation_id)
            .order_by(AdjustmentRecord.adjustment_date, AdjustmentRecord.created_at)
        )
        return list(self.session.scalars(query))
