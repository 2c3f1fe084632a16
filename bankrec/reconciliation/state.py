"""Shared lookups and state guards for reconciliation operations."""

from sqlalchemy.orm import Session

from ..exceptions import NotFoundError, ReconciliationClosedError
from ..models import ReconciliationRecord


def get_reconciliation(session: Session, reconciliation_id: str) -> ReconciliationRecord:
    reconciliation = session.get(ReconciliationRecord, reconciliation_id)
    if reconciliation is None:
        raise NotFoundError("Reconciliation", reconciliation_id)
    return reconciliation


def ensure_open(reconciliation: ReconciliationRecord) -> None:
    """Completed reconciliations are frozen."""
    if reconciliation.is_closed:
        raise ReconciliationClosedError(reconciliation.id)


def get_open_reconciliation(session: Session, reconciliation_id: str) -> ReconciliationRecord:
    reconciliation = get_reconciliation(session, reconciliation_id)
    ensure_open(reconciliation)
    return reconciliation
