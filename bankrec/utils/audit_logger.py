"""
Audit logging for reconciliation decisions.
"""

from typing import Any, Dict, List, Optional, Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import AuditAction, AuditRecord

logger = structlog.get_logger()


class AuditLogger:
    """
    Logger for the audit trail of reconciliation decisions.

    Entries are written in the caller's unit of work, so an operation that
    rolls back leaves no audit record behind.
    """

    def __init__(self, session: Session):
        self.session = session

    def log(
        self,
        action: AuditAction,
        message: str,
        reconciliation_id: Optional[str] = None,
        entity_ids: Sequence[str] = (),
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditRecord:
        """Add an audit entry."""
        record = AuditRecord(
            action=action,
            message=message,
            reconciliation_id=reconciliation_id,
            entity_ids=list(entity_ids),
            details=details or {},
        )
        self.session.add(record)

        # Also log to structlog
        logger.info(
            message,
            action=action.value,
            reconciliation_id=reconciliation_id,
            entity_ids=list(entity_ids),
        )
        return record

    def get_entries(
        self,
        reconciliation_id: Optional[str] = None,
        action_filter: Optional[AuditAction] = None,
    ) -> List[AuditRecord]:
        """Get filtered audit entries, oldest first."""
        query = select(AuditRecord)
        if reconciliation_id:
            query = query.where(AuditRecord.reconciliation_id == reconciliation_id)
        if action_filter:
            query = query.where(AuditRecord.action == action_filter)
        query = query.order_by(AuditRecord.timestamp, AuditRecord.id)
        return list(self.session.scalars(query))
