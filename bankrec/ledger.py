"""
Ledger gateway - the engine's only window onto the general ledger.

The engine may list unmatched journal line items of a ledger account and
set/clear their matched flag. It never creates, edits or deletes ledger data.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import List, Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .exceptions import DependencyError
from .models import JournalLineItemRecord
from .utils.money import from_cents

logger = structlog.get_logger()

POSTED = "Posted"


@dataclass(frozen=True)
class LedgerLineItem:
    """Read-only view of a journal line item."""
    id: str
    account_id: str
    entry_date: date
    description: str
    reference: str
    debit_cents: int
    credit_cents: int
    is_matched: bool

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "date": self.entry_date.isoformat(),
            "description": self.description,
            "reference": self.reference,
            "debit": from_cents(self.debit_cents),
            "credit": from_cents(self.credit_cents),
            "is_matched": self.is_matched,
        }


class LedgerGateway(ABC):
    """Contract the reconciliation engine consumes from the ledger."""

    @abstractmethod
    def list_unmatched(
        self,
        account_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[LedgerLineItem]:
        """Unmatched posted line items of a ledger account, ordered by (date, id)."""

    @abstractmethod
    def get_item(self, item_id: str) -> Optional[LedgerLineItem]:
        """A single line item, or None."""

    @abstractmethod
    def set_matched(self, item_id: str, matched: bool) -> bool:
        """
        Flip the matched flag only if it currently holds the opposite value.

        Returns True when the flag changed, False when the item was already
        in the requested state (or does not exist).
        """


class SqlLedgerGateway(LedgerGateway):
    """
    Ledger gateway over the shared database.

    Runs inside the caller's session, so flag changes commit or roll back
    together with the match rows that motivated them.
    """

    def __init__(self, session: Session):
        self.session = session

    def list_unmatched(
        self,
        account_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[LedgerLineItem]:
        query = select(JournalLineItemRecord).where(
            JournalLineItemRecord.account_id == account_id,
            JournalLineItemRecord.is_matched.is_(False),
            JournalLineItemRecord.status == POSTED,
        )
        if start_date:
            query = query.where(JournalLineItemRecord.entry_date >= start_date)
        if end_date:
            query = query.where(JournalLineItemRecord.entry_date <= end_date)
        query = query.order_by(JournalLineItemRecord.entry_date, JournalLineItemRecord.id)

        try:
            records = self.session.scalars(query).all()
        except SQLAlchemyError as e:
            logger.error("Ledger query failed", account_id=account_id, error=str(e))
            raise DependencyError(
                "Ledger is unavailable",
                detail=str(e),
                context={"account_id": account_id},
            ) from e

        return [self._to_item(r) for r in records]

    def get_item(self, item_id: str) -> Optional[LedgerLineItem]:
        try:
            record = self.session.get(JournalLineItemRecord, item_id)
        except SQLAlchemyError as e:
            raise DependencyError("Ledger is unavailable", detail=str(e)) from e
        return self._to_item(record) if record else None

    def set_matched(self, item_id: str, matched: bool) -> bool:
        stmt = (
            update(JournalLineItemRecord)
            .where(
                JournalLineItemRecord.id == item_id,
                JournalLineItemRecord.is_matched == (not matched),
            )
            .values(is_matched=matched)
            .execution_options(synchronize_session="evaluate")
        )
        try:
            result = self.session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error("Ledger flag update failed", item_id=item_id, error=str(e))
            raise DependencyError("Ledger is unavailable", detail=str(e)) from e
        return result.rowcount == 1

    @staticmethod
    def _to_item(record: JournalLineItemRecord) -> LedgerLineItem:
        return LedgerLineItem(
            id=record.id,
            account_id=record.account_id,
            entry_date=record.entry_date,
            description=record.description or "",
            reference=record.reference or "",
            debit_cents=record.debit_cents or 0,
            credit_cents=record.credit_cents or 0,
            is_matched=record.is_matched,
        )
