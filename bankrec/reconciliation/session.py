"""
Reconciliation session - lifecycle of one reconciliation.

    InProgress --complete()--> Completed   (terminal)

While in progress, matches and adjustments may be attached and removed.
Completion is gated on a zero difference (within one cent) unless an
explicit override is given; completing marks the statement Reconciled and
records the reconciliation on the bank account.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Optional, Set

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..config import get_settings
from ..exceptions import (
    ConflictError,
    ErrorCode,
    NotFoundError,
    UnbalancedReconciliationError,
    ValidationError,
)
from ..ledger import LedgerGateway, SqlLedgerGateway
from ..models import (
    AdjustmentRecord,
    AuditAction,
    AutoMatchResult,
    BalanceSummary,
    BankAccountRecord,
    BankStatementRecord,
    MatchRecord,
    Page,
    ReconciliationRecord,
    ReconciliationStatus,
    StatementStatus,
    UnmatchedItems,
)
from ..statements.store import paginate
from ..utils.audit_logger import AuditLogger
from ..utils.money import to_cents
from .adjustments import AdjustmentLedger
from .balance import BalanceCalculator
from .matching import MatchEngine
from .state import ensure_open, get_open_reconciliation, get_reconciliation

logger = structlog.get_logger()


@dataclass
class SessionEvent:
    """Notification of a change to a reconciliation."""
    kind: str
    reconciliation_id: str
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class WorkspaceContext:
    """
    Selection state of one reconciliation workspace.

    Created per workspace by the caller and passed to the operations that
    need it; nothing here is persisted.
    """
    reconciliation_id: str
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    selected_transaction_ids: Set[str] = field(default_factory=set)
    selected_journal_item_ids: Set[str] = field(default_factory=set)
    page: int = 1

    def clear_selection(self) -> None:
        self.selected_transaction_ids.clear()
        self.selected_journal_item_ids.clear()


ChangeCallback = Callable[[SessionEvent], None]


def _money(name: str, value: Any) -> int:
    try:
        return to_cents(value)
    except ValueError:
        raise ValidationError(f"Invalid {name}", context={name: str(value)}) from None


class ReconciliationSession:
    """
    Operations on reconciliations within one unit of work.

    Args:
        session: Database session of the current unit of work
        ledger: Ledger gateway (defaults to the SQL gateway on the same session)
        on_change: Optional callback invoked after every state change
    """

    def __init__(
        self,
        session: Session,
        ledger: Optional[LedgerGateway] = None,
        on_change: Optional[ChangeCallback] = None,
    ):
        self.session = session
        self.settings = get_settings()
        self.ledger = ledger or SqlLedgerGateway(session)
        self.matcher = MatchEngine(session, self.ledger)
        self.adjustments = AdjustmentLedger(session)
        self.calculator = BalanceCalculator()
        self.audit = AuditLogger(session)
        self.on_change = on_change

    def _emit(self, kind: str, reconciliation_id: str, **payload: Any) -> None:
        if self.on_change:
            self.on_change(SessionEvent(kind, reconciliation_id, payload))

    # Lifecycle

    def create(
        self,
        bank_statement_id: str,
        book_balance: Any,
        statement_balance: Any = None,
        reconciliation_date: Optional[date] = None,
        notes: str = "",
    ) -> ReconciliationRecord:
        """Open a reconciliation over a processed statement."""
        statement = self.session.get(BankStatementRecord, bank_statement_id)
        if statement is None:
            raise NotFoundError("Bank statement", bank_statement_id)
        if statement.status != StatementStatus.PROCESSED:
            raise ConflictError(
                f"Statement must be {StatementStatus.PROCESSED.value} to reconcile",
                context={"bank_statement_id": bank_statement_id, "status": statement.status.value},
            )
        if book_balance is None:
            raise ValidationError("book_balance is required", code=ErrorCode.MISSING_FIELD)

        reconciliation = ReconciliationRecord(
            bank_account_id=statement.bank_account_id,
            bank_statement_id=statement.id,
            reconciliation_date=reconciliation_date or date.today(),
            start_balance_cents=statement.opening_balance_cents,
            end_balance_cents=statement.closing_balance_cents,
            book_balance_cents=_money("book_balance", book_balance),
            statement_balance_cents=(
                statement.closing_balance_cents
                if statement_balance is None
                else _money("statement_balance", statement_balance)
            ),
            status=ReconciliationStatus.IN_PROGRESS,
            notes=notes or "",
        )
        self.session.add(reconciliation)
        self.session.flush()

        self.audit.log(
            AuditAction.RECONCILIATION_CREATED,
            "Reconciliation created",
            reconciliation_id=reconciliation.id,
            entity_ids=[statement.id],
            details={
                "book_balance_cents": reconciliation.book_balance_cents,
                "statement_balance_cents": reconciliation.statement_balance_cents,
            },
        )
        self._emit("created", reconciliation.id)
        return reconciliation

    def get(self, reconciliation_id: str) -> ReconciliationRecord:
        return get_reconciliation(self.session, reconciliation_id)

    def list(
        self,
        bank_account_id: Optional[str] = None,
        status: Optional[ReconciliationStatus] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> Page:
        """Filtered reconciliations, newest first."""
        query = select(ReconciliationRecord)
        if bank_account_id:
            query = query.where(ReconciliationRecord.bank_account_id == bank_account_id)
        if status:
            query = query.where(ReconciliationRecord.status == ReconciliationStatus(status))
        if start_date:
            query = query.where(ReconciliationRecord.reconciliation_date >= start_date)
        if end_date:
            query = query.where(ReconciliationRecord.reconciliation_date <= end_date)
        query = query.order_by(
            ReconciliationRecord.reconciliation_date.desc(),
            ReconciliationRecord.created_at.desc(),
        )
        return paginate(self.session, query, page, limit)

    def update(
        self,
        reconciliation_id: str,
        book_balance: Any = None,
        statement_balance: Any = None,
        reconciliation_date: Optional[date] = None,
        notes: Optional[str] = None,
        status: Optional[str] = None,
    ) -> ReconciliationRecord:
        """Edit balances, date or notes of an in-progress reconciliation."""
        reconciliation = get_open_reconciliation(self.session, reconciliation_id)
        if status is not None and status != reconciliation.status.value:
            raise ValidationError(
                "Status cannot be changed by update; use complete",
                context={"status": str(status)},
            )

        changed = []
        if book_balance is not None:
            reconciliation.book_balance_cents = _money("book_balance", book_balance)
            changed.append("book_balance")
        if statement_balance is not None:
            reconciliation.statement_balance_cents = _money("statement_balance", statement_balance)
            changed.append("statement_balance")
        if reconciliation_date is not None:
            reconciliation.reconciliation_date = reconciliation_date
            changed.append("reconciliation_date")
        if notes is not None:
            reconciliation.notes = notes
            changed.append("notes")

        self.session.flush()
        self.audit.log(
            AuditAction.RECONCILIATION_UPDATED,
            "Reconciliation updated",
            reconciliation_id=reconciliation.id,
            details={"fields": changed},
        )
        self._emit("updated", reconciliation.id, fields=changed)
        return reconciliation

    def balance(self, reconciliation_id: str) -> BalanceSummary:
        return self.calculator.for_reconciliation(self.get(reconciliation_id))

    def complete(
        self,
        reconciliation_id: str,
        override: bool = False,
        override_reason: Optional[str] = None,
    ) -> ReconciliationRecord:
        """
        Close the reconciliation.

        Raises:
            ReconciliationClosedError: already completed
            UnbalancedReconciliationError: |difference| >= 0.01 without override
        """
        reconciliation = get_open_reconciliation(self.session, reconciliation_id)
        summary = self.calculator.for_reconciliation(reconciliation)

        if not summary.is_balanced and not override:
            raise UnbalancedReconciliationError(reconciliation.id, summary.difference)

        used_override = override and not summary.is_balanced
        now = datetime.now(timezone.utc)

        reconciliation.status = ReconciliationStatus.COMPLETED
        reconciliation.completed_at = now
        reconciliation.completed_with_override = used_override
        reconciliation.override_reason = override_reason if used_override else None

        reconciliation.statement.status = StatementStatus.RECONCILED

        account = self.session.get(BankAccountRecord, reconciliation.bank_account_id)
        account.last_reconciliation_id = reconciliation.id
        account.last_reconciliation_date = reconciliation.reconciliation_date
        account.reconciled_balance_cents = reconciliation.statement_balance_cents

        self.session.flush()

        if used_override:
            logger.warning(
                "Reconciliation completed with override",
                reconciliation_id=reconciliation.id,
                difference=summary.difference,
                reason=override_reason,
            )
            self.audit.log(
                AuditAction.COMPLETION_OVERRIDE,
                "Completed with unbalanced difference",
                reconciliation_id=reconciliation.id,
                details={
                    "difference_cents": summary.difference_cents,
                    "reason": override_reason,
                },
            )

        self.audit.log(
            AuditAction.RECONCILIATION_COMPLETED,
            "Reconciliation completed",
            reconciliation_id=reconciliation.id,
            entity_ids=[reconciliation.bank_statement_id, reconciliation.bank_account_id],
            details=summary.to_dict(),
        )
        self._emit("completed", reconciliation.id, override=used_override)
        return reconciliation

    # Matches

    def auto_match(
        self,
        reconciliation_id: str,
        description_match: Optional[bool] = None,
        date_tolerance_days: Optional[int] = None,
    ) -> AutoMatchResult:
        result = self.matcher.auto_match(reconciliation_id, description_match, date_tolerance_days)
        self._emit("auto_matched", reconciliation_id, matches=result.matches)
        return result

    def attach_match(
        self,
        reconciliation_id: str,
        bank_transaction_id: str,
        journal_line_item_id: str,
        notes: str = "",
    ) -> MatchRecord:
        match = self.matcher.manual_match(
            reconciliation_id, bank_transaction_id, journal_line_item_id, notes
        )
        self._emit("match_attached", reconciliation_id, match_id=match.id)
        return match

    def detach_match(self, match_id: str) -> None:
        match = self.session.get(MatchRecord, match_id)
        reconciliation_id = match.reconciliation_id if match else None
        self.matcher.unmatch(match_id)
        self._emit("match_detached", reconciliation_id, match_id=match_id)

    # Adjustments

    def add_adjustment(self, reconciliation_id: str, **fields: Any) -> AdjustmentRecord:
        adjustment = self.adjustments.add(reconciliation_id, **fields)
        self._emit("adjustment_added", reconciliation_id, adjustment_id=adjustment.id)
        return adjustment

    def update_adjustment(self, adjustment_id: str, **fields: Any) -> AdjustmentRecord:
        adjustment = self.adjustments.update(adjustment_id, **fields)
        self._emit("adjustment_updated", adjustment.reconciliation_id, adjustment_id=adjustment_id)
        return adjustment

    def remove_adjustment(self, adjustment_id: str) -> None:
        reconciliation_id = self.adjustments.get(adjustment_id).reconciliation_id
        self.adjustments.delete(adjustment_id)
        self._emit("adjustment_removed", reconciliation_id, adjustment_id=adjustment_id)

    # Workspace

    def unmatched_items(self, context: WorkspaceContext) -> UnmatchedItems:
        """Unmatched items of the workspace's account, in its date window."""
        reconciliation = self.get(context.reconciliation_id)
        statement = reconciliation.statement
        return self.matcher.list_unmatched(
            reconciliation.bank_account_id,
            context.start_date or statement.start_date,
            context.end_date or statement.end_date,
        )

    def match_selection(self, context: WorkspaceContext, notes: str = "") -> MatchRecord:
        """Match the single selected transaction with the single selected ledger item."""
        reconciliation = self.get(context.reconciliation_id)
        ensure_open(reconciliation)
        if len(context.selected_transaction_ids) != 1 or len(context.selected_journal_item_ids) != 1:
            raise ValidationError(
                "Select exactly one bank transaction and one journal line item",
                context={
                    "selected_transactions": len(context.selected_transaction_ids),
                    "selected_journal_items": len(context.selected_journal_item_ids),
                },
            )

        (txn_id,) = context.selected_transaction_ids
        (item_id,) = context.selected_journal_item_ids
        match = self.attach_match(reconciliation.id, txn_id, item_id, notes)
        context.clear_selection()
        return match
