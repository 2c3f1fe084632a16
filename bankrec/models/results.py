"""Result and read models returned by engine operations."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Generic, List, Optional, TypeVar

from ..utils.money import from_cents
from .enums import ImportRowStatus, StatementStatus

T = TypeVar("T")


@dataclass
class ImportLogEntry:
    """Outcome of one row of an import batch."""
    line: int
    status: ImportRowStatus
    message: str = ""
    transaction_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "line": self.line,
            "status": self.status.value,
            "message": self.message,
        }


@dataclass
class ImportResult:
    """Result of importing a transaction batch into a statement."""
    statement_id: str
    log: List[ImportLogEntry] = field(default_factory=list)
    statement_status: StatementStatus = StatementStatus.UPLOADED

    @property
    def inserted(self) -> int:
        return self._count(ImportRowStatus.INSERTED)

    @property
    def skipped(self) -> int:
        return self._count(ImportRowStatus.SKIPPED)

    @property
    def errors(self) -> int:
        return self._count(ImportRowStatus.ERROR)

    @property
    def total_rows(self) -> int:
        return len(self.log)

    def _count(self, status: ImportRowStatus) -> int:
        return sum(1 for entry in self.log if entry.status == status)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "statement_id": self.statement_id,
            "inserted": self.inserted,
            "skipped": self.skipped,
            "errors": self.errors,
            "total_rows": self.total_rows,
            "statement_status": self.statement_status.value,
            "log": [entry.to_dict() for entry in self.log],
        }


@dataclass
class AutoMatchResult:
    """Result of one automatic matching run."""
    reconciliation_id: str
    match_ids: List[str] = field(default_factory=list)
    statement_candidates: int = 0
    ledger_candidates: int = 0

    @property
    def matches(self) -> int:
        return len(self.match_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reconciliation_id": self.reconciliation_id,
            "matches": self.matches,
            "match_ids": self.match_ids,
            "statement_candidates": self.statement_candidates,
            "ledger_candidates": self.ledger_candidates,
        }


@dataclass(frozen=True)
class BalanceSummary:
    """
    Balance read model of a reconciliation.

    difference = statement_balance - (book_balance + sum(adjustments))
    """
    statement_balance_cents: int
    book_balance_cents: int
    adjustments_total_cents: int
    difference_cents: int
    is_balanced: bool

    @property
    def adjusted_book_balance_cents(self) -> int:
        return self.book_balance_cents + self.adjustments_total_cents

    @property
    def difference(self) -> float:
        return from_cents(self.difference_cents)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "statement_balance": from_cents(self.statement_balance_cents),
            "book_balance": from_cents(self.book_balance_cents),
            "adjustments_total": from_cents(self.adjustments_total_cents),
            "adjusted_book_balance": from_cents(self.adjusted_book_balance_cents),
            "difference": self.difference,
            "is_balanced": self.is_balanced,
        }


@dataclass
class Page(Generic[T]):
    """One page of a filtered listing."""
    items: List[T]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        if self.limit <= 0:
            return 0
        return (self.total + self.limit - 1) // self.limit

    def pagination(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "page": self.page,
            "limit": self.limit,
            "pages": self.pages,
        }


@dataclass
class UnmatchedItems:
    """Unmatched statement transactions and ledger items of an account."""
    bank_transactions: List[Dict[str, Any]] = field(default_factory=list)
    journal_items: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bank_transactions": self.bank_transactions,
            "journal_items": self.journal_items,
        }


@dataclass
class ReportSummary:
    """Summary statistics of a reconciliation report."""
    total_matched_items: int = 0
    auto_matches: int = 0
    manual_matches: int = 0
    total_adjustments: int = 0
    approved_adjustments: int = 0
    pending_adjustments: int = 0
    unmatched_bank_transactions: int = 0
    unmatched_journal_items: int = 0
    balance: Optional[BalanceSummary] = None

    @property
    def is_balanced(self) -> bool:
        return self.balance.is_balanced if self.balance else False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_matched_items": self.total_matched_items,
            "auto_matches": self.auto_matches,
            "manual_matches": self.manual_matches,
            "total_adjustments": self.total_adjustments,
            "approved_adjustments": self.approved_adjustments,
            "pending_adjustments": self.pending_adjustments,
            "unmatched_bank_transactions": self.unmatched_bank_transactions,
            "unmatched_journal_items": self.unmatched_journal_items,
            "is_balanced": self.is_balanced,
            "difference": self.balance.difference if self.balance else None,
        }


@dataclass
class ReconciliationReport:
    """Complete report of one reconciliation."""
    reconciliation: Dict[str, Any]
    matched_items: List[Dict[str, Any]] = field(default_factory=list)
    adjustments: List[Dict[str, Any]] = field(default_factory=list)
    summary: ReportSummary = field(default_factory=ReportSummary)
    audit_trail: List[Dict[str, Any]] = field(default_factory=list)
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reconciliation": self.reconciliation,
            "matched_items": self.matched_items,
            "adjustments": self.adjustments,
            "summary": self.summary.to_dict(),
            "audit_trail": self.audit_trail,
            "generated_at": self.generated_at.isoformat(),
        }
