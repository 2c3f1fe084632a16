"""Data models for the bank reconciliation engine."""

from .enums import (
    AdjustmentStatus,
    AdjustmentType,
    AuditAction,
    ImportProcessedPolicy,
    ImportRowStatus,
    MatchMode,
    ReconciliationStatus,
    StatementStatus,
    TransactionType,
)
from .records import (
    AdjustmentRecord,
    AuditRecord,
    BankAccountRecord,
    BankStatementRecord,
    JournalLineItemRecord,
    MatchRecord,
    ReconciliationRecord,
    StatementTransactionRecord,
)
from .results import (
    AutoMatchResult,
    BalanceSummary,
    ImportLogEntry,
    ImportResult,
    Page,
    ReconciliationReport,
    ReportSummary,
    UnmatchedItems,
)

__all__ = [
    # Enums
    "AdjustmentStatus",
    "AdjustmentType",
    "AuditAction",
    "ImportProcessedPolicy",
    "ImportRowStatus",
    "MatchMode",
    "ReconciliationStatus",
    "StatementStatus",
    "TransactionType",
    # Records
    "AdjustmentRecord",
    "AuditRecord",
    "BankAccountRecord",
    "BankStatementRecord",
    "JournalLineItemRecord",
    "MatchRecord",
    "ReconciliationRecord",
    "StatementTransactionRecord",
    # Results
    "AutoMatchResult",
    "BalanceSummary",
    "ImportLogEntry",
    "ImportResult",
    "Page",
    "ReconciliationReport",
    "ReportSummary",
    "UnmatchedItems",
]
