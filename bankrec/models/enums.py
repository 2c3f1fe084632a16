"""Enumerations for the bank reconciliation engine."""

from enum import Enum


class StatementStatus(str, Enum):
    """
    Lifecycle of a bank statement.

    UPLOADED: Created, no transactions imported yet
    PROCESSED: Transactions imported, ready to reconcile
    RECONCILED: A reconciliation over this statement was completed
    """
    UPLOADED = "Uploaded"
    PROCESSED = "Processed"
    RECONCILED = "Reconciled"


class ReconciliationStatus(str, Enum):
    """Status of a reconciliation. COMPLETED is terminal."""
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"


class MatchMode(str, Enum):
    """How a match was created."""
    AUTO = "auto"
    MANUAL = "manual"


class TransactionType(str, Enum):
    """Type of statement transaction, derived from the amount sign."""
    DEPOSIT = "Deposit"        # Money in (positive amount)
    WITHDRAWAL = "Withdrawal"  # Money out (negative amount)
    OTHER = "Other"


class AdjustmentType(str, Enum):
    """Kind of reconciling adjustment."""
    BANK_FEE = "BankFee"
    INTEREST = "Interest"
    CORRECTION = "Correction"
    OTHER = "Other"


class AdjustmentStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"


class ImportRowStatus(str, Enum):
    """Outcome of a single imported row."""
    INSERTED = "Inserted"
    SKIPPED = "Skipped"
    ERROR = "Error"


class ImportProcessedPolicy(str, Enum):
    """
    When an import batch moves its statement to PROCESSED.

    ALL_ROWS: Batch is non-empty and no row ended in ERROR
    ANY_INSERTED: At least one row was inserted, errors notwithstanding
    """
    ALL_ROWS = "all_rows"
    ANY_INSERTED = "any_inserted"


class AuditAction(str, Enum):
    """Type of audit action."""
    STATEMENT_CREATED = "statement_created"
    STATEMENT_DELETED = "statement_deleted"
    TRANSACTIONS_IMPORTED = "transactions_imported"
    RECONCILIATION_CREATED = "reconciliation_created"
    RECONCILIATION_UPDATED = "reconciliation_updated"
    RECONCILIATION_COMPLETED = "reconciliation_completed"
    COMPLETION_OVERRIDE = "completion_override"
    AUTO_MATCH_RUN = "auto_match_run"
    MATCH_CREATED = "match_created"
    MATCH_REMOVED = "match_removed"
    ADJUSTMENT_ADDED = "adjustment_added"
    ADJUSTMENT_UPDATED = "adjustment_updated"
    ADJUSTMENT_REMOVED = "adjustment_removed"
