"""
Persistence models for the reconciliation engine.

Amounts are stored in CENTS (integer) and exposed in currency units by
``to_dict``. The unique constraints on ``reconciliation_matches`` hold the
one-to-one pairing between statement transactions and ledger line items.
"""

from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..database import Base
from ..utils.money import from_cents
from .enums import (
    AdjustmentStatus,
    AdjustmentType,
    AuditAction,
    MatchMode,
    ReconciliationStatus,
    StatementStatus,
    TransactionType,
)


def generate_uuid() -> str:
    return str(uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _enum_column(enum_cls, length: int = 20) -> SAEnum:
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=length,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


class BankAccountRecord(Base):
    """External bank account; referenced by statements and reconciliations."""

    __tablename__ = "bank_accounts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    account_name: Mapped[str] = mapped_column(String(200))
    bank_name: Mapped[str] = mapped_column(String(200), default="")
    gl_account_id: Mapped[str] = mapped_column(String(36), index=True)

    last_reconciliation_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    last_reconciliation_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    reconciled_balance_cents: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "account_name": self.account_name,
            "bank_name": self.bank_name,
            "gl_account_id": self.gl_account_id,
            "last_reconciliation_id": self.last_reconciliation_id,
            "last_reconciliation_date": _iso(self.last_reconciliation_date),
            "reconciled_balance": from_cents(self.reconciled_balance_cents),
        }


class BankStatementRecord(Base):
    __tablename__ = "bank_statements"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    bank_account_id: Mapped[str] = mapped_column(
        ForeignKey("bank_accounts.id", ondelete="CASCADE"), index=True
    )

    statement_date: Mapped[date] = mapped_column(Date)
    start_date: Mapped[date] = mapped_column(Date)
    end_date: Mapped[date] = mapped_column(Date)
    opening_balance_cents: Mapped[int] = mapped_column(Integer)
    closing_balance_cents: Mapped[int] = mapped_column(Integer)

    status: Mapped[StatementStatus] = mapped_column(
        _enum_column(StatementStatus), default=StatementStatus.UPLOADED
    )
    file_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    import_method: Mapped[str] = mapped_column(String(20), default="Manual")
    notes: Mapped[str] = mapped_column(Text, default="")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now)

    bank_account: Mapped[BankAccountRecord] = relationship()
    transactions: Mapped[List["StatementTransactionRecord"]] = relationship(
        back_populates="statement",
        cascade="all, delete-orphan",
        order_by="StatementTransactionRecord.line_number",
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "bank_account_id": self.bank_account_id,
            "statement_date": _iso(self.statement_date),
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "opening_balance": from_cents(self.opening_balance_cents),
            "closing_balance": from_cents(self.closing_balance_cents),
            "status": self.status.value,
            "file_name": self.file_name,
            "import_method": self.import_method,
            "notes": self.notes,
        }


class StatementTransactionRecord(Base):
    """One line of a bank statement. Immutable after import except ``is_matched``."""

    __tablename__ = "statement_transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    bank_statement_id: Mapped[str] = mapped_column(
        ForeignKey("bank_statements.id", ondelete="CASCADE")
    )
    line_number: Mapped[int] = mapped_column(Integer, default=0)

    transaction_date: Mapped[date] = mapped_column(Date)
    description: Mapped[str] = mapped_column(Text, default="")
    reference: Mapped[str] = mapped_column(String(100), default="")
    amount_cents: Mapped[int] = mapped_column(Integer)
    transaction_type: Mapped[TransactionType] = mapped_column(
        _enum_column(TransactionType), default=TransactionType.OTHER
    )
    running_balance_cents: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    check_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    is_matched: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)

    statement: Mapped[BankStatementRecord] = relationship(back_populates="transactions")

    __table_args__ = (
        Index("idx_statement_transactions_statement_date", "bank_statement_id", "transaction_date"),
    )

    @property
    def amount(self) -> float:
        return from_cents(self.amount_cents)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "bank_statement_id": self.bank_statement_id,
            "line_number": self.line_number,
            "transaction_date": _iso(self.transaction_date),
            "description": self.description,
            "reference": self.reference,
            "amount": self.amount,
            "transaction_type": self.transaction_type.value,
            "running_balance": from_cents(self.running_balance_cents),
            "check_number": self.check_number,
            "is_matched": self.is_matched,
        }


class JournalLineItemRecord(Base):
    """
    Ledger line item, owned by the general ledger.

    The reconciliation engine reads these and toggles ``is_matched`` through
    the ledger gateway; it never creates or deletes them.
    """

    __tablename__ = "journal_line_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    journal_entry_id: Mapped[str] = mapped_column(String(36), default=generate_uuid)
    account_id: Mapped[str] = mapped_column(String(36))

    entry_date: Mapped[date] = mapped_column(Date)
    description: Mapped[str] = mapped_column(Text, default="")
    reference: Mapped[str] = mapped_column(String(100), default="")
    debit_cents: Mapped[int] = mapped_column(Integer, default=0)
    credit_cents: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(20), default="Posted")

    is_matched: Mapped[bool] = mapped_column(Boolean, default=False)

    __table_args__ = (
        Index("idx_journal_line_items_account_date", "account_id", "entry_date"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "journal_entry_id": self.journal_entry_id,
            "account_id": self.account_id,
            "date": _iso(self.entry_date),
            "description": self.description,
            "reference": self.reference,
            "debit": from_cents(self.debit_cents),
            "credit": from_cents(self.credit_cents),
            "status": self.status,
            "is_matched": self.is_matched,
        }


class ReconciliationRecord(Base):
    __tablename__ = "reconciliations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    bank_account_id: Mapped[str] = mapped_column(
        ForeignKey("bank_accounts.id", ondelete="CASCADE"), index=True
    )
    bank_statement_id: Mapped[str] = mapped_column(ForeignKey("bank_statements.id"), index=True)

    reconciliation_date: Mapped[date] = mapped_column(Date)
    start_balance_cents: Mapped[int] = mapped_column(Integer)
    end_balance_cents: Mapped[int] = mapped_column(Integer)
    book_balance_cents: Mapped[int] = mapped_column(Integer)
    statement_balance_cents: Mapped[int] = mapped_column(Integer)

    status: Mapped[ReconciliationStatus] = mapped_column(
        _enum_column(ReconciliationStatus), default=ReconciliationStatus.IN_PROGRESS
    )
    notes: Mapped[str] = mapped_column(Text, default="")

    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_with_override: Mapped[bool] = mapped_column(Boolean, default=False)
    override_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now)

    statement: Mapped[BankStatementRecord] = relationship()
    matches: Mapped[List["MatchRecord"]] = relationship(
        back_populates="reconciliation", cascade="all, delete-orphan"
    )
    adjustments: Mapped[List["AdjustmentRecord"]] = relationship(
        back_populates="reconciliation",
        cascade="all, delete-orphan",
        order_by="AdjustmentRecord.adjustment_date",
    )

    @property
    def is_closed(self) -> bool:
        return self.status == ReconciliationStatus.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "bank_account_id": self.bank_account_id,
            "bank_statement_id": self.bank_statement_id,
            "reconciliation_date": _iso(self.reconciliation_date),
            "start_balance": from_cents(self.start_balance_cents),
            "end_balance": from_cents(self.end_balance_cents),
            "book_balance": from_cents(self.book_balance_cents),
            "statement_balance": from_cents(self.statement_balance_cents),
            "status": self.status.value,
            "notes": self.notes,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "completed_with_override": self.completed_with_override,
            "override_reason": self.override_reason,
        }


class MatchRecord(Base):
    """A committed pairing of one statement transaction with one ledger line item."""

    __tablename__ = "reconciliation_matches"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    reconciliation_id: Mapped[str] = mapped_column(
        ForeignKey("reconciliations.id", ondelete="CASCADE"), index=True
    )
    statement_transaction_id: Mapped[str] = mapped_column(
        ForeignKey("statement_transactions.id"), unique=True
    )
    journal_line_item_id: Mapped[str] = mapped_column(
        ForeignKey("journal_line_items.id"), unique=True
    )

    match_date: Mapped[date] = mapped_column(Date)
    matched_by: Mapped[MatchMode] = mapped_column(_enum_column(MatchMode, length=10))
    amount_cents: Mapped[int] = mapped_column(Integer)
    notes: Mapped[str] = mapped_column(Text, default="")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)

    reconciliation: Mapped[ReconciliationRecord] = relationship(back_populates="matches")
    statement_transaction: Mapped[StatementTransactionRecord] = relationship()
    journal_line_item: Mapped[JournalLineItemRecord] = relationship()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "reconciliation_id": self.reconciliation_id,
            "statement_transaction_id": self.statement_transaction_id,
            "journal_line_item_id": self.journal_line_item_id,
            "match_date": _iso(self.match_date),
            "matched_by": self.matched_by.value,
            "amount": from_cents(self.amount_cents),
            "notes": self.notes,
        }


class AdjustmentRecord(Base):
    __tablename__ = "reconciliation_adjustments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    reconciliation_id: Mapped[str] = mapped_column(
        ForeignKey("reconciliations.id", ondelete="CASCADE"), index=True
    )

    adjustment_date: Mapped[date] = mapped_column(Date)
    description: Mapped[str] = mapped_column(Text)
    adjustment_type: Mapped[AdjustmentType] = mapped_column(_enum_column(AdjustmentType))
    amount_cents: Mapped[int] = mapped_column(Integer)
    status: Mapped[AdjustmentStatus] = mapped_column(
        _enum_column(AdjustmentStatus), default=AdjustmentStatus.PENDING
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now)

    reconciliation: Mapped[ReconciliationRecord] = relationship(back_populates="adjustments")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "reconciliation_id": self.reconciliation_id,
            "adjustment_date": _iso(self.adjustment_date),
            "description": self.description,
            "adjustment_type": self.adjustment_type.value,
            "amount": from_cents(self.amount_cents),
            "status": self.status.value,
        }


class AuditRecord(Base):
    """An entry in the audit trail."""

    __tablename__ = "audit_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    action: Mapped[AuditAction] = mapped_column(_enum_column(AuditAction, length=40))
    reconciliation_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    entity_ids: Mapped[List[str]] = mapped_column(JSON, default=list)
    message: Mapped[str] = mapped_column(Text, default="")
    details: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "action": self.action.value,
            "reconciliation_id": self.reconciliation_id,
            "entity_ids": self.entity_ids,
            "message": self.message,
            "details": self.details,
        }
