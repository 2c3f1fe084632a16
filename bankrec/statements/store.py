"""
Statement store - bank accounts, statements and their transactions.
"""

from datetime import date
from typing import Any, Optional, Tuple

import structlog
from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from ..config import get_settings
from ..exceptions import ConflictError, ErrorCode, NotFoundError, ValidationError
from ..models import (
    AuditAction,
    BankAccountRecord,
    BankStatementRecord,
    Page,
    ReconciliationRecord,
    StatementStatus,
    StatementTransactionRecord,
)
from ..utils.audit_logger import AuditLogger
from ..utils.money import to_cents

logger = structlog.get_logger()

# Statement fields that may be edited after creation
EDITABLE_FIELDS = (
    "statement_date",
    "start_date",
    "end_date",
    "opening_balance",
    "closing_balance",
    "file_name",
    "notes",
)


def resolve_page(page: Optional[int], limit: Optional[int]) -> Tuple[int, int]:
    """Validate pagination parameters against the configured bounds."""
    settings = get_settings()
    page = 1 if page is None else page
    limit = settings.default_page_size if limit is None else limit
    if page < 1:
        raise ValidationError("page must be >= 1", context={"page": page})
    if limit < 1:
        raise ValidationError("limit must be >= 1", context={"limit": limit})
    return page, min(limit, settings.max_page_size)


def paginate(session: Session, query: Select, page: Optional[int], limit: Optional[int]) -> Page:
    page, limit = resolve_page(page, limit)
    total = session.scalar(select(func.count()).select_from(query.order_by(None).subquery()))
    items = list(session.scalars(query.offset((page - 1) * limit).limit(limit)))
    return Page(items=items, total=total or 0, page=page, limit=limit)


def _money(name: str, value: Any) -> int:
    try:
        return to_cents(value)
    except ValueError:
        raise ValidationError(f"Invalid {name}", context={name: str(value)}) from None


class StatementStore:
    """
    Persistence operations for bank statements.

    Statement transactions are only created by the importer and only their
    matched flag changes afterwards, so this store exposes them read-only.
    """

    def __init__(self, session: Session):
        self.session = session
        self.audit = AuditLogger(session)

    # Bank accounts

    def create_bank_account(
        self,
        account_name: str,
        gl_account_id: str,
        bank_name: str = "",
    ) -> BankAccountRecord:
        if not account_name or not gl_account_id:
            raise ValidationError(
                "account_name and gl_account_id are required", code=ErrorCode.MISSING_FIELD
            )
        account = BankAccountRecord(
            account_name=account_name,
            gl_account_id=gl_account_id,
            bank_name=bank_name,
        )
        self.session.add(account)
        self.session.flush()
        logger.info("Bank account created", bank_account_id=account.id)
        return account

    def get_bank_account(self, bank_account_id: str) -> BankAccountRecord:
        account = self.session.get(BankAccountRecord, bank_account_id)
        if account is None:
            raise NotFoundError("Bank account", bank_account_id)
        return account

    # Statements

    def create(
        self,
        bank_account_id: str,
        statement_date: date,
        start_date: date,
        end_date: date,
        opening_balance: Any,
        closing_balance: Any,
        file_name: Optional[str] = None,
        notes: str = "",
        import_method: str = "Manual",
    ) -> BankStatementRecord:
        """Create a statement in the Uploaded state."""
        self.get_bank_account(bank_account_id)
        if start_date > end_date:
            raise ValidationError(
                "start_date must not be after end_date",
                context={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
            )

        statement = BankStatementRecord(
            bank_account_id=bank_account_id,
            statement_date=statement_date,
            start_date=start_date,
            end_date=end_date,
            opening_balance_cents=_money("opening_balance", opening_balance),
            closing_balance_cents=_money("closing_balance", closing_balance),
            status=StatementStatus.UPLOADED,
            file_name=file_name,
            notes=notes or "",
            import_method=import_method,
        )
        self.session.add(statement)
        self.session.flush()

        self.audit.log(
            AuditAction.STATEMENT_CREATED,
            "Bank statement created",
            entity_ids=[statement.id],
            details={"bank_account_id": bank_account_id, "file_name": file_name},
        )
        return statement

    def get(self, statement_id: str) -> BankStatementRecord:
        statement = self.session.get(BankStatementRecord, statement_id)
        if statement is None:
            raise NotFoundError("Bank statement", statement_id)
        return statement

    def list(
        self,
        bank_account_id: Optional[str] = None,
        status: Optional[StatementStatus] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> Page:
        """Filtered statements, newest statement date first."""
        query = select(BankStatementRecord)
        if bank_account_id:
            query = query.where(BankStatementRecord.bank_account_id == bank_account_id)
        if status:
            query = query.where(BankStatementRecord.status == StatementStatus(status))
        if start_date:
            query = query.where(BankStatementRecord.statement_date >= start_date)
        if end_date:
            query = query.where(BankStatementRecord.statement_date <= end_date)
        query = query.order_by(BankStatementRecord.statement_date.desc(), BankStatementRecord.id)
        return paginate(self.session, query, page, limit)

    def update(self, statement_id: str, **changes: Any) -> BankStatementRecord:
        """Edit statement header fields. Status is owned by import and close."""
        statement = self.get(statement_id)
        if "status" in changes:
            raise ValidationError("Statement status cannot be changed directly")
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(
                f"Unknown statement fields: {', '.join(sorted(unknown))}"
            )
        if statement.status == StatementStatus.RECONCILED:
            raise ConflictError(
                "Cannot modify a reconciled statement",
                context={"statement_id": statement_id},
            )

        for name, value in changes.items():
            if value is None and name not in ("file_name",):
                continue
            if name in ("opening_balance", "closing_balance"):
                setattr(statement, f"{name}_cents", _money(name, value))
            else:
                setattr(statement, name, value)

        if statement.start_date > statement.end_date:
            raise ValidationError("start_date must not be after end_date")

        self.session.flush()
        logger.info("Bank statement updated", statement_id=statement_id, fields=sorted(changes))
        return statement

    def delete(self, statement_id: str) -> None:
        """Delete a statement and its transactions."""
        statement = self.get(statement_id)
        if statement.status == StatementStatus.RECONCILED:
            raise ConflictError(
                "Cannot delete a reconciled statement",
                context={"statement_id": statement_id},
            )
        referenced = self.session.scalar(
            select(func.count(ReconciliationRecord.id)).where(
                ReconciliationRecord.bank_statement_id == statement_id
            )
        )
        if referenced:
            raise ConflictError(
                "Statement is referenced by a reconciliation",
                context={"statement_id": statement_id, "reconciliations": referenced},
            )

        self.session.delete(statement)
        self.audit.log(
            AuditAction.STATEMENT_DELETED,
            "Bank statement deleted",
            entity_ids=[statement_id],
        )
        self.session.flush()

    def list_transactions(
        self,
        statement_id: str,
        is_matched: Optional[bool] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> Page:
        """Transactions of a statement in (date, line) order."""
        self.get(statement_id)
        query = select(StatementTransactionRecord).where(
            StatementTransactionRecord.bank_statement_id == statement_id
        )
        if is_matched is not None:
            query = query.where(StatementTransactionRecord.is_matched.is_(is_matched))
        query = query.order_by(
            StatementTransactionRecord.transaction_date,
            StatementTransactionRecord.line_number,
        )
        return paginate(self.session, query, page, limit)
