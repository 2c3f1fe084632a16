"""
Transaction importer - loads a raw transaction batch into a bank statement.

Row-level problems (unparsable date or amount, missing fields, duplicates)
are reported in the per-row import log and never abort the batch. Only an
unreadable batch or an unknown/closed statement fails the whole operation.
"""

from typing import Any, Iterable, Mapping, Optional, Set, Union

import structlog
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..config import get_settings
from ..exceptions import ConflictError, CSVParseError, NotFoundError, ValidationError
from ..models import (
    AuditAction,
    BankStatementRecord,
    ImportLogEntry,
    ImportProcessedPolicy,
    ImportResult,
    ImportRowStatus,
    StatementStatus,
    StatementTransactionRecord,
)
from ..models.records import generate_uuid
from ..utils.audit_logger import AuditLogger
from .csv_reader import read_csv_batch
from .row_parser import ParsedRow, RowError, RowParser

logger = structlog.get_logger()


class TransactionImporter:
    """
    Imports statement transactions with per-row outcome reporting.

    A row is a duplicate when the same statement already holds a transaction
    with the same date, amount and description (rows earlier in the same
    batch count too).
    """

    def __init__(self, session: Session, parser: Optional[RowParser] = None):
        self.session = session
        self.settings = get_settings()
        self.parser = parser or RowParser()
        self.audit = AuditLogger(session)

    def import_csv(
        self,
        statement_id: str,
        content: Union[str, bytes],
        policy: Optional[ImportProcessedPolicy] = None,
    ) -> ImportResult:
        """Read a delimited-text export and import its rows."""
        statement = self._load_statement(statement_id)
        rows = read_csv_batch(content)
        return self._import(statement, rows, policy)

    def import_batch(
        self,
        statement_id: str,
        rows: Iterable[Mapping[str, Any]],
        policy: Optional[ImportProcessedPolicy] = None,
    ) -> ImportResult:
        """
        Import row mappings (date, description, amount, optional reference,
        type, check_number, balance) into a statement.

        Args:
            statement_id: Target bank statement
            rows: Raw rows, in file order
            policy: When to mark the statement Processed (defaults to settings)

        Returns:
            ImportResult with one log entry per row
        """
        statement = self._load_statement(statement_id)
        if rows is None or isinstance(rows, (str, bytes, Mapping)):
            raise CSVParseError("Batch must be a sequence of rows")
        try:
            rows = list(rows)
        except TypeError as e:
            raise CSVParseError(f"Batch is not iterable: {e}") from e
        return self._import(statement, rows, policy)

    def _load_statement(self, statement_id: str) -> BankStatementRecord:
        statement = self.session.get(BankStatementRecord, statement_id)
        if statement is None:
            raise NotFoundError("Bank statement", statement_id)
        if statement.status == StatementStatus.RECONCILED:
            raise ConflictError(
                "Cannot import into a reconciled statement",
                context={"statement_id": statement_id},
            )
        return statement

    def _import(
        self,
        statement: BankStatementRecord,
        rows: list,
        policy: Optional[ImportProcessedPolicy],
    ) -> ImportResult:
        policy = self._resolve_policy(policy)
        logger.info(
            "Importing transactions",
            statement_id=statement.id,
            rows=len(rows),
            policy=policy.value,
        )

        result = ImportResult(statement_id=statement.id, statement_status=statement.status)
        seen = self._existing_keys(statement.id)
        next_line = self._last_line_number(statement.id)

        for line, raw in enumerate(rows, start=1):
            try:
                parsed = self.parser.parse(line, raw)
            except RowError as e:
                logger.warning("Import row rejected", line=line, error=str(e))
                result.log.append(ImportLogEntry(line, ImportRowStatus.ERROR, str(e)))
                continue

            if parsed.duplicate_key in seen:
                result.log.append(ImportLogEntry(
                    line,
                    ImportRowStatus.SKIPPED,
                    "Duplicate of an already imported transaction",
                ))
                continue

            next_line += 1
            record = self._to_record(statement.id, next_line, parsed)
            statement.transactions.append(record)
            seen.add(parsed.duplicate_key)
            result.log.append(ImportLogEntry(
                line,
                ImportRowStatus.INSERTED,
                "Imported",
                transaction_id=record.id,
            ))

        if self._should_mark_processed(result, policy) and statement.status == StatementStatus.UPLOADED:
            statement.status = StatementStatus.PROCESSED
        result.statement_status = statement.status

        self.session.flush()

        self.audit.log(
            AuditAction.TRANSACTIONS_IMPORTED,
            f"Imported {result.inserted} transactions",
            entity_ids=[statement.id],
            details={
                "inserted": result.inserted,
                "skipped": result.skipped,
                "errors": result.errors,
                "policy": policy.value,
                "statement_status": statement.status.value,
            },
        )

        logger.info(
            "Import complete",
            statement_id=statement.id,
            inserted=result.inserted,
            skipped=result.skipped,
            errors=result.errors,
            statement_status=statement.status.value,
        )
        return result

    def _resolve_policy(self, policy: Optional[ImportProcessedPolicy]) -> ImportProcessedPolicy:
        if policy is not None:
            return ImportProcessedPolicy(policy)
        try:
            return ImportProcessedPolicy(self.settings.import_processed_policy)
        except ValueError:
            raise ValidationError(
                "Invalid import policy setting",
                context={"import_processed_policy": self.settings.import_processed_policy},
            ) from None

    @staticmethod
    def _should_mark_processed(result: ImportResult, policy: ImportProcessedPolicy) -> bool:
        if policy == ImportProcessedPolicy.ANY_INSERTED:
            return result.inserted > 0
        return result.total_rows > 0 and result.errors == 0

    def _existing_keys(self, statement_id: str) -> Set[tuple]:
        rows = self.session.execute(
            select(
                StatementTransactionRecord.transaction_date,
                StatementTransactionRecord.amount_cents,
                StatementTransactionRecord.description,
            ).where(StatementTransactionRecord.bank_statement_id == statement_id)
        )
        return {(d, a, (desc or "").strip().lower()) for d, a, desc in rows}

    def _last_line_number(self, statement_id: str) -> int:
        value = self.session.scalar(
            select(func.max(StatementTransactionRecord.line_number)).where(
                StatementTransactionRecord.bank_statement_id == statement_id
            )
        )
        return value or 0

    @staticmethod
    def _to_record(statement_id: str, line_number: int, parsed: ParsedRow) -> StatementTransactionRecord:
        return StatementTransactionRecord(
            id=generate_uuid(),
            bank_statement_id=statement_id,
            line_number=line_number,
            transaction_date=parsed.transaction_date,
            description=parsed.description,
            reference=parsed.reference,
            amount_cents=parsed.amount_cents,
            transaction_type=parsed.transaction_type,
            running_balance_cents=parsed.running_balance_cents,
            check_number=parsed.check_number,
            is_matched=False,
        )
