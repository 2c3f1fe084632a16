"""
Tests for the transaction importer.
"""

import pytest

from bankrec.exceptions import ConflictError, CSVParseError, NotFoundError
from bankrec.ingestion import TransactionImporter
from bankrec.models import (
    AuditAction,
    ImportProcessedPolicy,
    ImportRowStatus,
    StatementStatus,
    TransactionType,
)
from bankrec.utils.audit_logger import AuditLogger

from conftest import import_rows

FIVE_ROWS_ONE_BAD = [
    {"date": "2024-01-02", "description": "Opening deposit", "amount": "500.00"},
    {"date": "2024-01-03", "description": "Coffee", "amount": "-4.25"},
    {"date": "not-a-date", "description": "Broken row", "amount": "10.00"},
    {"date": "2024-01-08", "description": "Rent", "amount": "-1500.00"},
    {"date": "2024-01-09", "description": "Refund", "amount": "20.00"},
]


class TestTransactionImporter:
    """Test suite for statement transaction import."""

    def test_partial_batch_log(self, session, statement):
        """One bad row is logged; the other four are inserted."""
        result = import_rows(session, statement.id, FIVE_ROWS_ONE_BAD)

        assert result.inserted == 4
        assert result.errors == 1
        assert [entry.line for entry in result.log] == [1, 2, 3, 4, 5]
        assert result.log[2].status == ImportRowStatus.ERROR
        assert "Unparsable date" in result.log[2].message
        assert len(statement.transactions) == 4

    def test_partial_batch_not_processed_by_default(self, session, statement):
        result = import_rows(session, statement.id, FIVE_ROWS_ONE_BAD)

        assert result.statement_status == StatementStatus.UPLOADED
        assert statement.status == StatementStatus.UPLOADED

    def test_partial_batch_processed_with_any_inserted_policy(self, session, statement):
        result = import_rows(
            session, statement.id, FIVE_ROWS_ONE_BAD, policy=ImportProcessedPolicy.ANY_INSERTED
        )

        assert result.statement_status == StatementStatus.PROCESSED

    def test_clean_batch_marks_processed(self, session, statement):
        result = import_rows(session, statement.id, [
            {"date": "2024-01-05", "description": "Deposit", "amount": "250.00"},
        ])

        assert result.inserted == 1
        assert statement.status == StatementStatus.PROCESSED

    def test_empty_batch_stays_uploaded(self, session, statement):
        result = import_rows(session, statement.id, [])

        assert result.total_rows == 0
        assert statement.status == StatementStatus.UPLOADED

    def test_duplicates_skipped(self, session, statement):
        """Re-importing the same rows inserts nothing new."""
        rows = [
            {"date": "2024-01-05", "description": "Deposit", "amount": "250.00"},
            {"date": "2024-01-06", "description": "Fee", "amount": "-12.00"},
        ]
        import_rows(session, statement.id, rows)
        second = import_rows(session, statement.id, rows)

        assert second.inserted == 0
        assert second.skipped == 2
        assert len(statement.transactions) == 2

    def test_duplicate_within_batch(self, session, statement):
        result = import_rows(session, statement.id, [
            {"date": "2024-01-05", "description": "Deposit", "amount": "250.00"},
            {"date": "2024-01-05", "description": "DEPOSIT", "amount": "250"},
        ])

        assert [e.status for e in result.log] == [ImportRowStatus.INSERTED, ImportRowStatus.SKIPPED]

    def test_line_numbers_continue_across_batches(self, session, statement):
        import_rows(session, statement.id, [
            {"date": "2024-01-05", "description": "A", "amount": "1.00"},
        ])
        import_rows(session, statement.id, [
            {"date": "2024-01-06", "description": "B", "amount": "2.00"},
        ])

        assert [t.line_number for t in statement.transactions] == [1, 2]

    def test_unknown_statement(self, session):
        with pytest.raises(NotFoundError):
            import_rows(session, "missing", [])

    def test_unreadable_batch(self, session, statement):
        with pytest.raises(CSVParseError):
            TransactionImporter(session).import_batch(statement.id, None)

    def test_reconciled_statement_rejected(self, session, statement):
        statement.status = StatementStatus.RECONCILED
        session.flush()

        with pytest.raises(ConflictError):
            import_rows(session, statement.id, [
                {"date": "2024-01-05", "description": "Late", "amount": "1.00"},
            ])

    def test_csv_import(self, session, statement):
        content = (
            "Date,Description,Amount,Check Number\n"
            "01/05/2024,Deposit,\"1,250.00\",\n"
            "01/07/2024,Check 1001,(75.50),1001\n"
        )
        result = TransactionImporter(session).import_csv(statement.id, content)

        assert result.inserted == 2
        amounts = [t.amount_cents for t in statement.transactions]
        assert amounts == [125000, -7550]
        assert statement.transactions[1].check_number == "1001"

    def test_debit_credit_csv_import(self, session, statement):
        content = (
            "Date,Description,Debit,Credit\n"
            "2024-01-05,Deposit,0.00,250.00\n"
            "2024-01-06,Fee,12.00,0.00\n"
            "2024-01-07,Odd,3.00,4.00\n"
        )
        result = TransactionImporter(session).import_csv(statement.id, content)

        assert result.inserted == 2
        assert [t.amount_cents for t in statement.transactions] == [25000, -1200]
        assert result.log[2].status == ImportRowStatus.ERROR
        assert "Both debit and credit" in result.log[2].message

    def test_non_string_fields_are_row_errors_not_failures(self, session, statement):
        result = import_rows(session, statement.id, [
            {"date": "2024-01-05", "description": "Fee", "amount": "-3.00", "type": 5},
            {"date": "2024-01-06", "description": "Bad amount", "amount": [3]},
            {"date": "2024-01-07", "description": "Deposit", "amount": "10.00"},
        ])

        assert [entry.status for entry in result.log] == [
            ImportRowStatus.INSERTED,
            ImportRowStatus.ERROR,
            ImportRowStatus.INSERTED,
        ]
        assert statement.transactions[0].transaction_type == TransactionType.WITHDRAWAL

    def test_import_is_audited(self, session, statement):
        import_rows(session, statement.id, FIVE_ROWS_ONE_BAD)

        entries = AuditLogger(session).get_entries(action_filter=AuditAction.TRANSACTIONS_IMPORTED)
        assert len(entries) == 1
        assert entries[0].details["inserted"] == 4
        assert entries[0].details["errors"] == 1
