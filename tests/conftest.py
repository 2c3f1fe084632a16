"""
Shared fixtures: an in-memory database per test and seeded records.
"""

import os
import tempfile
from datetime import date

# Keep logs and exported reports out of the working tree
_TMP_DIR = tempfile.mkdtemp(prefix="bankrec-tests-")
os.environ.setdefault("LOG_DIR", os.path.join(_TMP_DIR, "logs"))
os.environ.setdefault("REPORTS_DIR", os.path.join(_TMP_DIR, "reports"))

import pytest

from bankrec.database import Database
from bankrec.ingestion import TransactionImporter
from bankrec.models import (
    BankStatementRecord,
    JournalLineItemRecord,
    StatementStatus,
)
from bankrec.reconciliation import ReconciliationSession
from bankrec.statements import StatementStore

GL_ACCOUNT_ID = "gl-1010"


@pytest.fixture
def database():
    db = Database("sqlite://")
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def session(database):
    session = database.session_factory()
    yield session
    session.close()


@pytest.fixture
def account(session):
    return StatementStore(session).create_bank_account(
        account_name="Operating Account",
        gl_account_id=GL_ACCOUNT_ID,
        bank_name="First Community Bank",
    )


@pytest.fixture
def statement(session, account):
    statement = BankStatementRecord(
        bank_account_id=account.id,
        statement_date=date(2024, 1, 31),
        start_date=date(2024, 1, 1),
        end_date=date(2024, 1, 31),
        opening_balance_cents=100000,
        closing_balance_cents=500000,
        status=StatementStatus.UPLOADED,
    )
    session.add(statement)
    session.flush()
    return statement


def add_ledger_item(session, entry_date, debit=0, credit=0, description="", account_id=GL_ACCOUNT_ID):
    item = JournalLineItemRecord(
        account_id=account_id,
        entry_date=entry_date,
        description=description,
        debit_cents=debit,
        credit_cents=credit,
    )
    session.add(item)
    session.flush()
    return item


def import_rows(session, statement_id, rows, policy=None):
    return TransactionImporter(session).import_batch(statement_id, rows, policy)


@pytest.fixture
def open_reconciliation(session, statement):
    """
    Processed statement with four transactions and an in-progress
    reconciliation over it.
    """
    import_rows(session, statement.id, [
        {"date": "2024-01-05", "description": "Deposit", "amount": "250.00"},
        {"date": "2024-01-10", "description": "Check 1001 ACME Supplies", "amount": "-75.50"},
        {"date": "2024-01-15", "description": "Payroll", "amount": "-1200.00"},
        {"date": "2024-01-20", "description": "Service charge", "amount": "-12.00"},
    ])
    return ReconciliationSession(session).create(
        statement.id,
        book_balance="4950.00",
        statement_balance="5000.00",
        reconciliation_date=date(2024, 1, 31),
    )
