"""
Integration tests for the HTTP adapter.
"""

import pytest
from datetime import date

from fastapi.testclient import TestClient

from bankrec.main import app, get_db
from bankrec.models import BankAccountRecord

from conftest import GL_ACCOUNT_ID, add_ledger_item

JANUARY_ROWS = [
    {"date": "2024-01-05", "description": "Deposit", "amount": "250.00"},
    {"date": "2024-01-10", "description": "Check 1001", "amount": "-75.50"},
    {"date": "2024-01-15", "description": "Payroll", "amount": "-1200.00"},
]


@pytest.fixture
def client(database):
    app.dependency_overrides[get_db] = lambda: database
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def account_id(database):
    with database.unit_of_work() as session:
        account = BankAccountRecord(
            account_name="Operating Account",
            bank_name="First Community Bank",
            gl_account_id=GL_ACCOUNT_ID,
        )
        session.add(account)
        session.flush()
        add_ledger_item(session, date(2024, 1, 6), debit=25000, description="Deposit")
        add_ledger_item(session, date(2024, 1, 20), credit=4400, description="Office supplies")
        return account.id


def create_statement(client, account_id, **extra):
    payload = {
        "bank_account_id": account_id,
        "statement_date": "2024-01-31",
        "start_date": "2024-01-01",
        "end_date": "2024-01-31",
        "opening_balance": 1000.00,
        "closing_balance": 5000.00,
    }
    payload.update(extra)
    return client.post("/statements", json=payload)


class TestReconciliationAPI:
    """End-to-end flow through the API."""

    def test_full_reconciliation_flow(self, client, account_id):
        response = create_statement(client, account_id, rows=JANUARY_ROWS)
        assert response.status_code == 201
        statement = response.json()
        assert statement["import"]["inserted"] == 3
        assert statement["import"]["statement_status"] == "Processed"

        response = client.post("/reconciliations", json={
            "bank_statement_id": statement["id"],
            "book_balance": 4950.00,
        })
        assert response.status_code == 201
        reconciliation = response.json()
        assert reconciliation["statement_balance"] == 5000.0
        assert reconciliation["status"] == "InProgress"

        response = client.post("/match/auto", json={
            "reconciliation_id": reconciliation["id"],
            "description_match": True,
            "date_tolerance": 3,
        })
        assert response.status_code == 200
        assert response.json()["matches"] == 1
        match_id = response.json()["match_ids"][0]

        unmatched = client.get(
            f"/unmatched/{account_id}",
            params={"start_date": "2024-01-01", "end_date": "2024-01-31"},
        ).json()
        assert len(unmatched["bank_transactions"]) == 2
        assert [i["description"] for i in unmatched["journal_items"]] == ["Office supplies"]

        response = client.post(f"/reconciliations/{reconciliation['id']}/complete")
        assert response.status_code == 409
        assert response.json()["error"] == "UNBALANCED"

        response = client.post("/adjustments", json={
            "reconciliation_id": reconciliation["id"],
            "adjustment_date": "2024-01-31",
            "description": "Interest earned",
            "adjustment_type": "Interest",
            "amount": 50.00,
        })
        assert response.status_code == 201

        response = client.post(f"/reconciliations/{reconciliation['id']}/complete")
        assert response.status_code == 200
        assert response.json()["status"] == "Completed"
        assert response.json()["balance"]["is_balanced"] is True

        assert client.delete(f"/match/{match_id}").status_code == 409
        assert client.delete(f"/statements/{statement['id']}").status_code == 409
        assert client.get(f"/statements/{statement['id']}").json()["status"] == "Reconciled"

        report = client.get(f"/reports/{reconciliation['id']}").json()
        assert report["summary"]["total_matched_items"] == 1
        assert report["summary"]["is_balanced"] is True

    def test_import_log(self, client, account_id):
        statement = create_statement(client, account_id).json()
        assert statement["status"] == "Uploaded"
        assert statement["import"] is None

        response = client.post("/transactions/import", json={
            "statement_id": statement["id"],
            "rows": [
                {"date": "2024-01-05", "description": "Deposit", "amount": "250.00"},
                {"date": "2024-99-99", "description": "Bad", "amount": "1.00"},
            ],
            "policy": "any_inserted",
        })

        assert response.status_code == 200
        body = response.json()
        assert body["inserted"] == 1
        assert [entry["status"] for entry in body["log"]] == ["Inserted", "Error"]
        assert body["statement_status"] == "Processed"

    def test_csv_import(self, client, account_id):
        statement = create_statement(client, account_id).json()

        response = client.post("/transactions/import", json={
            "statement_id": statement["id"],
            "csv_content": "Date,Description,Amount\n2024-01-05,Deposit,250.00\n",
        })

        assert response.json()["inserted"] == 1
        transactions = client.get(f"/statements/{statement['id']}/transactions").json()
        assert transactions["pagination"]["total"] == 1
        assert transactions["transactions"][0]["amount"] == 250.0

    def test_statement_listing_and_update(self, client, account_id):
        first = create_statement(client, account_id).json()
        create_statement(
            client, account_id,
            statement_date="2024-02-29", start_date="2024-02-01", end_date="2024-02-29",
        )

        listing = client.get("/statements", params={"bank_account_id": account_id, "limit": 1}).json()
        assert listing["pagination"] == {"total": 2, "page": 1, "limit": 1, "pages": 2}
        assert listing["statements"][0]["statement_date"] == "2024-02-29"

        response = client.put(f"/statements/{first['id']}", json={"notes": "Reviewed"})
        assert response.json()["notes"] == "Reviewed"

        assert client.delete(f"/statements/{first['id']}").status_code == 200
        assert client.get(f"/statements/{first['id']}").status_code == 404

    def test_manual_match_conflict(self, client, account_id):
        statement = create_statement(client, account_id, rows=JANUARY_ROWS).json()
        reconciliation = client.post("/reconciliations", json={
            "bank_statement_id": statement["id"],
            "book_balance": 5000.00,
        }).json()
        transactions = client.get(f"/statements/{statement['id']}/transactions").json()["transactions"]
        journal_items = client.get(f"/unmatched/{account_id}").json()["journal_items"]
        deposit = next(t for t in transactions if t["description"] == "Deposit")
        supplies = next(i for i in journal_items if i["description"] == "Office supplies")

        payload = {
            "reconciliation_id": reconciliation["id"],
            "bank_transaction_id": deposit["id"],
            "journal_line_item_id": supplies["id"],
        }
        assert client.post("/match/manual", json=payload).status_code == 201

        response = client.post("/match/manual", json=payload)
        assert response.status_code == 409
        assert response.json()["error"] == "ALREADY_MATCHED"


class TestErrorMapping:
    """Engine errors map to HTTP statuses."""

    def test_not_found(self, client):
        response = client.get("/reconciliations/missing")

        assert response.status_code == 404
        assert response.json() == {
            "error": "NOT_FOUND",
            "message": "Reconciliation not found",
            "context": {"entity": "Reconciliation", "id": "missing"},
        }

    def test_negative_tolerance(self, client, account_id):
        statement = create_statement(client, account_id, rows=JANUARY_ROWS).json()
        reconciliation = client.post("/reconciliations", json={
            "bank_statement_id": statement["id"],
            "book_balance": 0,
        }).json()

        response = client.post("/match/auto", json={
            "reconciliation_id": reconciliation["id"],
            "date_tolerance": -1,
        })
        assert response.status_code == 400

    def test_reconcile_unprocessed_statement(self, client, account_id):
        statement = create_statement(client, account_id).json()

        response = client.post("/reconciliations", json={
            "bank_statement_id": statement["id"],
            "book_balance": 0,
        })
        assert response.status_code == 409

    def test_import_requires_rows(self, client, account_id):
        statement = create_statement(client, account_id).json()

        response = client.post("/transactions/import", json={"statement_id": statement["id"]})
        assert response.status_code == 400

    def test_malformed_request(self, client):
        response = client.post("/match/manual", json={"reconciliation_id": "x"})

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_FAILED"

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
