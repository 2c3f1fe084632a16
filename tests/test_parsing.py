"""
Tests for money conversion, row parsing, CSV reading and description similarity.
"""

import pytest
from datetime import date
from decimal import Decimal

from bankrec.exceptions import CSVParseError
from bankrec.ingestion import RowError, RowParser, read_csv_batch
from bankrec.models import TransactionType
from bankrec.utils import DescriptionMatcher, from_cents, to_cents


class TestMoney:
    """Test suite for cents conversion."""

    @pytest.mark.parametrize("value,expected", [
        ("250.00", 25000),
        ("1,250.50", 125050),
        ("$-40.5", -4050),
        ("(12.34)", -1234),
        (Decimal("0.005"), 1),
        (19.99, 1999),
        (7, 700),
    ])
    def test_to_cents(self, value, expected):
        assert to_cents(value) == expected

    @pytest.mark.parametrize("value", ["", "abc", "1.2.3", True, "NaN", [12], {"amount": 12}])
    def test_invalid_amounts(self, value):
        with pytest.raises(ValueError):
            to_cents(value)

    def test_from_cents(self):
        assert from_cents(125050) == 1250.5
        assert from_cents(None) is None


class TestRowParser:
    """Test suite for statement row validation."""

    @pytest.fixture
    def parser(self):
        return RowParser()

    def test_parses_iso_and_us_dates(self, parser):
        iso = parser.parse(1, {"date": "2024-01-05", "description": "Deposit", "amount": "250"})
        us = parser.parse(2, {"date": "01/05/2024", "description": "Deposit", "amount": "250"})
        short = parser.parse(3, {"date": "01/05/24", "description": "Deposit", "amount": "250"})

        assert iso.transaction_date == us.transaction_date == short.transaction_date == date(2024, 1, 5)

    def test_type_derived_from_sign(self, parser):
        deposit = parser.parse(1, {"date": "2024-01-05", "description": "In", "amount": "10"})
        withdrawal = parser.parse(2, {"date": "2024-01-05", "description": "Out", "amount": "-10"})

        assert deposit.transaction_type == TransactionType.DEPOSIT
        assert withdrawal.transaction_type == TransactionType.WITHDRAWAL

    def test_type_hint_wins(self, parser):
        row = parser.parse(1, {
            "date": "2024-01-05", "description": "Reversal", "amount": "10", "type": "other",
        })
        assert row.transaction_type == TransactionType.OTHER

    def test_non_string_type_hint_falls_back_to_sign(self, parser):
        row = parser.parse(1, {"date": "2024-01-05", "description": "Fee", "amount": "-3", "type": 5})
        assert row.transaction_type == TransactionType.WITHDRAWAL

    def test_optional_fields(self, parser):
        row = parser.parse(1, {
            "date": "2024-01-05",
            "description": "  Check 1001  ",
            "amount": "-75.50",
            "reference": "REF-9",
            "check_number": 1001,
            "balance": "924.50",
        })

        assert row.description == "Check 1001"
        assert row.reference == "REF-9"
        assert row.check_number == "1001"
        assert row.running_balance_cents == 92450

    def test_missing_fields(self, parser):
        with pytest.raises(RowError, match="description"):
            parser.parse(1, {"date": "2024-01-05", "description": " ", "amount": "10"})

    def test_unparsable_date(self, parser):
        with pytest.raises(RowError, match="Unparsable date"):
            parser.parse(1, {"date": "2024-13-45", "description": "x", "amount": "10"})

    def test_invalid_amount(self, parser):
        with pytest.raises(RowError, match="Invalid amount"):
            parser.parse(1, {"date": "2024-01-05", "description": "x", "amount": "ten"})

    def test_duplicate_key_ignores_case_and_padding(self, parser):
        a = parser.parse(1, {"date": "2024-01-05", "description": "Deposit ", "amount": "10"})
        b = parser.parse(2, {"date": "2024-01-05", "description": "deposit", "amount": "10.00"})
        assert a.duplicate_key == b.duplicate_key


class TestCSVReader:
    """Test suite for delimited batch reading."""

    def test_reads_aliased_headers(self):
        content = (
            "Transaction Date,Memo,Amount,Ref\n"
            "2024-01-05,Deposit,250.00,A1\n"
            "\n"
            "2024-01-06,Fee,-12.00,\n"
        )
        rows = read_csv_batch(content)

        assert len(rows) == 2
        assert rows[0] == {
            "date": "2024-01-05",
            "description": "Deposit",
            "amount": "250.00",
            "reference": "A1",
        }

    def test_folds_debit_credit_columns(self):
        content = (
            "Date;Description;Debit;Credit\n"
            "2024-01-05;Deposit;;250.00\n"
            "2024-01-06;Fee;12.00;\n"
        ).encode("latin-1")
        rows = read_csv_batch(content)

        assert rows[0]["amount"] == "250.00"
        assert rows[1]["amount"] == "-12.00"
        assert "debit" not in rows[1]

    def test_zero_filled_column_counts_as_empty(self):
        rows = read_csv_batch(
            "Date,Description,Debit,Credit\n"
            "2024-01-06,Fee,12.00,0.00\n"
            "2024-01-07,Deposit,0.00,250.00\n"
        )

        assert rows[0]["amount"] == "-12.00"
        assert rows[1]["amount"] == "250.00"

    def test_signed_debit_stays_a_withdrawal(self):
        rows = read_csv_batch("Date,Description,Debit,Credit\n2024-01-06,Fee,-12.00,\n")

        assert rows[0]["amount"] == "-12.00"

    def test_both_debit_and_credit_is_a_row_error(self):
        rows = read_csv_batch(
            "Date,Description,Debit,Credit\n"
            "2024-01-06,Odd,12.00,5.00\n"
            "2024-01-07,Fee,1.50,\n"
        )

        with pytest.raises(RowError, match="Both debit and credit"):
            RowParser().parse(1, rows[0])
        assert RowParser().parse(2, rows[1]).amount_cents == -150

    def test_empty_file(self):
        with pytest.raises(CSVParseError):
            read_csv_batch("   ")

    def test_missing_required_columns(self):
        with pytest.raises(CSVParseError):
            read_csv_batch("Memo,Reference\nDeposit,A1\n")


class TestDescriptionMatcher:
    """Test suite for description similarity."""

    @pytest.fixture
    def matcher(self):
        return DescriptionMatcher(threshold=0.8)

    def test_substring_either_direction(self, matcher):
        assert matcher.matches("DEPOSIT", "Deposit from customer")
        assert matcher.matches("ACH payroll run January", "payroll")

    def test_token_reordering(self, matcher):
        assert matcher.matches("ACME Supplies Check 1001", "check 1001 acme supplies")

    def test_unrelated(self, matcher):
        assert not matcher.matches("Payroll", "Electric utility")

    def test_blank_never_matches(self, matcher):
        assert not matcher.matches("", "Deposit")
        assert not matcher.matches("Deposit", None)
