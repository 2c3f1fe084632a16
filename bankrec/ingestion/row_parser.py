"""
Field parsing for imported statement rows.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, List, Mapping, Optional, Sequence

from ..config import get_settings
from ..models import TransactionType
from ..utils.money import optional_cents, to_cents


class RowError(ValueError):
    """A single row could not be parsed. Never aborts a batch."""


@dataclass
class ParsedRow:
    """A statement row with validated fields, amounts in cents."""
    line: int
    transaction_date: date
    description: str
    amount_cents: int
    reference: str = ""
    transaction_type: TransactionType = TransactionType.OTHER
    check_number: Optional[str] = None
    running_balance_cents: Optional[int] = None

    @property
    def duplicate_key(self) -> tuple:
        return (self.transaction_date, self.amount_cents, self.description.strip().lower())


def parse_date(value: Any, formats: Optional[Sequence[str]] = None) -> date:
    """Parse a transaction date using the configured formats."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise RowError("Missing date")

    text = value.strip()
    for fmt in formats or get_settings().import_date_formats:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise RowError(f"Unparsable date: {text!r}")


def determine_transaction_type(amount_cents: int, type_hint: Any = None) -> TransactionType:
    """Transaction type from an explicit hint, else from the amount sign."""
    if type_hint is not None:
        hint = str(type_hint).strip().lower()
        for member in TransactionType:
            if member.value.lower() == hint:
                return member

    if amount_cents > 0:
        return TransactionType.DEPOSIT
    elif amount_cents < 0:
        return TransactionType.WITHDRAWAL

    return TransactionType.OTHER


class RowParser:
    """Validates raw row mappings into ParsedRow instances."""

    REQUIRED_FIELDS: List[str] = ["date", "description", "amount"]

    def __init__(self, date_formats: Optional[Sequence[str]] = None):
        self.date_formats = list(date_formats or get_settings().import_date_formats)

    def parse(self, line: int, row: Mapping[str, Any]) -> ParsedRow:
        if not isinstance(row, Mapping):
            raise RowError("Row is not a record")
        if row.get("row_error"):
            raise RowError(row["row_error"])

        missing = [
            name for name in self.REQUIRED_FIELDS
            if row.get(name) is None or (isinstance(row.get(name), str) and not row[name].strip())
        ]
        if missing:
            raise RowError(f"Row missing required fields: {', '.join(missing)}")

        transaction_date = parse_date(row["date"], self.date_formats)

        try:
            amount_cents = to_cents(row["amount"])
        except ValueError:
            raise RowError(f"Invalid amount: {row['amount']!r}") from None

        try:
            running_balance_cents = optional_cents(row.get("balance"))
        except ValueError:
            raise RowError(f"Invalid balance: {row['balance']!r}") from None

        check_number = row.get("check_number")

        return ParsedRow(
            line=line,
            transaction_date=transaction_date,
            description=str(row["description"]).strip(),
            amount_cents=amount_cents,
            reference=str(row.get("reference") or "").strip(),
            transaction_type=determine_transaction_type(amount_cents, row.get("type")),
            check_number=str(check_number).strip() if check_number else None,
            running_balance_cents=running_balance_cents,
        )
