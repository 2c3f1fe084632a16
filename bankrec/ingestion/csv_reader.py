"""
Delimited-text reader for statement transaction batches.

Turns an uploaded CSV export into row mappings with semantic keys
(date, description, amount, reference, type, check_number, balance).
"""

import csv
import io
from decimal import Decimal
from typing import Dict, List, Optional, Union

import structlog

from ..exceptions import CSVParseError
from ..utils.money import optional_cents
from .row_parser import RowError

logger = structlog.get_logger()

ENCODINGS = ["utf-8-sig", "utf-8", "latin-1"]

# Header aliases seen in bank exports, normalized to lower case
COLUMN_ALIASES: Dict[str, List[str]] = {
    "date": ["date", "transaction date", "transaction_date", "posted date", "posting date"],
    "description": ["description", "memo", "details", "narrative", "payee"],
    "amount": ["amount", "transaction amount", "value"],
    "reference": ["reference", "ref", "reference number", "reference_number"],
    "type": ["type", "transaction type", "transaction_type"],
    "check_number": ["check_number", "check number", "check", "cheque number"],
    "balance": ["balance", "running balance", "running_balance"],
    "debit": ["debit", "withdrawal", "withdrawals"],
    "credit": ["credit", "deposit", "deposits"],
}


def _decode(content: bytes) -> str:
    for encoding in ENCODINGS:
        try:
            return content.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise CSVParseError("Could not decode file. Supported encodings: UTF-8, Latin-1")


def _build_header_map(fieldnames: List[str]) -> Dict[str, str]:
    """Map CSV column -> semantic field."""
    header_map = {}
    for column in fieldnames:
        key = (column or "").strip().lower()
        for field_name, aliases in COLUMN_ALIASES.items():
            if key in aliases and field_name not in header_map.values():
                header_map[column] = field_name
                break
    return header_map


def read_csv_batch(
    content: Union[str, bytes],
    delimiter: Optional[str] = None,
) -> List[Dict[str, str]]:
    """
    Parse a CSV export into row mappings.

    Separate debit/credit columns are folded into a signed ``amount``
    (credit positive, debit negative) when no amount column is present.

    Raises CSVParseError when the batch cannot be read at all: undecodable
    bytes, no header row, or none of the required columns.
    """
    text = _decode(content) if isinstance(content, bytes) else content
    if not text or not text.strip():
        raise CSVParseError("File is empty")

    if delimiter is None:
        try:
            delimiter = csv.Sniffer().sniff(text.splitlines()[0], delimiters=",;\t|").delimiter
        except csv.Error:
            delimiter = ","

    reader = csv.DictReader(io.StringIO(text), delimiter=delimiter)
    if not reader.fieldnames:
        raise CSVParseError("Missing header row")

    header_map = _build_header_map(reader.fieldnames)
    mapped = set(header_map.values())
    has_amount = "amount" in mapped or {"debit", "credit"} & mapped
    if "date" not in mapped or not has_amount:
        raise CSVParseError(
            f"Header must contain date and amount columns, got: {', '.join(reader.fieldnames)}"
        )

    rows = []
    try:
        for raw in reader:
            # Skip completely empty rows
            if not any((v or "").strip() for k, v in raw.items() if k is not None):
                continue

            row = {}
            for column, field_name in header_map.items():
                value = raw.get(column)
                row[field_name] = value.strip() if isinstance(value, str) else value

            if "amount" not in row:
                try:
                    row["amount"] = _fold_debit_credit(row.get("debit"), row.get("credit"))
                except RowError as e:
                    # Reported by the row parser so the rest of the batch still imports
                    row["amount"] = ""
                    row["row_error"] = str(e)
            row.pop("debit", None)
            row.pop("credit", None)
            rows.append(row)
    except csv.Error as e:
        raise CSVParseError(f"Malformed CSV near line {reader.line_num}: {e}") from e

    logger.info("CSV batch read", rows=len(rows), delimiter=delimiter)
    return rows


def _fold_debit_credit(debit: Optional[str], credit: Optional[str]) -> str:
    """Signed amount from separate columns; a zero column counts as empty."""
    try:
        debit_cents = optional_cents(debit) or 0
        credit_cents = optional_cents(credit) or 0
    except ValueError:
        raise RowError(f"Invalid debit/credit: {debit!r} / {credit!r}") from None

    if debit_cents and credit_cents:
        raise RowError(f"Both debit and credit are set: {debit!r} / {credit!r}")
    if not debit_cents and not credit_cents:
        # Both blank means the amount is missing, explicit zeros mean zero
        return "0.00" if (debit or credit) else ""
    return format((Decimal(credit_cents) - abs(debit_cents)) / 100, ".2f")
