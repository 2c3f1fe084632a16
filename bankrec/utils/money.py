"""
Money helpers.
All monetary amounts are stored in CENTS (integer) to avoid floating point errors.
"""

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Union

Number = Union[int, float, str, Decimal]

# Currency symbols and thousands separators tolerated in bank exports
_STRIP_PATTERN = re.compile(r"[\s$€£,]")


def to_cents(value: Number) -> int:
    """
    Convert a currency amount to integer cents.

    Accepts numbers or strings such as "1,250.00", "$-40.5", "(12.34)".
    Raises ValueError when the value cannot be read as an amount.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid amount: {value!r}")

    if isinstance(value, int):
        return value * 100

    if isinstance(value, float):
        value = repr(value)

    if isinstance(value, str):
        text = value.strip()
        negative = False
        if text.startswith("(") and text.endswith(")"):
            negative = True
            text = text[1:-1]
        text = _STRIP_PATTERN.sub("", text)
        if not text:
            raise ValueError("Empty amount")
        try:
            value = Decimal(text)
        except InvalidOperation:
            raise ValueError(f"Invalid amount: {value!r}") from None
        if negative:
            value = -value

    if not isinstance(value, Decimal) or not value.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")

    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def optional_cents(value: Optional[Number]) -> Optional[int]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return to_cents(value)


def from_cents(cents: Optional[int]) -> Optional[float]:
    """Return amount in standard currency units."""
    if cents is None:
        return None
    return cents / 100.0
