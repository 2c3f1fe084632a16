"""
Balance calculator.

Pure: the difference is derived from the reconciliation's balances and its
adjustments every time it is read, and never persisted.
"""

from typing import Iterable, Optional

from ..config import get_settings
from ..models import BalanceSummary, ReconciliationRecord


class BalanceCalculator:
    """Computes difference = statement - (book + sum(adjustments)) in cents."""

    def __init__(self, tolerance_cents: Optional[int] = None):
        self.tolerance_cents = (
            get_settings().balance_tolerance_cents if tolerance_cents is None else tolerance_cents
        )

    def calculate(
        self,
        statement_balance_cents: int,
        book_balance_cents: int,
        adjustment_amounts_cents: Iterable[int] = (),
    ) -> BalanceSummary:
        adjustments_total = sum(adjustment_amounts_cents)
        difference = statement_balance_cents - (book_balance_cents + adjustments_total)
        return BalanceSummary(
            statement_balance_cents=statement_balance_cents,
            book_balance_cents=book_balance_cents,
            adjustments_total_cents=adjustments_total,
            difference_cents=difference,
            is_balanced=abs(difference) < self.tolerance_cents,
        )

    def for_reconciliation(self, reconciliation: ReconciliationRecord) -> BalanceSummary:
        """Summary for a loaded reconciliation, counting every adjustment."""
        return self.calculate(
            reconciliation.statement_balance_cents,
            reconciliation.book_balance_cents,
            (adj.amount_cents for adj in reconciliation.adjustments),
        )
