"""Reconciliation engine: matching, adjustments, balance and lifecycle."""

from .adjustments import AdjustmentLedger
from .balance import BalanceCalculator
from .matching import MatchEngine
from .reporting import ReconciliationReporter
from .session import ReconciliationSession, SessionEvent, WorkspaceContext

__all__ = [
    "AdjustmentLedger",
    "BalanceCalculator",
    "MatchEngine",
    "ReconciliationReporter",
    "ReconciliationSession",
    "SessionEvent",
    "WorkspaceContext",
]
