"""
Reconciliation report generation.
"""

import json
from pathlib import Path
from typing import Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..config import get_settings
from ..ledger import LedgerGateway, SqlLedgerGateway
from ..models import (
    AdjustmentStatus,
    BankAccountRecord,
    MatchMode,
    ReconciliationReport,
    ReportSummary,
    StatementTransactionRecord,
)
from ..utils.audit_logger import AuditLogger
from .balance import BalanceCalculator
from .state import get_reconciliation

logger = structlog.get_logger()


class ReconciliationReporter:
    """Builds the report of one reconciliation: matches, adjustments, balance, audit trail."""

    def __init__(self, session: Session, ledger: Optional[LedgerGateway] = None):
        self.session = session
        self.settings = get_settings()
        self.ledger = ledger or SqlLedgerGateway(session)
        self.calculator = BalanceCalculator()
        self.audit = AuditLogger(session)

    def build(self, reconciliation_id: str) -> ReconciliationReport:
        reconciliation = get_reconciliation(self.session, reconciliation_id)
        statement = reconciliation.statement
        account = self.session.get(BankAccountRecord, reconciliation.bank_account_id)

        matched_items = []
        for match in reconciliation.matches:
            entry = match.to_dict()
            entry["bank_transaction"] = match.statement_transaction.to_dict()
            entry["journal_item"] = match.journal_line_item.to_dict()
            matched_items.append(entry)

        adjustments = list(reconciliation.adjustments)

        unmatched_bank = self.session.scalar(
            select(func.count(StatementTransactionRecord.id)).where(
                StatementTransactionRecord.bank_statement_id == statement.id,
                StatementTransactionRecord.is_matched.is_(False),
            )
        )
        unmatched_journal = len(
            self.ledger.list_unmatched(account.gl_account_id, statement.start_date, statement.end_date)
        )

        summary = ReportSummary(
            total_matched_items=len(matched_items),
            auto_matches=sum(1 for m in reconciliation.matches if m.matched_by == MatchMode.AUTO),
            manual_matches=sum(1 for m in reconciliation.matches if m.matched_by == MatchMode.MANUAL),
            total_adjustments=len(adjustments),
            approved_adjustments=sum(1 for a in adjustments if a.status == AdjustmentStatus.APPROVED),
            pending_adjustments=sum(1 for a in adjustments if a.status == AdjustmentStatus.PENDING),
            unmatched_bank_transactions=unmatched_bank or 0,
            unmatched_journal_items=unmatched_journal,
            balance=self.calculator.for_reconciliation(reconciliation),
        )

        reconciliation_data = reconciliation.to_dict()
        reconciliation_data["account_name"] = account.account_name
        reconciliation_data["bank_name"] = account.bank_name
        reconciliation_data["statement"] = statement.to_dict()
        reconciliation_data["balance"] = summary.balance.to_dict()

        report = ReconciliationReport(
            reconciliation=reconciliation_data,
            matched_items=matched_items,
            adjustments=[a.to_dict() for a in adjustments],
            summary=summary,
            audit_trail=[e.to_dict() for e in self.audit.get_entries(reconciliation.id)],
        )
        logger.info(
            "Report generated",
            reconciliation_id=reconciliation.id,
            matched=summary.total_matched_items,
            is_balanced=summary.is_balanced,
        )
        return report

    def export_to_file(
        self,
        report: ReconciliationReport,
        output_path: Optional[Path] = None,
    ) -> Path:
        """Export a report to a JSON file."""
        if output_path is None:
            reconciliation_id = report.reconciliation["id"]
            output_path = self.settings.reports_dir / f"reconciliation_{reconciliation_id}.json"

        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(report.to_dict(), f, indent=2, ensure_ascii=False)

        logger.info("Report exported", path=str(output_path))
        return output_path
