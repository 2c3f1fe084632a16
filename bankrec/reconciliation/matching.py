"""
Match Engine - pairs statement transactions with ledger line items.

Automatic matching is a greedy single pass over the unmatched statement
transactions in (date, line) order. Each transaction takes the eligible
ledger item closest in date; ties go to the first item in (date, id) order.
Once paired, both sides leave the pools, so no item is matched twice.

Sign convention:
    statement amount > 0 (deposit)    <-> ledger debit  of the same magnitude
    statement amount < 0 (withdrawal) <-> ledger credit of the same magnitude
"""

from datetime import date, timedelta
from typing import List, Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..config import get_settings
from ..exceptions import (
    AlreadyMatchedError,
    NotFoundError,
    ValidationError,
)
from ..ledger import LedgerGateway, LedgerLineItem, SqlLedgerGateway
from ..models import (
    AuditAction,
    AutoMatchResult,
    BankAccountRecord,
    BankStatementRecord,
    MatchMode,
    MatchRecord,
    ReconciliationRecord,
    StatementTransactionRecord,
    UnmatchedItems,
)
from ..utils.audit_logger import AuditLogger
from ..utils.text_similarity import DescriptionMatcher
from .state import ensure_open, get_open_reconciliation, get_reconciliation

logger = structlog.get_logger()


def ledger_amount_for(amount_cents: int, item: LedgerLineItem) -> int:
    """The ledger side a statement amount is compared against."""
    return item.debit_cents if amount_cents > 0 else item.credit_cents


class MatchEngine:
    """
    Creates and removes matches for a reconciliation.

    Every claim is a conditional flag update checked by row count, issued in
    the caller's unit of work together with the match row, so a pair is
    either fully committed or not at all.
    """

    def __init__(
        self,
        session: Session,
        ledger: Optional[LedgerGateway] = None,
        description_matcher: Optional[DescriptionMatcher] = None,
    ):
        self.session = session
        self.settings = get_settings()
        self.ledger = ledger or SqlLedgerGateway(session)
        self.description_matcher = description_matcher or DescriptionMatcher()
        self.audit = AuditLogger(session)

    def auto_match(
        self,
        reconciliation_id: str,
        description_match: Optional[bool] = None,
        date_tolerance_days: Optional[int] = None,
    ) -> AutoMatchResult:
        """
        Match unmatched statement transactions to unmatched ledger items.

        Args:
            reconciliation_id: Reconciliation to match within
            description_match: Also require similar descriptions
            date_tolerance_days: Maximum distance between the two dates

        Returns:
            AutoMatchResult with the created match ids
        """
        if description_match is None:
            description_match = self.settings.default_description_match
        if date_tolerance_days is None:
            date_tolerance_days = self.settings.default_date_tolerance_days
        if isinstance(date_tolerance_days, bool) or not isinstance(date_tolerance_days, int):
            raise ValidationError(
                "date_tolerance must be an integer number of days",
                context={"date_tolerance": str(date_tolerance_days)},
            )
        if date_tolerance_days < 0:
            raise ValidationError(
                "date_tolerance must not be negative",
                context={"date_tolerance": date_tolerance_days},
            )

        reconciliation = get_open_reconciliation(self.session, reconciliation_id)
        statement = reconciliation.statement
        account = self._get_account(reconciliation.bank_account_id)

        transactions = self._unmatched_statement_transactions(statement.id)
        window = timedelta(days=date_tolerance_days)
        pool = self.ledger.list_unmatched(
            account.gl_account_id,
            statement.start_date - window,
            statement.end_date + window,
        )

        result = AutoMatchResult(
            reconciliation_id=reconciliation.id,
            statement_candidates=len(transactions),
            ledger_candidates=len(pool),
        )
        logger.info(
            "Auto-match started",
            reconciliation_id=reconciliation.id,
            statement_candidates=len(transactions),
            ledger_candidates=len(pool),
            date_tolerance_days=date_tolerance_days,
            description_match=description_match,
        )

        for txn in transactions:
            if txn.amount_cents == 0:
                continue

            best = self._best_candidate(txn, pool, date_tolerance_days, description_match)
            if best is None:
                continue
            if not self._set_transaction_matched(txn.id, True):
                continue

            match = None
            while best is not None:
                pool.remove(best)
                if self.ledger.set_matched(best.id, True):
                    match = self._record_match(reconciliation, txn, best, MatchMode.AUTO)
                    break
                # Item claimed by another writer since the scan; try the next one
                best = self._best_candidate(txn, pool, date_tolerance_days, description_match)

            if match is None:
                self._set_transaction_matched(txn.id, False)
                continue
            result.match_ids.append(match.id)

        self.audit.log(
            AuditAction.AUTO_MATCH_RUN,
            f"Auto-match created {result.matches} matches",
            reconciliation_id=reconciliation.id,
            entity_ids=result.match_ids,
            details={
                "date_tolerance_days": date_tolerance_days,
                "description_match": description_match,
                "statement_candidates": result.statement_candidates,
                "ledger_candidates": result.ledger_candidates,
            },
        )
        return result

    def _best_candidate(
        self,
        txn: StatementTransactionRecord,
        pool: List[LedgerLineItem],
        date_tolerance_days: int,
        description_match: bool,
    ) -> Optional[LedgerLineItem]:
        target = abs(txn.amount_cents)
        best = None
        best_distance = None

        for item in pool:
            ledger_amount = ledger_amount_for(txn.amount_cents, item)
            if ledger_amount <= 0 or not self.settings.amounts_equal(ledger_amount, target):
                continue

            distance = abs((item.entry_date - txn.transaction_date).days)
            if distance > date_tolerance_days:
                continue

            if description_match and not self.description_matcher.matches(
                txn.description, item.description
            ):
                continue

            # Strict comparison keeps the first item on ties
            if best_distance is None or distance < best_distance:
                best = item
                best_distance = distance

        return best

    def manual_match(
        self,
        reconciliation_id: str,
        bank_transaction_id: str,
        journal_line_item_id: str,
        notes: str = "",
    ) -> MatchRecord:
        """Pair two specific items chosen by the user."""
        reconciliation = get_open_reconciliation(self.session, reconciliation_id)

        txn = self.session.get(StatementTransactionRecord, bank_transaction_id)
        if txn is None:
            raise NotFoundError("Statement transaction", bank_transaction_id)
        item = self.ledger.get_item(journal_line_item_id)
        if item is None:
            raise NotFoundError("Journal line item", journal_line_item_id)

        if txn.bank_statement_id != reconciliation.bank_statement_id:
            raise ValidationError(
                "Transaction does not belong to the reconciliation's statement",
                context={
                    "bank_transaction_id": bank_transaction_id,
                    "bank_statement_id": reconciliation.bank_statement_id,
                },
            )
        account = self._get_account(reconciliation.bank_account_id)
        if item.account_id != account.gl_account_id:
            raise ValidationError(
                "Journal line item is not on the bank account's ledger account",
                context={
                    "journal_line_item_id": journal_line_item_id,
                    "gl_account_id": account.gl_account_id,
                },
            )

        if txn.is_matched or item.is_matched:
            raise AlreadyMatchedError(
                "Transaction or journal line item is already matched",
                context={
                    "bank_transaction_id": bank_transaction_id,
                    "journal_line_item_id": journal_line_item_id,
                },
            )

        match = self._claim_pair(reconciliation, txn, item, MatchMode.MANUAL, notes)
        if match is None:
            raise AlreadyMatchedError(
                "Transaction or journal line item was matched concurrently",
                context={
                    "bank_transaction_id": bank_transaction_id,
                    "journal_line_item_id": journal_line_item_id,
                },
            )

        self.audit.log(
            AuditAction.MATCH_CREATED,
            "Manual match created",
            reconciliation_id=reconciliation.id,
            entity_ids=[match.id, bank_transaction_id, journal_line_item_id],
            details={"amount_cents": match.amount_cents, "notes": notes},
        )
        return match

    def unmatch(self, match_id: str) -> None:
        """Remove a match and release both sides."""
        match = self.session.get(MatchRecord, match_id)
        if match is None:
            raise NotFoundError("Match", match_id)
        reconciliation = match.reconciliation
        ensure_open(reconciliation)

        txn_id = match.statement_transaction_id
        item_id = match.journal_line_item_id

        self._set_transaction_matched(txn_id, False)
        self.ledger.set_matched(item_id, False)
        reconciliation.matches.remove(match)
        self.session.flush()

        self.audit.log(
            AuditAction.MATCH_REMOVED,
            "Match removed",
            reconciliation_id=reconciliation.id,
            entity_ids=[match_id, txn_id, item_id],
            details={"matched_by": match.matched_by.value},
        )

    def list_matches(self, reconciliation_id: str) -> List[MatchRecord]:
        get_reconciliation(self.session, reconciliation_id)
        query = (
            select(MatchRecord)
            .where(MatchRecord.reconciliation_id == reconciliation_id)
            .order_by(MatchRecord.created_at, MatchRecord.id)
        )
        return list(self.session.scalars(query))

    def list_unmatched(
        self,
        bank_account_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> UnmatchedItems:
        """Unmatched statement transactions and ledger items of an account."""
        account = self._get_account(bank_account_id)

        query = (
            select(StatementTransactionRecord)
            .join(BankStatementRecord)
            .where(
                BankStatementRecord.bank_account_id == account.id,
                StatementTransactionRecord.is_matched.is_(False),
            )
        )
        if start_date:
            query = query.where(StatementTransactionRecord.transaction_date >= start_date)
        if end_date:
            query = query.where(StatementTransactionRecord.transaction_date <= end_date)
        query = query.order_by(
            StatementTransactionRecord.transaction_date,
            StatementTransactionRecord.line_number,
        )

        transactions = self.session.scalars(query)
        items = self.ledger.list_unmatched(account.gl_account_id, start_date, end_date)
        return UnmatchedItems(
            bank_transactions=[t.to_dict() for t in transactions],
            journal_items=[i.to_dict() for i in items],
        )

    def _claim_pair(
        self,
        reconciliation: ReconciliationRecord,
        txn: StatementTransactionRecord,
        item: LedgerLineItem,
        mode: MatchMode,
        notes: str = "",
    ) -> Optional[MatchRecord]:
        """Claim both sides and record the match, or claim nothing."""
        if not self._set_transaction_matched(txn.id, True):
            return None
        if not self.ledger.set_matched(item.id, True):
            self._set_transaction_matched(txn.id, False)
            return None
        return self._record_match(reconciliation, txn, item, mode, notes)

    def _record_match(
        self,
        reconciliation: ReconciliationRecord,
        txn: StatementTransactionRecord,
        item: LedgerLineItem,
        mode: MatchMode,
        notes: str = "",
    ) -> MatchRecord:
        match = MatchRecord(
            reconciliation_id=reconciliation.id,
            statement_transaction_id=txn.id,
            journal_line_item_id=item.id,
            match_date=date.today(),
            matched_by=mode,
            amount_cents=txn.amount_cents,
            notes=notes or "",
        )
        reconciliation.matches.append(match)
        self.session.flush()

        logger.debug(
            "Match created",
            match_id=match.id,
            mode=mode.value,
            bank_transaction_id=txn.id,
            journal_line_item_id=item.id,
        )
        return match

    def _set_transaction_matched(self, transaction_id: str, matched: bool) -> bool:
        stmt = (
            update(StatementTransactionRecord)
            .where(
                StatementTransactionRecord.id == transaction_id,
                StatementTransactionRecord.is_matched == (not matched),
            )
            .values(is_matched=matched)
            .execution_options(synchronize_session="evaluate")
        )
        return self.session.execute(stmt).rowcount == 1

    def _unmatched_statement_transactions(self, statement_id: str) -> List[StatementTransactionRecord]:
        query = (
            select(StatementTransactionRecord)
            .where(
                StatementTransactionRecord.bank_statement_id == statement_id,
                StatementTransactionRecord.is_matched.is_(False),
            )
            .order_by(
                StatementTransactionRecord.transaction_date,
                StatementTransactionRecord.line_number,
            )
        )
        return list(self.session.scalars(query))

    def _get_account(self, bank_account_id: str) -> BankAccountRecord:
        account = self.session.get(BankAccountRecord, bank_account_id)
        if account is None:
            raise NotFoundError("Bank account", bank_account_id)
        return account
