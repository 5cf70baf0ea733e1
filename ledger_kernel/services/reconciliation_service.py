"""
ReconciliationService -- ties bank statement lines to posted ledger batches.

Responsibility:
    Opens reconciliation sessions over a bank account and period, records
    matches between bank transactions and ledger batches, closes sessions,
    and proposes candidate matches by amount and date.

Architecture position:
    Kernel > Services.  Called by the CommandGateway; flushes, never commits.

Invariants enforced:
    - Sessions of one bank account never overlap: pre-checked under a row
      lock on the bank account, with the exact-period unique constraint as
      a backstop.
    - A bank transaction is matched at most once across all sessions,
      enforced by a unique constraint on the match table.
    - Closed sessions accept no further matches.

Failure modes:
    - ReconciliationSessionNotFoundError / ReferenceNotFoundError /
      LedgerBatchNotFoundError for unknown ids.
    - InvalidPeriodError, InactiveReferenceError,
      BankTransactionOutsideSessionError for bad input.
    - ReconciliationPeriodOverlapError, BankTransactionAlreadyMatchedError,
      ReconciliationSessionClosedError for state conflicts.
"""

from datetime import date, timedelta
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from ledger_kernel.domain.dtos import (
    BatchKind,
    BatchStatus,
    MatchSuggestion,
    MatchType,
    ReconciliationMatchInfo,
    ReconciliationSessionInfo,
    ReconciliationStatus,
)
from ledger_kernel.domain.org_context import OrgContext
from ledger_kernel.exceptions import (
    BankTransactionAlreadyMatchedError,
    BankTransactionOutsideSessionError,
    InvalidPeriodError,
    LedgerBatchNotFoundError,
    ReconciliationPeriodOverlapError,
    ReconciliationSessionClosedError,
    ReconciliationSessionNotFoundError,
    ReferenceNotFoundError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_log import AuditAction
from ledger_kernel.models.ledger import LedgerBatch, LedgerLine
from ledger_kernel.models.reconciliation import (
    BankAccount,
    BankTransaction,
    ReconciliationMatch,
    ReconciliationSession,
)
from ledger_kernel.services.auditor_service import AuditorService
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.reference_data import (
    MasterDataLookup,
    SqlMasterDataLookup,
    require_active,
)

logger = get_logger("services.reconciliation")


class ReconciliationService(BaseService[ReconciliationSession]):
    """Bank reconciliation sessions and matches."""

    def __init__(
        self,
        session,
        clock=None,
        master_data: MasterDataLookup | None = None,
        auditor: AuditorService | None = None,
    ):
        super().__init__(session, clock)
        self._master_data = master_data or SqlMasterDataLookup(session)
        self._auditor = auditor or AuditorService(session, self.clock)

    def _load_session(self, ctx: OrgContext, session_id: UUID, lock: bool = False) -> ReconciliationSession:
        if lock:
            recon = self._lock_row(ReconciliationSession, session_id)
        else:
            recon = self.session.get(ReconciliationSession, session_id)
        if recon is None or recon.org_id != ctx.org_id:
            raise ReconciliationSessionNotFoundError(session_id)
        return recon

    def get_session(self, ctx: OrgContext, session_id: UUID) -> ReconciliationSessionInfo:
        return self._load_session(ctx, session_id).to_dto()

    def create_session(
        self,
        ctx: OrgContext,
        actor_id: UUID,
        bank_account_id: UUID,
        period_start: date,
        period_end: date,
        opening_balance: int,
        closing_balance: int,
    ) -> ReconciliationSessionInfo:
        """
        Open a session for one bank account and statement period.

        Raises:
            ReferenceNotFoundError: Unknown bank account.
            InactiveReferenceError: Bank account is inactive.
            InvalidPeriodError: period_end before period_start.
            ReconciliationPeriodOverlapError: Another session overlaps.
        """
        require_active(self._master_data.get_bank_account(ctx.org_id, bank_account_id), "BankAccount")
        if period_end < period_start:
            raise InvalidPeriodError(period_start, period_end)

        # Serializes session creation per bank account
        self._lock_row(BankAccount, bank_account_id)

        overlapping = self.session.execute(
            select(ReconciliationSession)
            .where(
                ReconciliationSession.bank_account_id == bank_account_id,
                ReconciliationSession.period_start <= period_end,
                ReconciliationSession.period_end >= period_start,
            )
            .limit(1)
        ).scalar_one_or_none()
        if overlapping is not None:
            raise ReconciliationPeriodOverlapError(
                bank_account_id, period_start, period_end, overlapping.id
            )

        recon = ReconciliationSession(
            org_id=ctx.org_id,
            bank_account_id=bank_account_id,
            period_start=period_start,
            period_end=period_end,
            opening_balance=opening_balance,
            closing_balance=closing_balance,
            status=ReconciliationStatus.OPEN,
            created_by_id=actor_id,
        )
        savepoint = self.session.begin_nested()
        try:
            self.session.add(recon)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            raise ReconciliationPeriodOverlapError(
                bank_account_id, period_start, period_end
            ) from None

        info = recon.to_dto()
        self._auditor.record(
            ctx.org_id, actor_id, "ReconciliationSession", recon.id, AuditAction.CREATE,
            after=info.to_dict(),
        )
        logger.info(
            "reconciliation_session_created",
            extra={
                "session_id": str(recon.id),
                "bank_account_id": str(bank_account_id),
                "period_start": period_start.isoformat(),
                "period_end": period_end.isoformat(),
            },
        )
        return info

    def match_transaction(
        self,
        ctx: OrgContext,
        actor_id: UUID,
        session_id: UUID,
        bank_transaction_id: UUID,
        ledger_batch_id: UUID,
        match_type: MatchType = MatchType.MANUAL,
    ) -> ReconciliationMatchInfo:
        """
        Match one bank transaction to one ledger batch.

        Raises:
            ReconciliationSessionClosedError: Session is CLOSED.
            BankTransactionOutsideSessionError: Wrong bank account or date.
            BankTransactionAlreadyMatchedError: Transaction matched anywhere.

        Sessions on one account never overlap, so a transaction matched in
        one session fails the period check in every other session.
        """
        recon = self._load_session(ctx, session_id, lock=True)
        if recon.status == ReconciliationStatus.CLOSED:
            raise ReconciliationSessionClosedError(session_id)

        txn = self.session.get(BankTransaction, bank_transaction_id)
        if txn is None or txn.org_id != ctx.org_id:
            raise ReferenceNotFoundError("BankTransaction", bank_transaction_id)
        if txn.bank_account_id != recon.bank_account_id:
            raise BankTransactionOutsideSessionError(
                bank_transaction_id, session_id, "belongs to a different bank account"
            )
        if not recon.covers(txn.transaction_date):
            raise BankTransactionOutsideSessionError(
                bank_transaction_id,
                session_id,
                f"dated {txn.transaction_date.isoformat()}, outside the session period",
            )

        batch = self.session.get(LedgerBatch, ledger_batch_id)
        if batch is None or batch.org_id != ctx.org_id:
            raise LedgerBatchNotFoundError(ledger_batch_id)

        already = self.session.execute(
            select(ReconciliationMatch.id).where(
                ReconciliationMatch.bank_transaction_id == bank_transaction_id
            )
        ).scalar_one_or_none()
        if already is not None:
            raise BankTransactionAlreadyMatchedError(bank_transaction_id)

        match = ReconciliationMatch(
            session_id=recon.id,
            bank_transaction_id=bank_transaction_id,
            ledger_batch_id=ledger_batch_id,
            match_type=MatchType(match_type),
            created_by_id=actor_id,
        )
        savepoint = self.session.begin_nested()
        try:
            self.session.add(match)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            raise BankTransactionAlreadyMatchedError(bank_transaction_id) from None

        info = match.to_dto()
        self._auditor.record(
            ctx.org_id, actor_id, "ReconciliationMatch", match.id, AuditAction.CREATE,
            after=info.to_dict(),
        )
        logger.info(
            "reconciliation_match_created",
            extra={
                "session_id": str(recon.id),
                "bank_transaction_id": str(bank_transaction_id),
                "batch_id": str(ledger_batch_id),
                "match_type": info.match_type.value,
            },
        )
        return info

    def close_session(
        self,
        ctx: OrgContext,
        actor_id: UUID,
        session_id: UUID,
        final_closing_balance: int | None = None,
    ) -> ReconciliationSessionInfo:
        """
        Close an OPEN session, optionally restating its closing balance.

        Raises:
            ReconciliationSessionClosedError: Already CLOSED.
        """
        recon = self._load_session(ctx, session_id, lock=True)
        if recon.status == ReconciliationStatus.CLOSED:
            raise ReconciliationSessionClosedError(session_id)

        before = recon.to_dto().to_dict()
        recon.status = ReconciliationStatus.CLOSED
        recon.closed_at = self.clock.now()
        if final_closing_balance is not None:
            recon.closing_balance = final_closing_balance
        recon.updated_by_id = actor_id
        self.session.flush()

        info = recon.to_dto()
        self._auditor.record(
            ctx.org_id, actor_id, "ReconciliationSession", recon.id, AuditAction.UPDATE,
            before=before, after=info.to_dict(),
        )
        logger.info(
            "reconciliation_session_closed",
            extra={"session_id": str(recon.id), "closing_balance": recon.closing_balance},
        )
        return info

    def suggest_matches(
        self,
        ctx: OrgContext,
        session_id: UUID,
        date_window_days: int = 3,
    ) -> list[MatchSuggestion]:
        """
        Propose one ledger batch per unmatched bank transaction.

        A candidate is an unmatched, unreversed POSTING batch whose net
        movement on the bank's GL account (debit - credit) equals the
        transaction's signed amount and whose posting date is within
        ``date_window_days`` of the transaction date.  Closest date wins;
        each batch is proposed at most once.  Nothing is written.
        """
        recon = self._load_session(ctx, session_id)
        bank = self._master_data.get_bank_account(ctx.org_id, recon.bank_account_id)
        window = timedelta(days=date_window_days)

        matched_txn_ids = select(ReconciliationMatch.bank_transaction_id)
        transactions = self.session.execute(
            select(BankTransaction)
            .where(
                BankTransaction.bank_account_id == recon.bank_account_id,
                BankTransaction.transaction_date >= recon.period_start,
                BankTransaction.transaction_date <= recon.period_end,
                BankTransaction.id.not_in(matched_txn_ids),
            )
            .order_by(BankTransaction.transaction_date, BankTransaction.id)
        ).scalars().all()
        if not transactions:
            return []

        matched_batch_ids = select(ReconciliationMatch.ledger_batch_id)
        net = func.sum(LedgerLine.debit) - func.sum(LedgerLine.credit)
        rows = self.session.execute(
            select(LedgerBatch.id, LedgerBatch.posting_date, net.label("net"))
            .join(LedgerLine, LedgerLine.batch_id == LedgerBatch.id)
            .where(
                LedgerBatch.org_id == ctx.org_id,
                LedgerBatch.kind == BatchKind.POSTING,
                LedgerBatch.status == BatchStatus.POSTED,
                LedgerBatch.posting_date >= recon.period_start - window,
                LedgerBatch.posting_date <= recon.period_end + window,
                LedgerBatch.id.not_in(matched_batch_ids),
                LedgerLine.account_id == bank.gl_account_id,
            )
            .group_by(LedgerBatch.id, LedgerBatch.posting_date)
        ).all()

        candidates = [(row.id, row.posting_date, int(row.net)) for row in rows if row.net]
        used: set[UUID] = set()
        suggestions = []
        for txn in transactions:
            best = None
            for batch_id, posting_date, amount in candidates:
                if batch_id in used or amount != txn.amount:
                    continue
                days = abs((txn.transaction_date - posting_date).days)
                if days > date_window_days:
                    continue
                if best is None or days < best[0]:
                    best = (days, batch_id, posting_date)
            if best is None:
                continue
            used.add(best[1])
            suggestions.append(
                MatchSuggestion(
                    bank_transaction_id=txn.id,
                    ledger_batch_id=best[1],
                    amount=txn.amount,
                    transaction_date=txn.transaction_date,
                    posting_date=best[2],
                )
            )

        logger.debug(
            "reconciliation_suggestions_computed",
            extra={"session_id": str(recon.id), "suggestion_count": len(suggestions)},
        )
        return suggestions
