"""
Module: ledger_kernel.selectors.ledger_selector
Responsibility: Read-only ledger queries: a batch with its lines, the
    batches written for one document, and per-account debit/credit totals
    (trial balance).
Architecture position: Kernel > Selectors.  Imports models only.

Invariants relied on:
    - There are no stored balances.  Every total is summed from LedgerLine
      rows at query time.
    - A posting and its reversal both stay in the ledger, so a voided
      document nets to zero in the trial balance rather than disappearing.
"""

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy import func, select

from ledger_kernel.domain.dtos import AccountType, BatchKind, BatchStatus, DocumentType
from ledger_kernel.models.account import Account
from ledger_kernel.models.ledger import LedgerBatch, LedgerLine
from ledger_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class LedgerLineView:
    line_no: int
    account_id: UUID
    debit: int
    credit: int
    memo: str | None


@dataclass(frozen=True)
class LedgerBatchView:
    id: UUID
    source_type: str
    source_id: UUID
    kind: BatchKind
    status: BatchStatus
    posting_date: date
    currency: str
    memo: str | None
    reversal_of_id: UUID | None
    reversed_by_id: UUID | None
    lines: tuple[LedgerLineView, ...]

    @property
    def total_debits(self) -> int:
        return sum(line.debit for line in self.lines)

    @property
    def total_credits(self) -> int:
        return sum(line.credit for line in self.lines)


@dataclass(frozen=True)
class TrialBalanceRow:
    account_id: UUID
    account_code: str
    account_name: str
    account_type: AccountType
    debit_total: int
    credit_total: int

    @property
    def balance(self) -> int:
        """Net balance (debits - credits)."""
        return self.debit_total - self.credit_total


def _view(batch: LedgerBatch) -> LedgerBatchView:
    return LedgerBatchView(
        id=batch.id,
        source_type=DocumentType(batch.source_type).value,
        source_id=batch.source_id,
        kind=BatchKind(batch.kind),
        status=BatchStatus(batch.status),
        posting_date=batch.posting_date,
        currency=batch.currency,
        memo=batch.memo,
        reversal_of_id=batch.reversal_of_id,
        reversed_by_id=batch.reversed_by_id,
        lines=tuple(
            LedgerLineView(
                line_no=line.line_no,
                account_id=line.account_id,
                debit=line.debit,
                credit=line.credit,
                memo=line.memo,
            )
            for line in batch.lines
        ),
    )


class LedgerSelector(BaseSelector[LedgerLine]):
    """Read-only ledger queries scoped to one org."""

    def get_batch(self, org_id: UUID, batch_id: UUID) -> LedgerBatchView | None:
        batch = self.session.execute(
            select(LedgerBatch).where(
                LedgerBatch.org_id == org_id,
                LedgerBatch.id == batch_id,
            )
        ).scalar_one_or_none()
        return _view(batch) if batch is not None else None

    def batches_for_document(self, org_id: UUID, document_id: UUID) -> list[LedgerBatchView]:
        """POSTING first, then REVERSAL if the document was voided or bounced."""
        batches = self.session.execute(
            select(LedgerBatch)
            .where(
                LedgerBatch.org_id == org_id,
                LedgerBatch.source_id == document_id,
            )
            .order_by(LedgerBatch.reversal_of_id.is_not(None))
        ).scalars().all()
        return [_view(b) for b in batches]

    def trial_balance(self, org_id: UUID, as_of_date: date | None = None) -> list[TrialBalanceRow]:
        """Debit and credit totals per account, ordered by account code."""
        query = (
            select(
                Account.id,
                Account.code,
                Account.name,
                Account.account_type,
                func.coalesce(func.sum(LedgerLine.debit), 0).label("debit_total"),
                func.coalesce(func.sum(LedgerLine.credit), 0).label("credit_total"),
            )
            .join(LedgerLine, LedgerLine.account_id == Account.id)
            .join(LedgerBatch, LedgerBatch.id == LedgerLine.batch_id)
            .where(LedgerBatch.org_id == org_id)
        )
        if as_of_date is not None:
            query = query.where(LedgerBatch.posting_date <= as_of_date)
        query = query.group_by(
            Account.id, Account.code, Account.name, Account.account_type
        ).order_by(Account.code)

        return [
            TrialBalanceRow(
                account_id=row.id,
                account_code=row.code,
                account_name=row.name,
                account_type=AccountType(row.account_type),
                debit_total=int(row.debit_total),
                credit_total=int(row.credit_total),
            )
            for row in self.session.execute(query).all()
        ]

    def account_balance(self, org_id: UUID, account_id: UUID, as_of_date: date | None = None) -> int:
        """Net debits minus credits for one account."""
        query = (
            select(
                func.coalesce(func.sum(LedgerLine.debit), 0)
                - func.coalesce(func.sum(LedgerLine.credit), 0)
            )
            .join(LedgerBatch, LedgerBatch.id == LedgerLine.batch_id)
            .where(
                LedgerBatch.org_id == org_id,
                LedgerLine.account_id == account_id,
            )
        )
        if as_of_date is not None:
            query = query.where(LedgerBatch.posting_date <= as_of_date)
        return int(self.session.execute(query).scalar_one())

    def total_debits_credits(self, org_id: UUID) -> tuple[int, int]:
        """Org-wide (debits, credits); always equal in a healthy ledger."""
        row = self.session.execute(
            select(
                func.coalesce(func.sum(LedgerLine.debit), 0),
                func.coalesce(func.sum(LedgerLine.credit), 0),
            )
            .join(LedgerBatch, LedgerBatch.id == LedgerLine.batch_id)
            .where(LedgerBatch.org_id == org_id)
        ).one()
        return int(row[0]), int(row[1])
