"""
Bank reconciliation models.

BankAccount and BankTransaction arrive from outside (bank-feed ingestion is
not part of the kernel); ReconciliationSession and ReconciliationMatch are
written by ReconciliationService.

Contract:
    - ReconciliationMatch.bank_transaction_id is unique across all sessions:
      a bank transaction is matched at most once, ever.
    - (bank_account_id, period_start, period_end) is unique; overlapping
      (not identical) periods are rejected by the service under a row lock
      on the bank account.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.domain.dtos import (
    MatchType,
    ReconciliationMatchInfo,
    ReconciliationSessionInfo,
    ReconciliationStatus,
)


class BankAccount(TrackedBase):
    __tablename__ = "bank_accounts"

    org_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("organizations.id"), nullable=False
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    # GL account the bank account posts to
    gl_account_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=False
    )

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class BankTransaction(TrackedBase):
    """A normalized statement line.  Positive amount = money in."""

    __tablename__ = "bank_transactions"

    __table_args__ = (
        Index("idx_bank_txn_account_date", "bank_account_id", "transaction_date"),
    )

    org_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("organizations.id"), nullable=False
    )

    bank_account_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("bank_accounts.id"), nullable=False
    )

    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)

    amount: Mapped[int] = mapped_column(nullable=False)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)


class ReconciliationSession(TrackedBase):
    __tablename__ = "reconciliation_sessions"

    __table_args__ = (
        UniqueConstraint(
            "bank_account_id",
            "period_start",
            "period_end",
            name="uq_reconciliation_session_period",
        ),
    )

    org_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("organizations.id"), nullable=False
    )

    bank_account_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("bank_accounts.id"), nullable=False
    )

    period_start: Mapped[date] = mapped_column(Date, nullable=False)

    period_end: Mapped[date] = mapped_column(Date, nullable=False)

    opening_balance: Mapped[int] = mapped_column(nullable=False)

    closing_balance: Mapped[int] = mapped_column(nullable=False)

    status: Mapped[ReconciliationStatus] = mapped_column(
        String(10), default=ReconciliationStatus.OPEN, nullable=False
    )

    closed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def to_dto(self) -> ReconciliationSessionInfo:
        return ReconciliationSessionInfo(
            id=self.id,
            org_id=self.org_id,
            bank_account_id=self.bank_account_id,
            period_start=self.period_start,
            period_end=self.period_end,
            opening_balance=self.opening_balance,
            closing_balance=self.closing_balance,
            status=ReconciliationStatus(self.status),
            closed_at=self.closed_at,
        )

    def covers(self, day: date) -> bool:
        return self.period_start <= day <= self.period_end


class ReconciliationMatch(TrackedBase):
    __tablename__ = "reconciliation_matches"

    __table_args__ = (
        UniqueConstraint("bank_transaction_id", name="uq_reconciliation_match_bank_txn"),
        Index("idx_reconciliation_match_session", "session_id"),
    )

    session_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("reconciliation_sessions.id"), nullable=False
    )

    bank_transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("bank_transactions.id"), nullable=False
    )

    ledger_batch_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("ledger_batches.id"), nullable=False
    )

    match_type: Mapped[MatchType] = mapped_column(
        String(10), default=MatchType.MANUAL, nullable=False
    )

    def to_dto(self) -> ReconciliationMatchInfo:
        return ReconciliationMatchInfo(
            id=self.id,
            session_id=self.session_id,
            bank_transaction_id=self.bank_transaction_id,
            ledger_batch_id=self.ledger_batch_id,
            match_type=MatchType(self.match_type),
            matched_by_id=self.created_by_id,
        )
