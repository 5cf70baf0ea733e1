"""
LedgerBatch and LedgerLine -- the general ledger.

A LedgerBatch (the GL header) is everything one post or one reversal wrote.
Its lines balance exactly: sum(debit) == sum(credit) in integer minor units.

Contract:
    - (org_id, source_type, source_id, kind) is unique: a document is posted
      at most once and reversed at most once.  This constraint is the final
      backstop against two concurrent posts of the same document.
    - Lines never change after insert.  The only permitted batch update is
      POSTED -> REVERSED together with reversed_by_id.
    - A reversal batch carries reversal_of_id pointing at the original.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.domain.dtos import BatchKind, BatchStatus, DocumentType
from ledger_kernel.domain.posting_engine import BatchDraft, LedgerLineDraft


class LedgerBatch(TrackedBase):
    __tablename__ = "ledger_batches"

    __table_args__ = (
        UniqueConstraint(
            "org_id", "source_type", "source_id", "kind", name="uq_ledger_batch_source"
        ),
        Index("idx_ledger_batch_org_date", "org_id", "posting_date"),
    )

    org_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("organizations.id"), nullable=False
    )

    source_type: Mapped[DocumentType] = mapped_column(String(20), nullable=False)

    source_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("documents.id"), nullable=False
    )

    kind: Mapped[BatchKind] = mapped_column(String(10), nullable=False)

    status: Mapped[BatchStatus] = mapped_column(
        String(10), default=BatchStatus.POSTED, nullable=False
    )

    posting_date: Mapped[date] = mapped_column(Date, nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    memo: Mapped[str | None] = mapped_column(String(500), nullable=True)

    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("ledger_batches.id"), nullable=True
    )

    reversed_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("ledger_batches.id"), nullable=True
    )

    lines: Mapped[list["LedgerLine"]] = relationship(
        back_populates="batch",
        cascade="all",
        lazy="selectin",
        order_by="LedgerLine.line_no",
    )

    def __repr__(self) -> str:
        return f"<LedgerBatch {self.kind} {self.source_type} {self.source_id}>"

    @property
    def total_debits(self) -> int:
        return sum(line.debit for line in self.lines)

    @property
    def total_credits(self) -> int:
        return sum(line.credit for line in self.lines)

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits

    def to_draft(self) -> BatchDraft:
        """Re-read the stored batch in the engine's terms."""
        return BatchDraft(
            org_id=self.org_id,
            source_type=DocumentType(self.source_type),
            source_id=self.source_id,
            kind=BatchKind(self.kind),
            posting_date=self.posting_date,
            currency=self.currency,
            lines=tuple(
                LedgerLineDraft(
                    line_no=line.line_no,
                    account_id=line.account_id,
                    debit=line.debit,
                    credit=line.credit,
                    memo=line.memo,
                )
                for line in self.lines
            ),
            memo=self.memo,
            reversal_of_id=self.reversal_of_id,
        )


class LedgerLine(TrackedBase):
    __tablename__ = "ledger_lines"

    __table_args__ = (
        UniqueConstraint("batch_id", "line_no", name="uq_ledger_line_no"),
        CheckConstraint("debit >= 0 AND credit >= 0", name="ck_ledger_line_non_negative"),
        CheckConstraint(
            "(debit > 0 AND credit = 0) OR (credit > 0 AND debit = 0)",
            name="ck_ledger_line_one_side",
        ),
        Index("idx_ledger_line_account", "account_id"),
    )

    batch_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("ledger_batches.id"), nullable=False
    )

    line_no: Mapped[int] = mapped_column(Integer, nullable=False)

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=False
    )

    debit: Mapped[int] = mapped_column(nullable=False, default=0)

    credit: Mapped[int] = mapped_column(nullable=False, default=0)

    memo: Mapped[str | None] = mapped_column(String(500), nullable=True)

    batch: Mapped[LedgerBatch] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        return f"<LedgerLine {self.account_id} Dr {self.debit} Cr {self.credit}>"
