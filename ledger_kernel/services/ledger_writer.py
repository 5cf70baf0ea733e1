"""
LedgerWriter -- persists posting batches and performs reversals.

Responsibility:
    Turns a balanced ``BatchDraft`` from the PostingEngine into LedgerBatch
    and LedgerLine rows, and reverses an existing batch by writing its
    mirror image and linking the two.

Architecture position:
    Kernel > Services.  The only writer of ledger tables.  Called by
    DocumentService during post, void and bounce.

Invariants enforced:
    - Balance is re-checked on the draft before anything is written.
    - A batch is reversed at most once: the original is row-locked, and a
      second reversal request returns the existing reversal.
    - The original batch only changes status (POSTED -> REVERSED) and its
      reversed_by_id link; its lines never change.

Failure modes:
    - LedgerBatchNotFoundError: unknown batch or another org's batch.
    - UnbalancedBatchError: propagated from the engine (never expected).
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.domain.dtos import BatchKind, BatchStatus
from ledger_kernel.domain.posting_engine import BatchDraft, PostingEngine
from ledger_kernel.exceptions import LedgerBatchNotFoundError, UnbalancedBatchError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.ledger import LedgerBatch, LedgerLine
from ledger_kernel.services.base import BaseService

logger = get_logger("services.ledger_writer")


class LedgerWriter(BaseService[LedgerBatch]):
    """Ledger persistence.  Flushes, never commits."""

    def __init__(self, session, clock=None, engine: PostingEngine | None = None):
        super().__init__(session, clock)
        self._engine = engine or PostingEngine()

    def write(self, draft: BatchDraft, actor_id: UUID) -> LedgerBatch:
        """
        Insert a batch and its lines.

        Raises:
            UnbalancedBatchError: The draft does not balance.
        """
        if not draft.is_balanced:
            logger.critical(
                "invariant_violation",
                extra={
                    "invariant": "balanced_batch",
                    "source_id": str(draft.source_id),
                    "debits": draft.total_debits,
                    "credits": draft.total_credits,
                    "alert": True,
                },
            )
            raise UnbalancedBatchError(
                draft.source_type.value,
                draft.source_id,
                draft.total_debits,
                draft.total_credits,
            )

        batch = LedgerBatch(
            org_id=draft.org_id,
            source_type=draft.source_type,
            source_id=draft.source_id,
            kind=draft.kind,
            status=BatchStatus.POSTED,
            posting_date=draft.posting_date,
            currency=draft.currency,
            memo=draft.memo,
            reversal_of_id=draft.reversal_of_id,
            created_by_id=actor_id,
            lines=[
                LedgerLine(
                    line_no=line.line_no,
                    account_id=line.account_id,
                    debit=line.debit,
                    credit=line.credit,
                    memo=line.memo,
                    created_by_id=actor_id,
                )
                for line in draft.lines
            ],
        )
        self.session.add(batch)
        self.session.flush()

        logger.info(
            "ledger_batch_written",
            extra={
                "batch_id": str(batch.id),
                "kind": draft.kind.value,
                "source_type": draft.source_type.value,
                "source_id": str(draft.source_id),
                "line_count": len(draft.lines),
                "total": draft.total_debits,
            },
        )
        return batch

    def get_batch(self, org_id: UUID, batch_id: UUID) -> LedgerBatch:
        batch = self.session.get(LedgerBatch, batch_id)
        if batch is None or batch.org_id != org_id:
            raise LedgerBatchNotFoundError(batch_id)
        return batch

    def find_source_batch(self, org_id: UUID, source_id: UUID, kind: BatchKind) -> LedgerBatch | None:
        return self.session.execute(
            select(LedgerBatch).where(
                LedgerBatch.org_id == org_id,
                LedgerBatch.source_id == source_id,
                LedgerBatch.kind == kind,
            )
        ).scalar_one_or_none()

    def reverse(
        self,
        org_id: UUID,
        batch_id: UUID,
        posting_date: date,
        actor_id: UUID,
    ) -> LedgerBatch:
        """
        Write the reversal of ``batch_id`` dated ``posting_date``.

        Postconditions:
            - Original is REVERSED with reversed_by_id set.
            - Returned batch has kind REVERSAL and reversal_of_id set.
            - Calling again returns the same reversal batch.

        Raises:
            LedgerBatchNotFoundError: Unknown batch.
        """
        original = self._lock_row(LedgerBatch, batch_id)
        if original is None or original.org_id != org_id:
            raise LedgerBatchNotFoundError(batch_id)

        if original.status == BatchStatus.REVERSED and original.reversed_by_id:
            logger.info(
                "ledger_batch_reversal_replayed",
                extra={
                    "batch_id": str(original.id),
                    "reversal_batch_id": str(original.reversed_by_id),
                },
            )
            return self.get_batch(org_id, original.reversed_by_id)

        reversal_draft = self._engine.build_reversal(
            original_batch_id=original.id,
            original=original.to_draft(),
            posting_date=posting_date,
        )
        reversal = self.write(reversal_draft, actor_id)

        original.status = BatchStatus.REVERSED
        original.reversed_by_id = reversal.id
        original.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "ledger_batch_reversed",
            extra={
                "batch_id": str(original.id),
                "reversal_batch_id": str(reversal.id),
                "posting_date": posting_date.isoformat(),
            },
        )
        return reversal
