"""
Double-entry posting engine.

Pure functional core: turns a document (already resolved to accounts and
integer minor-unit amounts) into a balanced batch of ledger line drafts, and
turns an existing batch into its reversal.  No ORM, no clock, no I/O.

Algorithm (``build``):
    1. Sum line subtotals per target account.
    2. Sum line tax per tax account.
    3. Emit one line per account group on the rule's detail side.
    4. Emit one control line for the document total on the opposite side.
    5. Assert debits == credits exactly (UnbalancedBatchError otherwise).

Journals skip the control line; their lines are grouped per (account, side).
"""

from collections import OrderedDict
from dataclasses import dataclass
from datetime import date
from typing import Sequence
from uuid import UUID

from ledger_kernel.domain.dtos import BatchKind, DocumentType, LineSide
from ledger_kernel.domain.posting_rules import PostingRuleRegistry, get_default_registry
from ledger_kernel.exceptions import (
    InvalidAmountError,
    InvalidDocumentError,
    MultiCurrencyNotSupportedError,
    UnbalancedBatchError,
)
from ledger_kernel.logging_config import get_logger

logger = get_logger("domain.posting_engine")


@dataclass(frozen=True)
class ResolvedLine:
    """A document line with its target accounts resolved."""

    line_no: int
    account_id: UUID
    subtotal: int
    tax: int = 0
    tax_account_id: UUID | None = None
    side: LineSide | None = None


@dataclass(frozen=True)
class PostingRequest:
    org_id: UUID
    source_type: DocumentType
    source_id: UUID
    posting_date: date
    currency: str
    base_currency: str
    total: int
    lines: tuple[ResolvedLine, ...]
    control_account_id: UUID | None = None
    memo: str | None = None


@dataclass(frozen=True)
class LedgerLineDraft:
    line_no: int
    account_id: UUID
    debit: int
    credit: int
    memo: str | None = None

    @property
    def side(self) -> LineSide:
        return LineSide.DEBIT if self.debit else LineSide.CREDIT

    @property
    def amount(self) -> int:
        return self.debit or self.credit

    def swapped(self, line_no: int, memo: str | None) -> "LedgerLineDraft":
        return LedgerLineDraft(
            line_no=line_no,
            account_id=self.account_id,
            debit=self.credit,
            credit=self.debit,
            memo=memo,
        )


@dataclass(frozen=True)
class BatchDraft:
    org_id: UUID
    source_type: DocumentType
    source_id: UUID
    kind: BatchKind
    posting_date: date
    currency: str
    lines: tuple[LedgerLineDraft, ...]
    memo: str | None = None
    reversal_of_id: UUID | None = None

    @property
    def total_debits(self) -> int:
        return sum(line.debit for line in self.lines)

    @property
    def total_credits(self) -> int:
        return sum(line.credit for line in self.lines)

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits


def _require_minor_units(value: object, field: str) -> None:
    # bool is an int subclass; True is not an amount
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmountError(field, value, "must be an integer in minor units")
    if value < 0:
        raise InvalidAmountError(field, value, "must not be negative")


def _line(line_no: int, account_id: UUID, side: LineSide, amount: int, memo: str | None) -> LedgerLineDraft:
    if side is LineSide.DEBIT:
        return LedgerLineDraft(line_no, account_id, debit=amount, credit=0, memo=memo)
    return LedgerLineDraft(line_no, account_id, debit=0, credit=amount, memo=memo)


class PostingEngine:
    """Builds balanced ledger batches for documents and their reversals."""

    def __init__(self, registry: PostingRuleRegistry | None = None):
        self._registry = registry or get_default_registry()

    def build(self, request: PostingRequest) -> BatchDraft:
        """
        Build the posting batch for a document.

        Raises:
            MultiCurrencyNotSupportedError: Document currency is not the base currency.
            InvalidAmountError: An amount is not a non-negative int.
            InvalidDocumentError: Missing control/tax account, bad journal line,
                or nothing to post.
            UnbalancedBatchError: Debits and credits differ (programming defect).
        """
        if request.currency != request.base_currency:
            raise MultiCurrencyNotSupportedError(request.currency, request.base_currency)

        _require_minor_units(request.total, "total")
        for line in request.lines:
            _require_minor_units(line.subtotal, f"line {line.line_no} subtotal")
            _require_minor_units(line.tax, f"line {line.line_no} tax")

        rule = self._registry.get_rule(request.source_type)

        if rule.detail_side is None:
            lines = self._journal_lines(request)
        else:
            lines = self._document_lines(request, rule.detail_side)

        if not lines:
            raise InvalidDocumentError("document has no amounts to post")

        batch = BatchDraft(
            org_id=request.org_id,
            source_type=request.source_type,
            source_id=request.source_id,
            kind=BatchKind.POSTING,
            posting_date=request.posting_date,
            currency=request.base_currency,
            lines=tuple(lines),
            memo=request.memo,
        )
        self._assert_balanced(batch)
        return batch

    def build_reversal(
        self,
        original_batch_id: UUID,
        original: BatchDraft,
        posting_date: date,
    ) -> BatchDraft:
        """
        Mirror an existing batch: same accounts and amounts, sides swapped.

        ``original`` is the stored batch re-read as a draft; the reversal is
        dated ``posting_date`` (the void date) and points back at it.
        """
        memo = f"Reversal of {original.memo}" if original.memo else "Reversal"
        lines = tuple(
            line.swapped(line_no=i, memo=line.memo)
            for i, line in enumerate(original.lines, start=1)
        )
        batch = BatchDraft(
            org_id=original.org_id,
            source_type=original.source_type,
            source_id=original.source_id,
            kind=BatchKind.REVERSAL,
            posting_date=posting_date,
            currency=original.currency,
            lines=lines,
            memo=memo,
            reversal_of_id=original_batch_id,
        )
        self._assert_balanced(batch)
        return batch

    def _document_lines(self, request: PostingRequest, detail_side: LineSide) -> list[LedgerLineDraft]:
        detail: OrderedDict[UUID, int] = OrderedDict()
        tax: OrderedDict[UUID, int] = OrderedDict()
        for line in request.lines:
            detail[line.account_id] = detail.get(line.account_id, 0) + line.subtotal
            if line.tax:
                if line.tax_account_id is None:
                    raise InvalidDocumentError("line carries tax but no tax account", line.line_no)
                tax[line.tax_account_id] = tax.get(line.tax_account_id, 0) + line.tax

        if request.total and request.control_account_id is None:
            raise InvalidDocumentError("no control account resolved")

        out: list[LedgerLineDraft] = []
        for account_id, amount in list(detail.items()) + list(tax.items()):
            if amount:
                out.append(_line(len(out) + 1, account_id, detail_side, amount, request.memo))
        if request.total:
            out.append(
                _line(
                    len(out) + 1,
                    request.control_account_id,
                    detail_side.opposite(),
                    request.total,
                    request.memo,
                )
            )
        return out

    def _journal_lines(self, request: PostingRequest) -> list[LedgerLineDraft]:
        groups: OrderedDict[tuple[UUID, LineSide], int] = OrderedDict()
        for line in request.lines:
            if line.side is None:
                raise InvalidDocumentError("journal line needs a side", line.line_no)
            if line.tax:
                raise InvalidDocumentError("journal lines cannot carry tax", line.line_no)
            key = (line.account_id, line.side)
            groups[key] = groups.get(key, 0) + line.subtotal

        out: list[LedgerLineDraft] = []
        for (account_id, side), amount in groups.items():
            if amount:
                out.append(_line(len(out) + 1, account_id, side, amount, request.memo))
        return out

    def _assert_balanced(self, batch: BatchDraft) -> None:
        debits = batch.total_debits
        credits = batch.total_credits
        if debits != credits:
            logger.critical(
                "invariant_violation",
                extra={
                    "invariant": "balanced_batch",
                    "source_type": batch.source_type.value,
                    "source_id": str(batch.source_id),
                    "kind": batch.kind.value,
                    "debits": debits,
                    "credits": credits,
                    "alert": True,
                },
            )
            raise UnbalancedBatchError(
                batch.source_type.value, batch.source_id, debits, credits
            )
        logger.debug(
            "balance_validated",
            extra={
                "source_id": str(batch.source_id),
                "kind": batch.kind.value,
                "line_count": len(batch.lines),
                "total": debits,
            },
        )
