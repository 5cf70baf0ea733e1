"""
DocumentService -- the document state machine.

Responsibility:
    Creates and edits DRAFT documents, posts them to the ledger, and voids
    or bounces posted documents through compensating reversals.  Every
    document type shares this one state machine; per-type behaviour comes
    from its PostingRule.

        DRAFT --post--> POSTED --void--> VOID
                               --bounce--> BOUNCED   (payments only)

Architecture position:
    Kernel > Services.  Called by the CommandGateway inside a single
    transaction; flushes, never commits.

Invariants enforced:
    - Only DRAFT documents are editable; status only moves forward.
    - No create/update/post/void/bounce on a date inside the lock period
      (checked before any mutation).
    - A posted document has exactly one POSTING batch; a voided or bounced
      one also has exactly one REVERSAL batch.
    - Payment settlement never pushes an invoice or bill past its total,
      and a document with settled amounts cannot be voided.
    - Every transition writes an audit entry in the same transaction.

Failure modes:
    - DocumentNotFoundError: missing, another org's, or wrong route type.
    - DocumentNotEditableError / InvalidDocumentTransitionError: wrong status.
    - LockDateViolationError: date inside the lock period.
    - Validation errors for master data, amounts, journals and settlement.
"""

from collections import OrderedDict
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from ledger_kernel.domain.currency import CurrencyRegistry
from ledger_kernel.domain.dtos import (
    BatchKind,
    DocumentDraft,
    DocumentInfo,
    DocumentStatus,
    DocumentType,
    DraftLine,
    LineSide,
    PostResult,
    VoidResult,
)
from ledger_kernel.domain.line_calculator import LineAmounts, TaxRate, compute_line, sum_lines
from ledger_kernel.domain.lock_date import ensure_not_locked
from ledger_kernel.domain.money import exact_minor_units
from ledger_kernel.domain.org_context import OrgContext
from ledger_kernel.domain.posting_engine import PostingEngine, PostingRequest, ResolvedLine
from ledger_kernel.domain.posting_rules import (
    PostingRule,
    PostingRuleRegistry,
    get_default_registry,
)
from ledger_kernel.exceptions import (
    BounceNotAllowedError,
    DocumentHasSettlementsError,
    DocumentNotEditableError,
    DocumentNotFoundError,
    InvalidAccountTypeError,
    InvalidAmountError,
    InvalidDocumentError,
    InvalidDocumentTransitionError,
    LedgerBatchNotFoundError,
    OverpaymentError,
    UnbalancedJournalError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_log import AuditAction
from ledger_kernel.models.document import Document, DocumentLine
from ledger_kernel.services.auditor_service import AuditorService
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.ledger_writer import LedgerWriter
from ledger_kernel.services.reference_data import (
    MasterDataLookup,
    SqlMasterDataLookup,
    require_active,
)
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.document")

ENTITY_TYPE = "Document"


@dataclass(frozen=True)
class _PricedLine:
    """A validated draft line with its account resolved and amounts computed."""

    line_no: int
    source: DraftLine
    account_id: UUID
    quantity: Decimal
    unit_price: Decimal
    discount: Decimal
    amounts: LineAmounts


class DocumentService(BaseService[Document]):
    """
    Document lifecycle operations.

    Every operation takes the request's ``OrgContext`` and the acting user.
    ``document_type``, when given, must match the stored document; a
    mismatch is reported as NotFound so a route cannot reach another
    type's documents.
    """

    def __init__(
        self,
        session,
        clock=None,
        master_data: MasterDataLookup | None = None,
        auditor: AuditorService | None = None,
        ledger_writer: LedgerWriter | None = None,
        engine: PostingEngine | None = None,
        registry: PostingRuleRegistry | None = None,
    ):
        super().__init__(session, clock)
        self._registry = registry or get_default_registry()
        self._engine = engine or PostingEngine(self._registry)
        self._master_data = master_data or SqlMasterDataLookup(session)
        self._auditor = auditor or AuditorService(session, self.clock)
        self._ledger_writer = ledger_writer or LedgerWriter(session, self.clock, self._engine)
        self._sequences = SequenceService(session)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(
        self,
        ctx: OrgContext,
        document_id: UUID,
        document_type: DocumentType | None = None,
    ) -> DocumentInfo:
        return self._load(ctx, document_id, document_type).to_dto()

    def _load(
        self,
        ctx: OrgContext,
        document_id: UUID,
        document_type: DocumentType | None = None,
        lock: bool = False,
    ) -> Document:
        if lock:
            document = self._lock_row(Document, document_id)
        else:
            document = self.session.get(Document, document_id)
        if document is None or document.org_id != ctx.org_id:
            raise DocumentNotFoundError(document_id)
        if document_type is not None and document.document_type != document_type:
            raise DocumentNotFoundError(document_id)
        return document

    # ------------------------------------------------------------------
    # Draft editing
    # ------------------------------------------------------------------

    def create(self, ctx: OrgContext, actor_id: UUID, draft: DocumentDraft) -> DocumentInfo:
        """
        Validate and insert a DRAFT document.

        Raises:
            LockDateViolationError: document_date inside the lock period.
            ValidationError subclasses: bad master data, amounts or shape.
        """
        ensure_not_locked(ctx.lock_date, draft.document_date, "create")
        rule = self._registry.get_rule(draft.document_type)
        priced = self._validate_draft(ctx, rule, draft)

        document = Document(
            org_id=ctx.org_id,
            document_type=draft.document_type,
            status=DocumentStatus.DRAFT,
            created_by_id=actor_id,
        )
        self._apply_draft(document, draft, priced, actor_id)
        self.session.add(document)
        self.session.flush()

        info = document.to_dto()
        self._auditor.record(
            ctx.org_id, actor_id, ENTITY_TYPE, document.id, AuditAction.CREATE,
            after=info.to_dict(),
        )
        logger.info(
            "document_created",
            extra={
                "document_id": str(document.id),
                "document_type": draft.document_type.value,
                "total": document.total,
            },
        )
        return info

    def update(
        self,
        ctx: OrgContext,
        actor_id: UUID,
        document_id: UUID,
        draft: DocumentDraft,
    ) -> DocumentInfo:
        """
        Replace a DRAFT document's content.

        The lock date applies to both the stored and the new document date.

        Raises:
            DocumentNotEditableError: Not DRAFT.
            LockDateViolationError: Either date inside the lock period.
        """
        document = self._load(ctx, document_id, draft.document_type, lock=True)
        if document.status != DocumentStatus.DRAFT:
            raise DocumentNotEditableError(document_id, DocumentStatus(document.status).value)

        ensure_not_locked(ctx.lock_date, document.document_date, "update")
        ensure_not_locked(ctx.lock_date, draft.document_date, "update")

        rule = self._registry.get_rule(draft.document_type)
        priced = self._validate_draft(ctx, rule, draft)
        before = document.to_dto().to_dict()

        # Old lines must be gone before renumbered ones are inserted
        document.lines.clear()
        self.session.flush()

        self._apply_draft(document, draft, priced, actor_id)
        document.updated_by_id = actor_id
        self.session.flush()

        info = document.to_dto()
        self._auditor.record(
            ctx.org_id, actor_id, ENTITY_TYPE, document.id, AuditAction.UPDATE,
            before=before, after=info.to_dict(),
        )
        logger.info(
            "document_updated",
            extra={"document_id": str(document.id), "total": document.total},
        )
        return info

    def _apply_draft(
        self,
        document: Document,
        draft: DocumentDraft,
        priced: list[_PricedLine],
        actor_id: UUID,
    ) -> None:
        totals = sum_lines(p.amounts for p in priced)
        document.document_date = draft.document_date
        document.currency = draft.currency
        document.exchange_rate = draft.exchange_rate
        document.counterparty_id = draft.counterparty_id
        document.payment_account_id = draft.payment_account_id
        document.reference = draft.reference
        document.memo = draft.memo
        document.subtotal = totals.subtotal
        document.tax_total = totals.tax_total
        document.total = self._document_total(draft, priced, totals.total)
        for p in priced:
            document.lines.append(
                DocumentLine(
                    line_no=p.line_no,
                    account_id=p.account_id,
                    item_id=p.source.item_id,
                    description=p.source.description,
                    quantity=p.quantity,
                    unit_price=p.unit_price,
                    discount=p.discount,
                    tax_code_id=p.source.tax_code_id,
                    side=p.source.side,
                    applied_document_id=p.source.applied_document_id,
                    subtotal=p.amounts.subtotal,
                    tax=p.amounts.tax,
                    total=p.amounts.total,
                    created_by_id=actor_id,
                )
            )

    @staticmethod
    def _document_total(draft: DocumentDraft, priced: list[_PricedLine], line_total: int) -> int:
        if draft.document_type is DocumentType.JOURNAL:
            # A journal's total is its debit side
            return sum(p.amounts.total for p in priced if p.source.side is LineSide.DEBIT)
        return line_total

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate_draft(
        self,
        ctx: OrgContext,
        rule: PostingRule,
        draft: DocumentDraft,
    ) -> list[_PricedLine]:
        CurrencyRegistry.validate(draft.currency)
        if draft.exchange_rate <= 0:
            raise InvalidAmountError("exchangeRate", draft.exchange_rate, "must be positive")
        if not draft.lines:
            raise InvalidDocumentError("document needs at least one line")

        self._validate_counterparty(ctx, rule, draft.counterparty_id)
        self._validate_payment_account(ctx, rule, draft.payment_account_id)

        priced = []
        for line_no, line in enumerate(draft.lines, start=1):
            if rule.detail_side is None:
                priced.append(self._price_journal_line(ctx, rule, draft, line_no, line))
            else:
                priced.append(self._price_line(ctx, rule, draft, line_no, line))
        return priced

    def _validate_counterparty(self, ctx: OrgContext, rule: PostingRule, party_id: UUID | None) -> None:
        if party_id is None:
            if rule.requires_counterparty:
                raise InvalidDocumentError(
                    f"{rule.document_type.value} requires a counterparty"
                )
            return
        party = require_active(self._master_data.get_party(ctx.org_id, party_id), "Party")
        if rule.counterparty_kind and party.kind != rule.counterparty_kind:
            raise InvalidDocumentError(
                f"{rule.document_type.value} counterparty must be a "
                f"{rule.counterparty_kind.lower()}, got {party.kind.lower()}"
            )

    def _validate_payment_account(
        self, ctx: OrgContext, rule: PostingRule, account_id: UUID | None
    ) -> None:
        if not rule.uses_payment_account:
            if account_id is not None:
                raise InvalidDocumentError(
                    f"{rule.document_type.value} does not take a payment account"
                )
            return
        if account_id is None:
            raise InvalidDocumentError(
                f"{rule.document_type.value} requires a payment account"
            )
        account = require_active(self._master_data.get_account(ctx.org_id, account_id), "Account")
        if account.account_type.value != "ASSET":
            raise InvalidAccountTypeError(
                account_id, account.account_type.value, ["ASSET"], rule.document_type.value
            )

    def _check_account(self, ctx: OrgContext, rule: PostingRule, account_id: UUID) -> None:
        account = require_active(self._master_data.get_account(ctx.org_id, account_id), "Account")
        if account.account_type not in rule.allowed_account_types:
            raise InvalidAccountTypeError(
                account_id,
                account.account_type.value,
                [t.value for t in rule.allowed_account_types],
                rule.document_type.value,
            )

    def _price_journal_line(
        self,
        ctx: OrgContext,
        rule: PostingRule,
        draft: DocumentDraft,
        line_no: int,
        line: DraftLine,
    ) -> _PricedLine:
        if line.account_id is None:
            raise InvalidDocumentError("journal line needs an account", line_no)
        if line.side is None or line.amount is None:
            raise InvalidDocumentError("journal line needs a side and an amount", line_no)
        if line.item_id or line.tax_code_id or line.applied_document_id:
            raise InvalidDocumentError(
                "journal lines take no item, tax code or applied document", line_no
            )
        amount = exact_minor_units(line.amount, draft.currency, f"line {line_no} amount")
        if amount <= 0:
            raise InvalidAmountError(f"line {line_no} amount", line.amount, "must be positive")
        self._check_account(ctx, rule, line.account_id)
        return _PricedLine(
            line_no=line_no,
            source=line,
            account_id=line.account_id,
            quantity=Decimal("1"),
            unit_price=line.amount,
            discount=Decimal("0"),
            amounts=LineAmounts(subtotal=amount, tax=0),
        )

    def _price_line(
        self,
        ctx: OrgContext,
        rule: PostingRule,
        draft: DocumentDraft,
        line_no: int,
        line: DraftLine,
    ) -> _PricedLine:
        if line.side is not None:
            raise InvalidDocumentError("side is only valid on journal lines", line_no)

        quantity, unit_price, discount = line.quantity, line.unit_price, line.discount
        if line.amount is not None:
            # Shorthand for a single-unit line, typical for payments
            if (quantity, unit_price, discount) != (Decimal("1"), Decimal("0"), Decimal("0")):
                raise InvalidDocumentError(
                    "give either amount or quantity/unitPrice/discount", line_no
                )
            unit_price = line.amount

        account_id = self._resolve_line_account(ctx, rule, line_no, line)
        self._check_account(ctx, rule, account_id)

        tax_rate = None
        if line.tax_code_id is not None:
            if not rule.allows_tax:
                raise InvalidDocumentError(
                    f"{rule.document_type.value} lines cannot carry a tax code", line_no
                )
            if not ctx.vat_enabled:
                raise InvalidDocumentError("VAT is disabled for this organization", line_no)
            tax_code = require_active(
                self._master_data.get_tax_code(ctx.org_id, line.tax_code_id), "TaxCode"
            )
            tax_rate = TaxRate(rate=tax_code.rate, tax_type=tax_code.tax_type)

        if line.applied_document_id is not None:
            self._check_settlement_target(ctx, rule, draft, line_no, line.applied_document_id)

        amounts = compute_line(
            quantity, unit_price, discount, tax_rate, ctx.vat_behavior, draft.currency
        )
        return _PricedLine(
            line_no=line_no,
            source=line,
            account_id=account_id,
            quantity=quantity,
            unit_price=unit_price,
            discount=discount,
            amounts=amounts,
        )

    def _resolve_line_account(
        self, ctx: OrgContext, rule: PostingRule, line_no: int, line: DraftLine
    ) -> UUID:
        if line.account_id is not None:
            return line.account_id
        if line.item_id is not None:
            attr = rule.item_account_attr()
            if attr is None:
                raise InvalidDocumentError(
                    f"{rule.document_type.value} lines cannot reference items", line_no
                )
            item = require_active(self._master_data.get_item(ctx.org_id, line.item_id), "Item")
            account_id = getattr(item, attr)
            if account_id is None:
                raise InvalidDocumentError(
                    f"item {line.item_id} has no {attr.replace('_id', '').replace('_', ' ')}",
                    line_no,
                )
            return account_id
        default = rule.default_line_account_id(ctx)
        if default is None:
            raise InvalidDocumentError("line needs an account or an item", line_no)
        return default

    def _check_settlement_target(
        self,
        ctx: OrgContext,
        rule: PostingRule,
        draft: DocumentDraft,
        line_no: int,
        target_id: UUID,
    ) -> Document:
        if rule.settles is None:
            raise InvalidDocumentError(
                f"{rule.document_type.value} lines cannot settle other documents", line_no
            )
        target = self.session.get(Document, target_id)
        if target is None or target.org_id != ctx.org_id:
            raise DocumentNotFoundError(target_id)
        if target.document_type != rule.settles:
            raise InvalidDocumentError(
                f"{rule.document_type.value} can only settle a {rule.settles.value}", line_no
            )
        if target.counterparty_id != draft.counterparty_id:
            raise InvalidDocumentError(
                "applied document belongs to a different counterparty", line_no
            )
        return target

    # ------------------------------------------------------------------
    # Posting
    # ------------------------------------------------------------------

    def post(
        self,
        ctx: OrgContext,
        actor_id: UUID,
        document_id: UUID,
        document_type: DocumentType | None = None,
    ) -> PostResult:
        """
        Post a DRAFT document to the ledger.

        Steps:
            1. Lock the row; require DRAFT; check the lock date.
            2. Re-check master data, journal balance and settlement targets.
            3. Resolve control and tax accounts through the posting rule.
            4. Build the batch with the PostingEngine and write it.
            5. Number the document, mark it POSTED, apply settlements, audit.

        Raises:
            InvalidDocumentTransitionError: Not DRAFT (e.g. already posted).
            LockDateViolationError: document_date inside the lock period.
            UnbalancedJournalError: Journal debits != credits.
            MultiCurrencyNotSupportedError: Currency is not the base currency.
            OverpaymentError: Settlement exceeds the target's outstanding amount.
        """
        document = self._load(ctx, document_id, document_type, lock=True)
        if document.status != DocumentStatus.DRAFT:
            raise InvalidDocumentTransitionError(
                document_id, DocumentStatus(document.status).value, "post"
            )
        ensure_not_locked(ctx.lock_date, document.document_date, "post")

        doc_type = DocumentType(document.document_type)
        rule = self._registry.get_rule(doc_type)
        before = document.to_dto().to_dict()

        for line in document.lines:
            self._check_account(ctx, rule, line.account_id)
        if rule.detail_side is None:
            self._check_journal_balance(document)
        settlements = self._lock_settlement_targets(ctx, rule, document)

        tax_account_id = None
        if document.tax_total:
            tax_account_id = rule.tax_account_id(ctx)
        control_account_id = None
        if rule.detail_side is not None:
            control_account_id = rule.control_account_id(ctx, document.payment_account_id)

        number = self._next_number(ctx, doc_type)
        request = PostingRequest(
            org_id=ctx.org_id,
            source_type=doc_type,
            source_id=document.id,
            posting_date=document.document_date,
            currency=document.currency,
            base_currency=ctx.base_currency,
            total=document.total,
            lines=tuple(
                ResolvedLine(
                    line_no=line.line_no,
                    account_id=line.account_id,
                    subtotal=line.subtotal,
                    tax=line.tax,
                    tax_account_id=tax_account_id if line.tax else None,
                    side=LineSide(line.side) if line.side else None,
                )
                for line in document.lines
            ),
            control_account_id=control_account_id,
            memo=document.memo or number,
        )
        batch = self._ledger_writer.write(self._engine.build(request), actor_id)

        document.document_number = number
        document.status = DocumentStatus.POSTED
        document.posted_at = self.clock.now()
        document.updated_by_id = actor_id
        self.session.flush()

        for target, amount in settlements:
            self._apply_settlement(ctx, actor_id, target, amount)

        info = document.to_dto()
        self._auditor.record(
            ctx.org_id, actor_id, ENTITY_TYPE, document.id, AuditAction.POST,
            before=before, after=info.to_dict(),
        )
        logger.info(
            "document_posted",
            extra={
                "document_id": str(document.id),
                "document_type": doc_type.value,
                "document_number": number,
                "batch_id": str(batch.id),
                "total": document.total,
            },
        )
        return PostResult(document=info, ledger_batch_id=batch.id)

    def _check_journal_balance(self, document: Document) -> None:
        debits = sum(l.total for l in document.lines if l.side == LineSide.DEBIT)
        credits = sum(l.total for l in document.lines if l.side == LineSide.CREDIT)
        if debits != credits:
            raise UnbalancedJournalError(debits, credits)

    def _next_number(self, ctx: OrgContext, document_type: DocumentType) -> str:
        value = self._sequences.next_value(
            SequenceService.document_sequence(ctx.org_id, document_type)
        )
        return f"{ctx.prefix_for(document_type)}{value}"

    def _lock_settlement_targets(
        self, ctx: OrgContext, rule: PostingRule, document: Document
    ) -> list[tuple[Document, int]]:
        applied: OrderedDict[UUID, int] = OrderedDict()
        for line in document.lines:
            if line.applied_document_id is not None:
                applied[line.applied_document_id] = (
                    applied.get(line.applied_document_id, 0) + line.total
                )

        out = []
        for target_id, amount in applied.items():
            target = self._lock_row(Document, target_id)
            if target is None or target.org_id != ctx.org_id:
                raise DocumentNotFoundError(target_id)
            if target.document_type != rule.settles or target.counterparty_id != document.counterparty_id:
                raise InvalidDocumentError(
                    f"document {target_id} cannot be settled by this {rule.document_type.value}"
                )
            if target.status != DocumentStatus.POSTED:
                raise InvalidDocumentTransitionError(
                    target_id, DocumentStatus(target.status).value, "settle"
                )
            if amount > target.outstanding:
                raise OverpaymentError(target_id, target.outstanding, amount)
            out.append((target, amount))
        return out

    def _apply_settlement(
        self, ctx: OrgContext, actor_id: UUID, target: Document, delta: int
    ) -> None:
        before = target.to_dto().to_dict()
        target.amount_paid = target.amount_paid + delta
        target.updated_by_id = actor_id
        self.session.flush()
        self._auditor.record(
            ctx.org_id, actor_id, ENTITY_TYPE, target.id, AuditAction.UPDATE,
            before=before, after=target.to_dto().to_dict(),
        )
        logger.info(
            "document_settlement_applied",
            extra={
                "document_id": str(target.id),
                "delta": delta,
                "amount_paid": target.amount_paid,
            },
        )

    # ------------------------------------------------------------------
    # Void / bounce
    # ------------------------------------------------------------------

    def void(
        self,
        ctx: OrgContext,
        actor_id: UUID,
        document_id: UUID,
        document_type: DocumentType | None = None,
    ) -> VoidResult:
        """Reverse a POSTED document; the result is VOID."""
        return self._reverse(ctx, actor_id, document_id, document_type, DocumentStatus.VOID)

    def bounce(
        self,
        ctx: OrgContext,
        actor_id: UUID,
        document_id: UUID,
        document_type: DocumentType | None = None,
    ) -> VoidResult:
        """Reverse a POSTED payment whose funds did not clear; the result is BOUNCED."""
        return self._reverse(ctx, actor_id, document_id, document_type, DocumentStatus.BOUNCED)

    def _reverse(
        self,
        ctx: OrgContext,
        actor_id: UUID,
        document_id: UUID,
        document_type: DocumentType | None,
        target_status: DocumentStatus,
    ) -> VoidResult:
        action = "void" if target_status is DocumentStatus.VOID else "bounce"
        document = self._load(ctx, document_id, document_type, lock=True)
        doc_type = DocumentType(document.document_type)
        rule = self._registry.get_rule(doc_type)

        if target_status is DocumentStatus.BOUNCED and not rule.allows_bounce:
            raise BounceNotAllowedError(document_id, doc_type.value)

        if document.status == target_status:
            existing = self._ledger_writer.find_source_batch(
                ctx.org_id, document.id, BatchKind.REVERSAL
            )
            if existing is not None:
                logger.info(
                    "document_reversal_replayed",
                    extra={"document_id": str(document.id), "batch_id": str(existing.id)},
                )
                return VoidResult(document=document.to_dto(), reversal_batch_id=existing.id)

        if document.status != DocumentStatus.POSTED:
            raise InvalidDocumentTransitionError(
                document_id, DocumentStatus(document.status).value, action
            )

        void_date = self.clock.today()
        ensure_not_locked(ctx.lock_date, document.document_date, action)
        ensure_not_locked(ctx.lock_date, void_date, action)

        if document.amount_paid > 0:
            raise DocumentHasSettlementsError(document_id, document.amount_paid)

        posting = self._ledger_writer.find_source_batch(ctx.org_id, document.id, BatchKind.POSTING)
        if posting is None:
            raise LedgerBatchNotFoundError(document.id)

        before = document.to_dto().to_dict()
        reversal = self._ledger_writer.reverse(ctx.org_id, posting.id, void_date, actor_id)

        document.status = target_status
        document.voided_at = self.clock.now()
        document.updated_by_id = actor_id
        self.session.flush()

        released = self._settled_amounts(document)
        for target_id, amount in released.items():
            target = self._lock_row(Document, target_id)
            self._apply_settlement(ctx, actor_id, target, -amount)

        info = document.to_dto()
        self._auditor.record(
            ctx.org_id, actor_id, ENTITY_TYPE, document.id, AuditAction.VOID,
            before=before, after=info.to_dict(),
        )
        logger.info(
            "document_voided" if action == "void" else "document_bounced",
            extra={
                "document_id": str(document.id),
                "document_type": doc_type.value,
                "batch_id": str(reversal.id),
            },
        )
        return VoidResult(document=info, reversal_batch_id=reversal.id)

    @staticmethod
    def _settled_amounts(document: Document) -> OrderedDict[UUID, int]:
        out: OrderedDict[UUID, int] = OrderedDict()
        for line in document.lines:
            if line.applied_document_id is not None:
                out[line.applied_document_id] = out.get(line.applied_document_id, 0) + line.total
        return out
