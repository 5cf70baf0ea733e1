"""
Account resolution strategies, one per document type.

Every document type shares the same state machine and posting engine; what
differs is captured by a ``PostingRule``:

    - which side the detail lines land on,
    - which account balances them (AR, AP, the paid-from bank account, or
      nothing for journals),
    - which VAT account collects line tax,
    - which account types detail lines may use,
    - whether tax codes, bounces and settlement links are allowed.

Rules are stateless; the ``OrgContext`` supplies the org's control accounts.
"""

from abc import ABC
from typing import ClassVar
from uuid import UUID

from ledger_kernel.domain.dtos import AccountType, DocumentType, LineSide
from ledger_kernel.domain.org_context import OrgContext
from ledger_kernel.exceptions import InvalidDocumentError


class PostingRule(ABC):
    """Base class for per-document-type account resolution."""

    document_type: ClassVar[DocumentType]
    detail_side: ClassVar[LineSide | None]
    allowed_account_types: ClassVar[tuple[AccountType, ...]]
    allows_tax: ClassVar[bool] = False
    allows_bounce: ClassVar[bool] = False
    requires_counterparty: ClassVar[bool] = False
    uses_payment_account: ClassVar[bool] = False
    settles: ClassVar[DocumentType | None] = None
    counterparty_kind: ClassVar[str | None] = None

    def control_account_id(
        self, ctx: OrgContext, payment_account_id: UUID | None
    ) -> UUID | None:
        """Account balancing the detail lines, or None when there is none."""
        return None

    def tax_account_id(self, ctx: OrgContext) -> UUID | None:
        return None

    def default_line_account_id(self, ctx: OrgContext) -> UUID | None:
        """Account for lines that name neither an account nor an item."""
        return None

    def item_account_attr(self) -> str | None:
        """Item attribute holding the account for this document direction."""
        return None

    def _required(self, account_id: UUID | None, what: str) -> UUID:
        if account_id is None:
            raise InvalidDocumentError(
                f"{self.document_type.value} requires a {what} account "
                "but none is configured"
            )
        return account_id


class _SalesRule(PostingRule):
    allowed_account_types = (AccountType.INCOME,)
    allows_tax = True
    requires_counterparty = True
    counterparty_kind = "CUSTOMER"

    def control_account_id(self, ctx, payment_account_id):
        return self._required(ctx.ar_account_id, "receivable")

    def tax_account_id(self, ctx):
        return self._required(ctx.output_vat_account_id, "output VAT")

    def item_account_attr(self):
        return "income_account_id"


class InvoiceRule(_SalesRule):
    document_type = DocumentType.INVOICE
    detail_side = LineSide.CREDIT


class CreditNoteRule(_SalesRule):
    document_type = DocumentType.CREDIT_NOTE
    detail_side = LineSide.DEBIT


class _PurchaseRule(PostingRule):
    allowed_account_types = (AccountType.EXPENSE, AccountType.ASSET)
    allows_tax = True
    requires_counterparty = True
    counterparty_kind = "VENDOR"

    def control_account_id(self, ctx, payment_account_id):
        return self._required(ctx.ap_account_id, "payable")

    def tax_account_id(self, ctx):
        return self._required(ctx.input_vat_account_id, "input VAT")

    def item_account_attr(self):
        return "expense_account_id"


class BillRule(_PurchaseRule):
    document_type = DocumentType.BILL
    detail_side = LineSide.DEBIT


class DebitNoteRule(_PurchaseRule):
    document_type = DocumentType.DEBIT_NOTE
    detail_side = LineSide.CREDIT


class ExpenseRule(_PurchaseRule):
    """Paid on the spot: the bank or cash account balances the expense."""

    document_type = DocumentType.EXPENSE
    detail_side = LineSide.DEBIT
    requires_counterparty = False
    uses_payment_account = True

    def control_account_id(self, ctx, payment_account_id):
        return self._required(payment_account_id, "paid-from")


class JournalRule(PostingRule):
    """Free-form: every line carries its own side; there is no control line."""

    document_type = DocumentType.JOURNAL
    detail_side = None
    allowed_account_types = tuple(AccountType)


class CustomerPaymentRule(PostingRule):
    document_type = DocumentType.CUSTOMER_PAYMENT
    detail_side = LineSide.CREDIT
    allowed_account_types = (AccountType.ASSET,)
    allows_bounce = True
    requires_counterparty = True
    uses_payment_account = True
    settles = DocumentType.INVOICE
    counterparty_kind = "CUSTOMER"

    def control_account_id(self, ctx, payment_account_id):
        return self._required(payment_account_id, "deposit-to")

    def default_line_account_id(self, ctx):
        return self._required(ctx.ar_account_id, "receivable")


class VendorPaymentRule(PostingRule):
    document_type = DocumentType.VENDOR_PAYMENT
    detail_side = LineSide.DEBIT
    allowed_account_types = (AccountType.LIABILITY,)
    allows_bounce = True
    requires_counterparty = True
    uses_payment_account = True
    settles = DocumentType.BILL
    counterparty_kind = "VENDOR"

    def control_account_id(self, ctx, payment_account_id):
        return self._required(payment_account_id, "paid-from")

    def default_line_account_id(self, ctx):
        return self._required(ctx.ap_account_id, "payable")


class PostingRuleRegistry:
    """
    Registry for posting rules.

    Allows registration and lookup of rules by document type.
    """

    def __init__(self):
        self._rules: dict[DocumentType, PostingRule] = {}

    def register(self, rule: PostingRule) -> None:
        self._rules[rule.document_type] = rule

    def get_rule(self, document_type: DocumentType) -> PostingRule:
        """
        Raises:
            InvalidDocumentError: If no rule is registered for the type.
        """
        rule = self._rules.get(document_type)
        if rule is None:
            raise InvalidDocumentError(
                f"No posting rule registered for document type {document_type}"
            )
        return rule

    def list_document_types(self) -> list[DocumentType]:
        return list(self._rules)


_default_registry = PostingRuleRegistry()
for _rule in (
    InvoiceRule(),
    CreditNoteRule(),
    BillRule(),
    DebitNoteRule(),
    ExpenseRule(),
    JournalRule(),
    CustomerPaymentRule(),
    VendorPaymentRule(),
):
    _default_registry.register(_rule)


def get_default_registry() -> PostingRuleRegistry:
    """Get the default posting rule registry."""
    return _default_registry
