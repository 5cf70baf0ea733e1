"""
Domain Data Transfer Objects.

Frozen dataclasses and enums shared by the services, the posting engine and
the command gateway.  No ORM imports: models convert themselves into these
(``to_dto``) and services hand them back to callers.

API payloads (``from_dict`` / ``to_dict``) use camelCase keys; money leaves
the kernel as integer minor units, quantities and prices as decimal strings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping
from uuid import UUID

from ledger_kernel.domain.money import to_decimal
from ledger_kernel.exceptions import InvalidDocumentError


class DocumentType(str, Enum):
    INVOICE = "INVOICE"
    BILL = "BILL"
    EXPENSE = "EXPENSE"
    JOURNAL = "JOURNAL"
    CREDIT_NOTE = "CREDIT_NOTE"
    DEBIT_NOTE = "DEBIT_NOTE"
    CUSTOMER_PAYMENT = "CUSTOMER_PAYMENT"
    VENDOR_PAYMENT = "VENDOR_PAYMENT"

    @classmethod
    def parse(cls, value: str | DocumentType) -> DocumentType:
        """Accept enum members, values and route slugs (``credit-notes``)."""
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().upper().replace("-", "_")
        if normalized.endswith("S") and normalized[:-1] in cls.__members__:
            normalized = normalized[:-1]
        try:
            return cls(normalized)
        except ValueError:
            raise InvalidDocumentError(f"unknown document type {value!r}") from None


class DocumentStatus(str, Enum):
    """
    Document lifecycle.

    DRAFT -> POSTED -> VOID | BOUNCED.  Only DRAFT is editable.
    """

    DRAFT = "DRAFT"
    POSTED = "POSTED"
    VOID = "VOID"
    BOUNCED = "BOUNCED"


class LineSide(str, Enum):
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"

    def opposite(self) -> LineSide:
        return LineSide.CREDIT if self is LineSide.DEBIT else LineSide.DEBIT


class AccountType(str, Enum):
    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"

    @property
    def normal_side(self) -> LineSide:
        if self in (AccountType.ASSET, AccountType.EXPENSE):
            return LineSide.DEBIT
        return LineSide.CREDIT


class TaxType(str, Enum):
    STANDARD = "STANDARD"
    ZERO = "ZERO"
    EXEMPT = "EXEMPT"
    OUT_OF_SCOPE = "OUT_OF_SCOPE"


class VatBehavior(str, Enum):
    EXCLUSIVE = "EXCLUSIVE"
    INCLUSIVE = "INCLUSIVE"


class BatchKind(str, Enum):
    POSTING = "POSTING"
    REVERSAL = "REVERSAL"


class BatchStatus(str, Enum):
    POSTED = "POSTED"
    REVERSED = "REVERSED"


class ReconciliationStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class MatchType(str, Enum):
    MANUAL = "MANUAL"
    AUTO = "AUTO"


def _uuid_or_none(payload: Mapping[str, Any], key: str) -> UUID | None:
    raw = payload.get(key)
    if raw in (None, ""):
        return None
    if isinstance(raw, UUID):
        return raw
    try:
        return UUID(str(raw))
    except ValueError:
        raise InvalidDocumentError(f"{key} is not a valid id: {raw!r}") from None


def _date(payload: Mapping[str, Any], key: str) -> date:
    raw = payload.get(key)
    if isinstance(raw, date) and not isinstance(raw, datetime):
        return raw
    if not raw:
        raise InvalidDocumentError(f"{key} is required")
    try:
        return date.fromisoformat(str(raw))
    except ValueError:
        raise InvalidDocumentError(f"{key} is not an ISO date: {raw!r}") from None


# ---------------------------------------------------------------------------
# Document input
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DraftLine:
    """
    One client-supplied document line.

    Priced lines use quantity x unit_price - discount.  Journal lines carry
    ``side`` and ``amount`` instead.  Payment lines may name the invoice or
    bill they settle in ``applied_document_id``.
    """

    account_id: UUID | None = None
    item_id: UUID | None = None
    description: str | None = None
    quantity: Decimal = Decimal("1")
    unit_price: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")
    tax_code_id: UUID | None = None
    side: LineSide | None = None
    amount: Decimal | None = None
    applied_document_id: UUID | None = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any], line_no: int) -> DraftLine:
        if not isinstance(payload, Mapping):
            raise InvalidDocumentError("line must be an object", line_no)
        side = payload.get("side")
        if side is not None:
            try:
                side = LineSide(str(side).upper())
            except ValueError:
                raise InvalidDocumentError(f"side must be DEBIT or CREDIT, got {side!r}", line_no) from None
        amount = payload.get("amount")
        return cls(
            account_id=_uuid_or_none(payload, "accountId"),
            item_id=_uuid_or_none(payload, "itemId"),
            description=payload.get("description"),
            quantity=to_decimal(payload.get("quantity", "1"), "quantity"),
            unit_price=to_decimal(payload.get("unitPrice", "0"), "unitPrice"),
            discount=to_decimal(payload.get("discount", "0"), "discount"),
            tax_code_id=_uuid_or_none(payload, "taxCodeId"),
            side=side,
            amount=to_decimal(amount, "amount") if amount is not None else None,
            applied_document_id=_uuid_or_none(payload, "appliedDocumentId"),
        )

    def to_request_dict(self) -> dict[str, Any]:
        return {
            "accountId": self.account_id,
            "itemId": self.item_id,
            "description": self.description,
            "quantity": self.quantity,
            "unitPrice": self.unit_price,
            "discount": self.discount,
            "taxCodeId": self.tax_code_id,
            "side": self.side.value if self.side else None,
            "amount": self.amount,
            "appliedDocumentId": self.applied_document_id,
        }


@dataclass(frozen=True)
class DocumentDraft:
    """Client-supplied document content for create and update."""

    document_type: DocumentType
    document_date: date
    currency: str
    lines: tuple[DraftLine, ...]
    exchange_rate: Decimal = Decimal("1")
    counterparty_id: UUID | None = None
    payment_account_id: UUID | None = None
    reference: str | None = None
    memo: str | None = None

    @classmethod
    def from_dict(cls, document_type: DocumentType | str, payload: Mapping[str, Any]) -> DocumentDraft:
        if not isinstance(payload, Mapping):
            raise InvalidDocumentError("document must be an object")
        raw_lines = payload.get("lines") or []
        if not isinstance(raw_lines, (list, tuple)):
            raise InvalidDocumentError("lines must be a list")
        currency = payload.get("currency")
        if not currency:
            raise InvalidDocumentError("currency is required")
        return cls(
            document_type=DocumentType.parse(document_type),
            document_date=_date(payload, "documentDate"),
            currency=str(currency).upper(),
            lines=tuple(
                DraftLine.from_dict(line, i) for i, line in enumerate(raw_lines, start=1)
            ),
            exchange_rate=to_decimal(payload.get("exchangeRate", "1"), "exchangeRate"),
            counterparty_id=_uuid_or_none(payload, "counterpartyId"),
            payment_account_id=_uuid_or_none(payload, "paymentAccountId"),
            reference=payload.get("reference"),
            memo=payload.get("memo"),
        )

    def to_request_dict(self) -> dict[str, Any]:
        """Client-supplied fields only; hashed by the idempotency broker."""
        return {
            "documentType": self.document_type.value,
            "documentDate": self.document_date,
            "currency": self.currency,
            "exchangeRate": self.exchange_rate,
            "counterpartyId": self.counterparty_id,
            "paymentAccountId": self.payment_account_id,
            "reference": self.reference,
            "memo": self.memo,
            "lines": [line.to_request_dict() for line in self.lines],
        }


# ---------------------------------------------------------------------------
# Document output
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LineInfo:
    line_no: int
    account_id: UUID
    item_id: UUID | None
    description: str | None
    quantity: Decimal
    unit_price: Decimal
    discount: Decimal
    tax_code_id: UUID | None
    side: LineSide | None
    applied_document_id: UUID | None
    subtotal: int
    tax: int
    total: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "lineNo": self.line_no,
            "accountId": str(self.account_id),
            "itemId": str(self.item_id) if self.item_id else None,
            "description": self.description,
            "quantity": str(self.quantity.normalize()),
            "unitPrice": str(self.unit_price.normalize()),
            "discount": str(self.discount.normalize()),
            "taxCodeId": str(self.tax_code_id) if self.tax_code_id else None,
            "side": self.side.value if self.side else None,
            "appliedDocumentId": (
                str(self.applied_document_id) if self.applied_document_id else None
            ),
            "subtotal": self.subtotal,
            "tax": self.tax,
            "total": self.total,
        }


@dataclass(frozen=True)
class DocumentInfo:
    id: UUID
    org_id: UUID
    document_type: DocumentType
    status: DocumentStatus
    document_number: str | None
    document_date: date
    currency: str
    exchange_rate: Decimal
    counterparty_id: UUID | None
    payment_account_id: UUID | None
    reference: str | None
    memo: str | None
    subtotal: int
    tax_total: int
    total: int
    amount_paid: int
    posted_at: datetime | None
    voided_at: datetime | None
    created_by_id: UUID
    version: int
    lines: tuple[LineInfo, ...] = field(default_factory=tuple)

    @property
    def outstanding(self) -> int:
        return self.total - self.amount_paid

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "orgId": str(self.org_id),
            "documentType": self.document_type.value,
            "status": self.status.value,
            "documentNumber": self.document_number,
            "documentDate": self.document_date.isoformat(),
            "currency": self.currency,
            "exchangeRate": str(self.exchange_rate.normalize()),
            "counterpartyId": str(self.counterparty_id) if self.counterparty_id else None,
            "paymentAccountId": (
                str(self.payment_account_id) if self.payment_account_id else None
            ),
            "reference": self.reference,
            "memo": self.memo,
            "subtotal": self.subtotal,
            "taxTotal": self.tax_total,
            "total": self.total,
            "amountPaid": self.amount_paid,
            "postedAt": self.posted_at.isoformat() if self.posted_at else None,
            "voidedAt": self.voided_at.isoformat() if self.voided_at else None,
            "createdById": str(self.created_by_id),
            "version": self.version,
            "lines": [line.to_dict() for line in self.lines],
        }


@dataclass(frozen=True)
class PostResult:
    document: DocumentInfo
    ledger_batch_id: UUID

    def to_dict(self) -> dict[str, Any]:
        return {
            "document": self.document.to_dict(),
            "ledgerBatchId": str(self.ledger_batch_id),
        }


@dataclass(frozen=True)
class VoidResult:
    document: DocumentInfo
    reversal_batch_id: UUID

    def to_dict(self) -> dict[str, Any]:
        return {
            "document": self.document.to_dict(),
            "reversalBatchId": str(self.reversal_batch_id),
        }


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReconciliationSessionInfo:
    id: UUID
    org_id: UUID
    bank_account_id: UUID
    period_start: date
    period_end: date
    opening_balance: int
    closing_balance: int
    status: ReconciliationStatus
    closed_at: datetime | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "orgId": str(self.org_id),
            "bankAccountId": str(self.bank_account_id),
            "periodStart": self.period_start.isoformat(),
            "periodEnd": self.period_end.isoformat(),
            "openingBalance": self.opening_balance,
            "closingBalance": self.closing_balance,
            "status": self.status.value,
            "closedAt": self.closed_at.isoformat() if self.closed_at else None,
        }


@dataclass(frozen=True)
class ReconciliationMatchInfo:
    id: UUID
    session_id: UUID
    bank_transaction_id: UUID
    ledger_batch_id: UUID
    match_type: MatchType
    matched_by_id: UUID

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "sessionId": str(self.session_id),
            "bankTransactionId": str(self.bank_transaction_id),
            "ledgerBatchId": str(self.ledger_batch_id),
            "matchType": self.match_type.value,
            "matchedById": str(self.matched_by_id),
        }


@dataclass(frozen=True)
class MatchSuggestion:
    """A candidate pairing; never persisted."""

    bank_transaction_id: UUID
    ledger_batch_id: UUID
    amount: int
    transaction_date: date
    posting_date: date

    @property
    def days_apart(self) -> int:
        return abs((self.transaction_date - self.posting_date).days)

    def to_dict(self) -> dict[str, Any]:
        return {
            "bankTransactionId": str(self.bank_transaction_id),
            "ledgerBatchId": str(self.ledger_batch_id),
            "amount": self.amount,
            "transactionDate": self.transaction_date.isoformat(),
            "postingDate": self.posting_date.isoformat(),
            "daysApart": self.days_apart,
        }
