"""
Typed Exception Hierarchy for the Ledger Kernel.

Every error raised by the kernel is a LedgerKernelError subclass carrying:
  1. a CODE class attribute (machine-readable, API-safe),
  2. a CATEGORY class attribute that the command gateway maps to a status,
  3. structured attributes (never parse the message).

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerKernelError (base)
    |
    +-- NotFoundError                              404
    |   +-- OrganizationNotFoundError
    |   +-- DocumentNotFoundError
    |   +-- AccountNotFoundError
    |   +-- ReferenceNotFoundError
    |   +-- LedgerBatchNotFoundError
    |   +-- ReconciliationSessionNotFoundError
    |
    +-- ValidationError                            422
    |   +-- InvalidRequestError
    |   +-- InvalidAmountError
    |   +-- InvalidCurrencyError
    |   +-- InvalidDocumentError
    |   +-- InactiveReferenceError
    |   +-- InvalidAccountTypeError
    |   +-- UnbalancedJournalError
    |   +-- MultiCurrencyNotSupportedError
    |   +-- BounceNotAllowedError
    |   +-- OverpaymentError
    |   +-- InvalidPeriodError
    |   +-- BankTransactionOutsideSessionError
    |
    +-- ConflictError                              409
    |   +-- IdempotencyKeyReuseError
    |   +-- DocumentNotEditableError
    |   +-- InvalidDocumentTransitionError
    |   +-- DocumentHasSettlementsError
    |   +-- ConcurrencyConflictError
    |   +-- ReconciliationSessionClosedError
    |   +-- ReconciliationPeriodOverlapError
    |   +-- BankTransactionAlreadyMatchedError
    |
    +-- LockedError                                423
    |   +-- LockDateViolationError
    |
    +-- InvariantViolationError                    500
        +-- UnbalancedBatchError
        +-- ImmutabilityViolationError
        +-- AuditChainBrokenError

InvariantViolationError means a programming defect, not a user error. The
command gateway logs it at CRITICAL with alert=True and never retries it.

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        gateway_result = service.post(ctx, actor_id, document_id)
    except LockDateViolationError as e:
        notify_user(f"Books are locked through {e.lock_date}")
    except ConflictError as e:
        return {"error": e.to_dict()}
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID


class ErrorCategory:
    """Error categories shared by every kernel exception."""

    NOT_FOUND = "NOT_FOUND"
    VALIDATION = "VALIDATION"
    CONFLICT = "CONFLICT"
    LOCKED = "LOCKED"
    INVARIANT_VIOLATION = "INVARIANT_VIOLATION"


def _detail_value(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_detail_value(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _detail_value(v) for k, v in value.items()}
    return value


class LedgerKernelError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_KERNEL_ERROR"
    category: str = ErrorCategory.VALIDATION
    http_status: int = 400

    @property
    def message(self) -> str:
        return str(self)

    @property
    def details(self) -> dict[str, Any]:
        """Structured attributes of the exception, JSON-safe."""
        return {
            k: _detail_value(v)
            for k, v in vars(self).items()
            if not k.startswith("_")
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "category": self.category,
            "message": self.message,
            "details": self.details,
        }


# Not found


class NotFoundError(LedgerKernelError):
    """Base exception for missing org-scoped entities."""

    code: str = "NOT_FOUND"
    category: str = ErrorCategory.NOT_FOUND
    http_status: int = 404


class OrganizationNotFoundError(NotFoundError):
    code: str = "ORGANIZATION_NOT_FOUND"

    def __init__(self, org_id: UUID | str):
        self.org_id = str(org_id)
        super().__init__(f"Organization not found: {org_id}")


class DocumentNotFoundError(NotFoundError):
    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_id: UUID | str):
        self.document_id = str(document_id)
        super().__init__(f"Document not found: {document_id}")


class AccountNotFoundError(NotFoundError):
    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: UUID | str):
        self.account_id = str(account_id)
        super().__init__(f"Account not found: {account_id}")


class ReferenceNotFoundError(NotFoundError):
    """A referenced master-data row (tax code, item, party, bank data) is missing."""

    code: str = "REFERENCE_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: UUID | str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(f"{entity_type} not found: {entity_id}")


class LedgerBatchNotFoundError(NotFoundError):
    code: str = "LEDGER_BATCH_NOT_FOUND"

    def __init__(self, batch_id: UUID | str):
        self.batch_id = str(batch_id)
        super().__init__(f"Ledger batch not found: {batch_id}")


class ReconciliationSessionNotFoundError(NotFoundError):
    code: str = "RECONCILIATION_SESSION_NOT_FOUND"

    def __init__(self, session_id: UUID | str):
        self.session_id = str(session_id)
        super().__init__(f"Reconciliation session not found: {session_id}")


# Validation


class ValidationError(LedgerKernelError):
    """Base exception for malformed or inconsistent requests."""

    code: str = "VALIDATION_ERROR"
    category: str = ErrorCategory.VALIDATION
    http_status: int = 422


class InvalidRequestError(ValidationError):
    """A request field is missing or malformed."""

    code: str = "INVALID_REQUEST"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class InvalidAmountError(ValidationError):
    """Negative quantity, price or discount, or an amount with bad precision."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, value: Any, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field} {value}: {reason}")


class InvalidCurrencyError(ValidationError):
    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Invalid or unsupported currency code: {currency!r}")


class InvalidDocumentError(ValidationError):
    code: str = "INVALID_DOCUMENT"

    def __init__(self, reason: str, line_no: int | None = None):
        self.reason = reason
        self.line_no = line_no
        where = f" (line {line_no})" if line_no is not None else ""
        super().__init__(f"Invalid document{where}: {reason}")


class InactiveReferenceError(ValidationError):
    code: str = "REFERENCE_INACTIVE"

    def __init__(self, entity_type: str, entity_id: UUID | str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(f"{entity_type} is inactive: {entity_id}")


class InvalidAccountTypeError(ValidationError):
    code: str = "INVALID_ACCOUNT_TYPE"

    def __init__(
        self,
        account_id: UUID | str,
        account_type: str,
        allowed: tuple[str, ...],
        document_type: str,
    ):
        self.account_id = str(account_id)
        self.account_type = account_type
        self.allowed = list(allowed)
        self.document_type = document_type
        super().__init__(
            f"Account {account_id} of type {account_type} cannot be used on "
            f"{document_type} lines (allowed: {', '.join(allowed)})"
        )


class UnbalancedJournalError(ValidationError):
    code: str = "UNBALANCED_JOURNAL"

    def __init__(self, debits: int, credits: int):
        self.debits = debits
        self.credits = credits
        super().__init__(
            f"Journal does not balance: debits {debits} != credits {credits}"
        )


class MultiCurrencyNotSupportedError(ValidationError):
    code: str = "MULTICURRENCY_NOT_SUPPORTED"

    def __init__(self, document_currency: str, base_currency: str):
        self.document_currency = document_currency
        self.base_currency = base_currency
        super().__init__(
            f"Document currency {document_currency} differs from base "
            f"currency {base_currency}; only base-currency posting is supported"
        )


class BounceNotAllowedError(ValidationError):
    code: str = "BOUNCE_NOT_ALLOWED"

    def __init__(self, document_id: UUID | str, document_type: str):
        self.document_id = str(document_id)
        self.document_type = document_type
        super().__init__(
            f"Only payments can bounce; {document_type} {document_id} cannot"
        )


class OverpaymentError(ValidationError):
    code: str = "OVERPAYMENT"

    def __init__(self, document_id: UUID | str, outstanding: int, amount: int):
        self.document_id = str(document_id)
        self.outstanding = outstanding
        self.amount = amount
        super().__init__(
            f"Payment of {amount} exceeds outstanding {outstanding} "
            f"on document {document_id}"
        )


class InvalidPeriodError(ValidationError):
    code: str = "INVALID_PERIOD"

    def __init__(self, period_start: date, period_end: date):
        self.period_start = period_start
        self.period_end = period_end
        super().__init__(
            f"Period end {period_end} is before period start {period_start}"
        )


class BankTransactionOutsideSessionError(ValidationError):
    code: str = "BANK_TRANSACTION_OUTSIDE_SESSION"

    def __init__(
        self,
        bank_transaction_id: UUID | str,
        session_id: UUID | str,
        reason: str,
    ):
        self.bank_transaction_id = str(bank_transaction_id)
        self.session_id = str(session_id)
        self.reason = reason
        super().__init__(
            f"Bank transaction {bank_transaction_id} does not belong to "
            f"session {session_id}: {reason}"
        )


# Conflict


class ConflictError(LedgerKernelError):
    """Base exception for state conflicts and lost races."""

    code: str = "CONFLICT"
    category: str = ErrorCategory.CONFLICT
    http_status: int = 409


class IdempotencyKeyReuseError(ConflictError):
    code: str = "IDEMPOTENCY_KEY_REUSED"

    def __init__(self, key: str, stored_hash: str, request_hash: str):
        self.key = key
        self.stored_hash = stored_hash
        self.request_hash = request_hash
        super().__init__(
            f"Idempotency key {key} already used with a different payload"
        )


class DocumentNotEditableError(ConflictError):
    code: str = "DOCUMENT_NOT_EDITABLE"

    def __init__(self, document_id: UUID | str, status: str):
        self.document_id = str(document_id)
        self.status = status
        super().__init__(
            f"Document {document_id} is {status}; only DRAFT documents can be edited"
        )


class InvalidDocumentTransitionError(ConflictError):
    code: str = "INVALID_DOCUMENT_TRANSITION"

    def __init__(self, document_id: UUID | str, status: str, action: str):
        self.document_id = str(document_id)
        self.status = status
        self.action = action
        super().__init__(
            f"Cannot {action} document {document_id} in status {status}"
        )


class DocumentHasSettlementsError(ConflictError):
    code: str = "DOCUMENT_HAS_SETTLEMENTS"

    def __init__(self, document_id: UUID | str, amount_paid: int):
        self.document_id = str(document_id)
        self.amount_paid = amount_paid
        super().__init__(
            f"Document {document_id} has settled amount {amount_paid}; "
            "void the payments first"
        )


class ConcurrencyConflictError(ConflictError):
    """A concurrent transaction won the race and retrying did not help."""

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Concurrent modification during {operation}: {reason}")


class ReconciliationSessionClosedError(ConflictError):
    code: str = "RECONCILIATION_SESSION_CLOSED"

    def __init__(self, session_id: UUID | str):
        self.session_id = str(session_id)
        super().__init__(f"Reconciliation session {session_id} is closed")


class ReconciliationPeriodOverlapError(ConflictError):
    code: str = "RECONCILIATION_PERIOD_OVERLAP"

    def __init__(
        self,
        bank_account_id: UUID | str,
        period_start: date,
        period_end: date,
        existing_session_id: UUID | str | None = None,
    ):
        self.bank_account_id = str(bank_account_id)
        self.period_start = period_start
        self.period_end = period_end
        self.existing_session_id = (
            str(existing_session_id) if existing_session_id else None
        )
        super().__init__(
            f"A reconciliation session for bank account {bank_account_id} "
            f"already covers part of {period_start}..{period_end}"
        )


class BankTransactionAlreadyMatchedError(ConflictError):
    code: str = "BANK_TRANSACTION_ALREADY_MATCHED"

    def __init__(self, bank_transaction_id: UUID | str):
        self.bank_transaction_id = str(bank_transaction_id)
        super().__init__(f"Bank transaction {bank_transaction_id} is already matched")


# Locked


class LockedError(LedgerKernelError):
    code: str = "LOCKED"
    category: str = ErrorCategory.LOCKED
    http_status: int = 423


class LockDateViolationError(LockedError):
    """Document is dated on or before the organization lock date."""

    code: str = "LOCK_DATE_VIOLATION"

    def __init__(self, lock_date: date, document_date: date, action: str):
        self.lock_date = lock_date
        self.document_date = document_date
        self.action = action
        super().__init__(
            f"Cannot {action}: document date {document_date} is on or before "
            f"lock date {lock_date}"
        )


# Invariant violations


class InvariantViolationError(LedgerKernelError):
    """Base exception for broken ledger invariants (programming defects)."""

    code: str = "INVARIANT_VIOLATION"
    category: str = ErrorCategory.INVARIANT_VIOLATION
    http_status: int = 500


class UnbalancedBatchError(InvariantViolationError):
    code: str = "UNBALANCED_BATCH"

    def __init__(
        self,
        source_type: str,
        source_id: UUID | str,
        debits: int,
        credits: int,
    ):
        self.source_type = source_type
        self.source_id = str(source_id)
        self.debits = debits
        self.credits = credits
        super().__init__(
            f"Ledger batch for {source_type} {source_id} does not balance: "
            f"debits {debits} != credits {credits}"
        )


class ImmutabilityViolationError(InvariantViolationError):
    """Attempted to modify or delete an immutable record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


class AuditChainBrokenError(InvariantViolationError):
    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, org_id: UUID | str, seq: int, expected_hash: str, actual_hash: str):
        self.org_id = str(org_id)
        self.seq = seq
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken for org {org_id} at seq {seq}: "
            f"expected {expected_hash}, found {actual_hash}"
        )
