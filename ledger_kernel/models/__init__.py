"""ORM models for the ledger kernel."""

from ledger_kernel.models.account import Account
from ledger_kernel.models.audit_log import AuditAction, AuditLogEntry
from ledger_kernel.models.document import Document, DocumentLine
from ledger_kernel.models.idempotency import IdempotencyRecord
from ledger_kernel.models.ledger import LedgerBatch, LedgerLine
from ledger_kernel.models.master_data import Item, Party, PartyKind, TaxCode
from ledger_kernel.models.organization import Organization
from ledger_kernel.models.reconciliation import (
    BankAccount,
    BankTransaction,
    ReconciliationMatch,
    ReconciliationSession,
)
from ledger_kernel.models.sequence import SequenceCounter

__all__ = [
    "Account",
    "AuditAction",
    "AuditLogEntry",
    "BankAccount",
    "BankTransaction",
    "Document",
    "DocumentLine",
    "IdempotencyRecord",
    "Item",
    "LedgerBatch",
    "LedgerLine",
    "Organization",
    "Party",
    "PartyKind",
    "ReconciliationMatch",
    "ReconciliationSession",
    "SequenceCounter",
    "TaxCode",
]
