"""Services for the ledger kernel (write side)."""

from ledger_kernel.services.auditor_service import AuditorService, AuditTraceEntry
from ledger_kernel.services.command_gateway import CommandGateway, CommandResult
from ledger_kernel.services.document_service import DocumentService
from ledger_kernel.services.idempotency_broker import (
    IdempotencyBroker,
    IdempotencyKeyRaceError,
    IdempotencyLookup,
)
from ledger_kernel.services.ledger_writer import LedgerWriter
from ledger_kernel.services.reconciliation_service import ReconciliationService
from ledger_kernel.services.reference_data import (
    MasterDataLookup,
    SqlMasterDataLookup,
    load_org_context,
)
from ledger_kernel.services.sequence_service import SequenceService

__all__ = [
    "AuditTraceEntry",
    "AuditorService",
    "CommandGateway",
    "CommandResult",
    "DocumentService",
    "IdempotencyBroker",
    "IdempotencyKeyRaceError",
    "IdempotencyLookup",
    "LedgerWriter",
    "MasterDataLookup",
    "ReconciliationService",
    "SequenceService",
    "SqlMasterDataLookup",
    "load_org_context",
]
