"""
Per-request organization settings snapshot.

Base currency, lock date, VAT behaviour and default control accounts travel
as an explicit, immutable ``OrgContext`` handed to every service call.  There
are no module-level org settings; the command gateway loads a fresh snapshot
inside each transaction.
"""

from dataclasses import dataclass, field
from datetime import date
from types import MappingProxyType
from typing import Mapping
from uuid import UUID

from ledger_kernel.domain.dtos import DocumentType, VatBehavior

DEFAULT_NUMBER_PREFIXES: Mapping[DocumentType, str] = MappingProxyType(
    {
        DocumentType.INVOICE: "INV-",
        DocumentType.BILL: "BILL-",
        DocumentType.EXPENSE: "EXP-",
        DocumentType.JOURNAL: "JRN-",
        DocumentType.CREDIT_NOTE: "CN-",
        DocumentType.DEBIT_NOTE: "DN-",
        DocumentType.CUSTOMER_PAYMENT: "PAY-",
        DocumentType.VENDOR_PAYMENT: "VPAY-",
    }
)


@dataclass(frozen=True)
class OrgContext:
    org_id: UUID
    base_currency: str
    lock_date: date | None = None
    vat_enabled: bool = True
    vat_behavior: VatBehavior = VatBehavior.EXCLUSIVE
    ar_account_id: UUID | None = None
    ap_account_id: UUID | None = None
    output_vat_account_id: UUID | None = None
    input_vat_account_id: UUID | None = None
    number_prefixes: Mapping[DocumentType, str] = field(
        default_factory=lambda: DEFAULT_NUMBER_PREFIXES
    )

    def prefix_for(self, document_type: DocumentType) -> str:
        return self.number_prefixes.get(
            document_type, DEFAULT_NUMBER_PREFIXES[document_type]
        )
