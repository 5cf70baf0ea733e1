"""
Organization -- tenant root and its ledger settings.

One row per org.  Holds the settings the kernel reads on every transition
(base currency, lock date, VAT behaviour, default control accounts).  The
row is maintained by org administration, outside the kernel; services only
read it, through ``to_context()``.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import JSON, Boolean, Date, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.domain.dtos import DocumentType, VatBehavior
from ledger_kernel.domain.org_context import DEFAULT_NUMBER_PREFIXES, OrgContext


class Organization(TrackedBase):
    __tablename__ = "organizations"

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    base_currency: Mapped[str] = mapped_column(String(3), nullable=False)

    # Documents dated on or before this date are frozen
    lock_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    vat_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    vat_behavior: Mapped[VatBehavior] = mapped_column(
        String(10),
        default=VatBehavior.EXCLUSIVE,
        nullable=False,
    )

    # Default control accounts; plain ids, accounts reference the org
    ar_account_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    ap_account_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    output_vat_account_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    input_vat_account_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    # {"INVOICE": "INV-", ...}; missing types use the defaults
    number_prefixes: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<Organization {self.name} ({self.base_currency})>"

    def to_context(self) -> OrgContext:
        prefixes = dict(DEFAULT_NUMBER_PREFIXES)
        for key, prefix in (self.number_prefixes or {}).items():
            prefixes[DocumentType(key)] = prefix
        return OrgContext(
            org_id=self.id,
            base_currency=self.base_currency,
            lock_date=self.lock_date,
            vat_enabled=self.vat_enabled,
            vat_behavior=VatBehavior(self.vat_behavior),
            ar_account_id=self.ar_account_id,
            ap_account_id=self.ap_account_id,
            output_vat_account_id=self.output_vat_account_id,
            input_vat_account_id=self.input_vat_account_id,
            number_prefixes=prefixes,
        )
