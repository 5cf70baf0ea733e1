"""
Master data referenced by documents: tax codes, items and parties.

Maintained by master-data CRUD outside the kernel.  The kernel reads these
rows by id and checks ``is_active``; it never writes them.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.domain.dtos import TaxType


class TaxCode(TrackedBase):
    __tablename__ = "tax_codes"

    org_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("organizations.id"), nullable=False
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    # Percent, e.g. 5 for 5%
    rate: Mapped[Decimal] = mapped_column(Numeric(9, 4), nullable=False)

    tax_type: Mapped[TaxType] = mapped_column(
        String(20), default=TaxType.STANDARD, nullable=False
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Item(TrackedBase):
    """Product or service; resolves to an income or expense account."""

    __tablename__ = "items"

    org_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("organizations.id"), nullable=False
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    income_account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=True
    )

    expense_account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=True
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class PartyKind:
    CUSTOMER = "CUSTOMER"
    VENDOR = "VENDOR"


class Party(TrackedBase):
    """Customer or vendor."""

    __tablename__ = "parties"

    org_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("organizations.id"), nullable=False
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    kind: Mapped[str] = mapped_column(String(10), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
