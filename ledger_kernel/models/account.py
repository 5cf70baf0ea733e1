"""
Account -- chart of accounts entry, scoped to one organization.
"""

from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.domain.dtos import AccountType, LineSide


class Account(TrackedBase):
    """
    A single node in an org's general ledger.

    Contract:
        (org_id, code) is unique.  account_type fixes the normal balance:
        ASSET and EXPENSE are debit-normal, LIABILITY, INCOME and EQUITY
        credit-normal.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("org_id", "code", name="uq_account_org_code"),
        Index("idx_account_org_type", "org_id", "account_type"),
    )

    org_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("organizations.id"),
        nullable=False,
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    account_type: Mapped[AccountType] = mapped_column(String(20), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name}>"

    @property
    def normal_side(self) -> LineSide:
        return AccountType(self.account_type).normal_side
