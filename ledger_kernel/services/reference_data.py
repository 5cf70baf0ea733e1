"""
Reference data access for the document and reconciliation services.

Master data (accounts, tax codes, items, parties, bank accounts) and org
settings are owned by CRUD modules outside the kernel.  The kernel reads
them through the ``MasterDataLookup`` protocol, which hands back small
frozen value objects so validation code never touches ORM rows.

``SqlMasterDataLookup`` is the database-backed implementation.  Every
lookup is org-scoped: a row belonging to another org is reported exactly
like a missing one.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.dtos import AccountType, TaxType
from ledger_kernel.domain.org_context import OrgContext
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    InactiveReferenceError,
    OrganizationNotFoundError,
    ReferenceNotFoundError,
)
from ledger_kernel.models.account import Account
from ledger_kernel.models.master_data import Item, Party, TaxCode
from ledger_kernel.models.organization import Organization
from ledger_kernel.models.reconciliation import BankAccount


@dataclass(frozen=True)
class AccountRef:
    id: UUID
    code: str
    account_type: AccountType
    is_active: bool


@dataclass(frozen=True)
class TaxCodeRef:
    id: UUID
    rate: Decimal
    tax_type: TaxType
    is_active: bool


@dataclass(frozen=True)
class ItemRef:
    id: UUID
    income_account_id: UUID | None
    expense_account_id: UUID | None
    is_active: bool


@dataclass(frozen=True)
class PartyRef:
    id: UUID
    kind: str
    is_active: bool


@dataclass(frozen=True)
class BankAccountRef:
    id: UUID
    gl_account_id: UUID
    currency: str
    is_active: bool


class MasterDataLookup(Protocol):
    """
    Read-only master data access.

    Each getter raises a NotFound error when the row is missing or belongs
    to another org; callers decide what ``is_active == False`` means.
    """

    def get_account(self, org_id: UUID, account_id: UUID) -> AccountRef: ...

    def get_tax_code(self, org_id: UUID, tax_code_id: UUID) -> TaxCodeRef: ...

    def get_item(self, org_id: UUID, item_id: UUID) -> ItemRef: ...

    def get_party(self, org_id: UUID, party_id: UUID) -> PartyRef: ...

    def get_bank_account(self, org_id: UUID, bank_account_id: UUID) -> BankAccountRef: ...


def require_active(ref, entity_type: str):
    """Return ``ref`` or raise InactiveReferenceError."""
    if not ref.is_active:
        raise InactiveReferenceError(entity_type, ref.id)
    return ref


class SqlMasterDataLookup:
    """MasterDataLookup over the kernel's own tables."""

    def __init__(self, session: Session):
        self._session = session

    def _get(self, model, org_id: UUID, row_id: UUID):
        row = self._session.get(model, row_id)
        if row is None or row.org_id != org_id:
            return None
        return row

    def get_account(self, org_id: UUID, account_id: UUID) -> AccountRef:
        row = self._get(Account, org_id, account_id)
        if row is None:
            raise AccountNotFoundError(account_id)
        return AccountRef(
            id=row.id,
            code=row.code,
            account_type=AccountType(row.account_type),
            is_active=row.is_active,
        )

    def get_tax_code(self, org_id: UUID, tax_code_id: UUID) -> TaxCodeRef:
        row = self._get(TaxCode, org_id, tax_code_id)
        if row is None:
            raise ReferenceNotFoundError("TaxCode", tax_code_id)
        return TaxCodeRef(
            id=row.id,
            rate=Decimal(row.rate),
            tax_type=TaxType(row.tax_type),
            is_active=row.is_active,
        )

    def get_item(self, org_id: UUID, item_id: UUID) -> ItemRef:
        row = self._get(Item, org_id, item_id)
        if row is None:
            raise ReferenceNotFoundError("Item", item_id)
        return ItemRef(
            id=row.id,
            income_account_id=row.income_account_id,
            expense_account_id=row.expense_account_id,
            is_active=row.is_active,
        )

    def get_party(self, org_id: UUID, party_id: UUID) -> PartyRef:
        row = self._get(Party, org_id, party_id)
        if row is None:
            raise ReferenceNotFoundError("Party", party_id)
        return PartyRef(id=row.id, kind=row.kind, is_active=row.is_active)

    def get_bank_account(self, org_id: UUID, bank_account_id: UUID) -> BankAccountRef:
        row = self._get(BankAccount, org_id, bank_account_id)
        if row is None:
            raise ReferenceNotFoundError("BankAccount", bank_account_id)
        return BankAccountRef(
            id=row.id,
            gl_account_id=row.gl_account_id,
            currency=row.currency,
            is_active=row.is_active,
        )


def load_org_context(session: Session, org_id: UUID) -> OrgContext:
    """
    Fresh settings snapshot for one request.

    Raises:
        OrganizationNotFoundError: No such org.
    """
    org = session.execute(
        select(Organization)
        .where(Organization.id == org_id)
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if org is None:
        raise OrganizationNotFoundError(org_id)
    return org.to_context()
