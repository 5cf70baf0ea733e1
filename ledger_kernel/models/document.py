"""
Document and DocumentLine -- financial source documents.

Every document type shares these two tables; ``document_type`` selects the
posting rule.  Money columns hold integer minor units; quantity, price and
discount are exact decimals as entered.

Immutability:
    A DRAFT is freely editable.  Once POSTED, only the lifecycle columns
    (status -> VOID/BOUNCED, voided_at) and settlement tracking
    (amount_paid) may change; see db/immutability.py.

Concurrency:
    ``version`` is the mapper's version_id_col.  Every UPDATE carries
    ``WHERE version = :expected``; a concurrent writer that lost the race
    gets StaleDataError.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.domain.dtos import (
    DocumentInfo,
    DocumentStatus,
    DocumentType,
    LineInfo,
    LineSide,
)


class Document(TrackedBase):
    __tablename__ = "documents"

    __table_args__ = (
        UniqueConstraint(
            "org_id", "document_type", "document_number", name="uq_document_number"
        ),
        Index("idx_document_org_type_status", "org_id", "document_type", "status"),
        Index("idx_document_counterparty", "counterparty_id"),
    )

    org_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("organizations.id"), nullable=False
    )

    document_type: Mapped[DocumentType] = mapped_column(String(20), nullable=False)

    status: Mapped[DocumentStatus] = mapped_column(
        String(10), default=DocumentStatus.DRAFT, nullable=False
    )

    # Assigned at post time
    document_number: Mapped[str | None] = mapped_column(String(50), nullable=True)

    document_date: Mapped[date] = mapped_column(Date, nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    exchange_rate: Mapped[Decimal] = mapped_column(
        Numeric(18, 8), default=Decimal("1"), nullable=False
    )

    counterparty_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("parties.id"), nullable=True
    )

    # Bank/cash account for payments and expenses
    payment_account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=True
    )

    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    memo: Mapped[str | None] = mapped_column(String(500), nullable=True)

    subtotal: Mapped[int] = mapped_column(default=0, nullable=False)

    tax_total: Mapped[int] = mapped_column(default=0, nullable=False)

    total: Mapped[int] = mapped_column(default=0, nullable=False)

    amount_paid: Mapped[int] = mapped_column(default=0, nullable=False)

    posted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    voided_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    lines: Mapped[list["DocumentLine"]] = relationship(
        back_populates="document",
        foreign_keys="DocumentLine.document_id",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="DocumentLine.line_no",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Document {self.document_type} {self.id} status={self.status}>"

    @property
    def is_draft(self) -> bool:
        return self.status == DocumentStatus.DRAFT

    @property
    def outstanding(self) -> int:
        return self.total - self.amount_paid

    def to_dto(self) -> DocumentInfo:
        return DocumentInfo(
            id=self.id,
            org_id=self.org_id,
            document_type=DocumentType(self.document_type),
            status=DocumentStatus(self.status),
            document_number=self.document_number,
            document_date=self.document_date,
            currency=self.currency,
            exchange_rate=Decimal(self.exchange_rate),
            counterparty_id=self.counterparty_id,
            payment_account_id=self.payment_account_id,
            reference=self.reference,
            memo=self.memo,
            subtotal=self.subtotal,
            tax_total=self.tax_total,
            total=self.total,
            amount_paid=self.amount_paid,
            posted_at=self.posted_at,
            voided_at=self.voided_at,
            created_by_id=self.created_by_id,
            version=self.version,
            lines=tuple(line.to_dto() for line in self.lines),
        )


class DocumentLine(TrackedBase):
    __tablename__ = "document_lines"

    __table_args__ = (
        UniqueConstraint("document_id", "line_no", name="uq_document_line_no"),
        Index("idx_document_line_applied", "applied_document_id"),
    )

    document_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("documents.id"), nullable=False
    )

    line_no: Mapped[int] = mapped_column(Integer, nullable=False)

    # Resolved target account (from the line, its item, or the rule default)
    account_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=False
    )

    item_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=True
    )

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)

    unit_price: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    discount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    tax_code_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("tax_codes.id"), nullable=True
    )

    # Journals only
    side: Mapped[LineSide | None] = mapped_column(String(6), nullable=True)

    # Payments only: the invoice or bill this line settles
    applied_document_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("documents.id"), nullable=True
    )

    subtotal: Mapped[int] = mapped_column(nullable=False)

    tax: Mapped[int] = mapped_column(nullable=False)

    total: Mapped[int] = mapped_column(nullable=False)

    document: Mapped[Document] = relationship(
        back_populates="lines",
        foreign_keys=[document_id],
    )

    def to_dto(self) -> LineInfo:
        return LineInfo(
            line_no=self.line_no,
            account_id=self.account_id,
            item_id=self.item_id,
            description=self.description,
            quantity=Decimal(self.quantity),
            unit_price=Decimal(self.unit_price),
            discount=Decimal(self.discount),
            tax_code_id=self.tax_code_id,
            side=LineSide(self.side) if self.side else None,
            applied_document_id=self.applied_document_id,
            subtotal=self.subtotal,
            tax=self.tax,
            total=self.total,
        )
