"""
AuditLogEntry -- append-only record of every state change.

Entries form a per-organization hash chain: each entry's hash covers its
own fields, the hash of its before/after payload and the previous entry's
hash.  Rewriting any entry breaks every later link, which
AuditorService.verify_chain detects.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    POST = "POST"
    VOID = "VOID"


class AuditLogEntry(Base):
    __tablename__ = "audit_log"

    __table_args__ = (
        UniqueConstraint("org_id", "seq", name="uq_audit_org_seq"),
        Index("idx_audit_entity", "entity_type", "entity_id"),
    )

    org_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("organizations.id"), nullable=False
    )

    seq: Mapped[int] = mapped_column(nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    action: Mapped[AuditAction] = mapped_column(String(10), nullable=False)

    before: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    after: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditLogEntry {self.seq} {self.action} {self.entity_type}:{self.entity_id}>"
