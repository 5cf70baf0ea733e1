"""
IdempotencyRecord -- stored outcome of a keyed mutating request.

Unique on (org_id, key).  Inserted in the same transaction as the
transition it records and never updated afterward.  Two concurrent
requests with the same fresh key race on the unique constraint; the loser
rolls back and replays the winner's stored response.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString


class IdempotencyRecord(Base):
    __tablename__ = "idempotency_records"

    __table_args__ = (
        UniqueConstraint("org_id", "key", name="uq_idempotency_org_key"),
    )

    org_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("organizations.id"), nullable=False
    )

    # Operation-scoped key, e.g. "document.post:<client key>"
    key: Mapped[str] = mapped_column(String(300), nullable=False)

    request_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    response: Mapped[dict] = mapped_column(JSON, nullable=False)

    status_code: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<IdempotencyRecord {self.key} status={self.status_code}>"
