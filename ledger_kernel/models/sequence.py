"""SequenceCounter -- named monotonic counters (document numbers, audit seq)."""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row is a named sequence with its current value.  Row-level locking
    keeps allocations monotonic under concurrency.
    """

    __tablename__ = "sequence_counters"

    # e.g. "<org id>:document:INVOICE", "<org id>:audit"
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
