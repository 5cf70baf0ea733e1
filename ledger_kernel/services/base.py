"""
BaseService -- abstract base for the kernel's write services.

Responsibility:
    Common constructor and session contract.  Services receive a
    SQLAlchemy ``Session`` from the caller and persist with
    ``session.flush()``, never ``session.commit()``.

Invariants enforced:
    Transaction boundaries: the command gateway (or a test) owns
    commit/rollback, so a post, its ledger batch, its audit entry and its
    idempotency record land atomically or not at all.
"""

from abc import ABC
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.db.base import Base
from ledger_kernel.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for kernel services.

    Non-goals:
        - Does NOT manage the transaction lifecycle.
        - Read-only queries belong in ``ledger_kernel/selectors/``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()

    def _lock_row(self, model: type[ModelType], row_id: UUID) -> ModelType | None:
        """SELECT ... FOR UPDATE, refreshing any stale identity-map copy."""
        return self.session.execute(
            select(model)
            .where(model.id == row_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
