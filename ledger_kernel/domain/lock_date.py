"""
Lock date guard.

An organization's lock date closes the books through that day: no document
dated on or before it may be created, edited, posted or voided.  This is a
pure predicate; the document service consults it before any mutation, so a
violation never reaches the posting engine.
"""

from datetime import date

from ledger_kernel.exceptions import LockDateViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("domain.lock_date")


def is_locked(lock_date: date | None, document_date: date) -> bool:
    """True when ``document_date`` falls on or before ``lock_date``."""
    if lock_date is None:
        return False
    return document_date <= lock_date


def ensure_not_locked(lock_date: date | None, document_date: date, action: str) -> None:
    """
    Raise if ``document_date`` is inside the locked period.

    Raises:
        LockDateViolationError: document_date <= lock_date.
    """
    if is_locked(lock_date, document_date):
        logger.warning(
            "lock_date_violation",
            extra={
                "lock_date": lock_date.isoformat(),
                "document_date": document_date.isoformat(),
                "action": action,
            },
        )
        raise LockDateViolationError(lock_date, document_date, action)
