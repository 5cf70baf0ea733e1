"""
Base class for read-only selectors.

Selectors are the query side of the kernel: they take a Session from the
caller, never add, flush or commit, and return frozen dataclasses rather
than ORM rows.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from ledger_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    def __init__(self, session: Session):
        self.session = session
