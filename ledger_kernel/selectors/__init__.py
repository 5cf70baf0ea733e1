"""Read-only query selectors for the ledger kernel."""

from ledger_kernel.selectors.base import BaseSelector
from ledger_kernel.selectors.ledger_selector import (
    LedgerBatchView,
    LedgerLineView,
    LedgerSelector,
    TrialBalanceRow,
)

__all__ = [
    "BaseSelector",
    "LedgerBatchView",
    "LedgerLineView",
    "LedgerSelector",
    "TrialBalanceRow",
]
