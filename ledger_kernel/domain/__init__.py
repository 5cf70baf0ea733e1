"""
Pure domain layer.

DTOs, money arithmetic, the lock date guard, posting rules and the posting
engine.  Nothing here imports the ORM, opens a session or reads the clock;
services pass in everything these functions need.
"""

from ledger_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from ledger_kernel.domain.currency import CurrencyInfo, CurrencyRegistry
from ledger_kernel.domain.dtos import (
    AccountType,
    BatchKind,
    BatchStatus,
    DocumentDraft,
    DocumentInfo,
    DocumentStatus,
    DocumentType,
    DraftLine,
    LineInfo,
    LineSide,
    MatchSuggestion,
    MatchType,
    PostResult,
    ReconciliationMatchInfo,
    ReconciliationSessionInfo,
    ReconciliationStatus,
    TaxType,
    VatBehavior,
    VoidResult,
)
from ledger_kernel.domain.lock_date import ensure_not_locked, is_locked
from ledger_kernel.domain.org_context import OrgContext
from ledger_kernel.domain.posting_engine import (
    BatchDraft,
    LedgerLineDraft,
    PostingEngine,
    PostingRequest,
    ResolvedLine,
)
from ledger_kernel.domain.posting_rules import (
    PostingRule,
    PostingRuleRegistry,
    get_default_registry,
)

__all__ = [
    "AccountType",
    "BatchDraft",
    "BatchKind",
    "BatchStatus",
    "Clock",
    "CurrencyInfo",
    "CurrencyRegistry",
    "DeterministicClock",
    "DocumentDraft",
    "DocumentInfo",
    "DocumentStatus",
    "DocumentType",
    "DraftLine",
    "LedgerLineDraft",
    "LineInfo",
    "LineSide",
    "MatchSuggestion",
    "MatchType",
    "OrgContext",
    "PostResult",
    "PostingEngine",
    "PostingRequest",
    "PostingRule",
    "PostingRuleRegistry",
    "ReconciliationMatchInfo",
    "ReconciliationSessionInfo",
    "ReconciliationStatus",
    "ResolvedLine",
    "SystemClock",
    "TaxType",
    "VatBehavior",
    "VoidResult",
    "ensure_not_locked",
    "get_default_registry",
    "is_locked",
]
