"""
Pytest fixtures for the ledger kernel test suite.

Provides:
- A file-backed SQLite database per test (BEGIN IMMEDIATE transactions, so
  gateway commands and worker threads see real commits and real locks)
- An organization with a small chart of accounts, a tax code, parties, an
  item and a bank account
- Services bound to a per-test session and a DeterministicClock
- Committing helpers for lock dates and bank statement lines

Environment Variables:
- DATABASE_URL: run against another database (e.g. PostgreSQL) instead of
  the per-test SQLite file.  Tables are dropped and recreated per test.
"""

import json
import logging
import os
from datetime import date
from io import StringIO
from typing import Any, Callable, Generator
from uuid import UUID

import pytest
from sqlalchemy.orm import Session, sessionmaker

from ledger_kernel.config import KernelSettings
from ledger_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from ledger_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.domain.org_context import OrgContext
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ledger_kernel.models.organization import Organization
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.auditor_service import AuditorService
from ledger_kernel.services.command_gateway import CommandGateway
from ledger_kernel.services.document_service import DocumentService
from ledger_kernel.services.idempotency_broker import IdempotencyBroker
from ledger_kernel.services.ledger_writer import LedgerWriter
from ledger_kernel.services.reconciliation_service import ReconciliationService
from ledger_kernel.services.reference_data import load_org_context
from tests.factories import TEST_ACTOR_ID, OrgFixture, bank_transaction, seed_organization


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture ledger_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, gateway):
            gateway.post_document(...)
            logs = captured_logs()
            assert any(r["message"] == "document_posted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ledger_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_engine(tmp_path):
    """
    Fresh database per test.

    Immutability listeners are registered for the duration of the test.
    """
    url = os.environ.get("DATABASE_URL") or f"sqlite:///{tmp_path / 'ledger.db'}"
    engine = init_engine_from_url(url)
    if os.environ.get("DATABASE_URL"):
        drop_tables()
    create_tables()
    register_immutability_listeners()
    yield engine
    unregister_immutability_listeners()
    reset_engine()


@pytest.fixture
def session_factory(db_engine) -> sessionmaker[Session]:
    return get_session_factory()


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    """
    A session for service-level tests.

    Services flush and never commit; whatever the test does not commit is
    rolled back at teardown.
    """
    s = session_factory()
    try:
        yield s
    finally:
        s.rollback()
        s.close()


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    """Noon UTC on 2024-03-01 unless a test moves it."""
    return DeterministicClock()


# =============================================================================
# Organization and master data
# =============================================================================


@pytest.fixture
def make_org(session_factory) -> Callable[..., OrgFixture]:
    """Factory committing a new organization; keyword args go to seed_organization."""

    def _make(**kwargs: Any) -> OrgFixture:
        with session_scope(session_factory) as s:
            return seed_organization(s, TEST_ACTOR_ID, **kwargs)

    return _make


@pytest.fixture
def org(make_org) -> OrgFixture:
    return make_org()


@pytest.fixture
def set_lock_date(session_factory) -> Callable[[UUID, date | None], None]:
    """Move an org's lock date (org administration lives outside the kernel)."""

    def _set(org_id: UUID, lock_date: date | None) -> None:
        with session_scope(session_factory) as s:
            s.get(Organization, org_id).lock_date = lock_date

    return _set


@pytest.fixture
def add_bank_transaction(session_factory) -> Callable[..., UUID]:
    """Commit a statement line for a bank account; amount in minor units."""

    def _add(org: OrgFixture, transaction_date: date, amount: int, bank_account_id: UUID | None = None) -> UUID:
        with session_scope(session_factory) as s:
            return bank_transaction(s, org, transaction_date, amount, bank_account_id)

    return _add


@pytest.fixture
def ctx(session, org) -> OrgContext:
    return load_org_context(session, org.org_id)


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def auditor_service(session, deterministic_clock) -> AuditorService:
    return AuditorService(session, deterministic_clock)


@pytest.fixture
def ledger_writer(session, deterministic_clock) -> LedgerWriter:
    return LedgerWriter(session, deterministic_clock)


@pytest.fixture
def document_service(session, deterministic_clock) -> DocumentService:
    return DocumentService(session, deterministic_clock)


@pytest.fixture
def reconciliation_service(session, deterministic_clock) -> ReconciliationService:
    return ReconciliationService(session, deterministic_clock)


@pytest.fixture
def idempotency_broker(session, deterministic_clock) -> IdempotencyBroker:
    return IdempotencyBroker(session, deterministic_clock)


@pytest.fixture
def ledger_selector(session) -> LedgerSelector:
    return LedgerSelector(session)


@pytest.fixture
def gateway(session_factory, deterministic_clock) -> CommandGateway:
    return CommandGateway(
        session_factory=session_factory,
        clock=deterministic_clock,
        settings=KernelSettings(),
    )


