"""
Bank reconciliation sessions, matches and match suggestions.

Everything here runs in the test's single session: bank statement lines are
flushed with ``bank_transaction`` and ledger batches come from documents
posted through the DocumentService.
"""

from datetime import date
from uuid import uuid4

import pytest

from ledger_kernel.domain.dtos import DocumentType, MatchType, ReconciliationStatus
from ledger_kernel.exceptions import (
    BankTransactionAlreadyMatchedError,
    BankTransactionOutsideSessionError,
    InvalidPeriodError,
    LedgerBatchNotFoundError,
    ReconciliationPeriodOverlapError,
    ReconciliationSessionClosedError,
    ReconciliationSessionNotFoundError,
    ReferenceNotFoundError,
)
from ledger_kernel.models.audit_log import AuditAction
from ledger_kernel.models.reconciliation import BankAccount
from tests.factories import (
    TEST_ACTOR_ID,
    bank_transaction,
    bill_payload,
    customer_payment_payload,
    draft,
)

MARCH = (date(2024, 3, 1), date(2024, 3, 31))


def _open(service, ctx, org, period=MARCH, opening=100000, closing=150000):
    return service.create_session(
        ctx, TEST_ACTOR_ID, org.bank_account, period[0], period[1], opening, closing
    )


def _receipt(document_service, ctx, org, amount, document_date="2024-03-12"):
    """Post an on-account customer receipt; returns its ledger batch id."""
    info = document_service.create(
        ctx, TEST_ACTOR_ID,
        draft(
            DocumentType.CUSTOMER_PAYMENT,
            customer_payment_payload(org, None, amount, document_date=document_date),
        ),
    )
    return document_service.post(ctx, TEST_ACTOR_ID, info.id)


def _expense(document_service, ctx, org, unit_price, document_date="2024-03-10"):
    payload = bill_payload(org, unit_price=unit_price, tax=False, document_date=document_date)
    del payload["counterpartyId"]
    payload["paymentAccountId"] = str(org.bank_gl)
    info = document_service.create(ctx, TEST_ACTOR_ID, draft(DocumentType.EXPENSE, payload))
    return document_service.post(ctx, TEST_ACTOR_ID, info.id)


class TestSessions:

    def test_create(self, reconciliation_service, auditor_service, ctx, org):
        info = _open(reconciliation_service, ctx, org)
        assert info.status == ReconciliationStatus.OPEN
        assert info.opening_balance == 100000
        assert info.closed_at is None
        trace = auditor_service.get_trace("ReconciliationSession", info.id)
        assert [e.action for e in trace] == [AuditAction.CREATE]

    def test_end_before_start(self, reconciliation_service, ctx, org):
        with pytest.raises(InvalidPeriodError):
            _open(reconciliation_service, ctx, org, period=(date(2024, 3, 31), date(2024, 3, 1)))

    def test_single_day_period(self, reconciliation_service, ctx, org):
        info = _open(reconciliation_service, ctx, org, period=(date(2024, 3, 5), date(2024, 3, 5)))
        assert info.period_start == info.period_end

    def test_overlap_rejected(self, reconciliation_service, ctx, org):
        first = _open(reconciliation_service, ctx, org)
        with pytest.raises(ReconciliationPeriodOverlapError) as exc_info:
            _open(reconciliation_service, ctx, org, period=(date(2024, 3, 31), date(2024, 4, 30)))
        assert exc_info.value.existing_session_id == str(first.id)

    def test_adjacent_periods(self, reconciliation_service, ctx, org):
        _open(reconciliation_service, ctx, org)
        april = _open(reconciliation_service, ctx, org, period=(date(2024, 4, 1), date(2024, 4, 30)))
        assert april.status == ReconciliationStatus.OPEN

    def test_unknown_bank_account(self, reconciliation_service, ctx, org):
        with pytest.raises(ReferenceNotFoundError):
            reconciliation_service.create_session(
                ctx, TEST_ACTOR_ID, uuid4(), MARCH[0], MARCH[1], 0, 0
            )

    def test_close_with_final_balance(self, reconciliation_service, ctx, org):
        info = _open(reconciliation_service, ctx, org)
        closed = reconciliation_service.close_session(ctx, TEST_ACTOR_ID, info.id, 149500)
        assert closed.status == ReconciliationStatus.CLOSED
        assert closed.closing_balance == 149500
        assert closed.closed_at is not None

    def test_close_twice(self, reconciliation_service, ctx, org):
        info = _open(reconciliation_service, ctx, org)
        reconciliation_service.close_session(ctx, TEST_ACTOR_ID, info.id)
        with pytest.raises(ReconciliationSessionClosedError):
            reconciliation_service.close_session(ctx, TEST_ACTOR_ID, info.id)

    def test_unknown_session(self, reconciliation_service, ctx):
        with pytest.raises(ReconciliationSessionNotFoundError):
            reconciliation_service.close_session(ctx, TEST_ACTOR_ID, uuid4())


class TestMatching:

    @pytest.fixture
    def recon(self, reconciliation_service, ctx, org):
        return _open(reconciliation_service, ctx, org)

    @pytest.fixture
    def receipt(self, document_service, ctx, org):
        return _receipt(document_service, ctx, org, "75.00")

    def test_match(self, session, reconciliation_service, auditor_service, ctx, org, recon, receipt):
        txn_id = bank_transaction(session, org, date(2024, 3, 13), 7500)
        match = reconciliation_service.match_transaction(
            ctx, TEST_ACTOR_ID, recon.id, txn_id, receipt.ledger_batch_id
        )
        assert match.match_type == MatchType.MANUAL
        assert match.bank_transaction_id == txn_id
        assert match.ledger_batch_id == receipt.ledger_batch_id
        trace = auditor_service.get_trace("ReconciliationMatch", match.id)
        assert [e.action for e in trace] == [AuditAction.CREATE]

    def test_transaction_matched_once(self, session, reconciliation_service, document_service, ctx, org, recon, receipt):
        txn_id = bank_transaction(session, org, date(2024, 3, 13), 7500)
        reconciliation_service.match_transaction(ctx, TEST_ACTOR_ID, recon.id, txn_id, receipt.ledger_batch_id)
        other = _receipt(document_service, ctx, org, "75.00", document_date="2024-03-14")
        with pytest.raises(BankTransactionAlreadyMatchedError):
            reconciliation_service.match_transaction(
                ctx, TEST_ACTOR_ID, recon.id, txn_id, other.ledger_batch_id, MatchType.AUTO
            )

    def test_matched_transaction_in_another_session(
        self, session, reconciliation_service, document_service, ctx, org, recon, receipt
    ):
        """
        Sessions on one bank account never overlap, so any other open
        session rejects the transaction on its period before the
        already-matched check is reached.
        """
        txn_id = bank_transaction(session, org, date(2024, 3, 13), 7500)
        reconciliation_service.match_transaction(ctx, TEST_ACTOR_ID, recon.id, txn_id, receipt.ledger_batch_id)
        april = _open(reconciliation_service, ctx, org, period=(date(2024, 4, 1), date(2024, 4, 30)))
        other = _receipt(document_service, ctx, org, "75.00", document_date="2024-03-14")

        with pytest.raises(BankTransactionOutsideSessionError, match="outside the session period"):
            reconciliation_service.match_transaction(
                ctx, TEST_ACTOR_ID, april.id, txn_id, other.ledger_batch_id
            )

    def test_closed_session(self, session, reconciliation_service, ctx, org, recon, receipt):
        txn_id = bank_transaction(session, org, date(2024, 3, 13), 7500)
        reconciliation_service.close_session(ctx, TEST_ACTOR_ID, recon.id)
        with pytest.raises(ReconciliationSessionClosedError):
            reconciliation_service.match_transaction(
                ctx, TEST_ACTOR_ID, recon.id, txn_id, receipt.ledger_batch_id
            )

    def test_transaction_outside_period(self, session, reconciliation_service, ctx, org, recon, receipt):
        txn_id = bank_transaction(session, org, date(2024, 4, 1), 7500)
        with pytest.raises(BankTransactionOutsideSessionError):
            reconciliation_service.match_transaction(
                ctx, TEST_ACTOR_ID, recon.id, txn_id, receipt.ledger_batch_id
            )

    def test_transaction_of_another_bank_account(self, session, reconciliation_service, ctx, org, recon, receipt):
        savings = BankAccount(
            org_id=org.org_id, name="Savings", gl_account_id=org.bank_gl,
            currency="USD", created_by_id=TEST_ACTOR_ID,
        )
        session.add(savings)
        session.flush()
        txn_id = bank_transaction(session, org, date(2024, 3, 13), 7500, bank_account_id=savings.id)
        with pytest.raises(BankTransactionOutsideSessionError, match="different bank account"):
            reconciliation_service.match_transaction(
                ctx, TEST_ACTOR_ID, recon.id, txn_id, receipt.ledger_batch_id
            )

    def test_unknown_transaction(self, reconciliation_service, ctx, recon, receipt):
        with pytest.raises(ReferenceNotFoundError) as exc_info:
            reconciliation_service.match_transaction(
                ctx, TEST_ACTOR_ID, recon.id, uuid4(), receipt.ledger_batch_id
            )
        assert exc_info.value.entity_type == "BankTransaction"

    def test_unknown_batch(self, session, reconciliation_service, ctx, org, recon):
        txn_id = bank_transaction(session, org, date(2024, 3, 13), 7500)
        with pytest.raises(LedgerBatchNotFoundError):
            reconciliation_service.match_transaction(ctx, TEST_ACTOR_ID, recon.id, txn_id, uuid4())


class TestSuggestions:

    def test_amount_and_date_match(self, session, reconciliation_service, document_service, ctx, org):
        recon = _open(reconciliation_service, ctx, org)
        receipt = _receipt(document_service, ctx, org, "75.00", document_date="2024-03-12")
        expense = _expense(document_service, ctx, org, "42.00", document_date="2024-03-10")
        deposit = bank_transaction(session, org, date(2024, 3, 13), 7500)
        withdrawal = bank_transaction(session, org, date(2024, 3, 10), -4200)
        bank_transaction(session, org, date(2024, 3, 20), 99999)

        suggestions = reconciliation_service.suggest_matches(ctx, recon.id)

        pairs = {(s.bank_transaction_id, s.ledger_batch_id) for s in suggestions}
        assert pairs == {
            (deposit, receipt.ledger_batch_id),
            (withdrawal, expense.ledger_batch_id),
        }
        by_txn = {s.bank_transaction_id: s for s in suggestions}
        assert by_txn[deposit].days_apart == 1
        assert by_txn[withdrawal].amount == -4200

    def test_closest_date_wins(self, session, reconciliation_service, document_service, ctx, org):
        recon = _open(reconciliation_service, ctx, org)
        _receipt(document_service, ctx, org, "75.00", document_date="2024-03-10")
        near = _receipt(document_service, ctx, org, "75.00", document_date="2024-03-12")
        txn_id = bank_transaction(session, org, date(2024, 3, 12), 7500)

        [suggestion] = reconciliation_service.suggest_matches(ctx, recon.id)
        assert suggestion.bank_transaction_id == txn_id
        assert suggestion.ledger_batch_id == near.ledger_batch_id
        assert suggestion.days_apart == 0

    def test_each_batch_proposed_once(self, session, reconciliation_service, document_service, ctx, org):
        recon = _open(reconciliation_service, ctx, org)
        _receipt(document_service, ctx, org, "75.00", document_date="2024-03-12")
        bank_transaction(session, org, date(2024, 3, 12), 7500)
        bank_transaction(session, org, date(2024, 3, 13), 7500)

        assert len(reconciliation_service.suggest_matches(ctx, recon.id)) == 1

    def test_outside_window(self, session, reconciliation_service, document_service, ctx, org):
        recon = _open(reconciliation_service, ctx, org)
        _receipt(document_service, ctx, org, "75.00", document_date="2024-03-12")
        bank_transaction(session, org, date(2024, 3, 20), 7500)

        assert reconciliation_service.suggest_matches(ctx, recon.id) == []
        assert len(reconciliation_service.suggest_matches(ctx, recon.id, date_window_days=8)) == 1

    def test_matched_and_reversed_batches_excluded(
        self, session, reconciliation_service, document_service, deterministic_clock, ctx, org
    ):
        recon = _open(reconciliation_service, ctx, org)
        matched = _receipt(document_service, ctx, org, "75.00", document_date="2024-03-12")
        voided = _receipt(document_service, ctx, org, "30.00", document_date="2024-03-12")
        matched_txn = bank_transaction(session, org, date(2024, 3, 12), 7500)
        bank_transaction(session, org, date(2024, 3, 12), 3000)
        bank_transaction(session, org, date(2024, 3, 13), 7500)

        reconciliation_service.match_transaction(
            ctx, TEST_ACTOR_ID, recon.id, matched_txn, matched.ledger_batch_id
        )
        deterministic_clock.set_date(date(2024, 3, 15))
        document_service.void(ctx, TEST_ACTOR_ID, voided.document.id)

        assert reconciliation_service.suggest_matches(ctx, recon.id) == []

    def test_nothing_is_written(self, session, reconciliation_service, document_service, ctx, org):
        recon = _open(reconciliation_service, ctx, org)
        _receipt(document_service, ctx, org, "75.00")
        bank_transaction(session, org, date(2024, 3, 12), 7500)

        reconciliation_service.suggest_matches(ctx, recon.id)
        assert len(reconciliation_service.suggest_matches(ctx, recon.id)) == 1
