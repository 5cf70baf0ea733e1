"""
Ledger queries: batch views, document batches and the trial balance.
"""

from datetime import date
from uuid import uuid4

import pytest

from ledger_kernel.domain.dtos import BatchKind, BatchStatus, DocumentType
from tests.factories import TEST_ACTOR_ID, bill_payload, draft, invoice_payload, journal_payload


def _post(document_service, ctx, document_type, payload):
    info = document_service.create(ctx, TEST_ACTOR_ID, draft(document_type, payload))
    return document_service.post(ctx, TEST_ACTOR_ID, info.id)


class TestBatchViews:

    def test_get_batch(self, document_service, ledger_selector, ctx, org):
        result = _post(document_service, ctx, DocumentType.INVOICE, invoice_payload(org))
        view = ledger_selector.get_batch(org.org_id, result.ledger_batch_id)
        assert view.source_type == "INVOICE"
        assert view.source_id == result.document.id
        assert view.kind == BatchKind.POSTING
        assert view.posting_date == date(2024, 3, 10)
        assert [line.line_no for line in view.lines] == [1, 2, 3]
        assert view.total_debits == view.total_credits == 105000

    def test_other_org_cannot_see_batch(self, document_service, ledger_selector, ctx, org):
        result = _post(document_service, ctx, DocumentType.INVOICE, invoice_payload(org))
        assert ledger_selector.get_batch(uuid4(), result.ledger_batch_id) is None

    def test_batches_for_voided_document(self, document_service, ledger_selector, deterministic_clock, ctx, org):
        result = _post(document_service, ctx, DocumentType.INVOICE, invoice_payload(org))
        deterministic_clock.set_date(date(2024, 3, 20))
        void = document_service.void(ctx, TEST_ACTOR_ID, result.document.id)

        posting, reversal = ledger_selector.batches_for_document(org.org_id, result.document.id)
        assert posting.id == result.ledger_batch_id
        assert posting.status == BatchStatus.REVERSED
        assert posting.reversed_by_id == void.reversal_batch_id
        assert reversal.kind == BatchKind.REVERSAL
        assert reversal.reversal_of_id == posting.id
        assert reversal.posting_date == date(2024, 3, 20)


class TestTrialBalance:

    @pytest.fixture
    def activity(self, document_service, ctx, org):
        _post(document_service, ctx, DocumentType.INVOICE, invoice_payload(org))
        _post(document_service, ctx, DocumentType.BILL, bill_payload(org, document_date="2024-03-15"))
        _post(document_service, ctx, DocumentType.JOURNAL, journal_payload(org, document_date="2024-03-20"))

    def test_rows(self, ledger_selector, org, activity):
        rows = {row.account_id: row for row in ledger_selector.trial_balance(org.org_id)}
        assert rows[org.ar].balance == 105000
        assert rows[org.income].balance == -100000
        assert rows[org.output_vat].balance == -5000
        assert rows[org.expense].balance == 20000
        assert rows[org.input_vat].balance == 1000
        assert rows[org.ap].balance == -21000
        assert rows[org.bank_gl].balance == 50000
        assert rows[org.equity].balance == -50000

    def test_ordered_by_code(self, ledger_selector, org, activity):
        codes = [row.account_code for row in ledger_selector.trial_balance(org.org_id)]
        assert codes == sorted(codes)

    def test_debits_equal_credits(self, ledger_selector, org, activity):
        rows = ledger_selector.trial_balance(org.org_id)
        assert sum(r.debit_total for r in rows) == sum(r.credit_total for r in rows)
        debits, credits = ledger_selector.total_debits_credits(org.org_id)
        assert debits == credits == 105000 + 21000 + 50000

    def test_as_of_date(self, ledger_selector, org, activity):
        rows = ledger_selector.trial_balance(org.org_id, as_of_date=date(2024, 3, 14))
        assert {row.account_id for row in rows} == {org.ar, org.income, org.output_vat}

    def test_account_balance(self, ledger_selector, org, activity):
        assert ledger_selector.account_balance(org.org_id, org.bank_gl) == 50000
        assert ledger_selector.account_balance(org.org_id, org.bank_gl, as_of_date=date(2024, 3, 19)) == 0

    def test_voided_document_nets_to_zero(self, document_service, ledger_selector, deterministic_clock, ctx, org):
        result = _post(document_service, ctx, DocumentType.INVOICE, invoice_payload(org))
        deterministic_clock.set_date(date(2024, 3, 20))
        document_service.void(ctx, TEST_ACTOR_ID, result.document.id)

        rows = ledger_selector.trial_balance(org.org_id)
        assert rows
        assert all(row.balance == 0 for row in rows)
        assert ledger_selector.account_balance(org.org_id, org.ar) == 0
        assert ledger_selector.account_balance(org.org_id, org.ar, as_of_date=date(2024, 3, 19)) == 105000

    def test_empty_ledger(self, ledger_selector, org):
        assert ledger_selector.trial_balance(org.org_id) == []
        assert ledger_selector.total_debits_credits(org.org_id) == (0, 0)
