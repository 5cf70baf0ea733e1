"""
Payments settling invoices and bills.

Verifies:
- Posting a payment raises the target's amount_paid; voiding or bouncing it
  releases the amount again
- Overpayment is rejected at post
- A document with settled amounts cannot be voided
- Only payments bounce
"""

from datetime import date

import pytest

from ledger_kernel.domain.dtos import DocumentStatus, DocumentType
from ledger_kernel.exceptions import (
    BounceNotAllowedError,
    DocumentHasSettlementsError,
    InvalidDocumentError,
    InvalidDocumentTransitionError,
    OverpaymentError,
)
from ledger_kernel.models.audit_log import AuditAction
from tests.factories import (
    TEST_ACTOR_ID,
    bill_payload,
    customer_payment_payload,
    draft,
    invoice_payload,
    vendor_payment_payload,
)


def _create(service, ctx, document_type, payload):
    return service.create(ctx, TEST_ACTOR_ID, draft(document_type, payload))


def _create_and_post(service, ctx, document_type, payload):
    info = _create(service, ctx, document_type, payload)
    return service.post(ctx, TEST_ACTOR_ID, info.id)


def _by_account(batch):
    return {line.account_id: (line.debit, line.credit) for line in batch.lines}


@pytest.fixture
def posted_invoice(document_service, ctx, org):
    """INV-1 for 1050.00 including VAT."""
    return _create_and_post(document_service, ctx, DocumentType.INVOICE, invoice_payload(org)).document


class TestCustomerPayment:

    def test_partial_payment(self, document_service, ledger_selector, ctx, org, posted_invoice):
        result = _create_and_post(
            document_service, ctx, DocumentType.CUSTOMER_PAYMENT,
            customer_payment_payload(org, posted_invoice.id, "400.00"),
        )
        assert result.document.document_number == "PAY-1"

        invoice = document_service.get(ctx, posted_invoice.id)
        assert invoice.amount_paid == 40000
        assert invoice.outstanding == 65000
        assert invoice.status == DocumentStatus.POSTED

        batch = ledger_selector.get_batch(org.org_id, result.ledger_batch_id)
        assert _by_account(batch) == {org.ar: (0, 40000), org.bank_gl: (40000, 0)}

    def test_full_payment_in_two_parts(self, document_service, ctx, org, posted_invoice):
        for amount in ("1000.00", "50.00"):
            _create_and_post(
                document_service, ctx, DocumentType.CUSTOMER_PAYMENT,
                customer_payment_payload(org, posted_invoice.id, amount),
            )
        assert document_service.get(ctx, posted_invoice.id).outstanding == 0

    def test_overpayment(self, document_service, ctx, org, posted_invoice):
        payment = _create(
            document_service, ctx, DocumentType.CUSTOMER_PAYMENT,
            customer_payment_payload(org, posted_invoice.id, "1050.01"),
        )
        with pytest.raises(OverpaymentError) as exc_info:
            document_service.post(ctx, TEST_ACTOR_ID, payment.id)
        assert exc_info.value.outstanding == 105000
        assert exc_info.value.amount == 105001
        assert document_service.get(ctx, posted_invoice.id).amount_paid == 0

    def test_payment_against_draft_invoice(self, document_service, ctx, org):
        invoice = _create(document_service, ctx, DocumentType.INVOICE, invoice_payload(org))
        payment = _create(
            document_service, ctx, DocumentType.CUSTOMER_PAYMENT,
            customer_payment_payload(org, invoice.id, "10.00"),
        )
        with pytest.raises(InvalidDocumentTransitionError):
            document_service.post(ctx, TEST_ACTOR_ID, payment.id)

    def test_payment_cannot_settle_a_bill(self, document_service, ctx, org):
        bill = _create_and_post(document_service, ctx, DocumentType.BILL, bill_payload(org)).document
        with pytest.raises(InvalidDocumentError):
            _create(
                document_service, ctx, DocumentType.CUSTOMER_PAYMENT,
                customer_payment_payload(org, bill.id, "10.00"),
            )

    def test_on_account_payment(self, document_service, ledger_selector, ctx, org):
        """Without an applied document the receipt sits on the receivable account."""
        result = _create_and_post(
            document_service, ctx, DocumentType.CUSTOMER_PAYMENT,
            customer_payment_payload(org, None, "75.00"),
        )
        batch = ledger_selector.get_batch(org.org_id, result.ledger_batch_id)
        assert _by_account(batch) == {org.ar: (0, 7500), org.bank_gl: (7500, 0)}

    def test_settlement_is_audited(self, document_service, auditor_service, ctx, org, posted_invoice):
        _create_and_post(
            document_service, ctx, DocumentType.CUSTOMER_PAYMENT,
            customer_payment_payload(org, posted_invoice.id, "400.00"),
        )
        trace = auditor_service.get_trace("Document", posted_invoice.id)
        assert [e.action for e in trace] == [AuditAction.CREATE, AuditAction.POST, AuditAction.UPDATE]
        assert trace[-1].before["amountPaid"] == 0
        assert trace[-1].after["amountPaid"] == 40000


class TestVendorPayment:

    def test_pays_bill(self, document_service, ledger_selector, ctx, org):
        bill = _create_and_post(document_service, ctx, DocumentType.BILL, bill_payload(org)).document
        result = _create_and_post(
            document_service, ctx, DocumentType.VENDOR_PAYMENT,
            vendor_payment_payload(org, bill.id, "210.00"),
        )
        assert result.document.document_number == "VPAY-1"
        assert document_service.get(ctx, bill.id).outstanding == 0

        batch = ledger_selector.get_batch(org.org_id, result.ledger_batch_id)
        assert _by_account(batch) == {org.ap: (21000, 0), org.bank_gl: (0, 21000)}


class TestVoidWithSettlements:

    def test_paid_invoice_cannot_be_voided(self, document_service, ctx, org, posted_invoice):
        _create_and_post(
            document_service, ctx, DocumentType.CUSTOMER_PAYMENT,
            customer_payment_payload(org, posted_invoice.id, "400.00"),
        )
        with pytest.raises(DocumentHasSettlementsError) as exc_info:
            document_service.void(ctx, TEST_ACTOR_ID, posted_invoice.id)
        assert exc_info.value.amount_paid == 40000

    def test_voiding_payment_releases_invoice(
        self, document_service, deterministic_clock, ctx, org, posted_invoice
    ):
        payment = _create_and_post(
            document_service, ctx, DocumentType.CUSTOMER_PAYMENT,
            customer_payment_payload(org, posted_invoice.id, "400.00"),
        ).document
        deterministic_clock.set_date(date(2024, 3, 20))

        document_service.void(ctx, TEST_ACTOR_ID, payment.id)
        assert document_service.get(ctx, posted_invoice.id).amount_paid == 0

        voided = document_service.void(ctx, TEST_ACTOR_ID, posted_invoice.id)
        assert voided.document.status == DocumentStatus.VOID


class TestBounce:

    def test_bounce_payment(self, document_service, ledger_selector, deterministic_clock, ctx, org, posted_invoice):
        payment = _create_and_post(
            document_service, ctx, DocumentType.CUSTOMER_PAYMENT,
            customer_payment_payload(org, posted_invoice.id, "1050.00"),
        )
        deterministic_clock.set_date(date(2024, 3, 15))

        result = document_service.bounce(ctx, TEST_ACTOR_ID, payment.document.id)

        assert result.document.status == DocumentStatus.BOUNCED
        assert document_service.get(ctx, posted_invoice.id).outstanding == 105000
        reversal = ledger_selector.get_batch(org.org_id, result.reversal_batch_id)
        assert _by_account(reversal) == {org.ar: (105000, 0), org.bank_gl: (0, 105000)}

    def test_bounce_twice_returns_same_reversal(self, document_service, deterministic_clock, ctx, org):
        payment = _create_and_post(
            document_service, ctx, DocumentType.CUSTOMER_PAYMENT,
            customer_payment_payload(org, None, "20.00"),
        ).document
        deterministic_clock.set_date(date(2024, 3, 15))
        first = document_service.bounce(ctx, TEST_ACTOR_ID, payment.id)
        second = document_service.bounce(ctx, TEST_ACTOR_ID, payment.id)
        assert first.reversal_batch_id == second.reversal_batch_id

    def test_bounced_payment_cannot_be_voided(self, document_service, deterministic_clock, ctx, org):
        payment = _create_and_post(
            document_service, ctx, DocumentType.CUSTOMER_PAYMENT,
            customer_payment_payload(org, None, "20.00"),
        ).document
        deterministic_clock.set_date(date(2024, 3, 15))
        document_service.bounce(ctx, TEST_ACTOR_ID, payment.id)
        with pytest.raises(InvalidDocumentTransitionError):
            document_service.void(ctx, TEST_ACTOR_ID, payment.id)

    def test_invoice_cannot_bounce(self, document_service, ctx, posted_invoice):
        with pytest.raises(BounceNotAllowedError):
            document_service.bounce(ctx, TEST_ACTOR_ID, posted_invoice.id)

    def test_bounce_logs(self, document_service, deterministic_clock, ctx, org, captured_logs):
        payment = _create_and_post(
            document_service, ctx, DocumentType.CUSTOMER_PAYMENT,
            customer_payment_payload(org, None, "20.00"),
        ).document
        deterministic_clock.set_date(date(2024, 3, 15))
        document_service.bounce(ctx, TEST_ACTOR_ID, payment.id)
        assert any(r["message"] == "document_bounced" for r in captured_logs())
