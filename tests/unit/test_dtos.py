"""Tests for request parsing into document drafts."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.dtos import (
    AccountType,
    DocumentDraft,
    DocumentType,
    LineSide,
    MatchSuggestion,
)
from ledger_kernel.exceptions import InvalidAmountError, InvalidDocumentError


class TestDocumentTypeParse:

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("invoices", DocumentType.INVOICE),
            ("INVOICE", DocumentType.INVOICE),
            ("bills", DocumentType.BILL),
            ("expenses", DocumentType.EXPENSE),
            ("journal", DocumentType.JOURNAL),
            ("credit-notes", DocumentType.CREDIT_NOTE),
            ("debit_note", DocumentType.DEBIT_NOTE),
            ("customer-payments", DocumentType.CUSTOMER_PAYMENT),
            ("vendor-payments", DocumentType.VENDOR_PAYMENT),
        ],
    )
    def test_route_slugs(self, raw, expected):
        assert DocumentType.parse(raw) is expected

    def test_member_passthrough(self):
        assert DocumentType.parse(DocumentType.BILL) is DocumentType.BILL

    def test_unknown(self):
        with pytest.raises(InvalidDocumentError):
            DocumentType.parse("receipts")


class TestEnums:

    def test_opposite_side(self):
        assert LineSide.DEBIT.opposite() is LineSide.CREDIT
        assert LineSide.CREDIT.opposite() is LineSide.DEBIT

    def test_normal_sides(self):
        assert AccountType.ASSET.normal_side is LineSide.DEBIT
        assert AccountType.EXPENSE.normal_side is LineSide.DEBIT
        assert AccountType.LIABILITY.normal_side is LineSide.CREDIT
        assert AccountType.INCOME.normal_side is LineSide.CREDIT


class TestDocumentDraftFromDict:

    def test_invoice_payload(self):
        customer = uuid4()
        account = uuid4()
        draft = DocumentDraft.from_dict(
            "invoices",
            {
                "documentDate": "2024-03-10",
                "currency": "usd",
                "counterpartyId": str(customer),
                "reference": "PO-7",
                "lines": [
                    {"accountId": str(account), "quantity": "2", "unitPrice": "12.50"},
                ],
            },
        )
        assert draft.document_type is DocumentType.INVOICE
        assert draft.document_date == date(2024, 3, 10)
        assert draft.currency == "USD"
        assert draft.counterparty_id == customer
        assert draft.exchange_rate == Decimal("1")
        line = draft.lines[0]
        assert line.account_id == account
        assert line.quantity == Decimal("2")
        assert line.unit_price == Decimal("12.50")
        assert line.discount == Decimal("0")
        assert line.amount is None

    def test_journal_line_side(self):
        draft = DocumentDraft.from_dict(
            DocumentType.JOURNAL,
            {
                "documentDate": "2024-03-10",
                "currency": "USD",
                "lines": [{"accountId": str(uuid4()), "side": "debit", "amount": "5.00"}],
            },
        )
        assert draft.lines[0].side is LineSide.DEBIT
        assert draft.lines[0].amount == Decimal("5.00")

    def test_bad_side(self):
        with pytest.raises(InvalidDocumentError) as exc_info:
            DocumentDraft.from_dict(
                "journal",
                {
                    "documentDate": "2024-03-10",
                    "currency": "USD",
                    "lines": [{"side": "LEFT", "amount": "1"}],
                },
            )
        assert exc_info.value.line_no == 1

    @pytest.mark.parametrize(
        "payload",
        [
            {"currency": "USD", "lines": []},
            {"documentDate": "10/03/2024", "currency": "USD", "lines": []},
            {"documentDate": "2024-03-10", "lines": []},
            {"documentDate": "2024-03-10", "currency": "USD", "lines": "nope"},
            {"documentDate": "2024-03-10", "currency": "USD", "counterpartyId": "x", "lines": []},
        ],
    )
    def test_malformed_payloads(self, payload):
        with pytest.raises(InvalidDocumentError):
            DocumentDraft.from_dict("invoice", payload)

    def test_line_must_be_object(self):
        with pytest.raises(InvalidDocumentError) as exc_info:
            DocumentDraft.from_dict(
                "invoice",
                {"documentDate": "2024-03-10", "currency": "USD", "lines": [{}, "oops"]},
            )
        assert exc_info.value.line_no == 2

    def test_document_must_be_object(self):
        with pytest.raises(InvalidDocumentError):
            DocumentDraft.from_dict("invoice", ["2024-03-10"])

    def test_float_amount_rejected(self):
        with pytest.raises(InvalidAmountError):
            DocumentDraft.from_dict(
                "invoice",
                {
                    "documentDate": "2024-03-10",
                    "currency": "USD",
                    "lines": [{"unitPrice": 10.1}],
                },
            )

    def test_request_dict_is_stable(self):
        payload = {
            "documentDate": "2024-03-10",
            "currency": "USD",
            "lines": [{"accountId": str(uuid4()), "unitPrice": "1.00"}],
        }
        first = DocumentDraft.from_dict("invoice", payload).to_request_dict()
        second = DocumentDraft.from_dict("invoices", payload).to_request_dict()
        assert first == second
        assert first["documentType"] == "INVOICE"


class TestMatchSuggestion:

    def test_days_apart_is_absolute(self):
        suggestion = MatchSuggestion(
            bank_transaction_id=uuid4(),
            ledger_batch_id=uuid4(),
            amount=100,
            transaction_date=date(2024, 3, 8),
            posting_date=date(2024, 3, 10),
        )
        assert suggestion.days_apart == 2
        assert suggestion.to_dict()["daysApart"] == 2
