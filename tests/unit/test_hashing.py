"""
Tests for deterministic hashing.

Idempotency and the audit chain both depend on the same payload always
hashing to the same digest.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

import pytest
from hypothesis import given
from hypothesis import strategies as st

from ledger_kernel.utils.hashing import canonicalize_json, hash_audit_entry, hash_payload

ORG = "6b2f1a4e-0000-4000-8000-000000000001"


class TestCanonicalJson:

    def test_keys_sorted_and_compact(self):
        assert canonicalize_json({"b": 1, "a": [1, 2]}) == '{"a":[1,2],"b":1}'

    def test_decimal_normalized(self):
        assert canonicalize_json({"x": Decimal("1.50")}) == canonicalize_json({"x": Decimal("1.5")})

    def test_dates_and_uuids(self):
        uid = UUID("12345678-1234-5678-1234-567812345678")
        out = canonicalize_json({"d": date(2024, 3, 10), "id": uid})
        assert out == '{"d":"2024-03-10","id":"12345678-1234-5678-1234-567812345678"}'

    def test_unsupported_type(self):
        with pytest.raises(TypeError):
            canonicalize_json({"x": object()})


class TestHashPayload:

    def test_key_order_does_not_matter(self):
        assert hash_payload({"a": 1, "b": 2}) == hash_payload({"b": 2, "a": 1})

    def test_value_change_changes_hash(self):
        assert hash_payload({"amount": "100.00"}) != hash_payload({"amount": "100.01"})

    def test_hex_sha256(self):
        digest = hash_payload({"a": 1})
        assert len(digest) == 64
        int(digest, 16)

    @given(st.dictionaries(st.text(max_size=8), st.integers(), max_size=6))
    def test_stable(self, payload):
        assert hash_payload(payload) == hash_payload(dict(reversed(list(payload.items()))))


class TestAuditEntryHash:

    def _hash(self, **overrides):
        fields = dict(
            org_id=ORG,
            seq=1,
            entity_type="Document",
            entity_id="d-1",
            action="CREATE",
            payload_hash="p" * 64,
            prev_hash=None,
        )
        fields.update(overrides)
        return hash_audit_entry(**fields)

    def test_deterministic(self):
        assert self._hash() == self._hash()

    def test_genesis_when_no_previous(self):
        assert self._hash(prev_hash=None) == self._hash(prev_hash="GENESIS")

    @pytest.mark.parametrize(
        "field,value",
        [
            ("seq", 2),
            ("entity_type", "ReconciliationSession"),
            ("entity_id", "d-2"),
            ("action", "POST"),
            ("payload_hash", "q" * 64),
            ("prev_hash", "a" * 64),
        ],
    )
    def test_every_component_is_bound(self, field, value):
        assert self._hash(**{field: value}) != self._hash()
