"""
Unit tests for the lock date guard.

A lock date closes the books through that day, inclusive.
"""

from datetime import date

import pytest

from ledger_kernel.domain.lock_date import ensure_not_locked, is_locked
from ledger_kernel.exceptions import LockDateViolationError, LockedError


class TestIsLocked:

    def test_no_lock_date(self):
        assert is_locked(None, date(1999, 1, 1)) is False

    def test_before_lock_date(self):
        assert is_locked(date(2024, 1, 31), date(2024, 1, 15)) is True

    def test_on_lock_date(self):
        assert is_locked(date(2024, 1, 31), date(2024, 1, 31)) is True

    def test_after_lock_date(self):
        assert is_locked(date(2024, 1, 31), date(2024, 2, 1)) is False


class TestEnsureNotLocked:

    def test_passes_after_lock_date(self):
        ensure_not_locked(date(2024, 1, 31), date(2024, 2, 1), "post")

    def test_bill_in_locked_period(self):
        """A bill dated 2024-01-15 cannot be posted with lock date 2024-01-31."""
        with pytest.raises(LockDateViolationError) as exc_info:
            ensure_not_locked(date(2024, 1, 31), date(2024, 1, 15), "post")

        err = exc_info.value
        assert isinstance(err, LockedError)
        assert err.http_status == 423
        assert err.lock_date == date(2024, 1, 31)
        assert err.document_date == date(2024, 1, 15)
        assert err.action == "post"

    def test_error_details_are_json_safe(self):
        with pytest.raises(LockDateViolationError) as exc_info:
            ensure_not_locked(date(2024, 1, 31), date(2024, 1, 15), "void")
        payload = exc_info.value.to_dict()
        assert payload["code"] == "LOCK_DATE_VIOLATION"
        assert payload["category"] == "LOCKED"
        assert payload["details"]["lock_date"] == "2024-01-31"
        assert payload["details"]["document_date"] == "2024-01-15"
        assert payload["details"]["action"] == "void"

    def test_violation_is_logged(self, captured_logs):
        with pytest.raises(LockDateViolationError):
            ensure_not_locked(date(2024, 1, 31), date(2024, 1, 31), "create")
        logs = captured_logs()
        violation = [r for r in logs if r["message"] == "lock_date_violation"]
        assert len(violation) == 1
        assert violation[0]["level"] == "WARNING"
        assert violation[0]["action"] == "create"
