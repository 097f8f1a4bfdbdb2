"""Tests for governance error types and the Outcome result."""

from datetime import datetime, timedelta, timezone

import pytest

from changegov.core.governance import (
    ConcurrencyConflictError,
    ConfigurationError,
    GovernanceConflictError,
    GovernanceError,
    InvalidInputError,
    NotFoundError,
    Outcome,
    PermissionDeniedError,
    SideEffectWarning,
)
from changegov.core.governance.concurrency import as_naive_utc


class TestErrors:

    @pytest.mark.parametrize("error,status,code", [
        (InvalidInputError("bad"), 400, "invalid_input"),
        (PermissionDeniedError("no"), 403, "forbidden"),
        (NotFoundError("gone"), 404, "not_found"),
        (GovernanceConflictError("locked", decision_status="submitted", delivery_status="review"), 409, "governance_conflict"),
        (ConcurrencyConflictError(None, None), 409, "version_conflict"),
        (ConfigurationError("no rules"), 422, "approval_configuration"),
    ])
    def test_status_codes(self, error, status, code):
        assert isinstance(error, GovernanceError)
        assert error.status_code == status
        assert error.code == code

    def test_conflict_carries_current_state(self):
        error = GovernanceConflictError("locked", decision_status="submitted", delivery_status="review")
        assert error.details == {"decision_status": "submitted", "delivery_status": "review"}
        assert str(error) == "locked"

    def test_version_conflict_carries_both_tokens(self):
        expected = datetime(2026, 1, 1, 12, 0, 0)
        current = expected + timedelta(seconds=3)
        error = ConcurrencyConflictError(expected, current)
        assert error.details["expected_version"] == "2026-01-01T12:00:00"
        assert error.details["current_version"] == "2026-01-01T12:00:03"

    def test_permission_denied_records_permission(self):
        error = PermissionDeniedError("nope", required_permission="changes:submit")
        assert error.details["required_permission"] == "changes:submit"


class TestOutcome:

    def test_clean_outcome(self):
        outcome = Outcome(committed={"id": "1"})
        assert outcome.ok
        assert outcome.warnings == []

    def test_warn(self):
        outcome = Outcome(committed=None)
        outcome.warn("audit", RuntimeError("sink down"))
        outcome.warn("scoring", ValueError())
        assert not outcome.ok
        assert outcome.warnings == [
            SideEffectWarning("audit", "sink down"),
            SideEffectWarning("scoring", "ValueError"),
        ]
        assert outcome.warnings[0].to_dict() == {"effect": "audit", "message": "sink down"}


class TestVersionTokens:

    def test_naive_passthrough(self):
        value = datetime(2026, 3, 1, 9, 30)
        assert as_naive_utc(value) == value

    def test_aware_is_converted_to_utc(self):
        value = datetime(2026, 3, 1, 11, 30, tzinfo=timezone(timedelta(hours=2)))
        assert as_naive_utc(value) == datetime(2026, 3, 1, 9, 30)

    def test_iso_strings(self):
        assert as_naive_utc("2026-03-01T09:30:00.123456Z") == datetime(2026, 3, 1, 9, 30, 0, 123456)
        assert as_naive_utc("2026-03-01T09:30:00") == datetime(2026, 3, 1, 9, 30)

    def test_empty(self):
        assert as_naive_utc(None) is None
        assert as_naive_utc("") is None

    def test_garbage(self):
        with pytest.raises(InvalidInputError):
            as_naive_utc("yesterday")
