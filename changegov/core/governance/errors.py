"""Typed failures raised by governance operations.

Every error carries a stable machine-readable ``code``, the HTTP status the
API layer maps it to, and a ``details`` mapping with enough context for the
caller to explain the failure to a user.
"""

from datetime import datetime
from typing import Any, Dict, Optional


class GovernanceError(Exception):
    """Base class for all governance failures."""

    status_code = 400
    code = "governance_error"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details


class InvalidInputError(GovernanceError):
    """Malformed input, missing required field or unknown enum value."""
    status_code = 400
    code = "invalid_input"


class PermissionDeniedError(GovernanceError):
    """Actor lacks the required role, membership or approver designation."""
    status_code = 403
    code = "forbidden"

    def __init__(self, message: str, required_permission: Optional[str] = None, **details: Any):
        if required_permission:
            details["required_permission"] = required_permission
        super().__init__(message, **details)
        self.required_permission = required_permission


class NotFoundError(GovernanceError):
    status_code = 404
    code = "not_found"


class GovernanceConflictError(GovernanceError):
    """Illegal transition for the current decision/lane state."""
    status_code = 409
    code = "governance_conflict"

    def __init__(self, message: str, *, decision_status: str, delivery_status: str, **details: Any):
        super().__init__(
            message,
            decision_status=decision_status,
            delivery_status=delivery_status,
            **details,
        )
        self.decision_status = decision_status
        self.delivery_status = delivery_status


class ConcurrencyConflictError(GovernanceError):
    """The expected version token no longer matches the stored one."""
    status_code = 409
    code = "version_conflict"

    def __init__(self, expected: Optional[datetime], current: Optional[datetime]):
        super().__init__(
            "Change request was modified by someone else; reload and retry",
            expected_version=expected.isoformat() if expected else None,
            current_version=current.isoformat() if current else None,
        )
        self.expected = expected
        self.current = current


class ConfigurationError(GovernanceError):
    """Organisation approval setup cannot produce a usable approval chain."""
    status_code = 422
    code = "approval_configuration"
