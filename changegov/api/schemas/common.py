"""Common schemas for the ChangeGov API."""

from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ErrorResponse(BaseModel):
    """Standard error response.

    Governance errors add their diagnostic details (current decision and
    lane, expected and current version, ...) as extra top-level keys.
    """
    error: str
    detail: Optional[str] = None
    code: Optional[str] = None


class WarningResponse(BaseModel):
    """A best-effort side effect that failed after the change was committed."""
    effect: str
    message: str


class ListResponse(BaseModel, Generic[T]):
    items: List[T]
    total: int


def warnings_payload(warnings) -> List[Dict[str, Any]]:
    return [w.to_dict() for w in warnings]
