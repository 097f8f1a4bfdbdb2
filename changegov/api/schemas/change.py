"""Request and response schemas for change request endpoints."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .common import WarningResponse


class VersionedRequest(BaseModel):
    """Base for mutating requests. expected_version is the last seen updated_at."""
    expected_version: Optional[datetime] = None


class ChangeFields(BaseModel):
    """Authorable change request fields.

    Extra keys are passed through so the engine can reject governance
    and unknown fields with a typed error.
    """
    model_config = ConfigDict(extra="allow")

    title: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    proposed_change: Optional[str] = None
    justification: Optional[str] = None
    change_type: Optional[str] = Field(None, max_length=50)
    priority: Optional[str] = Field(None, max_length=20)
    requester_name: Optional[str] = Field(None, max_length=255)
    impact_analysis: Optional[Dict[str, Any]] = None
    links: Optional[Dict[str, Any]] = None
    estimated_cost: Optional[float] = None
    budget_delta: Optional[float] = None


class ChangeCreate(ChangeFields):
    project_id: UUID
    title: str = Field(..., min_length=1, max_length=255)


class ChangeUpdate(ChangeFields, VersionedRequest):
    pass


class DecisionRequest(VersionedRequest):
    decision: str = Field(..., description="approved, rejected or rework")
    rationale: Optional[str] = None


class RequestChangesRequest(VersionedRequest):
    note: Optional[str] = None


class DeliveryStatusRequest(VersionedRequest):
    model_config = ConfigDict(extra="allow")

    delivery_status: Optional[str] = None


class ChangeItemResponse(BaseModel):
    item: Dict[str, Any]
    warnings: List[WarningResponse] = []


class SubmitResponse(ChangeItemResponse):
    approval_chain_id: Optional[str] = None
    amount: float = 0
    artifact_type: Optional[str] = None
    already_submitted: bool = False


class PreviewStep(BaseModel):
    step_order: int
    rule_step: int
    name: str
    approvers: List[str]


class ApprovalPreviewResponse(BaseModel):
    change_id: str
    artifact_type: str
    amount: float
    steps: List[PreviewStep]


class TimelineEventResponse(BaseModel):
    id: str
    event_type: str
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    actor_id: Optional[str] = None
    actor_role: Optional[str] = None
    comment: Optional[str] = None
    payload: Dict[str, Any] = {}
    created_at: Optional[str] = None
