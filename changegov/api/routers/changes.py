"""Change request governance endpoints.

Domain errors raised by the engine are mapped to HTTP responses by the
exception handler registered in changegov.api.main.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, status

from changegov.api.deps import get_current_user, get_decision_engine
from changegov.api.schemas.change import (
    ApprovalPreviewResponse,
    ChangeCreate,
    ChangeItemResponse,
    ChangeUpdate,
    DecisionRequest,
    DeliveryStatusRequest,
    RequestChangesRequest,
    SubmitResponse,
    TimelineEventResponse,
    VersionedRequest,
)
from changegov.api.schemas.common import ListResponse, warnings_payload
from changegov.core.governance.engine import DecisionEngine
from changegov.db.models import User

router = APIRouter(prefix="/changes", tags=["changes"])


def _item_response(outcome) -> ChangeItemResponse:
    return ChangeItemResponse(item=outcome.committed, warnings=warnings_payload(outcome.warnings))


@router.post("", response_model=ChangeItemResponse, status_code=status.HTTP_201_CREATED)
def create_change(
    payload: ChangeCreate,
    engine: DecisionEngine = Depends(get_decision_engine),
    current_user: User = Depends(get_current_user),
):
    """Create a change request in draft / intake."""
    fields = payload.model_dump(exclude_unset=True, exclude={"project_id"})
    outcome = engine.create(payload.project_id, current_user.id, fields)
    return _item_response(outcome)


@router.get("/{change_id}", response_model=ChangeItemResponse)
def get_change(
    change_id: UUID,
    engine: DecisionEngine = Depends(get_decision_engine),
    current_user: User = Depends(get_current_user),
):
    """Get a change request with its active approval chain."""
    return ChangeItemResponse(item=engine.get(change_id, current_user.id))


@router.patch("/{change_id}", response_model=ChangeItemResponse)
def edit_change(
    change_id: UUID,
    payload: ChangeUpdate,
    engine: DecisionEngine = Depends(get_decision_engine),
    current_user: User = Depends(get_current_user),
):
    """Edit authorable fields. Rejected while submitted or if governance fields are present."""
    patch = payload.model_dump(exclude_unset=True, exclude={"expected_version"})
    outcome = engine.edit_fields(
        change_id, current_user.id, patch, expected_version=payload.expected_version
    )
    return _item_response(outcome)


@router.delete("/{change_id}", response_model=ChangeItemResponse)
def delete_change(
    change_id: UUID,
    expected_version: Optional[str] = Query(None),
    engine: DecisionEngine = Depends(get_decision_engine),
    current_user: User = Depends(get_current_user),
):
    outcome = engine.delete(change_id, current_user.id, expected_version=expected_version)
    return _item_response(outcome)


@router.post("/{change_id}/submit", response_model=SubmitResponse)
def submit_change(
    change_id: UUID,
    payload: Optional[VersionedRequest] = Body(None),
    engine: DecisionEngine = Depends(get_decision_engine),
    current_user: User = Depends(get_current_user),
):
    """Submit for approval: builds the approval chain and moves the change to review."""
    expected_version = payload.expected_version if payload else None
    outcome = engine.submit(change_id, current_user.id, expected_version=expected_version)
    result = outcome.committed
    return SubmitResponse(
        item=result.item,
        warnings=warnings_payload(outcome.warnings),
        approval_chain_id=result.approval_chain_id,
        amount=result.item.get("amount") or 0,
        artifact_type=result.chain.resolved_type if result.chain else None,
        already_submitted=result.already_submitted,
    )


@router.post("/{change_id}/decision", response_model=ChangeItemResponse)
def decide_change(
    change_id: UUID,
    payload: DecisionRequest,
    engine: DecisionEngine = Depends(get_decision_engine),
    current_user: User = Depends(get_current_user),
):
    """Record an approver's decision: approved, rejected or rework."""
    outcome = engine.decide(
        change_id,
        current_user.id,
        payload.decision,
        payload.rationale,
        expected_version=payload.expected_version,
    )
    return _item_response(outcome)


@router.post("/{change_id}/request-changes", response_model=ChangeItemResponse)
def request_changes(
    change_id: UUID,
    payload: Optional[RequestChangesRequest] = Body(None),
    engine: DecisionEngine = Depends(get_decision_engine),
    current_user: User = Depends(get_current_user),
):
    """Owner sends a submitted change back to analysis."""
    payload = payload or RequestChangesRequest()
    outcome = engine.request_changes(
        change_id, current_user.id, payload.note, expected_version=payload.expected_version
    )
    return _item_response(outcome)


@router.post("/{change_id}/delivery-status", response_model=ChangeItemResponse)
def move_delivery_lane(
    change_id: UUID,
    payload: DeliveryStatusRequest,
    engine: DecisionEngine = Depends(get_decision_engine),
    current_user: User = Depends(get_current_user),
):
    """Move the change to another delivery lane, if the lane table allows it."""
    outcome = engine.move_lane(
        change_id,
        current_user.id,
        payload.delivery_status,
        expected_version=payload.expected_version,
        payload_keys=(payload.model_extra or {}).keys(),
    )
    return _item_response(outcome)


@router.get("/{change_id}/approval-preview", response_model=ApprovalPreviewResponse)
def approval_preview(
    change_id: UUID,
    engine: DecisionEngine = Depends(get_decision_engine),
    current_user: User = Depends(get_current_user),
):
    """Steps and approvers a submit would create for the current amount."""
    return engine.preview(change_id, current_user.id)


@router.get("/{change_id}/events", response_model=ListResponse[TimelineEventResponse])
def list_change_events(
    change_id: UUID,
    engine: DecisionEngine = Depends(get_decision_engine),
    current_user: User = Depends(get_current_user),
):
    events = engine.timeline(change_id, current_user.id)
    return ListResponse[TimelineEventResponse](items=events, total=len(events))
