"""Decision engine for change requests.

Orchestrates every governed mutation of a change request:

    create -> edit / move lane -> submit -> decide | request changes -> ...

Each operation follows the same shape:
1. Validate input and authorize the actor (nothing touched yet)
2. Check the transition against the current decision/lane state
3. Perform the write through ConcurrencyGuard and commit
4. Run best-effort side effects (audit, timeline, scoring, callbacks);
   their failures come back as Outcome warnings
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Union
from datetime import datetime
from uuid import UUID

from sqlalchemy import and_
from sqlalchemy.orm import Session

from changegov.core.approval import ApprovalChainBuilder, ChainBuildResult
from changegov.core.config import get_settings
from changegov.core.rbac import Action, PermissionChecker, ProjectRole
from changegov.db.base import utcnow
from changegov.db.models import (
    ApprovalChain,
    ApprovalStep,
    ChangeRequest,
    ChangeTimelineEvent,
    OrganisationApprover,
    ProjectMember,
    StepApprover,
)

from .audit import AuditEvent, AuditLog, TimelineEvent, TimelineEventType
from .concurrency import ConcurrencyGuard
from .errors import (
    ConcurrencyConflictError,
    ConfigurationError,
    GovernanceConflictError,
    InvalidInputError,
    NotFoundError,
    PermissionDeniedError,
)
from .outcome import Outcome
from .scoring import refresh_change_scores
from .states import (
    DECISION_LANE_EFFECTS,
    DELETABLE_LANES,
    SUBMITTABLE_STATES,
    SUBMIT_LANES,
    DecisionStatus,
    Lane,
    can_move_lane,
    governance_fields_in,
    parse_decision,
    parse_decision_outcome,
    parse_lane,
)

logger = logging.getLogger(__name__)

Version = Union[datetime, str, None]

# Fields a caller may set on create and plain edit
EDITABLE_FIELDS = frozenset({
    "title",
    "description",
    "proposed_change",
    "justification",
    "change_type",
    "priority",
    "requester_name",
    "impact_analysis",
    "links",
    "estimated_cost",
    "budget_delta",
})

CHAIN_APPROVER = "chain_approver"
ORG_APPROVER = "org_approver"


class ChangeEvent:
    """Event names passed to registered callbacks."""
    CREATED = "created"
    EDITED = "edited"
    LANE_MOVED = "lane_moved"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    REWORK = "rework"
    CHANGES_REQUESTED = "changes_requested"
    DELETED = "deleted"


@dataclass
class SubmitResult:
    item: Dict[str, Any]
    chain: Optional[ChainBuildResult] = None
    already_submitted: bool = False

    @property
    def approval_chain_id(self) -> Optional[str]:
        return self.item.get("approval_chain_id")


class DecisionEngine:
    """
    Governed operations on change requests.

    Manages:
    - Decision and lane transitions, checked against the lane table
    - Approval chain construction on submit
    - Optimistic concurrency on every write
    - Best-effort audit, timeline, scoring and callbacks after commit
    """

    def __init__(
        self,
        db: Session,
        *,
        builder: Optional[ApprovalChainBuilder] = None,
        audit: Optional[AuditLog] = None,
        guard: Optional[ConcurrencyGuard] = None,
        scorer: Optional[Callable[[Session, ChangeRequest], Any]] = refresh_change_scores,
    ):
        """
        Initialize the engine.

        Args:
            db: Database session; the engine commits its own transitions
            builder: Approval chain builder (default: rule-table backed)
            audit: Audit/timeline fan-out (default: database sinks)
            guard: Concurrency guard (default: wall-clock versioning)
            scorer: Derived score refresher, or None to skip scoring
        """
        self.db = db
        self.builder = builder or ApprovalChainBuilder(db)
        self.audit = audit or AuditLog.for_session(db)
        self.guard = guard or ConcurrencyGuard(db)
        self.scorer = scorer
        self.rationale_limit = get_settings().rationale_max_length
        self._callbacks: Dict[str, List[Callable[[str, Dict[str, Any]], None]]] = {}

    def register_callback(self, event: str, callback: Callable[[str, Dict[str, Any]], None]) -> None:
        """
        Register a callback to run after an event has committed.

        Args:
            event: One of the ChangeEvent names
            callback: Called with (event, item dict)
        """
        self._callbacks.setdefault(event, []).append(callback)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, change_id: UUID, actor_id: UUID) -> Dict[str, Any]:
        """Change request with its active approval chain summary."""
        change = self._load(change_id)
        self._authorize(change.project_id, actor_id, Action.READ)
        item = self._to_dict(change)
        item["approval"] = self._approval_summary(change)
        return item

    def timeline(self, change_id: UUID, actor_id: UUID) -> List[Dict[str, Any]]:
        change = self._load(change_id)
        self._authorize(change.project_id, actor_id, Action.READ)
        events = (
            self.db.query(ChangeTimelineEvent)
            .filter(ChangeTimelineEvent.change_id == change.id)
            .order_by(ChangeTimelineEvent.created_at.asc())
            .all()
        )
        return [
            {
                "id": str(event.id),
                "event_type": event.event_type,
                "from_status": event.from_status,
                "to_status": event.to_status,
                "actor_id": str(event.actor_id) if event.actor_id else None,
                "actor_role": event.actor_role,
                "comment": event.comment,
                "payload": event.payload or {},
                "created_at": event.created_at.isoformat() if event.created_at else None,
            }
            for event in events
        ]

    def preview(self, change_id: UUID, actor_id: UUID) -> Dict[str, Any]:
        """Steps and approvers a submit would create now, without writing anything."""
        change = self._load(change_id)
        self._authorize(change.project_id, actor_id, Action.READ)
        org_id = self._organisation_id(change)

        plan = self.builder.plan(org_id, change.amount)
        return {
            "change_id": str(change.id),
            "artifact_type": plan.resolved_type,
            "amount": plan.amount,
            "steps": [
                {
                    "step_order": step.step_order,
                    "rule_step": step.rule_step,
                    "name": step.name,
                    "approvers": [str(user_id) for user_id in step.approver_ids],
                }
                for step in plan.steps
            ],
        }

    # ------------------------------------------------------------------
    # Authoring
    # ------------------------------------------------------------------

    def create(self, project_id: UUID, actor_id: UUID, fields: Mapping[str, Any]) -> Outcome[Dict[str, Any]]:
        """Create a change request in (draft, intake)."""
        values = self._editable_values(fields, require_title=True)
        member = self._authorize(project_id, actor_id, Action.CREATE)

        change = ChangeRequest(
            project_id=project_id,
            decision_status=DecisionStatus.DRAFT.value,
            delivery_status=Lane.INTAKE.value,
            created_by=actor_id,
            updated_at=self.guard.next_version(None),
            **values,
        )
        with self._transaction():
            self.db.add(change)

        logger.info("Created change request %s in project %s", change.id, project_id)
        outcome: Outcome[Dict[str, Any]] = Outcome(committed={})
        outcome.extend(self.audit.record(
            AuditEvent(
                project_id=project_id,
                change_id=change.id,
                event_type=ChangeEvent.CREATED,
                actor_id=actor_id,
                actor_role=member.role,
                to_value=Lane.INTAKE.value,
                payload={"decision_status": DecisionStatus.DRAFT.value},
            ),
            TimelineEvent(
                project_id=project_id,
                change_id=change.id,
                event_type=TimelineEventType.CREATED,
                to_status=Lane.INTAKE.value,
                actor_id=actor_id,
                actor_role=member.role,
                payload={"title": change.title},
            ),
        ))
        outcome.committed = self._finish(ChangeEvent.CREATED, change, outcome, score=False)
        return outcome

    def edit_fields(
        self,
        change_id: UUID,
        actor_id: UUID,
        patch: Mapping[str, Any],
        *,
        expected_version: Version = None,
    ) -> Outcome[Dict[str, Any]]:
        """
        Plain field edit.

        Raises:
            GovernanceConflictError: If the patch names governance fields,
                or the change is locked while submitted
        """
        change = self._load(change_id)
        member = self._authorize(change.project_id, actor_id, Action.EDIT)

        protected = governance_fields_in(patch.keys())
        if protected:
            raise self._conflict(
                change,
                "Decision and lane fields can only be changed through governance actions",
                fields=sorted(protected),
            )
        values = self._editable_values(patch)
        if not values:
            raise InvalidInputError("No editable fields supplied")

        if parse_decision(change.decision_status) is DecisionStatus.SUBMITTED:
            raise self._conflict(change, "Change request is locked while submitted for approval")
        self.guard.check(change, expected_version)

        with self._transaction():
            self.guard.write(change, values, expected_version=expected_version)

        outcome: Outcome[Dict[str, Any]] = Outcome(committed={})
        outcome.extend(self.audit.record(
            AuditEvent(
                project_id=change.project_id,
                change_id=change.id,
                event_type=ChangeEvent.EDITED,
                actor_id=actor_id,
                actor_role=member.role,
                payload={"fields": sorted(values)},
            ),
            TimelineEvent(
                project_id=change.project_id,
                change_id=change.id,
                event_type=TimelineEventType.EDITED,
                actor_id=actor_id,
                actor_role=member.role,
                payload={"fields": sorted(values)},
            ),
        ))
        outcome.committed = self._finish(ChangeEvent.EDITED, change, outcome)
        return outcome

    def delete(self, change_id: UUID, actor_id: UUID, *, expected_version: Version = None) -> Outcome[Dict[str, Any]]:
        """Delete a draft that has not progressed past analysis."""
        change = self._load(change_id)
        member = self._authorize(change.project_id, actor_id, Action.DELETE)

        decision = parse_decision(change.decision_status)
        lane = parse_lane(change.delivery_status)
        if decision is not DecisionStatus.DRAFT or lane not in DELETABLE_LANES:
            raise self._conflict(change, "Only draft change requests in intake or analysis can be deleted")
        self.guard.check(change, expected_version)

        item = self._to_dict(change)
        project_id, deleted_id = change.project_id, change.id
        with self._transaction():
            self.guard.delete(change, expected_version=expected_version)

        logger.info("Deleted change request %s", item["id"])
        outcome: Outcome[Dict[str, Any]] = Outcome(committed=item)
        outcome.extend(self.audit.record(
            AuditEvent(
                project_id=project_id,
                change_id=deleted_id,
                event_type=ChangeEvent.DELETED,
                actor_id=actor_id,
                actor_role=member.role,
                from_value=item["delivery_status"],
                payload={"title": item["title"]},
            ),
        ))
        self._run_callbacks(ChangeEvent.DELETED, item, outcome)
        return outcome

    # ------------------------------------------------------------------
    # Governance transitions
    # ------------------------------------------------------------------

    def move_lane(
        self,
        change_id: UUID,
        actor_id: UUID,
        to_lane: Optional[str],
        *,
        expected_version: Version = None,
        payload_keys: Iterable[str] = (),
    ) -> Outcome[Dict[str, Any]]:
        """
        Manual delivery lane move, checked against the lane table.

        Moving to the current lane, or to no lane, is a no-op success.
        """
        target = parse_lane(to_lane)
        if to_lane and str(to_lane).strip() and target is None:
            raise InvalidInputError(f"Unknown delivery lane: {to_lane}", delivery_status=to_lane)

        change = self._load(change_id)
        member = self._authorize(change.project_id, actor_id, Action.MOVE)

        protected = governance_fields_in(payload_keys, allow=("delivery_status",))
        if protected:
            raise self._conflict(
                change,
                "Decision fields cannot be changed through a lane move",
                fields=sorted(protected),
            )

        decision = parse_decision(change.decision_status)
        source = parse_lane(change.delivery_status)
        if target is None or target is source:
            return Outcome(committed=self._to_dict(change))

        if not can_move_lane(decision, source, target):
            raise self._conflict(
                change,
                self._lane_refusal(decision),
                requested_lane=target.value,
            )
        self.guard.check(change, expected_version)

        with self._transaction():
            self.guard.write(change, {"delivery_status": target.value}, expected_version=expected_version)

        from_value = source.value if source else change.delivery_status
        outcome: Outcome[Dict[str, Any]] = Outcome(committed={})
        outcome.extend(self.audit.record(
            AuditEvent(
                project_id=change.project_id,
                change_id=change.id,
                event_type=ChangeEvent.LANE_MOVED,
                actor_id=actor_id,
                actor_role=member.role,
                from_value=from_value,
                to_value=target.value,
                payload={"decision_status": decision.value},
            ),
            TimelineEvent(
                project_id=change.project_id,
                change_id=change.id,
                event_type=TimelineEventType.STATUS_CHANGED,
                from_status=from_value,
                to_status=target.value,
                actor_id=actor_id,
                actor_role=member.role,
                payload={"source": "lane_move", "decision_status": decision.value},
            ),
        ))
        outcome.committed = self._finish(ChangeEvent.LANE_MOVED, change, outcome, score=False)
        return outcome

    def submit(self, change_id: UUID, actor_id: UUID, *, expected_version: Version = None) -> Outcome[SubmitResult]:
        """
        Submit a change for approval: build its approval chain and lock it in review.

        Submitting an already submitted change is a no-op success.

        Raises:
            GovernanceConflictError: If the change is decided or not in analysis
            ConfigurationError: If the organisation's rules cannot produce a chain
        """
        change = self._load(change_id)
        member = self._authorize(change.project_id, actor_id, Action.SUBMIT)

        decision = parse_decision(change.decision_status)
        lane = parse_lane(change.delivery_status)
        if decision is DecisionStatus.SUBMITTED:
            return Outcome(committed=SubmitResult(item=self._to_dict(change), already_submitted=True))
        if decision not in SUBMITTABLE_STATES:
            raise self._conflict(change, f"Change request has already been {decision.value}")
        from_lane, to_lane = SUBMIT_LANES
        if lane is not from_lane:
            raise self._conflict(change, f"Change request must be in {from_lane.value} to submit")

        org_id = self._organisation_id(change)
        self.guard.check(change, expected_version)
        amount = change.amount
        now = utcnow()

        try:
            with self._transaction():
                chain = self.builder.build(org_id, change.id, change.project_id, actor_id, amount)
                self.guard.write(
                    change,
                    {
                        "decision_status": DecisionStatus.SUBMITTED.value,
                        "delivery_status": to_lane.value,
                        "decision_rationale": None,
                        "decision_by": None,
                        "decision_at": None,
                        "decision_role": None,
                        "submitted_by": actor_id,
                        "submitted_at": now,
                        "approval_chain_id": chain.chain_id,
                    },
                    expected_version=expected_version,
                )
        except ConcurrencyConflictError:
            # A concurrent submit may have won; that is success for this caller too
            if expected_version is None:
                self.db.expire(change)
                if parse_decision(change.decision_status) is DecisionStatus.SUBMITTED:
                    return Outcome(committed=SubmitResult(item=self._to_dict(change), already_submitted=True))
            raise

        logger.info(
            "Submitted change request %s with approval chain %s (%d steps)",
            change.id, chain.chain_id, len(chain.step_ids),
        )
        outcome: Outcome[SubmitResult] = Outcome(committed=SubmitResult(item={}, chain=chain))
        payload = {
            "decision_status": {"from": decision.value, "to": DecisionStatus.SUBMITTED.value},
            "approval_chain_id": str(chain.chain_id),
            "approval_chain_artifact_type": chain.resolved_type,
            "amount": amount,
        }
        outcome.extend(self.audit.record(
            AuditEvent(
                project_id=change.project_id,
                change_id=change.id,
                event_type=ChangeEvent.SUBMITTED,
                actor_id=actor_id,
                actor_role=member.role,
                from_value=from_lane.value,
                to_value=to_lane.value,
                payload=payload,
            ),
            TimelineEvent(
                project_id=change.project_id,
                change_id=change.id,
                event_type=TimelineEventType.STATUS_CHANGED,
                from_status=from_lane.value,
                to_status=to_lane.value,
                actor_id=actor_id,
                actor_role=member.role,
                payload={"source": "submit", **payload},
            ),
        ))
        outcome.committed.item = self._finish(ChangeEvent.SUBMITTED, change, outcome)
        return outcome

    def decide(
        self,
        change_id: UUID,
        actor_id: UUID,
        decision: str,
        rationale: Optional[str],
        *,
        expected_version: Version = None,
    ) -> Outcome[Dict[str, Any]]:
        """
        Record an approver's decision on a submitted change.

        approved -> in_progress; rejected and rework -> analysis.
        Asking for rework again when already in rework is a no-op success.

        Raises:
            InvalidInputError: Unknown outcome or missing rationale
            PermissionDeniedError: Actor is not a designated approver
            GovernanceConflictError: Change is not submitted in review
        """
        requested = parse_decision_outcome(decision)
        if requested is None:
            raise InvalidInputError(
                "decision must be one of approved, rejected, rework",
                decision=decision,
            )
        rationale = (rationale or "").strip()
        if not rationale:
            raise InvalidInputError("A rationale is required for a decision")
        rationale = rationale[: self.rationale_limit]

        change = self._load(change_id)
        self._membership(change.project_id, actor_id)
        role = self._approver_designation(change, actor_id)
        if role is None:
            raise PermissionDeniedError(
                "Only designated approvers can decide on a change request",
                change_id=str(change.id),
            )

        current = parse_decision(change.decision_status)
        lane = parse_lane(change.delivery_status)
        if current is DecisionStatus.REWORK and requested is DecisionStatus.REWORK:
            return Outcome(committed=self._to_dict(change))
        if current in (DecisionStatus.APPROVED, DecisionStatus.REJECTED, DecisionStatus.REWORK):
            raise self._conflict(change, f"Change request has already been decided ({current.value})")
        if current is not DecisionStatus.SUBMITTED:
            raise self._conflict(change, "Change request has not been submitted for approval")
        if lane is not Lane.REVIEW:
            raise self._conflict(change, "Change request must be in review to be decided")
        self.guard.check(change, expected_version)

        target = DECISION_LANE_EFFECTS[requested]
        with self._transaction():
            self.guard.write(
                change,
                {
                    "decision_status": requested.value,
                    "delivery_status": target.value,
                    "decision_rationale": rationale,
                    "decision_by": actor_id,
                    "decision_at": utcnow(),
                    "decision_role": role,
                },
                expected_version=expected_version,
            )

        logger.info("Change request %s %s by %s (%s)", change.id, requested.value, actor_id, role)
        return self._after_decision(change, actor_id, role, requested, target, rationale, requested.value)

    def request_changes(
        self,
        change_id: UUID,
        actor_id: UUID,
        note: Optional[str] = None,
        *,
        expected_version: Version = None,
    ) -> Outcome[Dict[str, Any]]:
        """Project owner sends a submitted change back to analysis for rework."""
        change = self._load(change_id)
        self._authorize(change.project_id, actor_id, Action.REQUEST_CHANGES)

        current = parse_decision(change.decision_status)
        lane = parse_lane(change.delivery_status)
        if current is DecisionStatus.REWORK:
            return Outcome(committed=self._to_dict(change))
        if current is not DecisionStatus.SUBMITTED or lane is not Lane.REVIEW:
            raise self._conflict(change, "Changes can only be requested on a submitted change in review")
        self.guard.check(change, expected_version)

        note = (note or "").strip()[: self.rationale_limit] or None
        target = DECISION_LANE_EFFECTS[DecisionStatus.REWORK]
        with self._transaction():
            self.guard.write(
                change,
                {
                    "decision_status": DecisionStatus.REWORK.value,
                    "delivery_status": target.value,
                    "decision_rationale": note,
                    "decision_by": actor_id,
                    "decision_at": utcnow(),
                    "decision_role": ProjectRole.OWNER.value,
                },
                expected_version=expected_version,
            )

        logger.info("Changes requested on change request %s by %s", change.id, actor_id)
        return self._after_decision(
            change, actor_id, ProjectRole.OWNER.value, DecisionStatus.REWORK, target, note,
            ChangeEvent.CHANGES_REQUESTED,
        )

    def _after_decision(
        self,
        change: ChangeRequest,
        actor_id: UUID,
        role: str,
        decision: DecisionStatus,
        target: Lane,
        note: Optional[str],
        event: str,
    ) -> Outcome[Dict[str, Any]]:
        outcome: Outcome[Dict[str, Any]] = Outcome(committed={})
        payload = {"decision_status": {"from": DecisionStatus.SUBMITTED.value, "to": decision.value}}
        outcome.extend(self.audit.record(
            AuditEvent(
                project_id=change.project_id,
                change_id=change.id,
                event_type=event,
                actor_id=actor_id,
                actor_role=role,
                from_value=Lane.REVIEW.value,
                to_value=target.value,
                note=note,
                payload=payload,
            ),
            TimelineEvent(
                project_id=change.project_id,
                change_id=change.id,
                event_type=TimelineEventType.STATUS_CHANGED,
                from_status=Lane.REVIEW.value,
                to_status=target.value,
                actor_id=actor_id,
                actor_role=role,
                comment=note,
                payload={"source": event, **payload},
            ),
        ))
        outcome.committed = self._finish(event, change, outcome)
        return outcome

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        try:
            yield
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def _finish(self, event: str, change: ChangeRequest, outcome: Outcome, *, score: bool = True) -> Dict[str, Any]:
        """Run scoring and callbacks, then return the fresh item."""
        if score and self.scorer is not None:
            try:
                self.scorer(self.db, change)
            except Exception as exc:
                logger.warning("Score refresh failed for change %s: %s", change.id, exc, exc_info=True)
                outcome.warn("scoring", exc)

        item = self._to_dict(change)
        self._run_callbacks(event, item, outcome)
        return item

    def _run_callbacks(self, event: str, item: Dict[str, Any], outcome: Outcome) -> None:
        for callback in self._callbacks.get(event, []):
            try:
                callback(event, item)
            except Exception as exc:
                # Callbacks never fail a committed transition
                logger.warning("Callback for %s failed: %s", event, exc, exc_info=True)
                outcome.warn(f"callback:{event}", exc)

    def _load(self, change_id: UUID) -> ChangeRequest:
        change = self.db.get(ChangeRequest, change_id)
        if change is None:
            raise NotFoundError("Change request not found", change_id=str(change_id))
        return change

    def _membership(self, project_id: UUID, actor_id: UUID) -> ProjectMember:
        member = self.db.query(ProjectMember).filter(
            and_(
                ProjectMember.project_id == project_id,
                ProjectMember.user_id == actor_id,
                ProjectMember.is_active.is_(True),
            )
        ).first()
        if member is None:
            raise PermissionDeniedError("Not a member of this project", project_id=str(project_id))
        return member

    def _authorize(self, project_id: UUID, actor_id: UUID, action: Action) -> ProjectMember:
        member = self._membership(project_id, actor_id)
        checker = PermissionChecker.for_role(member.role)
        if not checker.can(action):
            raise PermissionDeniedError(
                f"Role '{member.role}' cannot {action.value.replace('_', ' ')} change requests",
                required_permission=f"changes:{action.value}",
            )
        return member

    def _approver_designation(self, change: ChangeRequest, actor_id: UUID) -> Optional[str]:
        """How the actor is designated to decide, or None if they are not."""
        on_chain = (
            self.db.query(StepApprover.id)
            .join(ApprovalStep, StepApprover.step_id == ApprovalStep.id)
            .join(ApprovalChain, ApprovalStep.chain_id == ApprovalChain.id)
            .filter(
                and_(
                    ApprovalChain.artifact_id == change.id,
                    ApprovalChain.status == "active",
                    StepApprover.approver_ref == str(actor_id),
                    StepApprover.active.is_(True),
                )
            )
            .first()
        )
        if on_chain is not None:
            return CHAIN_APPROVER

        org_id = change.project.organisation_id if change.project else None
        if org_id is not None:
            in_directory = self.db.query(OrganisationApprover.id).filter(
                and_(
                    OrganisationApprover.organisation_id == org_id,
                    OrganisationApprover.user_id == actor_id,
                    OrganisationApprover.is_active.is_(True),
                )
            ).first()
            if in_directory is not None:
                return ORG_APPROVER

        return None

    def _organisation_id(self, change: ChangeRequest) -> UUID:
        org_id = change.project.organisation_id if change.project else None
        if org_id is None:
            raise ConfigurationError(
                "Project is not linked to an organisation, so no approval rules apply",
                project_id=str(change.project_id),
            )
        return org_id

    def _editable_values(self, fields: Mapping[str, Any], *, require_title: bool = False) -> Dict[str, Any]:
        protected = governance_fields_in(fields.keys())
        if protected:
            raise InvalidInputError(
                "Decision and lane fields cannot be set directly",
                fields=sorted(protected),
            )
        unknown = sorted(set(fields) - EDITABLE_FIELDS)
        if unknown:
            raise InvalidInputError("Unknown change request fields", fields=unknown)

        values = dict(fields)
        if "title" in values or require_title:
            title = str(values.get("title") or "").strip()
            if not title:
                raise InvalidInputError("title is required")
            values["title"] = title[:255]
        for key in ("impact_analysis", "links"):
            if key in values and values[key] is not None and not isinstance(values[key], dict):
                raise InvalidInputError(f"{key} must be an object")
        return values

    def _conflict(self, change: ChangeRequest, message: str, **details: Any) -> GovernanceConflictError:
        return GovernanceConflictError(
            message,
            decision_status=parse_decision(change.decision_status).value,
            delivery_status=change.delivery_status,
            change_id=str(change.id),
            **details,
        )

    @staticmethod
    def _lane_refusal(decision: DecisionStatus) -> str:
        if decision is DecisionStatus.SUBMITTED:
            return "Lane is locked while the change request is submitted for approval"
        if decision is DecisionStatus.REJECTED:
            return "Rejected change requests cannot move lanes"
        if decision is DecisionStatus.APPROVED:
            return "Approved change requests move one delivery lane at a time"
        return "Only intake and analysis are available until the change request is approved"

    def _approval_summary(self, change: ChangeRequest) -> Optional[Dict[str, Any]]:
        chain = self.builder.active_chain(change.id)
        if chain is None:
            return None
        return {
            "chain_id": str(chain.id),
            "status": chain.status,
            "artifact_type": chain.artifact_type,
            "amount": chain.amount,
            "steps": [
                {
                    "id": str(step.id),
                    "step_order": step.step_order,
                    "name": step.name,
                    "mode": step.mode,
                    "min_approvals": step.min_approvals,
                    "max_rejections": step.max_rejections,
                    "status": step.status,
                    "approvers": [
                        {
                            "approver_type": approver.approver_type,
                            "approver_ref": approver.approver_ref,
                            "required": approver.required,
                            "active": approver.active,
                        }
                        for approver in step.approvers
                    ],
                }
                for step in chain.steps
            ],
        }

    def _to_dict(self, change: ChangeRequest) -> Dict[str, Any]:
        """Convert a ChangeRequest model to dictionary."""

        def _id(value):
            return str(value) if value else None

        def _ts(value):
            return value.isoformat() if value else None

        return {
            "id": str(change.id),
            "project_id": str(change.project_id),
            "title": change.title,
            "description": change.description,
            "proposed_change": change.proposed_change,
            "justification": change.justification,
            "change_type": change.change_type,
            "priority": change.priority,
            "requester_name": change.requester_name,
            "impact_analysis": change.impact_analysis or {},
            "links": change.links or {},
            "estimated_cost": change.estimated_cost,
            "budget_delta": change.budget_delta,
            "amount": change.amount,
            "decision_status": parse_decision(change.decision_status).value,
            "delivery_status": change.delivery_status,
            "decision_rationale": change.decision_rationale,
            "decision_by": _id(change.decision_by),
            "decision_at": _ts(change.decision_at),
            "decision_role": change.decision_role,
            "submitted_by": _id(change.submitted_by),
            "submitted_at": _ts(change.submitted_at),
            "approval_chain_id": _id(change.approval_chain_id),
            "ai_cost": change.ai_cost,
            "ai_schedule": change.ai_schedule,
            "ai_scope": change.ai_scope,
            "ai_score": change.ai_score,
            "created_by": _id(change.created_by),
            "created_at": _ts(change.created_at),
            "updated_at": _ts(change.updated_at),
        }
