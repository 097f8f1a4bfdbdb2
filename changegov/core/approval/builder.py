"""Approval chain construction.

Turns an organisation's amount-banded approval rules into a materialized
chain for one artifact:

    rules (filtered by band) -> steps (grouped by rule step) -> approvers

The whole plan, including group expansion, is resolved before anything is
written, so configuration errors never leave partial rows behind. Writes
happen inside the caller's transaction; the caller commits.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import and_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from changegov.core.config import get_settings
from changegov.core.governance.errors import ConfigurationError
from changegov.db.models import ApprovalChain, ApprovalRule, ApprovalStep, StepApprover

from .groups import GroupExpander
from .rules import RuleRepository, SqlAlchemyRuleRepository, in_band, resolve_rules

logger = logging.getLogger(__name__)

CHAIN_ACTIVE = "active"
CHAIN_SUPERSEDED = "superseded"

STEP_MODE = "VETO_QUORUM"
STEP_MIN_APPROVALS = 1
STEP_MAX_REJECTIONS = 0
STEP_PENDING = "pending"


@dataclass
class PlannedStep:
    step_order: int
    rule_step: int
    name: str
    approver_ids: List[UUID] = field(default_factory=list)


@dataclass
class ChainPlan:
    resolved_type: str
    amount: float
    steps: List[PlannedStep]

    @property
    def approver_count(self) -> int:
        return sum(len(step.approver_ids) for step in self.steps)


@dataclass
class ChainBuildResult:
    chain_id: UUID
    step_ids: List[UUID]
    resolved_type: str
    reused: bool = False


class ApprovalChainBuilder:
    """
    Builds approval chains from organisation rules.

    At most one chain per artifact is active. A new build supersedes the
    previous active chain; if a concurrent build wins the race to insert,
    the storage-level unique index rejects the second insert and the
    builder adopts the winner's chain instead.
    """

    def __init__(
        self,
        db: Session,
        *,
        rules: Optional[RuleRepository] = None,
        groups: Optional[GroupExpander] = None,
    ):
        self.db = db
        self.rules = rules or SqlAlchemyRuleRepository(db)
        self.groups = groups or GroupExpander(db)
        self.default_artifact_type = get_settings().default_artifact_type

    def plan(self, org_id: UUID, amount: float, artifact_type: Optional[str] = None) -> ChainPlan:
        """
        Resolve the steps and approvers a build would create, without writing.

        Raises:
            ConfigurationError: If no rule covers the amount, or the
                matched rules resolve to no approvers at all
        """
        resolved_type, active = resolve_rules(
            self.rules, org_id, artifact_type, self.default_artifact_type
        )
        matching = [r for r in active if in_band(amount, r.min_amount, r.max_amount)]

        if not matching:
            raise ConfigurationError(
                f"No approval rules configured for {resolved_type} at amount {amount:g}",
                organisation_id=str(org_id),
                artifact_type=resolved_type,
                amount=amount,
                active_rules=len(active),
            )

        by_step: Dict[int, List[ApprovalRule]] = {}
        for rule in matching:
            by_step.setdefault(int(rule.step or 1), []).append(rule)

        steps: List[PlannedStep] = []
        for order, rule_step in enumerate(sorted(by_step), start=1):
            step_rules = by_step[rule_step]
            planned = PlannedStep(
                step_order=order,
                rule_step=rule_step,
                name=(step_rules[0].approval_role or "").strip() or f"Step {rule_step}",
            )
            for rule in step_rules:
                for user_id in self._rule_user_ids(rule):
                    if user_id not in planned.approver_ids:
                        planned.approver_ids.append(user_id)
            steps.append(planned)

        plan = ChainPlan(resolved_type=resolved_type, amount=amount, steps=steps)
        empty = [step.name for step in steps if not step.approver_ids]
        if plan.approver_count == 0:
            raise ConfigurationError(
                "Approval rules matched but produced no approvers. "
                "Check that approver groups have active members linked to user accounts.",
                organisation_id=str(org_id),
                artifact_type=resolved_type,
                amount=amount,
                empty_steps=empty,
            )
        if empty:
            logger.warning(
                "Approval steps without approvers for %s at amount %g: %s",
                resolved_type, amount, ", ".join(empty),
            )
        return plan

    def _rule_user_ids(self, rule: ApprovalRule) -> List[UUID]:
        if rule.approver_user_id is not None:
            return [rule.approver_user_id]
        if rule.approval_group_id is not None:
            return sorted(self.groups.expand(rule.approval_group_id), key=str)
        logger.warning("Approval rule %s names neither a user nor a group", rule.id)
        return []

    def build(
        self,
        org_id: UUID,
        artifact_id: UUID,
        project_id: UUID,
        actor_id: Optional[UUID],
        amount: float,
        artifact_type: Optional[str] = None,
    ) -> ChainBuildResult:
        """
        Build and attach an active approval chain for an artifact.

        Returns:
            ChainBuildResult with the chain id, ordered step ids and the
            artifact type the rules were found under

        Raises:
            ConfigurationError: If the rules cannot produce a usable chain
        """
        plan = self.plan(org_id, amount, artifact_type)

        self._supersede_active(artifact_id)
        chain, reused = self._create_or_reuse(org_id, artifact_id, project_id, actor_id, plan)

        if reused:
            existing = [step.id for step in self._steps(chain.id)]
            if existing:
                logger.info("Reusing active approval chain %s for %s", chain.id, artifact_id)
                return ChainBuildResult(chain.id, existing, plan.resolved_type, reused=True)

        step_ids = self._insert_steps(chain, plan)
        logger.info(
            "Built approval chain %s for %s: %d steps, %d approvers",
            chain.id, artifact_id, len(step_ids), plan.approver_count,
        )
        return ChainBuildResult(chain.id, step_ids, plan.resolved_type, reused=reused)

    def active_chain(self, artifact_id: UUID) -> Optional[ApprovalChain]:
        return self.db.query(ApprovalChain).filter(
            and_(
                ApprovalChain.artifact_id == artifact_id,
                ApprovalChain.status == CHAIN_ACTIVE,
            )
        ).first()

    def _steps(self, chain_id: UUID) -> List[ApprovalStep]:
        return (
            self.db.query(ApprovalStep)
            .filter(ApprovalStep.chain_id == chain_id)
            .order_by(ApprovalStep.step_order.asc())
            .all()
        )

    def _supersede_active(self, artifact_id: UUID) -> int:
        try:
            with self.db.begin_nested():
                return (
                    self.db.query(ApprovalChain)
                    .filter(
                        and_(
                            ApprovalChain.artifact_id == artifact_id,
                            ApprovalChain.status == CHAIN_ACTIVE,
                        )
                    )
                    .update({"status": CHAIN_SUPERSEDED}, synchronize_session=False)
                )
        except SQLAlchemyError as exc:
            logger.warning("Could not supersede active chain for %s: %s", artifact_id, exc)
            return 0

    def _create_or_reuse(
        self,
        org_id: UUID,
        artifact_id: UUID,
        project_id: UUID,
        actor_id: Optional[UUID],
        plan: ChainPlan,
    ) -> Tuple[ApprovalChain, bool]:
        chain = ApprovalChain(
            organisation_id=org_id,
            project_id=project_id,
            artifact_id=artifact_id,
            artifact_type=plan.resolved_type,
            amount=plan.amount,
            status=CHAIN_ACTIVE,
            created_by=actor_id,
        )
        try:
            with self.db.begin_nested():
                self.db.add(chain)
                self.db.flush()
        except IntegrityError:
            existing = self.active_chain(artifact_id)
            if existing is None:
                raise
            return existing, True
        return chain, False

    def _insert_steps(self, chain: ApprovalChain, plan: ChainPlan) -> List[UUID]:
        steps: List[Tuple[ApprovalStep, PlannedStep]] = []
        for planned in plan.steps:
            step = ApprovalStep(
                chain_id=chain.id,
                artifact_id=chain.artifact_id,
                project_id=chain.project_id,
                artifact_type=plan.resolved_type,
                step_order=planned.step_order,
                rule_step=planned.rule_step,
                name=planned.name,
                mode=STEP_MODE,
                min_approvals=STEP_MIN_APPROVALS,
                max_rejections=STEP_MAX_REJECTIONS,
                round=1,
                status=STEP_PENDING,
            )
            self.db.add(step)
            steps.append((step, planned))
        self.db.flush()

        # Deduplicate on (step_id, approver_ref) before persisting
        approvers: Dict[Tuple[UUID, str], StepApprover] = {}
        for step, planned in steps:
            for user_id in planned.approver_ids:
                key = (step.id, str(user_id))
                if key in approvers:
                    continue
                approvers[key] = StepApprover(
                    step_id=step.id,
                    approver_type="user",
                    approver_ref=str(user_id),
                    required=True,
                    active=True,
                )
        self.db.add_all(approvers.values())
        self.db.flush()

        return [step.id for step, _ in steps]
