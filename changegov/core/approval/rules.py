"""Approval rule lookup.

Rules are read-only policy rows owned by organisation admin tooling. Rule
rows may be stored under a historical alias of an artifact type, so lookups
try the canonical type first and then each alias in turn.
"""

from typing import Dict, List, Optional, Protocol, Tuple
from uuid import UUID

from sqlalchemy import and_
from sqlalchemy.orm import Session

from changegov.db.models import ApprovalRule

# canonical type -> historical aliases, in lookup order
ARTIFACT_TYPE_ALIASES: Dict[str, Tuple[str, ...]] = {
    "change": ("change_request", "change_requests"),
    "project_closure_report": ("project_closure",),
}

_CANONICAL_BY_ALIAS: Dict[str, str] = {
    alias: canonical
    for canonical, aliases in ARTIFACT_TYPE_ALIASES.items()
    for alias in aliases
}


def normalize_artifact_type(raw: Optional[str], default: str = "change") -> str:
    """Map an artifact type (or alias) to its canonical token."""
    value = (raw or "").strip().lower().replace("-", "_").replace(" ", "_")
    if not value:
        return default
    return _CANONICAL_BY_ALIAS.get(value, value)


def artifact_type_candidates(raw: Optional[str], default: str = "change") -> List[str]:
    """Canonical type followed by its known aliases."""
    canonical = normalize_artifact_type(raw, default)
    return [canonical, *ARTIFACT_TYPE_ALIASES.get(canonical, ())]


def in_band(amount: float, min_amount: Optional[float], max_amount: Optional[float]) -> bool:
    """Closed band check; a missing max_amount means unbounded."""
    lower = float(min_amount) if min_amount is not None else 0.0
    if amount < lower:
        return False
    if max_amount is not None and amount > float(max_amount):
        return False
    return True


class RuleRepository(Protocol):
    def active_rules(self, org_id: UUID, artifact_type: str) -> List[ApprovalRule]: ...


class SqlAlchemyRuleRepository:
    """Reads active rules from artifact_approver_rules."""

    def __init__(self, db: Session):
        self.db = db

    def active_rules(self, org_id: UUID, artifact_type: str) -> List[ApprovalRule]:
        return (
            self.db.query(ApprovalRule)
            .filter(
                and_(
                    ApprovalRule.organisation_id == org_id,
                    ApprovalRule.artifact_type == artifact_type,
                    ApprovalRule.is_active.is_(True),
                )
            )
            .order_by(ApprovalRule.step.asc(), ApprovalRule.created_at.asc())
            .all()
        )


def resolve_rules(
    repository: RuleRepository,
    org_id: UUID,
    artifact_type: Optional[str],
    default: str = "change",
) -> Tuple[str, List[ApprovalRule]]:
    """
    Find the first candidate type with at least one active rule.

    Returns:
        (resolved type, active rules). When no candidate has rules the
        canonical type is returned with an empty list.
    """
    candidates = artifact_type_candidates(artifact_type, default)
    for candidate in candidates:
        rules = repository.active_rules(org_id, candidate)
        if rules:
            return candidate, rules
    return candidates[0], []
