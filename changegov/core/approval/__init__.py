"""Approval chain construction from organisation rules."""

from .rules import (
    ARTIFACT_TYPE_ALIASES,
    RuleRepository,
    SqlAlchemyRuleRepository,
    artifact_type_candidates,
    in_band,
    normalize_artifact_type,
    resolve_rules,
)
from .groups import GroupExpander, ApproverDirectoryMembership, LegacyGroupMembership
from .builder import ApprovalChainBuilder, ChainBuildResult, ChainPlan, PlannedStep

__all__ = [
    "ARTIFACT_TYPE_ALIASES",
    "RuleRepository",
    "SqlAlchemyRuleRepository",
    "artifact_type_candidates",
    "in_band",
    "normalize_artifact_type",
    "resolve_rules",
    "GroupExpander",
    "ApproverDirectoryMembership",
    "LegacyGroupMembership",
    "ApprovalChainBuilder",
    "ChainBuildResult",
    "ChainPlan",
    "PlannedStep",
]
