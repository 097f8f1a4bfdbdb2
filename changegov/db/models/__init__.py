"""Database models for ChangeGov."""

from changegov.db.models.org import Organization, Project, ProjectMember
from changegov.db.models.user import User
from changegov.db.models.approval import (
    OrganisationApprover,
    ApprovalGroup,
    ApprovalGroupMember,
    LegacyApproverGroupMember,
    ApprovalRule,
    ApprovalChain,
    ApprovalStep,
    StepApprover,
)
from changegov.db.models.change import ChangeRequest
from changegov.db.models.audit import ChangeAuditEvent, ChangeTimelineEvent

__all__ = [
    "Organization",
    "Project",
    "ProjectMember",
    "User",
    "OrganisationApprover",
    "ApprovalGroup",
    "ApprovalGroupMember",
    "LegacyApproverGroupMember",
    "ApprovalRule",
    "ApprovalChain",
    "ApprovalStep",
    "StepApprover",
    "ChangeRequest",
    "ChangeAuditEvent",
    "ChangeTimelineEvent",
]
