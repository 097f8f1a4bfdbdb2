"""Approval configuration and materialized approval chain models.

Configuration (owned by org-admin tooling, read-only to the engine):
- organisation_approvers: approver directory, optionally linked to a user
- approval_groups / approval_group_members: group -> approver membership
- approver_group_members: legacy group -> user membership
- artifact_approver_rules: amount-banded rules per artifact type

Materialized chains (owned by the chain builder):
- approval_chains -> artifact_approval_steps -> artifact_step_approvers
"""

import uuid
from sqlalchemy import (
    Column, String, DateTime, Boolean, Integer, Numeric, ForeignKey, Uuid,
    Index, UniqueConstraint, text,
)
from sqlalchemy.orm import relationship

from changegov.db.base import Base, utcnow


class OrganisationApprover(Base):
    """Approver identity in an organisation's directory."""
    __tablename__ = "organisation_approvers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organisation_id = Column(Uuid, ForeignKey("organizations.id"), nullable=False, index=True)
    # Directory entries may exist before the person has an account
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    email = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)

    organization = relationship("Organization", back_populates="approvers")
    user = relationship("User")


class ApprovalGroup(Base):
    __tablename__ = "approval_groups"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organisation_id = Column(Uuid, ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)

    organization = relationship("Organization", back_populates="approval_groups")
    members = relationship("ApprovalGroupMember", back_populates="group", cascade="all, delete-orphan")


class ApprovalGroupMember(Base):
    """Canonical membership: group -> organisation approver."""
    __tablename__ = "approval_group_members"
    __table_args__ = (
        UniqueConstraint("group_id", "approver_id", name="uq_approval_group_members_group_approver"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    group_id = Column(Uuid, ForeignKey("approval_groups.id", ondelete="CASCADE"), nullable=False, index=True)
    approver_id = Column(Uuid, ForeignKey("organisation_approvers.id", ondelete="CASCADE"), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    group = relationship("ApprovalGroup", back_populates="members")
    approver = relationship("OrganisationApprover")


class LegacyApproverGroupMember(Base):
    """Legacy membership: group -> user, without the approver directory."""
    __tablename__ = "approver_group_members"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    group_id = Column(Uuid, ForeignKey("approval_groups.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)


class ApprovalRule(Base):
    """
    Organisation-owned approval policy row.

    A rule applies to an amount when min_amount <= amount <= max_amount
    (max_amount NULL means unbounded). Exactly one of approver_user_id
    and approval_group_id is expected to be set.
    """
    __tablename__ = "artifact_approver_rules"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organisation_id = Column(Uuid, ForeignKey("organizations.id"), nullable=False, index=True)
    artifact_type = Column(String(50), nullable=False, index=True)
    step = Column(Integer, nullable=False, default=1)
    approval_role = Column(String(100), nullable=False, default="Approval")
    approver_user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approval_group_id = Column(Uuid, ForeignKey("approval_groups.id", ondelete="SET NULL"), nullable=True)
    min_amount = Column(Numeric(14, 2, asdecimal=False), nullable=False, default=0)
    max_amount = Column(Numeric(14, 2, asdecimal=False), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)

    organization = relationship("Organization", back_populates="approval_rules")

    def __repr__(self) -> str:
        upper = "inf" if self.max_amount is None else self.max_amount
        return f"<ApprovalRule step={self.step} {self.approval_role} [{self.min_amount}, {upper}]>"


class ApprovalChain(Base):
    """
    Materialized approval workflow for one artifact.

    At most one chain per artifact may be active; the partial unique index
    enforces this at the storage layer.
    """
    __tablename__ = "approval_chains"
    __table_args__ = (
        Index(
            "uq_approval_chains_active_artifact",
            "artifact_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organisation_id = Column(Uuid, ForeignKey("organizations.id"), nullable=True)
    project_id = Column(Uuid, ForeignKey("projects.id"), nullable=False, index=True)
    artifact_id = Column(Uuid, nullable=False, index=True)
    artifact_type = Column(String(50), nullable=False)
    amount = Column(Numeric(14, 2, asdecimal=False), nullable=False, default=0)
    status = Column(String(20), nullable=False, default="active")
    created_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)

    steps = relationship(
        "ApprovalStep",
        back_populates="chain",
        order_by="ApprovalStep.step_order",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<ApprovalChain {self.artifact_id} [{self.status}]>"


class ApprovalStep(Base):
    """Ordered stage of a chain. step_order runs 1..n within a chain."""
    __tablename__ = "artifact_approval_steps"
    __table_args__ = (
        UniqueConstraint("chain_id", "step_order", name="uq_artifact_approval_steps_chain_order"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    chain_id = Column(Uuid, ForeignKey("approval_chains.id", ondelete="CASCADE"), nullable=False, index=True)
    artifact_id = Column(Uuid, nullable=False, index=True)
    project_id = Column(Uuid, ForeignKey("projects.id"), nullable=False)
    artifact_type = Column(String(50), nullable=False)

    step_order = Column(Integer, nullable=False)
    # Step number of the rules this step was built from
    rule_step = Column(Integer, nullable=False)
    name = Column(String(100), nullable=False)
    mode = Column(String(30), nullable=False, default="VETO_QUORUM")
    min_approvals = Column(Integer, nullable=False, default=1)
    max_rejections = Column(Integer, nullable=False, default=0)
    round = Column(Integer, nullable=False, default=1)
    status = Column(String(20), nullable=False, default="pending")
    created_at = Column(DateTime, default=utcnow)

    chain = relationship("ApprovalChain", back_populates="steps")
    approvers = relationship("StepApprover", back_populates="step", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<ApprovalStep {self.step_order}: {self.name} [{self.status}]>"


class StepApprover(Base):
    __tablename__ = "artifact_step_approvers"
    __table_args__ = (
        UniqueConstraint("step_id", "approver_ref", name="uq_artifact_step_approvers_step_ref"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    step_id = Column(Uuid, ForeignKey("artifact_approval_steps.id", ondelete="CASCADE"), nullable=False, index=True)
    approver_type = Column(String(20), nullable=False, default="user")
    approver_ref = Column(String(64), nullable=False)
    required = Column(Boolean, nullable=False, default=True)
    active = Column(Boolean, nullable=False, default=True)

    step = relationship("ApprovalStep", back_populates="approvers")
