"""Initial change governance schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19

Tables added:
- organizations, users, projects, project_members
- organisation_approvers, approval_groups, approval_group_members,
  approver_group_members (legacy group -> user membership)
- artifact_approver_rules: amount-banded approval rules
- approval_chains, artifact_approval_steps, artifact_step_approvers
- change_requests
- change_request_events (audit), change_events (timeline)
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

AMOUNT = sa.Numeric(14, 2)


def upgrade() -> None:
    """Create organisation, approval configuration, chain and change request tables."""

    # --- organizations / users / projects ---
    op.create_table(
        "organizations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("settings", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_organizations"),
    )
    op.create_index("ix_organizations_slug", "organizations", ["slug"], unique=True)

    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "projects",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organisation_id", sa.Uuid(), nullable=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("project_code", sa.String(50), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_projects"),
        sa.ForeignKeyConstraint(["organisation_id"], ["organizations.id"], name="fk_projects_organisation_id"),
        sa.UniqueConstraint("project_code", name="uq_projects_project_code"),
    )
    op.create_index("ix_projects_organisation_id", "projects", ["organisation_id"])

    op.create_table(
        "project_members",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("project_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="viewer"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_project_members"),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], name="fk_project_members_project_id", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_project_members_user_id", ondelete="CASCADE"),
        sa.UniqueConstraint("project_id", "user_id", name="uq_project_members_project_user"),
    )
    op.create_index("ix_project_members_project_id", "project_members", ["project_id"])
    op.create_index("ix_project_members_user_id", "project_members", ["user_id"])

    # --- approval configuration ---
    op.create_table(
        "organisation_approvers",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organisation_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_organisation_approvers"),
        sa.ForeignKeyConstraint(["organisation_id"], ["organizations.id"], name="fk_organisation_approvers_organisation_id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_organisation_approvers_user_id", ondelete="SET NULL"),
    )
    op.create_index("ix_organisation_approvers_organisation_id", "organisation_approvers", ["organisation_id"])
    op.create_index("ix_organisation_approvers_user_id", "organisation_approvers", ["user_id"])

    op.create_table(
        "approval_groups",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organisation_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_approval_groups"),
        sa.ForeignKeyConstraint(["organisation_id"], ["organizations.id"], name="fk_approval_groups_organisation_id"),
    )
    op.create_index("ix_approval_groups_organisation_id", "approval_groups", ["organisation_id"])

    op.create_table(
        "approval_group_members",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("group_id", sa.Uuid(), nullable=False),
        sa.Column("approver_id", sa.Uuid(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint("id", name="pk_approval_group_members"),
        sa.ForeignKeyConstraint(["group_id"], ["approval_groups.id"], name="fk_approval_group_members_group_id", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["approver_id"], ["organisation_approvers.id"], name="fk_approval_group_members_approver_id", ondelete="CASCADE"),
        sa.UniqueConstraint("group_id", "approver_id", name="uq_approval_group_members_group_approver"),
    )
    op.create_index("ix_approval_group_members_group_id", "approval_group_members", ["group_id"])

    op.create_table(
        "approver_group_members",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("group_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint("id", name="pk_approver_group_members"),
        sa.ForeignKeyConstraint(["group_id"], ["approval_groups.id"], name="fk_approver_group_members_group_id", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_approver_group_members_user_id", ondelete="CASCADE"),
    )
    op.create_index("ix_approver_group_members_group_id", "approver_group_members", ["group_id"])

    op.create_table(
        "artifact_approver_rules",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organisation_id", sa.Uuid(), nullable=False),
        sa.Column("artifact_type", sa.String(50), nullable=False),
        sa.Column("step", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("approval_role", sa.String(100), nullable=False, server_default="Approval"),
        sa.Column("approver_user_id", sa.Uuid(), nullable=True),
        sa.Column("approval_group_id", sa.Uuid(), nullable=True),
        sa.Column("min_amount", AMOUNT, nullable=False, server_default="0"),
        sa.Column("max_amount", AMOUNT, nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_artifact_approver_rules"),
        sa.ForeignKeyConstraint(["organisation_id"], ["organizations.id"], name="fk_artifact_approver_rules_organisation_id"),
        sa.ForeignKeyConstraint(["approver_user_id"], ["users.id"], name="fk_artifact_approver_rules_approver_user_id", ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["approval_group_id"], ["approval_groups.id"], name="fk_artifact_approver_rules_approval_group_id", ondelete="SET NULL"),
    )
    op.create_index("ix_artifact_approver_rules_organisation_id", "artifact_approver_rules", ["organisation_id"])
    op.create_index("ix_artifact_approver_rules_artifact_type", "artifact_approver_rules", ["artifact_type"])

    # --- approval chains ---
    op.create_table(
        "approval_chains",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organisation_id", sa.Uuid(), nullable=True),
        sa.Column("project_id", sa.Uuid(), nullable=False),
        sa.Column("artifact_id", sa.Uuid(), nullable=False),
        sa.Column("artifact_type", sa.String(50), nullable=False),
        sa.Column("amount", AMOUNT, nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("created_by", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_approval_chains"),
        sa.ForeignKeyConstraint(["organisation_id"], ["organizations.id"], name="fk_approval_chains_organisation_id"),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], name="fk_approval_chains_project_id"),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], name="fk_approval_chains_created_by", ondelete="SET NULL"),
    )
    op.create_index("ix_approval_chains_project_id", "approval_chains", ["project_id"])
    op.create_index("ix_approval_chains_artifact_id", "approval_chains", ["artifact_id"])
    op.create_index("ix_approval_chains_created_at", "approval_chains", ["created_at"])
    # At most one active chain per artifact
    op.create_index(
        "uq_approval_chains_active_artifact",
        "approval_chains",
        ["artifact_id"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
        sqlite_where=sa.text("status = 'active'"),
    )

    op.create_table(
        "artifact_approval_steps",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("chain_id", sa.Uuid(), nullable=False),
        sa.Column("artifact_id", sa.Uuid(), nullable=False),
        sa.Column("project_id", sa.Uuid(), nullable=False),
        sa.Column("artifact_type", sa.String(50), nullable=False),
        sa.Column("step_order", sa.Integer(), nullable=False),
        sa.Column("rule_step", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("mode", sa.String(30), nullable=False, server_default="VETO_QUORUM"),
        sa.Column("min_approvals", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("max_rejections", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("round", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_artifact_approval_steps"),
        sa.ForeignKeyConstraint(["chain_id"], ["approval_chains.id"], name="fk_artifact_approval_steps_chain_id", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], name="fk_artifact_approval_steps_project_id"),
        sa.UniqueConstraint("chain_id", "step_order", name="uq_artifact_approval_steps_chain_order"),
    )
    op.create_index("ix_artifact_approval_steps_chain_id", "artifact_approval_steps", ["chain_id"])
    op.create_index("ix_artifact_approval_steps_artifact_id", "artifact_approval_steps", ["artifact_id"])

    op.create_table(
        "artifact_step_approvers",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("step_id", sa.Uuid(), nullable=False),
        sa.Column("approver_type", sa.String(20), nullable=False, server_default="user"),
        sa.Column("approver_ref", sa.String(64), nullable=False),
        sa.Column("required", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint("id", name="pk_artifact_step_approvers"),
        sa.ForeignKeyConstraint(["step_id"], ["artifact_approval_steps.id"], name="fk_artifact_step_approvers_step_id", ondelete="CASCADE"),
        sa.UniqueConstraint("step_id", "approver_ref", name="uq_artifact_step_approvers_step_ref"),
    )
    op.create_index("ix_artifact_step_approvers_step_id", "artifact_step_approvers", ["step_id"])

    # --- change requests ---
    op.create_table(
        "change_requests",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("project_id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("proposed_change", sa.Text(), nullable=True),
        sa.Column("justification", sa.Text(), nullable=True),
        sa.Column("change_type", sa.String(50), nullable=True),
        sa.Column("priority", sa.String(20), nullable=True),
        sa.Column("requester_name", sa.String(255), nullable=True),
        sa.Column("impact_analysis", sa.JSON(), nullable=True),
        sa.Column("links", sa.JSON(), nullable=True),
        sa.Column("estimated_cost", AMOUNT, nullable=True),
        sa.Column("budget_delta", AMOUNT, nullable=True),
        sa.Column("decision_status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("delivery_status", sa.String(20), nullable=False, server_default="intake"),
        sa.Column("decision_rationale", sa.Text(), nullable=True),
        sa.Column("decision_by", sa.Uuid(), nullable=True),
        sa.Column("decision_at", sa.DateTime(), nullable=True),
        sa.Column("decision_role", sa.String(30), nullable=True),
        sa.Column("submitted_by", sa.Uuid(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(), nullable=True),
        sa.Column("approval_chain_id", sa.Uuid(), nullable=True),
        sa.Column("ai_cost", sa.Integer(), nullable=True),
        sa.Column("ai_schedule", sa.Integer(), nullable=True),
        sa.Column("ai_scope", sa.Integer(), nullable=True),
        sa.Column("ai_score", sa.Integer(), nullable=True),
        sa.Column("ai_computed_at", sa.DateTime(), nullable=True),
        sa.Column("created_by", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_change_requests"),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], name="fk_change_requests_project_id", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["decision_by"], ["users.id"], name="fk_change_requests_decision_by", ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["submitted_by"], ["users.id"], name="fk_change_requests_submitted_by", ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], name="fk_change_requests_created_by", ondelete="SET NULL"),
    )
    op.create_index("ix_change_requests_project_id", "change_requests", ["project_id"])
    op.create_index("ix_change_requests_decision_status", "change_requests", ["decision_status"])
    op.create_index("ix_change_requests_delivery_status", "change_requests", ["delivery_status"])

    # --- audit and timeline ---
    op.create_table(
        "change_request_events",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("project_id", sa.Uuid(), nullable=False),
        sa.Column("change_id", sa.Uuid(), nullable=False),
        sa.Column("actor_id", sa.Uuid(), nullable=True),
        sa.Column("actor_role", sa.String(30), nullable=True),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("from_value", sa.String(50), nullable=True),
        sa.Column("to_value", sa.String(50), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_change_request_events"),
    )
    op.create_index("ix_change_request_events_project_id", "change_request_events", ["project_id"])
    op.create_index("ix_change_request_events_change_id", "change_request_events", ["change_id"])
    op.create_index("ix_change_request_events_event_type", "change_request_events", ["event_type"])
    op.create_index("ix_change_request_events_created_at", "change_request_events", ["created_at"])

    op.create_table(
        "change_events",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("project_id", sa.Uuid(), nullable=False),
        sa.Column("change_id", sa.Uuid(), nullable=False),
        sa.Column("event_type", sa.String(30), nullable=False),
        sa.Column("from_status", sa.String(50), nullable=True),
        sa.Column("to_status", sa.String(50), nullable=True),
        sa.Column("actor_id", sa.Uuid(), nullable=True),
        sa.Column("actor_role", sa.String(30), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_change_events"),
    )
    op.create_index("ix_change_events_project_id", "change_events", ["project_id"])
    op.create_index("ix_change_events_change_id", "change_events", ["change_id"])
    op.create_index("ix_change_events_created_at", "change_events", ["created_at"])


def downgrade() -> None:
    """Drop all governance tables."""
    op.drop_table("change_events")
    op.drop_table("change_request_events")
    op.drop_table("change_requests")
    op.drop_table("artifact_step_approvers")
    op.drop_table("artifact_approval_steps")
    op.drop_index("uq_approval_chains_active_artifact", table_name="approval_chains")
    op.drop_table("approval_chains")
    op.drop_table("artifact_approver_rules")
    op.drop_table("approver_group_members")
    op.drop_table("approval_group_members")
    op.drop_table("approval_groups")
    op.drop_table("organisation_approvers")
    op.drop_table("project_members")
    op.drop_table("projects")
    op.drop_table("users")
    op.drop_table("organizations")
