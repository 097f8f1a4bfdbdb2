"""Tests for approval chain construction."""

import pytest

from changegov.core.approval import ApprovalChainBuilder
from changegov.core.governance import ConfigurationError
from changegov.db.models import ApprovalChain, ApprovalStep, StepApprover

from tests import factories


@pytest.fixture
def builder(db_session):
    return ApprovalChainBuilder(db_session)


@pytest.fixture
def change(db_session, project, owner):
    change = factories.create_change(db_session, project=project, created_by=owner, lane="analysis", cost=5000)
    db_session.commit()
    return change


def _approver_refs(db_session, step_id):
    return sorted(
        row.approver_ref
        for row in db_session.query(StepApprover).filter(StepApprover.step_id == step_id).all()
    )


def _active_chains(db_session, artifact_id):
    return db_session.query(ApprovalChain).filter(
        ApprovalChain.artifact_id == artifact_id,
        ApprovalChain.status == "active",
    ).all()


class TestPlan:

    def test_both_bands_match(self, builder, org, approver, sponsor, standard_rules):
        plan = builder.plan(org.id, 5000)

        assert plan.resolved_type == "change"
        assert [step.name for step in plan.steps] == ["Finance Review", "Sponsor Sign-off"]
        assert [step.step_order for step in plan.steps] == [1, 2]
        assert plan.steps[0].approver_ids == [approver.id]
        assert plan.steps[1].approver_ids == [sponsor.id]
        assert plan.approver_count == 2

    @pytest.mark.parametrize("amount,names", [
        (0, ["Finance Review"]),
        (4999.99, ["Finance Review"]),
        (10000, ["Finance Review", "Sponsor Sign-off"]),
        (10000.01, ["Sponsor Sign-off"]),
        (2_000_000, ["Sponsor Sign-off"]),
    ])
    def test_band_edges_are_inclusive(self, builder, org, standard_rules, amount, names):
        plan = builder.plan(org.id, amount)
        assert [step.name for step in plan.steps] == names

    def test_steps_are_renumbered_from_one(self, builder, org, standard_rules):
        plan = builder.plan(org.id, 50000)
        assert len(plan.steps) == 1
        assert plan.steps[0].step_order == 1
        assert plan.steps[0].rule_step == 2

    def test_no_rule_for_amount(self, builder, org, standard_rules):
        with pytest.raises(ConfigurationError) as exc_info:
            builder.plan(org.id, -10)
        assert exc_info.value.details["active_rules"] == 2
        assert exc_info.value.details["artifact_type"] == "change"

    def test_no_rules_at_all(self, builder, org):
        with pytest.raises(ConfigurationError):
            builder.plan(org.id, 100)

    def test_inactive_rules_are_ignored(self, db_session, builder, org, approver):
        factories.create_rule(db_session, org=org, user=approver, is_active=False)
        db_session.commit()
        with pytest.raises(ConfigurationError):
            builder.plan(org.id, 100)

    def test_rules_found_under_alias(self, db_session, builder, org, approver):
        factories.create_rule(db_session, org=org, user=approver, artifact_type="change_request")
        db_session.commit()

        plan = builder.plan(org.id, 100)
        assert plan.resolved_type == "change_request"
        assert plan.steps[0].approver_ids == [approver.id]

    def test_canonical_type_preferred_over_alias(self, db_session, builder, org, approver, sponsor):
        factories.create_rule(db_session, org=org, role="Canonical", user=approver)
        factories.create_rule(db_session, org=org, role="Historical", user=sponsor, artifact_type="change_requests")
        db_session.commit()

        plan = builder.plan(org.id, 100)
        assert plan.resolved_type == "change"
        assert [step.name for step in plan.steps] == ["Canonical"]

    def test_group_without_linked_users(self, db_session, builder, org):
        group = factories.create_group(db_session, org=org)
        factories.add_group_approver(db_session, group=group, approver=factories.create_org_approver(db_session, org=org))
        factories.create_rule(db_session, org=org, role="Board", group=group)
        db_session.commit()

        with pytest.raises(ConfigurationError) as exc_info:
            builder.plan(org.id, 100)
        assert "linked to user accounts" in exc_info.value.message
        assert exc_info.value.details["empty_steps"] == ["Board"]

    def test_empty_step_alongside_a_populated_one(self, db_session, builder, org, approver):
        empty_group = factories.create_group(db_session, org=org, name="Dormant Board")
        factories.create_rule(db_session, org=org, step=1, role="Finance Review", user=approver)
        factories.create_rule(db_session, org=org, step=2, role="Board", group=empty_group)
        db_session.commit()

        plan = builder.plan(org.id, 100)

        assert plan.approver_count == 1
        assert [step.name for step in plan.steps] == ["Finance Review", "Board"]
        assert plan.steps[0].approver_ids == [approver.id]
        assert plan.steps[1].approver_ids == []

    def test_plan_writes_nothing(self, db_session, builder, org, standard_rules):
        builder.plan(org.id, 5000)
        assert db_session.query(ApprovalChain).count() == 0
        assert db_session.query(ApprovalStep).count() == 0


class TestBuild:

    def test_builds_active_chain(self, db_session, builder, org, project, owner, change, approver, sponsor, standard_rules):
        result = builder.build(org.id, change.id, project.id, owner.id, 5000)
        db_session.commit()

        assert not result.reused
        assert result.resolved_type == "change"
        chain = db_session.get(ApprovalChain, result.chain_id)
        assert chain.status == "active"
        assert chain.amount == 5000
        assert chain.created_by == owner.id

        steps = chain.steps
        assert [step.id for step in steps] == result.step_ids
        for step in steps:
            assert step.mode == "VETO_QUORUM"
            assert step.min_approvals == 1
            assert step.max_rejections == 0
            assert step.round == 1
            assert step.status == "pending"
        assert _approver_refs(db_session, steps[0].id) == [str(approver.id)]
        assert _approver_refs(db_session, steps[1].id) == [str(sponsor.id)]

    def test_user_named_twice_in_a_step_is_listed_once(self, db_session, builder, org, project, change, approver):
        group = factories.create_group(db_session, org=org)
        factories.add_group_approver(db_session, group=group, user=approver)
        factories.create_rule(db_session, org=org, role="Finance Review", user=approver)
        factories.create_rule(db_session, org=org, role="Finance Review", group=group)
        db_session.commit()

        result = builder.build(org.id, change.id, project.id, None, 5000)
        db_session.commit()

        assert len(result.step_ids) == 1
        assert _approver_refs(db_session, result.step_ids[0]) == [str(approver.id)]

    def test_builds_chain_with_an_empty_step(self, db_session, builder, org, project, change, approver):
        empty_group = factories.create_group(db_session, org=org)
        factories.create_rule(db_session, org=org, step=1, role="Finance Review", user=approver)
        factories.create_rule(db_session, org=org, step=2, role="Board", group=empty_group)
        db_session.commit()

        result = builder.build(org.id, change.id, project.id, None, 5000)
        db_session.commit()

        assert len(result.step_ids) == 2
        assert _approver_refs(db_session, result.step_ids[0]) == [str(approver.id)]
        assert _approver_refs(db_session, result.step_ids[1]) == []

    def test_rebuild_supersedes_previous_chain(self, db_session, builder, org, project, change, standard_rules):
        first = builder.build(org.id, change.id, project.id, None, 5000)
        db_session.commit()
        second = builder.build(org.id, change.id, project.id, None, 5000)
        db_session.commit()

        assert first.chain_id != second.chain_id
        assert db_session.get(ApprovalChain, first.chain_id).status == "superseded"
        assert [chain.id for chain in _active_chains(db_session, change.id)] == [second.chain_id]

    def test_configuration_error_leaves_no_rows(self, db_session, builder, org, project, change):
        group = factories.create_group(db_session, org=org)
        factories.create_rule(db_session, org=org, group=group)
        db_session.commit()

        with pytest.raises(ConfigurationError):
            builder.build(org.id, change.id, project.id, None, 5000)
        db_session.rollback()

        assert db_session.query(ApprovalChain).count() == 0
        assert db_session.query(ApprovalStep).count() == 0

    def test_existing_chain_config_error_keeps_it_active(self, db_session, builder, org, project, change, approver):
        existing = factories.create_chain(db_session, change=change, approvers=[approver])
        db_session.commit()

        with pytest.raises(ConfigurationError):
            builder.build(org.id, change.id, project.id, None, 5000)
        db_session.rollback()

        assert [chain.id for chain in _active_chains(db_session, change.id)] == [existing.id]


class TestConcurrentBuild:
    """A concurrent build that inserted first is adopted, not duplicated."""

    def test_reuses_winning_chain_with_steps(
        self, db_session, builder, org, project, change, approver, standard_rules, monkeypatch
    ):
        winner = factories.create_chain(db_session, change=change, approvers=[approver])
        db_session.commit()
        winner_steps = [step.id for step in winner.steps]
        monkeypatch.setattr(builder, "_supersede_active", lambda artifact_id: 0)

        result = builder.build(org.id, change.id, project.id, None, 5000)
        db_session.commit()

        assert result.reused
        assert result.chain_id == winner.id
        assert result.step_ids == winner_steps
        assert len(_active_chains(db_session, change.id)) == 1

    def test_fills_in_steps_of_an_empty_winner(
        self, db_session, builder, org, project, change, standard_rules, monkeypatch
    ):
        winner = factories.create_chain(db_session, change=change)
        db_session.commit()
        monkeypatch.setattr(builder, "_supersede_active", lambda artifact_id: 0)

        result = builder.build(org.id, change.id, project.id, None, 5000)
        db_session.commit()

        assert result.reused
        assert result.chain_id == winner.id
        assert len(result.step_ids) == 2
        assert db_session.query(ApprovalStep).filter(ApprovalStep.chain_id == winner.id).count() == 2
        assert len(_active_chains(db_session, change.id)) == 1
