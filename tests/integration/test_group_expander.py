"""Tests for approver group expansion."""

from changegov.core.approval import GroupExpander

from tests import factories


class TestGroupExpander:

    def test_canonical_members(self, db_session, org):
        group = factories.create_group(db_session, org=org)
        alice = factories.create_user(db_session)
        bob = factories.create_user(db_session)
        factories.add_group_approver(db_session, group=group, user=alice)
        factories.add_group_approver(db_session, group=group, user=bob)

        assert GroupExpander(db_session).expand(group.id) == {alice.id, bob.id}

    def test_legacy_members_used_when_no_canonical_rows(self, db_session, org):
        group = factories.create_group(db_session, org=org)
        carol = factories.create_user(db_session)
        factories.add_legacy_group_member(db_session, group=group, user=carol)

        assert GroupExpander(db_session).expand(group.id) == {carol.id}

    def test_canonical_shape_wins_over_legacy(self, db_session, org):
        group = factories.create_group(db_session, org=org)
        current = factories.create_user(db_session)
        historical = factories.create_user(db_session)
        factories.add_group_approver(db_session, group=group, user=current)
        factories.add_legacy_group_member(db_session, group=group, user=historical)

        assert GroupExpander(db_session).expand(group.id) == {current.id}

    def test_inactive_rows_are_skipped(self, db_session, org):
        group = factories.create_group(db_session, org=org)
        active = factories.create_user(db_session)
        dropped = factories.create_user(db_session)
        retired = factories.create_user(db_session)
        factories.add_group_approver(db_session, group=group, user=active)
        factories.add_group_approver(db_session, group=group, user=dropped, is_active=False)
        retired_entry = factories.create_org_approver(db_session, org=org, user=retired, is_active=False)
        factories.add_group_approver(db_session, group=group, approver=retired_entry)

        assert GroupExpander(db_session).expand(group.id) == {active.id}

    def test_directory_entry_without_user_is_skipped(self, db_session, org):
        group = factories.create_group(db_session, org=org)
        unlinked = factories.create_org_approver(db_session, org=org)
        factories.add_group_approver(db_session, group=group, approver=unlinked)

        assert GroupExpander(db_session).expand(group.id) == set()

    def test_inactive_canonical_rows_do_not_fall_back(self, db_session, org):
        group = factories.create_group(db_session, org=org)
        former = factories.create_user(db_session)
        legacy = factories.create_user(db_session)
        factories.add_group_approver(db_session, group=group, user=former, is_active=False)
        factories.add_legacy_group_member(db_session, group=group, user=legacy)

        assert GroupExpander(db_session).expand(group.id) == set()

    def test_empty_group(self, db_session, org):
        group = factories.create_group(db_session, org=org)
        assert GroupExpander(db_session).expand(group.id) == set()
