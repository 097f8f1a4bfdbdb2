"""Approver group expansion.

The canonical membership shape is group -> organisation approver -> user.
Organisations set up before the approver directory existed store group
members as users directly; LegacyGroupMembership reads that shape and is
consulted only when the canonical shape has no rows for the group.
"""

import logging
from typing import List, Optional, Protocol, Set
from uuid import UUID

from sqlalchemy import and_
from sqlalchemy.orm import Session

from changegov.db.models import (
    ApprovalGroupMember,
    LegacyApproverGroupMember,
    OrganisationApprover,
)

logger = logging.getLogger(__name__)


class MembershipSource(Protocol):
    def has_members(self, group_id: UUID) -> bool: ...

    def user_ids(self, group_id: UUID) -> Set[UUID]: ...


class ApproverDirectoryMembership:
    """group -> organisation_approvers -> users"""

    def __init__(self, db: Session):
        self.db = db

    def has_members(self, group_id: UUID) -> bool:
        return self.db.query(ApprovalGroupMember.id).filter(
            ApprovalGroupMember.group_id == group_id
        ).first() is not None

    def user_ids(self, group_id: UUID) -> Set[UUID]:
        rows = (
            self.db.query(OrganisationApprover.user_id)
            .join(ApprovalGroupMember, ApprovalGroupMember.approver_id == OrganisationApprover.id)
            .filter(
                and_(
                    ApprovalGroupMember.group_id == group_id,
                    ApprovalGroupMember.is_active.is_(True),
                    OrganisationApprover.is_active.is_(True),
                    OrganisationApprover.user_id.isnot(None),
                )
            )
            .all()
        )
        return {row.user_id for row in rows}


class LegacyGroupMembership:
    """group -> users, from approver_group_members"""

    def __init__(self, db: Session):
        self.db = db

    def has_members(self, group_id: UUID) -> bool:
        return self.db.query(LegacyApproverGroupMember.id).filter(
            LegacyApproverGroupMember.group_id == group_id
        ).first() is not None

    def user_ids(self, group_id: UUID) -> Set[UUID]:
        rows = self.db.query(LegacyApproverGroupMember.user_id).filter(
            and_(
                LegacyApproverGroupMember.group_id == group_id,
                LegacyApproverGroupMember.is_active.is_(True),
            )
        ).all()
        return {row.user_id for row in rows}


class GroupExpander:
    """
    Resolve an approver group to a set of user ids.

    The first source holding any membership rows for the group wins, even
    when all of its rows are inactive. An empty set is a valid result.
    """

    def __init__(self, db: Session, sources: Optional[List[MembershipSource]] = None):
        self.sources: List[MembershipSource] = sources or [
            ApproverDirectoryMembership(db),
            LegacyGroupMembership(db),
        ]

    def expand(self, group_id: UUID) -> Set[UUID]:
        for source in self.sources:
            if source.has_members(group_id):
                users = source.user_ids(group_id)
                if not users:
                    logger.debug("Group %s has no active linked users", group_id)
                return users
        return set()
