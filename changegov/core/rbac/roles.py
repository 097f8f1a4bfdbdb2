"""Project membership roles and their permission sets.

owner  - everything, including requesting changes on a submitted request
editor - day-to-day authoring: create, edit, move, submit, delete drafts
viewer - read only

Deciding on a submitted change is not a role permission; it requires
designation as an approver (see DecisionEngine).
"""

from enum import Enum
from typing import Dict, List, Optional

from .permissions import Action, Permission, Resource


class ProjectRole(str, Enum):
    OWNER = "owner"
    EDITOR = "editor"
    VIEWER = "viewer"


def _build_permissions(*actions: Action) -> List[str]:
    return [str(Permission(Resource.CHANGES, action)) for action in actions]


OWNER_PERMISSIONS = ["changes:*"]

EDITOR_PERMISSIONS = _build_permissions(
    Action.READ,
    Action.CREATE,
    Action.EDIT,
    Action.MOVE,
    Action.SUBMIT,
    Action.DELETE,
)

VIEWER_PERMISSIONS = _build_permissions(Action.READ)

ROLE_PERMISSIONS: Dict[ProjectRole, List[str]] = {
    ProjectRole.OWNER: OWNER_PERMISSIONS,
    ProjectRole.EDITOR: EDITOR_PERMISSIONS,
    ProjectRole.VIEWER: VIEWER_PERMISSIONS,
}


def parse_role(raw: Optional[str]) -> Optional[ProjectRole]:
    try:
        return ProjectRole((raw or "").strip().lower())
    except ValueError:
        return None


def permissions_for_role(role: Optional[str]) -> List[str]:
    """Permission strings for a membership role; unknown roles get none."""
    parsed = parse_role(role)
    return list(ROLE_PERMISSIONS.get(parsed, [])) if parsed else []
