"""Project-scoped role-based access control for change requests."""

from .permissions import Permission, Resource, Action
from .roles import ProjectRole, ROLE_PERMISSIONS, permissions_for_role
from .checker import PermissionChecker

__all__ = [
    "Permission",
    "Resource",
    "Action",
    "ProjectRole",
    "ROLE_PERMISSIONS",
    "permissions_for_role",
    "PermissionChecker",
]
