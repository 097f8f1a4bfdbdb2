"""Permission checking for project members."""

from typing import List, Union

from .permissions import Action, Permission, Resource
from .roles import permissions_for_role


class PermissionChecker:
    """Checks if a member has specific permissions based on their role."""

    def __init__(self, user_permissions: List[str]):
        self.permissions = set(user_permissions)

    @classmethod
    def for_role(cls, role: str) -> "PermissionChecker":
        return cls(permissions_for_role(role))

    def has_permission(self, permission: Union[str, Permission]) -> bool:
        """Check for a permission, honouring resource:* and *:* wildcards."""
        perm_str = str(permission) if isinstance(permission, Permission) else permission

        if perm_str in self.permissions:
            return True

        if ":" in perm_str:
            resource = perm_str.split(":")[0]
            if f"{resource}:*" in self.permissions:
                return True
            if "*:*" in self.permissions:
                return True

        return False

    def can(self, action: Action, resource: Resource = Resource.CHANGES) -> bool:
        return self.has_permission(Permission(resource, action))
