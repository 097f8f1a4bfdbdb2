"""Permission model for project-scoped change governance.

Permission string format: "resource:action"
Examples:
  - changes:read
  - changes:submit
  - changes:request_changes
"""

from enum import Enum
from typing import NamedTuple


class Resource(str, Enum):
    """Resources that can be protected by permissions."""
    CHANGES = "changes"


class Action(str, Enum):
    """Actions that can be performed on resources."""
    READ = "read"
    CREATE = "create"
    EDIT = "edit"
    MOVE = "move"
    SUBMIT = "submit"
    DELETE = "delete"
    REQUEST_CHANGES = "request_changes"


class Permission(NamedTuple):
    """A permission is a combination of resource and action."""
    resource: Resource
    action: Action

    def __str__(self) -> str:
        return f"{self.resource.value}:{self.action.value}"
