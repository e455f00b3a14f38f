"""Permission model for coopflow RBAC.

Defines all resources, actions, and permission combinations.
Uses a matrix approach: permissions = actions × resources.

Permission string format: "RESOURCE:ACTION"
Examples:
  - WITHDRAWALS:APPROVE
  - LOANS:REJECT
  - MEMBERS:VIEW
"""

from enum import Enum
from typing import NamedTuple, FrozenSet


class Resource(str, Enum):
    """Resources that can be protected by permissions."""

    MEMBERS = "MEMBERS"
    LOANS = "LOANS"
    WITHDRAWALS = "WITHDRAWALS"
    ACCOUNTING = "ACCOUNTING"
    REPORTS = "REPORTS"
    SETTINGS = "SETTINGS"


class Action(str, Enum):
    """Actions that can be performed on resources."""

    VIEW = "VIEW"
    READ = "READ"
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    APPROVE = "APPROVE"
    REJECT = "REJECT"


WILDCARD = "*"


class Permission(NamedTuple):
    """A permission is a combination of resource and action."""
    resource: Resource
    action: Action

    def __str__(self) -> str:
        return f"{self.resource.value}:{self.action.value}"

    @classmethod
    def from_string(cls, perm_str: str) -> "Permission":
        """Parse a permission string like 'LOANS:APPROVE'."""
        parts = perm_str.split(":")
        if len(parts) != 2:
            raise ValueError(f"Invalid permission format: {perm_str}")
        return cls(Resource(parts[0]), Action(parts[1]))


# Maps each resource to its valid actions
PERMISSION_MATRIX: dict[Resource, FrozenSet[Action]] = {
    Resource.MEMBERS: frozenset([
        Action.VIEW, Action.READ, Action.CREATE, Action.UPDATE, Action.DELETE,
    ]),
    Resource.LOANS: frozenset([
        Action.VIEW, Action.READ, Action.CREATE, Action.UPDATE,
        Action.APPROVE, Action.REJECT,
    ]),
    Resource.WITHDRAWALS: frozenset([
        Action.VIEW, Action.READ, Action.CREATE, Action.APPROVE, Action.REJECT,
    ]),
    Resource.ACCOUNTING: frozenset([
        Action.VIEW, Action.READ, Action.CREATE, Action.UPDATE,
    ]),
    Resource.REPORTS: frozenset([
        Action.VIEW, Action.READ,
    ]),
    Resource.SETTINGS: frozenset([
        Action.VIEW, Action.READ, Action.UPDATE,
    ]),
}


def _generate_permission_definitions() -> dict[str, Permission]:
    """Generate all valid permission combinations from the matrix."""
    permissions = {}
    for resource, actions in PERMISSION_MATRIX.items():
        for action in actions:
            perm = Permission(resource, action)
            permissions[str(perm)] = perm
    return permissions


# All valid permissions as a dictionary: "RESOURCE:ACTION" -> Permission
PERMISSION_DEFINITIONS = _generate_permission_definitions()


def is_valid_permission(perm_str: str) -> bool:
    """Check if a permission string names a grant from the matrix."""
    return perm_str in PERMISSION_DEFINITIONS


def is_valid_grant(perm_str: str) -> bool:
    """Like is_valid_permission but also accepts ``RESOURCE:*`` and ``*:*``."""
    if perm_str == f"{WILDCARD}:{WILDCARD}":
        return True
    if perm_str.endswith(f":{WILDCARD}"):
        return perm_str.split(":")[0] in Resource._value2member_map_
    return is_valid_permission(perm_str)


def get_permissions_for_resource(resource: Resource) -> list[str]:
    """Get all valid permission strings for a resource."""
    return sorted(
        str(Permission(resource, action))
        for action in PERMISSION_MATRIX.get(resource, set())
    )
