"""Default role definitions for coopflow.

Defines the standard cooperative roles with their permission sets:
1. Admin - Full system access
2. Accountant - First review of every request, and fund release
3. Supervisor - Confirms withdrawals
4. Committee - Reviews loan applications
5. Manager - Final approval of withdrawals and loans
6. Member - Submits and follows own requests
"""

from typing import Dict, List
from .permissions import Resource, Action, Permission


def _build_permissions(*perms: tuple) -> List[str]:
    """Build permission strings from (Resource, Action) tuples."""
    return [str(Permission(r, a)) for r, a in perms]


ADMIN_PERMISSIONS = [
    "*:*"
]

ACCOUNTANT_PERMISSIONS = _build_permissions(
    (Resource.MEMBERS, Action.VIEW),
    (Resource.MEMBERS, Action.READ),

    (Resource.WITHDRAWALS, Action.VIEW),
    (Resource.WITHDRAWALS, Action.READ),
    (Resource.WITHDRAWALS, Action.APPROVE),
    (Resource.WITHDRAWALS, Action.REJECT),

    (Resource.LOANS, Action.VIEW),
    (Resource.LOANS, Action.READ),
    (Resource.LOANS, Action.APPROVE),
    (Resource.LOANS, Action.REJECT),

    (Resource.ACCOUNTING, Action.VIEW),
    (Resource.ACCOUNTING, Action.READ),
    (Resource.ACCOUNTING, Action.CREATE),

    (Resource.REPORTS, Action.VIEW),
)

SUPERVISOR_PERMISSIONS = _build_permissions(
    (Resource.MEMBERS, Action.VIEW),
    (Resource.MEMBERS, Action.READ),

    (Resource.WITHDRAWALS, Action.VIEW),
    (Resource.WITHDRAWALS, Action.READ),
    (Resource.WITHDRAWALS, Action.APPROVE),
    (Resource.WITHDRAWALS, Action.REJECT),

    (Resource.LOANS, Action.VIEW),
    (Resource.LOANS, Action.READ),

    (Resource.REPORTS, Action.VIEW),
)

COMMITTEE_PERMISSIONS = _build_permissions(
    (Resource.MEMBERS, Action.VIEW),
    (Resource.MEMBERS, Action.READ),

    (Resource.LOANS, Action.VIEW),
    (Resource.LOANS, Action.READ),
    (Resource.LOANS, Action.APPROVE),
    (Resource.LOANS, Action.REJECT),
)

MANAGER_PERMISSIONS = _build_permissions(
    (Resource.MEMBERS, Action.VIEW),
    (Resource.MEMBERS, Action.READ),

    (Resource.WITHDRAWALS, Action.VIEW),
    (Resource.WITHDRAWALS, Action.READ),
    (Resource.WITHDRAWALS, Action.APPROVE),
    (Resource.WITHDRAWALS, Action.REJECT),

    (Resource.LOANS, Action.VIEW),
    (Resource.LOANS, Action.READ),
    (Resource.LOANS, Action.APPROVE),
    (Resource.LOANS, Action.REJECT),

    (Resource.REPORTS, Action.VIEW),
    (Resource.REPORTS, Action.READ),
)

MEMBER_PERMISSIONS = _build_permissions(
    (Resource.WITHDRAWALS, Action.CREATE),
    (Resource.WITHDRAWALS, Action.VIEW),
    (Resource.LOANS, Action.CREATE),
    (Resource.LOANS, Action.VIEW),
)


# Role names are the values users carry and stages bind to
DEFAULT_ROLES: Dict[str, dict] = {
    "ADMIN": {
        "description": "Full system access with all permissions",
        "permissions": ADMIN_PERMISSIONS,
        "is_system": True,
    },
    "ACCOUNTANT": {
        "description": "Reviews new requests and releases approved funds",
        "permissions": ACCOUNTANT_PERMISSIONS,
        "is_system": True,
    },
    "SUPERVISOR": {
        "description": "Confirms withdrawals reviewed by an accountant",
        "permissions": SUPERVISOR_PERMISSIONS,
        "is_system": True,
    },
    "COMMITTEE": {
        "description": "Credit committee review of loan applications",
        "permissions": COMMITTEE_PERMISSIONS,
        "is_system": True,
    },
    "MANAGER": {
        "description": "Final approval of withdrawals and loans",
        "permissions": MANAGER_PERMISSIONS,
        "is_system": True,
    },
    "MEMBER": {
        "description": "Cooperative member submitting own requests",
        "permissions": MEMBER_PERMISSIONS,
        "is_system": True,
    },
}


def get_default_role_permissions(role_name: str) -> List[str]:
    """Get permissions list for a default role."""
    role = DEFAULT_ROLES.get(role_name)
    if not role:
        raise ValueError(f"Unknown default role: {role_name}")
    return role["permissions"]


def default_grants() -> Dict[str, List[str]]:
    """Role name -> permissions for all default roles."""
    return {name: config["permissions"] for name, config in DEFAULT_ROLES.items()}
