"""Role/permission evaluation for coopflow.

A PermissionSnapshot is loaded once per session and never mutated. The
workflow engine consults it at decision time through ActorContext, so a
role or grant change made by an administrator is seen by the next session
that loads a snapshot.
"""

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from .permissions import Permission, Resource, Action, WILDCARD

logger = logging.getLogger(__name__)


def _as_str(value: Union[str, Resource, Action]) -> str:
    return value.value if isinstance(value, (Resource, Action)) else str(value)


class PermissionSnapshot:
    """Immutable mapping of role name to its granted permission strings."""

    def __init__(self, grants: Mapping[str, Iterable[str]]):
        self._grants = MappingProxyType(
            {role: frozenset(perms) for role, perms in grants.items()}
        )

    @classmethod
    def from_roles(cls, db: Session) -> "PermissionSnapshot":
        """Load the current role bindings from the database."""
        from coopflow.db.models import Role

        rows = db.execute(select(Role.name, Role.permissions)).all()
        snapshot = cls({name: perms or [] for name, perms in rows})
        logger.debug("Loaded permission snapshot for %d roles", len(rows))
        return snapshot

    @property
    def roles(self) -> frozenset[str]:
        return frozenset(self._grants)

    def grants_for(self, role: str) -> frozenset[str]:
        return self._grants.get(role, frozenset())

    def has_permission(
        self,
        role: str,
        resource: Union[str, Resource],
        action: Union[str, Action],
    ) -> bool:
        """Check whether ``role`` is granted ``action`` on ``resource``.

        Missing roles and missing grants are denials. ``RESOURCE:*`` and
        ``*:*`` count as explicit grants.
        """
        grants = self._grants.get(role)
        if not grants:
            return False

        resource_str = _as_str(resource)
        action_str = _as_str(action)

        if f"{resource_str}:{action_str}" in grants:
            return True
        if f"{resource_str}:{WILDCARD}" in grants:
            return True
        return f"{WILDCARD}:{WILDCARD}" in grants

    def has_any_permission(self, role: str, permissions: Iterable[Union[str, Permission]]) -> bool:
        """Check if role holds any of the given permissions."""
        for perm in permissions:
            parsed = perm if isinstance(perm, Permission) else Permission.from_string(perm)
            if self.has_permission(role, parsed.resource, parsed.action):
                return True
        return False


@dataclass(frozen=True)
class ActorContext:
    """The acting user for one session: identity, single role and snapshot.

    ``member_id`` is set when the user is a cooperative member and names
    the member whose requests they own.
    """

    actor_id: str
    role: str
    snapshot: PermissionSnapshot
    member_id: Optional[str] = None

    def can(self, resource: Union[str, Resource], action: Union[str, Action]) -> bool:
        return self.snapshot.has_permission(self.role, resource, action)
