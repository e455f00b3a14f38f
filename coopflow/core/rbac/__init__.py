"""RBAC (Role-Based Access Control) module for coopflow.

This module defines the permission model, role definitions, and the
per-session permission snapshot used by the approval engine.
"""

from .permissions import Permission, Resource, Action, PERMISSION_DEFINITIONS
from .checker import ActorContext, PermissionSnapshot
from .roles import DEFAULT_ROLES, default_grants

__all__ = [
    "Permission",
    "Resource",
    "Action",
    "PERMISSION_DEFINITIONS",
    "ActorContext",
    "PermissionSnapshot",
    "DEFAULT_ROLES",
    "default_grants",
]
