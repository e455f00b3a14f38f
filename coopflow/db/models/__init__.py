"""Database models for coopflow."""

from coopflow.db.models.role import Role
from coopflow.db.models.user import User
from coopflow.db.models.member import MemberAccount
from coopflow.db.models.approval import ApprovalRequest, ApprovalLog
from coopflow.db.models.audit import AuditLog, AuditSeverity, ImmutableRecordError

__all__ = [
    "Role",
    "User",
    "MemberAccount",
    "ApprovalRequest",
    "ApprovalLog",
    "AuditLog",
    "AuditSeverity",
    "ImmutableRecordError",
]
