"""Audit log model for coopflow.

Entries are write-once. ORM listeners reject UPDATE and DELETE so that
no code path in the application can rewrite the audit trail.
"""

import uuid
from enum import Enum
from typing import Optional, Dict, Any
from sqlalchemy import Column, String, DateTime, JSON, Uuid, event

from coopflow.db.base import Base, utcnow


class ImmutableRecordError(Exception):
    """Raised when code attempts to modify or delete a write-once record."""


class AuditSeverity(str, Enum):
    """Severity levels for audit log entries."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditLog(Base):
    """
    Immutable audit log entry.

    Records workflow events that are not approval decisions, such as
    request submission.
    """
    __tablename__ = "audit_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # Actor information (None for system actions)
    actor_id = Column(String(64), nullable=True, index=True)

    # Action details
    action = Column(String(100), nullable=False, index=True)
    resource_type = Column(String(100), nullable=False, index=True)
    resource_id = Column(Uuid, nullable=True, index=True)

    new_values = Column(JSON, nullable=True)
    details = Column(JSON, nullable=True)

    severity = Column(String(20), nullable=False, default="info", index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} on {self.resource_type} by {self.actor_id}>"

    @classmethod
    def create_entry(
        cls,
        action: str,
        resource_type: str,
        *,
        actor_id: Optional[str] = None,
        resource_id: Optional[uuid.UUID] = None,
        new_values: Optional[Dict[str, Any]] = None,
        details: Optional[Dict[str, Any]] = None,
        severity: AuditSeverity = AuditSeverity.INFO,
    ) -> "AuditLog":
        """
        Factory method to create a new audit log entry.

        Args:
            action: Action performed (e.g. 'approval_request.submit')
            resource_type: Type of resource (e.g. 'approval_request')
            actor_id: Who performed the action (None for system actions)
            resource_id: ID of affected resource
            new_values: Values of the created or changed resource
            details: Additional context
            severity: Log severity level
        """
        return cls(
            action=action,
            resource_type=resource_type,
            actor_id=actor_id,
            resource_id=resource_id,
            new_values=new_values,
            details=details,
            severity=severity.value if isinstance(severity, AuditSeverity) else severity,
        )


@event.listens_for(AuditLog, "before_update")
def _reject_audit_update(mapper, connection, target):
    raise ImmutableRecordError(f"audit log {target.id} is write-once")


@event.listens_for(AuditLog, "before_delete")
def _reject_audit_delete(mapper, connection, target):
    raise ImmutableRecordError(f"audit log {target.id} cannot be deleted")
