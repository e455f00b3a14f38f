"""Audit trail recorder.

Append-only access to the approval decision log and the general audit log.
No update or delete method is exposed; the models also reject both at
the ORM level.
"""

import logging
from typing import Any, Dict, Iterator, List, Optional
from uuid import UUID

from sqlalchemy import and_, select
from sqlalchemy.orm import Session

from coopflow.db.models import ApprovalLog, AuditLog, AuditSeverity

from .records import ApprovalLogEntry

logger = logging.getLogger(__name__)


class AuditTrail:
    """Write-once recorder bound to one session/transaction."""

    def __init__(self, db: Session):
        self.db = db

    def append(self, entry: ApprovalLog) -> ApprovalLogEntry:
        """Append a decision entry.

        The entry is flushed immediately so a duplicate decision for the same
        stage surfaces as an IntegrityError inside the caller's transaction.
        """
        self.db.add(entry)
        self.db.flush()
        logger.debug(
            "Recorded %s by %s on request %s (%s -> %s)",
            entry.decision, entry.actor_id, entry.request_id, entry.from_status, entry.to_status,
        )
        return ApprovalLogEntry.from_model(entry)

    def _by_request(self, request_id: UUID):
        return (
            select(ApprovalLog)
            .where(ApprovalLog.request_id == request_id)
            .order_by(ApprovalLog.created_at.asc(), ApprovalLog.stage_ordinal.asc())
        )

    def list_by_request(self, request_id: UUID) -> List[ApprovalLogEntry]:
        return [ApprovalLogEntry.from_model(row) for row in self.db.scalars(self._by_request(request_id))]

    def iter_by_request(self, request_id: UUID, batch_size: int = 100) -> Iterator[ApprovalLogEntry]:
        """Stream entries in batches, oldest first."""
        query = self._by_request(request_id).execution_options(yield_per=batch_size)
        for row in self.db.scalars(query):
            yield ApprovalLogEntry.from_model(row)

    def find_by_idempotency_key(self, request_id: UUID, key: str) -> Optional[ApprovalLogEntry]:
        row = self.db.scalars(
            select(ApprovalLog).where(
                and_(
                    ApprovalLog.request_id == request_id,
                    ApprovalLog.idempotency_key == key,
                )
            )
        ).first()
        return ApprovalLogEntry.from_model(row) if row else None

    def record_event(
        self,
        action: str,
        resource_type: str,
        *,
        actor_id: Optional[str] = None,
        resource_id: Optional[UUID] = None,
        new_values: Optional[Dict[str, Any]] = None,
        details: Optional[Dict[str, Any]] = None,
        severity: AuditSeverity = AuditSeverity.INFO,
    ) -> AuditLog:
        """Append a general audit log entry (e.g. request submission)."""
        log = AuditLog.create_entry(
            action,
            resource_type,
            actor_id=actor_id,
            resource_id=resource_id,
            new_values=new_values,
            details=details,
            severity=severity,
        )
        self.db.add(log)
        self.db.flush()
        return log

    def list_events(self, resource_id: UUID) -> List[AuditLog]:
        return list(
            self.db.scalars(
                select(AuditLog)
                .where(AuditLog.resource_id == resource_id)
                .order_by(AuditLog.created_at.asc())
            )
        )
