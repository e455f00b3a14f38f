"""Read models returned by the approval engine.

These are detached, immutable copies of the database rows so callers never
hold a live ORM object that could be mutated outside the engine.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import UUID

from .states import RequestKind


@dataclass(frozen=True)
class ApprovalRequestRecord:
    id: UUID
    kind: RequestKind
    subject_id: str
    amount: Decimal
    status: str
    extra_data: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, row) -> "ApprovalRequestRecord":
        return cls(
            id=row.id,
            kind=RequestKind(row.kind),
            subject_id=row.subject_id,
            amount=Decimal(row.amount),
            status=row.status,
            extra_data=dict(row.extra_data or {}),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )


@dataclass(frozen=True)
class ApprovalLogEntry:
    id: UUID
    request_id: UUID
    stage_ordinal: int
    stage_role: str
    decision: str
    from_status: str
    to_status: str
    actor_id: str
    remarks: Optional[str]
    created_at: datetime
    idempotency_key: Optional[str] = None

    @classmethod
    def from_model(cls, row) -> "ApprovalLogEntry":
        return cls(
            id=row.id,
            request_id=row.request_id,
            stage_ordinal=row.stage_ordinal,
            stage_role=row.stage_role,
            decision=row.decision,
            from_status=row.from_status,
            to_status=row.to_status,
            actor_id=row.actor_id,
            remarks=row.remarks,
            created_at=row.created_at,
            idempotency_key=row.idempotency_key,
        )


@dataclass(frozen=True)
class StageInfo:
    """Where a request stands in its chain.

    ``role`` and ``ordinal`` are None once the request is terminal.
    """

    status: str
    role: Optional[str]
    ordinal: Optional[int]
    is_terminal: bool
