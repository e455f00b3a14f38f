"""Request store backed by SQLAlchemy.

``compare_and_swap`` is the only way a request's status changes and the
sole serialization point between concurrent approvers. ORM-level edits
to ``status`` or ``amount`` are rejected.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import and_, event, inspect, select, update
from sqlalchemy.orm import Session

from coopflow.db.models import ApprovalRequest, ImmutableRecordError

from .records import ApprovalRequestRecord
from .states import RequestKind, TERMINAL_STATUSES


class RequestStore:
    """Durable record of approval requests, scoped to one session/transaction."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, request_id: UUID) -> Optional[ApprovalRequestRecord]:
        row = self.db.get(ApprovalRequest, request_id)
        return ApprovalRequestRecord.from_model(row) if row else None

    def create(
        self,
        *,
        request_id: UUID,
        kind: RequestKind,
        subject_id: str,
        amount: Decimal,
        status: str,
        extra_data: Optional[Dict[str, Any]],
        created_at: datetime,
    ) -> ApprovalRequestRecord:
        row = ApprovalRequest(
            id=request_id,
            kind=kind.value,
            subject_id=subject_id,
            amount=amount,
            status=status,
            extra_data=extra_data or {},
            created_at=created_at,
            updated_at=created_at,
        )
        self.db.add(row)
        self.db.flush()
        return ApprovalRequestRecord.from_model(row)

    def compare_and_swap(
        self,
        request_id: UUID,
        expected_status: str,
        new_status: str,
        updated_at: datetime,
    ) -> bool:
        """Set ``status`` to ``new_status`` only if it is still ``expected_status``.

        Returns:
            True if this call won, False if the status had already moved
        """
        if expected_status in TERMINAL_STATUSES:
            raise ImmutableRecordError(f"Request {request_id} is {expected_status}")

        result = self.db.execute(
            update(ApprovalRequest)
            .where(
                and_(
                    ApprovalRequest.id == request_id,
                    ApprovalRequest.status == expected_status,
                )
            )
            .values(status=new_status, updated_at=updated_at)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    def list_by_status(
        self,
        statuses: Iterable[str],
        *,
        kind: Optional[RequestKind] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[ApprovalRequestRecord]:
        """Requests currently in any of ``statuses``, oldest first."""
        statuses = list(statuses)
        if not statuses:
            return []

        query = select(ApprovalRequest).where(ApprovalRequest.status.in_(statuses))
        if kind is not None:
            query = query.where(ApprovalRequest.kind == kind.value)
        query = query.order_by(ApprovalRequest.created_at.asc()).offset(offset).limit(limit)

        return [ApprovalRequestRecord.from_model(r) for r in self.db.scalars(query)]


@event.listens_for(ApprovalRequest, "before_update")
def _guard_request_update(mapper, connection, target):
    state = inspect(target)
    if state.attrs.status.history.has_changes():
        raise ImmutableRecordError("Request status changes only through compare_and_swap")
    if state.attrs.amount.history.has_changes():
        raise ImmutableRecordError(f"Amount of request {target.id} is immutable after submission")
    if target.status in TERMINAL_STATUSES:
        raise ImmutableRecordError(f"Request {target.id} is {target.status} and read-only")
