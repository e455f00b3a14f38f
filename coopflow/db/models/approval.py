"""Approval workflow database models.

Stores withdrawal and loan approval requests and their decision log.
"""

import uuid
from sqlalchemy import (
    Column,
    String,
    DateTime,
    JSON,
    ForeignKey,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
    Uuid,
    event,
)
from sqlalchemy.orm import relationship

from coopflow.db.base import Base, utcnow
from coopflow.db.models.audit import ImmutableRecordError


class ApprovalRequest(Base):
    """
    A withdrawal request or loan application awaiting disbursement.

    ``status`` is only ever changed by the workflow engine through a
    conditional update keyed on the expected current status.
    """
    __tablename__ = "approval_requests"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    kind = Column(String(20), nullable=False, index=True)  # WITHDRAWAL, LOAN
    subject_id = Column(String(64), nullable=False, index=True)  # owning member
    amount = Column(Numeric(18, 2, asdecimal=True), nullable=False)

    # Workflow state
    status = Column(String(50), nullable=False, default="PENDING", index=True)

    # Kind-specific details (loan product, tenure, withdrawal reason, ...)
    extra_data = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow)

    logs = relationship(
        "ApprovalLog",
        back_populates="request",
        order_by="ApprovalLog.created_at",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<ApprovalRequest {self.kind} {self.id} [{self.status}]>"


class ApprovalLog(Base):
    """
    One immutable entry per approval decision.

    At most one decision is recorded per stage of a request.
    """
    __tablename__ = "approval_logs"
    __table_args__ = (
        UniqueConstraint("request_id", "stage_ordinal", name="uq_approval_logs_request_stage"),
        UniqueConstraint("request_id", "idempotency_key", name="uq_approval_logs_request_idem"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    request_id = Column(
        Uuid,
        ForeignKey("approval_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Stage the decision was made at
    stage_ordinal = Column(Integer, nullable=False)
    stage_role = Column(String(50), nullable=False)

    decision = Column(String(20), nullable=False)  # APPROVE, REJECT
    from_status = Column(String(50), nullable=False)
    to_status = Column(String(50), nullable=False)

    actor_id = Column(String(64), nullable=False, index=True)

    # Required for rejections
    remarks = Column(Text, nullable=True)

    idempotency_key = Column(String(64), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    request = relationship("ApprovalRequest", back_populates="logs")

    def __repr__(self) -> str:
        return f"<ApprovalLog {self.stage_role} {self.decision} {self.from_status} -> {self.to_status}>"


@event.listens_for(ApprovalLog, "before_update")
def _reject_log_update(mapper, connection, target):
    raise ImmutableRecordError(f"approval log {target.id} is write-once")


@event.listens_for(ApprovalLog, "before_delete")
def _reject_log_delete(mapper, connection, target):
    raise ImmutableRecordError(f"approval log {target.id} cannot be deleted")
