"""Approval workflow API endpoints."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from coopflow.api.deps import (
    get_approval_service,
    get_current_actor,
    get_loan_products,
    get_member_directory,
)
from coopflow.core.approval import (
    ApprovalRequestRecord,
    ApprovalService,
    ConflictError,
    Decision,
    InadmissibleError,
    NotFoundError,
    RequestKind,
    StoreUnavailableError,
    TerminalStateError,
    UnauthorizedError,
    ValidationError,
    WorkflowError,
    parse_amount,
)
from coopflow.core.eligibility import LoanProduct, assess_loan, assess_withdrawal
from coopflow.core.rbac import Action, ActorContext
from coopflow.services.members import MemberDirectory

router = APIRouter(prefix="/requests", tags=["approvals"])

MEMBER_ROLE = "MEMBER"

ERROR_STATUS = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    InadmissibleError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    UnauthorizedError: status.HTTP_403_FORBIDDEN,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    TerminalStateError: status.HTTP_409_CONFLICT,
    ConflictError: status.HTTP_409_CONFLICT,
    StoreUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _http_error(error: WorkflowError) -> HTTPException:
    detail: Dict[str, Any] = {"error": error.message, "code": error.code, "retryable": error.retryable}
    if isinstance(error, InadmissibleError):
        detail["reasons"] = error.reasons
    if isinstance(error, ValidationError) and error.field:
        detail["field"] = error.field
    status_code = next(
        (code for cls, code in ERROR_STATUS.items() if isinstance(error, cls)),
        status.HTTP_400_BAD_REQUEST,
    )
    return HTTPException(status_code=status_code, detail=detail)


# Schemas
class SubmitRequest(BaseModel):
    kind: RequestKind
    subject_id: Optional[str] = None
    amount: str = Field(..., description="Decimal amount, e.g. \"1500.00\"")
    metadata: Dict[str, Any] = Field(default_factory=dict)
    tenure_months: Optional[int] = Field(None, ge=1)


class DecisionIn(BaseModel):
    remarks: Optional[str] = None
    idempotency_key: Optional[str] = Field(None, max_length=64)


class ApprovalRequestResponse(BaseModel):
    id: UUID
    kind: str
    subject_id: str
    amount: str
    status: str
    extra_data: Dict[str, Any]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    @classmethod
    def from_record(cls, record: ApprovalRequestRecord) -> "ApprovalRequestResponse":
        return cls(
            id=record.id,
            kind=record.kind.value,
            subject_id=record.subject_id,
            amount=str(record.amount),
            status=record.status,
            extra_data=record.extra_data,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class StageResponse(BaseModel):
    status: str
    role: Optional[str]
    ordinal: Optional[int]
    is_terminal: bool


class HistoryEntryResponse(BaseModel):
    id: UUID
    stage_ordinal: int
    stage_role: str
    decision: str
    from_status: str
    to_status: str
    actor_id: str
    remarks: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


def _subject_for(actor: ActorContext, requested: Optional[str]) -> str:
    """Member a submission is for.

    A member may only submit their own requests.
    """
    if actor.role == MEMBER_ROLE:
        if not actor.member_id:
            raise HTTPException(status_code=403, detail="No member record is linked to this account")
        if requested and requested != actor.member_id:
            raise HTTPException(status_code=403, detail="Members may only submit their own requests")
        return actor.member_id

    if not requested or not requested.strip():
        raise _http_error(ValidationError("subject_id is required when submitting for a member", field="subject_id"))
    return requested.strip()


# Endpoints
@router.post("", response_model=ApprovalRequestResponse, status_code=status.HTTP_201_CREATED)
def submit_request(
    body: SubmitRequest,
    actor: ActorContext = Depends(get_current_actor),
    service: ApprovalService = Depends(get_approval_service),
    products: List[LoanProduct] = Depends(get_loan_products),
    members: MemberDirectory = Depends(get_member_directory),
):
    """Submit a withdrawal or loan request.

    Members submit for themselves; staff with the create grant name the
    member in ``subject_id``. Admission uses the member's balances on record.
    """
    if not actor.can(body.kind.resource, Action.CREATE):
        raise HTTPException(status_code=403, detail=f"Role {actor.role} may not submit {body.kind.value} requests")

    subject_id = _subject_for(actor, body.subject_id)

    try:
        amount = parse_amount(body.amount)
        member = members.financials(subject_id)
        if member is None:
            raise InadmissibleError(f"No account on record for member {subject_id}")

        if body.kind is RequestKind.LOAN:
            if body.tenure_months is None:
                raise ValidationError("Loan requests require tenure_months", field="tenure_months")
            assessment = assess_loan(member, products, amount, body.tenure_months)
        else:
            assessment = assess_withdrawal(member, amount)

        request_id = service.submit(
            body.kind,
            subject_id,
            body.amount,
            body.metadata,
            assessment=assessment,
            submitted_by=actor.actor_id,
        )
        return ApprovalRequestResponse.from_record(service.get_request(request_id))
    except WorkflowError as e:
        raise _http_error(e)


@router.get("/pending", response_model=List[ApprovalRequestResponse])
def list_pending(
    kind: Optional[RequestKind] = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    actor: ActorContext = Depends(get_current_actor),
    service: ApprovalService = Depends(get_approval_service),
):
    """Requests waiting at a stage the caller's role decides, oldest first."""
    try:
        records = service.list_pending_for_role(
            actor.role, kind=kind, limit=per_page, offset=(page - 1) * per_page
        )
    except WorkflowError as e:
        raise _http_error(e)
    return [ApprovalRequestResponse.from_record(r) for r in records]


@router.get("/{request_id}", response_model=ApprovalRequestResponse)
def get_request(
    request_id: UUID,
    actor: ActorContext = Depends(get_current_actor),
    service: ApprovalService = Depends(get_approval_service),
):
    try:
        return ApprovalRequestResponse.from_record(service.get_request(request_id))
    except WorkflowError as e:
        raise _http_error(e)


@router.get("/{request_id}/stage", response_model=StageResponse)
def get_stage(
    request_id: UUID,
    actor: ActorContext = Depends(get_current_actor),
    service: ApprovalService = Depends(get_approval_service),
):
    """Current status, the role expected to act, and the stage ordinal."""
    try:
        info = service.current_stage(request_id)
    except WorkflowError as e:
        raise _http_error(e)
    return StageResponse(status=info.status, role=info.role, ordinal=info.ordinal, is_terminal=info.is_terminal)


@router.get("/{request_id}/history", response_model=List[HistoryEntryResponse])
def get_history(
    request_id: UUID,
    actor: ActorContext = Depends(get_current_actor),
    service: ApprovalService = Depends(get_approval_service),
):
    """Decision log of a request, oldest first."""
    try:
        return [HistoryEntryResponse.model_validate(entry) for entry in service.history(request_id)]
    except WorkflowError as e:
        raise _http_error(e)


def _decide(
    service: ApprovalService,
    request_id: UUID,
    actor: ActorContext,
    decision: Decision,
    body: DecisionIn,
) -> ApprovalRequestResponse:
    try:
        record = service.decide(
            request_id,
            actor,
            decision,
            body.remarks,
            idempotency_key=body.idempotency_key,
        )
    except WorkflowError as e:
        raise _http_error(e)
    return ApprovalRequestResponse.from_record(record)


@router.post("/{request_id}/approve", response_model=ApprovalRequestResponse)
def approve_request(
    request_id: UUID,
    body: DecisionIn,
    actor: ActorContext = Depends(get_current_actor),
    service: ApprovalService = Depends(get_approval_service),
):
    """Approve the request at its current stage."""
    return _decide(service, request_id, actor, Decision.APPROVE, body)


@router.post("/{request_id}/reject", response_model=ApprovalRequestResponse)
def reject_request(
    request_id: UUID,
    body: DecisionIn,
    actor: ActorContext = Depends(get_current_actor),
    service: ApprovalService = Depends(get_approval_service),
):
    """Reject the request. Remarks are required."""
    return _decide(service, request_id, actor, Decision.REJECT, body)
