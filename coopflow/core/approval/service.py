"""Approval service: the workflow engine.

Provides the public operations ``submit``, ``decide``, ``current_stage``
and ``history``. Each operation runs in its own transaction:

- the status change is a conditional write keyed on the expected status,
  the only serialization point between concurrent approvers
- the decision log entry is appended in the same transaction, so either
  both commit or neither does
- transient store errors are retried with doubling backoff, then surfaced
  as StoreUnavailableError
- events are emitted after commit; emission failures never roll back
"""

import logging
import time
import uuid
from dataclasses import replace
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterator, List, Optional, TypeVar, Union
from uuid import UUID

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from coopflow.common.logger import log_context
from coopflow.core.config import get_settings
from coopflow.core.eligibility import EligibilityAssessment, WithdrawalAssessment
from coopflow.core.rbac.checker import ActorContext
from coopflow.db.base import utcnow
from coopflow.db.models import ApprovalLog
from coopflow.services.notifications import EventKind, NotificationEmitter, WorkflowEvent

from .audit import AuditTrail
from .errors import (
    ConflictError,
    InadmissibleError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
    WorkflowError,
)
from .machine import ApprovalStateMachine, coerce_decision
from .policy import StagePolicyTable
from .records import ApprovalLogEntry, ApprovalRequestRecord, StageInfo
from .states import Decision, RequestKind, DISBURSED, REJECTED
from .store import RequestStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

CENT = Decimal("0.01")

IDEMPOTENCY_KEY_MAX_LENGTH = ApprovalLog.__table__.c.idempotency_key.type.length


def parse_amount(value: Any) -> Decimal:
    """Parse a monetary amount as a positive fixed-point decimal.

    Floats are refused so binary rounding never enters the chain.
    """
    if value is None or value == "":
        raise ValidationError("Amount is required", field="amount")
    if isinstance(value, (bool, float)):
        raise ValidationError("Amount must be a decimal string or integer, not a float", field="amount")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"Invalid amount: {value!r}", field="amount") from None
    if not amount.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}", field="amount")
    if amount <= 0:
        raise ValidationError("Amount must be greater than zero", field="amount")
    if amount != amount.quantize(CENT):
        raise ValidationError("Amount may have at most two decimal places", field="amount")
    return amount.quantize(CENT)


def _coerce_kind(kind: Union[RequestKind, str, None]) -> RequestKind:
    if kind is None or kind == "":
        raise ValidationError("Request kind is required", field="kind")
    try:
        return RequestKind(kind.upper() if isinstance(kind, str) else kind)
    except ValueError:
        raise ValidationError(f"Unknown request kind: {kind}", field="kind") from None


def _is_transient(error: Exception) -> bool:
    if isinstance(error, OperationalError):
        return True
    return isinstance(error, DBAPIError) and error.connection_invalidated


class ApprovalHistory:
    """Lazy, finite, restartable view of a request's decision log.

    Each iteration opens its own session and streams entries oldest first,
    so iterating twice reflects any decisions recorded in between.
    """

    def __init__(self, session_factory: sessionmaker, request_id: UUID, batch_size: int = 100):
        self._session_factory = session_factory
        self.request_id = request_id
        self.batch_size = batch_size

    def __iter__(self) -> Iterator[ApprovalLogEntry]:
        with self._session_factory() as db:
            yield from AuditTrail(db).iter_by_request(self.request_id, self.batch_size)

    def stage_roles(self) -> List[str]:
        return [entry.stage_role for entry in self]


class ApprovalService:
    """
    The approval workflow engine.

    Stateless over the shared store: the only in-process state is the
    configuration passed at construction. Authorization uses the
    ActorContext handed to each ``decide`` call.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        policies: Optional[StagePolicyTable] = None,
        notifier: Optional[NotificationEmitter] = None,
        max_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
        clock: Callable[[], Any] = utcnow,
    ):
        """
        Args:
            session_factory: Factory producing sessions on the shared store
            policies: Stage policy table (defaults to the built-in chains)
            notifier: Event emitter (events are dropped when None)
            max_attempts: Attempts per operation on transient store errors
            retry_delay: Initial delay between attempts (doubles each retry)
            clock: Source of timestamps
        """
        settings = get_settings()
        self._session_factory = session_factory
        self.policies = policies or StagePolicyTable.default()
        self.notifier = notifier
        self.max_attempts = max_attempts if max_attempts is not None else settings.store_max_retries
        self.retry_delay = retry_delay if retry_delay is not None else settings.store_retry_delay
        self._clock = clock

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def _in_transaction(self, operation: str, work: Callable[[Session], T]) -> T:
        """Run ``work`` in one transaction, retrying transient store errors.

        Workflow errors raised by ``work`` roll the transaction back and
        propagate immediately.
        """
        delay = self.retry_delay
        last_error = None

        for attempt in range(self.max_attempts):
            try:
                with self._session_factory.begin() as db:
                    return work(db)
            except WorkflowError:
                raise
            except DBAPIError as e:
                if not _is_transient(e):
                    raise
                last_error = e
                logger.warning(
                    f"Store error during {operation} (attempt {attempt + 1}/{self.max_attempts}): {e}"
                )

            if attempt < self.max_attempts - 1:
                time.sleep(delay)
                delay *= 2

        raise StoreUnavailableError(operation, self.max_attempts) from last_error

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def submit(
        self,
        kind: Union[RequestKind, str],
        subject_id: str,
        amount: Any,
        metadata: Optional[Dict[str, Any]] = None,
        *,
        assessment: Union[EligibilityAssessment, WithdrawalAssessment, None] = None,
        submitted_by: Optional[str] = None,
    ) -> UUID:
        """
        Create a request at the first stage of its kind's chain.

        Args:
            kind: WITHDRAWAL or LOAN
            subject_id: Member who owns the request
            amount: Requested amount (decimal string, int or Decimal)
            metadata: Kind-specific details stored with the request
            assessment: Admission check for the member and amount: a
                WithdrawalAssessment for WITHDRAWAL, an
                EligibilityAssessment for LOAN
            submitted_by: Actor submitting on the member's behalf, if any

        Returns:
            The new request id

        Raises:
            ValidationError: Missing fields or non-positive amount
            InadmissibleError: No admissible assessment for this member
                and amount (for a withdrawal, the amount exceeds the
                willing deposit balance)
        """
        kind = _coerce_kind(kind)
        if not subject_id or not str(subject_id).strip():
            raise ValidationError("Subject (member) id is required", field="subject_id")
        subject_id = str(subject_id).strip()
        amount = parse_amount(amount)
        if metadata is not None and not isinstance(metadata, dict):
            raise ValidationError("Metadata must be a mapping", field="metadata")

        extra_data = dict(metadata or {})
        if kind is RequestKind.WITHDRAWAL:
            self._check_withdrawal(subject_id, amount, assessment)
            extra_data["balance_check"] = assessment.to_dict()
        else:
            self._check_admission(subject_id, amount, extra_data.get("tenure_months"), assessment)
            extra_data["eligibility"] = assessment.to_dict()
            extra_data["tenure_months"] = assessment.tenure_months
            extra_data["product_name"] = assessment.product_name

        policy = self.policies.policy_for(kind)
        request_id = uuid.uuid4()

        def work(db: Session) -> ApprovalRequestRecord:
            store = RequestStore(db)
            # A retry after an ambiguous commit finds the row already there
            existing = store.get(request_id)
            if existing is not None:
                return existing

            now = self._clock()
            record = store.create(
                request_id=request_id,
                kind=kind,
                subject_id=subject_id,
                amount=amount,
                status=policy.initial_status,
                extra_data=extra_data,
                created_at=now,
            )
            AuditTrail(db).record_event(
                "approval_request.submit",
                "approval_request",
                actor_id=submitted_by or subject_id,
                resource_id=request_id,
                new_values={"kind": kind.value, "amount": str(amount), "status": record.status},
            )
            return record

        record = self._in_transaction("submit", work)
        logger.info(
            f"Submitted {kind.value} request for {subject_id}: {amount}",
            extra=log_context(record.id, submitted_by or subject_id),
        )
        return record.id

    @staticmethod
    def _check_withdrawal(subject_id: str, amount: Decimal, assessment) -> None:
        if not isinstance(assessment, WithdrawalAssessment):
            raise InadmissibleError("Withdrawal requests require a balance assessment")
        if assessment.member_id != subject_id:
            raise InadmissibleError("Balance assessment belongs to another member")
        if assessment.amount != amount:
            raise InadmissibleError(
                f"Assessed amount {assessment.amount} does not match requested amount {amount}"
            )
        if not assessment.admissible or amount > assessment.available_balance:
            raise InadmissibleError("Insufficient willing deposit balance", assessment.reasons)

    def _check_admission(
        self,
        subject_id: str,
        amount: Decimal,
        tenure_months: Optional[int],
        assessment,
    ) -> None:
        if not isinstance(assessment, EligibilityAssessment):
            raise InadmissibleError("Loan requests require an eligibility assessment")
        if not assessment.admissible:
            raise InadmissibleError("Loan eligibility rules not met", assessment.reasons)
        if assessment.member_id != subject_id:
            raise InadmissibleError("Eligibility assessment belongs to another member")
        if assessment.amount != amount:
            raise InadmissibleError(
                f"Assessed amount {assessment.amount} does not match requested amount {amount}"
            )
        if tenure_months is not None and tenure_months != assessment.tenure_months:
            raise InadmissibleError(
                f"Assessed tenure {assessment.tenure_months} does not match requested tenure {tenure_months}"
            )
        if amount > assessment.max_amount:
            raise InadmissibleError(f"Amount exceeds eligible ceiling {assessment.max_amount}")

    def decide(
        self,
        request_id: UUID,
        actor: ActorContext,
        decision: Union[Decision, str],
        remarks: Optional[str] = None,
        *,
        idempotency_key: Optional[str] = None,
    ) -> ApprovalRequestRecord:
        """
        Record an approval or rejection at the request's current stage.

        Args:
            request_id: Request to decide
            actor: Acting user with role and permission snapshot
            decision: APPROVE or REJECT
            remarks: Free text, mandatory for REJECT
            idempotency_key: Client key; a replay returns the current
                request without recording anything

        Returns:
            The updated request

        Raises:
            NotFoundError: Unknown request
            TerminalStateError: Request already REJECTED or DISBURSED
            UnauthorizedError: Actor may not decide the current stage
            ValidationError: REJECT without remarks, bad decision value,
                blank or over-long idempotency key
            ConflictError: A concurrent decision advanced the request first;
                re-fetch before retrying
            StoreUnavailableError: Store kept failing

        Two approvers racing on the same stage record exactly one decision.
        The loser gets ConflictError when both read the request before
        either wrote, or UnauthorizedError when it read the request after
        the winner committed and the stage had already moved on. Either
        way the caller should re-fetch the request.
        """
        decision = coerce_decision(decision)
        if idempotency_key is not None:
            idempotency_key = str(idempotency_key)
            if not idempotency_key.strip():
                raise ValidationError("Idempotency key must not be blank", field="idempotency_key")
            if len(idempotency_key) > IDEMPOTENCY_KEY_MAX_LENGTH:
                raise ValidationError(
                    f"Idempotency key may be at most {IDEMPOTENCY_KEY_MAX_LENGTH} characters",
                    field="idempotency_key",
                )
        # Retries inside this call replay against the same key
        key = idempotency_key or uuid.uuid4().hex
        attempted_write = False

        def work(db: Session):
            nonlocal attempted_write
            store = RequestStore(db)
            audit = AuditTrail(db)

            current = store.get(request_id)
            if current is None:
                raise NotFoundError(request_id)

            replayed = audit.find_by_idempotency_key(request_id, key)
            if replayed is not None:
                if replayed.actor_id != actor.actor_id or replayed.decision != decision.value:
                    raise ValidationError(
                        "Idempotency key was already used for a different decision",
                        field="idempotency_key",
                    )
                if attempted_write:
                    # An earlier attempt of this call committed but reported an error
                    return current, self._event_for(
                        current, replayed.to_status, replayed.stage_role,
                        replayed.stage_ordinal, replayed.actor_id,
                    )
                return current, None

            attempted_write = True
            machine = ApprovalStateMachine(
                self.policies.policy_for(current.kind),
                current.status,
                request_id=request_id,
                prior_decisions=audit.list_by_request(request_id),
            )
            transition = machine.plan(actor, decision, remarks)

            now = self._clock()
            if not store.compare_and_swap(request_id, transition.from_status, transition.to_status, now):
                raise ConflictError(request_id, transition.from_status)

            try:
                audit.append(
                    ApprovalLog(
                        request_id=request_id,
                        stage_ordinal=transition.stage.ordinal,
                        stage_role=transition.stage.role,
                        decision=transition.decision.value,
                        from_status=transition.from_status,
                        to_status=transition.to_status,
                        actor_id=transition.actor_id,
                        remarks=transition.remarks,
                        idempotency_key=key,
                        created_at=now,
                    )
                )
            except IntegrityError as e:
                raise ConflictError(request_id, transition.from_status) from e

            machine.apply(transition)
            updated = replace(current, status=machine.status, updated_at=now)
            return updated, self._event_for(
                current, transition.to_status, transition.stage.role,
                transition.stage.ordinal, transition.actor_id,
            )

        updated, event = self._in_transaction("decide", work)
        context = log_context(request_id, actor.actor_id)

        if event is None:
            logger.info(f"Replayed decision {key}", extra=context)
            return updated

        logger.info(
            f"{actor.role} {decision.value}: {event.stage_role} stage "
            f"{event.stage_ordinal} -> {event.status}",
            extra=context,
        )
        self._emit(event)
        return updated

    def current_stage(self, request_id: UUID) -> StageInfo:
        """Where the request stands: required role, ordinal, terminality."""
        record = self.get_request(request_id)
        machine = ApprovalStateMachine(
            self.policies.policy_for(record.kind),
            record.status,
            request_id=request_id,
        )
        return machine.stage_info()

    def history(self, request_id: UUID) -> ApprovalHistory:
        """Decision log of a request, oldest first.

        Raises:
            NotFoundError: Unknown request
        """
        self.get_request(request_id)
        return ApprovalHistory(self._session_factory, request_id)

    def get_request(self, request_id: UUID) -> ApprovalRequestRecord:
        def work(db: Session) -> Optional[ApprovalRequestRecord]:
            return RequestStore(db).get(request_id)

        record = self._in_transaction("get_request", work)
        if record is None:
            raise NotFoundError(request_id)
        return record

    def list_pending_for_role(
        self,
        role: str,
        *,
        kind: Optional[Union[RequestKind, str]] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[ApprovalRequestRecord]:
        """Requests waiting at a stage bound to ``role``, oldest first."""
        kinds = [_coerce_kind(kind)] if kind is not None else list(RequestKind)

        def work(db: Session) -> List[ApprovalRequestRecord]:
            store = RequestStore(db)
            records = []
            for k in kinds:
                statuses = self.policies.policy_for(k).statuses_for_role(role)
                records.extend(store.list_by_status(statuses, kind=k, limit=limit + offset))
            records.sort(key=lambda r: r.created_at)
            return records[offset:offset + limit]

        return self._in_transaction("list_pending", work)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    @staticmethod
    def _event_for(
        current: ApprovalRequestRecord,
        to_status: str,
        stage_role: str,
        stage_ordinal: int,
        actor_id: str,
    ) -> WorkflowEvent:
        if to_status == REJECTED:
            kind = EventKind.REJECTED
        elif to_status == DISBURSED:
            kind = EventKind.DISBURSED
        else:
            kind = EventKind.APPROVED
        return WorkflowEvent(
            kind=kind,
            request_id=current.id,
            request_kind=current.kind.value,
            stage_role=stage_role,
            stage_ordinal=stage_ordinal,
            status=to_status,
            actor_id=actor_id,
        )

    def _emit(self, event: WorkflowEvent) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.emit(event)
        except Exception:
            logger.exception(
                f"Failed to emit {event.kind.value} event",
                extra=log_context(event.request_id, event.actor_id),
            )
