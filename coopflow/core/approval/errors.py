"""Errors raised by the approval workflow engine.

Every error is reported synchronously to the caller of ``submit`` or
``decide``. Only ``ConflictError`` is retryable, and only after the caller
re-fetches the request: the stage may have moved past the caller's role.

The loser of a race between two approvers gets either ``ConflictError``
or ``UnauthorizedError``, depending on whether it read the request before
or after the winner committed. Both mean the request moved; re-fetch it.
"""

from typing import Optional, Sequence
from uuid import UUID


class WorkflowError(Exception):
    """Base class for approval workflow errors."""

    code = "workflow_error"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(WorkflowError):
    """Bad input from the caller."""

    code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class UnauthorizedError(WorkflowError):
    """Actor may not decide the request at its current stage.

    Also raised to the losing approver of a race when it read the request
    after the winning decision moved it to a stage bound to another role.
    """

    code = "unauthorized"

    def __init__(self, message: str, *, actor_id: str, role: str, required_role: Optional[str] = None):
        super().__init__(message)
        self.actor_id = actor_id
        self.role = role
        self.required_role = required_role


class NotFoundError(WorkflowError):
    """No request exists with the given id."""

    code = "not_found"

    def __init__(self, request_id: UUID):
        super().__init__(f"Approval request {request_id} not found")
        self.request_id = request_id


class TerminalStateError(WorkflowError):
    """The request is already REJECTED or DISBURSED."""

    code = "terminal_state"

    def __init__(self, request_id: UUID, status: str):
        super().__init__(f"Approval request {request_id} is {status} and cannot be decided")
        self.request_id = request_id
        self.status = status


class ConflictError(WorkflowError):
    """A concurrent decision advanced the request first.

    Retryable after re-fetching the request.
    """

    code = "conflict"
    retryable = True

    def __init__(self, request_id: UUID, expected_status: str):
        super().__init__(
            f"Approval request {request_id} is no longer {expected_status}; "
            f"re-fetch and retry"
        )
        self.request_id = request_id
        self.expected_status = expected_status


class InadmissibleError(WorkflowError):
    """Admission rules were not met: loan eligibility or withdrawal balance."""

    code = "inadmissible"

    def __init__(self, message: str, reasons: Sequence[str] = ()):
        super().__init__(message)
        self.reasons = list(reasons)


class StoreUnavailableError(WorkflowError):
    """The durable store kept failing after bounded retries."""

    code = "store_unavailable"

    def __init__(self, operation: str, attempts: int):
        super().__init__(f"Store unavailable during {operation} after {attempts} attempts")
        self.operation = operation
        self.attempts = attempts


class PolicyConfigError(WorkflowError):
    """A stage policy table is malformed."""

    code = "policy_config_error"
