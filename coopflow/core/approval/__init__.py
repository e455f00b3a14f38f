"""Approval workflow engine: stage policies, state machine, store and service."""

from .states import (
    RequestKind,
    Decision,
    PENDING,
    REJECTED,
    DISBURSED,
    TERMINAL_STATUSES,
    is_terminal,
)
from .errors import (
    WorkflowError,
    ValidationError,
    UnauthorizedError,
    NotFoundError,
    TerminalStateError,
    ConflictError,
    InadmissibleError,
    StoreUnavailableError,
    PolicyConfigError,
)
from .records import ApprovalRequestRecord, ApprovalLogEntry, StageInfo
from .policy import Stage, StagePolicy, StagePolicyTable, DEFAULT_CHAINS
from .machine import ApprovalStateMachine, Transition
from .store import RequestStore
from .audit import AuditTrail
from .service import ApprovalService, ApprovalHistory, parse_amount

__all__ = [
    "RequestKind",
    "Decision",
    "PENDING",
    "REJECTED",
    "DISBURSED",
    "TERMINAL_STATUSES",
    "is_terminal",
    "WorkflowError",
    "ValidationError",
    "UnauthorizedError",
    "NotFoundError",
    "TerminalStateError",
    "ConflictError",
    "InadmissibleError",
    "StoreUnavailableError",
    "PolicyConfigError",
    "ApprovalRequestRecord",
    "ApprovalLogEntry",
    "StageInfo",
    "Stage",
    "StagePolicy",
    "StagePolicyTable",
    "DEFAULT_CHAINS",
    "ApprovalStateMachine",
    "Transition",
    "RequestStore",
    "AuditTrail",
    "ApprovalService",
    "ApprovalHistory",
    "parse_amount",
]
