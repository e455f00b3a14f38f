"""Approval workflow statuses, request kinds and decisions.

Withdrawal chain (default)::

    PENDING
      │ ACCOUNTANT
    APPROVED_BY_ACCOUNTANT
      │ SUPERVISOR
    APPROVED_BY_SUPERVISOR
      │ MANAGER
    APPROVED_BY_MANAGER
      │ ACCOUNTANT (release of funds)
    DISBURSED

Loan applications pass the credit committee instead of the supervisor.
REJECTED is reachable from every non-terminal status. The concrete chain
per kind lives in the stage policy table, not here.

Status values are plain strings because they are wire-compatible with
existing deployments and the chain itself is configuration.
"""

from enum import Enum
from typing import FrozenSet

from coopflow.core.rbac.permissions import Action, Resource


class RequestKind(str, Enum):
    """Kinds of disbursement request."""

    WITHDRAWAL = "WITHDRAWAL"
    LOAN = "LOAN"

    @property
    def resource(self) -> Resource:
        """RBAC resource decisions on this kind are checked against."""
        return Resource.WITHDRAWALS if self is RequestKind.WITHDRAWAL else Resource.LOANS


class Decision(str, Enum):
    """Outcome an approver records at a stage."""

    APPROVE = "APPROVE"
    REJECT = "REJECT"

    @property
    def action(self) -> Action:
        return Action.APPROVE if self is Decision.APPROVE else Action.REJECT


# Fixed statuses shared by every chain
PENDING = "PENDING"
REJECTED = "REJECTED"
DISBURSED = "DISBURSED"

# Intermediate statuses used by the default chains
APPROVED_BY_ACCOUNTANT = "APPROVED_BY_ACCOUNTANT"
APPROVED_BY_SUPERVISOR = "APPROVED_BY_SUPERVISOR"
APPROVED_BY_COMMITTEE = "APPROVED_BY_COMMITTEE"
APPROVED_BY_MANAGER = "APPROVED_BY_MANAGER"

# Terminal statuses (no further transitions)
TERMINAL_STATUSES: FrozenSet[str] = frozenset({REJECTED, DISBURSED})

RESERVED_STATUSES: FrozenSet[str] = frozenset({PENDING, REJECTED, DISBURSED})


def is_terminal(status: str) -> bool:
    """Check if a status is terminal."""
    return status in TERMINAL_STATUSES
