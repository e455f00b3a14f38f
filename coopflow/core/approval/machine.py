"""Approval state machine implementation.

Pure decision logic over a StagePolicy: stage resolution, terminal check,
the role authorization gate, the self-chaining rule and the remarks rule.
It performs no I/O; persistence is the service's job.
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Union
from uuid import UUID

from coopflow.core.rbac.checker import ActorContext

from .errors import TerminalStateError, UnauthorizedError, ValidationError
from .policy import Stage, StagePolicy
from .records import ApprovalLogEntry, StageInfo
from .states import Decision, REJECTED, TERMINAL_STATUSES


@dataclass(frozen=True)
class Transition:
    """A validated, not yet persisted, decision."""
    stage: Stage
    decision: Decision
    from_status: str
    to_status: str
    actor_id: str
    remarks: Optional[str]


def coerce_decision(decision: Union[Decision, str]) -> Decision:
    try:
        return Decision(decision.upper() if isinstance(decision, str) else decision)
    except ValueError:
        raise ValidationError(f"Unknown decision: {decision}", field="decision") from None


class ApprovalStateMachine:
    """
    State machine for one approval request.

    Given the request's current status and its prior decisions, decides
    whether an actor may record a decision and what the resulting status is.
    """

    def __init__(
        self,
        policy: StagePolicy,
        current_status: str,
        *,
        request_id: Optional[UUID] = None,
        prior_decisions: Sequence[ApprovalLogEntry] = (),
    ):
        """
        Args:
            policy: Stage policy for the request's kind
            current_status: Status currently stored on the request
            request_id: Request id, used in error messages
            prior_decisions: Decision log of the request so far
        """
        if not policy.is_known_status(current_status):
            raise ValidationError(
                f"Status {current_status} is not part of the {policy.kind.value} chain",
                field="status",
            )
        self.policy = policy
        self.request_id = request_id
        self._status = current_status
        self._prior = list(prior_decisions)

    @property
    def status(self) -> str:
        return self._status

    @property
    def is_terminal(self) -> bool:
        return self._status in TERMINAL_STATUSES

    @property
    def current_stage(self) -> Optional[Stage]:
        """The stage the request waits at, or None when terminal."""
        return self.policy.stage_for_status(self._status)

    def stage_info(self) -> StageInfo:
        stage = self.current_stage
        return StageInfo(
            status=self._status,
            role=stage.role if stage else None,
            ordinal=stage.ordinal if stage else None,
            is_terminal=self.is_terminal,
        )

    def authorize(self, actor: ActorContext, decision: Decision) -> Stage:
        """Check that ``actor`` may record ``decision`` now.

        Returns:
            The stage being decided

        Raises:
            TerminalStateError: If the request is REJECTED or DISBURSED
            UnauthorizedError: If the actor's role is not the stage's role,
                lacks the grant, or already decided an earlier stage
        """
        if self.is_terminal:
            raise TerminalStateError(self.request_id, self._status)

        stage = self.current_stage
        if stage is None:
            # Known but unreachable status; treat as a broken chain
            raise ValidationError(f"No stage consumes status {self._status}", field="status")

        if actor.role != stage.role:
            raise UnauthorizedError(
                f"Stage {stage.ordinal} ({stage.input_status}) requires role {stage.role}, "
                f"actor has {actor.role}",
                actor_id=actor.actor_id,
                role=actor.role,
                required_role=stage.role,
            )

        resource = self.policy.kind.resource
        if not actor.can(resource, decision.action):
            raise UnauthorizedError(
                f"Role {actor.role} is not granted {resource.value}:{decision.action.value}",
                actor_id=actor.actor_id,
                role=actor.role,
                required_role=stage.role,
            )

        if not self.policy.allow_self_chaining:
            earlier = [e for e in self._prior if e.actor_id == actor.actor_id]
            if earlier:
                raise UnauthorizedError(
                    f"Actor {actor.actor_id} already decided stage {earlier[0].stage_ordinal} "
                    f"of this request",
                    actor_id=actor.actor_id,
                    role=actor.role,
                    required_role=stage.role,
                )

        return stage

    def plan(
        self,
        actor: ActorContext,
        decision: Union[Decision, str],
        remarks: Optional[str] = None,
    ) -> Transition:
        """Validate a decision and compute its transition.

        Raises:
            TerminalStateError, UnauthorizedError, ValidationError
        """
        decision = coerce_decision(decision)
        stage = self.authorize(actor, decision)

        remarks = remarks.strip() if remarks else None
        if decision is Decision.REJECT:
            if not remarks:
                raise ValidationError("Remarks are required when rejecting", field="remarks")
            to_status = REJECTED
        else:
            to_status = stage.output_status

        return Transition(
            stage=stage,
            decision=decision,
            from_status=self._status,
            to_status=to_status,
            actor_id=actor.actor_id,
            remarks=remarks or None,
        )

    def apply(self, transition: Transition) -> str:
        """Advance the in-memory status after the transition was persisted."""
        if transition.from_status != self._status:
            raise ValidationError(
                f"Transition from {transition.from_status} does not match status {self._status}"
            )
        self._status = transition.to_status
        return self._status
