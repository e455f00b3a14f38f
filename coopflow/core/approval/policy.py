"""Stage policy table: the ordered approval chain for each request kind.

A chain is configured as an ordered list of ``(role, output_status)``
pairs. The first stage consumes PENDING, each later stage consumes the
previous stage's output, and the last stage must produce DISBURSED. Both
request kinds share one state machine parameterized by this table.
"""

from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence, Tuple, Union

from coopflow.common.config import load_config

from .errors import PolicyConfigError
from .states import (
    RequestKind,
    PENDING,
    REJECTED,
    DISBURSED,
    APPROVED_BY_ACCOUNTANT,
    APPROVED_BY_SUPERVISOR,
    APPROVED_BY_COMMITTEE,
    APPROVED_BY_MANAGER,
    RESERVED_STATUSES,
    TERMINAL_STATUSES,
)


class Stage(NamedTuple):
    """One position in an approval chain."""
    ordinal: int               # 1-based position in the chain
    role: str                  # the only role allowed to decide here
    input_status: str          # status a request has while waiting at this stage
    output_status: str         # status produced on approval

    @property
    def is_final(self) -> bool:
        return self.output_status == DISBURSED


DEFAULT_CHAINS: Dict[RequestKind, List[Tuple[str, str]]] = {
    RequestKind.WITHDRAWAL: [
        ("ACCOUNTANT", APPROVED_BY_ACCOUNTANT),
        ("SUPERVISOR", APPROVED_BY_SUPERVISOR),
        ("MANAGER", APPROVED_BY_MANAGER),
        ("ACCOUNTANT", DISBURSED),
    ],
    RequestKind.LOAN: [
        ("ACCOUNTANT", APPROVED_BY_ACCOUNTANT),
        ("COMMITTEE", APPROVED_BY_COMMITTEE),
        ("MANAGER", APPROVED_BY_MANAGER),
        ("ACCOUNTANT", DISBURSED),
    ],
}


class StagePolicy:
    """The approval chain for one request kind."""

    def __init__(
        self,
        kind: RequestKind,
        chain: Sequence[Tuple[str, str]],
        *,
        allow_self_chaining: bool = False,
    ):
        """
        Args:
            kind: Request kind this chain applies to
            chain: Ordered ``(role, output_status)`` pairs
            allow_self_chaining: Whether one actor may decide more than one
                stage of the same request
        """
        self.kind = kind
        self.allow_self_chaining = allow_self_chaining
        self.stages: Tuple[Stage, ...] = self._build_stages(kind, chain)

        # Lookup by the status a request waits in
        self._by_input: Dict[str, Stage] = {s.input_status: s for s in self.stages}
        self._statuses: Tuple[str, ...] = (PENDING,) + tuple(s.output_status for s in self.stages)

    @staticmethod
    def _build_stages(kind: RequestKind, chain: Sequence[Tuple[str, str]]) -> Tuple[Stage, ...]:
        if not chain:
            raise PolicyConfigError(f"{kind.value}: approval chain is empty")

        stages = []
        seen = {PENDING}
        input_status = PENDING
        for index, pair in enumerate(chain):
            try:
                role, output_status = pair
            except (TypeError, ValueError):
                raise PolicyConfigError(
                    f"{kind.value}: stage {index + 1} must be a (role, output_status) pair"
                ) from None

            if not role or not output_status:
                raise PolicyConfigError(f"{kind.value}: stage {index + 1} has an empty role or status")

            is_last = index == len(chain) - 1
            if is_last and output_status != DISBURSED:
                raise PolicyConfigError(f"{kind.value}: last stage must produce {DISBURSED}")
            if not is_last and output_status in RESERVED_STATUSES:
                raise PolicyConfigError(
                    f"{kind.value}: stage {index + 1} cannot produce reserved status {output_status}"
                )
            if output_status in seen:
                raise PolicyConfigError(f"{kind.value}: status {output_status} appears twice")
            seen.add(output_status)

            stages.append(Stage(index + 1, str(role), input_status, str(output_status)))
            input_status = output_status

        return tuple(stages)

    @property
    def initial_status(self) -> str:
        return PENDING

    @property
    def statuses(self) -> Tuple[str, ...]:
        """Chain statuses in order, PENDING through DISBURSED (REJECTED excluded)."""
        return self._statuses

    def is_known_status(self, status: str) -> bool:
        return status in self._statuses or status == REJECTED

    def is_terminal(self, status: str) -> bool:
        return status in TERMINAL_STATUSES

    def stage_for_status(self, status: str) -> Optional[Stage]:
        """Stage a request in ``status`` is waiting at (None when terminal or unknown)."""
        return self._by_input.get(status)

    def stage_by_ordinal(self, ordinal: int) -> Stage:
        return self.stages[ordinal - 1]

    def statuses_for_role(self, role: str) -> List[str]:
        """Statuses in which ``role`` is the one expected to decide."""
        return [s.input_status for s in self.stages if s.role == role]

    def chain(self) -> List[Tuple[str, str]]:
        return [(s.role, s.output_status) for s in self.stages]

    def __repr__(self) -> str:
        roles = " -> ".join(s.role for s in self.stages)
        return f"<StagePolicy {self.kind.value}: {roles}>"


class StagePolicyTable:
    """Maps each request kind to its StagePolicy."""

    def __init__(self, policies: Mapping[RequestKind, StagePolicy]):
        missing = [k.value for k in RequestKind if k not in policies]
        if missing:
            raise PolicyConfigError(f"No approval chain configured for: {', '.join(missing)}")
        self._policies = dict(policies)

    @classmethod
    def default(cls) -> "StagePolicyTable":
        return cls({kind: StagePolicy(kind, chain) for kind, chain in DEFAULT_CHAINS.items()})

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "StagePolicyTable":
        """Build a table from the ``stages`` section of a config mapping.

        Kinds missing from the config fall back to the default chain.
        """
        stages_config = config.get("stages") or {}
        if not isinstance(stages_config, Mapping):
            raise PolicyConfigError("'stages' must be a mapping of kind to chain")

        policies = {}
        for kind in RequestKind:
            entry = stages_config.get(kind.value)
            if entry is None:
                policies[kind] = StagePolicy(kind, DEFAULT_CHAINS[kind])
                continue
            policies[kind] = StagePolicy(
                kind,
                list(_chain_entries(kind, entry)),
                allow_self_chaining=bool(entry.get("allow_self_chaining", False)),
            )

        unknown = set(stages_config) - {k.value for k in RequestKind}
        if unknown:
            raise PolicyConfigError(f"Unknown request kinds in stages: {', '.join(sorted(unknown))}")

        return cls(policies)

    @classmethod
    def load(cls, config_path: str) -> "StagePolicyTable":
        """Load a table from a YAML file."""
        return cls.from_config(load_config(config_path))

    def policy_for(self, kind: Union[RequestKind, str]) -> StagePolicy:
        return self._policies[RequestKind(kind)]

    def __iter__(self):
        return iter(self._policies.values())


def _chain_entries(kind: RequestKind, entry: Any) -> Iterable[Sequence[str]]:
    if not isinstance(entry, Mapping) or not isinstance(entry.get("chain"), list):
        raise PolicyConfigError(f"{kind.value}: expected a mapping with a 'chain' list")
    return entry["chain"]
