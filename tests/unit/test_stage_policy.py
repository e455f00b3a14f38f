"""Tests for the stage policy table."""

import pytest
import yaml

from coopflow.core.approval.errors import PolicyConfigError
from coopflow.core.approval.policy import DEFAULT_CHAINS, Stage, StagePolicy, StagePolicyTable
from coopflow.core.approval.states import (
    RequestKind,
    PENDING,
    REJECTED,
    DISBURSED,
    APPROVED_BY_ACCOUNTANT,
    APPROVED_BY_SUPERVISOR,
    APPROVED_BY_COMMITTEE,
    APPROVED_BY_MANAGER,
)


class TestDefaultChains:
    """Test the built-in approval chains."""

    def test_withdrawal_chain(self):
        policy = StagePolicyTable.default().policy_for(RequestKind.WITHDRAWAL)

        assert [s.role for s in policy.stages] == ["ACCOUNTANT", "SUPERVISOR", "MANAGER", "ACCOUNTANT"]
        assert policy.statuses == (
            PENDING,
            APPROVED_BY_ACCOUNTANT,
            APPROVED_BY_SUPERVISOR,
            APPROVED_BY_MANAGER,
            DISBURSED,
        )

    def test_loan_chain_goes_through_committee(self):
        policy = StagePolicyTable.default().policy_for("LOAN")

        assert [s.role for s in policy.stages] == ["ACCOUNTANT", "COMMITTEE", "MANAGER", "ACCOUNTANT"]
        assert policy.stage_for_status(APPROVED_BY_ACCOUNTANT).output_status == APPROVED_BY_COMMITTEE

    def test_stages_are_linked(self):
        """Each stage consumes the previous stage's output."""
        for kind in RequestKind:
            stages = StagePolicyTable.default().policy_for(kind).stages
            assert stages[0].input_status == PENDING
            for prev, cur in zip(stages, stages[1:]):
                assert cur.input_status == prev.output_status
            assert stages[-1].output_status == DISBURSED
            assert stages[-1].is_final

    def test_ordinals_are_one_based(self):
        policy = StagePolicyTable.default().policy_for(RequestKind.WITHDRAWAL)
        assert [s.ordinal for s in policy.stages] == [1, 2, 3, 4]
        assert policy.stage_by_ordinal(1) == Stage(1, "ACCOUNTANT", PENDING, APPROVED_BY_ACCOUNTANT)

    def test_self_chaining_disabled_by_default(self):
        for policy in StagePolicyTable.default():
            assert policy.allow_self_chaining is False


class TestStageLookup:
    """Test stage resolution by status and role."""

    def test_terminal_statuses_have_no_stage(self):
        policy = StagePolicyTable.default().policy_for(RequestKind.WITHDRAWAL)
        assert policy.stage_for_status(DISBURSED) is None
        assert policy.stage_for_status(REJECTED) is None

    def test_known_statuses(self):
        policy = StagePolicyTable.default().policy_for(RequestKind.WITHDRAWAL)
        assert policy.is_known_status(REJECTED)
        assert policy.is_known_status(APPROVED_BY_SUPERVISOR)
        assert not policy.is_known_status(APPROVED_BY_COMMITTEE)

    def test_statuses_for_role(self):
        policy = StagePolicyTable.default().policy_for(RequestKind.WITHDRAWAL)
        assert policy.statuses_for_role("ACCOUNTANT") == [PENDING, APPROVED_BY_MANAGER]
        assert policy.statuses_for_role("SUPERVISOR") == [APPROVED_BY_ACCOUNTANT]
        assert policy.statuses_for_role("MEMBER") == []


class TestChainValidation:
    """Test rejection of malformed chains."""

    def test_empty_chain(self):
        with pytest.raises(PolicyConfigError):
            StagePolicy(RequestKind.WITHDRAWAL, [])

    def test_last_stage_must_disburse(self):
        with pytest.raises(PolicyConfigError, match="DISBURSED"):
            StagePolicy(RequestKind.WITHDRAWAL, [("ACCOUNTANT", APPROVED_BY_ACCOUNTANT)])

    def test_reserved_status_mid_chain(self):
        with pytest.raises(PolicyConfigError, match="reserved"):
            StagePolicy(RequestKind.WITHDRAWAL, [("ACCOUNTANT", REJECTED), ("MANAGER", DISBURSED)])

    def test_duplicate_status(self):
        chain = [
            ("ACCOUNTANT", APPROVED_BY_ACCOUNTANT),
            ("SUPERVISOR", APPROVED_BY_ACCOUNTANT),
            ("MANAGER", DISBURSED),
        ]
        with pytest.raises(PolicyConfigError, match="twice"):
            StagePolicy(RequestKind.WITHDRAWAL, chain)

    def test_malformed_pair(self):
        with pytest.raises(PolicyConfigError):
            StagePolicy(RequestKind.WITHDRAWAL, [("ACCOUNTANT",), ("MANAGER", DISBURSED)])

    def test_empty_role(self):
        with pytest.raises(PolicyConfigError):
            StagePolicy(RequestKind.WITHDRAWAL, [("", DISBURSED)])

    def test_table_requires_every_kind(self):
        policy = StagePolicy(RequestKind.WITHDRAWAL, DEFAULT_CHAINS[RequestKind.WITHDRAWAL])
        with pytest.raises(PolicyConfigError, match="LOAN"):
            StagePolicyTable({RequestKind.WITHDRAWAL: policy})


class TestPolicyConfig:
    """Test building the table from configuration."""

    def test_from_config(self, sample_config):
        table = StagePolicyTable.from_config(sample_config)

        withdrawal = table.policy_for(RequestKind.WITHDRAWAL)
        assert withdrawal.chain() == [("ACCOUNTANT", APPROVED_BY_ACCOUNTANT), ("MANAGER", DISBURSED)]
        assert withdrawal.allow_self_chaining is False
        assert table.policy_for(RequestKind.LOAN).allow_self_chaining is True

    def test_missing_kind_uses_default(self):
        table = StagePolicyTable.from_config({"stages": {}})
        loan = table.policy_for(RequestKind.LOAN)
        assert loan.chain() == DEFAULT_CHAINS[RequestKind.LOAN]

    def test_unknown_kind(self):
        config = {"stages": {"MORTGAGE": {"chain": [["MANAGER", "DISBURSED"]]}}}
        with pytest.raises(PolicyConfigError, match="MORTGAGE"):
            StagePolicyTable.from_config(config)

    def test_chain_must_be_list(self):
        with pytest.raises(PolicyConfigError):
            StagePolicyTable.from_config({"stages": {"LOAN": {"chain": "ACCOUNTANT"}}})

    def test_load_from_yaml(self, tmp_path, sample_config):
        path = tmp_path / "workflow.yaml"
        path.write_text(yaml.safe_dump(sample_config))

        table = StagePolicyTable.load(str(path))
        assert len(table.policy_for(RequestKind.WITHDRAWAL).stages) == 2
