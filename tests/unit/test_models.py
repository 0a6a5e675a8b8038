"""
Unit tests for workflow data models.

Tests cover:
- WorkflowStep transition table and terminal steps
- MigrationConfig validation and serialization
- TransactionReceipt status handling
- MigrationRequest snapshots and MigrationResult serialization
"""

from uuid import uuid4

import pytest

from poolmigrate.models import (
    DEFAULT_MASTER_SLOT,
    UINT256_MAX,
    MigrationConfig,
    MigrationRequest,
    MigrationResult,
    TransactionReceipt,
    WorkflowStep,
)
from tests.fixtures import DISTRIBUTOR, STAKED_ASSET

FORWARD_PATH = [
    WorkflowStep.IDLE,
    WorkflowStep.VALIDATING,
    WorkflowStep.PROVISIONING,
    WorkflowStep.AWAITING_SETTLEMENT,
    WorkflowStep.REBALANCING,
    WorkflowStep.FINALIZING,
    WorkflowStep.COMPLETE,
]


class TestWorkflowStep:
    """Tests for the WorkflowStep state machine."""

    def test_forward_path_is_valid(self):
        for current, target in zip(FORWARD_PATH, FORWARD_PATH[1:], strict=False):
            assert current.can_transition_to(target), f"{current} -> {target}"

    def test_steps_cannot_be_skipped(self):
        assert not WorkflowStep.PROVISIONING.can_transition_to(WorkflowStep.REBALANCING)
        assert not WorkflowStep.IDLE.can_transition_to(WorkflowStep.FINALIZING)
        assert not WorkflowStep.REBALANCING.can_transition_to(WorkflowStep.COMPLETE)

    def test_no_backward_transitions(self):
        assert not WorkflowStep.REBALANCING.can_transition_to(WorkflowStep.PROVISIONING)
        assert not WorkflowStep.FINALIZING.can_transition_to(WorkflowStep.FINALIZING)

    @pytest.mark.parametrize("step", FORWARD_PATH[:-1])
    def test_every_non_terminal_step_can_fail(self, step):
        assert step.can_transition_to(WorkflowStep.FAILED)

    @pytest.mark.parametrize("step", [WorkflowStep.COMPLETE, WorkflowStep.FAILED])
    def test_terminal_steps_are_absorbing(self, step):
        assert step.is_terminal
        for target in WorkflowStep:
            assert not step.can_transition_to(target)


class TestMigrationConfig:
    """Tests for MigrationConfig."""

    def test_defaults(self):
        config = MigrationConfig()

        assert config.master_slot == DEFAULT_MASTER_SLOT == 25
        assert config.overwrite_distributors is True
        assert config.verify_settlement is True
        assert config.guard_pool_asset is True
        assert config.max_allocation_points == UINT256_MAX

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"master_slot": -1},
            {"settlement_timeout_seconds": 0},
            {"settlement_poll_interval_seconds": -0.5},
            {"max_allocation_points": 0},
            {"max_allocation_points": UINT256_MAX + 1},
        ],
    )
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(ValueError):
            MigrationConfig(**kwargs)

    def test_is_frozen(self):
        config = MigrationConfig()
        with pytest.raises(AttributeError):
            config.master_slot = 3  # type: ignore[misc]

    def test_to_dict(self):
        config = MigrationConfig(master_slot=3, auxiliary_distributors=(DISTRIBUTOR,))

        data = config.to_dict()

        assert data["master_slot"] == 3
        assert data["auxiliary_distributors"] == [DISTRIBUTOR]
        assert data["max_allocation_points"] == UINT256_MAX


class TestTransactionReceipt:
    def test_status_one_succeeded(self):
        assert TransactionReceipt(tx_hash="0xabc").succeeded

    def test_status_zero_failed(self):
        receipt = TransactionReceipt(tx_hash="0xabc", status=0, block_number=7, gas_used=21000)

        assert not receipt.succeeded
        assert receipt.to_dict() == {
            "tx_hash": "0xabc",
            "status": 0,
            "block_number": 7,
            "gas_used": 21000,
        }


class TestMigrationRequest:
    """Tests for MigrationRequest."""

    def test_new_request_is_idle(self):
        request = MigrationRequest(
            requested_allocation_points=250,
            staked_asset=STAKED_ASSET,
            mass_update=False,
            settlement_delay_seconds=5,
        )

        assert request.step == WorkflowStep.IDLE
        assert request.assigned_pool_index is None
        assert request.recomputed_legacy_allocation is None
        assert request.receipts == {}

    def test_requests_get_distinct_ids(self):
        first = MigrationRequest(250, STAKED_ASSET, False, 0)
        second = MigrationRequest(250, STAKED_ASSET, False, 0)

        assert first.id != second.id

    def test_snapshot_includes_computed_values(self):
        request = MigrationRequest(250, STAKED_ASSET, True, 5)
        request.step = WorkflowStep.FINALIZING
        request.expected_pool_index = 3
        request.previous_legacy_allocation = 1000
        request.recomputed_legacy_allocation = 1250
        request.receipts["rebalancing"] = TransactionReceipt(tx_hash="0xbeef")

        snapshot = request.snapshot()

        assert snapshot["migration_id"] == str(request.id)
        assert snapshot["step"] == "finalizing"
        assert snapshot["expected_pool_index"] == 3
        assert snapshot["previous_legacy_allocation"] == 1000
        assert snapshot["recomputed_legacy_allocation"] == 1250
        assert snapshot["receipts"] == {"rebalancing": "0xbeef"}


class TestMigrationResult:
    def test_to_dict(self):
        migration_id = uuid4()
        result = MigrationResult(
            migration_id=migration_id,
            staked_asset=STAKED_ASSET,
            pool_index=3,
            allocation_points=250,
            previous_legacy_allocation=1000,
            legacy_allocation=1250,
            receipts={"finalizing": TransactionReceipt(tx_hash="0x01")},
            duration_seconds=1.5,
        )

        data = result.to_dict()

        assert data["migration_id"] == str(migration_id)
        assert data["pool_index"] == 3
        assert data["legacy_allocation"] == 1250
        assert data["receipts"]["finalizing"]["tx_hash"] == "0x01"
        assert data["resumed"] is False
