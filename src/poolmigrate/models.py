"""
Data models for the pool-allocation migration workflow.

Enums:
    - WorkflowStep: Workflow lifecycle steps and their transition table

Configuration:
    - MigrationConfig: Orchestration settings known at deploy time

Core Models:
    - TransactionReceipt: Confirmation of a mutating registry call
    - PoolEntry: One pool record in a registry
    - MigrationRequest: Working state of one migration run
    - MigrationResult: Summary of a completed migration run
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from eth_typing import ChecksumAddress

UINT256_MAX = 2**256 - 1
"""Largest allocation a registry can store."""

DEFAULT_MASTER_SLOT = 25
"""Legacy pool index that aggregates allocation delegated to the current registry."""


class WorkflowStep(Enum):
    """
    Workflow lifecycle steps.

    State machine transitions:
        IDLE -> VALIDATING -> PROVISIONING -> AWAITING_SETTLEMENT
             -> REBALANCING -> FINALIZING -> COMPLETE
        Any non-terminal step ------------> FAILED

    No transition retries and there are no cycles. COMPLETE and FAILED are
    terminal.
    """

    IDLE = "idle"
    """Request created, nothing checked yet."""

    VALIDATING = "validating"
    """Checking and normalizing the input parameters."""

    PROVISIONING = "provisioning"
    """Creating the new pool in the current registry."""

    AWAITING_SETTLEMENT = "awaiting_settlement"
    """Waiting until the new pool is visible to reads."""

    REBALANCING = "rebalancing"
    """Adding the requested allocation to the legacy master slot."""

    FINALIZING = "finalizing"
    """Writing the final allocation into the new pool."""

    COMPLETE = "complete"
    """Both registries hold the rebalanced allocation."""

    FAILED = "failed"
    """A step failed; later steps were not attempted."""

    @property
    def is_terminal(self) -> bool:
        """True for COMPLETE and FAILED."""
        return self in (WorkflowStep.COMPLETE, WorkflowStep.FAILED)

    def can_transition_to(self, target: WorkflowStep) -> bool:
        """
        Check if transition to target step is valid.

        Args:
            target: The target step to transition to.

        Returns:
            True if the transition is valid.
        """
        if self.is_terminal:
            return False

        if target == WorkflowStep.FAILED:
            return True

        valid_transitions: dict[WorkflowStep, WorkflowStep] = {
            WorkflowStep.IDLE: WorkflowStep.VALIDATING,
            WorkflowStep.VALIDATING: WorkflowStep.PROVISIONING,
            WorkflowStep.PROVISIONING: WorkflowStep.AWAITING_SETTLEMENT,
            WorkflowStep.AWAITING_SETTLEMENT: WorkflowStep.REBALANCING,
            WorkflowStep.REBALANCING: WorkflowStep.FINALIZING,
            WorkflowStep.FINALIZING: WorkflowStep.COMPLETE,
        }

        return valid_transitions.get(self) == target


@dataclass(frozen=True)
class MigrationConfig:
    """
    Orchestration settings for pool migrations.

    Immutable so a run cannot change its own settings halfway through.

    Attributes:
        master_slot: Legacy pool index holding the delegated allocation (default 25).
        auxiliary_distributors: Reward distributors attached to new pools (default none).
        overwrite_distributors: Overwrite flag passed when finalizing (default True).
        verify_settlement: Poll until confirmed writes are readable (default True).
        settlement_timeout_seconds: Poll budget per settlement check (default 60).
        settlement_poll_interval_seconds: Pause between polls (default 1).
        guard_pool_asset: Re-check the staked asset at the inferred index
            before finalizing (default True).
        max_allocation_points: Upper bound for recomputed allocations
            (default 2**256 - 1).

    Example:
        >>> config = MigrationConfig(master_slot=3, verify_settlement=False)
        >>> config.master_slot
        3
    """

    master_slot: int = DEFAULT_MASTER_SLOT
    auxiliary_distributors: tuple[ChecksumAddress, ...] = ()
    overwrite_distributors: bool = True
    verify_settlement: bool = True
    settlement_timeout_seconds: float = 60.0
    settlement_poll_interval_seconds: float = 1.0
    guard_pool_asset: bool = True
    max_allocation_points: int = UINT256_MAX

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.master_slot < 0:
            raise ValueError(f"master_slot must be >= 0, got {self.master_slot}")

        if self.settlement_timeout_seconds <= 0:
            raise ValueError(
                f"settlement_timeout_seconds must be > 0, got {self.settlement_timeout_seconds}"
            )

        if self.settlement_poll_interval_seconds <= 0:
            raise ValueError(
                "settlement_poll_interval_seconds must be > 0, "
                f"got {self.settlement_poll_interval_seconds}"
            )

        if not 0 < self.max_allocation_points <= UINT256_MAX:
            raise ValueError(
                "max_allocation_points must be in (0, 2**256 - 1], "
                f"got {self.max_allocation_points}"
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging and journaling."""
        return {
            "master_slot": self.master_slot,
            "auxiliary_distributors": list(self.auxiliary_distributors),
            "overwrite_distributors": self.overwrite_distributors,
            "verify_settlement": self.verify_settlement,
            "settlement_timeout_seconds": self.settlement_timeout_seconds,
            "settlement_poll_interval_seconds": self.settlement_poll_interval_seconds,
            "guard_pool_asset": self.guard_pool_asset,
            "max_allocation_points": self.max_allocation_points,
        }


@dataclass(frozen=True)
class TransactionReceipt:
    """
    Confirmation of a mutating registry call.

    Attributes:
        tx_hash: 0x-prefixed transaction hash.
        status: 1 when the transaction succeeded, 0 when it reverted.
        block_number: Block that included the transaction, if known.
        gas_used: Gas consumed, if known.
    """

    tx_hash: str
    status: int = 1
    block_number: int | None = None
    gas_used: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "tx_hash": self.tx_hash,
            "status": self.status,
            "block_number": self.block_number,
            "gas_used": self.gas_used,
        }


@dataclass(frozen=True)
class PoolEntry:
    """
    One pool record in a registry.

    Attributes:
        index: Position of the pool in its registry; immutable.
        staked_asset: Address of the asset staked in the pool.
        allocation_points: Share of the periodic reward budget.
        auxiliary_distributors: Extra reward distributors, in order.
    """

    index: int
    staked_asset: ChecksumAddress
    allocation_points: int = 0
    auxiliary_distributors: tuple[ChecksumAddress, ...] = ()


@dataclass
class MigrationRequest:
    """
    Working state of one migration run.

    Created fresh per invocation and discarded once the run reaches a
    terminal step. Fields below the inputs are populated as the steps
    complete.

    Attributes:
        requested_allocation_points: Allocation for the new pool.
        staked_asset: Checksummed address of the staked asset.
        mass_update: Whether mutations mass-update all pools.
        settlement_delay_seconds: Fixed wait after provisioning.
        auxiliary_distributors: Distributors attached to the new pool.
        id: Identifier of this run.
        step: Current workflow step.
        expected_pool_index: Pool count observed before provisioning.
        assigned_pool_index: Index the finalizer wrote to.
        previous_legacy_allocation: Master-slot allocation before rebalancing.
        recomputed_legacy_allocation: Master-slot allocation after rebalancing.
        receipts: Confirmed receipts keyed by step value.
        started_at: When the run started.
        completed_at: When the run reached a terminal step.
        error: Error code of the failure, if the run failed.
    """

    requested_allocation_points: int
    staked_asset: ChecksumAddress
    mass_update: bool
    settlement_delay_seconds: int
    auxiliary_distributors: tuple[ChecksumAddress, ...] = ()
    id: UUID = field(default_factory=uuid4)
    step: WorkflowStep = WorkflowStep.IDLE
    expected_pool_index: int | None = None
    assigned_pool_index: int | None = None
    previous_legacy_allocation: int | None = None
    recomputed_legacy_allocation: int | None = None
    receipts: dict[str, TransactionReceipt] = field(default_factory=dict)
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None
    error: str | None = None

    def snapshot(self) -> dict[str, Any]:
        """
        Values an operator needs to reconcile a partial run.

        Returns:
            Dictionary of the request's inputs and computed values.
        """
        return {
            "migration_id": str(self.id),
            "step": self.step.value,
            "staked_asset": self.staked_asset,
            "requested_allocation_points": self.requested_allocation_points,
            "mass_update": self.mass_update,
            "settlement_delay_seconds": self.settlement_delay_seconds,
            "expected_pool_index": self.expected_pool_index,
            "assigned_pool_index": self.assigned_pool_index,
            "previous_legacy_allocation": self.previous_legacy_allocation,
            "recomputed_legacy_allocation": self.recomputed_legacy_allocation,
            "receipts": {step: r.tx_hash for step, r in self.receipts.items()},
        }


@dataclass(frozen=True)
class MigrationResult:
    """
    Summary of a completed migration run.

    Attributes:
        migration_id: Identifier of the run.
        staked_asset: Staked asset of the new pool.
        pool_index: Index of the finalized pool.
        allocation_points: Allocation written into the new pool.
        previous_legacy_allocation: Master-slot allocation before the run,
            None when finalization was resumed from a marker.
        legacy_allocation: Master-slot allocation after the run.
        receipts: Receipts of the mutating steps, keyed by step value.
        duration_seconds: Wall-clock duration of the run.
        resumed: True when produced by resume_finalize().
    """

    migration_id: UUID
    staked_asset: ChecksumAddress
    pool_index: int
    allocation_points: int
    previous_legacy_allocation: int | None
    legacy_allocation: int
    receipts: dict[str, TransactionReceipt]
    duration_seconds: float
    resumed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "migration_id": str(self.migration_id),
            "staked_asset": self.staked_asset,
            "pool_index": self.pool_index,
            "allocation_points": self.allocation_points,
            "previous_legacy_allocation": self.previous_legacy_allocation,
            "legacy_allocation": self.legacy_allocation,
            "receipts": {step: r.to_dict() for step, r in self.receipts.items()},
            "duration_seconds": self.duration_seconds,
            "resumed": self.resumed,
        }


__all__ = [
    "UINT256_MAX",
    "DEFAULT_MASTER_SLOT",
    "WorkflowStep",
    "MigrationConfig",
    "TransactionReceipt",
    "PoolEntry",
    "MigrationRequest",
    "MigrationResult",
]
