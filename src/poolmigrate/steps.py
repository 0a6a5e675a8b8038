"""
Remote-mutating steps of the pool migration workflow.

- PoolProvisioner: appends a zero-allocation pool to the current registry.
- AllocationRebalancer: adds the requested allocation to the legacy
  registry's master slot.
- PoolFinalizer: writes the requested allocation into the new pool.

Each step awaits transaction confirmation before returning and records its
results on the MigrationRequest it was given. Steps never catch errors from
the registries; the coordinator decides what a failure means for the run.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from poolmigrate.exceptions import (
    AllocationOverflowError,
    PoolIndexMismatchError,
    PoolMigrationError,
    ReadFailureError,
    TransactionRevertedError,
)
from poolmigrate.models import MigrationConfig, MigrationRequest, TransactionReceipt, WorkflowStep
from poolmigrate.observability import (
    ATTR_ALLOCATION_POINTS,
    ATTR_MIGRATION_ID,
    ATTR_POOL_INDEX,
    ATTR_STAKED_ASSET,
    Tracer,
    create_tracer,
)
from poolmigrate.registries.interface import (
    CURRENT_REGISTRY,
    LEGACY_REGISTRY,
    CurrentRegistry,
    LegacyRegistry,
)
from poolmigrate.settlement import SettlementWaiter

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def read_registry(
    read: Callable[[], Awaitable[T]],
    *,
    operation: str,
    registry: str,
) -> T:
    """
    Run a registry query, reporting any non-workflow failure as ReadFailureError.

    Args:
        read: Zero-argument coroutine function performing the query.
        operation: Query name, for the error.
        registry: Registry name, for the error.
    """
    try:
        return await read()
    except PoolMigrationError:
        raise
    except Exception as e:
        raise ReadFailureError(operation, registry=registry, reason=str(e)) from e


def require_success(receipt: TransactionReceipt, *, operation: str, registry: str) -> None:
    """Raise TransactionRevertedError if the receipt reports failure."""
    if not receipt.succeeded:
        raise TransactionRevertedError(
            operation,
            registry=registry,
            tx_hash=receipt.tx_hash,
            reason="receipt status 0",
        )


class PoolProvisioner:
    """
    Creates the new pool entry in the current registry.

    The pool is created with zero allocation; the finalizer sets the real
    value once the legacy registry has been rebalanced.
    """

    def __init__(
        self,
        current: CurrentRegistry,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._current = current

    async def provision(self, request: MigrationRequest) -> TransactionReceipt:
        """
        Create the pool and wait for confirmation.

        Records the pool count seen before creation as
        ``request.expected_pool_index``.

        Returns:
            The confirmed receipt.

        Raises:
            ReadFailureError: If the pool count cannot be read.
            TransactionRevertedError: If creation reverts.
        """
        with self._tracer.span(
            "poolmigrate.provisioner.provision",
            {
                ATTR_MIGRATION_ID: str(request.id),
                ATTR_STAKED_ASSET: request.staked_asset,
            },
        ):
            request.expected_pool_index = await read_registry(
                self._current.pool_count, operation="pool_count", registry=CURRENT_REGISTRY
            )

            logger.info(
                "Adding pool for %s to current registry (expected index %d, mass_update=%s)",
                request.staked_asset,
                request.expected_pool_index,
                request.mass_update,
            )
            receipt = await self._current.create_pool(
                request.staked_asset,
                request.auxiliary_distributors,
                request.mass_update,
            )
            require_success(receipt, operation="create_pool", registry=CURRENT_REGISTRY)

            request.receipts[WorkflowStep.PROVISIONING.value] = receipt
            return receipt


class AllocationRebalancer:
    """
    Adds the requested allocation to the legacy registry's master slot.

    The new value is additive: whatever the master slot holds at read time
    plus the requested allocation. The current registry is never touched.
    """

    def __init__(
        self,
        legacy: LegacyRegistry,
        config: MigrationConfig,
        waiter: SettlementWaiter,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._legacy = legacy
        self._config = config
        self._waiter = waiter

    def recompute(self, current_allocation: int, requested_allocation: int) -> int:
        """
        Exact integer sum of the two allocations.

        Raises:
            AllocationOverflowError: If the sum exceeds max_allocation_points.
        """
        new_allocation = current_allocation + requested_allocation
        if new_allocation > self._config.max_allocation_points:
            raise AllocationOverflowError(
                current_allocation,
                requested_allocation,
                self._config.max_allocation_points,
            )
        return new_allocation

    async def rebalance(self, request: MigrationRequest) -> int:
        """
        Read, recompute and write the master-slot allocation.

        Returns:
            The allocation written to the master slot.

        Raises:
            ReadFailureError: If the master slot cannot be read.
            AllocationOverflowError: If the sum is out of range.
            TransactionRevertedError: If the write reverts.
            SettlementTimeoutError: If the written value never becomes readable.
        """
        slot = self._config.master_slot
        with self._tracer.span(
            "poolmigrate.rebalancer.rebalance",
            {ATTR_MIGRATION_ID: str(request.id), ATTR_POOL_INDEX: slot},
        ) as span:
            current_allocation = await read_registry(
                lambda: self._legacy.allocation_at(slot),
                operation="allocation_at",
                registry=LEGACY_REGISTRY,
            )
            request.previous_legacy_allocation = current_allocation

            new_allocation = self.recompute(current_allocation, request.requested_allocation_points)
            if span is not None:
                span.set_attribute(ATTR_ALLOCATION_POINTS, new_allocation)

            logger.info(
                "Adjusting legacy master slot %d allocation: %d + %d = %d",
                slot,
                current_allocation,
                request.requested_allocation_points,
                new_allocation,
            )
            receipt = await self._legacy.set_allocation(slot, new_allocation)
            require_success(receipt, operation="set_allocation", registry=LEGACY_REGISTRY)

            request.recomputed_legacy_allocation = new_allocation
            request.receipts[WorkflowStep.REBALANCING.value] = receipt

            await self._waiter.wait_until(
                lambda: self._legacy.allocation_at(slot),
                lambda observed: observed == new_allocation,
                description=f"legacy slot {slot} allocation == {new_allocation}",
                registry=LEGACY_REGISTRY,
            )
            return new_allocation


class PoolFinalizer:
    """
    Writes the requested allocation into the newly created pool.

    The new pool's index is inferred as ``pool_count() - 1``. Because another
    writer could have appended a pool since provisioning, the staked asset
    stored at that index is compared with the expected one before anything
    is written (when ``guard_pool_asset`` is enabled).
    """

    def __init__(
        self,
        current: CurrentRegistry,
        config: MigrationConfig,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._current = current
        self._config = config

    async def infer_pool_index(self, request: MigrationRequest) -> int:
        """
        Index of the most recently appended pool.

        Raises:
            ReadFailureError: If the pool count cannot be read.
            PoolIndexMismatchError: If the registry holds no pools at all.
        """
        count = await read_registry(
            self._current.pool_count, operation="pool_count", registry=CURRENT_REGISTRY
        )
        if count < 1:
            raise PoolIndexMismatchError(
                "Current registry reports no pools; the new pool is not visible",
                expected_asset=request.staked_asset,
            )

        index = count - 1
        if request.expected_pool_index is not None and index != request.expected_pool_index:
            logger.warning(
                "Inferred pool index %d differs from index %d expected at creation; "
                "another writer may have added pools",
                index,
                request.expected_pool_index,
            )
        return index

    async def verify_pool_asset(self, request: MigrationRequest, index: int) -> None:
        """
        Check that the pool at ``index`` stakes the request's asset.

        Raises:
            PoolIndexMismatchError: If it stakes a different asset.
        """
        observed = await read_registry(
            lambda: self._current.staked_asset_at(index),
            operation="staked_asset_at",
            registry=CURRENT_REGISTRY,
        )
        if observed.lower() != request.staked_asset.lower():
            raise PoolIndexMismatchError(
                f"Pool {index} stakes {observed}, expected {request.staked_asset}",
                pool_index=index,
                expected_asset=request.staked_asset,
                observed_asset=observed,
            )

    async def finalize(
        self,
        request: MigrationRequest,
        pool_index: int | None = None,
    ) -> TransactionReceipt:
        """
        Set the new pool's allocation and wait for confirmation.

        Args:
            request: The migration run.
            pool_index: Known pool index; inferred from the pool count when None.

        Returns:
            The confirmed receipt.

        Raises:
            ReadFailureError: If a guard read fails.
            PoolIndexMismatchError: If the index does not point at the new pool.
            TransactionRevertedError: If the write reverts.
        """
        with self._tracer.span(
            "poolmigrate.finalizer.finalize",
            {ATTR_MIGRATION_ID: str(request.id), ATTR_STAKED_ASSET: request.staked_asset},
        ) as span:
            index = pool_index if pool_index is not None else await self.infer_pool_index(request)
            if span is not None:
                span.set_attribute(ATTR_POOL_INDEX, index)

            if self._config.guard_pool_asset:
                await self.verify_pool_asset(request, index)

            request.assigned_pool_index = index

            logger.info(
                "Setting current pool %d allocation to %d (overwrite=%s, mass_update=%s)",
                index,
                request.requested_allocation_points,
                self._config.overwrite_distributors,
                request.mass_update,
            )
            receipt = await self._current.set_pool(
                index,
                request.requested_allocation_points,
                request.auxiliary_distributors,
                self._config.overwrite_distributors,
                request.mass_update,
            )
            require_success(receipt, operation="set_pool", registry=CURRENT_REGISTRY)

            request.receipts[WorkflowStep.FINALIZING.value] = receipt
            return receipt


__all__ = [
    "read_registry",
    "require_success",
    "PoolProvisioner",
    "AllocationRebalancer",
    "PoolFinalizer",
]
