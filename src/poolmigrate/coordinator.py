"""
PoolMigrationCoordinator - Orchestrates the add-pool migration.

The coordinator is the entry point of the workflow. It runs the five steps
strictly in order against the legacy and the current registry:

    1. Validate and normalize the input (no I/O)
    2. Create the new pool in the current registry with zero allocation
    3. Wait for the new pool to become visible to reads
    4. Add the requested allocation to the legacy master slot
    5. Write the requested allocation into the new pool

Between steps 2 and 5 the registries disagree: a pool exists in the current
registry with no allocation while the legacy master slot has not yet been
rebalanced, or has been rebalanced and the new pool not yet finalized. Every
step appends to the migration journal, so a stopped run can be reconciled.
When step 5 cannot complete after the legacy registry was rebalanced, a
pending-finalize marker is recorded and ``resume_finalize`` can finish the
run later without touching the legacy registry again.

Usage:
    >>> from poolmigrate import PoolMigrationCoordinator
    >>>
    >>> coordinator = PoolMigrationCoordinator(current, legacy, MigrationConfig())
    >>> result = await coordinator.run(
    ...     requested_allocation_points=250,
    ...     staked_asset="0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed",
    ...     mass_update=False,
    ...     settlement_delay_seconds=5,
    ... )
    >>> print(f"Pool {result.pool_index} finalized with {result.allocation_points}")
    >>>
    >>> # After a failed finalization
    >>> for marker in await coordinator.list_pending():
    ...     await coordinator.resume_finalize(marker.migration_id)
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from poolmigrate.events import (
    FinalizeResumed,
    JournalEvent,
    LegacyAllocationUpdated,
    MigrationFailed,
    MigrationStarted,
    PendingFinalize,
    PoolFinalized,
    PoolProvisioned,
    SettlementObserved,
)
from poolmigrate.exceptions import (
    InvalidStepTransitionError,
    PendingFinalizeNotFoundError,
    PoolMigrationError,
    ValidationError,
    classify_exception,
)
from poolmigrate.models import (
    MigrationConfig,
    MigrationRequest,
    MigrationResult,
    WorkflowStep,
)
from poolmigrate.observability import (
    ATTR_ERROR_CODE,
    ATTR_MASS_UPDATE,
    ATTR_MIGRATION_ID,
    ATTR_MIGRATION_STEP,
    ATTR_POOL_COUNT,
    ATTR_POOL_INDEX,
    ATTR_REQUESTED_ALLOCATION,
    ATTR_SETTLEMENT_DELAY,
    ATTR_STAKED_ASSET,
    Tracer,
    create_tracer,
)
from poolmigrate.registries.interface import CURRENT_REGISTRY, CurrentRegistry, LegacyRegistry
from poolmigrate.repositories.journal import InMemoryMigrationJournal, MigrationJournal
from poolmigrate.settlement import SettlementWaiter
from poolmigrate.steps import AllocationRebalancer, PoolFinalizer, PoolProvisioner
from poolmigrate.validation import validate_migration_input

logger = logging.getLogger(__name__)


class PoolMigrationCoordinator:
    """
    Runs the add-pool migration against a legacy and a current registry.

    Attributes:
        _current: Registry that receives the new pool.
        _legacy: Registry whose master slot is rebalanced.
        _config: Orchestration settings (master slot, settlement polling, guards).
        _journal: Durable record of every run and of pending finalizations.
        _waiter: Settlement waiter shared by steps 3 and 4.
    """

    def __init__(
        self,
        current: CurrentRegistry,
        legacy: LegacyRegistry,
        config: MigrationConfig | None = None,
        *,
        journal: MigrationJournal | None = None,
        waiter: SettlementWaiter | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the coordinator.

        Args:
            current: Current registry adapter
            legacy: Legacy registry adapter
            config: Migration configuration (uses defaults if None)
            journal: Journal for events and pending-finalize markers
                (in-memory if None)
            waiter: Settlement waiter (built from config if None)
            tracer: Optional custom Tracer instance.
            enable_tracing: Whether to enable OpenTelemetry tracing
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._current = current
        self._legacy = legacy
        self._config = config or MigrationConfig()
        self._journal = journal or InMemoryMigrationJournal(tracer=self._tracer)
        self._waiter = waiter or SettlementWaiter(self._config, tracer=self._tracer)

        self._provisioner = PoolProvisioner(current, tracer=self._tracer)
        self._rebalancer = AllocationRebalancer(
            legacy, self._config, self._waiter, tracer=self._tracer
        )
        self._finalizer = PoolFinalizer(current, self._config, tracer=self._tracer)

    @property
    def config(self) -> MigrationConfig:
        return self._config

    @property
    def journal(self) -> MigrationJournal:
        return self._journal

    async def run(
        self,
        requested_allocation_points: object,
        staked_asset: object,
        mass_update: object,
        settlement_delay_seconds: object,
        *,
        auxiliary_distributors: Iterable[object] = (),
    ) -> MigrationResult:
        """
        Run the full migration.

        Args:
            requested_allocation_points: Allocation for the new pool
                (int or decimal string).
            staked_asset: Address of the asset staked in the new pool.
            mass_update: Whether mutations mass-update all pools.
            settlement_delay_seconds: Fixed wait after provisioning, in
                whole seconds (int or decimal string).
            auxiliary_distributors: Distributors for the new pool; the
                configured ones are used when empty.

        Returns:
            MigrationResult describing both registries after the run.

        Raises:
            ValidationError: If the input is malformed; no registry call
                was issued.
            PoolMigrationError: If any later step fails; earlier steps stay
                committed and the failure is journaled.
        """
        started = time.monotonic()
        with self._tracer.span("poolmigrate.coordinator.run") as span:
            try:
                validated = validate_migration_input(
                    requested_allocation_points,
                    staked_asset,
                    mass_update,
                    settlement_delay_seconds,
                    auxiliary_distributors,
                    allocation_limit=self._config.max_allocation_points,
                )
            except ValidationError as e:
                e.with_context(step=WorkflowStep.VALIDATING)
                logger.log(
                    e.severity.log_level,
                    "Rejected migration input before any registry call: %s",
                    e,
                )
                raise

            request = MigrationRequest(
                requested_allocation_points=validated.requested_allocation_points,
                staked_asset=validated.staked_asset,
                mass_update=validated.mass_update,
                settlement_delay_seconds=validated.settlement_delay_seconds,
                auxiliary_distributors=(
                    validated.auxiliary_distributors or self._config.auxiliary_distributors
                ),
            )
            if span is not None:
                span.set_attribute(ATTR_MIGRATION_ID, str(request.id))
                span.set_attribute(ATTR_STAKED_ASSET, request.staked_asset)
                span.set_attribute(ATTR_REQUESTED_ALLOCATION, request.requested_allocation_points)
                span.set_attribute(ATTR_MASS_UPDATE, request.mass_update)
                span.set_attribute(ATTR_SETTLEMENT_DELAY, request.settlement_delay_seconds)

            # Validation already ran; walk the request through its step.
            self._transition(request, WorkflowStep.VALIDATING)

            logger.info(
                "Starting migration %s: pool for %s with %d allocation points "
                "(mass_update=%s, settlement delay %ds, master slot %d)",
                request.id,
                request.staked_asset,
                request.requested_allocation_points,
                request.mass_update,
                request.settlement_delay_seconds,
                self._config.master_slot,
            )
            await self._journal.record(
                MigrationStarted(
                    migration_id=request.id,
                    staked_asset=request.staked_asset,
                    requested_allocation_points=request.requested_allocation_points,
                    mass_update=request.mass_update,
                    settlement_delay_seconds=request.settlement_delay_seconds,
                    auxiliary_distributors=request.auxiliary_distributors,
                    master_slot=self._config.master_slot,
                )
            )

            try:
                await self._provision(request)
                await self._await_settlement(request)
                await self._rebalance(request)
                await self._finalize(request)
            except Exception as e:
                await self._fail_migration(request, e)
                if span is not None:
                    span.set_attribute(ATTR_ERROR_CODE, request.error or "UNKNOWN_ERROR")
                raise

            return self._complete_migration(request, started)

    async def resume_finalize(
        self,
        migration_id: UUID,
        *,
        pool_index: int | None = None,
    ) -> MigrationResult:
        """
        Finish a migration whose finalization failed after rebalancing.

        Only step 5 is run again; the legacy registry is not touched.

        Args:
            migration_id: Migration with a pending-finalize marker.
            pool_index: Pool to finalize. Defaults to the index recorded in
                the marker, or to re-inference from the pool count.

        Returns:
            MigrationResult with ``resumed=True``.

        Raises:
            PendingFinalizeNotFoundError: If the migration has no marker.
            PoolMigrationError: If finalization fails again; the marker is
                kept (and updated) in that case.
        """
        started = time.monotonic()
        with self._tracer.span(
            "poolmigrate.coordinator.resume_finalize",
            {ATTR_MIGRATION_ID: str(migration_id)},
        ):
            marker = await self._journal.get_pending(migration_id)
            if marker is None:
                raise PendingFinalizeNotFoundError(migration_id)

            request = MigrationRequest(
                requested_allocation_points=marker.requested_allocation_points,
                staked_asset=marker.staked_asset,
                mass_update=marker.mass_update,
                settlement_delay_seconds=0,
                auxiliary_distributors=marker.auxiliary_distributors,
                id=marker.migration_id,
                step=WorkflowStep.REBALANCING,
                expected_pool_index=marker.expected_pool_index,
                recomputed_legacy_allocation=marker.legacy_allocation,
            )
            index = pool_index if pool_index is not None else marker.pool_index

            logger.info(
                "Resuming finalization of migration %s (pool index %s, legacy allocation %d)",
                migration_id,
                index if index is not None else "to be inferred",
                marker.legacy_allocation,
            )
            await self._journal.record(FinalizeResumed(migration_id=migration_id, pool_index=index))

            try:
                await self._finalize(request, index)
            except Exception as e:
                await self._fail_migration(request, e)
                raise

            await self._journal.clear_pending(migration_id)
            return self._complete_migration(request, started, resumed=True)

    async def list_pending(self) -> list[PendingFinalize]:
        """Migrations waiting for ``resume_finalize``, oldest first."""
        return await self._journal.list_pending()

    async def get_events(self, migration_id: UUID) -> list[JournalEvent]:
        """Journal events of a migration, in recording order."""
        return await self._journal.get_events(migration_id)

    def _transition(self, request: MigrationRequest, target: WorkflowStep) -> None:
        if not request.step.can_transition_to(target):
            raise InvalidStepTransitionError(request.id, request.step, target)
        logger.debug("Migration %s: %s -> %s", request.id, request.step.value, target.value)
        request.step = target

    async def _provision(self, request: MigrationRequest) -> None:
        self._transition(request, WorkflowStep.PROVISIONING)
        with self._tracer.span(
            "poolmigrate.coordinator.provision",
            {ATTR_MIGRATION_ID: str(request.id), ATTR_MIGRATION_STEP: request.step.value},
        ):
            receipt = await self._provisioner.provision(request)
            logger.info(
                "Migration %s: pool for %s created in current registry (tx %s)",
                request.id,
                request.staked_asset,
                receipt.tx_hash,
            )
            await self._journal.record(
                PoolProvisioned(
                    migration_id=request.id,
                    expected_pool_index=request.expected_pool_index,
                    tx_hash=receipt.tx_hash,
                )
            )

    async def _await_settlement(self, request: MigrationRequest) -> None:
        self._transition(request, WorkflowStep.AWAITING_SETTLEMENT)
        with self._tracer.span(
            "poolmigrate.coordinator.await_settlement",
            {ATTR_MIGRATION_ID: str(request.id), ATTR_MIGRATION_STEP: request.step.value},
        ) as span:
            await self._waiter.delay(request.settlement_delay_seconds)

            expected = request.expected_pool_index
            count = await self._waiter.wait_until(
                self._current.pool_count,
                lambda observed: observed > expected,
                description=f"current registry pool count > {expected}",
                registry=CURRENT_REGISTRY,
            )
            if span is not None:
                span.set_attribute(ATTR_POOL_COUNT, count)

            logger.info("Migration %s: current registry reports %d pools", request.id, count)
            await self._journal.record(
                SettlementObserved(migration_id=request.id, pool_count=count)
            )

    async def _rebalance(self, request: MigrationRequest) -> None:
        self._transition(request, WorkflowStep.REBALANCING)
        with self._tracer.span(
            "poolmigrate.coordinator.rebalance",
            {ATTR_MIGRATION_ID: str(request.id), ATTR_MIGRATION_STEP: request.step.value},
        ):
            new_allocation = await self._rebalancer.rebalance(request)
            receipt = request.receipts[WorkflowStep.REBALANCING.value]
            logger.info(
                "Migration %s: legacy master slot %d allocation %d -> %d (tx %s)",
                request.id,
                self._config.master_slot,
                request.previous_legacy_allocation,
                new_allocation,
                receipt.tx_hash,
            )
            await self._journal.record(
                LegacyAllocationUpdated(
                    migration_id=request.id,
                    master_slot=self._config.master_slot,
                    previous_allocation=request.previous_legacy_allocation,
                    new_allocation=new_allocation,
                    tx_hash=receipt.tx_hash,
                )
            )

    async def _finalize(self, request: MigrationRequest, pool_index: int | None = None) -> None:
        self._transition(request, WorkflowStep.FINALIZING)
        with self._tracer.span(
            "poolmigrate.coordinator.finalize",
            {ATTR_MIGRATION_ID: str(request.id), ATTR_MIGRATION_STEP: request.step.value},
        ) as span:
            receipt = await self._finalizer.finalize(request, pool_index)
            if span is not None:
                span.set_attribute(ATTR_POOL_INDEX, request.assigned_pool_index)

            logger.info(
                "Migration %s: pool %d finalized with %d allocation points (tx %s)",
                request.id,
                request.assigned_pool_index,
                request.requested_allocation_points,
                receipt.tx_hash,
            )
            await self._journal.record(
                PoolFinalized(
                    migration_id=request.id,
                    pool_index=request.assigned_pool_index,
                    allocation_points=request.requested_allocation_points,
                    tx_hash=receipt.tx_hash,
                )
            )

    def _complete_migration(
        self,
        request: MigrationRequest,
        started: float,
        *,
        resumed: bool = False,
    ) -> MigrationResult:
        self._transition(request, WorkflowStep.COMPLETE)
        request.completed_at = datetime.now(UTC)

        result = MigrationResult(
            migration_id=request.id,
            staked_asset=request.staked_asset,
            pool_index=request.assigned_pool_index,
            allocation_points=request.requested_allocation_points,
            previous_legacy_allocation=request.previous_legacy_allocation,
            legacy_allocation=request.recomputed_legacy_allocation,
            receipts=dict(request.receipts),
            duration_seconds=time.monotonic() - started,
            resumed=resumed,
        )
        logger.info(
            "Completed migration %s: pool %d holds %d, legacy master slot holds %d",
            request.id,
            result.pool_index,
            result.allocation_points,
            result.legacy_allocation,
        )
        return result

    async def _fail_migration(self, request: MigrationRequest, error: Exception) -> None:
        """
        Mark the run as failed and record what an operator needs to reconcile it.

        Leaves a pending-finalize marker when the legacy registry already
        holds the rebalanced allocation.
        """
        failed_step = request.step
        classification = classify_exception(error)
        if isinstance(error, PoolMigrationError):
            error.with_context(migration_id=request.id, step=failed_step)

        request.error = classification.error_code
        request.completed_at = datetime.now(UTC)
        request.step = WorkflowStep.FAILED

        context: dict[str, Any] = request.snapshot()
        context["failed_step"] = failed_step.value
        if isinstance(error, PoolMigrationError):
            context["registry"] = error.registry
            context["details"] = error.details
        context["suggested_action"] = classification.suggested_action

        pending = request.recomputed_legacy_allocation is not None
        logger.log(
            logging.CRITICAL if pending else classification.severity.log_level,
            "Migration %s failed at step %s [%s]: %s; context=%s",
            request.id,
            failed_step.value,
            classification.error_code,
            error,
            context,
        )

        if pending:
            try:
                await self._journal.save_pending(
                    PendingFinalize(
                        migration_id=request.id,
                        staked_asset=request.staked_asset,
                        requested_allocation_points=request.requested_allocation_points,
                        auxiliary_distributors=request.auxiliary_distributors,
                        mass_update=request.mass_update,
                        master_slot=self._config.master_slot,
                        legacy_allocation=request.recomputed_legacy_allocation,
                        expected_pool_index=request.expected_pool_index,
                        pool_index=request.assigned_pool_index,
                        error_code=classification.error_code,
                    )
                )
            except Exception:
                # The original error is re-raised by the caller.
                logger.exception(
                    "Could not save pending finalize of migration %s; legacy master slot "
                    "%d holds %d and pool %s is not finalized",
                    request.id,
                    self._config.master_slot,
                    request.recomputed_legacy_allocation,
                    request.assigned_pool_index,
                )
            else:
                logger.critical(
                    "Migration %s left the legacy master slot rebalanced without a "
                    "finalized pool; run 'poolmigrate resume %s' once the cause is fixed",
                    request.id,
                    request.id,
                )

        try:
            await self._journal.record(
                MigrationFailed(
                    migration_id=request.id,
                    step=failed_step.value,
                    error_code=classification.error_code,
                    message=str(error),
                    context=context,
                )
            )
        except Exception:
            logger.exception("Could not journal failure of migration %s", request.id)


__all__ = ["PoolMigrationCoordinator"]
