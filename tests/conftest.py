"""
Shared pytest fixtures for the poolmigrate tests.

This module provides:
- A fake clock fixture (see tests.fixtures for addresses and constants)
- In-memory registry fixtures seeded like a live deployment
- Journal, settlement waiter and coordinator fixtures wired together
"""

from __future__ import annotations

import pytest

from poolmigrate.coordinator import PoolMigrationCoordinator
from poolmigrate.models import MigrationConfig, PoolEntry
from poolmigrate.observability import MockTracer
from poolmigrate.registries.in_memory import InMemoryCurrentRegistry, InMemoryLegacyRegistry
from poolmigrate.repositories.journal import InMemoryMigrationJournal
from poolmigrate.settlement import SettlementWaiter
from tests.fixtures import (
    EXISTING_POOLS,
    LEGACY_ALLOCATION,
    MASTER_SLOT,
    OTHER_ASSET,
    FakeClock,
)

# ============================================================================
# Clock
# ============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ============================================================================
# Configuration
# ============================================================================


@pytest.fixture
def migration_config() -> MigrationConfig:
    """Config with a short poll budget so timeouts are reached in a few polls."""
    return MigrationConfig(
        master_slot=MASTER_SLOT,
        settlement_timeout_seconds=2.0,
        settlement_poll_interval_seconds=0.5,
    )


# ============================================================================
# Registries
# ============================================================================


@pytest.fixture
def current_registry() -> InMemoryCurrentRegistry:
    """Current registry that already holds three pools of another asset."""
    return InMemoryCurrentRegistry(
        [
            PoolEntry(index=i, staked_asset=OTHER_ASSET, allocation_points=100)
            for i in range(EXISTING_POOLS)
        ]
    )


@pytest.fixture
def legacy_registry() -> InMemoryLegacyRegistry:
    """Legacy registry with the master slot at 1000 and an unrelated slot."""
    return InMemoryLegacyRegistry({0: 500, MASTER_SLOT: LEGACY_ALLOCATION})


# ============================================================================
# Workflow
# ============================================================================


@pytest.fixture
def journal() -> InMemoryMigrationJournal:
    return InMemoryMigrationJournal(enable_tracing=False)


@pytest.fixture
def waiter(migration_config: MigrationConfig, clock: FakeClock) -> SettlementWaiter:
    return SettlementWaiter(
        migration_config,
        sleep=clock.sleep,
        clock=clock,
        enable_tracing=False,
    )


@pytest.fixture
def tracer() -> MockTracer:
    return MockTracer()


@pytest.fixture
def coordinator(
    current_registry: InMemoryCurrentRegistry,
    legacy_registry: InMemoryLegacyRegistry,
    migration_config: MigrationConfig,
    journal: InMemoryMigrationJournal,
    waiter: SettlementWaiter,
) -> PoolMigrationCoordinator:
    return PoolMigrationCoordinator(
        current_registry,
        legacy_registry,
        migration_config,
        journal=journal,
        waiter=waiter,
        enable_tracing=False,
    )
