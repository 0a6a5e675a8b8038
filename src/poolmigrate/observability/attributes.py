"""
Standard span attributes for poolmigrate.

Attribute constants shared by the coordinator, the workflow steps, the
registry adapters and the journal, so every span of one migration run can be
correlated by the same keys.

Example:
    >>> from poolmigrate.observability.attributes import (
    ...     ATTR_MIGRATION_ID,
    ...     ATTR_POOL_INDEX,
    ... )
    >>>
    >>> with tracer.span(
    ...     "poolmigrate.finalizer.finalize",
    ...     {ATTR_MIGRATION_ID: str(request.id), ATTR_POOL_INDEX: 42},
    ... ):
    ...     pass
"""

# =============================================================================
# Migration Attributes
# =============================================================================

ATTR_MIGRATION_ID = "poolmigrate.migration.id"
"""Identifier of the migration run (UUID string)."""

ATTR_MIGRATION_STEP = "poolmigrate.migration.step"
"""Workflow step name (e.g., 'provisioning', 'rebalancing')."""

ATTR_STAKED_ASSET = "poolmigrate.migration.staked_asset"
"""Checksummed address of the staked asset of the new pool."""

ATTR_REQUESTED_ALLOCATION = "poolmigrate.migration.requested_allocation"
"""Allocation points requested for the new pool (integer)."""

ATTR_MASS_UPDATE = "poolmigrate.migration.mass_update"
"""Whether dependent pools are mass-updated on mutation (boolean)."""

ATTR_SETTLEMENT_DELAY = "poolmigrate.migration.settlement_delay_seconds"
"""Configured settlement delay in whole seconds (integer)."""

# =============================================================================
# Registry Attributes
# =============================================================================

ATTR_REGISTRY = "poolmigrate.registry.name"
"""Which registry an operation targets ('legacy' or 'current')."""

ATTR_REGISTRY_ADDRESS = "poolmigrate.registry.address"
"""Contract address of the registry."""

ATTR_POOL_INDEX = "poolmigrate.registry.pool_index"
"""Pool index an operation targets (integer)."""

ATTR_POOL_COUNT = "poolmigrate.registry.pool_count"
"""Pool count observed in the current registry (integer)."""

ATTR_ALLOCATION_POINTS = "poolmigrate.registry.allocation_points"
"""Allocation points written by an operation (integer)."""

# =============================================================================
# Transaction Attributes
# =============================================================================

ATTR_TX_HASH = "poolmigrate.tx.hash"
"""Transaction hash (0x-prefixed hex string)."""

ATTR_TX_STATUS = "poolmigrate.tx.status"
"""Receipt status (1 success, 0 reverted)."""

ATTR_CHAIN_ID = "poolmigrate.tx.chain_id"
"""EVM chain id (integer)."""

# =============================================================================
# Journal Attributes
# =============================================================================

ATTR_EVENT_TYPE = "poolmigrate.journal.event_type"
"""Journal event type name (e.g., 'PoolProvisioned')."""

ATTR_DB_SYSTEM = "db.system"
"""Database system identifier (OTEL semantic convention)."""

# =============================================================================
# Error Attributes
# =============================================================================

ATTR_ERROR_CODE = "poolmigrate.error.code"
"""Error code of a failed step (e.g., 'TRANSACTION_REVERTED')."""


__all__ = [
    "ATTR_MIGRATION_ID",
    "ATTR_MIGRATION_STEP",
    "ATTR_STAKED_ASSET",
    "ATTR_REQUESTED_ALLOCATION",
    "ATTR_MASS_UPDATE",
    "ATTR_SETTLEMENT_DELAY",
    "ATTR_REGISTRY",
    "ATTR_REGISTRY_ADDRESS",
    "ATTR_POOL_INDEX",
    "ATTR_POOL_COUNT",
    "ATTR_ALLOCATION_POINTS",
    "ATTR_TX_HASH",
    "ATTR_TX_STATUS",
    "ATTR_CHAIN_ID",
    "ATTR_EVENT_TYPE",
    "ATTR_DB_SYSTEM",
    "ATTR_ERROR_CODE",
]
