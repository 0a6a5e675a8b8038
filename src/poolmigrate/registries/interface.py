"""
Registry protocols consumed by the migration workflow.

The workflow talks to two independent, externally mutable registries:

- CurrentRegistry: appends new pools and stores per-pool allocation and
  auxiliary reward distributors.
- LegacyRegistry: holds the master slot whose allocation aggregates all
  weight delegated to the current registry.

Every mutating call returns only after the transaction is confirmed. A
receipt with ``status == 0`` means the transaction reverted. Implementations
may also raise TransactionRevertedError, TransactionTimeoutError or
ReadFailureError themselves.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from eth_typing import ChecksumAddress

from poolmigrate.models import TransactionReceipt

CURRENT_REGISTRY = "current"
LEGACY_REGISTRY = "legacy"


@runtime_checkable
class CurrentRegistry(Protocol):
    """Protocol for the registry that receives new pools."""

    async def create_pool(
        self,
        staked_asset: ChecksumAddress,
        auxiliary_distributors: Sequence[ChecksumAddress],
        mass_update: bool,
    ) -> TransactionReceipt:
        """
        Append a pool with zero allocation and wait for confirmation.

        Args:
            staked_asset: Asset staked in the new pool.
            auxiliary_distributors: Extra reward distributors for the pool.
            mass_update: Whether to mass-update all pools first.

        Returns:
            Confirmed transaction receipt.
        """
        ...

    async def pool_count(self) -> int:
        """Number of pools currently in the registry."""
        ...

    async def staked_asset_at(self, index: int) -> ChecksumAddress:
        """Staked asset of the pool at ``index``."""
        ...

    async def set_pool(
        self,
        index: int,
        allocation_points: int,
        auxiliary_distributors: Sequence[ChecksumAddress],
        overwrite: bool,
        mass_update: bool,
    ) -> TransactionReceipt:
        """
        Update a pool's allocation and distributors and wait for confirmation.

        Args:
            index: Pool to update.
            allocation_points: New allocation.
            auxiliary_distributors: Distributors to set.
            overwrite: Replace the pool's distributors when True.
            mass_update: Whether to mass-update all pools first.

        Returns:
            Confirmed transaction receipt.
        """
        ...


@runtime_checkable
class LegacyRegistry(Protocol):
    """Protocol for the registry holding the master slot."""

    async def allocation_at(self, slot: int) -> int:
        """Allocation points of the pool at ``slot``."""
        ...

    async def set_allocation(self, slot: int, allocation_points: int) -> TransactionReceipt:
        """
        Set a pool's allocation and wait for confirmation.

        Args:
            slot: Pool to update.
            allocation_points: New allocation.

        Returns:
            Confirmed transaction receipt.
        """
        ...


__all__ = [
    "CURRENT_REGISTRY",
    "LEGACY_REGISTRY",
    "CurrentRegistry",
    "LegacyRegistry",
]
