"""
In-memory registry implementations.

Useful for testing, dry runs and development. Not connected to any chain:
all pools are lost when the process terminates.

Both registries record every mutating call in ``calls`` and support simple
failure injection:

- ``revert_operations``: operations whose next receipts report failure
  (status 0) without changing state.
- ``errors``: operations that raise the given exception instead of running.
- ``InMemoryCurrentRegistry.read_lag``: number of ``pool_count`` reads after
  a ``create_pool`` that still report the old count, to exercise the
  settlement waiter.

Example:
    >>> current = InMemoryCurrentRegistry()
    >>> legacy = InMemoryLegacyRegistry({25: 1000})
    >>> receipt = await current.create_pool(asset, [], False)
    >>> await current.pool_count()
    1
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import replace
from typing import Any

from eth_typing import ChecksumAddress

from poolmigrate.exceptions import ReadFailureError
from poolmigrate.models import PoolEntry, TransactionReceipt
from poolmigrate.observability import (
    ATTR_ALLOCATION_POINTS,
    ATTR_POOL_INDEX,
    ATTR_REGISTRY,
    Tracer,
    create_tracer,
)
from poolmigrate.registries.interface import CURRENT_REGISTRY, LEGACY_REGISTRY


class _InMemoryRegistry:
    """Receipt minting, call recording and failure injection shared by both registries."""

    name: str = "registry"

    def __init__(
        self,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._lock: asyncio.Lock = asyncio.Lock()
        self._tx_counter = 0
        self._block_number = 0

        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.revert_operations: set[str] = set()
        self.errors: dict[str, BaseException] = {}

    @property
    def mutation_count(self) -> int:
        """Number of mutating calls issued against this registry."""
        return len(self.calls)

    def _check_injected_error(self, operation: str) -> None:
        error = self.errors.get(operation)
        if error is not None:
            raise error

    def _mint_receipt(self, succeeded: bool) -> TransactionReceipt:
        self._tx_counter += 1
        self._block_number += 1
        return TransactionReceipt(
            tx_hash=f"0x{self.name.encode().hex()}{self._tx_counter:056x}",
            status=1 if succeeded else 0,
            block_number=self._block_number,
            gas_used=21_000,
        )


class InMemoryCurrentRegistry(_InMemoryRegistry):
    """
    In-memory implementation of the current registry.

    Attributes:
        calls: Every mutating call as (operation, arguments).
        read_lag: Pending stale pool_count reads after the last create_pool.
    """

    name = CURRENT_REGISTRY

    def __init__(
        self,
        pools: Iterable[PoolEntry] | None = None,
        *,
        read_lag: int = 0,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        super().__init__(tracer=tracer, enable_tracing=enable_tracing)
        self._pools: list[PoolEntry] = []
        for index, pool in enumerate(pools or ()):
            self._pools.append(replace(pool, index=index))
        self.read_lag = read_lag
        self._stale_reads_left = 0

    @property
    def pools(self) -> list[PoolEntry]:
        """Snapshot of all pools, visible or not."""
        return list(self._pools)

    async def get_pool(self, index: int) -> PoolEntry:
        """Return the pool at ``index``."""
        async with self._lock:
            try:
                return self._pools[index]
            except IndexError:
                raise ReadFailureError(
                    "get_pool", registry=self.name, reason=f"no pool at index {index}"
                ) from None

    async def create_pool(
        self,
        staked_asset: ChecksumAddress,
        auxiliary_distributors: Sequence[ChecksumAddress],
        mass_update: bool,
    ) -> TransactionReceipt:
        with self._tracer.span(
            "poolmigrate.in_memory.create_pool",
            {ATTR_REGISTRY: self.name},
        ):
            async with self._lock:
                self.calls.append(
                    ("create_pool", (staked_asset, tuple(auxiliary_distributors), mass_update))
                )
                self._check_injected_error("create_pool")

                if "create_pool" in self.revert_operations:
                    return self._mint_receipt(succeeded=False)

                self._pools.append(
                    PoolEntry(
                        index=len(self._pools),
                        staked_asset=staked_asset,
                        allocation_points=0,
                        auxiliary_distributors=tuple(auxiliary_distributors),
                    )
                )
                self._stale_reads_left = self.read_lag
                return self._mint_receipt(succeeded=True)

    async def pool_count(self) -> int:
        with self._tracer.span(
            "poolmigrate.in_memory.pool_count",
            {ATTR_REGISTRY: self.name},
        ):
            async with self._lock:
                self._check_injected_error("pool_count")
                if self._stale_reads_left > 0:
                    self._stale_reads_left -= 1
                    return len(self._pools) - 1
                return len(self._pools)

    async def staked_asset_at(self, index: int) -> ChecksumAddress:
        pool = await self.get_pool(index)
        return pool.staked_asset

    async def set_pool(
        self,
        index: int,
        allocation_points: int,
        auxiliary_distributors: Sequence[ChecksumAddress],
        overwrite: bool,
        mass_update: bool,
    ) -> TransactionReceipt:
        with self._tracer.span(
            "poolmigrate.in_memory.set_pool",
            {
                ATTR_REGISTRY: self.name,
                ATTR_POOL_INDEX: index,
                ATTR_ALLOCATION_POINTS: allocation_points,
            },
        ):
            async with self._lock:
                self.calls.append(
                    (
                        "set_pool",
                        (
                            index,
                            allocation_points,
                            tuple(auxiliary_distributors),
                            overwrite,
                            mass_update,
                        ),
                    )
                )
                self._check_injected_error("set_pool")

                if "set_pool" in self.revert_operations or not 0 <= index < len(self._pools):
                    return self._mint_receipt(succeeded=False)

                pool = self._pools[index]
                distributors = (
                    tuple(auxiliary_distributors) if overwrite else pool.auxiliary_distributors
                )
                self._pools[index] = replace(
                    pool,
                    allocation_points=allocation_points,
                    auxiliary_distributors=distributors,
                )
                return self._mint_receipt(succeeded=True)


class InMemoryLegacyRegistry(_InMemoryRegistry):
    """
    In-memory implementation of the legacy registry.

    Only allocations are modelled; reading a slot that was never seeded
    fails the same way an out-of-range pool read fails on chain.
    """

    name = LEGACY_REGISTRY

    def __init__(
        self,
        allocations: Mapping[int, int] | None = None,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        super().__init__(tracer=tracer, enable_tracing=enable_tracing)
        self._allocations: dict[int, int] = dict(allocations or {})

    @property
    def allocations(self) -> dict[int, int]:
        """Snapshot of all allocations by slot."""
        return dict(self._allocations)

    async def allocation_at(self, slot: int) -> int:
        with self._tracer.span(
            "poolmigrate.in_memory.allocation_at",
            {ATTR_REGISTRY: self.name, ATTR_POOL_INDEX: slot},
        ):
            async with self._lock:
                self._check_injected_error("allocation_at")
                if slot not in self._allocations:
                    raise ReadFailureError(
                        "allocation_at", registry=self.name, reason=f"no pool at slot {slot}"
                    )
                return self._allocations[slot]

    async def set_allocation(self, slot: int, allocation_points: int) -> TransactionReceipt:
        with self._tracer.span(
            "poolmigrate.in_memory.set_allocation",
            {
                ATTR_REGISTRY: self.name,
                ATTR_POOL_INDEX: slot,
                ATTR_ALLOCATION_POINTS: allocation_points,
            },
        ):
            async with self._lock:
                self.calls.append(("set_allocation", (slot, allocation_points)))
                self._check_injected_error("set_allocation")

                if "set_allocation" in self.revert_operations or slot not in self._allocations:
                    return self._mint_receipt(succeeded=False)

                self._allocations[slot] = allocation_points
                return self._mint_receipt(succeeded=True)


__all__ = [
    "InMemoryCurrentRegistry",
    "InMemoryLegacyRegistry",
]
