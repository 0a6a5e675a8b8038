"""
Unit tests for the in-memory registries.

Tests cover:
- Protocol conformance
- Pool creation, counting and finalization in the current registry
- Allocation reads and writes in the legacy registry
- Failure injection (reverts, raised errors, stale reads)
"""

import pytest

from poolmigrate.exceptions import ReadFailureError
from poolmigrate.models import PoolEntry
from poolmigrate.registries.in_memory import InMemoryCurrentRegistry, InMemoryLegacyRegistry
from poolmigrate.registries.interface import CurrentRegistry, LegacyRegistry
from tests.fixtures import DISTRIBUTOR, OTHER_ASSET, SECOND_DISTRIBUTOR, STAKED_ASSET


class TestProtocolConformance:
    def test_current_registry(self):
        assert isinstance(InMemoryCurrentRegistry(), CurrentRegistry)

    def test_legacy_registry(self):
        assert isinstance(InMemoryLegacyRegistry(), LegacyRegistry)


class TestInMemoryCurrentRegistry:
    """Tests for InMemoryCurrentRegistry."""

    def test_seeded_pools_are_reindexed(self):
        registry = InMemoryCurrentRegistry(
            [
                PoolEntry(index=9, staked_asset=OTHER_ASSET),
                PoolEntry(index=9, staked_asset=OTHER_ASSET),
            ]
        )

        assert [pool.index for pool in registry.pools] == [0, 1]

    @pytest.mark.asyncio
    async def test_create_pool_appends_zero_allocation(self):
        registry = InMemoryCurrentRegistry()

        receipt = await registry.create_pool(STAKED_ASSET, [DISTRIBUTOR], True)

        assert receipt.succeeded
        assert await registry.pool_count() == 1
        pool = await registry.get_pool(0)
        assert pool.staked_asset == STAKED_ASSET
        assert pool.allocation_points == 0
        assert pool.auxiliary_distributors == (DISTRIBUTOR,)
        assert registry.calls == [("create_pool", (STAKED_ASSET, (DISTRIBUTOR,), True))]

    @pytest.mark.asyncio
    async def test_receipts_have_distinct_hashes(self):
        registry = InMemoryCurrentRegistry()

        first = await registry.create_pool(STAKED_ASSET, [], False)
        second = await registry.create_pool(OTHER_ASSET, [], False)

        assert first.tx_hash != second.tx_hash
        assert second.block_number == first.block_number + 1

    @pytest.mark.asyncio
    async def test_staked_asset_at(self):
        registry = InMemoryCurrentRegistry([PoolEntry(index=0, staked_asset=OTHER_ASSET)])

        assert await registry.staked_asset_at(0) == OTHER_ASSET
        with pytest.raises(ReadFailureError):
            await registry.staked_asset_at(1)

    @pytest.mark.asyncio
    async def test_set_pool_overwrites_distributors(self):
        registry = InMemoryCurrentRegistry(
            [PoolEntry(index=0, staked_asset=STAKED_ASSET, auxiliary_distributors=(DISTRIBUTOR,))]
        )

        receipt = await registry.set_pool(0, 250, [SECOND_DISTRIBUTOR], True, False)

        assert receipt.succeeded
        pool = registry.pools[0]
        assert pool.allocation_points == 250
        assert pool.auxiliary_distributors == (SECOND_DISTRIBUTOR,)

    @pytest.mark.asyncio
    async def test_set_pool_without_overwrite_keeps_distributors(self):
        registry = InMemoryCurrentRegistry(
            [PoolEntry(index=0, staked_asset=STAKED_ASSET, auxiliary_distributors=(DISTRIBUTOR,))]
        )

        await registry.set_pool(0, 250, [SECOND_DISTRIBUTOR], False, False)

        assert registry.pools[0].auxiliary_distributors == (DISTRIBUTOR,)

    @pytest.mark.asyncio
    async def test_set_pool_out_of_range_reverts(self):
        registry = InMemoryCurrentRegistry()

        receipt = await registry.set_pool(0, 250, [], True, False)

        assert not receipt.succeeded
        assert registry.mutation_count == 1

    @pytest.mark.asyncio
    async def test_injected_revert(self):
        registry = InMemoryCurrentRegistry()
        registry.revert_operations.add("create_pool")

        receipt = await registry.create_pool(STAKED_ASSET, [], False)

        assert not receipt.succeeded
        assert registry.pools == []
        assert registry.mutation_count == 1

    @pytest.mark.asyncio
    async def test_injected_error_is_raised_after_recording(self):
        registry = InMemoryCurrentRegistry()
        registry.errors["create_pool"] = ConnectionError("rpc down")

        with pytest.raises(ConnectionError):
            await registry.create_pool(STAKED_ASSET, [], False)

        assert registry.mutation_count == 1
        assert registry.pools == []

    @pytest.mark.asyncio
    async def test_read_lag_serves_stale_counts(self):
        registry = InMemoryCurrentRegistry(read_lag=2)

        await registry.create_pool(STAKED_ASSET, [], False)

        assert await registry.pool_count() == 0
        assert await registry.pool_count() == 0
        assert await registry.pool_count() == 1

    @pytest.mark.asyncio
    async def test_reads_are_not_mutations(self):
        registry = InMemoryCurrentRegistry([PoolEntry(index=0, staked_asset=OTHER_ASSET)])

        await registry.pool_count()
        await registry.staked_asset_at(0)

        assert registry.mutation_count == 0


class TestInMemoryLegacyRegistry:
    """Tests for InMemoryLegacyRegistry."""

    @pytest.mark.asyncio
    async def test_allocation_roundtrip(self):
        registry = InMemoryLegacyRegistry({25: 1000})

        receipt = await registry.set_allocation(25, 1250)

        assert receipt.succeeded
        assert await registry.allocation_at(25) == 1250
        assert registry.calls == [("set_allocation", (25, 1250))]

    @pytest.mark.asyncio
    async def test_unknown_slot_read_fails(self):
        registry = InMemoryLegacyRegistry({25: 1000})

        with pytest.raises(ReadFailureError) as exc_info:
            await registry.allocation_at(3)

        assert exc_info.value.registry == "legacy"

    @pytest.mark.asyncio
    async def test_unknown_slot_write_reverts(self):
        registry = InMemoryLegacyRegistry({25: 1000})

        receipt = await registry.set_allocation(3, 10)

        assert not receipt.succeeded
        assert registry.allocations == {25: 1000}

    @pytest.mark.asyncio
    async def test_injected_revert_leaves_allocation(self):
        registry = InMemoryLegacyRegistry({25: 1000})
        registry.revert_operations.add("set_allocation")

        receipt = await registry.set_allocation(25, 1250)

        assert not receipt.succeeded
        assert registry.allocations[25] == 1000

    @pytest.mark.asyncio
    async def test_injected_read_error(self):
        registry = InMemoryLegacyRegistry({25: 1000})
        registry.errors["allocation_at"] = TimeoutError("slow node")

        with pytest.raises(TimeoutError):
            await registry.allocation_at(25)
