"""
Shared test fixtures for the poolmigrate tests.

Usage:
    from tests.fixtures import (
        STAKED_ASSET,
        OTHER_ASSET,
        DISTRIBUTOR,
        MASTER_SLOT,
        FakeClock,
    )
"""

from tests.fixtures.workflow import (
    DISTRIBUTOR,
    EXISTING_POOLS,
    LEGACY_ALLOCATION,
    MASTER_SLOT,
    OTHER_ASSET,
    SECOND_DISTRIBUTOR,
    STAKED_ASSET,
    FakeClock,
)

__all__ = [
    "STAKED_ASSET",
    "OTHER_ASSET",
    "DISTRIBUTOR",
    "SECOND_DISTRIBUTOR",
    "MASTER_SLOT",
    "EXISTING_POOLS",
    "LEGACY_ALLOCATION",
    "FakeClock",
]
