"""
Registry adapters for the migration workflow.

Each registry kind provides:
- A Protocol (interface) defining the operations the workflow uses
- An on-chain implementation backed by web3.py
- An in-memory implementation for testing and dry runs
"""

from poolmigrate.registries.in_memory import (
    InMemoryCurrentRegistry,
    InMemoryLegacyRegistry,
)
from poolmigrate.registries.interface import (
    CURRENT_REGISTRY,
    LEGACY_REGISTRY,
    CurrentRegistry,
    LegacyRegistry,
)
from poolmigrate.registries.onchain import (
    OnChainCurrentRegistry,
    OnChainLegacyRegistry,
    Transactor,
    connect_registries,
)

__all__ = [
    # Protocols
    "CURRENT_REGISTRY",
    "LEGACY_REGISTRY",
    "CurrentRegistry",
    "LegacyRegistry",
    # In-memory
    "InMemoryCurrentRegistry",
    "InMemoryLegacyRegistry",
    # On-chain
    "OnChainCurrentRegistry",
    "OnChainLegacyRegistry",
    "Transactor",
    "connect_registries",
]
