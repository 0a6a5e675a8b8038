"""
poolmigrate - Pool-allocation migration between staking-reward registries.

This library provides:
- PoolMigrationCoordinator, which adds a pool to the current registry and
  rebalances the legacy registry's master slot to match
- Registry protocols with in-memory and web3.py implementations
- A migration journal with pending-finalize markers for resumption
- Classified exceptions carrying reconciliation context
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("poolmigrate")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from poolmigrate.config import (
    NETWORKS,
    DeploymentConfig,
    NetworkConfig,
    Settings,
    load_settings,
)
from poolmigrate.coordinator import PoolMigrationCoordinator
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
    AllocationOverflowError,
    ConfigurationError,
    ErrorClassification,
    ErrorRecoverability,
    ErrorSeverity,
    InvalidAddressError,
    InvalidAmountError,
    InvalidStepTransitionError,
    PendingFinalizeNotFoundError,
    PoolIndexMismatchError,
    PoolMigrationError,
    ReadFailureError,
    SettlementTimeoutError,
    TransactionError,
    TransactionRevertedError,
    TransactionSubmissionError,
    TransactionTimeoutError,
    ValidationError,
)
from poolmigrate.models import (
    DEFAULT_MASTER_SLOT,
    UINT256_MAX,
    MigrationConfig,
    MigrationRequest,
    MigrationResult,
    PoolEntry,
    TransactionReceipt,
    WorkflowStep,
)
from poolmigrate.registries import (
    CurrentRegistry,
    InMemoryCurrentRegistry,
    InMemoryLegacyRegistry,
    LegacyRegistry,
    OnChainCurrentRegistry,
    OnChainLegacyRegistry,
    connect_registries,
)
from poolmigrate.repositories import (
    InMemoryMigrationJournal,
    MigrationJournal,
    SQLAlchemyMigrationJournal,
)
from poolmigrate.settlement import SettlementWaiter
from poolmigrate.steps import AllocationRebalancer, PoolFinalizer, PoolProvisioner
from poolmigrate.validation import (
    ValidatedInput,
    validate_address,
    validate_allocation,
    validate_delay,
    validate_migration_input,
)

__all__ = [
    "__version__",
    # Coordinator
    "PoolMigrationCoordinator",
    # Steps
    "PoolProvisioner",
    "AllocationRebalancer",
    "PoolFinalizer",
    "SettlementWaiter",
    # Validation
    "ValidatedInput",
    "validate_address",
    "validate_allocation",
    "validate_delay",
    "validate_migration_input",
    # Models
    "DEFAULT_MASTER_SLOT",
    "UINT256_MAX",
    "WorkflowStep",
    "MigrationConfig",
    "MigrationRequest",
    "MigrationResult",
    "PoolEntry",
    "TransactionReceipt",
    # Configuration
    "NETWORKS",
    "NetworkConfig",
    "DeploymentConfig",
    "Settings",
    "load_settings",
    # Registries
    "CurrentRegistry",
    "LegacyRegistry",
    "InMemoryCurrentRegistry",
    "InMemoryLegacyRegistry",
    "OnChainCurrentRegistry",
    "OnChainLegacyRegistry",
    "connect_registries",
    # Journal
    "MigrationJournal",
    "InMemoryMigrationJournal",
    "SQLAlchemyMigrationJournal",
    "JournalEvent",
    "MigrationStarted",
    "PoolProvisioned",
    "SettlementObserved",
    "LegacyAllocationUpdated",
    "PoolFinalized",
    "MigrationFailed",
    "FinalizeResumed",
    "PendingFinalize",
    # Exceptions
    "ErrorSeverity",
    "ErrorRecoverability",
    "ErrorClassification",
    "PoolMigrationError",
    "ValidationError",
    "InvalidAddressError",
    "InvalidAmountError",
    "TransactionError",
    "TransactionRevertedError",
    "TransactionTimeoutError",
    "TransactionSubmissionError",
    "ReadFailureError",
    "AllocationOverflowError",
    "SettlementTimeoutError",
    "PoolIndexMismatchError",
    "InvalidStepTransitionError",
    "PendingFinalizeNotFoundError",
    "ConfigurationError",
]
