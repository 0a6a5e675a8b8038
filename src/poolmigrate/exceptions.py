"""
Exceptions raised by the pool-allocation migration workflow.

Every failure aborts the remaining workflow steps. Errors carry enough
context (which step, which registry, which computed values) for an operator
to reconcile a partially completed migration from the log output alone.

Exception Hierarchy:
    PoolMigrationError (base)
    +-- ValidationError
    |   +-- InvalidAddressError
    |   +-- InvalidAmountError
    +-- TransactionError
    |   +-- TransactionRevertedError
    |   +-- TransactionTimeoutError
    |   +-- TransactionSubmissionError
    +-- ReadFailureError
    +-- AllocationOverflowError
    +-- SettlementTimeoutError
    +-- PoolIndexMismatchError
    +-- InvalidStepTransitionError
    +-- PendingFinalizeNotFoundError
    +-- ConfigurationError

Error Classification:
    - ErrorSeverity: CRITICAL, ERROR, WARNING, INFO levels
    - ErrorRecoverability: RECOVERABLE, TRANSIENT, FATAL categories
    - ErrorClassification: error code, category and operator guidance
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from poolmigrate.models import WorkflowStep


class ErrorSeverity(Enum):
    """
    Severity level of migration errors.

    Used for logging and operator notification decisions.

    Attributes:
        CRITICAL: Registries are left inconsistent and need manual reconciliation.
        ERROR: The workflow failed; state may be partially committed.
        WARNING: Rejected before any remote mutation.
        INFO: Informational condition, not a failure.
    """

    CRITICAL = "critical"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

    @property
    def log_level(self) -> int:
        """
        Get the corresponding Python logging level.

        Returns:
            Python logging level constant.
        """
        level_map = {
            ErrorSeverity.CRITICAL: logging.CRITICAL,
            ErrorSeverity.ERROR: logging.ERROR,
            ErrorSeverity.WARNING: logging.WARNING,
            ErrorSeverity.INFO: logging.INFO,
        }
        return level_map[self]


class ErrorRecoverability(Enum):
    """
    Recoverability classification for migration errors.

    The workflow never retries on its own; this only tells the operator what
    kind of follow-up is appropriate.

    Attributes:
        RECOVERABLE: Fix the input or configuration and run again.
        TRANSIENT: The network misbehaved; running again may succeed.
        FATAL: Remote state is partially committed; reconcile by hand
            or resume from the pending-finalize marker.
    """

    RECOVERABLE = "recoverable"
    TRANSIENT = "transient"
    FATAL = "fatal"


@dataclass(frozen=True)
class ErrorClassification:
    """
    Metadata describing an error for logging and operator guidance.

    Attributes:
        severity: The severity level of the error.
        recoverability: How the error can be recovered from.
        error_code: Unique error code for programmatic handling.
        category: Error category for grouping related errors.
        suggested_action: Human-readable guidance for operators.
    """

    severity: ErrorSeverity
    recoverability: ErrorRecoverability
    error_code: str
    category: str
    suggested_action: str

    def to_dict(self) -> dict[str, Any]:
        """Convert classification to dictionary for serialization."""
        return {
            "severity": self.severity.value,
            "recoverability": self.recoverability.value,
            "error_code": self.error_code,
            "category": self.category,
            "suggested_action": self.suggested_action,
        }


class PoolMigrationError(Exception):
    """
    Base exception for all pool-migration errors.

    Attributes:
        message: Human-readable error description.
        migration_id: The migration run that failed, if known.
        step: The workflow step that failed, if known.
        registry: Which registry was involved ('legacy' or 'current').
        details: Computed values relevant to reconciliation.
        suggested_action: Overrides the classification's guidance when set.
    """

    _default_classification: ErrorClassification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="POOL_MIGRATION_ERROR",
        category="general",
        suggested_action="Review the migration journal and logs before running again",
    )

    def __init__(
        self,
        message: str,
        *,
        migration_id: UUID | None = None,
        step: WorkflowStep | None = None,
        registry: str | None = None,
        details: dict[str, Any] | None = None,
        suggested_action: str | None = None,
    ) -> None:
        self.message = message
        self.migration_id = migration_id
        self.step = step
        self.registry = registry
        self.details: dict[str, Any] = dict(details or {})
        self._suggested_action = suggested_action
        super().__init__(message)

    def __str__(self) -> str:
        """Return formatted error string with context."""
        parts = [self.message]
        if self.migration_id:
            parts.append(f"migration_id={self.migration_id}")
        if self.step is not None:
            parts.append(f"step={self.step.value}")
        if self.registry:
            parts.append(f"registry={self.registry}")
        return " ".join(parts)

    @property
    def classification(self) -> ErrorClassification:
        """Error classification for this exception type."""
        return self._default_classification

    @property
    def severity(self) -> ErrorSeverity:
        return self.classification.severity

    @property
    def error_code(self) -> str:
        return self.classification.error_code

    @property
    def suggested_action(self) -> str:
        return self._suggested_action or self.classification.suggested_action

    def with_context(
        self,
        *,
        migration_id: UUID | None = None,
        step: WorkflowStep | None = None,
    ) -> PoolMigrationError:
        """
        Attach workflow context that the raising component did not know.

        Existing values are never overwritten. Returns self so the call can
        be used inline in a ``raise`` statement.
        """
        if self.migration_id is None:
            self.migration_id = migration_id
        if self.step is None:
            self.step = step
        return self

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the exception to a dictionary for logging and journaling.

        Returns:
            Dictionary representation of the error.
        """
        return {
            "message": self.message,
            "migration_id": str(self.migration_id) if self.migration_id else None,
            "step": self.step.value if self.step is not None else None,
            "registry": self.registry,
            "details": self.details,
            "error_code": self.error_code,
            "suggested_action": self.suggested_action,
            "classification": self.classification.to_dict(),
        }


class ValidationError(PoolMigrationError):
    """
    Base class for local input validation failures.

    Validation errors are raised before any registry call is issued.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="VALIDATION_ERROR",
        category="validation",
        suggested_action="Correct the input parameters; no transaction was submitted",
    )


class InvalidAddressError(ValidationError):
    """
    Raised when an address is malformed or fails its EIP-55 checksum.

    Attributes:
        value: The rejected raw value.
        field_name: Which parameter carried the value.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="INVALID_ADDRESS",
        category="validation",
        suggested_action="Pass a 0x-prefixed 20-byte hex address with a valid checksum",
    )

    def __init__(self, value: object, field_name: str = "staked_asset") -> None:
        self.value = value
        self.field_name = field_name
        super().__init__(
            f"Invalid address for {field_name}: {value!r}",
            details={"field": field_name, "value": repr(value)},
        )


class InvalidAmountError(ValidationError):
    """
    Raised when an amount is not a non-negative integer within range.

    Attributes:
        value: The rejected raw value.
        field_name: Which parameter carried the value.
        reason: Why the value was rejected.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="INVALID_AMOUNT",
        category="validation",
        suggested_action="Pass a non-negative whole number",
    )

    def __init__(
        self,
        value: object,
        field_name: str = "requested_allocation_points",
        reason: str = "not a non-negative integer",
    ) -> None:
        self.value = value
        self.field_name = field_name
        self.reason = reason
        super().__init__(
            f"Invalid amount for {field_name}: {value!r} ({reason})",
            details={"field": field_name, "value": repr(value), "reason": reason},
        )


class TransactionError(PoolMigrationError):
    """
    Base class for failures of a mutating registry call.

    Attributes:
        tx_hash: Hash of the submitted transaction, if it was submitted.
        operation: The registry operation (e.g., 'create_pool').
    """

    def __init__(
        self,
        message: str,
        *,
        operation: str,
        registry: str | None = None,
        tx_hash: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.operation = operation
        self.tx_hash = tx_hash
        merged = {"operation": operation, "tx_hash": tx_hash}
        merged.update(details or {})
        super().__init__(message, registry=registry, details=merged)


class TransactionRevertedError(TransactionError):
    """
    Raised when a mutating call reverts or its receipt reports failure.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="TRANSACTION_REVERTED",
        category="transaction",
        suggested_action=(
            "Inspect the transaction on a block explorer; earlier steps stay committed"
        ),
    )

    def __init__(
        self,
        operation: str,
        *,
        registry: str | None = None,
        tx_hash: str | None = None,
        reason: str | None = None,
    ) -> None:
        self.reason = reason
        message = f"Transaction reverted: {registry or 'registry'}.{operation}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(
            message,
            operation=operation,
            registry=registry,
            tx_hash=tx_hash,
            details={"reason": reason},
        )


class TransactionTimeoutError(TransactionError):
    """
    Raised when confirmation is not observed within the configured timeout.

    The transaction may still be mined later; the operator must check its
    status before running the workflow again.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.TRANSIENT,
        error_code="TRANSACTION_TIMEOUT",
        category="transaction",
        suggested_action=(
            "Check whether the transaction was eventually mined before running again"
        ),
    )

    def __init__(
        self,
        operation: str,
        timeout_seconds: float,
        *,
        registry: str | None = None,
        tx_hash: str | None = None,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Transaction not confirmed within {timeout_seconds}s: "
            f"{registry or 'registry'}.{operation}",
            operation=operation,
            registry=registry,
            tx_hash=tx_hash,
            details={"timeout_seconds": timeout_seconds},
        )


class TransactionSubmissionError(TransactionError):
    """
    Raised when the node rejects or loses a transaction before a receipt.

    Covers nonce lookup, gas estimation errors other than reverts, submission
    (insufficient funds, nonce too low) and connection failures while waiting
    for the receipt. When ``tx_hash`` is set the transaction was accepted by
    the node and may still be mined.

    Attributes:
        stage: Where submission stopped ('nonce', 'build', 'send', 'confirm').
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.TRANSIENT,
        error_code="TRANSACTION_SUBMISSION_FAILED",
        category="transaction",
        suggested_action=(
            "Check the signer's balance and nonce and the RPC node; if a transaction "
            "hash is recorded, check whether it was mined before running again"
        ),
    )

    def __init__(
        self,
        operation: str,
        stage: str,
        *,
        registry: str | None = None,
        tx_hash: str | None = None,
        reason: str | None = None,
    ) -> None:
        self.stage = stage
        self.reason = reason
        message = f"Transaction {stage} failed: {registry or 'registry'}.{operation}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(
            message,
            operation=operation,
            registry=registry,
            tx_hash=tx_hash,
            details={"stage": stage, "reason": reason},
        )


class ReadFailureError(PoolMigrationError):
    """
    Raised when a query call against a registry could not complete.

    Attributes:
        operation: The query that failed (e.g., 'allocation_at').
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.TRANSIENT,
        error_code="READ_FAILURE",
        category="connectivity",
        suggested_action="Check RPC connectivity; earlier steps stay committed",
    )

    def __init__(
        self,
        operation: str,
        *,
        registry: str | None = None,
        reason: str | None = None,
    ) -> None:
        self.operation = operation
        message = f"Read failed: {registry or 'registry'}.{operation}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message,
            registry=registry,
            details={"operation": operation, "reason": reason},
        )


class AllocationOverflowError(PoolMigrationError):
    """
    Raised when the recomputed legacy allocation exceeds the integer range.

    Attributes:
        current_allocation: Allocation read from the legacy registry.
        requested_allocation: Allocation requested for the new pool.
        limit: The largest representable allocation.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="ALLOCATION_OVERFLOW",
        category="arithmetic",
        suggested_action=(
            "Request a smaller allocation; the new pool exists with zero allocation"
        ),
    )

    def __init__(
        self,
        current_allocation: int,
        requested_allocation: int,
        limit: int,
    ) -> None:
        self.current_allocation = current_allocation
        self.requested_allocation = requested_allocation
        self.limit = limit
        super().__init__(
            f"Allocation overflow: {current_allocation} + {requested_allocation} > {limit}",
            registry="legacy",
            details={
                "current_allocation": current_allocation,
                "requested_allocation": requested_allocation,
                "limit": limit,
            },
        )


class SettlementTimeoutError(PoolMigrationError):
    """
    Raised when a confirmed write is still not observable after the poll timeout.

    Attributes:
        description: What the waiter was waiting for.
        timeout_seconds: The poll budget that was exhausted.
        last_observed: The last value the probe returned.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.TRANSIENT,
        error_code="SETTLEMENT_TIMEOUT",
        category="settlement",
        suggested_action=(
            "The write was confirmed but not yet readable; verify registry state by hand"
        ),
    )

    def __init__(
        self,
        description: str,
        timeout_seconds: float,
        last_observed: Any = None,
        *,
        registry: str | None = None,
    ) -> None:
        self.description = description
        self.timeout_seconds = timeout_seconds
        self.last_observed = last_observed
        super().__init__(
            f"Settlement not observed within {timeout_seconds}s: {description}",
            registry=registry,
            details={
                "description": description,
                "timeout_seconds": timeout_seconds,
                "last_observed": last_observed,
            },
        )


class PoolIndexMismatchError(PoolMigrationError):
    """
    Raised when the inferred pool index does not point at the new pool.

    This happens when another writer appended pools to the current registry
    between provisioning and finalization.

    Attributes:
        pool_index: The inferred index, if one could be computed.
        expected_asset: Staked asset the new pool should hold.
        observed_asset: Staked asset found at the inferred index.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.CRITICAL,
        recoverability=ErrorRecoverability.FATAL,
        error_code="POOL_INDEX_MISMATCH",
        category="consistency",
        suggested_action=(
            "Locate the new pool by its staked asset and resume finalization with --pool-index"
        ),
    )

    def __init__(
        self,
        message: str,
        *,
        pool_index: int | None = None,
        expected_asset: str | None = None,
        observed_asset: str | None = None,
    ) -> None:
        self.pool_index = pool_index
        self.expected_asset = expected_asset
        self.observed_asset = observed_asset
        super().__init__(
            message,
            registry="current",
            details={
                "pool_index": pool_index,
                "expected_asset": expected_asset,
                "observed_asset": observed_asset,
            },
        )


class InvalidStepTransitionError(PoolMigrationError):
    """
    Raised when attempting a transition the workflow state machine forbids.

    Attributes:
        current_step: The step the workflow is in.
        target_step: The step that was attempted.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="INVALID_STEP_TRANSITION",
        category="state",
        suggested_action="Start a fresh migration; requests are single-use",
    )

    def __init__(
        self,
        migration_id: UUID,
        current_step: WorkflowStep,
        target_step: WorkflowStep,
    ) -> None:
        self.current_step = current_step
        self.target_step = target_step
        super().__init__(
            f"Invalid step transition: {current_step.value} -> {target_step.value}",
            migration_id=migration_id,
            step=current_step,
        )


class PendingFinalizeNotFoundError(PoolMigrationError):
    """Raised when resuming a migration that has no pending-finalize marker."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="PENDING_FINALIZE_NOT_FOUND",
        category="lookup",
        suggested_action="List pending migrations and pass one of their identifiers",
    )

    def __init__(self, migration_id: UUID) -> None:
        super().__init__(
            f"No pending finalization for migration {migration_id}",
            migration_id=migration_id,
        )


class ConfigurationError(PoolMigrationError):
    """Raised when deployment or network settings are missing or invalid."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="CONFIGURATION_ERROR",
        category="configuration",
        suggested_action="Check the environment variables and the .env file",
    )


def classify_exception(exc: BaseException) -> ErrorClassification:
    """
    Classify any exception and return its error classification.

    For PoolMigrationError subclasses, returns their specific classification.
    For other exceptions, returns a generic fatal classification.
    """
    if isinstance(exc, PoolMigrationError):
        return exc.classification

    return ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="UNKNOWN_ERROR",
        category="unknown",
        suggested_action="An unexpected error occurred. Review the journal and logs.",
    )


__all__ = [
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
    "classify_exception",
]
