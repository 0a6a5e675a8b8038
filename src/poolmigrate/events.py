"""
Journal events and the pending-finalize marker.

Every migration run appends immutable events to a MigrationJournal. The
journal is the operator's record of how far a run got, which matters because
a run can stop with one registry updated and the other not.

Events are frozen pydantic models. ``event_type`` is derived from the class
name and used as the discriminator when events are read back from storage.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, ClassVar
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


class JournalEvent(BaseModel):
    """
    Base class for journal events.

    Attributes:
        event_id: Unique identifier for this event.
        migration_id: Migration run the event belongs to.
        occurred_at: When the event was recorded (UTC).
    """

    model_config = ConfigDict(frozen=True)

    event_types: ClassVar[dict[str, type[JournalEvent]]] = {}

    event_id: UUID = Field(default_factory=uuid4, description="Unique event identifier")
    migration_id: UUID = Field(..., description="Migration run this event belongs to")
    occurred_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the event was recorded (UTC)",
    )

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        JournalEvent.event_types[cls.__name__] = cls

    @property
    def event_type(self) -> str:
        return type(self).__name__

    @classmethod
    def from_json(cls, event_type: str, payload: str) -> JournalEvent:
        """
        Rebuild an event from its stored type name and JSON payload.

        Raises:
            KeyError: If the event type is unknown.
        """
        event_class = cls.event_types[event_type]
        return event_class.model_validate_json(payload)


class MigrationStarted(JournalEvent):
    """A run passed validation and is about to touch the registries."""

    staked_asset: str
    requested_allocation_points: int
    mass_update: bool
    settlement_delay_seconds: int
    auxiliary_distributors: tuple[str, ...] = ()
    master_slot: int


class PoolProvisioned(JournalEvent):
    """The new pool was created in the current registry."""

    expected_pool_index: int
    tx_hash: str


class SettlementObserved(JournalEvent):
    """The new pool became visible to reads."""

    pool_count: int


class LegacyAllocationUpdated(JournalEvent):
    """The legacy master slot holds the rebalanced allocation."""

    master_slot: int
    previous_allocation: int
    new_allocation: int
    tx_hash: str


class PoolFinalized(JournalEvent):
    """The new pool holds its final allocation; both registries agree."""

    pool_index: int
    allocation_points: int
    tx_hash: str


class MigrationFailed(JournalEvent):
    """A step failed and the run stopped."""

    step: str
    error_code: str
    message: str
    context: dict[str, Any] = Field(default_factory=dict)


class FinalizeResumed(JournalEvent):
    """An operator resumed finalization from a pending-finalize marker."""

    pool_index: int | None = None


class PendingFinalize(BaseModel):
    """
    Marker left when the legacy registry was rebalanced but finalization failed.

    Holds everything needed to re-run the finalizer without repeating the
    earlier steps.

    Attributes:
        migration_id: Migration run that stopped.
        staked_asset: Staked asset of the new pool.
        requested_allocation_points: Allocation to write into the new pool.
        auxiliary_distributors: Distributors to write into the new pool.
        mass_update: Mass-update flag of the original run.
        master_slot: Legacy slot that was rebalanced.
        legacy_allocation: Allocation written to the legacy slot.
        expected_pool_index: Pool count observed before provisioning.
        pool_index: Inferred index, if the finalizer got that far.
        error_code: Error that stopped finalization.
        created_at: When the marker was recorded.
    """

    model_config = ConfigDict(frozen=True)

    migration_id: UUID
    staked_asset: str
    requested_allocation_points: int
    auxiliary_distributors: tuple[str, ...] = ()
    mass_update: bool
    master_slot: int
    legacy_allocation: int
    expected_pool_index: int | None = None
    pool_index: int | None = None
    error_code: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


__all__ = [
    "JournalEvent",
    "MigrationStarted",
    "PoolProvisioned",
    "SettlementObserved",
    "LegacyAllocationUpdated",
    "PoolFinalized",
    "MigrationFailed",
    "FinalizeResumed",
    "PendingFinalize",
]
