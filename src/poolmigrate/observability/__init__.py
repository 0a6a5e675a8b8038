"""
Observability utilities for poolmigrate.

Tracing and standard attribute definitions shared by every component.
OpenTelemetry is an optional dependency; all utilities in this module
handle the case where it is not installed.

Example:
    >>> from poolmigrate.observability import create_tracer, ATTR_MIGRATION_ID
    >>>
    >>> tracer = create_tracer(__name__, enable_tracing=True)
    >>> with tracer.span("poolmigrate.example", {ATTR_MIGRATION_ID: "..."}):
    ...     pass
"""

from poolmigrate.observability.attributes import (
    ATTR_ALLOCATION_POINTS,
    ATTR_CHAIN_ID,
    ATTR_DB_SYSTEM,
    ATTR_ERROR_CODE,
    ATTR_EVENT_TYPE,
    ATTR_MASS_UPDATE,
    ATTR_MIGRATION_ID,
    ATTR_MIGRATION_STEP,
    ATTR_POOL_COUNT,
    ATTR_POOL_INDEX,
    ATTR_REGISTRY,
    ATTR_REGISTRY_ADDRESS,
    ATTR_REQUESTED_ALLOCATION,
    ATTR_SETTLEMENT_DELAY,
    ATTR_STAKED_ASSET,
    ATTR_TX_HASH,
    ATTR_TX_STATUS,
)
from poolmigrate.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    SpanKindEnum,
    Tracer,
    create_tracer,
)
from poolmigrate.observability.tracing import OTEL_AVAILABLE

__all__ = [
    # Availability
    "OTEL_AVAILABLE",
    # Tracer
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "SpanKindEnum",
    "create_tracer",
    # Attributes
    "ATTR_ALLOCATION_POINTS",
    "ATTR_CHAIN_ID",
    "ATTR_DB_SYSTEM",
    "ATTR_ERROR_CODE",
    "ATTR_EVENT_TYPE",
    "ATTR_MASS_UPDATE",
    "ATTR_MIGRATION_ID",
    "ATTR_MIGRATION_STEP",
    "ATTR_POOL_COUNT",
    "ATTR_POOL_INDEX",
    "ATTR_REGISTRY",
    "ATTR_REGISTRY_ADDRESS",
    "ATTR_REQUESTED_ALLOCATION",
    "ATTR_SETTLEMENT_DELAY",
    "ATTR_STAKED_ASSET",
    "ATTR_TX_HASH",
    "ATTR_TX_STATUS",
]
