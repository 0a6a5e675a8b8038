"""
OpenTelemetry availability detection for poolmigrate.

OpenTelemetry is an optional dependency (the ``telemetry`` extra). This
module is the single place that probes for it, so every other component can
check ``OTEL_AVAILABLE`` instead of guarding its own import.
"""

# Optional OpenTelemetry import - single source of truth
try:
    from opentelemetry import trace  # noqa: F401

    OTEL_AVAILABLE = True
except ImportError:
    OTEL_AVAILABLE = False


__all__ = ["OTEL_AVAILABLE"]
