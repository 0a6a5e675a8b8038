"""
Tracers injected into workflow components.

Every component (coordinator, steps, settlement waiter, registries and
journal) takes ``tracer=`` and ``enable_tracing=`` and falls back to
``create_tracer(__name__, enable_tracing)``. Tracing is therefore a
dependency, not a base class.

Three implementations share the ``Tracer`` protocol:

- ``NullTracer``: tracing disabled or OpenTelemetry missing; spans are None.
- ``OpenTelemetryTracer``: real spans from the global tracer provider.
- ``MockTracer``: records what would have been traced, for tests.

Components only touch the yielded span when it is not None:

    >>> with self._tracer.span("poolmigrate.coordinator.finalize") as span:
    ...     receipt = await self._finalizer.finalize(request)
    ...     if span is not None:
    ...         span.set_attribute(ATTR_POOL_INDEX, request.assigned_pool_index)
"""

from __future__ import annotations

import contextlib
from collections.abc import Iterator
from contextlib import AbstractContextManager
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from poolmigrate.observability.tracing import OTEL_AVAILABLE

if TYPE_CHECKING:
    from opentelemetry.trace import Span

Attributes = dict[str, Any]


class SpanKindEnum(Enum):
    """Kind of work a span covers. JSON-RPC calls to a node are CLIENT."""

    INTERNAL = "internal"
    CLIENT = "client"


@runtime_checkable
class Tracer(Protocol):
    """What a component needs from a tracer."""

    @property
    def enabled(self) -> bool:
        """True when spans are real (or recorded) and attributes are worth computing."""
        ...

    def span(
        self,
        name: str,
        attributes: Attributes | None = None,
    ) -> AbstractContextManager[Span | None]:
        """Open an INTERNAL span named ``name``."""
        ...

    def span_with_kind(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: Attributes | None = None,
    ) -> AbstractContextManager[Span | None]:
        """Open a span of the given kind."""
        ...


class NullTracer:
    """Tracer that traces nothing."""

    @property
    def enabled(self) -> bool:
        return False

    def span(
        self,
        name: str,
        attributes: Attributes | None = None,
    ) -> AbstractContextManager[None]:
        return self.span_with_kind(name, SpanKindEnum.INTERNAL, attributes)

    @contextlib.contextmanager
    def span_with_kind(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: Attributes | None = None,
    ) -> Iterator[None]:
        yield None


class OpenTelemetryTracer:
    """
    Tracer backed by ``opentelemetry.trace``.

    Spans go to whatever tracer provider the application installed; without
    one, OpenTelemetry hands out non-recording spans.

    Raises:
        ImportError: If opentelemetry-api is not installed.
    """

    def __init__(self, tracer_name: str) -> None:
        from opentelemetry import trace

        self._tracer = trace.get_tracer(tracer_name)
        self._kinds = {
            SpanKindEnum.INTERNAL: trace.SpanKind.INTERNAL,
            SpanKindEnum.CLIENT: trace.SpanKind.CLIENT,
        }

    @property
    def enabled(self) -> bool:
        return True

    def span(
        self,
        name: str,
        attributes: Attributes | None = None,
    ) -> AbstractContextManager[Span]:
        return self.span_with_kind(name, SpanKindEnum.INTERNAL, attributes)

    def span_with_kind(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: Attributes | None = None,
    ) -> AbstractContextManager[Span]:
        return self._tracer.start_as_current_span(
            name,
            kind=self._kinds[kind],
            attributes=attributes or {},
        )


class MockTracer:
    """
    Tracer that records spans instead of exporting them.

    Attributes:
        spans: (name, attributes) per opened span, in opening order. The
            attributes are stored exactly as passed, None included.
        kinds: Span kind per entry of ``spans``.

    Example:
        >>> tracer = MockTracer()
        >>> coordinator = PoolMigrationCoordinator(current, legacy, tracer=tracer)
        >>> await coordinator.run(250, asset, False, 0)
        >>> tracer.span_names[0]
        'poolmigrate.coordinator.run'
    """

    def __init__(self) -> None:
        self.spans: list[tuple[str, Attributes | None]] = []
        self.kinds: list[SpanKindEnum] = []

    @property
    def enabled(self) -> bool:
        return True

    @property
    def span_names(self) -> list[str]:
        return [name for name, _ in self.spans]

    def clear(self) -> None:
        self.spans.clear()
        self.kinds.clear()

    def span(
        self,
        name: str,
        attributes: Attributes | None = None,
    ) -> AbstractContextManager[None]:
        return self.span_with_kind(name, SpanKindEnum.INTERNAL, attributes)

    @contextlib.contextmanager
    def span_with_kind(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: Attributes | None = None,
    ) -> Iterator[None]:
        self.spans.append((name, attributes))
        self.kinds.append(kind)
        yield None


def create_tracer(name: str, enable_tracing: bool = True) -> Tracer:
    """
    Build the tracer a component uses when none is injected.

    Returns an OpenTelemetryTracer named ``name`` when tracing is enabled
    and OpenTelemetry is importable, a NullTracer otherwise.
    """
    if enable_tracing and OTEL_AVAILABLE:
        return OpenTelemetryTracer(name)
    return NullTracer()


__all__ = [
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "SpanKindEnum",
    "create_tracer",
]
