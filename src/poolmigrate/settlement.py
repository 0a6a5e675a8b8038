"""
SettlementWaiter - read-after-write consistency for registry mutations.

A confirmed transaction is not always visible to the next read: the RPC
node answering the read may lag the one that reported the receipt. The
waiter first sleeps the operator's fixed settlement delay and then, when
settlement verification is enabled, polls a probe until the written value
is observed or the poll budget runs out.

Both waits use ``asyncio.sleep``: the workflow is suspended, other tasks in
the event loop keep running.

Usage:
    >>> waiter = SettlementWaiter(MigrationConfig())
    >>> await waiter.delay(5)
    >>> count = await waiter.wait_until(
    ...     current.pool_count,
    ...     lambda count: count > expected_index,
    ...     description="new pool visible in current registry",
    ...     registry="current",
    ... )
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from poolmigrate.exceptions import PoolMigrationError, ReadFailureError, SettlementTimeoutError
from poolmigrate.models import MigrationConfig
from poolmigrate.observability import (
    ATTR_REGISTRY,
    ATTR_SETTLEMENT_DELAY,
    Tracer,
    create_tracer,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SettlementWaiter:
    """
    Waits for confirmed registry writes to become readable.

    Attributes:
        _config: Poll interval, poll budget and whether polling is enabled.
        _sleep: Sleep coroutine; replaceable in tests.
        _clock: Monotonic clock; replaceable in tests.
    """

    def __init__(
        self,
        config: MigrationConfig | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._config = config or MigrationConfig()
        self._sleep = sleep
        self._clock = clock

    async def delay(self, seconds: int) -> None:
        """
        Sleep the fixed settlement delay.

        Args:
            seconds: Whole seconds to wait; 0 returns immediately.
        """
        with self._tracer.span(
            "poolmigrate.settlement.delay",
            {ATTR_SETTLEMENT_DELAY: seconds},
        ):
            if seconds <= 0:
                return
            logger.info("Sleeping %d seconds before dependent reads", seconds)
            await self._sleep(seconds)

    async def wait_until(
        self,
        probe: Callable[[], Awaitable[T]],
        predicate: Callable[[T], bool],
        *,
        description: str,
        registry: str,
    ) -> T:
        """
        Poll ``probe`` until ``predicate`` holds for its result.

        The probe is called at least once even when verification is disabled,
        so callers always get a fresh value back.

        Args:
            probe: Read against the registry that was written.
            predicate: Returns True once the write is visible.
            description: What is being waited for, for logs and errors.
            registry: Registry name, for logs and errors.

        Returns:
            The first probe result that satisfied the predicate, or the
            single probe result when verification is disabled.

        Raises:
            SettlementTimeoutError: If the poll budget runs out.
            ReadFailureError: If the probe fails with a non-workflow error.
        """
        with self._tracer.span(
            "poolmigrate.settlement.wait_until",
            {ATTR_REGISTRY: registry},
        ):
            value = await self._probe(probe, registry)
            if not self._config.verify_settlement:
                return value

            deadline = self._clock() + self._config.settlement_timeout_seconds
            attempts = 1
            while not predicate(value):
                if self._clock() >= deadline:
                    raise SettlementTimeoutError(
                        description,
                        self._config.settlement_timeout_seconds,
                        last_observed=value,
                        registry=registry,
                    )
                logger.debug(
                    "Waiting for %s (attempt %d, last observed %r)", description, attempts, value
                )
                await self._sleep(self._config.settlement_poll_interval_seconds)
                value = await self._probe(probe, registry)
                attempts += 1

            if attempts > 1:
                logger.info("Observed %s after %d reads", description, attempts)
            return value

    async def _probe(self, probe: Callable[[], Awaitable[T]], registry: str) -> T:
        try:
            return await probe()
        except PoolMigrationError:
            raise
        except Exception as e:
            name = getattr(probe, "__name__", "probe")
            raise ReadFailureError(name, registry=registry, reason=str(e)) from e


__all__ = ["SettlementWaiter"]
