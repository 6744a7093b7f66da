"""Bounded-concurrency fan-out that sums one metric over many inputs."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence
from functools import partial
from typing import Any

from ..core import MetricResult, sum_results, usable_addresses

logger = logging.getLogger(__name__)

Descriptor = tuple[str, Callable[[], Awaitable[Any]]]


def _as_result(value: Any, source: str) -> MetricResult[Any]:
    if isinstance(value, MetricResult):
        return value
    return MetricResult.of(value, source=source)


class MultiAddressAggregator:
    """Run (label, fetcher) descriptors concurrently and reduce them to a sum.

    At most ``max_concurrency`` fetchers run at once. A constituent that
    raises, times out or comes back unavailable contributes 0; the aggregate
    is unavailable only when all of them are.
    """

    def __init__(self, max_concurrency: int = 8) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.max_concurrency = max_concurrency

    async def fan_out(
        self,
        descriptors: Sequence[Descriptor],
        *,
        source: str,
        timeout: float | None = None,
    ) -> MetricResult[float]:
        descriptors = list(descriptors)
        if not descriptors:
            return MetricResult.not_available(source=source)

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _bounded(fetcher: Callable[[], Awaitable[Any]]) -> Any:
            async with semaphore:
                return await fetcher()

        tasks = [(label, asyncio.ensure_future(_bounded(fetcher))) for label, fetcher in descriptors]
        _, pending = await asyncio.wait([task for _, task in tasks], timeout=timeout)

        results: list[tuple[str, MetricResult[Any]]] = []
        for label, task in tasks:
            if task in pending:
                results.append((label, MetricResult.pending(source=source)))
            elif task.cancelled():
                results.append((label, MetricResult.not_available(source=source, error="cancelled")))
            elif task.exception() is not None:
                exc = task.exception()
                logger.warning("Source %s failed for %s: %s", source, label, exc)
                results.append(
                    (label, MetricResult.not_available(source=source, error=f"{type(exc).__name__}: {exc}"))
                )
            else:
                results.append((label, _as_result(task.result(), source)))
        return sum_results(results, source=source)

    async def aggregate(
        self,
        addresses: Iterable[str | None],
        metric_fetcher: Callable[[str], Awaitable[Any]],
        *,
        source: str,
        timeout: float | None = None,
    ) -> MetricResult[float]:
        """Sum ``metric_fetcher(address)`` over the usable addresses.

        Empty and zero-address entries are dropped before any call is made;
        with nothing left the result is unavailable.
        """

        usable = usable_addresses(addresses)
        if not usable:
            logger.debug("No usable addresses for %s", source)
            return MetricResult.not_available(source=source)
        descriptors = [(address, partial(metric_fetcher, address)) for address in usable]
        return await self.fan_out(descriptors, source=source, timeout=timeout)


__all__ = ["MultiAddressAggregator", "Descriptor"]
