from __future__ import annotations

"""Run the snapshot engine across every configured stablecoin."""

import asyncio
from collections.abc import Sequence
from datetime import UTC, datetime
import logging

from ..core import MetricResult, SnapshotRepository, StablecoinConfig, StablecoinSnapshot
from ..core.constants import METRIC_SECTIONS
from .snapshot import MetricsSnapshot

logger = logging.getLogger(__name__)


def unavailable_snapshot(stablecoin: StablecoinConfig, error: str) -> StablecoinSnapshot:
    """Snapshot with every metric unavailable, used when collection itself failed."""

    metrics = {
        key: MetricResult.not_available(source=key, error=error)
        for section in METRIC_SECTIONS.values()
        for key in section
    }
    return StablecoinSnapshot(
        symbol=stablecoin.symbol,
        metrics=metrics,
        name=stablecoin.name,
        category=stablecoin.category,
        collected_at=datetime.now(tz=UTC).timestamp(),
    )


class Pipeline:
    """Collect snapshots for many stablecoins concurrently into a repository."""

    def __init__(
        self,
        stablecoins: Sequence[StablecoinConfig],
        engine: MetricsSnapshot,
        *,
        timeout: float | None = None,
    ) -> None:
        self._stablecoins: list[StablecoinConfig] = list(stablecoins)
        self.engine = engine
        self.timeout = timeout

    def run(self) -> SnapshotRepository:
        return asyncio.run(self.run_async())

    async def run_async(self) -> SnapshotRepository:
        results = await asyncio.gather(
            *(self.engine.collect(s, timeout=self.timeout) for s in self._stablecoins),
            return_exceptions=True,
        )
        repo = SnapshotRepository()
        for stablecoin, result in zip(self._stablecoins, results):
            if isinstance(result, BaseException):
                logger.warning("Source %s failed: %s", stablecoin.symbol, result)
                repo.add(unavailable_snapshot(stablecoin, f"{type(result).__name__}: {result}"))
                continue
            repo.add(result)
        return repo


__all__ = ["Pipeline", "MetricsSnapshot", "unavailable_snapshot"]
