"""Per-stablecoin orchestration of every tracked metric."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Mapping
from datetime import UTC, datetime
from functools import partial
from typing import Any

from .. import observability
from ..analytics import derived
from ..config import MANUAL_DEFAULTS
from ..core import (
    MetricResult,
    SourcePolicy,
    StablecoinConfig,
    StablecoinSnapshot,
)
from ..core.constants import (
    DEX_PROTOCOLS,
    LENDING_PROTOCOLS,
    MANUAL_BRIDGE_SUPPLY,
    MANUAL_COLLATERALIZATION_RATIO,
    METRIC_SECTIONS,
)
from ..engine import FallbackResolver, MultiAddressAggregator, SourceFetchers, SourceQuery
from ..sources.base import UpstreamClient

logger = logging.getLogger(__name__)


class MetricsSnapshot:
    """Collect a :class:`StablecoinSnapshot` for one stablecoin at a time.

    Either pass an :class:`UpstreamClient` (a fresh :class:`SourceFetchers`
    is built around it) or a ready ``fetchers`` object to share one cache
    between several engines.
    """

    def __init__(
        self,
        client: UpstreamClient | None = None,
        *,
        fetchers: SourceFetchers | None = None,
        query: SourceQuery | None = None,
        policies: Mapping[str, SourcePolicy] | None = None,
        max_concurrency: int = 8,
        manual_defaults: Mapping[str, Mapping[str, float]] | None = None,
    ) -> None:
        if fetchers is None:
            if client is None:
                raise ValueError("either client or fetchers is required")
            fetchers = SourceFetchers(client, query, policies)
        self.fetchers = fetchers
        self.aggregator = MultiAddressAggregator(max_concurrency)
        self.resolver = FallbackResolver(
            fetchers,
            self.aggregator,
            MANUAL_DEFAULTS if manual_defaults is None else manual_defaults,
        )

    # -----------------
    # Top-level metrics
    # -----------------

    async def total_supply(self, stablecoin: StablecoinConfig) -> MetricResult[float]:
        """Sum of CoinGecko supplies, or the primary contract's on-chain supply."""

        if stablecoin.coingecko_ids:
            descriptors = [
                (cid, partial(self.fetchers.market_total_supply, cid))
                for cid in stablecoin.coingecko_ids
            ]
            return await self.aggregator.fan_out(descriptors, source="coingecko")
        if stablecoin.primary_address:
            return await self.fetchers.onchain_total_supply(stablecoin.primary_address)
        return MetricResult.not_available(source="unconfigured")

    async def mainnet_supply(self, stablecoin: StablecoinConfig) -> MetricResult[float]:
        return await self.aggregator.aggregate(
            stablecoin.contract_address_list,
            self.fetchers.onchain_total_supply,
            source="onchain_total_supply",
        )

    async def bridge_supply(self, stablecoin: StablecoinConfig) -> MetricResult[float]:
        return await self.resolver.with_manual_override(
            stablecoin.symbol,
            MANUAL_BRIDGE_SUPPLY,
            partial(self.fetchers.bridge_supply, stablecoin.symbol),
        )

    async def collateralization_ratio(self, stablecoin: StablecoinConfig) -> MetricResult[float]:
        return await self.resolver.with_manual_override(
            stablecoin.symbol,
            MANUAL_COLLATERALIZATION_RATIO,
            partial(self.fetchers.collateralization_ratio, stablecoin.symbol),
        )

    async def dex_tvl(self, stablecoin: StablecoinConfig, protocol: str) -> MetricResult[float]:
        return await self.aggregator.aggregate(
            stablecoin.contract_address_list,
            partial(self.fetchers.filtered_tvl, protocol),
            source=f"{protocol}_filtered_tvl",
        )

    async def lending_collateral(
        self, stablecoin: StablecoinConfig, protocol: str
    ) -> MetricResult[float]:
        return await self.aggregator.aggregate(
            stablecoin.lending_addresses,
            partial(self.fetchers.lending_usage, protocol),
            source=f"{protocol}_collateral",
        )

    def _jobs(self, stablecoin: StablecoinConfig) -> dict[str, Awaitable[MetricResult[Any]]]:
        jobs: dict[str, Awaitable[MetricResult[Any]]] = {
            "total_supply": self.total_supply(stablecoin),
            "bridge_supply": self.bridge_supply(stablecoin),
            "mainnet_supply": self.mainnet_supply(stablecoin),
        }
        for protocol in DEX_PROTOCOLS:
            jobs[f"{protocol}_tvl"] = self.dex_tvl(stablecoin, protocol)
        for protocol in LENDING_PROTOCOLS:
            jobs[f"{protocol}_collateral"] = self.lending_collateral(stablecoin, protocol)
        jobs["insurance_fund"] = self.resolver.insurance_fund(stablecoin)
        jobs["collateralization_ratio"] = self.collateralization_ratio(stablecoin)
        jobs["staked_supply"] = self.resolver.staked_supply(stablecoin)
        return jobs

    # -----------------
    # Snapshot
    # -----------------

    async def collect(
        self, stablecoin: StablecoinConfig, timeout: float | None = None
    ) -> StablecoinSnapshot:
        """Resolve every metric for ``stablecoin``.

        Metrics still running after ``timeout`` seconds are reported as
        loading; their fetches keep running and fill the cache.
        """

        self.fetchers.query.evict_expired()
        tasks = {key: asyncio.ensure_future(job) for key, job in self._jobs(stablecoin).items()}
        _, pending = await asyncio.wait(tasks.values(), timeout=timeout)

        metrics: dict[str, MetricResult[Any]] = {}
        for key, task in tasks.items():
            if task in pending:
                metrics[key] = MetricResult.pending(source=key)
            elif task.cancelled():
                metrics[key] = MetricResult.not_available(source=key, error="cancelled")
            elif task.exception() is not None:
                exc = task.exception()
                logger.warning("Metric %s for %s failed: %s", key, stablecoin.symbol, exc)
                metrics[key] = MetricResult.not_available(
                    source=key, error=f"{type(exc).__name__}: {exc}"
                )
            else:
                metrics[key] = task.result()

        metrics.update(self.derive(metrics))
        ordered = {
            key: metrics[key]
            for section in METRIC_SECTIONS.values()
            for key in section
            if key in metrics
        }
        snapshot = StablecoinSnapshot(
            symbol=stablecoin.symbol,
            metrics=ordered,
            name=stablecoin.name,
            category=stablecoin.category,
            collected_at=datetime.now(tz=UTC).timestamp(),
        )
        observability.record_snapshot(snapshot)
        if snapshot.has_error:
            logger.info("Snapshot for %s has errors: %s", stablecoin.symbol, snapshot.errors)
        return snapshot

    @staticmethod
    def derive(metrics: Mapping[str, MetricResult[Any]]) -> dict[str, MetricResult[float]]:
        liquidity = derived.total_mainnet_liquidity(
            metrics["curve_tvl"],
            metrics["balancer_tvl"],
            metrics["uniswap_tvl"],
            metrics["sushi_tvl"],
        )
        lending = derived.total_lending_market_usage(
            {protocol: metrics[f"{protocol}_collateral"] for protocol in LENDING_PROTOCOLS}
        )
        on_mainnet = derived.supply_on_mainnet_percent(
            metrics["mainnet_supply"], metrics["bridge_supply"]
        )
        factor = derived.factor_of_safety(
            metrics["insurance_fund"],
            metrics["collateralization_ratio"],
            metrics["staked_supply"],
            metrics["total_supply"],
            on_mainnet,
        )
        excl = derived.excl_lending_other_networks(
            metrics["total_supply"], metrics["bridge_supply"], lending
        )
        return {
            "total_mainnet_liquidity": liquidity,
            "total_lending_markets": lending,
            "supply_on_mainnet_percent": on_mainnet,
            "factor_of_safety": factor,
            "excl_lending_other_networks": excl,
            "theoretical_supply_limit": derived.theoretical_supply_limit(factor, excl, liquidity),
        }


__all__ = ["MetricsSnapshot"]
