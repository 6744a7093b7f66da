"""Source selection for metrics that several upstreams can answer.

Strategy choice depends only on the shape of the static configuration, never
on whether a preferred source happens to be failing right now.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from enum import Enum
from functools import lru_cache, partial

from ..core import (
    InsuranceFundConfig,
    MetricResult,
    StablecoinConfig,
    is_sentinel,
    usable_addresses,
)
from .aggregate import Descriptor, MultiAddressAggregator
from .fetchers import SourceFetchers

logger = logging.getLogger(__name__)

MANUAL_DEFAULT_SOURCE = "manual_default"


class InsuranceFundStrategy(str, Enum):
    FDV = "fdv"
    BALANCES = "balances"
    API = "api"


class StakedSupplyStrategy(str, Enum):
    COINGECKO = "coingecko"
    STAKING_CONTRACT = "staking_contract"
    TOKEN_SUPPLY = "token_supply"
    NONE = "none"


@lru_cache(maxsize=None)
def select_insurance_strategy(config: InsuranceFundConfig) -> InsuranceFundStrategy:
    """First match wins: FDV, then monitored balances, then the protocol API.

    An explicit ``kind`` restricts the choice to that variant, so an FDV
    config ignores any monitored addresses it also carries.
    """

    kind = config.kind
    if kind in (None, "fdv") and config.rlp_coingecko_id:
        return InsuranceFundStrategy.FDV
    if kind in (None, "balance", "balances") and usable_addresses(config.monitored_addresses):
        return InsuranceFundStrategy.BALANCES
    return InsuranceFundStrategy.API


@lru_cache(maxsize=None)
def select_staked_supply_strategy(stablecoin: StablecoinConfig) -> StakedSupplyStrategy:
    if stablecoin.staked_coingecko_id:
        return StakedSupplyStrategy.COINGECKO
    if not is_sentinel(stablecoin.staking_contract) and stablecoin.primary_address:
        return StakedSupplyStrategy.STAKING_CONTRACT
    if not is_sentinel(stablecoin.staked_token_address):
        return StakedSupplyStrategy.TOKEN_SUPPLY
    return StakedSupplyStrategy.NONE


def _tag(result: MetricResult[float], source: str) -> MetricResult[float]:
    if result.source == "unconfigured":
        return result
    return result.with_source(source)


class FallbackResolver:
    """Resolve insurance fund, staked supply and manually overridable metrics."""

    def __init__(
        self,
        fetchers: SourceFetchers,
        aggregator: MultiAddressAggregator | None = None,
        manual_defaults: Mapping[str, Mapping[str, float]] | None = None,
    ) -> None:
        self.fetchers = fetchers
        self.aggregator = aggregator or MultiAddressAggregator()
        self.manual_defaults = manual_defaults or {}

    async def insurance_fund(
        self, stablecoin: StablecoinConfig, timeout: float | None = None
    ) -> MetricResult[float]:
        config = stablecoin.insurance_fund
        strategy = select_insurance_strategy(config)
        logger.debug("Insurance fund for %s via %s", stablecoin.symbol, strategy.value)

        if strategy is InsuranceFundStrategy.FDV:
            result = await self.fetchers.fdv(config.rlp_coingecko_id)
            return _tag(result, "insurance_fund:fdv")
        if strategy is InsuranceFundStrategy.BALANCES:
            descriptors = self.balance_descriptors(config)
            if not descriptors:
                return MetricResult.not_available(source="unconfigured")
            return await self.aggregator.fan_out(
                descriptors, source="insurance_fund:balances", timeout=timeout
            )
        result = await self.fetchers.insurance_fund_api(stablecoin.symbol)
        return _tag(result, "insurance_fund:api")

    def balance_descriptors(self, config: InsuranceFundConfig) -> list[Descriptor]:
        """One descriptor per (holder, token) and (holder, LP position) pair.

        LP specs the valuation service cannot price are skipped.
        """

        lps = []
        for lp in config.lp_tokens_to_monitor:
            if lp.is_priceable:
                lps.append(lp)
            else:
                logger.warning(
                    "Skipping LP spec %s: pool, token pair and protocol are required",
                    lp.lp_token_address or "<missing>",
                )

        descriptors: list[Descriptor] = []
        tokens = usable_addresses(config.tokens_to_monitor)
        for holder in usable_addresses(config.monitored_addresses):
            for token in tokens:
                descriptors.append(
                    (f"{holder}:{token}", partial(self.fetchers.token_balance_usd, token, holder))
                )
            for lp in lps:
                descriptors.append(
                    (
                        f"{holder}:{lp.lp_token_address}",
                        partial(self.fetchers.lp_value_usd, lp, holder),
                    )
                )
        return descriptors

    async def with_manual_override(
        self,
        symbol: str,
        metric_key: str,
        automated: Callable[[], Awaitable[MetricResult[float]]],
    ) -> MetricResult[float]:
        """Operator entry, then configured default, then ``automated()``."""

        manual = await self.fetchers.manual_entry(symbol, metric_key)
        if manual.is_usable:
            logger.info("Using manual %s for %s", metric_key, symbol)
            return manual
        default = self.manual_defaults.get(symbol, {}).get(metric_key)
        if default is not None:
            return MetricResult.of(float(default), source=MANUAL_DEFAULT_SOURCE)
        return await automated()

    async def staked_supply(self, stablecoin: StablecoinConfig) -> MetricResult[float]:
        strategy = select_staked_supply_strategy(stablecoin)
        if strategy is StakedSupplyStrategy.COINGECKO:
            result = await self.fetchers.market_total_supply(stablecoin.staked_coingecko_id)
        elif strategy is StakedSupplyStrategy.STAKING_CONTRACT:
            result = await self.fetchers.token_balance(
                stablecoin.primary_address, stablecoin.staking_contract
            )
        elif strategy is StakedSupplyStrategy.TOKEN_SUPPLY:
            result = await self.fetchers.onchain_total_supply(stablecoin.staked_token_address)
        else:
            return MetricResult.not_available(source="unconfigured")
        return _tag(result, f"staked_supply:{strategy.value}")


__all__ = [
    "FallbackResolver",
    "InsuranceFundStrategy",
    "StakedSupplyStrategy",
    "select_insurance_strategy",
    "select_staked_supply_strategy",
]
