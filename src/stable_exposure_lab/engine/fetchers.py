"""Cached, normalised access to every upstream call the engine makes.

Each method builds a cache key ``(kind, *params)``, routes the client call
through :class:`SourceQuery` with the policy configured for that kind and
reduces the raw payload to a single number.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from ..core import (
    ConfigurationError,
    LPSpec,
    MetricResult,
    SourcePolicy,
    UpstreamDataError,
    format_token_amount,
    normalise_address,
)
from ..core.constants import (
    BRIDGE_SUPPLY,
    COLLATERALIZATION_RATIO,
    FDV,
    FILTERED_TVL,
    INSURANCE_FUND,
    LENDING_USAGE,
    LP_VALUE,
    MANUAL_ENTRY,
    MARKET_DATA,
    TOKEN_BALANCE,
    TOTAL_SUPPLY,
)
from ..sources.base import UpstreamClient
from .query import SourceQuery

logger = logging.getLogger(__name__)


def pick_number(payload: Any, *keys: str) -> float:
    """Return the first non-null numeric field among ``keys``.

    A ``{"data": {...}}`` envelope is unwrapped first. Raises
    :class:`UpstreamDataError` when none of the keys holds a number.
    """

    if isinstance(payload, Mapping) and isinstance(payload.get("data"), Mapping):
        payload = payload["data"]
    if not isinstance(payload, Mapping):
        raise UpstreamDataError(f"unexpected payload: {type(payload).__name__}")
    for key in keys:
        value = payload.get(key)
        if value is None:
            continue
        try:
            return float(value)
        except (TypeError, ValueError):
            raise UpstreamDataError(f"non-numeric {key}: {value!r}") from None
    raise UpstreamDataError(f"missing {keys[0]}")


class SourceFetchers:
    """Bind an :class:`UpstreamClient` to a shared :class:`SourceQuery`."""

    def __init__(
        self,
        client: UpstreamClient,
        query: SourceQuery | None = None,
        policies: Mapping[str, SourcePolicy] | None = None,
    ) -> None:
        self.client = client
        self.query = query or SourceQuery()
        self._policies = dict(policies or {})

    def policy(self, kind: str) -> SourcePolicy:
        return self._policies.get(kind) or SourcePolicy()

    async def _fetch(self, kind: str, params: tuple[Any, ...], fetcher) -> MetricResult[float]:
        return await self.query.fetch((kind, *params), self.policy(kind), fetcher)

    # -----------------
    # Market data
    # -----------------

    async def market_total_supply(self, coingecko_id: str) -> MetricResult[float]:
        async def _load() -> float:
            if not coingecko_id:
                raise ConfigurationError("no CoinGecko id")
            data = await self.client.fetch_market_data(coingecko_id)
            return pick_number(data, "totalSupply", "total_supply", "circulatingSupply")

        return await self._fetch(MARKET_DATA, (coingecko_id,), _load)

    async def fdv(self, coingecko_id: str) -> MetricResult[float]:
        async def _load() -> float:
            if not coingecko_id:
                raise ConfigurationError("no CoinGecko id")
            data = await self.client.fetch_fdv(coingecko_id)
            return pick_number(data, "fdv", "fully_diluted_valuation")

        return await self._fetch(FDV, (coingecko_id,), _load)

    # -----------------
    # DEX and lending
    # -----------------

    async def filtered_tvl(self, protocol: str, token_address: str) -> MetricResult[float]:
        token = normalise_address(token_address)

        async def _load() -> float:
            return float(await self.client.fetch_filtered_tvl(protocol, token))

        return await self._fetch(FILTERED_TVL, (protocol, token), _load)

    async def lending_usage(self, protocol: str, contract_address: str) -> MetricResult[float]:
        """Collateral TVL for ``contract_address``; supply TVL when collateral is absent."""

        token = normalise_address(contract_address)

        async def _load() -> float:
            data = await self.client.fetch_lending_market_usage(protocol, token)
            return pick_number(data, "totalCollateralTVL", "totalSupplyTVL")

        return await self._fetch(LENDING_USAGE, (protocol, token), _load)

    # -----------------
    # On-chain reads
    # -----------------

    async def token_balance_usd(self, token_address: str, holder: str) -> MetricResult[float]:
        token, owner = normalise_address(token_address), normalise_address(holder)

        async def _load() -> float:
            data = await self.client.fetch_token_balance_usd(token, owner)
            return pick_number(data, "balanceUSD")

        return await self._fetch(TOKEN_BALANCE, (token, owner, "usd"), _load)

    async def token_balance(self, token_address: str, holder: str) -> MetricResult[float]:
        """Balance in token units, not USD.

        The endpoint returns the raw ``balanceOf`` integer, so it is scaled by
        ``decimals`` (18 when absent) like the total-supply read.
        """

        token, owner = normalise_address(token_address), normalise_address(holder)

        async def _load() -> float:
            data = await self.client.fetch_token_balance_usd(token, owner)
            if isinstance(data, Mapping) and isinstance(data.get("data"), Mapping):
                data = data["data"]
            if not isinstance(data, Mapping):
                raise UpstreamDataError("missing balance")
            raw = data.get("balanceHex") or data.get("balance")
            if raw is None:
                raise UpstreamDataError("missing balance")
            return format_token_amount(raw, data.get("decimals", 18))

        return await self._fetch(TOKEN_BALANCE, (token, owner, "units"), _load)

    async def lp_value_usd(self, lp: LPSpec, holder: str) -> MetricResult[float]:
        owner = normalise_address(holder)

        async def _load() -> float:
            if not lp.is_priceable:
                raise ConfigurationError(f"LP spec {lp.lp_token_address or '?'} is incomplete")
            data = await self.client.get_lp_token_value_usd(
                lp.lp_token_address,
                owner,
                lp.pool_address,
                lp.underlying_tokens,
                lp.protocol,
            )
            return pick_number(data, "lpBalanceUSD")

        key = (normalise_address(lp.lp_token_address), owner, normalise_address(lp.pool_address))
        return await self._fetch(LP_VALUE, key, _load)

    async def onchain_total_supply(self, token_address: str) -> MetricResult[float]:
        token = normalise_address(token_address)

        async def _load() -> float:
            if not token:
                raise ConfigurationError("no token address")
            data = await self.client.fetch_total_supply(token)
            if isinstance(data, Mapping) and isinstance(data.get("data"), Mapping):
                data = data["data"]
            if not isinstance(data, Mapping) or data.get("totalSupply") is None:
                raise UpstreamDataError("missing totalSupply")
            return format_token_amount(data["totalSupply"], data.get("decimals", 18))

        return await self._fetch(TOTAL_SUPPLY, (token,), _load)

    # -----------------
    # Operator and protocol endpoints
    # -----------------

    async def manual_entry(self, symbol: str, metric_key: str) -> MetricResult[float]:
        """Operator-entered value; unavailable without error when none is stored."""

        async def _load() -> MetricResult[float]:
            data = await self.client.fetch_manual_entry(symbol, metric_key)
            value = data.get("data") if isinstance(data, Mapping) else None
            if value is None or (isinstance(data, Mapping) and data.get("success") is False):
                return MetricResult.not_available(source=MANUAL_ENTRY)
            try:
                number = float(value)
            except (TypeError, ValueError):
                raise UpstreamDataError(f"non-numeric manual entry: {value!r}") from None
            return MetricResult.of(number, source=MANUAL_ENTRY)

        return await self._fetch(MANUAL_ENTRY, (symbol, metric_key), _load)

    async def insurance_fund_api(self, symbol: str) -> MetricResult[float]:
        async def _load() -> float:
            data = await self.client.fetch_insurance_fund(symbol)
            return pick_number(data, "fundSize", "insuranceFund", "value")

        return await self._fetch(INSURANCE_FUND, (symbol,), _load)

    async def collateralization_ratio(self, symbol: str) -> MetricResult[float]:
        async def _load() -> float:
            data = await self.client.fetch_collateralization_ratio(symbol)
            return pick_number(data, "currentRatio", "collateralizationRatio", "value")

        return await self._fetch(COLLATERALIZATION_RATIO, (symbol,), _load)

    async def bridge_supply(self, symbol: str) -> MetricResult[float]:
        async def _load() -> float:
            data = await self.client.fetch_bridge_supply(symbol)
            return pick_number(data, "totalBridgedSupply", "bridgeSupply", "value")

        return await self._fetch(BRIDGE_SUPPLY, (symbol,), _load)


__all__ = ["SourceFetchers", "pick_number"]
