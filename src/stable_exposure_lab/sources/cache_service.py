"""aiohttp client for the cache service REST API.

The cache service fronts CoinGecko, the DEX and lending subgraphs, an
Ethereum node and the operator manual-data store. This adapter only maps
HTTP outcomes onto the error taxonomy; caching and retries live in
:mod:`stable_exposure_lab.engine`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from typing import Any

import aiohttp

from ..core import TransientFetchError, UpstreamDataError, normalise_address
from .dex import filtered_token_tvl, parse_pools

logger = logging.getLogger(__name__)


class CacheServiceClient:
    """Implements :class:`~stable_exposure_lab.sources.base.UpstreamClient` over HTTP."""

    DEFAULT_BASE_URL = "http://localhost:4000"

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        token_families: Mapping[str, str] | None = None,
        timeout: float = 10.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token_families = {
            normalise_address(address): family for address, family in (token_families or {}).items()
        }
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None
        self._closed = False

    async def __aenter__(self) -> "CacheServiceClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        self._closed = True
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._closed:
            raise TransientFetchError("cache service client is closed")
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
            self._owns_session = True
        return self._session

    async def _get_json(
        self,
        path: str,
        params: Mapping[str, str] | None = None,
        *,
        allow_missing: bool = False,
    ) -> Any:
        url = f"{self.base_url}{path}"
        session = self._get_session()
        try:
            async with session.get(url, params=params) as response:
                if response.status == 404 and allow_missing:
                    return None
                if response.status == 429 or response.status >= 500:
                    raise TransientFetchError(f"GET {path} returned HTTP {response.status}")
                if response.status != 200:
                    raise UpstreamDataError(f"GET {path} returned HTTP {response.status}")
                try:
                    return await response.json(content_type=None)
                except ValueError as exc:
                    raise UpstreamDataError(f"GET {path} returned invalid JSON") from exc
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransientFetchError(f"GET {path} failed: {exc}") from exc

    # -----------------
    # CoinGecko
    # -----------------

    async def fetch_market_data(self, coingecko_id: str) -> dict[str, Any]:
        data = await self._get_json(f"/api/coingecko/market-data/{coingecko_id}")
        if isinstance(data, Mapping) and isinstance(data.get("market_data"), Mapping):
            data = data["market_data"]
        if not isinstance(data, Mapping):
            raise UpstreamDataError(f"market data for {coingecko_id} is not an object")
        return {
            "totalSupply": data.get("totalSupply", data.get("total_supply")),
            "circulatingSupply": data.get("circulatingSupply", data.get("circulating_supply")),
        }

    async def fetch_fdv(self, coingecko_id: str) -> dict[str, Any]:
        return await self._get_json(f"/api/coingecko/fdv/{coingecko_id}")

    # -----------------
    # DEX and lending
    # -----------------

    async def fetch_filtered_tvl(self, protocol: str, token_address: str) -> float:
        payload = await self._get_json(f"/api/{protocol}/pools/{token_address}")
        pools = parse_pools(payload, protocol)
        return filtered_token_tvl(pools, token_address, self.token_families)

    async def fetch_lending_market_usage(
        self, protocol: str, contract_address: str
    ) -> dict[str, Any]:
        return await self._get_json(f"/api/{protocol}/collateral/{contract_address}")

    async def get_lp_token_value_usd(
        self,
        lp_token_address: str,
        holder_address: str,
        pool_address: str,
        underlying_tokens: Sequence[str],
        protocol: str,
    ) -> dict[str, Any]:
        params = {
            "pool": pool_address,
            "tokens": ",".join(underlying_tokens),
            "protocol": protocol,
        }
        return await self._get_json(
            f"/api/ethereum/lp-token-value/{lp_token_address}/{holder_address}", params
        )

    # -----------------
    # Ethereum node
    # -----------------

    async def fetch_token_balance_usd(
        self, token_address: str, holder_address: str
    ) -> dict[str, Any]:
        return await self._get_json(f"/api/ethereum/token-balance/{token_address}/{holder_address}")

    async def fetch_total_supply(self, token_address: str) -> dict[str, Any]:
        return await self._get_json(f"/api/ethereum/total-supply/{token_address}")

    # -----------------
    # Operator and protocol endpoints
    # -----------------

    async def fetch_manual_entry(self, symbol: str, metric_key: str) -> dict[str, Any] | None:
        return await self._get_json(f"/api/manual-data/{symbol}/{metric_key}", allow_missing=True)

    async def fetch_insurance_fund(self, symbol: str) -> dict[str, Any]:
        return await self._get_json(f"/api/stablecoin/insurance-fund/{symbol.lower()}")

    async def fetch_collateralization_ratio(self, symbol: str) -> dict[str, Any]:
        return await self._get_json(f"/api/stablecoin/collateralization-ratio/{symbol.lower()}")

    async def fetch_bridge_supply(self, symbol: str) -> dict[str, Any]:
        return await self._get_json(f"/api/stablecoin/bridge-supply/{symbol}")


__all__ = ["CacheServiceClient"]
