"""Upstream client protocol consumed by the fetch engine."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol


class UpstreamClient(Protocol):
    """Async access to the market, on-chain, lending and operator endpoints.

    Implementations may raise :class:`~stable_exposure_lab.core.TransientFetchError`
    for retryable failures and :class:`~stable_exposure_lab.core.UpstreamDataError`
    for unusable payloads; any other exception is treated as transient.
    """

    async def fetch_market_data(self, coingecko_id: str) -> dict[str, Any]: ...

    async def fetch_fdv(self, coingecko_id: str) -> dict[str, Any]: ...

    async def fetch_filtered_tvl(self, protocol: str, token_address: str) -> float: ...

    async def fetch_lending_market_usage(
        self, protocol: str, contract_address: str
    ) -> dict[str, Any]: ...

    async def get_lp_token_value_usd(
        self,
        lp_token_address: str,
        holder_address: str,
        pool_address: str,
        underlying_tokens: Sequence[str],
        protocol: str,
    ) -> dict[str, Any]: ...

    async def fetch_manual_entry(self, symbol: str, metric_key: str) -> dict[str, Any] | None: ...

    async def fetch_token_balance_usd(
        self, token_address: str, holder_address: str
    ) -> dict[str, Any]: ...

    async def fetch_total_supply(self, token_address: str) -> dict[str, Any]: ...

    async def fetch_insurance_fund(self, symbol: str) -> dict[str, Any]: ...

    async def fetch_collateralization_ratio(self, symbol: str) -> dict[str, Any]: ...

    async def fetch_bridge_supply(self, symbol: str) -> dict[str, Any]: ...


__all__ = ["UpstreamClient"]
