"""DEX pool payload parsing and same-family liquidity filtering."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from ..core import normalise_address

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PoolToken:
    address: str
    symbol: str = ""
    tvl_usd: float | None = None


@dataclass(frozen=True)
class DexPool:
    address: str
    protocol: str = ""
    tokens: tuple[PoolToken, ...] = ()
    tvl_usd: float = 0.0

    def token(self, address: str) -> PoolToken | None:
        target = normalise_address(address)
        for token in self.tokens:
            if normalise_address(token.address) == target:
                return token
        return None

    def token_share_usd(self, address: str) -> float:
        """USD value of ``address``'s side of the pool.

        Falls back to an even split of pool TVL when per-token values are absent.
        """

        token = self.token(address)
        if token is None:
            return 0.0
        if token.tvl_usd is not None:
            return token.tvl_usd
        return self.tvl_usd / len(self.tokens) if self.tokens else 0.0


def _float(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_pools(payload: Any, protocol: str = "") -> list[DexPool]:
    """Parse ``{"pools": [...]}`` (or ``{"data": {...}}`` / a bare list) into pools.

    Tokens may appear under ``tokens`` or ``coins``; malformed entries are skipped.
    """

    if isinstance(payload, Mapping) and "data" in payload:
        payload = payload["data"]
    items = payload.get("pools", []) if isinstance(payload, Mapping) else payload
    pools: list[DexPool] = []
    for item in items or []:
        if not isinstance(item, Mapping):
            continue
        tokens: list[PoolToken] = []
        for raw in item.get("tokens") or item.get("coins") or []:
            if not isinstance(raw, Mapping) or not raw.get("address"):
                continue
            tokens.append(
                PoolToken(
                    address=str(raw["address"]),
                    symbol=str(raw.get("symbol", "")),
                    tvl_usd=_float(raw.get("tvlUSD", raw.get("usdValue"))),
                )
            )
        pools.append(
            DexPool(
                address=str(item.get("address") or item.get("id") or ""),
                protocol=protocol,
                tokens=tuple(tokens),
                tvl_usd=_float(item.get("tvlUSD", item.get("usdTotal"))) or 0.0,
            )
        )
    return pools


def is_same_family_pair(token: str, other: str, families: Mapping[str, str]) -> bool:
    """``True`` when both tokens belong to the same stablecoin family."""

    family = families.get(normalise_address(token))
    return family is not None and families.get(normalise_address(other)) == family


def filtered_token_tvl(
    pools: Iterable[DexPool], token_address: str, families: Mapping[str, str]
) -> float:
    """Sum ``token_address``'s side of every pool that pairs it outside its family.

    A pool is skipped entirely when any other token in it shares the token's
    family (e.g. DAI-USDS), so DAI-USDC counts and DAI-USDS does not.
    """

    token = normalise_address(token_address)
    total = 0.0
    for pool in pools:
        if pool.token(token) is None:
            continue
        others = [t.address for t in pool.tokens if normalise_address(t.address) != token]
        if any(is_same_family_pair(token, other, families) for other in others):
            logger.debug("Excluding same-family pool %s for %s", pool.address, token)
            continue
        total += pool.token_share_usd(token)
    return total


__all__ = ["PoolToken", "DexPool", "parse_pools", "is_same_family_pair", "filtered_token_tvl"]
