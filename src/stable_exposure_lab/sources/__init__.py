"""Upstream adapters for :mod:`stable_exposure_lab`."""

from __future__ import annotations

from .base import UpstreamClient
from .cache_service import CacheServiceClient
from .dex import DexPool, PoolToken, filtered_token_tvl, is_same_family_pair, parse_pools

__all__ = [
    "UpstreamClient",
    "CacheServiceClient",
    "DexPool",
    "PoolToken",
    "parse_pools",
    "is_same_family_pair",
    "filtered_token_tvl",
]
