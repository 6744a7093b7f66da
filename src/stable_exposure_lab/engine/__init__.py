"""Fetch engine: query cache, upstream fetchers, fan-out and source selection."""

from __future__ import annotations

from .aggregate import Descriptor, MultiAddressAggregator
from .fallback import (
    FallbackResolver,
    InsuranceFundStrategy,
    StakedSupplyStrategy,
    select_insurance_strategy,
    select_staked_supply_strategy,
)
from .fetchers import SourceFetchers, pick_number
from .query import CacheEntry, QueryState, SourceQuery

__all__ = [
    "SourceQuery",
    "QueryState",
    "CacheEntry",
    "SourceFetchers",
    "pick_number",
    "MultiAddressAggregator",
    "Descriptor",
    "FallbackResolver",
    "InsuranceFundStrategy",
    "StakedSupplyStrategy",
    "select_insurance_strategy",
    "select_staked_supply_strategy",
]
