"""
StableExposureLab: per-stablecoin supply, liquidity, lending and safety-buffer metrics.

Design goals:
- One async query cache per process (TTL, stale-while-revalidate, request coalescing)
- Multi-address aggregation that tolerates partial upstream failure
- Config-driven source selection (manual overrides, insurance-fund variants, staked supply)
- Pure derived metrics that keep "unavailable" distinct from a measured zero
- Immutable data model (MetricResult, StablecoinSnapshot) + light repository
"""

from __future__ import annotations

from . import observability, reporting
from .analytics import derived
from .config import (
    DEFAULT_SOURCE_POLICIES,
    DEFAULT_STABLECOINS,
    MANUAL_DEFAULTS,
    build_token_families,
    load_config,
    load_source_policies,
    load_stablecoins,
    usable_manual_defaults,
    validate_manual_defaults,
)
from .core import (
    ConfigurationError,
    ExposureError,
    InsuranceFundConfig,
    LPSpec,
    MetricResult,
    SnapshotRepository,
    SourcePolicy,
    StablecoinConfig,
    StablecoinSnapshot,
    TransientFetchError,
    UpstreamDataError,
    format_token_amount,
)
from .engine import (
    FallbackResolver,
    MultiAddressAggregator,
    QueryState,
    SourceFetchers,
    SourceQuery,
)
from .pipeline import MetricsSnapshot, Pipeline
from .sources import CacheServiceClient, UpstreamClient

__all__ = [
    "MetricResult",
    "LPSpec",
    "InsuranceFundConfig",
    "SourcePolicy",
    "StablecoinConfig",
    "StablecoinSnapshot",
    "SnapshotRepository",
    "ExposureError",
    "TransientFetchError",
    "UpstreamDataError",
    "ConfigurationError",
    "format_token_amount",
    "SourceQuery",
    "QueryState",
    "SourceFetchers",
    "MultiAddressAggregator",
    "FallbackResolver",
    "MetricsSnapshot",
    "Pipeline",
    "UpstreamClient",
    "CacheServiceClient",
    "DEFAULT_SOURCE_POLICIES",
    "DEFAULT_STABLECOINS",
    "MANUAL_DEFAULTS",
    "load_config",
    "load_source_policies",
    "load_stablecoins",
    "build_token_families",
    "usable_manual_defaults",
    "validate_manual_defaults",
    "derived",
    "observability",
    "reporting",
]
