"""Core data structures for :mod:`stable_exposure_lab`.

This subpackage groups the fundamental models, errors and repositories used
across the project so they can be shared without importing the engine or the
HTTP adapters exposed in :mod:`stable_exposure_lab.__init__`.
"""

from __future__ import annotations

from .addresses import is_sentinel, normalise_address, usable_addresses
from .constants import (
    DEX_PROTOCOLS,
    KNOWN_TOKEN_FAMILIES,
    LENDING_PROTOCOLS,
    METRIC_LABELS,
    METRIC_SECTIONS,
    ZERO_ADDRESS,
)
from .errors import (
    ConfigurationError,
    ExposureError,
    TransientFetchError,
    UpstreamDataError,
)
from .models import (
    InsuranceFundConfig,
    LPSpec,
    MetricResult,
    SourcePolicy,
    StablecoinConfig,
    StablecoinSnapshot,
    sum_results,
)
from .repositories import SnapshotRepository
from .units import format_token_amount

__all__ = [
    "MetricResult",
    "LPSpec",
    "InsuranceFundConfig",
    "SourcePolicy",
    "StablecoinConfig",
    "StablecoinSnapshot",
    "SnapshotRepository",
    "sum_results",
    "ExposureError",
    "TransientFetchError",
    "UpstreamDataError",
    "ConfigurationError",
    "ZERO_ADDRESS",
    "DEX_PROTOCOLS",
    "LENDING_PROTOCOLS",
    "KNOWN_TOKEN_FAMILIES",
    "METRIC_LABELS",
    "METRIC_SECTIONS",
    "is_sentinel",
    "normalise_address",
    "usable_addresses",
    "format_token_amount",
]
