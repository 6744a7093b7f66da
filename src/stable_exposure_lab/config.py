"""Configuration loading: runtime settings, source policies and the stablecoin registry."""

from __future__ import annotations

import copy
import logging
import os
import tomllib
from collections.abc import Iterable, Mapping
from dataclasses import fields, replace
from pathlib import Path
from typing import Any, cast

from .core import (
    ConfigurationError,
    InsuranceFundConfig,
    SourcePolicy,
    StablecoinConfig,
    normalise_address,
)
from .core.constants import (
    BRIDGE_SUPPLY,
    COLLATERALIZATION_RATIO,
    FDV,
    FILTERED_TVL,
    INSURANCE_FUND,
    KNOWN_TOKEN_FAMILIES,
    LENDING_USAGE,
    LP_VALUE,
    MANUAL_BRIDGE_SUPPLY,
    MANUAL_COLLATERALIZATION_RATIO,
    MANUAL_ENTRY,
    MARKET_DATA,
    MANUAL_METRIC_KEYS,
    TOKEN_BALANCE,
    TOTAL_SUPPLY,
    ZERO_ADDRESS,
)

logger = logging.getLogger(__name__)

CONFIG_ENV = "STABLE_EXPOSURE_CONFIG"
BASE_URL_ENV = "STABLE_EXPOSURE_BASE_URL"
OUTDIR_ENV = "STABLE_EXPOSURE_OUTDIR"
LOG_LEVEL_ENV = "STABLE_EXPOSURE_LOG_LEVEL"

DEFAULT_CONFIG: dict[str, Any] = {
    "service": {
        "base_url": "http://localhost:4000",
        "timeout": 10.0,
    },
    "engine": {
        "max_concurrency": 8,
        "snapshot_timeout": None,
    },
    "registry": {"path": None},
    "output": {"outdir": None, "detailed": True},
    "logging": {"level": "INFO"},
    "metrics_port": None,
    "policies": {},
}


def _policy(stale: float, cache: float, retries: int) -> SourcePolicy:
    return SourcePolicy(stale_time=stale, cache_time=cache, max_retries=retries)


# stale seconds / cache seconds / retries per source kind
DEFAULT_SOURCE_POLICIES: dict[str, SourcePolicy] = {
    MARKET_DATA: _policy(300, 1800, 2),
    TOTAL_SUPPLY: _policy(300, 1800, 2),
    BRIDGE_SUPPLY: _policy(600, 3600, 2),
    FILTERED_TVL: _policy(300, 600, 2),
    LENDING_USAGE: _policy(900, 3600, 1),
    INSURANCE_FUND: _policy(1800, 7200, 1),
    FDV: _policy(1800, 7200, 1),
    COLLATERALIZATION_RATIO: _policy(900, 3600, 1),
    TOKEN_BALANCE: _policy(900, 3600, 1),
    LP_VALUE: _policy(900, 3600, 1),
    MANUAL_ENTRY: _policy(60, 300, 0),
}

# Used when no operator entry exists for the metric.
MANUAL_DEFAULTS: dict[str, dict[str, float]] = {
    "USDS_DAI": {MANUAL_BRIDGE_SUPPLY: 202_768_477, MANUAL_COLLATERALIZATION_RATIO: 1.4740},
    "USDe": {MANUAL_BRIDGE_SUPPLY: 324_696_777, MANUAL_COLLATERALIZATION_RATIO: 1.0057},
    "USR": {MANUAL_BRIDGE_SUPPLY: 9_253_865, MANUAL_COLLATERALIZATION_RATIO: 1.5160},
    "deUSD": {MANUAL_BRIDGE_SUPPLY: 28_450_791, MANUAL_COLLATERALIZATION_RATIO: 1.0069},
    "crvUSD": {MANUAL_BRIDGE_SUPPLY: 1_296, MANUAL_COLLATERALIZATION_RATIO: 2.0228},
    "USDO": {MANUAL_BRIDGE_SUPPLY: 1_503_626, MANUAL_COLLATERALIZATION_RATIO: 1.0364},
    "fxUSD": {MANUAL_BRIDGE_SUPPLY: 0, MANUAL_COLLATERALIZATION_RATIO: 1.8839},
    "reUSD": {MANUAL_BRIDGE_SUPPLY: 0, MANUAL_COLLATERALIZATION_RATIO: 1.1067},
}

DEFAULT_STABLECOINS: tuple[StablecoinConfig, ...] = (
    StablecoinConfig(
        symbol="USDS_DAI",
        name="USDS + DAI",
        category="maker_ecosystem",
        coingecko_ids=("dai", "usds"),
        contract_addresses=(
            ("dai", "0x6b175474e89094c44da98b954eedeac495271d0f"),
            ("usds", "0xdC035D45d973E3EC169d2276DDab16f1e407384F"),
        ),
        staked_token_address="0xa3931d71877C0E7a3148CB7Eb4463524FEc27fbD",
        manual_metrics=MANUAL_METRIC_KEYS,
    ),
    StablecoinConfig(
        symbol="USDe",
        name="USDe",
        category="synthetic",
        coingecko_ids=("ethena-usde",),
        contract_addresses=(("usde", "0x4c9edd5852cd905f086c759e8383e09bff1e68b3"),),
        staked_token_address="0x9D39A5DE30e57443BfF2A8307A4256c8797A3497",
        manual_metrics=MANUAL_METRIC_KEYS,
    ),
    StablecoinConfig(
        symbol="USR",
        name="USR",
        category="real_world_assets",
        coingecko_ids=("usr",),
        contract_addresses=(("usr", ZERO_ADDRESS),),
        insurance_fund=InsuranceFundConfig(kind="fdv", rlp_coingecko_id="resolv-rlp"),
        manual_metrics=MANUAL_METRIC_KEYS,
    ),
    StablecoinConfig(
        symbol="deUSD",
        name="deUSD",
        category="decentralized",
        coingecko_ids=("deusd",),
        contract_addresses=(("deusd", ZERO_ADDRESS),),
        manual_metrics=MANUAL_METRIC_KEYS,
    ),
    StablecoinConfig(
        symbol="crvUSD",
        name="crvUSD",
        category="curve_ecosystem",
        coingecko_ids=("crvusd",),
        contract_addresses=(("crvusd", "0xf939e0a03fb07f59a73314e73794be0e57ac1b4e"),),
        staked_token_address="0x0655977FEb2f289A4aB78af67BAB0d17aAb84367",
        manual_metrics=MANUAL_METRIC_KEYS,
    ),
    StablecoinConfig(
        symbol="USDO",
        name="USDO",
        category="omnichain",
        coingecko_ids=("usdo",),
        contract_addresses=(("usdo", ZERO_ADDRESS),),
        manual_metrics=MANUAL_METRIC_KEYS,
    ),
    StablecoinConfig(
        symbol="fxUSD",
        name="fxUSD",
        category="fx_protocol",
        coingecko_ids=("fxusd",),
        contract_addresses=(("fxusd", ZERO_ADDRESS),),
        manual_metrics=MANUAL_METRIC_KEYS,
    ),
    StablecoinConfig(
        symbol="reUSD",
        name="reUSD",
        category="reserve_protocol",
        coingecko_ids=("reusd",),
        contract_addresses=(("reusd", ZERO_ADDRESS),),
        manual_metrics=MANUAL_METRIC_KEYS,
    ),
)


def _merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), dict):
            _merge(cast(dict, base[key]), value)
        else:
            base[key] = value
    return base


def load_config(path: str | Path | None = None) -> dict[str, Any]:
    """Load configuration from a TOML file and merge it over the defaults.

    Parameters
    ----------
    path:
        Optional path to a configuration file. Falls back to
        ``$STABLE_EXPOSURE_CONFIG``; when neither points at a file the
        built-in defaults are used.

    Returns
    -------
    dict[str, Any]
        Configuration with file values and environment overrides applied.
    """

    cfg = copy.deepcopy(DEFAULT_CONFIG)
    raw_path = path or os.getenv(CONFIG_ENV)
    cfg_path = Path(raw_path) if raw_path else None

    if cfg_path and cfg_path.is_file():
        with open(cfg_path, "rb") as f:
            file_cfg = tomllib.load(f)
        _merge(cfg, file_cfg)
    elif cfg_path:
        logger.warning("Config file not found at %s. Using defaults.", cfg_path)

    if base_url := os.getenv(BASE_URL_ENV):
        cfg["service"]["base_url"] = base_url
    if outdir := os.getenv(OUTDIR_ENV):
        cfg["output"]["outdir"] = outdir
    if level := os.getenv(LOG_LEVEL_ENV):
        cfg["logging"]["level"] = level
    return cfg


_POLICY_FIELDS = {f.name for f in fields(SourcePolicy)}


def load_source_policies(overrides: Mapping[str, Mapping[str, Any]] | None = None) -> dict[str, SourcePolicy]:
    """Default policies with ``[policies.<kind>]`` field overrides applied."""

    policies = dict(DEFAULT_SOURCE_POLICIES)
    for kind, values in (overrides or {}).items():
        unknown = set(values) - _POLICY_FIELDS
        if unknown:
            raise ConfigurationError(f"unknown policy fields for {kind}: {sorted(unknown)}")
        policies[kind] = replace(policies.get(kind, SourcePolicy()), **dict(values))
    return policies


def stablecoin_from_dict(raw: Mapping[str, Any]) -> StablecoinConfig:
    symbol = str(raw.get("symbol") or "").strip()
    if not symbol:
        raise ConfigurationError("stablecoin entry without symbol")
    addresses = raw.get("contract_addresses") or raw.get("contractAddresses") or {}
    if not isinstance(addresses, Mapping):
        raise ConfigurationError(f"{symbol}: contract_addresses must be a table")
    ids = raw.get("coingecko_ids") or raw.get("coingeckoIds") or ()
    if isinstance(ids, str):
        ids = (ids,)
    return StablecoinConfig(
        symbol=symbol,
        name=str(raw.get("name", symbol)),
        category=str(raw.get("category", "")),
        coingecko_ids=tuple(str(i) for i in ids),
        contract_addresses=tuple((str(k), str(v)) for k, v in addresses.items()),
        staked_coingecko_id=str(raw.get("staked_coingecko_id") or raw.get("stakedCoingeckoId") or ""),
        staked_token_address=str(
            raw.get("staked_token_address") or raw.get("stakedTokenAddress") or ""
        ),
        staking_contract=str(raw.get("staking_contract") or raw.get("stakingContract") or ""),
        insurance_fund=InsuranceFundConfig.from_dict(
            raw.get("insurance_fund") or raw.get("insuranceFund")
        ),
        manual_metrics=tuple(raw.get("manual_metrics") or raw.get("manualMetrics") or ()),
    )


def _check_unique(stablecoins: Iterable[StablecoinConfig]) -> tuple[StablecoinConfig, ...]:
    seen: set[str] = set()
    items = tuple(stablecoins)
    for stablecoin in items:
        if stablecoin.symbol in seen:
            raise ConfigurationError(f"duplicate stablecoin symbol: {stablecoin.symbol}")
        seen.add(stablecoin.symbol)
    return items


def load_stablecoins(path: str | Path | None = None) -> tuple[StablecoinConfig, ...]:
    """Parse ``[[stablecoins]]`` tables; the built-in registry when ``path`` is ``None``."""

    if path is None:
        return _check_unique(DEFAULT_STABLECOINS)
    cfg_path = Path(path)
    if not cfg_path.is_file():
        raise ConfigurationError(f"stablecoin registry not found: {cfg_path}")
    with open(cfg_path, "rb") as f:
        raw = tomllib.load(f)
    return _check_unique(stablecoin_from_dict(entry) for entry in raw.get("stablecoins", []))


def build_token_families(stablecoins: Iterable[StablecoinConfig]) -> dict[str, str]:
    """Map lower-case token address to family name for same-family pool filtering."""

    families = dict(KNOWN_TOKEN_FAMILIES)
    for stablecoin in stablecoins:
        for address in stablecoin.family_addresses:
            families[normalise_address(address)] = stablecoin.symbol
    return families


def validate_manual_defaults(
    defaults: Mapping[str, Mapping[str, Any]] | None = None,
) -> list[str]:
    """Return problems found in the manual defaults; empty when they are valid."""

    errors: list[str] = []
    for symbol, metrics in (MANUAL_DEFAULTS if defaults is None else defaults).items():
        for key, value in metrics.items():
            if problem := _manual_default_problem(key, value):
                errors.append(f"{symbol}.{key} {problem}")
    return errors


def usable_manual_defaults(
    defaults: Mapping[str, Mapping[str, Any]] | None = None,
) -> dict[str, dict[str, float]]:
    """Manual defaults with every invalid value dropped (and logged)."""

    usable: dict[str, dict[str, float]] = {}
    for symbol, metrics in (MANUAL_DEFAULTS if defaults is None else defaults).items():
        kept: dict[str, float] = {}
        for key, value in metrics.items():
            if value is None:
                continue
            if problem := _manual_default_problem(key, value):
                logger.warning("Manual default ignored: %s.%s %s", symbol, key, problem)
                continue
            kept[key] = float(value)
        if kept:
            usable[symbol] = kept
    return usable


def _manual_default_problem(key: str, value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return "must be a number"
    if key == MANUAL_BRIDGE_SUPPLY and value < 0:
        return "must be a non-negative number"
    if key == MANUAL_COLLATERALIZATION_RATIO and value <= 0:
        return "must be a positive number"
    return None


__all__ = [
    "DEFAULT_CONFIG",
    "DEFAULT_SOURCE_POLICIES",
    "DEFAULT_STABLECOINS",
    "MANUAL_DEFAULTS",
    "load_config",
    "load_source_policies",
    "load_stablecoins",
    "stablecoin_from_dict",
    "build_token_families",
    "validate_manual_defaults",
    "usable_manual_defaults",
]
