from __future__ import annotations

"""Derived metrics computed from already-resolved :class:`MetricResult` inputs.

All functions are pure. A derived metric is unavailable only when every
input is unavailable; otherwise unavailable inputs count as ``0`` and are
listed in ``missing`` while ``breakdown`` keeps the per-input values.
"""

from collections.abc import Callable, Mapping
import math

from ..core import MetricResult

Inputs = Mapping[str, "MetricResult[float] | float | int"]


def _coerce_result(value: object) -> MetricResult[float]:
    if isinstance(value, MetricResult):
        return value
    return MetricResult.of(float(value), source="input")  # type: ignore[arg-type]


def _derive(
    source: str,
    inputs: Inputs,
    compute: Callable[[dict[str, float]], tuple[float, dict[str, float]]],
) -> MetricResult[float]:
    results = {key: _coerce_result(value) for key, value in inputs.items()}
    if results and all(r.unavailable for r in results.values()):
        return MetricResult.not_available(source=source)

    values = {key: r.numeric() for key, r in results.items()}
    value, extra = compute(values)
    if not math.isfinite(value):
        value = 0.0
    stamps = [
        r.last_updated
        for r in results.values()
        if r.last_updated is not None and not r.unavailable
    ]
    return MetricResult(
        value=value,
        loading=any(r.loading for r in results.values()),
        source=source,
        last_updated=min(stamps) if stamps else None,
        breakdown={**values, **extra},
        missing=tuple(key for key, r in results.items() if r.unavailable),
    )


def _sum(values: dict[str, float]) -> tuple[float, dict[str, float]]:
    return math.fsum(values.values()), {}


def total_mainnet_liquidity(
    curve: MetricResult[float] | float,
    balancer: MetricResult[float] | float,
    uniswap: MetricResult[float] | float,
    sushi: MetricResult[float] | float,
) -> MetricResult[float]:
    """Combined filtered DEX liquidity on mainnet."""

    inputs = {"curve": curve, "balancer": balancer, "uniswap": uniswap, "sushi": sushi}
    return _derive("derived:total_mainnet_liquidity", inputs, _sum)


def total_lending_market_usage(per_protocol: Inputs) -> MetricResult[float]:
    """Sum of per-protocol collateral totals (each already summed over addresses)."""

    return _derive("derived:total_lending_markets", per_protocol, _sum)


def supply_on_mainnet_percent(
    mainnet_supply: MetricResult[float] | float,
    bridge_supply: MetricResult[float] | float,
) -> MetricResult[float]:
    """Share of mainnet supply not secured by bridges, as a fraction.

    Returns ``0`` when mainnet supply is not positive.
    """

    def compute(values: dict[str, float]) -> tuple[float, dict[str, float]]:
        mainnet = values["mainnet_supply"]
        if mainnet <= 0:
            return 0.0, {}
        return 1 - values["bridge_supply"] / mainnet, {}

    inputs = {"mainnet_supply": mainnet_supply, "bridge_supply": bridge_supply}
    return _derive("derived:supply_on_mainnet_percent", inputs, compute)


def insurance_component(insurance_fund: float, total_supply: float) -> float:
    if total_supply <= 0:
        return -0.05
    ratio = insurance_fund / total_supply
    if ratio > 0.5:
        return 0.2
    if ratio > 0.25:
        return 0.1
    if ratio > 0.1:
        return 0.05
    return -0.05


def collateralization_component(ratio: float) -> float:
    if ratio > 1.5:
        return 0.2
    if ratio > 1.1:
        return 0.1
    if ratio > 1.0:
        return 0.05
    return -0.1


def staked_component(staked_supply: float, total_supply: float) -> float:
    if total_supply <= 0:
        return 0.0
    return 0.05 if staked_supply / total_supply > 0.5 else 0.0


def mainnet_component(supply_on_mainnet: float) -> float:
    return 0.05 if supply_on_mainnet > 0.9 else 0.0


FACTOR_OF_SAFETY_BASE = 0.5


def factor_of_safety(
    insurance_fund: MetricResult[float] | float,
    collateralization_ratio: MetricResult[float] | float,
    staked_supply: MetricResult[float] | float,
    total_supply: MetricResult[float] | float,
    supply_on_mainnet: MetricResult[float] | float,
) -> MetricResult[float]:
    """Composite safety score: a 0.5 base adjusted by four banded components.

    The per-component adjustments are exposed in ``breakdown`` under
    ``*_component`` keys.
    """

    def compute(values: dict[str, float]) -> tuple[float, dict[str, float]]:
        parts = {
            "insurance_component": insurance_component(
                values["insurance_fund"], values["total_supply"]
            ),
            "collateralization_component": collateralization_component(
                values["collateralization_ratio"]
            ),
            "staked_component": staked_component(values["staked_supply"], values["total_supply"]),
            "mainnet_component": mainnet_component(values["supply_on_mainnet_percent"]),
        }
        return FACTOR_OF_SAFETY_BASE + math.fsum(parts.values()), parts

    inputs = {
        "insurance_fund": insurance_fund,
        "collateralization_ratio": collateralization_ratio,
        "staked_supply": staked_supply,
        "total_supply": total_supply,
        "supply_on_mainnet_percent": supply_on_mainnet,
    }
    return _derive("derived:factor_of_safety", inputs, compute)


def excl_lending_other_networks(
    total_supply: MetricResult[float] | float,
    bridge_supply: MetricResult[float] | float,
    total_lending: MetricResult[float] | float,
) -> MetricResult[float]:
    """Supply left after removing bridged and lending-market amounts, floored at 0."""

    def compute(values: dict[str, float]) -> tuple[float, dict[str, float]]:
        remaining = values["total_supply"] - values["bridge_supply"] - values["total_lending"]
        return max(0.0, remaining), {}

    inputs = {
        "total_supply": total_supply,
        "bridge_supply": bridge_supply,
        "total_lending": total_lending,
    }
    return _derive("derived:excl_lending_other_networks", inputs, compute)


def theoretical_supply_limit(
    factor: MetricResult[float] | float,
    excl_lending: MetricResult[float] | float,
    liquidity: MetricResult[float] | float,
) -> MetricResult[float]:
    """``factor_of_safety * min(excl_lending, liquidity)``.

    ``breakdown["limited_by_liquidity"]`` is ``1.0`` when mainnet liquidity is
    the binding side.
    """

    def compute(values: dict[str, float]) -> tuple[float, dict[str, float]]:
        supply = values["excl_lending_other_networks"]
        depth = values["total_mainnet_liquidity"]
        by_liquidity = depth < supply
        cap = depth if by_liquidity else supply
        return values["factor_of_safety"] * cap, {"limited_by_liquidity": float(by_liquidity)}

    inputs = {
        "factor_of_safety": factor,
        "excl_lending_other_networks": excl_lending,
        "total_mainnet_liquidity": liquidity,
    }
    return _derive("derived:theoretical_supply_limit", inputs, compute)


__all__ = [
    "total_mainnet_liquidity",
    "total_lending_market_usage",
    "supply_on_mainnet_percent",
    "factor_of_safety",
    "insurance_component",
    "collateralization_component",
    "staked_component",
    "mainnet_component",
    "excl_lending_other_networks",
    "theoretical_supply_limit",
]
