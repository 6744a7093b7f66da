from __future__ import annotations

import math

import pytest

from stable_exposure_lab.analytics import derived
from stable_exposure_lab.core import MetricResult


def _ok(value: float) -> MetricResult[float]:
    return MetricResult.of(value, source="test")


def _na() -> MetricResult[float]:
    return MetricResult.not_available(source="test", error="down")


def test_supply_on_mainnet_percent() -> None:
    result = derived.supply_on_mainnet_percent(_ok(1_000.0), _ok(250.0))
    assert result.value == 0.75
    assert result.unavailable is False


@pytest.mark.parametrize("mainnet", [0.0, -5.0])
@pytest.mark.parametrize("bridge", [0.0, 250.0, 1e12])
def test_supply_on_mainnet_percent_non_positive_mainnet(mainnet: float, bridge: float) -> None:
    result = derived.supply_on_mainnet_percent(mainnet, bridge)
    assert result.value == 0.0
    assert math.isfinite(result.value)


def test_supply_on_mainnet_percent_unavailable_only_when_all_inputs_are() -> None:
    assert derived.supply_on_mainnet_percent(_na(), _na()).unavailable
    partial = derived.supply_on_mainnet_percent(_ok(1_000.0), _na())
    assert partial.unavailable is False
    assert partial.value == 1.0
    assert partial.missing == ("bridge_supply",)


def test_total_mainnet_liquidity_sums_and_tracks_missing() -> None:
    result = derived.total_mainnet_liquidity(_ok(100.0), _na(), _ok(50.0), _ok(0.0))
    assert result.value == 150.0
    assert result.missing == ("balancer",)
    assert dict(result.breakdown) == {
        "curve": 100.0,
        "balancer": 0.0,
        "uniswap": 50.0,
        "sushi": 0.0,
    }


def test_total_mainnet_liquidity_loading_is_or_of_inputs() -> None:
    result = derived.total_mainnet_liquidity(
        _ok(100.0), MetricResult.pending(source="test"), _ok(1.0), _ok(1.0)
    )
    assert result.loading is True
    assert result.value == 102.0


def test_total_mainnet_liquidity_all_unavailable() -> None:
    result = derived.total_mainnet_liquidity(_na(), _na(), _na(), _na())
    assert result.unavailable
    assert result.value == 0.0


def test_total_lending_market_usage() -> None:
    result = derived.total_lending_market_usage(
        {"aave": _ok(10.0), "morpho": _ok(20.0), "euler": _na(), "fluid": _ok(5.0)}
    )
    assert result.value == 35.0
    assert result.missing == ("euler",)


def test_factor_of_safety_components() -> None:
    result = derived.factor_of_safety(
        insurance_fund=_ok(60.0),
        collateralization_ratio=_ok(1.6),
        staked_supply=_ok(60.0),
        total_supply=_ok(100.0),
        supply_on_mainnet=_ok(0.95),
    )
    assert result.value == pytest.approx(1.0)
    assert result.breakdown["insurance_component"] == 0.2
    assert result.breakdown["collateralization_component"] == 0.2
    assert result.breakdown["staked_component"] == 0.05
    assert result.breakdown["mainnet_component"] == 0.05


def test_factor_of_safety_penalises_thin_buffers() -> None:
    result = derived.factor_of_safety(
        insurance_fund=_ok(1.0),
        collateralization_ratio=_ok(0.99),
        staked_supply=_ok(10.0),
        total_supply=_ok(100.0),
        supply_on_mainnet=_ok(0.5),
    )
    assert result.value == pytest.approx(0.35)


@pytest.mark.parametrize(
    ("insurance", "total", "expected"),
    [(30.0, 100.0, 0.1), (11.0, 100.0, 0.05), (10.0, 100.0, -0.05), (5.0, 0.0, -0.05)],
)
def test_insurance_component_bands(insurance: float, total: float, expected: float) -> None:
    assert derived.insurance_component(insurance, total) == expected


@pytest.mark.parametrize(
    ("ratio", "expected"), [(2.0, 0.2), (1.2, 0.1), (1.05, 0.05), (1.0, -0.1)]
)
def test_collateralization_component_bands(ratio: float, expected: float) -> None:
    assert derived.collateralization_component(ratio) == expected


def test_excl_lending_other_networks_is_floored() -> None:
    assert derived.excl_lending_other_networks(_ok(100.0), _ok(30.0), _ok(20.0)).value == 50.0
    assert derived.excl_lending_other_networks(_ok(100.0), _ok(30.0), _ok(80.0)).value == 0.0


def test_theoretical_supply_limit_uses_binding_side() -> None:
    by_liquidity = derived.theoretical_supply_limit(_ok(0.8), _ok(100.0), _ok(40.0))
    assert by_liquidity.value == pytest.approx(32.0)
    assert by_liquidity.breakdown["limited_by_liquidity"] == 1.0

    by_supply = derived.theoretical_supply_limit(_ok(0.8), _ok(10.0), _ok(40.0))
    assert by_supply.value == pytest.approx(8.0)
    assert by_supply.breakdown["limited_by_liquidity"] == 0.0
