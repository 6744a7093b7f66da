import math

import pytest

from stable_exposure_lab.core import MetricResult, SnapshotRepository, StablecoinSnapshot


@pytest.fixture
def sample_snapshots() -> list[StablecoinSnapshot]:
    """Three stablecoins covering loading, error and healthy snapshots."""

    return [
        StablecoinSnapshot(
            symbol="USDe",
            name="USDe",
            category="synthetic",
            metrics={
                "total_supply": MetricResult.of(5_000_000.0, source="coingecko"),
                "insurance_fund": MetricResult.of(40_000.0, source="insurance_fund:api"),
                "total_mainnet_liquidity": MetricResult.of(900_000.0, source="derived"),
            },
        ),
        StablecoinSnapshot(
            symbol="USR",
            name="USR",
            category="real_world_assets",
            metrics={
                "total_supply": MetricResult.of(1_000_000.0, source="coingecko"),
                "insurance_fund": MetricResult.not_available(source="fdv", error="HTTP 500"),
                "total_mainnet_liquidity": MetricResult.of(0.0, source="derived"),
            },
        ),
        StablecoinSnapshot(
            symbol="crvUSD",
            name="crvUSD",
            category="curve_ecosystem",
            metrics={
                "total_supply": MetricResult.pending(source="coingecko"),
                "total_lending_markets": MetricResult.of(250_000.0, source="derived"),
            },
        ),
    ]


def test_to_dataframe_marks_unavailable_as_nan(sample_snapshots: list[StablecoinSnapshot]) -> None:
    df = SnapshotRepository(sample_snapshots).to_dataframe()

    assert list(df["symbol"]) == ["USDe", "USR", "crvUSD"]
    usr = df.set_index("symbol").loc["USR"]
    assert math.isnan(usr["insurance_fund"])
    assert usr["total_mainnet_liquidity"] == 0.0
    assert bool(usr["has_error"]) is True
    assert df.set_index("symbol").loc["crvUSD", "is_loading"]


def test_filter_by_symbol_category_and_errors(sample_snapshots: list[StablecoinSnapshot]) -> None:
    repo = SnapshotRepository(sample_snapshots)

    assert [s.symbol for s in repo.filter(symbols=["USDe", "crvUSD"])] == ["USDe", "crvUSD"]
    assert [s.symbol for s in repo.filter(categories=["synthetic"])] == ["USDe"]
    assert [s.symbol for s in repo.filter(errors_only=True)] == ["USR"]


def test_aggregate_stats(sample_snapshots: list[StablecoinSnapshot]) -> None:
    stats = SnapshotRepository(sample_snapshots).aggregate_stats()

    assert stats["total_supply_across_all"] == 6_000_000.0
    assert stats["total_insurance_fund_across_all"] == 40_000.0
    assert stats["total_lending_across_all"] == 250_000.0
    assert stats["any_loading"] is True
    assert stats["all_loaded"] is False
    assert stats["stablecoins_with_errors"] == 1
    assert stats["total_stablecoins"] == 3


def test_get_and_extend() -> None:
    repo = SnapshotRepository()
    repo.extend([StablecoinSnapshot(symbol="A", metrics={})])

    assert repo.get("A") is not None
    assert repo.get("B") is None
    assert len(repo) == 1
    assert repo.get("A").get("total_supply").unavailable
