from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Any

import pytest

from stable_exposure_lab.core import (
    InsuranceFundConfig,
    LPSpec,
    MetricResult,
    StablecoinConfig,
    TransientFetchError,
)
from stable_exposure_lab.engine import (
    FallbackResolver,
    InsuranceFundStrategy,
    SourceFetchers,
    SourceQuery,
    StakedSupplyStrategy,
    select_insurance_strategy,
    select_staked_supply_strategy,
)

HOLDER = "0x00000000000000000000000000000000000000aa"
TOKEN = "0x00000000000000000000000000000000000000bb"
LP_TOKEN = "0x00000000000000000000000000000000000000cc"
POOL = "0x00000000000000000000000000000000000000dd"


class FakeClient:
    """Only the endpoints the resolver touches; everything else fails loudly."""

    def __init__(self, manual: dict[str, Any] | None = None) -> None:
        self.manual = manual or {}
        self.calls: list[str] = []

    async def fetch_fdv(self, coingecko_id: str) -> dict[str, Any]:
        self.calls.append(f"fdv:{coingecko_id}")
        return {"fdv": 12_000_000.0, "fetchedAt": "2024-01-01T00:00:00Z"}

    async def fetch_token_balance_usd(self, token: str, holder: str) -> dict[str, Any]:
        self.calls.append(f"balance:{holder}:{token}")
        return {"balance": 900 * 10**18, "balanceHex": hex(900 * 10**18), "balanceUSD": 1_000.0}

    async def get_lp_token_value_usd(
        self,
        lp_token_address: str,
        holder_address: str,
        pool_address: str,
        underlying_tokens: Sequence[str],
        protocol: str,
    ) -> dict[str, Any]:
        self.calls.append(f"lp:{holder_address}:{lp_token_address}")
        return {"lpBalanceUSD": 250.0}

    async def fetch_insurance_fund(self, symbol: str) -> dict[str, Any]:
        self.calls.append(f"api:{symbol}")
        return {"data": {"fundSize": 77.0}}

    async def fetch_manual_entry(self, symbol: str, metric_key: str) -> dict[str, Any] | None:
        self.calls.append(f"manual:{symbol}:{metric_key}")
        return {"success": True, "data": self.manual.get(metric_key), "metadata": {}}

    async def fetch_market_data(self, coingecko_id: str) -> dict[str, Any]:
        self.calls.append(f"market:{coingecko_id}")
        return {"totalSupply": 4_000.0, "circulatingSupply": 3_900.0}

    async def fetch_total_supply(self, token_address: str) -> dict[str, Any]:
        self.calls.append(f"supply:{token_address}")
        return {"totalSupply": str(2_000 * 10**18), "decimals": 18}

    async def fetch_bridge_supply(self, symbol: str) -> dict[str, Any]:
        raise TransientFetchError("bridge API down")


def _resolver(client: FakeClient, instant_sleep, defaults=None) -> FallbackResolver:
    fetchers = SourceFetchers(client, SourceQuery(sleep=instant_sleep))
    return FallbackResolver(fetchers, manual_defaults=defaults)


def test_fdv_kind_ignores_monitored_addresses() -> None:
    config = InsuranceFundConfig.from_dict(
        {"type": "fdv", "rlpCoingeckoId": "x", "monitoredAddresses": [HOLDER]}
    )
    assert select_insurance_strategy(config) is InsuranceFundStrategy.FDV


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ({"monitored_addresses": [HOLDER], "tokens_to_monitor": [TOKEN]}, InsuranceFundStrategy.BALANCES),
        ({"kind": "balance", "monitored_addresses": []}, InsuranceFundStrategy.API),
        ({"kind": "api", "rlp_coingecko_id": "x"}, InsuranceFundStrategy.API),
        ({"kind": "fdv"}, InsuranceFundStrategy.API),
        (None, InsuranceFundStrategy.API),
    ],
)
def test_insurance_strategy_follows_config_shape(
    raw: dict[str, Any] | None, expected: InsuranceFundStrategy
) -> None:
    assert select_insurance_strategy(InsuranceFundConfig.from_dict(raw)) is expected


def test_insurance_fund_via_fdv(instant_sleep) -> None:
    client = FakeClient()
    stablecoin = StablecoinConfig(
        symbol="USR",
        insurance_fund=InsuranceFundConfig(kind="fdv", rlp_coingecko_id="resolv-rlp"),
    )

    result = asyncio.run(_resolver(client, instant_sleep).insurance_fund(stablecoin))

    assert result.value == 12_000_000.0
    assert result.source == "insurance_fund:fdv"
    assert client.calls == ["fdv:resolv-rlp"]


class FdvDownClient(FakeClient):
    async def fetch_fdv(self, coingecko_id: str) -> dict[str, Any]:
        self.calls.append(f"fdv:{coingecko_id}")
        raise TransientFetchError("coingecko down")


def test_failed_fdv_does_not_fall_through_to_other_strategies(instant_sleep) -> None:
    client = FdvDownClient()
    stablecoin = StablecoinConfig(
        symbol="USR",
        insurance_fund=InsuranceFundConfig(
            rlp_coingecko_id="resolv-rlp",
            monitored_addresses=(HOLDER,),
            tokens_to_monitor=(TOKEN,),
        ),
    )

    result = asyncio.run(_resolver(client, instant_sleep).insurance_fund(stablecoin))

    assert result.unavailable
    assert result.source == "insurance_fund:fdv"
    assert set(client.calls) == {"fdv:resolv-rlp"}
    assert not any(call.startswith(("api:", "balance:")) for call in client.calls)


def test_insurance_fund_via_balances_sums_tokens_and_lps(
    instant_sleep, caplog: pytest.LogCaptureFixture
) -> None:
    client = FakeClient()
    stablecoin = StablecoinConfig(
        symbol="X",
        insurance_fund=InsuranceFundConfig(
            monitored_addresses=(HOLDER,),
            tokens_to_monitor=(TOKEN,),
            lp_tokens_to_monitor=(
                LPSpec(LP_TOKEN, POOL, (TOKEN, "0x00000000000000000000000000000000000000ee"), "curve"),
                LPSpec(LP_TOKEN, "", (TOKEN,), "curve"),
            ),
        ),
    )

    with caplog.at_level("WARNING", logger="stable_exposure_lab.engine.fallback"):
        result = asyncio.run(_resolver(client, instant_sleep).insurance_fund(stablecoin))

    assert result.value == 1_250.0
    assert result.source == "insurance_fund:balances"
    assert set(result.breakdown) == {f"{HOLDER}:{TOKEN}", f"{HOLDER}:{LP_TOKEN}"}
    assert sum(1 for call in client.calls if call.startswith("lp:")) == 1
    assert any("Skipping LP spec" in rec.message for rec in caplog.records)


def test_insurance_fund_falls_back_to_api(instant_sleep) -> None:
    client = FakeClient()
    result = asyncio.run(
        _resolver(client, instant_sleep).insurance_fund(StablecoinConfig(symbol="deUSD"))
    )

    assert result.value == 77.0
    assert result.source == "insurance_fund:api"


def test_manual_entry_outranks_automated(instant_sleep) -> None:
    client = FakeClient(manual={"bridgeSupply": 123.0})
    automated_calls: list[int] = []

    async def automated() -> MetricResult[float]:
        automated_calls.append(1)
        return MetricResult.of(1.0, source="auto")

    resolver = _resolver(client, instant_sleep, defaults={"X": {"bridgeSupply": 5.0}})
    result = asyncio.run(resolver.with_manual_override("X", "bridgeSupply", automated))

    assert result.value == 123.0
    assert result.source == "manual_entry"
    assert automated_calls == []


def test_manual_default_applies_when_no_operator_entry(instant_sleep) -> None:
    client = FakeClient()

    async def automated() -> MetricResult[float]:
        raise AssertionError("automated source should not be consulted")

    resolver = _resolver(client, instant_sleep, defaults={"X": {"bridgeSupply": 5.0}})
    result = asyncio.run(resolver.with_manual_override("X", "bridgeSupply", automated))

    assert result.value == 5.0
    assert result.source == "manual_default"


def test_automated_source_used_last(instant_sleep) -> None:
    client = FakeClient()
    resolver = _resolver(client, instant_sleep)

    async def automated() -> MetricResult[float]:
        return await resolver.fetchers.bridge_supply("X")

    result = asyncio.run(resolver.with_manual_override("X", "bridgeSupply", automated))

    assert result.unavailable
    assert "bridge API down" in (result.error or "")


@pytest.mark.parametrize(
    ("stablecoin", "expected"),
    [
        (StablecoinConfig(symbol="A", staked_coingecko_id="ethena-staked-usde"), StakedSupplyStrategy.COINGECKO),
        (
            StablecoinConfig(
                symbol="B",
                contract_addresses=(("b", TOKEN),),
                staking_contract=HOLDER,
                staked_token_address=LP_TOKEN,
            ),
            StakedSupplyStrategy.STAKING_CONTRACT,
        ),
        (StablecoinConfig(symbol="C", staking_contract=HOLDER, staked_token_address=LP_TOKEN), StakedSupplyStrategy.TOKEN_SUPPLY),
        (StablecoinConfig(symbol="D"), StakedSupplyStrategy.NONE),
    ],
)
def test_staked_supply_strategy(stablecoin: StablecoinConfig, expected: StakedSupplyStrategy) -> None:
    assert select_staked_supply_strategy(stablecoin) is expected


def test_staked_supply_from_token_supply_is_scaled(instant_sleep) -> None:
    client = FakeClient()
    stablecoin = StablecoinConfig(symbol="C", staked_token_address=LP_TOKEN)

    result = asyncio.run(_resolver(client, instant_sleep).staked_supply(stablecoin))

    assert result.value == pytest.approx(2_000.0)
    assert result.source == "staked_supply:token_supply"


def test_staked_supply_from_staking_contract_balance(instant_sleep) -> None:
    client = FakeClient()
    stablecoin = StablecoinConfig(
        symbol="B", contract_addresses=(("b", TOKEN),), staking_contract=HOLDER
    )

    result = asyncio.run(_resolver(client, instant_sleep).staked_supply(stablecoin))

    assert result.value == pytest.approx(900.0)
    assert client.calls == [f"balance:{HOLDER}:{TOKEN}"]


def test_unconfigured_staked_supply_is_unavailable_without_error(instant_sleep) -> None:
    result = asyncio.run(
        _resolver(FakeClient(), instant_sleep).staked_supply(StablecoinConfig(symbol="D"))
    )

    assert result.unavailable
    assert result.error is None
    assert result.source == "unconfigured"
