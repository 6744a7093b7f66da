from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import pytest
from aiohttp import test_utils, web

from stable_exposure_lab.core import SourcePolicy, TransientFetchError, UpstreamDataError
from stable_exposure_lab.core.constants import BRIDGE_SUPPLY
from stable_exposure_lab.engine import SourceFetchers, SourceQuery
from stable_exposure_lab.sources import CacheServiceClient

FIXTURES = Path(__file__).resolve().parent.parent / "fixtures"

DAI = "0x6b175474e89094c44da98b954eedeac495271d0f"
USDS = "0xdc035d45d973e3ec169d2276ddab16f1e407384f"


def _stub_get_json(monkeypatch: pytest.MonkeyPatch, client: CacheServiceClient, payload: Any) -> list[str]:
    paths: list[str] = []

    async def fake(path: str, params: Any = None, *, allow_missing: bool = False) -> Any:
        paths.append(path)
        return payload

    monkeypatch.setattr(client, "_get_json", fake)
    return paths


def test_filtered_tvl_applies_family_filter(monkeypatch: pytest.MonkeyPatch) -> None:
    client = CacheServiceClient(token_families={DAI: "USDS_DAI", USDS.upper(): "USDS_DAI"})
    payload = json.loads((FIXTURES / "curve_pools.json").read_text())
    paths = _stub_get_json(monkeypatch, client, payload)

    value = asyncio.run(client.fetch_filtered_tvl("curve", DAI))

    assert value == pytest.approx(900_000.0)
    assert paths == [f"/api/curve/pools/{DAI}"]


@pytest.mark.parametrize(
    "payload",
    [
        {"market_data": {"total_supply": 5.0, "circulating_supply": 4.0}},
        {"totalSupply": 5.0, "circulatingSupply": 4.0},
    ],
)
def test_market_data_is_normalised(monkeypatch: pytest.MonkeyPatch, payload: dict[str, Any]) -> None:
    client = CacheServiceClient()
    _stub_get_json(monkeypatch, client, payload)

    data = asyncio.run(client.fetch_market_data("ethena-usde"))

    assert data == {"totalSupply": 5.0, "circulatingSupply": 4.0}


def test_market_data_rejects_non_objects(monkeypatch: pytest.MonkeyPatch) -> None:
    client = CacheServiceClient()
    _stub_get_json(monkeypatch, client, ["unexpected"])

    with pytest.raises(UpstreamDataError):
        asyncio.run(client.fetch_market_data("usr"))


def test_protocol_endpoints_lower_case_symbol(monkeypatch: pytest.MonkeyPatch) -> None:
    client = CacheServiceClient()
    paths = _stub_get_json(monkeypatch, client, {"data": {}})

    async def scenario() -> None:
        await client.fetch_insurance_fund("USDe")
        await client.fetch_collateralization_ratio("USDe")
        await client.fetch_bridge_supply("USDe")

    asyncio.run(scenario())

    assert paths == [
        "/api/stablecoin/insurance-fund/usde",
        "/api/stablecoin/collateralization-ratio/usde",
        "/api/stablecoin/bridge-supply/USDe",
    ]


def _status_app() -> web.Application:
    async def bridge(request: web.Request) -> web.Response:
        if request.match_info["symbol"] == "SLOW":
            await asyncio.sleep(0.3)
        status = int(request.query.get("status", "200"))
        return web.json_response({"data": {"totalBridgedSupply": 12.0}}, status=status)

    async def manual(request: web.Request) -> web.Response:
        return web.json_response({"success": False}, status=404)

    async def broken(request: web.Request) -> web.Response:
        return web.Response(text="<html>", content_type="application/json")

    async def lp_value(request: web.Request) -> web.Response:
        return web.json_response({"query": dict(request.query), "lpBalanceUSD": 3.0})

    app = web.Application()
    app.router.add_get("/api/stablecoin/bridge-supply/{symbol}", bridge)
    app.router.add_get("/api/manual-data/{symbol}/{metric}", manual)
    app.router.add_get("/api/ethereum/total-supply/{token}", broken)
    app.router.add_get("/api/ethereum/lp-token-value/{lp}/{holder}", lp_value)
    return app


def _against_server(scenario):
    async def runner() -> Any:
        async with test_utils.TestServer(_status_app()) as server:
            async with CacheServiceClient(str(server.make_url("/"))) as client:
                return await scenario(client)

    return asyncio.run(runner())


def test_ok_response_is_returned() -> None:
    async def scenario(client: CacheServiceClient) -> Any:
        return await client.fetch_bridge_supply("USDe")

    assert _against_server(scenario) == {"data": {"totalBridgedSupply": 12.0}}


@pytest.mark.parametrize(
    ("status", "error"),
    [(503, TransientFetchError), (500, TransientFetchError), (429, TransientFetchError), (400, UpstreamDataError)],
)
def test_http_status_maps_to_error_kind(status: int, error: type[Exception]) -> None:
    async def scenario(client: CacheServiceClient) -> Any:
        return await client._get_json(
            "/api/stablecoin/bridge-supply/USDe", {"status": str(status)}
        )

    with pytest.raises(error):
        _against_server(scenario)


def test_missing_manual_entry_is_none() -> None:
    async def scenario(client: CacheServiceClient) -> Any:
        return await client.fetch_manual_entry("USDe", "bridgeSupply")

    assert _against_server(scenario) is None


def test_invalid_json_is_upstream_data_error() -> None:
    async def scenario(client: CacheServiceClient) -> Any:
        return await client.fetch_total_supply(DAI)

    with pytest.raises(UpstreamDataError):
        _against_server(scenario)


def test_lp_value_sends_pool_parameters() -> None:
    async def scenario(client: CacheServiceClient) -> Any:
        return await client.get_lp_token_value_usd("0xlp", "0xholder", "0xpool", ["0xa", "0xb"], "curve")

    payload = _against_server(scenario)
    assert payload["query"] == {"pool": "0xpool", "tokens": "0xa,0xb", "protocol": "curve"}
    assert payload["lpBalanceUSD"] == 3.0


def test_closed_client_refuses_new_requests() -> None:
    async def scenario() -> None:
        async with test_utils.TestServer(_status_app()) as server:
            client = CacheServiceClient(str(server.make_url("/")))
            async with client:
                await client.fetch_bridge_supply("USDe")
            await client.fetch_bridge_supply("USDe")

    with pytest.raises(TransientFetchError, match="closed"):
        asyncio.run(scenario())


def test_retry_after_close_does_not_open_a_new_session(instant_sleep) -> None:
    async def scenario() -> tuple[CacheServiceClient, Any]:
        async with test_utils.TestServer(_status_app()) as server:
            client = CacheServiceClient(str(server.make_url("/")))
            fetchers = SourceFetchers(
                client,
                SourceQuery(sleep=instant_sleep),
                {BRIDGE_SUPPLY: SourcePolicy(max_retries=2, timeout=2.0)},
            )
            async with client:
                task = asyncio.create_task(fetchers.bridge_supply("SLOW"))
                await asyncio.sleep(0.05)
                first_session = client._session
            await task
            return client, first_session

    client, first_session = asyncio.run(scenario())
    assert first_session is not None
    assert client._session is first_session
    assert first_session.closed
