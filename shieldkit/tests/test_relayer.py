import json

import httpx
import pytest

from shieldkit import logging as slog
from shieldkit.crypto.binding import OperationKind
from shieldkit.errors import RelayerError, RelayerTimeout
from shieldkit.relayer import RelayerClient, RelayerStatus
from shieldkit.tests import configure_test_logging

configure_test_logging()

BASE = "https://relayer.test"


def _client(handler, **kw) -> RelayerClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RelayerClient(BASE, client=http, **{"poll_interval": 0, **kw})


def test_status_parsing_and_prices():
    st = RelayerStatus.from_json(
        {
            "celoPrices": {"CELO": "1", "cusd_v2": "0.5"},
            "poofServiceFee": 0.1,
            "gasPrices": {"min": "0.5", "fast": "2"},
            "rewardAccount": "0x" + "ee" * 20,
        }
    )
    assert st.price_of("CELO_v2") == "1"
    assert st.price_of("cUSD_v2") == "0.5"
    assert st.fee_percent == "0.1"
    assert st.min_gas_price == "0.5"
    with pytest.raises(RelayerError):
        st.price_of("cEUR")
    assert RelayerStatus(gas_prices={"a": "3", "b": "1.5"}).min_gas_price == "1.5"
    with pytest.raises(RelayerError):
        RelayerStatus().min_gas_price


@pytest.mark.asyncio
async def test_relay_submits_and_polls_until_tx_hash():
    seen = []
    polls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path))
        if request.method == "POST":
            body = json.loads(request.content)
            assert body["contract"] == "0xpool"
            assert body["proof"] == "0xabcd"
            assert body["args"]["amount"] == "0x01"
            return httpx.Response(200, json={"id": "job-1"})
        polls["n"] += 1
        if polls["n"] < 3:
            return httpx.Response(200, json={"status": "QUEUED"})
        return httpx.Response(200, json={"status": "CONFIRMED", "txHash": "0xfeed"})

    async with _client(handler) as rc:
        tx = await rc.relay(OperationKind.WITHDRAW, "0xpool", "0xabcd", {"amount": "0x01"})

    assert tx == "0xfeed"
    assert seen[0] == ("POST", "/withdraw")
    assert seen[1:] == [("GET", "/jobs/job-1")] * 3


@pytest.mark.asyncio
async def test_multiple_proofs_are_sent_as_a_list():
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert request.url.path == "/mint"
        assert body["proofs"] == ["0x01", "0x02", "0x03"]
        assert "proof" not in body
        return httpx.Response(200, json={"jobId": 42})

    async with _client(handler) as rc:
        assert await rc.submit(OperationKind.MINT, "0xpool", ["0x01", "0x02", "0x03"], {}) == "42"


@pytest.mark.asyncio
async def test_deposits_cannot_be_relayed():
    async with _client(lambda r: httpx.Response(500)) as rc:
        with pytest.raises(RelayerError):
            await rc.submit(OperationKind.DEPOSIT, "0xpool", "0x01", {})


@pytest.mark.asyncio
async def test_timeout_after_fixed_attempts():
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(200, json={"status": "QUEUED"})

    async with _client(handler, max_attempts=4) as rc:
        with pytest.raises(RelayerTimeout) as ei:
            await rc.wait_for_tx("job-9")
    assert calls["n"] == 4
    assert ei.value.retryable
    assert ei.value.data == {"job_id": "job-9", "attempts": 4}


@pytest.mark.asyncio
async def test_failed_job_and_http_errors_carry_the_server_message():
    def failed(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": "FAILED", "error": "nullifier already spent"})

    async with _client(failed) as rc:
        with pytest.raises(RelayerError, match="nullifier already spent"):
            await rc.wait_for_tx("job-2")

    def rejected(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "fee too low"})

    async with _client(rejected) as rc:
        with pytest.raises(RelayerError) as ei:
            await rc.status()
    assert ei.value.message == "fee too low"
    assert ei.value.data["status"] == 400


@pytest.mark.asyncio
async def test_unreachable_relayer():
    def boom(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with _client(boom) as rc:
        with pytest.raises(RelayerError) as ei:
            await rc.status()
    assert isinstance(ei.value.cause, httpx.ConnectError)


@pytest.mark.asyncio
async def test_polling_restores_the_callers_log_context():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(slog.context())
        return httpx.Response(200, json={"txHash": "0x01"})

    with slog.operation_scope(op_id="outer", job_id="parent-job"):
        async with _client(handler) as rc:
            assert await rc.wait_for_tx("job-3") == "0x01"
        assert slog.context()["job_id"] == "parent-job"
        assert slog.context()["op_id"] == "outer"
    assert seen["job_id"] == "job-3"
    assert seen["op_id"] == "outer"
    assert "job_id" not in slog.context()
