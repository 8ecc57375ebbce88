"""
Tests for the mempool.space node ranking client.

Uses httpx.MockTransport; no network access.
"""

import httpx
import pytest

from conftest import ACINQ, API_URL, BITFINEX, json_response, make_client, serve
from core.mempool import MempoolError, fetch_nodes


@pytest.mark.asyncio
async def test_parses_node_ranking():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return json_response([ACINQ, BITFINEX])

    async with make_client(handler) as client:
        nodes = await fetch_nodes(url=API_URL, client=client)

    assert [n.public_key for n in nodes] == [ACINQ["publicKey"], BITFINEX["publicKey"]]
    assert nodes[0].alias == "ACINQ"
    assert nodes[0].capacity == 150_000_000
    assert nodes[0].first_seen == 1601429940
    assert seen[0].method == "GET"
    assert str(seen[0].url) == API_URL


@pytest.mark.asyncio
async def test_empty_array_is_valid():
    async with make_client(serve([])) as client:
        assert await fetch_nodes(url=API_URL, client=client) == []


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [404, 429, 500, 503])
async def test_non_2xx_status_raises(status_code):
    async with make_client(serve(json_response({"error": "nope"}, status_code=status_code))) as client:
        with pytest.raises(MempoolError, match=str(status_code)):
            await fetch_nodes(url=API_URL, client=client)


@pytest.mark.asyncio
async def test_network_error_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with make_client(handler) as client:
        with pytest.raises(MempoolError, match="ConnectError"):
            await fetch_nodes(url=API_URL, client=client)


@pytest.mark.asyncio
async def test_timeout_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    async with make_client(handler) as client:
        with pytest.raises(MempoolError, match="ReadTimeout"):
            await fetch_nodes(url=API_URL, client=client)


@pytest.mark.asyncio
async def test_non_json_body_raises():
    response = httpx.Response(200, content=b"<html>maintenance</html>", headers={"content-type": "text/html"})
    async with make_client(serve(response)) as client:
        with pytest.raises(MempoolError, match="not valid JSON"):
            await fetch_nodes(url=API_URL, client=client)


@pytest.mark.asyncio
async def test_object_instead_of_array_raises():
    async with make_client(serve({"nodes": [ACINQ]})) as client:
        with pytest.raises(MempoolError, match="not a JSON array"):
            await fetch_nodes(url=API_URL, client=client)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "broken",
    [
        {k: v for k, v in ACINQ.items() if k != "publicKey"},
        {k: v for k, v in ACINQ.items() if k != "firstSeen"},
        {**ACINQ, "capacity": "150000000"},
        {**ACINQ, "capacity": True},
        {**ACINQ, "capacity": -5},
        {**ACINQ, "firstSeen": 1601429940.5},
        {**ACINQ, "alias": None},
    ],
)
async def test_missing_or_mistyped_field_raises(broken):
    async with make_client(serve([BITFINEX, broken])) as client:
        with pytest.raises(MempoolError, match="unexpected shape"):
            await fetch_nodes(url=API_URL, client=client)


@pytest.mark.asyncio
async def test_empty_url_raises():
    with pytest.raises(MempoolError):
        await fetch_nodes(url="  ")
