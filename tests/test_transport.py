"""Tests for the single-endpoint JSON-RPC transport."""

import httpx
import pytest

from timecapsule_vault.rpc.errors import (
    HTTPStatusFailure,
    JsonRpcError,
    MalformedResponse,
    RateLimited,
    TransportFailure,
)
from timecapsule_vault.rpc.failover import RPCRequest
from timecapsule_vault.rpc.transport import JsonRpcTransport

URL = "https://rpc.example"


def transport_for(handler) -> JsonRpcTransport:
    return JsonRpcTransport(httpx.AsyncClient(transport=httpx.MockTransport(handler)))


async def test_returns_result():
    """Test a plain JSON-RPC success."""
    transport = transport_for(lambda request: httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": "0x1"}))

    assert await transport.send(URL, RPCRequest("eth_blockNumber")) == "0x1"


async def test_unwraps_single_element_batch():
    """Test providers that answer with a one-element batch."""
    transport = transport_for(lambda request: httpx.Response(200, json=[{"jsonrpc": "2.0", "id": 1, "result": "0x2"}]))

    assert await transport.send(URL, RPCRequest("eth_blockNumber")) == "0x2"


async def test_rate_limit():
    """Test HTTP 429 with a Retry-After header."""
    transport = transport_for(lambda request: httpx.Response(429, headers={"Retry-After": "3"}))

    with pytest.raises(RateLimited) as exc_info:
        await transport.send(URL, RPCRequest("eth_blockNumber"))

    assert exc_info.value.retry_after == 3
    assert exc_info.value.url == URL


async def test_http_error_status():
    """Test non-success HTTP status codes."""
    transport = transport_for(lambda request: httpx.Response(503, text="unavailable"))

    with pytest.raises(HTTPStatusFailure) as exc_info:
        await transport.send(URL, RPCRequest("eth_blockNumber"))

    assert exc_info.value.status_code == 503


async def test_malformed_body():
    """Test HTML error pages and non-RPC JSON."""
    html = transport_for(lambda request: httpx.Response(200, text="<html>blocked</html>"))
    with pytest.raises(MalformedResponse):
        await html.send(URL, RPCRequest("eth_blockNumber"))

    other = transport_for(lambda request: httpx.Response(200, json={"status": "ok"}))
    with pytest.raises(MalformedResponse):
        await other.send(URL, RPCRequest("eth_blockNumber"))


async def test_json_rpc_error():
    """Test that error objects keep code, message and data."""
    error = {"code": 3, "message": "execution reverted", "data": "0x08c379a0"}
    transport = transport_for(lambda request: httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "error": error}))

    with pytest.raises(JsonRpcError) as exc_info:
        await transport.send(URL, RPCRequest("eth_call", ({}, "latest")))

    assert exc_info.value.code == 3
    assert exc_info.value.data == "0x08c379a0"
    assert str(exc_info.value) == "[3] execution reverted"


async def test_connection_failure():
    """Test network-layer rejection."""

    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransportFailure):
        await transport_for(refuse).send(URL, RPCRequest("eth_blockNumber"))


async def test_request_payload():
    """Test the JSON-RPC envelope sent to the endpoint."""
    seen = []

    def handler(request):
        seen.append(request.read())
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": None})

    transport = transport_for(handler)
    await transport.send(URL, RPCRequest("eth_getBalance", ("0xabc", "latest")))
    await transport.send(URL, RPCRequest("eth_chainId"))

    assert b'"method":"eth_getBalance"' in seen[0].replace(b" ", b"")
    assert b'"params":["0xabc","latest"]' in seen[0].replace(b" ", b"")
    assert b'"id":2' in seen[1].replace(b" ", b"")
