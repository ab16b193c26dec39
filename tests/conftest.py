"""Pytest configuration and shared fixtures for timecapsule-vault tests."""

import json
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx
import pytest
from eth_abi import encode
from eth_utils import encode_hex

from timecapsule_vault.contracts.abi import ERROR_SELECTOR, ContractFunction
from timecapsule_vault.core.config import Settings
from timecapsule_vault.core.models import NetworkContracts, NetworkProfile
from timecapsule_vault.rpc.client import ResilientRPCClient
from timecapsule_vault.wallets.storage import MemoryStorage

ENDPOINT_A = "https://rpc-a.example"
ENDPOINT_B = "https://rpc-b.example"
ENDPOINT_C = "https://rpc-c.example"

FACTORY = "0x333222930ff6d5f8A5127b353422f7AA905458De"
PRICE_FEED = "0x2d3bBa5e0A9Fd8EAa45Dcf71A2389b7C12005b1f"
VAULT = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
CREATOR = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"

# Well-known development key (hardhat account #0)
DEV_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
DEV_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"


@dataclass
class RpcFault:
    """JSON-RPC error object returned by a result callable."""

    code: int
    message: str
    data: Any = None


class RpcStub:
    """
    Scriptable JSON-RPC backend for ``httpx.MockTransport``.

    Every request is recorded as ``(url, method)``. Endpoints listed in
    ``status`` answer with that HTTP status; otherwise the method is looked up
    in ``errors`` and then ``results``. ``eth_call`` is dispatched on the
    function selector registered with ``on_call`` or ``revert``.

    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.status: dict[str, int] = {}
        self.results: dict[str, Any] = {}
        self.errors: dict[str, dict] = {}
        self.contract_results: dict[str, str] = {}
        self.contract_errors: dict[str, dict] = {}
        self.sent_raw: list[str] = []

    def on_call(self, function: ContractFunction, *values: Any) -> None:
        self.contract_results[function.selector.hex()] = encode_hex(encode(list(function.outputs), list(values)))

    def revert(self, function: ContractFunction, reason: str = "") -> None:
        data = encode_hex(ERROR_SELECTOR + encode(["string"], [reason])) if reason else "0x"
        self.contract_errors[function.selector.hex()] = {"code": 3, "message": "execution reverted", "data": data}

    def fault(self, code: int, message: str, data: Any = None) -> RpcFault:
        """Error reply for result callables."""
        return RpcFault(code, message, data)

    def methods(self) -> list[str]:
        return [method for _, method in self.calls]

    def urls(self, method: str | None = None) -> list[str]:
        return [url for url, m in self.calls if method is None or m == method]

    def _reply(self, request_id: int, method: str, params: list) -> dict:
        if method == "eth_call":
            selector = params[0]["data"][2:10]
            if selector in self.contract_errors:
                return {"jsonrpc": "2.0", "id": request_id, "error": self.contract_errors[selector]}
            if selector in self.contract_results:
                return {"jsonrpc": "2.0", "id": request_id, "result": self.contract_results[selector]}
        if method == "eth_sendRawTransaction":
            self.sent_raw.append(params[0])
        if method in self.errors:
            return {"jsonrpc": "2.0", "id": request_id, "error": self.errors[method]}
        if method not in self.results:
            return {"jsonrpc": "2.0", "id": request_id, "error": {"code": -32601, "message": "method not found"}}

        result = self.results[method]
        if callable(result):
            result = result(params)
        if isinstance(result, RpcFault):
            error = {"code": result.code, "message": result.message, "data": result.data}
            return {"jsonrpc": "2.0", "id": request_id, "error": error}
        return {"jsonrpc": "2.0", "id": request_id, "result": result}

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url).rstrip("/")
        body = json.loads(request.content)
        self.calls.append((url, body["method"]))

        if url in self.status:
            return httpx.Response(self.status[url], text="Too Many Requests")
        return httpx.Response(200, json=self._reply(body["id"], body["method"], body["params"]))


@pytest.fixture
def network() -> NetworkProfile:
    """Three-endpoint test network with a factory and a price feed."""
    return NetworkProfile(
        id="testnet",
        name="Test Network",
        chain_id=421614,
        currency="ETH",
        rpc=[ENDPOINT_A, ENDPOINT_B, ENDPOINT_C],
        explorer="https://explorer.example",
        contracts=NetworkContracts(vault_factory=FACTORY, price_feed=PRICE_FEED),
    )


@pytest.fixture
def other_network() -> NetworkProfile:
    return NetworkProfile(
        id="othernet",
        name="Other Network",
        chain_id=97,
        currency="tBNB",
        rpc=["https://rpc-other.example"],
        explorer="https://other-explorer.example",
    )


@pytest.fixture
def networks(network: NetworkProfile, other_network: NetworkProfile) -> dict[str, NetworkProfile]:
    return {network.id: network, other_network.id: other_network}


@pytest.fixture
def stub() -> RpcStub:
    return RpcStub()


@pytest.fixture
def http_client(stub: RpcStub) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(stub.handler))


@pytest.fixture
def make_client(http_client: httpx.AsyncClient) -> Callable[..., ResilientRPCClient]:
    """Factory building clients that talk to the stub."""

    def _make(profile: NetworkProfile, **kwargs: Any) -> ResilientRPCClient:
        return ResilientRPCClient(profile, http_client=http_client, **kwargs)

    return _make


@pytest.fixture
def client(network: NetworkProfile, make_client: Callable[..., ResilientRPCClient]) -> ResilientRPCClient:
    return make_client(network)


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        wallet_store_path=tmp_path / "wallets.json",
        default_network="testnet",
        receipt_timeout=1.0,
        receipt_poll_interval=0.01,
        price_poll_interval=0.05,
    )
